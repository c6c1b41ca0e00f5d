# accountdash/main.py
from __future__ import annotations

import logging
import os
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from accountdash import models  # noqa: F401  (테이블 등록)
from accountdash.core import time_policy as T
from accountdash.database import Base, engine
from accountdash.policy.runtime import get_policy
from accountdash.routers import admin_dashboard, progress

logging.basicConfig(
    level=os.getenv("ACCOUNTDASH_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

DEV_DEBUG_ERRORS = os.getenv("ACCOUNTDASH_DEBUG_ERRORS", "0") == "1"


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    T.set_now_utc_for_testing(None)

    # DB 테이블 생성은 import 시점이 아니라 startup 시점에서
    Base.metadata.create_all(bind=engine)

    # 정책 YAML 은 기동 시 한 번 검증 (잘못된 값이면 기동 실패)
    policy = get_policy()
    logger.info("workflow policy: gating=%s wait_hours=%s", policy.gating, policy.wait_hours)

    yield


app = FastAPI(title="Account Signup Progress API", version="1.0", lifespan=lifespan)


# 예외 핸들러
@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request, exc: RequestValidationError):
    # /progress 는 실패 시 항상 {"error": str} 로 응답
    if not request.url.path.startswith(progress.router.prefix):
        return await request_validation_exception_handler(request, exc)
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = " ".join(part for part in (where, first.get("msg", "")) if part)
    message = f"Invalid request: {detail}" if detail else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exc_handler(request, exc: Exception):
    logging.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    if DEV_DEBUG_ERRORS:
        tb_tail = traceback.format_exception(type(exc), exc, exc.__traceback__)[-1].strip()
        return JSONResponse(
            status_code=500,
            content={
                "detail": {
                    "error": exc.__class__.__name__,
                    "msg": str(exc),
                    "where": f"{request.method} {request.url.path}",
                    "trace_tail": tb_tail,
                }
            },
        )
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(progress.router)
app.include_router(admin_dashboard.router)


# Health/Version
@app.get("/")
def root():
    return {"message": "Account Signup Progress API is running"}


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/version")
def version():
    return {"app": "Account Signup Progress API", "version": "1.0"}


def serve() -> None:
    import uvicorn

    uvicorn.run(
        "accountdash.main:app",
        host=os.getenv("ACCOUNTDASH_HOST", "0.0.0.0"),
        port=int(os.getenv("ACCOUNTDASH_PORT", "8000")),
        log_level=os.getenv("ACCOUNTDASH_LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    serve()
