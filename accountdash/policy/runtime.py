# accountdash/policy/runtime.py
from __future__ import annotations
from functools import lru_cache
from accountdash.policy.loader import load_policy_yaml
from accountdash.policy.schema import WorkflowPolicy


@lru_cache(maxsize=1)
def get_policy() -> WorkflowPolicy:
    """
    앱 전역에서 사용하는 워크플로 정책 접근자.
    - 최초 1회만 YAML 로드 (lru_cache)
    """
    return load_policy_yaml()


def reload_policy_cache() -> WorkflowPolicy:
    """테스트나 운영 중 재로드가 필요할 때 호출."""
    get_policy.cache_clear()  # type: ignore[attr-defined]
    return get_policy()
