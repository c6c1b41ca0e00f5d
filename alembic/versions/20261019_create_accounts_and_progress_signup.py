# alembic/versions/20261019_create_accounts_and_progress_signup.py
from alembic import op
import sqlalchemy as sa

# --- revision identifiers ---
revision = "20261019_create_accounts_and_progress_signup"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, name: str) -> bool:
    insp = sa.inspect(bind)
    return name in insp.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    # 1) accounts (이미 운영 DB에 있으면 건너뜀)
    if not _has_table(bind, "accounts"):
        op.create_table(
            "accounts",
            sa.Column("order_id", sa.String(length=32), primary_key=True),
            sa.Column("first_name", sa.String(length=100)),
            sa.Column("last_name", sa.String(length=100)),
            sa.Column("email", sa.String(length=255)),
            sa.Column("country", sa.String(length=100)),
            sa.Column("user_id", sa.String(length=100)),
            sa.Column("suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_accounts_email", "accounts", ["email"])

    # 2) progress_signup (계정당 1행)
    if not _has_table(bind, "progress_signup"):
        op.create_table(
            "progress_signup",
            sa.Column("account_id", sa.String(length=32), sa.ForeignKey("accounts.order_id"), primary_key=True),
            sa.Column("create_account_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("create_account_date", sa.DateTime(timezone=True)),
            sa.Column("first_listing_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("first_listing_date", sa.DateTime(timezone=True)),
            sa.Column("seller_account_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("seller_account_date", sa.DateTime(timezone=True)),
            sa.Column(
                "check_account_status",
                sa.Enum("pending", "active", "suspended", name="checkaccountstatus", native_enum=False),
                nullable=False,
                server_default="pending",
            ),
            sa.Column("check_account_date", sa.DateTime(timezone=True)),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_progress_signup_status", "progress_signup", ["check_account_status"])


def downgrade() -> None:
    bind = op.get_bind()
    if _has_table(bind, "progress_signup"):
        op.drop_index("ix_progress_signup_status", table_name="progress_signup")
        op.drop_table("progress_signup")
    if _has_table(bind, "accounts"):
        op.drop_index("ix_accounts_email", table_name="accounts")
        op.drop_table("accounts")
