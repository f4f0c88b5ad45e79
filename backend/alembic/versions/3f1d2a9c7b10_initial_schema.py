"""initial_schema

Revision ID: 3f1d2a9c7b10
Revises:
Create Date: 2026-10-18 09:12:41.318205

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1d2a9c7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

job_kind = sa.Enum(
    "STYLE_TRANSFORM", "VIDEO_FIRST_LAST_FRAME", "VIDEO_SINGLE_FRAME", name="jobkind"
)
provider = sa.Enum("FIRST_PARTY", "THIRD_PARTY_VENDOR", name="provider")
job_status = sa.Enum("SUBMITTED", "POLLING", "SUCCEEDED", "FAILED", "TIMED_OUT", name="jobstatus")
transaction_status = sa.Enum(
    "AUTHORIZED", "CAPTURED", "FAILED", "REFUND_REQUESTED", "REFUNDED", name="transactionstatus"
)
render_status = sa.Enum("PENDING", "COMPLETED", "FAILED", name="renderstatus")
credential_status = sa.Enum("ACTIVE", "EXHAUSTED", "INVALID", name="credentialstatus")
coupon_type = sa.Enum("PERCENTAGE", "FIXED", name="coupontype")


def upgrade() -> None:
    """Create generation job, transaction, credential pool, coupon and kv tables."""
    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("task_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("kind", job_kind, nullable=False),
        sa.Column("provider", provider, nullable=False),
        sa.Column("prompt", sqlmodel.sql.sqltypes.AutoString(length=4000), nullable=False),
        sa.Column("refinement", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column("duration", sqlmodel.sql.sqltypes.AutoString(length=4), nullable=True),
        sa.Column("status", job_status, nullable=False),
        sa.Column("result_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column("payment_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("poll_attempts", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generation_jobs_task_id", "generation_jobs", ["task_id"])
    op.create_index("ix_generation_jobs_status", "generation_jobs", ["status"])
    op.create_index("ix_generation_jobs_payment_id", "generation_jobs", ["payment_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "razorpay_payment_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False
        ),
        sa.Column("user_email", sqlmodel.sql.sqltypes.AutoString(length=320), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sqlmodel.sql.sqltypes.AutoString(length=8), nullable=False),
        sa.Column("items", sa.JSON(), nullable=True),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("render_status", render_status, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_transactions_razorpay_payment_id", "transactions", ["razorpay_payment_id"], unique=True
    )
    op.create_index("ix_transactions_status", "transactions", ["status"])

    op.create_table(
        "api_credentials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("secret", sqlmodel.sql.sqltypes.AutoString(length=512), nullable=False),
        sa.Column("label", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("status", credential_status, nullable=False),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_credentials_status", "api_credentials", ["status"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("type", coupon_type, nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)

    op.create_table(
        "kv_store",
        sa.Column("key", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("kv_store")
    op.drop_index("ix_coupons_code", table_name="coupons")
    op.drop_table("coupons")
    op.drop_index("ix_api_credentials_status", table_name="api_credentials")
    op.drop_table("api_credentials")
    op.drop_index("ix_transactions_status", table_name="transactions")
    op.drop_index("ix_transactions_razorpay_payment_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_generation_jobs_payment_id", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_status", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_task_id", table_name="generation_jobs")
    op.drop_table("generation_jobs")

    bind = op.get_bind()
    for enum_type in (
        coupon_type,
        credential_status,
        render_status,
        transaction_status,
        job_status,
        provider,
        job_kind,
    ):
        enum_type.drop(bind, checkfirst=True)
