"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from styleswap.models.coupon import Coupon, CouponType
from styleswap.models.credential import CredentialRecord, CredentialStatus
from styleswap.models.generation_job import (
    GenerationJob,
    InvalidStateTransition,
    JobKind,
    JobStatus,
    Provider,
)
from styleswap.models.kv_store import KeyValueRecord
from styleswap.models.transaction import RenderStatus, TransactionRecord, TransactionStatus

__all__ = [
    "Coupon",
    "CouponType",
    "CredentialRecord",
    "CredentialStatus",
    "GenerationJob",
    "InvalidStateTransition",
    "JobKind",
    "JobStatus",
    "Provider",
    "KeyValueRecord",
    "TransactionRecord",
    "TransactionStatus",
    "RenderStatus",
]
