"""Repository layer for the StyleSwap backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from styleswap.repositories.coupon import CouponRepository
from styleswap.repositories.credential import CredentialRepository
from styleswap.repositories.generation_job import GenerationJobRepository
from styleswap.repositories.kv_store import KeyValueRepository
from styleswap.repositories.transaction import TransactionRepository

__all__ = [
    "CouponRepository",
    "CredentialRepository",
    "GenerationJobRepository",
    "KeyValueRepository",
    "TransactionRepository",
]
