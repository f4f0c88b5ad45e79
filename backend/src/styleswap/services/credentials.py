"""Credential resolver for the first-party generation provider.

Individual API keys in the pool get rate limited or run out of quota
independently, so a key is resolved before every outbound request. Resolution
is a plain read of the pool; the returned credential carries a
``report_outcome`` hook that flips a pooled key to ``exhausted`` when a
request made with it fails with a quota-like error. Concurrent requests may
still pick the same key until that flip lands (last writer wins).
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from styleswap.models.credential import CredentialRecord, CredentialStatus
from styleswap.services.exceptions import ConfigurationError, is_quota_error

logger = structlog.get_logger()


@dataclass
class ResolvedCredential:
    """An API key selected for one request.

    Attributes:
        secret: API key value (never log it)
        label: Human label of the pooled key, or "default"
        credential_id: Pool record id, None for the configured default key
    """

    secret: str
    label: str
    credential_id: Optional[UUID] = None
    _on_exhausted: Optional[Callable[[UUID], Awaitable[None]]] = field(default=None, repr=False)

    @property
    def is_default(self) -> bool:
        return self.credential_id is None

    async def report_outcome(self, error: BaseException | None) -> bool:
        """Report how the request made with this credential ended.

        Args:
            error: Exception raised by the request, or None on success

        Returns:
            True if the pooled credential was marked exhausted
        """
        if error is None or self.credential_id is None or self._on_exhausted is None:
            return False
        if not is_quota_error(error):
            return False

        try:
            await self._on_exhausted(self.credential_id)
        except SQLAlchemyError as e:
            # The original request error is what the caller surfaces
            logger.error(
                "credential.exhaust_failed",
                credential_id=str(self.credential_id),
                label=self.label,
                error=str(e),
            )
            return False

        logger.warning(
            "credential.exhausted",
            credential_id=str(self.credential_id),
            label=self.label,
            reason=str(error)[:200],
        )
        return True


def select_active(pool: list[CredentialRecord]) -> CredentialRecord | None:
    """Return the first active credential in pool order, or None."""
    for credential in pool:
        if credential.status == CredentialStatus.ACTIVE:
            return credential
    return None


class CredentialResolver:
    """Resolves a usable first-party API key from the pool or the configured default."""

    def __init__(self, uow_factory: Callable, default_secret: str = ""):
        """Initialize resolver.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            default_secret: Statically configured fallback key (GEMINI_API_KEY)
        """
        self.uow_factory = uow_factory
        self.default_secret = default_secret

    async def resolve(self) -> ResolvedCredential:
        """Select the credential for the next request.

        Returns:
            First active pooled credential, else the configured default

        Raises:
            ConfigurationError: Pool has no active key and no default is configured
        """
        try:
            async with await self.uow_factory() as uow:
                pool = await uow.credentials.list_pool()
        except SQLAlchemyError as e:
            logger.warning("credential.pool_unavailable", error=str(e))
            pool = []

        chosen = select_active(pool)
        if chosen is not None:
            logger.debug("credential.resolved", label=chosen.label, pool_size=len(pool))
            return ResolvedCredential(
                secret=chosen.secret,
                label=chosen.label,
                credential_id=chosen.id,
                _on_exhausted=self._mark_exhausted,
            )

        if self.default_secret:
            logger.debug("credential.resolved_default", pool_size=len(pool))
            return ResolvedCredential(secret=self.default_secret, label="default")

        raise ConfigurationError(
            "No API key found in the credential pool or GEMINI_API_KEY. "
            "Add an active key to the pool or set GEMINI_API_KEY."
        )

    async def _mark_exhausted(self, credential_id: UUID) -> None:
        async with await self.uow_factory() as uow:
            await uow.credentials.set_status(credential_id, CredentialStatus.EXHAUSTED)
