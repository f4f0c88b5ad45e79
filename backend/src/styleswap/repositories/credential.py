"""CredentialRecord repository.

Provides data access methods for the first-party provider's credential pool.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.models.credential import CredentialRecord, CredentialStatus


class CredentialRepository:
    """Repository for CredentialRecord entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, credential: CredentialRecord) -> CredentialRecord:
        """Persist new credential to database."""
        self.session.add(credential)
        await self.session.flush()
        return credential

    async def list_pool(self) -> list[CredentialRecord]:
        """Retrieve the whole pool in rotation order (oldest first).

        Returns:
            All credentials regardless of status
        """
        result = await self.session.execute(
            select(CredentialRecord).order_by(CredentialRecord.added_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def set_status(self, credential_id: UUID, status: CredentialStatus) -> bool:
        """Set a credential's status (last writer wins).

        Args:
            credential_id: Credential's unique identifier
            status: New status

        Returns:
            True if the credential exists, False otherwise
        """
        result = await self.session.execute(
            update(CredentialRecord)
            .where(CredentialRecord.id == credential_id)  # type: ignore[arg-type]
            .values(status=status)
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]
