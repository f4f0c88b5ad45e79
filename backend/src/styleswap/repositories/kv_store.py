"""Key-value repository.

Provides data access methods for the KeyValueRecord store.
"""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.models.kv_store import KeyValueRecord


class KeyValueRepository:
    """Repository for KeyValueRecord entries.

    Values are JSON objects stored in a JSON column and deserialized on read.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, key: str) -> dict | None:
        """Retrieve the value stored under key.

        Args:
            key: Namespaced key (e.g., "credits:user@example.com")

        Returns:
            Stored JSON object if found, None otherwise
        """
        record = await self.session.get(KeyValueRecord, key)
        return record.value if record else None

    async def set(self, key: str, value: dict) -> None:
        """Insert or replace the value under key.

        Uses a read-then-write upsert so it works on every supported dialect.

        Args:
            key: Namespaced key
            value: JSON-serializable object
        """
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        record = await self.session.get(KeyValueRecord, key)
        if record is None:
            record = KeyValueRecord(key=key, value=value, updated_at=now)
        else:
            record.value = value
            record.updated_at = now
        self.session.add(record)
        await self.session.flush()
