"""KeyValueRecord entity - explicit key-value store for session-style state."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class KeyValueRecord(SQLModel, table=True):
    """KeyValueRecord holds guest free-claim flags, credit balances and similar state.

    Keys are namespaced with ':' (e.g. "credits:user@example.com").
    """

    __tablename__ = "kv_store"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=255)
    value: dict = Field(sa_column=Column(JSON))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None)
    )
