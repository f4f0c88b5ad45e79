"""CredentialRecord entity - one API key in the first-party provider's rotating pool."""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class CredentialStatus(str, Enum):
    """Credential usability status."""

    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    INVALID = "invalid"


class CredentialRecord(SQLModel, table=True):
    """CredentialRecord is an interchangeable API key for the same provider."""

    __tablename__ = "api_credentials"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    secret: str = Field(max_length=512)
    label: str = Field(default="", max_length=255)
    status: CredentialStatus = Field(default=CredentialStatus.ACTIVE, index=True)
    added_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None)
    )

    def __repr__(self) -> str:
        # Never expose the secret in logs or tracebacks
        return f"CredentialRecord(id={self.id}, label={self.label!r}, status={self.status.value})"
