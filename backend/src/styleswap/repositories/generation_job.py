"""GenerationJob repository.

Provides data access methods for GenerationJob entities.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.models.generation_job import GenerationJob


class GenerationJobRepository:
    """Repository for GenerationJob entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: GenerationJob) -> GenerationJob:
        """Persist new job to database.

        Args:
            job: GenerationJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def save(self, job: GenerationJob) -> GenerationJob:
        """Persist changes made through the job's transition methods.

        Merges, so a job object kept in memory across sessions can be saved.
        """
        merged = await self.session.merge(job)
        await self.session.flush()
        return merged

    async def get_by_id(self, job_id: UUID) -> GenerationJob | None:
        """Retrieve job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_payment_id(self, payment_id: str) -> list[GenerationJob]:
        """Retrieve all jobs paid for by one gateway payment, oldest first."""
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.payment_id == payment_id)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
