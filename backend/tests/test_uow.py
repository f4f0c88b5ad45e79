"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

import pytest

from styleswap.models.credential import CredentialRecord
from styleswap.models.generation_job import GenerationJob, JobKind, Provider


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Changes made within the context persist after the context exits."""
    async with await uow_factory() as uow:
        job = GenerationJob(
            kind=JobKind.STYLE_TRANSFORM,
            provider=Provider.FIRST_PARTY,
            prompt="watercolor portrait",
        )
        await uow.jobs.add(job)
        job_id = job.id

    async with await uow_factory() as uow:
        found = await uow.jobs.get_by_id(job_id)
        assert found is not None
        assert found.prompt == "watercolor portrait"


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """Exceptions roll back the work and propagate (not swallowed)."""
    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.kv.set("credits:someone@example.com", {"balance": 5})
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.kv.get("credits:someone@example.com") is None


@pytest.mark.asyncio
async def test_uow_multiple_repositories_atomic(uow_factory):
    """Writes through different repositories commit or roll back together."""
    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            await uow.credentials.add(CredentialRecord(secret="key-1", label="primary"))
            await uow.kv.set("guest_free_used:abc", {"used": True})
            raise RuntimeError("boom")

    async with await uow_factory() as uow:
        assert await uow.credentials.list_pool() == []
        assert await uow.kv.get("guest_free_used:abc") is None
