"""Local storage for render artifacts that cannot be handed out by URL.

Veo files are only reachable with an API key, so they are downloaded and kept
here; GET /api/videos/{job_id}/content serves them.
"""

from pathlib import Path
from typing import Optional
from uuid import UUID

import aiofiles
import structlog

from styleswap.services.exceptions import ArtifactMissingError

logger = structlog.get_logger()


class ArtifactStore:
    """One file per job under a root directory, named by job id."""

    def __init__(self, root: str | Path, url_prefix: str = "/api/videos"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, job_id: UUID) -> Path:
        return self.root / f"{job_id}.mp4"

    def url_for(self, job_id: UUID) -> str:
        return f"{self.url_prefix}/{job_id}/content"

    def path_for(self, job_id: UUID) -> Optional[Path]:
        """Stored file for a job, or None if nothing was stored."""
        path = self._path(job_id)
        return path if path.is_file() else None

    async def save(self, job_id: UUID, content: bytes) -> str:
        """Write the artifact and return the URL it is served from.

        Raises:
            ArtifactMissingError: The file could not be written
        """
        path = self._path(job_id)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("artifact.store_failed", job_id=str(job_id), error=str(e))
            raise ArtifactMissingError("Could not store video.") from e

        logger.info("artifact.stored", job_id=str(job_id), size=len(content))
        return self.url_for(job_id)
