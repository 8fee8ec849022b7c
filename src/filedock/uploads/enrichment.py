"""Post-upload metadata enrichment.

Enrichment is best-effort: the file record already exists when it runs and
stays usable without rich metadata if any step fails.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any

from ..derived.thumbnails import ThumbnailService
from ..files.file_models import FileRecord
from ..media.metadata_service import MetadataService
from ..media.video_service import VideoService
from ..repositories.file_repository import FileRepository
from ..storage.storage_paths import StoragePaths

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EnrichmentService:
    file_repo: FileRepository
    paths: StoragePaths
    metadata: MetadataService
    video: VideoService
    thumbnails: ThumbnailService | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def enrich(self, file: FileRecord) -> FileRecord:
        """Attach type-specific metadata; returns the record, updated when enrichment succeeded."""
        try:
            metadata = await self._extract(file)
        except Exception:
            self.log.exception(
                "upload.enrichment.failed",
                extra={"file_id": file.id, "mime_type": file.mime_type},
            )
            return file
        if metadata is None:
            return file

        self.file_repo.update_metadata(file.id, metadata)
        enriched = dataclasses.replace(file, metadata=metadata)
        self.log.info("upload.enrichment.done", extra={"file_id": file.id, "mime_type": file.mime_type})
        await self._warm_thumbnails(enriched)
        return enriched

    async def _extract(self, file: FileRecord) -> dict[str, Any] | None:
        if file.is_image:
            return await self.metadata.image_metadata(self.paths.resolve(file.path))
        if file.is_audio:
            return await self.metadata.audio_metadata(self.paths.resolve(file.path))
        if file.is_video:
            return await self.video.process_video_file(file)
        return None

    async def _warm_thumbnails(self, file: FileRecord) -> None:
        if self.thumbnails is None or not (file.is_image or file.is_video):
            return
        try:
            await self.thumbnails.generate_all(file)
        except Exception:
            self.log.exception("upload.enrichment.thumbnails_failed", extra={"file_id": file.id})
