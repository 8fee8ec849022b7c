"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .derived.audio_variants import AudioVariantService
from .derived.derived_cache import DerivedAssetCache
from .derived.thumbnails import ThumbnailService
from .derived.waveform import WaveformService
from .files.file_api import audio_router
from .files.file_api import router as files_router
from .media.ffmpeg import FFmpegTools
from .media.metadata_service import MetadataService
from .media.video_service import VideoService
from .repositories.file_repository import FileRepository, FolderRepository
from .repositories.media_track_repository import MediaTrackRepository
from .repositories.transcode_job_repository import TranscodeJobRepository
from .storage.asset_store import LocalAssetStore
from .storage.storage_paths import StoragePaths
from .streaming.stream_api import router as stream_router
from .streaming.stream_service import StreamService
from .transcode.transcode_api import router as transcode_router
from .transcode.transcode_models import get_quality_profile
from .transcode.transcode_queue import TranscodeQueue
from .uploads.enrichment import EnrichmentService
from .uploads.upload_api import router as upload_router
from .uploads.upload_service import UploadService


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    paths = StoragePaths(config.storage.root)
    tools = FFmpegTools(
        ffmpeg_binary=config.tools.ffmpeg_binary,
        ffprobe_binary=config.tools.ffprobe_binary,
    )
    file_repo = FileRepository(config.session_factory)
    folder_repo = FolderRepository(config.session_factory)
    track_repo = MediaTrackRepository(config.session_factory)
    job_repo = TranscodeJobRepository(config.session_factory)

    derived_cache = DerivedAssetCache(LocalAssetStore(paths))
    thumbnail_service = ThumbnailService(cache=derived_cache, tools=tools, paths=paths)
    waveform_service = WaveformService(cache=derived_cache, tools=tools, paths=paths)
    audio_variant_service = AudioVariantService(
        cache=derived_cache,
        tools=tools,
        paths=paths,
        transcode_flac=config.audio.transcode_flac,
        opus_bitrate_kbps=config.audio.opus_bitrate_kbps,
    )

    enrichment = EnrichmentService(
        file_repo=file_repo,
        paths=paths,
        metadata=MetadataService(tools=tools),
        video=VideoService(tools=tools, track_repo=track_repo, paths=paths),
        thumbnails=thumbnail_service,
    )
    upload_service = UploadService(
        paths=paths,
        file_repo=file_repo,
        folder_repo=folder_repo,
        enrichment=enrichment,
        read_chunk_bytes=config.storage.upload_read_chunk_bytes,
    )

    transcode_queue = TranscodeQueue(
        job_repo=job_repo,
        file_repo=file_repo,
        paths=paths,
        tools=tools,
        profile=get_quality_profile(config.transcode.quality),
        timeout_seconds=config.transcode.timeout_seconds,
    )
    stream_service = StreamService(
        paths=paths,
        tools=tools,
        queue=transcode_queue,
        track_repo=track_repo,
    )

    app.state.config = config
    app.state.storage_paths = paths
    app.state.file_repo = file_repo
    app.state.folder_repo = folder_repo
    app.state.derived_cache = derived_cache
    app.state.thumbnail_service = thumbnail_service
    app.state.waveform_service = waveform_service
    app.state.audio_variant_service = audio_variant_service
    app.state.upload_service = upload_service
    app.state.transcode_queue = transcode_queue
    app.state.stream_service = stream_service

    app.include_router(upload_router)
    app.include_router(files_router)
    app.include_router(audio_router)
    app.include_router(stream_router)
    app.include_router(transcode_router)
