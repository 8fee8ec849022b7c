from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.filedock.derived.audio_variants import AudioVariantService
from src.filedock.derived.derived_cache import DerivedAssetCache
from src.filedock.derived.thumbnails import ThumbnailService
from src.filedock.derived.waveform import WaveformService
from src.filedock.files.file_api import audio_router
from src.filedock.files.file_api import router as files_router
from src.filedock.repositories.media_track_repository import MediaTrackRepository
from src.filedock.repositories.transcode_job_repository import TranscodeJobRepository
from src.filedock.storage.asset_store import LocalAssetStore
from src.filedock.streaming.stream_api import router as stream_router
from src.filedock.streaming.stream_service import StreamService
from src.filedock.transcode.transcode_api import router as transcode_router
from src.filedock.transcode.transcode_queue import TranscodeQueue
from src.filedock.uploads.upload_api import router as upload_router
from src.filedock.uploads.upload_service import UploadService
from tests.mocks.media_tools import FakeMediaTools


@dataclass
class ApiHarness:
    app: FastAPI
    client: TestClient
    tools: FakeMediaTools
    queue: TranscodeQueue
    job_repo: TranscodeJobRepository
    track_repo: MediaTrackRepository


@pytest.fixture
def api(storage, file_repo, folder_repo, session_factory) -> ApiHarness:
    tools = FakeMediaTools()
    cache = DerivedAssetCache(LocalAssetStore(storage))
    job_repo = TranscodeJobRepository(session_factory)
    track_repo = MediaTrackRepository(session_factory)
    queue = TranscodeQueue(job_repo=job_repo, file_repo=file_repo, paths=storage, tools=tools)

    app = FastAPI()
    app.state.storage_paths = storage
    app.state.file_repo = file_repo
    app.state.derived_cache = cache
    app.state.thumbnail_service = ThumbnailService(cache=cache, tools=tools, paths=storage)
    app.state.waveform_service = WaveformService(cache=cache, tools=tools, paths=storage)
    app.state.audio_variant_service = AudioVariantService(
        cache=cache, tools=tools, paths=storage, transcode_flac=True
    )
    app.state.upload_service = UploadService(paths=storage, file_repo=file_repo, folder_repo=folder_repo)
    app.state.transcode_queue = queue
    app.state.stream_service = StreamService(paths=storage, tools=tools, queue=queue, track_repo=track_repo)
    for router in (upload_router, files_router, audio_router, stream_router, transcode_router):
        app.include_router(router)

    return ApiHarness(
        app=app,
        client=TestClient(app),
        tools=tools,
        queue=queue,
        job_repo=job_repo,
        track_repo=track_repo,
    )
