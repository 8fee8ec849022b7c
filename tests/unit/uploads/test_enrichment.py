import pytest

from src.filedock.derived.derived_cache import DerivedAssetCache
from src.filedock.derived.thumbnails import ThumbnailService
from src.filedock.media.metadata_service import MetadataService
from src.filedock.media.video_service import VideoService
from src.filedock.repositories.media_track_repository import MediaTrackRepository
from src.filedock.storage.asset_store import LocalAssetStore
from src.filedock.storage.storage_paths import StoragePaths
from src.filedock.uploads.enrichment import EnrichmentService
from tests.helpers.files import store_file
from tests.mocks.media_tools import FakeMediaTools, failing_probe, image_bytes


@pytest.fixture
def tools() -> FakeMediaTools:
    return FakeMediaTools()


@pytest.fixture
def enrichment(storage, file_repo, session_factory, tools) -> EnrichmentService:
    return EnrichmentService(
        file_repo=file_repo,
        paths=storage,
        metadata=MetadataService(tools=tools),
        video=VideoService(tools=tools, track_repo=MediaTrackRepository(session_factory), paths=storage),
        thumbnails=ThumbnailService(cache=DerivedAssetCache(LocalAssetStore(storage)), tools=tools, paths=storage),
    )


@pytest.mark.asyncio
async def test_image_metadata_is_stored_and_thumbnails_warmed(enrichment, storage, file_repo) -> None:
    record = store_file(storage, file_repo, name="photo.png", data=image_bytes(300, 200), mime_type="image/png")

    enriched = await enrichment.enrich(record)

    assert enriched.metadata == {"width": 300, "height": 200, "format": "PNG"}
    assert file_repo.get_file(record.id).metadata == enriched.metadata
    assert storage.resolve(StoragePaths.thumbnail(record.id, "blur")).is_file()


@pytest.mark.asyncio
async def test_video_metadata_comes_from_probe(enrichment, storage, file_repo) -> None:
    record = store_file(storage, file_repo, name="clip.mp4", data=b"\x00" * 16, mime_type="video/mp4")

    enriched = await enrichment.enrich(record)

    assert enriched.metadata["videoCodec"] == "h264"
    assert enriched.metadata["duration"] == 120.0
    assert storage.resolve(StoragePaths.video_thumbnail(record.id, "medium")).is_file()


@pytest.mark.asyncio
async def test_probe_failure_keeps_the_record(enrichment, storage, file_repo, tools) -> None:
    tools.probe_error = failing_probe()
    record = store_file(storage, file_repo, name="clip.mp4", data=b"\x00" * 16, mime_type="video/mp4")

    enriched = await enrichment.enrich(record)

    assert enriched == record
    assert file_repo.get_file(record.id).metadata is None


@pytest.mark.asyncio
async def test_other_types_are_left_alone(enrichment, storage, file_repo, tools) -> None:
    record = store_file(storage, file_repo, name="notes.txt", data=b"hello", mime_type="text/plain")

    assert await enrichment.enrich(record) == record
    assert tools.calls["probe"] == 0
