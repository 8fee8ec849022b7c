import asyncio

import pytest

from src.filedock.derived.audio_variants import AudioVariantService
from src.filedock.derived.derived_cache import DerivedAssetCache
from src.filedock.media.media_errors import EncoderFailed
from src.filedock.storage.asset_store import LocalAssetStore
from src.filedock.storage.storage_paths import StoragePaths
from tests.helpers.files import store_file
from tests.mocks.media_tools import FakeMediaTools


@pytest.fixture
def tools() -> FakeMediaTools:
    return FakeMediaTools()


def _service(storage, tools, *, enabled: bool = True) -> AudioVariantService:
    return AudioVariantService(
        cache=DerivedAssetCache(LocalAssetStore(storage)),
        tools=tools,
        paths=storage,
        transcode_flac=enabled,
    )


@pytest.fixture
def flac(storage, file_repo):
    return store_file(storage, file_repo, name="track.flac", data=b"fLaC" + bytes(64), mime_type="audio/flac")


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_encode(storage, tools, flac) -> None:
    tools.opus_delay = 0.05
    service = _service(storage, tools)

    sources = await asyncio.gather(*(service.stream_source(flac) for _ in range(3)))

    assert tools.calls["transcode_audio_to_opus"] == 1
    assert {s.variant for s in sources} == {"opus"}
    assert {s.mime_type for s in sources} == {"audio/opus"}
    assert sources[0].path == storage.resolve(StoragePaths.audio_variant(flac.id, "opus", "opus"))
    assert service.inflight_count == 0


@pytest.mark.asyncio
async def test_cached_variant_is_reused(storage, tools, flac) -> None:
    service = _service(storage, tools)

    await service.stream_source(flac)
    source = await service.stream_source(flac)

    assert source.variant == "opus"
    assert tools.calls["transcode_audio_to_opus"] == 1


@pytest.mark.asyncio
async def test_failed_encode_falls_back_to_original(storage, tools, flac) -> None:
    tools.opus_error = EncoderFailed("ffmpeg exited with code 1", stderr="Unknown encoder")
    service = _service(storage, tools)

    source = await service.stream_source(flac)

    assert source.variant == "original"
    assert source.mime_type == "audio/flac"
    assert source.path == storage.resolve(flac.path)
    assert not storage.resolve(StoragePaths.audio_variant(flac.id, "opus", "opus")).exists()


@pytest.mark.asyncio
async def test_disabled_flag_serves_original(storage, tools, flac) -> None:
    service = _service(storage, tools, enabled=False)

    source = await service.stream_source(flac)

    assert source.variant == "original"
    assert tools.calls["transcode_audio_to_opus"] == 0


@pytest.mark.asyncio
async def test_lossy_audio_is_never_transcoded(storage, tools, file_repo) -> None:
    mp3 = store_file(storage, file_repo, name="song.mp3", data=b"ID3", mime_type="audio/mpeg")
    service = _service(storage, tools)

    assert service.should_use_opus(mp3) is False
    assert (await service.stream_source(mp3)).variant == "original"
