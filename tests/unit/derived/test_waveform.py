import struct

import pytest

from src.filedock.derived.derived_cache import DerivedAssetCache
from src.filedock.derived.derived_errors import UnsupportedSourceError
from src.filedock.derived.waveform import (
    WaveformService,
    clamp_dimensions,
    compress_samples,
    pcm_amplitudes,
)
from src.filedock.storage.asset_store import LocalAssetStore
from src.filedock.storage.storage_paths import StoragePaths
from tests.helpers.files import store_file
from tests.mocks.media_tools import FakeMediaTools, image_bytes


@pytest.fixture
def tools() -> FakeMediaTools:
    fake = FakeMediaTools()
    fake.pcm = struct.pack("<400h", *([16384, -16384] * 200))
    return fake


@pytest.fixture
def service(storage, tools) -> WaveformService:
    return WaveformService(cache=DerivedAssetCache(LocalAssetStore(storage)), tools=tools, paths=storage)


def test_pcm_amplitudes_are_absolute_and_normalized() -> None:
    pcm = struct.pack("<4h", 16384, -16384, 0, -32768) + b"\x01"

    assert pcm_amplitudes(pcm) == [0.5, 0.5, 0.0, 1.0]


def test_compress_samples_block_averages() -> None:
    assert compress_samples([1.0, 2.0, 3.0, 4.0], 2) == [1.5, 3.5]
    assert compress_samples([0.1, 0.2], 10) == [0.1, 0.2]


@pytest.mark.parametrize(
    ("width", "height", "expected"),
    [(None, None, (800, 100)), (5, 9999, (100, 500)), (3000, 20, (2000, 50)), (640, 120, (640, 120))],
)
def test_image_dimensions_are_clamped(width, height, expected) -> None:
    assert clamp_dimensions(width, height) == expected


@pytest.mark.asyncio
async def test_waveform_data_is_cached(service, storage, file_repo, tools) -> None:
    record = store_file(storage, file_repo, name="song.mp3", data=b"ID3", mime_type="audio/mpeg")

    data = await service.waveform_data(record)
    cached = await service.waveform_data(record)

    assert len(data.samples) == 200
    assert data.samples[0] == pytest.approx(0.5)
    assert data.sampleRate == 8000
    assert data.duration == 120.0
    assert data.channels == 1
    assert cached == data
    assert tools.calls["extract_pcm_samples"] == 1
    assert storage.resolve(StoragePaths.waveform_data(record.id)).is_file()


@pytest.mark.asyncio
async def test_corrupt_waveform_data_is_regenerated(service, storage, file_repo, tools) -> None:
    record = store_file(storage, file_repo, name="song.mp3", data=b"ID3", mime_type="audio/mpeg")
    await service.waveform_data(record)
    storage.resolve(StoragePaths.waveform_data(record.id)).write_text("[]")

    data = await service.waveform_data(record)

    assert len(data.samples) == 200
    assert tools.calls["extract_pcm_samples"] == 2


@pytest.mark.asyncio
async def test_waveform_image_uses_clamped_size(service, storage, file_repo, tools) -> None:
    record = store_file(storage, file_repo, name="clip.mp4", data=b"\x00", mime_type="video/mp4")

    relative = await service.waveform_image(record, width=10, height=10)
    await service.waveform_image(record, width=10, height=10)

    assert relative == StoragePaths.waveform_image(record.id, 100, 50)
    assert tools.calls["render_waveform_image"] == 1


@pytest.mark.asyncio
async def test_images_have_no_waveform(service, storage, file_repo) -> None:
    record = store_file(storage, file_repo, name="photo.png", data=image_bytes(), mime_type="image/png")

    with pytest.raises(UnsupportedSourceError):
        await service.waveform_data(record)
    with pytest.raises(UnsupportedSourceError):
        await service.waveform_image(record)
