import io

import pytest
from PIL import ExifTags, Image

from src.filedock.media.metadata_service import MetadataService, read_image_metadata
from src.filedock.media.probe import ProbeReport
from tests.mocks.media_tools import FakeMediaTools, image_bytes


def _jpeg_with_exif() -> bytes:
    exif = Image.Exif()
    exif[0x010F] = "Canon "
    exif[0x0110] = "EOS R6"
    exif[ExifTags.IFD.GPSInfo] = {
        1: "N",
        2: (52.0, 30.0, 0.0),
        3: "W",
        4: (13.0, 24.0, 0.0),
    }
    buffer = io.BytesIO()
    Image.new("RGB", (40, 30), color="blue").save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


def test_plain_image_reports_dimensions(tmp_path) -> None:
    path = tmp_path / "photo.png"
    path.write_bytes(image_bytes(64, 48))

    assert read_image_metadata(path) == {"width": 64, "height": 48, "format": "PNG"}


def test_exif_camera_and_gps_fields(tmp_path) -> None:
    path = tmp_path / "photo.jpg"
    path.write_bytes(_jpeg_with_exif())

    metadata = read_image_metadata(path)

    assert metadata["format"] == "JPEG"
    assert metadata["cameraMake"] == "Canon"
    assert metadata["cameraModel"] == "EOS R6"
    assert metadata["gps"] == {"latitude": 52.5, "longitude": -13.4}


@pytest.mark.asyncio
async def test_audio_metadata_merges_tags(tmp_path) -> None:
    report = ProbeReport.model_validate(
        {
            "streams": [
                {"index": 0, "codec_type": "audio", "codec_name": "flac", "channels": 2, "sample_rate": "44100",
                 "tags": {"ALBUM": "Stream Album", "TITLE": "ignored"}},
                {"index": 1, "codec_type": "video", "codec_name": "mjpeg", "disposition": {"attached_pic": 1}},
            ],
            "format": {"duration": "245.5", "bit_rate": "900000", "tags": {"TITLE": "Song", "ARTIST": "Band", "DATE": "2001"}},
        }
    )
    service = MetadataService(tools=FakeMediaTools(report))

    metadata = await service.audio_metadata(tmp_path / "song.flac")

    assert metadata == {
        "duration": 245.5,
        "codec": "flac",
        "bitrate": 900000,
        "sampleRate": 44100,
        "channels": 2,
        "hasAlbumArt": True,
        "title": "Song",
        "artist": "Band",
        "album": "Stream Album",
        "year": "2001",
    }
