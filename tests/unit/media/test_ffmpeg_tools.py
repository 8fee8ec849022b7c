import asyncio
import contextlib
import os
import sys
from pathlib import Path

import pytest

from src.filedock.media.ffmpeg import FFmpegTools
from src.filedock.media.media_errors import EncoderFailed, ProbeFailed
from src.filedock.transcode.transcode_models import get_quality_profile

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires /bin/sh")

PROBE_JSON = (
    '{"streams": [{"index": 0, "codec_type": "video", "codec_name": "h264", '
    '"width": 640, "height": 360, "avg_frame_rate": "30000/1001"}], '
    '"format": {"format_name": "mov,mp4", "duration": "12.5"}}'
)


def _script(tmp_path: Path, name: str, body: str) -> str:
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return str(path)


def _is_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.mark.asyncio
async def test_probe_parses_report(tmp_path) -> None:
    ffprobe = _script(tmp_path, "ffprobe", f"cat <<'EOF'\n{PROBE_JSON}\nEOF\n")
    tools = FFmpegTools(ffprobe_binary=ffprobe)

    report = await tools.probe(tmp_path / "clip.mp4")

    assert report.video_stream is not None
    assert report.video_stream.codec_name == "h264"
    assert report.format.duration == "12.5"


@pytest.mark.asyncio
async def test_probe_non_zero_exit_carries_stderr(tmp_path) -> None:
    ffprobe = _script(tmp_path, "ffprobe", "echo 'bad file' >&2\nexit 1\n")
    tools = FFmpegTools(ffprobe_binary=ffprobe)

    with pytest.raises(ProbeFailed) as excinfo:
        await tools.probe(tmp_path / "clip.mp4")

    assert "exited with code 1" in str(excinfo.value)
    assert excinfo.value.stderr == "bad file"


@pytest.mark.asyncio
async def test_probe_unreadable_report(tmp_path) -> None:
    ffprobe = _script(tmp_path, "ffprobe", "echo 'not json'\n")
    tools = FFmpegTools(ffprobe_binary=ffprobe)

    with pytest.raises(ProbeFailed, match="unreadable report"):
        await tools.probe(tmp_path / "clip.mp4")


@pytest.mark.asyncio
async def test_missing_executable(tmp_path) -> None:
    tools = FFmpegTools(ffprobe_binary=str(tmp_path / "absent"))

    with pytest.raises(ProbeFailed, match="executable not found"):
        await tools.probe(tmp_path / "clip.mp4")


@pytest.mark.asyncio
async def test_ffmpeg_stdout_and_failure(tmp_path) -> None:
    ok = FFmpegTools(ffmpeg_binary=_script(tmp_path, "ffmpeg-ok", "printf 'abcd'\n"))
    broken = FFmpegTools(
        ffmpeg_binary=_script(tmp_path, "ffmpeg-broken", "echo 'Invalid data' >&2\nexit 1\n")
    )

    assert await ok.extract_pcm_samples(tmp_path / "song.mp3", sample_rate=8000) == b"abcd"
    with pytest.raises(EncoderFailed) as excinfo:
        await broken.extract_pcm_samples(tmp_path / "song.mp3", sample_rate=8000)
    assert excinfo.value.stderr == "Invalid data"


@pytest.mark.asyncio
async def test_encode_progress_from_duration_and_out_time(tmp_path) -> None:
    ffmpeg = _script(
        tmp_path,
        "ffmpeg",
        "echo '  Duration: 00:00:10.00, start: 0.000000, bitrate: 900 kb/s' >&2\n"
        "sleep 0.3\n"
        "echo 'out_time_us=2500000'\n"
        "echo 'progress=continue'\n"
        "echo 'out_time_us=5000000'\n"
        "echo 'out_time_us=5000000'\n"
        "echo 'out_time_us=10000000'\n"
        "echo 'progress=end'\n",
    )
    tools = FFmpegTools(ffmpeg_binary=ffmpeg)

    events = [
        event
        async for event in tools.transcode_to_hls(
            tmp_path / "clip.mkv", tmp_path / "hls", get_quality_profile("480p")
        )
    ]

    assert [event.percent for event in events] == [25, 50, 100]
    assert events[0].duration_seconds == 10.0
    assert events[1].out_time_seconds == 5.0


@pytest.mark.asyncio
async def test_encode_non_zero_exit_after_progress(tmp_path) -> None:
    ffmpeg = _script(
        tmp_path,
        "ffmpeg",
        "echo '  Duration: 00:00:08.00, start: 0.000000' >&2\n"
        "sleep 0.3\n"
        "echo 'out_time_us=2000000'\n"
        "echo 'out_time_us=4000000'\n"
        "echo 'Conversion failed!' >&2\n"
        "exit 3\n",
    )
    tools = FFmpegTools(ffmpeg_binary=ffmpeg)
    seen: list[int] = []

    with pytest.raises(EncoderFailed) as excinfo:
        async for event in tools.transcode_to_hls(
            tmp_path / "clip.mkv", tmp_path / "hls", get_quality_profile("480p")
        ):
            seen.append(event.percent)

    assert seen == [25, 50]
    assert "exited with code 3" in str(excinfo.value)
    assert "Conversion failed!" in excinfo.value.stderr


@pytest.mark.asyncio
async def test_encoder_killed_on_timeout(tmp_path) -> None:
    pid_file = tmp_path / "ffmpeg.pid"
    ffmpeg = _script(tmp_path, "ffmpeg", f"echo $$ > '{pid_file}'\nexec sleep 30\n")
    tools = FFmpegTools(ffmpeg_binary=ffmpeg)
    events = tools.transcode_to_hls(tmp_path / "clip.mkv", tmp_path / "hls", get_quality_profile("480p"))

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.5):
            async with contextlib.aclosing(events) as stream:
                async for _ in stream:
                    pass

    assert not _is_running(int(pid_file.read_text()))


@pytest.mark.asyncio
async def test_encoder_killed_when_consumer_stops_early(tmp_path) -> None:
    pid_file = tmp_path / "ffmpeg.pid"
    ffmpeg = _script(
        tmp_path,
        "ffmpeg",
        f"echo $$ > '{pid_file}'\n"
        "echo '  Duration: 00:00:10.00, start: 0.000000' >&2\n"
        "sleep 0.3\n"
        "echo 'out_time_us=1000000'\n"
        "exec sleep 30\n",
    )
    tools = FFmpegTools(ffmpeg_binary=ffmpeg)

    async with contextlib.aclosing(
        tools.transcode_to_hls(tmp_path / "clip.mkv", tmp_path / "hls", get_quality_profile("480p"))
    ) as stream:
        async for event in stream:
            assert event.percent == 10
            break

    assert not _is_running(int(pid_file.read_text()))
