"""Adapter around the ffprobe and ffmpeg executables.

Every external process invocation in filedock goes through
:class:`FFmpegTools`. Callers receive typed results (:class:`ProbeReport`,
:class:`EncodeProgress` events) and never parse tool output themselves.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from ..transcode.transcode_models import QualityProfile
from .media_errors import EncoderFailed, MediaToolError, ProbeFailed
from .media_models import EncodeProgress
from .probe import ProbeReport

logger = logging.getLogger(__name__)

DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
OUT_TIME_RE = re.compile(r"^out_time_us=(\d+)")

STDERR_TAIL_LINES = 20
WAVEFORM_COLOR = "#a668fc"


def parse_duration_line(line: str) -> float | None:
    """Seconds from an ffmpeg ``Duration: HH:MM:SS.ss`` banner line."""
    match = DURATION_RE.search(line)
    if match is None:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_out_time_line(line: str) -> float | None:
    """Seconds from a ``-progress`` ``out_time_us=`` line."""
    match = OUT_TIME_RE.match(line.strip())
    if match is None:
        return None
    return int(match.group(1)) / 1_000_000


def progress_percent(out_time: float, duration: float | None) -> int | None:
    if not duration or duration <= 0:
        return None
    return max(0, min(100, round(out_time / duration * 100)))


class MediaTools(Protocol):
    """Operations the rest of filedock needs from the media toolchain."""

    async def probe(self, source: Path) -> ProbeReport: ...

    async def extract_frame(
        self,
        source: Path,
        output: Path,
        *,
        timestamp: float,
        width: int | None = None,
        height: int | None = None,
    ) -> None: ...

    async def render_sprite_sheet(
        self,
        source: Path,
        output: Path,
        *,
        interval: float,
        columns: int,
        rows: int,
        thumb_width: int,
        thumb_height: int,
    ) -> None: ...

    async def extract_subtitle(self, source: Path, stream_index: int, output: Path) -> None: ...

    def transcode_to_hls(
        self, source: Path, output_dir: Path, profile: QualityProfile
    ) -> AsyncIterator[EncodeProgress]: ...

    async def transmux_to_hls(self, source: Path, output_dir: Path, *, copy_audio: bool) -> Path: ...

    async def transcode_audio_to_opus(self, source: Path, output: Path, *, bitrate_kbps: int) -> None: ...

    async def extract_pcm_samples(self, source: Path, *, sample_rate: int) -> bytes: ...

    async def render_waveform_image(
        self, source: Path, output: Path, *, width: int, height: int
    ) -> None: ...


def _tail(raw: bytes | str, lines: int = STDERR_TAIL_LINES) -> str:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    return "\n".join(text.strip().splitlines()[-lines:])


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


@dataclass(slots=True)
class _EncodeState:
    duration: float | None = None
    stderr: deque[str] = field(default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES))


@dataclass(slots=True)
class FFmpegTools:
    """Run ffprobe/ffmpeg as asyncio subprocesses."""

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    log: logging.Logger = field(default_factory=lambda: logger)

    async def _spawn(
        self, args: Sequence[str], error_cls: type[MediaToolError]
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise error_cls(f"{args[0]} executable not found") from exc

    async def _run(self, args: Sequence[str], error_cls: type[MediaToolError]) -> bytes:
        self.log.debug("media.tool.run", extra={"args": list(args)})
        process = await self._spawn(args, error_cls)
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            _kill(process)
            await process.wait()
            raise
        if process.returncode != 0:
            raise error_cls(f"{args[0]} exited with code {process.returncode}", stderr=_tail(stderr))
        return stdout

    async def _ffmpeg(self, *args: str) -> bytes:
        return await self._run([self.ffmpeg_binary, "-hide_banner", "-nostdin", *args], EncoderFailed)

    async def probe(self, source: Path) -> ProbeReport:
        stdout = await self._run(
            [
                self.ffprobe_binary,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                str(source),
            ],
            ProbeFailed,
        )
        try:
            return ProbeReport.model_validate_json(stdout or b"{}")
        except ValidationError as exc:
            raise ProbeFailed("ffprobe returned an unreadable report", stderr=str(exc)) from exc

    async def extract_frame(
        self,
        source: Path,
        output: Path,
        *,
        timestamp: float,
        width: int | None = None,
        height: int | None = None,
    ) -> None:
        args = ["-ss", f"{max(0.0, timestamp):.3f}", "-i", str(source), "-vframes", "1", "-y"]
        if width and height:
            args += ["-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease"]
        output.parent.mkdir(parents=True, exist_ok=True)
        await self._ffmpeg(*args, str(output))

    async def render_sprite_sheet(
        self,
        source: Path,
        output: Path,
        *,
        interval: float,
        columns: int,
        rows: int,
        thumb_width: int,
        thumb_height: int,
    ) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        await self._ffmpeg(
            "-i",
            str(source),
            "-vf",
            f"fps=1/{interval:.6f},scale={thumb_width}:{thumb_height},tile={columns}x{rows}",
            "-frames:v",
            "1",
            "-y",
            str(output),
        )

    async def extract_subtitle(self, source: Path, stream_index: int, output: Path) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        await self._ffmpeg(
            "-i", str(source), "-map", f"0:{stream_index}", "-c:s", "webvtt", "-y", str(output)
        )

    async def transcode_to_hls(
        self, source: Path, output_dir: Path, profile: QualityProfile
    ) -> AsyncIterator[EncodeProgress]:
        """Encode ``source`` into ``<quality>.m3u8`` + segments, yielding progress.

        Closing the iterator early (or cancelling the consumer) kills the
        encoder process.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        name = profile.name
        bufsize = _double_bitrate(profile.video_bitrate)
        args = [
            self.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-nostats",
            "-i",
            str(source),
            "-vf",
            (
                f"scale={profile.width}:{profile.height}:force_original_aspect_ratio=decrease,"
                f"pad={profile.width}:{profile.height}:(ow-iw)/2:(oh-ih)/2"
            ),
            "-c:v",
            "libx264",
            "-preset",
            "fast",
            "-b:v",
            profile.video_bitrate,
            "-maxrate",
            profile.video_bitrate,
            "-bufsize",
            bufsize,
            "-c:a",
            "aac",
            "-b:a",
            profile.audio_bitrate,
            "-ar",
            "48000",
            "-hls_time",
            str(profile.segment_seconds),
            "-hls_list_size",
            "0",
            "-hls_segment_filename",
            str(output_dir / f"{name}_%03d.ts"),
            "-progress",
            "pipe:1",
            "-f",
            "hls",
            "-y",
            str(output_dir / f"{name}.m3u8"),
        ]
        self.log.info("media.encode.start", extra={"source": str(source), "quality": name})
        process = await self._spawn(args, EncoderFailed)
        state = _EncodeState()
        stderr_task = asyncio.create_task(_collect_stderr(process, state))
        try:
            assert process.stdout is not None
            last_percent = -1
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                out_time = parse_out_time_line(line.decode("utf-8", errors="replace"))
                if out_time is None:
                    continue
                percent = progress_percent(out_time, state.duration)
                if percent is None or percent == last_percent:
                    continue
                last_percent = percent
                yield EncodeProgress(percent=percent, out_time_seconds=out_time, duration_seconds=state.duration)
            await stderr_task
            returncode = await process.wait()
            if returncode != 0:
                raise EncoderFailed(
                    f"ffmpeg exited with code {returncode}", stderr="\n".join(state.stderr)
                )
        finally:
            if process.returncode is None:
                self.log.warning("media.encode.killed", extra={"source": str(source), "quality": name})
                _kill(process)
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

    async def transmux_to_hls(self, source: Path, output_dir: Path, *, copy_audio: bool) -> Path:
        """Repackage into HLS with a stream-copied video track; returns the playlist path."""
        output_dir.mkdir(parents=True, exist_ok=True)
        playlist = output_dir / "master.m3u8"
        audio = ["-c:a", "copy"] if copy_audio else ["-c:a", "aac", "-b:a", "128k"]
        await self._ffmpeg(
            "-i",
            str(source),
            "-c:v",
            "copy",
            *audio,
            "-hls_time",
            "6",
            "-hls_list_size",
            "0",
            "-hls_segment_filename",
            str(output_dir / "segment_%03d.ts"),
            "-f",
            "hls",
            "-y",
            str(playlist),
        )
        return playlist

    async def transcode_audio_to_opus(self, source: Path, output: Path, *, bitrate_kbps: int) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        await self._ffmpeg(
            "-i",
            str(source),
            "-vn",
            "-c:a",
            "libopus",
            "-b:a",
            f"{bitrate_kbps}k",
            "-vbr",
            "on",
            "-compression_level",
            "10",
            "-map_metadata",
            "0",
            "-f",
            "opus",
            "-y",
            str(output),
        )

    async def extract_pcm_samples(self, source: Path, *, sample_rate: int = 8000) -> bytes:
        """Mono signed 16-bit little-endian PCM at ``sample_rate``."""
        return await self._ffmpeg(
            "-i",
            str(source),
            "-vn",
            "-ac",
            "1",
            "-filter:a",
            f"aresample={sample_rate}",
            "-f",
            "s16le",
            "-acodec",
            "pcm_s16le",
            "-",
        )

    async def render_waveform_image(
        self, source: Path, output: Path, *, width: int, height: int
    ) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        await self._ffmpeg(
            "-i",
            str(source),
            "-filter_complex",
            f"aformat=channel_layouts=mono,showwavespic=s={width}x{height}:colors={WAVEFORM_COLOR}",
            "-frames:v",
            "1",
            "-y",
            str(output),
        )


async def _collect_stderr(process: asyncio.subprocess.Process, state: _EncodeState) -> None:
    assert process.stderr is not None
    while True:
        line = await process.stderr.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace").rstrip()
        if state.duration is None:
            state.duration = parse_duration_line(text)
        state.stderr.append(text)


def _double_bitrate(bitrate: str) -> str:
    match = re.fullmatch(r"(\d+(?:\.\d+)?)([kKmM]?)", bitrate)
    if match is None:
        return bitrate
    value, unit = match.groups()
    doubled = float(value) * 2
    text = f"{doubled:g}"
    return f"{text}{unit}"
