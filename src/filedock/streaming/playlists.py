"""HLS playlist generation and URL rewriting."""

from __future__ import annotations

import re
from urllib.parse import quote

from ..transcode.transcode_models import QUALITY_PROFILES

MASTER_PLAYLIST = "master.m3u8"
PROCESSING_PLAYLIST = "processing.m3u8"
PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPE = "video/MP2T"

PROCESSING_PLACEHOLDER = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=1\n/processing.m3u8"
PREPARING_PLACEHOLDER = "#EXTM3U\n# Stream is being prepared, please wait..."
NOT_READY_PLACEHOLDER = "#EXTM3U\n# Stream not ready, transcode in progress"

_FALLBACK_BANDWIDTH = 5_000_000
_FALLBACK_RESOLUTION = "1920x1080"
_M3U8_REF = re.compile(r"\.m3u8")


def stream_url(file_id: str, name: str) -> str:
    return f"/api/stream/{file_id}/{name}"


def token_query(token: str | None) -> str:
    return f"?token={quote(token, safe='')}" if token else ""


def bandwidth_for(quality: str) -> int:
    profile = QUALITY_PROFILES.get(quality)
    return profile.bandwidth if profile else _FALLBACK_BANDWIDTH


def resolution_for(quality: str) -> str:
    profile = QUALITY_PROFILES.get(quality)
    return profile.resolution if profile else _FALLBACK_RESOLUTION


def sort_qualities(names: list[str]) -> list[str]:
    """Known profiles first, highest bandwidth first; unknown names after, alphabetically."""
    return sorted(names, key=lambda name: (name not in QUALITY_PROFILES, -bandwidth_for(name), name))


def build_master_playlist(file_id: str, qualities: list[str]) -> str:
    lines = ["#EXTM3U"]
    for quality in qualities:
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth_for(quality)},RESOLUTION={resolution_for(quality)}"
        )
        lines.append(stream_url(file_id, f"{quality}.m3u8"))
    return "\n".join(lines)


def append_token(content: str, token: str | None) -> str:
    """Append ``?token=`` to every ``.m3u8`` reference."""
    query = token_query(token)
    if not query:
        return content
    return _M3U8_REF.sub(f".m3u8{query}", content)


def rewrite_media_playlist(content: str, file_id: str, token: str | None) -> str:
    """Point segment entries at the segment endpoint, carrying the token."""
    query = token_query(token)
    lines = []
    for line in content.splitlines():
        entry = line.strip()
        if entry and not entry.startswith("#") and entry.endswith(".ts"):
            name = entry.rsplit("/", 1)[-1]
            lines.append(f"{stream_url(file_id, name)}{query}")
        else:
            lines.append(line)
    return "\n".join(lines) + ("\n" if content.endswith("\n") else "")


def first_segment(content: str) -> str | None:
    for line in content.splitlines():
        entry = line.strip()
        if entry and not entry.startswith("#") and entry.endswith(".ts"):
            return entry.rsplit("/", 1)[-1]
    return None
