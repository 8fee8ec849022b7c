"""Byte-accurate file responses honouring ``Range`` requests."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path

from fastapi import status
from fastapi.responses import Response, StreamingResponse

from .http_range import RangeNotSatisfiableError, parse_range_header

READ_BLOCK_BYTES = 64 * 1024
EXPOSED_HEADERS = "Accept-Ranges, Content-Range, Content-Length"


def iter_file(path: Path, start: int, length: int, block: int = READ_BLOCK_BYTES) -> Iterator[bytes]:
    """Yield exactly ``length`` bytes of ``path`` starting at ``start``."""
    remaining = length
    with path.open("rb") as handle:
        handle.seek(start)
        while remaining > 0:
            data = handle.read(min(block, remaining))
            if not data:
                break
            remaining -= len(data)
            yield data


def ranged_file_response(
    path: Path,
    *,
    range_header: str | None,
    media_type: str,
    headers: Mapping[str, str] | None = None,
    head_only: bool = False,
) -> Response:
    """200 with the whole file, 206 with the requested slice, or 416."""
    size = path.stat().st_size
    base = {
        "Accept-Ranges": "bytes",
        "Access-Control-Expose-Headers": EXPOSED_HEADERS,
        **(headers or {}),
    }
    try:
        byte_range = parse_range_header(range_header, size)
    except RangeNotSatisfiableError as exc:
        return Response(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            headers={**base, "Content-Range": exc.content_range},
        )

    if byte_range is None:
        start, length, code = 0, size, status.HTTP_200_OK
    else:
        start, length, code = byte_range.start, byte_range.length, status.HTTP_206_PARTIAL_CONTENT
        base["Content-Range"] = byte_range.content_range
    base["Content-Length"] = str(length)

    if head_only:
        return Response(status_code=code, headers=base, media_type=media_type)
    return StreamingResponse(
        iter_file(path, start, length),
        status_code=code,
        headers=base,
        media_type=media_type,
    )
