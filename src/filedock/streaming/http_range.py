"""HTTP ``Range`` header resolution against a known resource size."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..exceptions import AppError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


class RangeNotSatisfiableError(AppError):
    """The requested range lies outside the resource; respond 416."""

    def __init__(self, size: int) -> None:
        super().__init__(f"Range not satisfiable for {size} bytes")
        self.size = size

    @property
    def content_range(self) -> str:
        return f"bytes */{self.size}"


@dataclass(slots=True, frozen=True)
class ByteRange:
    """Inclusive ``[start, end]`` interval of a resource of ``size`` bytes."""

    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range_header(header: str | None, size: int) -> ByteRange | None:
    """Resolve ``bytes=A-B``, ``bytes=A-`` or ``bytes=-N``.

    Returns ``None`` when no usable range was requested (serve the whole
    resource) and raises :class:`RangeNotSatisfiableError` when the range
    cannot be served.
    """
    if not header:
        return None
    match = _RANGE_RE.match(header)
    if match is None:
        return None
    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        return None

    if not raw_start:
        suffix = int(raw_end)
        start = max(size - min(suffix, size), 0)
        end = size - 1
    else:
        start = int(raw_start)
        end = int(raw_end) if raw_end else size - 1

    if start < 0 or end < start or start >= size:
        raise RangeNotSatisfiableError(size)
    return ByteRange(start=start, end=min(end, size - 1), size=size)
