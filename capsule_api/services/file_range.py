"""HTTP Range support for serving stored uploads."""

import re
from dataclasses import dataclass
from pathlib import Path

_RANGE = re.compile(r"^bytes=(\d+)-(\d*)$")

CACHE_CONTROL = "public, max-age=3600"


@dataclass(frozen=True, slots=True)
class ByteRange:
    start: int
    end: int
    total_size: int

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1


def parse_range_header(range_header: str, file_size: int, max_chunk_size: int) -> ByteRange | None:
    """Parse ``bytes=start-end``, capping the range at ``max_chunk_size`` bytes.

    Returns None for malformed or unsatisfiable ranges.
    """
    match = _RANGE.match(range_header.strip())
    if not match:
        return None

    start = int(match.group(1))
    if start >= file_size:
        return None

    end = int(match.group(2)) if match.group(2) else file_size - 1
    end = min(end, start + max_chunk_size - 1, file_size - 1)
    if end < start:
        return None

    return ByteRange(start=start, end=end, total_size=file_size)


def initial_range(file_size: int, max_chunk_size: int) -> ByteRange | None:
    """First chunk to send when no ``Range`` was asked for.

    None when the whole file fits in one chunk and can be sent as a plain 200.
    """
    if file_size <= max_chunk_size:
        return None
    return ByteRange(start=0, end=max_chunk_size - 1, total_size=file_size)


def build_range_headers(byte_range: ByteRange, mimetype: str) -> dict[str, str]:
    return {
        "Content-Range": f"bytes {byte_range.start}-{byte_range.end}/{byte_range.total_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(byte_range.content_length),
        "Content-Type": mimetype,
        "Cache-Control": CACHE_CONTROL,
    }


def build_full_file_headers(file_size: int, mimetype: str) -> dict[str, str]:
    return {
        "Accept-Ranges": "bytes",
        "Content-Length": str(file_size),
        "Content-Type": mimetype,
        "Cache-Control": CACHE_CONTROL,
    }


def read_range(path: Path, byte_range: ByteRange | None) -> bytes:
    """Read the whole file, or only ``byte_range`` of it."""
    with open(path, "rb") as handle:
        if byte_range is None:
            return handle.read()
        handle.seek(byte_range.start)
        return handle.read(byte_range.content_length)
