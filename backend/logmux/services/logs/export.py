"""
Historical log export: JSONL between two dates and gzip downloads.
"""

import logging
import struct
import time
import zlib
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from .base import Container, StdType, parse_docker_time
from .event_generator import generate_events

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

GZIP_COMMENT = "Logs generated by logmux"

_GZIP_MAGIC = b"\x1f\x8b"
_DEFLATE = 8
_FNAME = 0x08
_FCOMMENT = 0x10
_OS_UNKNOWN = 255


def parse_query_time(value: Optional[str], default: datetime = EPOCH) -> datetime:
    """Parse an RFC3339 query value; anything unparsable silently becomes ``default``."""
    return parse_docker_time(value) or default


def export_filename(container: Container, now: datetime) -> str:
    return f"{container.name}-{now.strftime('%Y-%m-%dT%H-%M-%S')}.log"


class GzipStreamWriter:
    """
    Incremental gzip (RFC 1952) encoder.

    Unlike ``gzip.GzipFile`` the header can carry a comment, and output is
    produced chunk by chunk so a download never has to be buffered whole.
    """

    def __init__(self, filename: str, mtime: Optional[float] = None, comment: Optional[str] = None):
        self.filename = filename
        self.mtime = int(time.time() if mtime is None else mtime)
        self.comment = comment
        self._compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -zlib.MAX_WBITS)
        self._crc = 0
        self._size = 0

    def header(self) -> bytes:
        flags = _FNAME | (_FCOMMENT if self.comment else 0)
        header = _GZIP_MAGIC + struct.pack("<BBIBB", _DEFLATE, flags, self.mtime & 0xFFFFFFFF, 0, _OS_UNKNOWN)
        header += self.filename.encode("latin-1", errors="replace") + b"\x00"
        if self.comment:
            header += self.comment.encode("latin-1", errors="replace") + b"\x00"
        return header

    def compress(self, data: bytes) -> bytes:
        self._crc = zlib.crc32(data, self._crc)
        self._size += len(data)
        return self._compressor.compress(data)

    def finish(self) -> bytes:
        return self._compressor.flush() + struct.pack("<II", self._crc & 0xFFFFFFFF, self._size & 0xFFFFFFFF)


async def jsonl_events(
    lines: AsyncIterator[str],
    container: Container,
    std_types: StdType,
    logger: logging.Logger,
) -> AsyncIterator[bytes]:
    """Historical logs as JSON lines, one LogEvent per line."""
    async for event in generate_events(lines, container, std_types):
        try:
            payload = event.model_dump_json(by_alias=True)
        except ValueError as e:
            logger.error(f"json encoding error while streaming {e}")
            continue
        yield payload.encode("utf-8") + b"\n"


async def gzip_lines(
    lines: AsyncIterator[str],
    filename: str,
    now: datetime,
) -> AsyncIterator[bytes]:
    """Raw timestamped lines as a gzip stream."""
    writer = GzipStreamWriter(filename, mtime=now.timestamp(), comment=GZIP_COMMENT)

    yield writer.header()
    async for line in lines:
        if isinstance(line, str):
            line = line.encode("utf-8")
        if not line.endswith(b"\n"):
            line += b"\n"
        chunk = writer.compress(line)
        if chunk:
            yield chunk
    yield writer.finish()
