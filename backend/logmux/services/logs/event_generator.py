"""
Event generator turning a raw container log feed into LogEvents.
"""

import json
import re
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Tuple

from logmux.schemas.logs import LogEvent
from .base import Container, StdType

_TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})\s?(.*)$',
    re.DOTALL,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def split_timestamp(line: str) -> Tuple[int, str]:
    """
    Split a Docker timestamp prefix off a log line.

    Returns:
        (nanoseconds since epoch, message); 0 when the line carries no timestamp
    """
    match = _TIMESTAMP_PATTERN.match(line)
    if not match:
        return 0, line

    seconds, fraction, offset, message = match.groups()
    offset = "+00:00" if offset == "Z" else offset
    try:
        moment = datetime.fromisoformat(seconds + offset)
    except ValueError:
        return 0, line

    delta = moment - _EPOCH
    nanos = (delta.days * 86400 + delta.seconds) * 1_000_000_000
    if fraction:
        nanos += int(fraction.ljust(9, "0"))
    return nanos, message


def detect_log_level(message: str) -> Optional[str]:
    """Detect log level from message content."""
    message_lower = message.lower()

    if any(word in message_lower for word in ['critical', 'fatal', 'panic']):
        return "critical"
    elif any(word in message_lower for word in ['error', 'err', 'fail']):
        return "error"
    elif any(word in message_lower for word in ['warn', 'warning']):
        return "warning"
    elif any(word in message_lower for word in ['debug', 'trace']):
        return "debug"
    elif any(word in message_lower for word in ['info', 'notice']):
        return "info"
    return None


def parse_message(message: str):
    """Return the parsed object for JSON object lines, the text otherwise."""
    stripped = message.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return message


def build_event(line: str, container: Container, std_types: StdType) -> LogEvent:
    """Parse a single raw line into a LogEvent."""
    timestamp, message = split_timestamp(line)
    payload = parse_message(message)
    if isinstance(payload, dict):
        level = payload.get("level") if isinstance(payload.get("level"), str) else None
    else:
        level = detect_log_level(message)
    return LogEvent(
        message=payload,
        timestamp=timestamp,
        level=level.lower() if level else None,
        stream=std_types.stream_name,
        container_id=container.id,
        host=container.host,
    )


async def generate_events(
    lines: AsyncIterator[str],
    container: Container,
    std_types: StdType,
) -> AsyncIterator[LogEvent]:
    """
    Decode a raw log feed into LogEvents in source order.

    Chunks may carry several lines or end mid-line; partial lines are held
    until completed or until the feed ends. Normal exhaustion means the
    underlying stream ended cleanly; errors from the feed propagate.
    """
    pending = ""
    async for chunk in lines:
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")
        pending += chunk
        *complete, pending = pending.split("\n")
        for line in complete:
            line = line.rstrip("\r")
            if line:
                yield build_event(line, container, std_types)

    pending = pending.rstrip("\r")
    if pending:
        yield build_event(pending, container, std_types)
