"""
Runtime statistics sampling for debug logging.
"""

import asyncio
import logging
import resource
import sys
from typing import Any, Dict


def humanize_bytes(bytes_value: float) -> str:
    """Convert bytes to human-readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_value < 1024.0:
            return f"{bytes_value:.2f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.2f} PB"


class RuntimeStatsSampler:
    """Logs process memory and task counts when a stream finishes, at debug level only."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def sample(self) -> Dict[str, Any]:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is bytes on macOS and kilobytes elsewhere
        max_rss = usage.ru_maxrss if sys.platform == "darwin" else usage.ru_maxrss * 1024
        try:
            tasks = len(asyncio.all_tasks())
        except RuntimeError:
            tasks = 0
        return {
            "max_rss": humanize_bytes(max_rss),
            "tasks": tasks,
        }

    def log(self) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        self.logger.debug("runtime stats %s", self.sample())
