"""
Request-scoped cancellation shared by every task of one streaming request.
"""

import asyncio
from typing import Any


class StreamLifetime:
    """
    Broadcast cancellation signal.

    The coordinator, each tailer and the discovery task all observe the same
    lifetime; cancelling it is how a client disconnect reaches every one of
    them.
    """

    def __init__(self):
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self) -> None:
        """Suspend until the lifetime is cancelled."""
        await self._cancelled.wait()

    async def put(self, queue: asyncio.Queue, item: Any) -> bool:
        """
        Hand ``item`` to ``queue``, giving up if the lifetime ends first.

        A full queue suspends the caller, which is what carries backpressure
        from the wire back to the producers.

        Returns:
            True if the item was delivered
        """
        if self.cancelled:
            return False
        if not queue.full():
            queue.put_nowait(item)
            return True

        put = asyncio.ensure_future(queue.put(item))
        cancelled = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({put, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not put.done():
                put.cancel()
        return put.done() and not put.cancelled()
