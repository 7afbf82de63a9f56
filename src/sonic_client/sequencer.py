"""Command Sequencer - one command on the wire at a time.

Ordinary Sonic replies carry no correlation id, so a reply can only be
attributed to a command if that command is the only one waiting for a
terminal reply. The sequencer grants the wire to one caller at a time
and queues everyone else in strict arrival order.

The grant is handed directly from the releasing holder to the oldest
waiter, so a newcomer can never overtake a queued caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class CommandSequencer:
    """FIFO admission control for the single command slot."""

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def locked(self) -> bool:
        """True while some command holds the wire."""
        return self._locked

    @property
    def queued(self) -> int:
        """Number of callers waiting for the wire."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Wait until the caller holds the wire."""
        if not self._locked and not self._waiters:
            self._locked = True
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Wire busy, queued caller (depth={len(self._waiters)})")
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Granted and cancelled in the same tick: pass the grant on
                self.release()
            else:
                self._remove(waiter)
            raise

    def release(self) -> None:
        """Free the wire, granting it to the oldest live waiter if any."""
        if not self._locked:
            raise RuntimeError("release() called while the wire is not held")

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Ownership moves to the waiter; the wire stays locked
                waiter.set_result(None)
                return

        self._locked = False

    @contextlib.asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the wire for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _remove(self, waiter: asyncio.Future[None]) -> None:
        with contextlib.suppress(ValueError):
            self._waiters.remove(waiter)
