"""Cancellable one-shot deadline used by live sessions."""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class SessionTimer:
    """One-shot timer whose ``start()`` resolves when the delay elapses.

    A ``None`` timeout never fires, so ``start()`` only returns through
    cancellation.
    """

    def __init__(self, timeout_ms: Optional[float]):
        self.timeout_ms = timeout_ms
        self._handle: Optional[asyncio.TimerHandle] = None
        self._future: Optional[asyncio.Future] = None
        self._expired = False

    async def start(self) -> None:
        """Wait for the deadline.

        Starting again cancels the previously pending delay.

        Raises:
            asyncio.CancelledError: If the timer is cancelled while waiting
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._future = future
        self._expired = False

        if self.timeout_ms is not None:
            delay = max(0.0, self.timeout_ms / 1000)
            self._handle = loop.call_later(delay, self._fire, future)
            logger.debug(f"Session timer armed for {self.timeout_ms} ms")

        await future

    def cancel(self) -> None:
        """Cancel the pending delay; no-op when idle."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._future = None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def is_running(self) -> bool:
        return self._future is not None and not self._future.done()

    def _fire(self, future: asyncio.Future) -> None:
        self._handle = None
        if future.done():
            return
        self._expired = True
        future.set_result(None)
        logger.debug(f"Session timer expired after {self.timeout_ms} ms")
