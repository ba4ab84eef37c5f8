"""
Cooperative cancellation primitives for a generation session.

A ``CancellationToken`` is created per pipeline session and handed to
every suspension point (backoff delays, pacing delays, the pause gate
and the in-flight provider call). Firing it wakes all of them at once;
nothing polls a shared flag.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from lingoloop.common.error_handling import GenerationCancelledError
from lingoloop.common.logger import app_logger

logger = app_logger.getChild("cancellation")

T = TypeVar("T")

STOP_REASON = "stopped by user"


class CancellationToken:
    """One-shot cancellation signal shared by a session."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = STOP_REASON) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.info(f"Cancellation requested: {reason}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelledError(self.reason or STOP_REASON)

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless the token fires first.

        Raises:
            GenerationCancelledError: if cancelled before or during the sleep
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` and abort it if the token fires meanwhile.

        The wrapped task is cancelled, so an in-flight HTTP request is torn
        down rather than left to finish in the background.
        """
        task = asyncio.ensure_future(awaitable)
        if self._event.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            self.raise_if_cancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise GenerationCancelledError(self.reason or STOP_REASON)


class PauseGate:
    """
    Resumable gate in front of the next unit of work.

    Closing the gate never interrupts work that already passed it.
    """

    def __init__(self):
        self._open = asyncio.Event()
        self._open.set()

    @property
    def is_open(self) -> bool:
        return self._open.is_set()

    def close(self) -> None:
        self._open.clear()

    def open(self) -> None:
        self._open.set()

    async def wait(self, token: Optional[CancellationToken] = None) -> None:
        """Block until the gate is open, or raise if ``token`` fires first."""
        if self._open.is_set():
            if token is not None:
                token.raise_if_cancelled()
            return
        if token is None:
            await self._open.wait()
            return
        await token.run(self._open.wait())
