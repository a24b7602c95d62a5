"""Cooperative cancellation for thinking runs.

A ``CancellationToken`` is threaded through every suspension point of a run
(generation calls, search calls, context callbacks). Cancelling the token makes
the awaited operation stop at once and raise ``ThinkingCancelled``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ThinkingCancelled(Exception):
    """Raised at a suspension point once the run's token has been cancelled."""

    def __init__(self, reason: str = "cancelled by caller"):
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """
    Cancellation context for a single ``think`` / ``explore`` invocation.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(orchestrator.think(task, cancellation=token))
        ...
        token.cancel("user pressed Ctrl+C")
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request cancellation. Idempotent; the first reason wins."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.info(f"Cancellation requested: {reason}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ThinkingCancelled(self.reason or "cancelled by caller")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token is cancelled first.

        The operation is cancelled and ``ThinkingCancelled`` raised as soon as
        the token fires, even if the operation itself never yields a result.
        """
        if self._event.is_set():
            # Close coroutines we will never await to avoid "never awaited" warnings
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        operation = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {operation, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            operation.cancel()
            waiter.cancel()
            raise

        if operation in done:
            waiter.cancel()
            return operation.result()

        operation.cancel()
        await asyncio.gather(operation, return_exceptions=True)
        raise ThinkingCancelled(self.reason or "cancelled by caller")
