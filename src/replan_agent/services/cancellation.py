"""Run-scoped cancellation tokens.

A token is triggered once. Suspension points await through ``guard`` so a
triggered token (or a per-call timeout) aborts the awaited work instead of
leaving it hanging.
"""

from __future__ import annotations

import asyncio
import inspect
import weakref
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from replan_agent.exceptions import CancellationError

logger = structlog.get_logger()

T = TypeVar("T")


async def _cancel_and_wait(task: asyncio.Future[T]) -> None:
    """Cancel a task and wait until its cleanup has run."""
    if task.done():
        if not task.cancelled():
            task.exception()
        return
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled():
        # Mark any late exception as retrieved
        task.exception()


class CancellationToken:
    """Cooperative cancellation signal.

    Child tokens are cancelled together with their parent; cancelling a
    child never affects the parent. This scopes timeouts to a single call
    while run cancellation reaches every call of the run.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        """Initialize token.

        Args:
            parent: Optional parent token whose cancellation propagates here
        """
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: weakref.WeakSet[CancellationToken] = weakref.WeakSet()
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason or "Parent cancelled")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def child(self) -> CancellationToken:
        """Create a token scoped to a single call."""
        return CancellationToken(self)

    def cancel(self, reason: str = "Cancelled") -> bool:
        """Trigger the token.

        Args:
            reason: Human-readable cancellation reason

        Returns:
            True if this call triggered the token, False if already triggered
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        for child in list(self._children):
            child.cancel(reason)
        logger.debug("cancellation_triggered", reason=reason)
        return True

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if the token was triggered."""
        if self.cancelled:
            raise CancellationError(self._reason or "Cancelled")

    async def wait(self) -> None:
        """Block until the token is triggered."""
        await self._event.wait()

    async def guard(
        self,
        awaitable: Awaitable[T],
        *,
        timeout: float | None = None,
        timeout_error: Exception | None = None,
    ) -> T:
        """Await work that must stay cancellable.

        The work runs as its own task. If the token fires first the task is
        cancelled and awaited so its cleanup runs, then CancellationError is
        raised. A timeout cancels the task the same way and raises
        ``timeout_error`` without triggering the token.

        Args:
            awaitable: Work to await
            timeout: Optional limit in seconds for this call only
            timeout_error: Exception raised on timeout (default TimeoutError)

        Returns:
            The result of the awaitable

        Raises:
            CancellationError: If the token was triggered
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await _cancel_and_wait(task)
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        await _cancel_and_wait(task)
        if self.cancelled:
            raise CancellationError(self._reason or "Cancelled")
        raise timeout_error or TimeoutError(f"Operation timed out after {timeout}s")
