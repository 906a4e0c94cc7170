"""Correlation registry for asynchronous request/response pairs.

Maps a correlation id to a single-resolution future. The suspended call
holds the awaiting side; whoever observes the matching response holds the
resolving side.
"""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import uuid4

import structlog

from replan_agent.events.bus import EventBus, Subscription
from replan_agent.events.types import Event, EventType, InterventionResponse

logger = structlog.get_logger()


def new_correlation_id() -> str:
    """Generate a fresh correlation id."""
    return uuid4().hex


class CorrelationRegistry:
    """Registry of outstanding requests keyed by correlation id.

    Only ids with an unsettled future are kept. Registering an id that is
    still pending is a programming error.
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._subscription: Subscription | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    def register(self, correlation_id: str) -> asyncio.Future[Any]:
        """Register a request and get the future awaiting its response.

        Args:
            correlation_id: Id of the outgoing request

        Returns:
            Future resolved exactly once with the response

        Raises:
            ValueError: If the id is still pending
        """
        if correlation_id in self._pending:
            raise ValueError(f"Correlation id already pending: {correlation_id}")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = future
        logger.debug("correlation_registered", correlation_id=correlation_id)
        return future

    def resolve(self, correlation_id: str, value: Any) -> bool:
        """Resolve the pending future for an id.

        Returns:
            True if a pending future was resolved
        """
        future = self._pending.pop(correlation_id, None)
        if future is None or future.done():
            logger.warning("correlation_unmatched", correlation_id=correlation_id)
            return False
        future.set_result(value)
        logger.debug("correlation_resolved", correlation_id=correlation_id)
        return True

    def reject(self, correlation_id: str, error: BaseException) -> bool:
        """Fail the pending future for an id.

        Returns:
            True if a pending future was rejected
        """
        future = self._pending.pop(correlation_id, None)
        if future is None or future.done():
            return False
        future.set_exception(error)
        logger.debug(
            "correlation_rejected",
            correlation_id=correlation_id,
            error_type=type(error).__name__,
        )
        return True

    def discard(self, correlation_id: str) -> bool:
        """Forget a request without resolving it.

        Returns:
            True if the id was pending
        """
        future = self._pending.pop(correlation_id, None)
        if future is None:
            return False
        future.cancel()
        logger.debug("correlation_discarded", correlation_id=correlation_id)
        return True

    def attach(self, bus: EventBus) -> Subscription:
        """Resolve futures from ``intervention_completed`` events.

        Subscribes at the bus root so completions from any namespace reach
        the call that is waiting for them.
        """
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = bus.root().subscribe(
            EventType.INTERVENTION_COMPLETED, self._on_completed
        )
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _on_completed(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, InterventionResponse):
            payload = InterventionResponse.model_validate(payload)
        self.resolve(payload.correlation_id, payload)
