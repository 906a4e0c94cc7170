"""Intervention coordinator.

Bridges ``intervention_requested`` events to the human input gateway and
emits the matching ``intervention_completed`` event, one-to-one by
correlation id. Requests are served strictly one at a time in arrival
order.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from types import TracebackType

import structlog

from replan_agent.events.bus import EventBus, Subscription
from replan_agent.events.types import (
    Event,
    EventType,
    InterventionCancelled,
    InterventionRequest,
    InterventionResponse,
    InterventionType,
    RunCancelledPayload,
)
from replan_agent.exceptions import CancellationError, InterventionError

from .correlation import CorrelationRegistry
from .gateway import HumanInputGateway

logger = structlog.get_logger()


def normalize_response(kind: InterventionType, answer: str) -> str | dict[str, str]:
    """Apply per-type normalisation to a raw human answer.

    Answers are trimmed. Validation answers are returned as plain text for
    the caller to interpret; corrections and clarifications are keyed by
    their type.
    """
    answer = answer.strip()
    if kind is InterventionType.VALIDATION:
        return answer
    return {kind.value: answer}


@dataclass
class PendingIntervention:
    """A request waiting for (or holding) the human channel."""

    request: InterventionRequest
    namespace: tuple[str, ...]

    @property
    def correlation_id(self) -> str:
        return self.request.correlation_id

    def within(self, prefix: tuple[str, ...]) -> bool:
        return self.namespace[: len(prefix)] == prefix


class InterventionCoordinator:
    """Sole driver of the human input gateway.

    Subscribes at the bus root so it sees requests from every tool in every
    run. Mutual exclusion on the gateway comes from the internal FIFO and
    its single worker task; callers never lock anything.

    Usage:
        async with InterventionCoordinator(bus, gateway, registry):
            await agent.run("Plan a weekend in Prague")
    """

    def __init__(
        self,
        bus: EventBus,
        gateway: HumanInputGateway,
        registry: CorrelationRegistry | None = None,
    ) -> None:
        """Initialize coordinator.

        Args:
            bus: Event bus (any view; the root is used)
            gateway: Human input channel
            registry: Optional registry used to fail waiting calls when the
                gateway itself fails
        """
        self._bus = bus.root()
        self._gateway = gateway
        self._registry = registry
        self._queue: deque[PendingIntervention] = deque()
        self._active: set[str] = set()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task[None] | None = None
        self._current: PendingIntervention | None = None
        self._current_prompt: asyncio.Task[str] | None = None
        self._subscriptions: list[Subscription] = []

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def queued(self) -> list[str]:
        """Correlation ids waiting for the gateway, in serving order."""
        return [pending.correlation_id for pending in self._queue]

    @property
    def current(self) -> str | None:
        """Correlation id currently holding the gateway."""
        return self._current.correlation_id if self._current else None

    def start(self) -> None:
        """Subscribe to intervention traffic and start the worker."""
        if self.is_running:
            return
        self._subscriptions = [
            self._bus.subscribe(EventType.INTERVENTION_REQUESTED, self._on_requested),
            self._bus.subscribe(EventType.INTERVENTION_CANCELLED, self._on_cancelled),
            self._bus.subscribe(EventType.RUN_CANCELLED, self._on_run_cancelled),
        ]
        self._worker = asyncio.create_task(self._run_worker(), name="intervention-coordinator")
        logger.info("intervention_coordinator_started")

    async def stop(self) -> None:
        """Unsubscribe, drop queued requests and stop the worker.

        Calls still waiting on a dropped request fail with CancellationError
        when a registry is set.
        """
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        stranded = self.queued
        if self._current is not None:
            stranded.insert(0, self._current.correlation_id)
        self._queue.clear()
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.wait({self._worker})
            self._worker = None
        self._active.clear()
        if self._registry is not None:
            for correlation_id in stranded:
                self._registry.reject(
                    correlation_id, CancellationError("Intervention coordinator stopped")
                )
        logger.info("intervention_coordinator_stopped", dropped=len(stranded))

    async def __aenter__(self) -> InterventionCoordinator:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def discard(self, correlation_id: str, reason: str = "discarded") -> bool:
        """Drop a queued or in-flight request without completing it.

        Returns:
            True if the request was queued or in flight
        """
        for pending in list(self._queue):
            if pending.correlation_id == correlation_id:
                self._queue.remove(pending)
                self._active.discard(correlation_id)
                logger.info(
                    "intervention_dequeued",
                    correlation_id=correlation_id,
                    reason=reason,
                )
                return True
        if self._current is not None and self._current.correlation_id == correlation_id:
            self._cancel_current(reason)
            return True
        return False

    def discard_namespace(self, prefix: tuple[str, ...], reason: str = "discarded") -> int:
        """Drop every request issued at or below a namespace.

        Returns:
            Number of requests dropped
        """
        dropped = [pending for pending in self._queue if pending.within(prefix)]
        for pending in dropped:
            self._queue.remove(pending)
            self._active.discard(pending.correlation_id)
        count = len(dropped)
        if self._current is not None and self._current.within(prefix):
            self._cancel_current(reason)
            count += 1
        if count:
            logger.info(
                "intervention_namespace_discarded",
                namespace=".".join(prefix),
                count=count,
                reason=reason,
            )
        return count

    def _cancel_current(self, reason: str) -> None:
        if self._current_prompt is not None and not self._current_prompt.done():
            self._current_prompt.cancel()
        logger.info(
            "intervention_inflight_cancelled",
            correlation_id=self.current,
            reason=reason,
        )

    async def _on_requested(self, event: Event) -> None:
        request = event.payload
        if not isinstance(request, InterventionRequest):
            request = InterventionRequest.model_validate(request)

        if request.correlation_id in self._active:
            logger.warning("intervention_duplicate_request", correlation_id=request.correlation_id)
            return

        self._active.add(request.correlation_id)
        self._queue.append(PendingIntervention(request=request, namespace=event.namespace))
        self._wakeup.set()
        logger.info(
            "intervention_enqueued",
            correlation_id=request.correlation_id,
            type=request.type.value,
            queue_size=len(self._queue),
        )

    async def _on_cancelled(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, InterventionCancelled):
            payload = InterventionCancelled.model_validate(payload)
        self.discard(payload.correlation_id, payload.reason)

    async def _on_run_cancelled(self, event: Event) -> None:
        payload = event.payload
        reason = payload.reason if isinstance(payload, RunCancelledPayload) else "run cancelled"
        self.discard_namespace(event.namespace, reason)

    async def _run_worker(self) -> None:
        while True:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            pending = self._queue.popleft()
            try:
                await self._serve(pending)
            except Exception as e:
                logger.exception(
                    "intervention_serve_failed",
                    correlation_id=pending.correlation_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self._registry is not None:
                    self._registry.reject(
                        pending.correlation_id,
                        InterventionError(f"Human input could not be delivered: {e}", cause=e),
                    )
            finally:
                self._active.discard(pending.correlation_id)

    async def _serve(self, pending: PendingIntervention) -> None:
        request = pending.request
        self._current = pending
        prompt = asyncio.create_task(self._gateway.prompt(request.message, request.type))
        self._current_prompt = prompt

        logger.info(
            "intervention_prompt_started",
            correlation_id=request.correlation_id,
            type=request.type.value,
        )

        try:
            await asyncio.wait({prompt})
        except asyncio.CancelledError:
            prompt.cancel()
            raise
        finally:
            self._current = None
            self._current_prompt = None

        if prompt.cancelled():
            logger.info("intervention_discarded", correlation_id=request.correlation_id)
            return

        error = prompt.exception()
        if error is not None:
            logger.error(
                "intervention_gateway_failed",
                correlation_id=request.correlation_id,
                error=str(error),
                error_type=type(error).__name__,
            )
            if self._registry is not None:
                self._registry.reject(
                    request.correlation_id,
                    InterventionError(f"Human input failed: {error}", cause=error),
                )
            return

        answer = prompt.result()
        response = InterventionResponse(
            correlation_id=request.correlation_id,
            type=request.type,
            response=answer,
            data=normalize_response(request.type, answer),
        )

        logger.info(
            "intervention_answered",
            correlation_id=request.correlation_id,
            type=request.type.value,
        )

        await self._bus.emit(
            EventType.INTERVENTION_COMPLETED,
            response,
            namespace=pending.namespace,
        )
