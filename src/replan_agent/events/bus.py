"""Hierarchical EventBus implementation.

Provides a namespaced pub/sub mechanism for decoupling event emitters
from handlers. Emitting on a namespace notifies subscribers registered on
that node and on every ancestor up to the root.
"""

from __future__ import annotations

import inspect
import itertools
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from replan_agent.exceptions import HandlerError

from .types import Event

logger = structlog.get_logger()

EventHandler = Callable[[Event], Awaitable[None] | None]
ErrorSink = Callable[[HandlerError], Awaitable[None] | None]


class SubscriptionMode(StrEnum):
    """Subscription lifetime."""

    PERSISTENT = "persistent"
    ONCE = "once"


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``subscribe``.

    Owned by the bus; lives until unsubscribed or, for ``ONCE``
    subscriptions, until the first matching emission.
    """

    id: int
    namespace: tuple[str, ...]
    event_name: str | None
    handler: EventHandler
    mode: SubscriptionMode
    active: bool = True
    _node: _NamespaceNode | None = field(default=None, repr=False)

    def matches(self, event_name: str) -> bool:
        """Check whether this subscription listens for the given name."""
        return self.active and (self.event_name is None or self.event_name == event_name)

    def unsubscribe(self) -> bool:
        """Remove this subscription from the bus.

        Returns:
            True if the subscription was still registered
        """
        if self._node is None:
            return False
        return self._node.remove(self)


class _NamespaceNode:
    """Tree node holding the subscriptions registered on one namespace."""

    __slots__ = ("children", "parent", "segment", "subscriptions")

    def __init__(self, segment: str | None = None, parent: _NamespaceNode | None = None) -> None:
        self.segment = segment
        self.parent = parent
        self.children: dict[str, _NamespaceNode] = {}
        self.subscriptions: list[Subscription] = []

    def remove(self, subscription: Subscription) -> bool:
        subscription.active = False
        if subscription in self.subscriptions:
            self.subscriptions.remove(subscription)
            self.prune()
            return True
        return False

    def prune(self) -> None:
        """Detach this node and its empty ancestors from the tree."""
        node = self
        while node.parent is not None and not node.subscriptions and not node.children:
            parent = node.parent
            if parent.children.get(node.segment) is node:
                del parent.children[node.segment]
            node.parent = None
            node = parent


class _NamespaceTree:
    """Shared state behind a root bus and all of its child views."""

    def __init__(self, error_sink: ErrorSink | None) -> None:
        self.root = _NamespaceNode()
        self.error_sink = error_sink
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def node(self, path: tuple[str, ...]) -> _NamespaceNode:
        """Get the node for a path, creating missing nodes."""
        current = self.root
        for segment in path:
            child = current.children.get(segment)
            if child is None:
                child = _NamespaceNode(segment, current)
                current.children[segment] = child
            current = child
        return current

    def find(self, path: tuple[str, ...]) -> _NamespaceNode | None:
        """Get the node for a path if it exists."""
        current = self.root
        for segment in path:
            child = current.children.get(segment)
            if child is None:
                return None
            current = child
        return current

    def lineage(self, path: tuple[str, ...]) -> list[_NamespaceNode]:
        """Existing nodes on a path, nearest first, root last."""
        nodes = [self.root]
        current = self.root
        for segment in path:
            child = current.children.get(segment)
            if child is None:
                break
            nodes.append(child)
            current = child
        nodes.reverse()
        return nodes


def _validate_segments(segments: Iterable[str]) -> tuple[str, ...]:
    path = tuple(segments)
    for segment in path:
        if not isinstance(segment, str) or not segment:
            raise ValueError(f"Namespace segments must be non-empty strings, got {segment!r}")
    return path


def _handler_key(handler: EventHandler) -> tuple[int, int]:
    """Identity key for deduplication.

    Handlers need not be hashable. Bound methods are created on every
    attribute access, so they are keyed by their object and function.
    """
    owner = getattr(handler, "__self__", None)
    if owner is not None:
        func = getattr(handler, "__func__", None)
        if func is not None:
            return id(owner), id(func)
        return id(owner), hash(getattr(handler, "__name__", id(handler)))
    return id(handler), 0


class EventBus:
    """Async event bus with hierarchical namespace routing.

    Features:
    - Scoped child views (``bus.child("run", run_id)``) sharing one tree
    - Ancestor delivery with per-emission handler deduplication
    - Sequential handler execution in registration order
    - Error isolation (one handler failure doesn't affect others)
    - Structured logging
    """

    def __init__(self, error_sink: ErrorSink | None = None) -> None:
        """Initialize a root bus with an empty namespace tree.

        Args:
            error_sink: Receives a HandlerError for every failing handler.
                Defaults to structured logging.
        """
        self._tree = _NamespaceTree(error_sink)
        self._path: tuple[str, ...] = ()

    @classmethod
    def _scoped(cls, tree: _NamespaceTree, path: tuple[str, ...]) -> EventBus:
        view = cls.__new__(cls)
        view._tree = tree
        view._path = path
        return view

    @property
    def path(self) -> tuple[str, ...]:
        """Namespace this view is bound to (empty for the root)."""
        return self._path

    @property
    def is_root(self) -> bool:
        return not self._path

    def root(self) -> EventBus:
        """Get the root view of this bus."""
        return EventBus._scoped(self._tree, ())

    def child(self, *segments: str) -> EventBus:
        """Get a view rooted under this view's namespace.

        Args:
            *segments: One or more namespace segments to append

        Returns:
            Scoped EventBus sharing handlers with this bus

        Raises:
            ValueError: If no segment or an empty segment is given
        """
        if not segments:
            raise ValueError("child() requires at least one namespace segment")
        return EventBus._scoped(self._tree, self._path + _validate_segments(segments))

    def subscribe(
        self,
        event_name: str | None,
        handler: EventHandler,
        *,
        namespace: Iterable[str] = (),
        mode: SubscriptionMode = SubscriptionMode.PERSISTENT,
    ) -> Subscription:
        """Subscribe handler to an event name on a namespace.

        Args:
            event_name: Event name to match, or None for every event
            handler: Sync or async function called with the Event
            namespace: Extra segments below this view's namespace
            mode: PERSISTENT, or ONCE to unsubscribe after the first call

        Returns:
            Subscription handle
        """
        path = self._path + _validate_segments(namespace)
        node = self._tree.node(path)
        subscription = Subscription(
            id=self._tree.next_id(),
            namespace=path,
            event_name=None if event_name is None else str(event_name),
            handler=handler,
            mode=SubscriptionMode(mode),
            _node=node,
        )
        node.subscriptions.append(subscription)
        logger.debug(
            "event_handler_subscribed",
            event_name=subscription.event_name or "*",
            namespace=".".join(path),
            mode=subscription.mode.value,
        )
        return subscription

    def subscribe_all(
        self,
        handler: EventHandler,
        *,
        namespace: Iterable[str] = (),
    ) -> Subscription:
        """Subscribe handler to all events at or below this namespace.

        Useful for logging, rendering or audit trails.
        """
        return self.subscribe(None, handler, namespace=namespace)

    def once(
        self,
        event_name: str | None,
        handler: EventHandler,
        *,
        namespace: Iterable[str] = (),
    ) -> Subscription:
        """Subscribe handler for a single matching emission."""
        return self.subscribe(event_name, handler, namespace=namespace, mode=SubscriptionMode.ONCE)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Unsubscribe a previously registered handler.

        Returns:
            True if the subscription was found and removed
        """
        return subscription.unsubscribe()

    def namespaces(self) -> list[tuple[str, ...]]:
        """Namespaces at or below this view that still hold subscriptions."""
        top = self._tree.find(self._path)
        if top is None:
            return []
        found: list[tuple[str, ...]] = []
        stack = [(top, self._path)]
        while stack:
            node, path = stack.pop()
            if node.subscriptions:
                found.append(path)
            stack.extend((child, (*path, segment)) for segment, child in node.children.items())
        return sorted(found)

    def clear(self) -> None:
        """Remove all handlers at or below this view's namespace.

        On the root this empties the whole tree; on a run view it releases
        everything subscribed for that run.
        """
        top = self._tree.find(self._path)
        if top is None:
            return
        stack = [top]
        while stack:
            node = stack.pop()
            for subscription in node.subscriptions:
                subscription.active = False
            node.subscriptions.clear()
            stack.extend(node.children.values())
        top.children.clear()
        top.prune()

    def _collect(self, path: tuple[str, ...], event_name: str) -> list[Subscription]:
        selected: list[Subscription] = []
        seen: set[tuple[int, int]] = set()
        for node in self._tree.lineage(path):
            for subscription in list(node.subscriptions):
                if not subscription.matches(event_name):
                    continue
                key = _handler_key(subscription.handler)
                if key in seen:
                    continue
                seen.add(key)
                if subscription.mode is SubscriptionMode.ONCE:
                    node.remove(subscription)
                selected.append(subscription)
        return selected

    async def emit(
        self,
        event_name: str,
        payload: Any = None,
        *,
        namespace: Iterable[str] = (),
    ) -> Event:
        """Emit an event to every matching handler on the path to root.

        Handlers run one after another; async handlers are awaited before
        the next one starts, so the emitter observes completion. Errors are
        reported to the error sink and never raised here.

        Args:
            event_name: Name of the event
            payload: Event payload
            namespace: Extra segments below this view's namespace

        Returns:
            The emitted Event
        """
        path = self._path + _validate_segments(namespace)
        event = Event(name=str(event_name), namespace=path, payload=payload)
        subscriptions = self._collect(path, event.name)

        if not subscriptions:
            logger.debug("event_no_handlers", event_name=event.name, namespace=".".join(path))
            return event

        logger.debug(
            "event_emitting",
            event_name=event.name,
            namespace=".".join(path),
            handler_count=len(subscriptions),
        )

        for subscription in subscriptions:
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                await self._report(
                    HandlerError(
                        f"Handler for '{event.name}' failed: {e}",
                        event_name=event.name,
                        namespace=path,
                        cause=e,
                    )
                )

        return event

    async def _report(self, error: HandlerError) -> None:
        sink = self._tree.error_sink
        if sink is None:
            logger.error(
                "event_handler_error",
                event_name=error.event_name,
                namespace=".".join(error.namespace),
                error=str(error.cause),
                error_type=type(error.cause).__name__,
            )
            return
        try:
            result = sink(error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "event_error_sink_failed",
                event_name=error.event_name,
                error=str(e),
                error_type=type(e).__name__,
            )
