"""
Domain event bus.

An explicit bus object, constructed once per application (or per test) and
handed to the services that emit. Emission is fire-and-forget:

- the telemetry row is written best-effort through the caller's storage;
  a failed write is logged and swallowed
- each subscriber runs on the bus's dispatcher, isolated from the others
  and from the emitting call; a raising handler is logged and dropped

``emit`` never raises.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

import structlog

from ..config import get_settings
from ..primitives import TenantContext, utc_now

logger = structlog.get_logger()


class DomainEventType(str, Enum):
    """Event types emitted by the engine."""

    CHANGE_STATUS_CHANGED = "change.status_changed"
    CHANGE_MERGED = "change.merged"
    CHANGE_MERGE_FAILED = "change.merge_failed"
    VALIDATION_FAILED = "graph.validation_failed"
    VALIDATION_SUCCEEDED = "graph.validation_succeeded"
    DIFF_COMPUTED = "graph.diff_computed"
    PACKAGE_INSTALLED = "graph.package_installed"
    PACKAGE_INSTALL_NOOP = "graph.package_install_noop"
    PACKAGE_INSTALL_REJECTED = "graph.package_install_rejected"
    PACKAGE_PROMOTED = "graph.package_promoted"
    PROMOTION_INTENT_CREATED = "graph.promotion_intent_created"
    PROMOTION_INTENT_PREVIEWED = "graph.promotion_intent_previewed"
    PROMOTION_INTENT_APPROVED = "graph.promotion_intent_approved"
    PROMOTION_INTENT_EXECUTED = "graph.promotion_intent_executed"
    PROMOTION_INTENT_REJECTED = "graph.promotion_intent_rejected"


@dataclass
class DomainEvent:
    """Something that happened to an entity in the graph."""

    type: DomainEventType
    status: str
    entity_id: str
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "status": self.status,
            "entity_id": self.entity_id,
            "error": self.error,
            "metadata": self.metadata,
        }


EventHandler = Callable[[TenantContext, DomainEvent], None]


class EventBus:
    """In-process publish/subscribe with per-subscriber isolation.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(DomainEventType.CHANGE_MERGED, handler)
        bus.emit(storage, DomainEvent(DomainEventType.CHANGE_MERGED, "merged", change.id))
    """

    def __init__(
        self,
        dispatcher: Optional[Executor] = None,
        persist: Optional[bool] = None,
    ):
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="domain-events"
        )
        self._persist = get_settings().persist_domain_events if persist is None else persist
        self._subscribers: Dict[str, Set[EventHandler]] = {}
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def subscribe(
        self, event_type: DomainEventType, handler: EventHandler
    ) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unregisters it."""
        key = DomainEventType(event_type).value
        with self._lock:
            self._subscribers.setdefault(key, set()).add(handler)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.get(key, set()).discard(handler)

        return unsubscribe

    def clear(self) -> None:
        """Remove every subscriber."""
        with self._lock:
            self._subscribers.clear()

    def emit(self, storage, event: DomainEvent) -> None:
        """Persist and dispatch ``event``. Never raises."""
        ctx: TenantContext = storage.ctx
        if self._persist:
            self._persist_event(storage, ctx, event)

        with self._lock:
            handlers: List[EventHandler] = list(
                self._subscribers.get(event.type.value, ())
            )

        for handler in handlers:
            try:
                future = self._dispatcher.submit(self._run_handler, handler, ctx, event)
            except RuntimeError:
                # Dispatcher already shut down
                logger.warning(
                    "domain_event_dispatch_skipped", event_type=event.type.value
                )
                continue
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._forget)

    def wait_idle(self, timeout: Optional[float] = 5.0) -> None:
        """Block until every dispatched handler has finished."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        """Drain pending handlers and stop an owned dispatcher."""
        self.wait_idle()
        if self._owns_dispatcher:
            self._dispatcher.shutdown(wait=True)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @staticmethod
    def _run_handler(handler: EventHandler, ctx: TenantContext, event: DomainEvent) -> None:
        try:
            handler(ctx, event)
        except Exception:
            logger.exception(
                "domain_event_subscriber_failed",
                event_type=event.type.value,
                entity_id=event.entity_id,
            )

    @staticmethod
    def _persist_event(storage, ctx: TenantContext, event: DomainEvent) -> None:
        payload = event.to_dict()
        payload["actor_type"] = ctx.actor_kind.value
        payload["actor_id"] = ctx.actor_id
        payload["emitted_at"] = utc_now().isoformat()
        try:
            storage.create_telemetry_event(
                event_type=event.type.value,
                entity_id=event.entity_id,
                payload=payload,
                actor=ctx.actor_id,
            )
        except Exception:
            logger.exception(
                "domain_event_persist_failed",
                event_type=event.type.value,
                entity_id=event.entity_id,
            )
