"""Tests for the domain event bus."""

import threading
from unittest import mock

from changegraph.db.models import TelemetryEventModel
from changegraph.events import DomainEvent, DomainEventType, EventBus
from changegraph.primitives import TenantContext


def _event(entity_id="change-1"):
    return DomainEvent(DomainEventType.CHANGE_MERGED, "merged", entity_id)


class TestDispatch:
    def test_handler_receives_context_and_event(self, storage, bus):
        received = []
        bus.subscribe(DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append((ctx, e)))

        bus.emit(storage, _event())
        bus.wait_idle()

        assert len(received) == 1
        ctx, event = received[0]
        assert ctx.tenant_id == "tenant-a"
        assert event.entity_id == "change-1"

    def test_only_matching_type_dispatched(self, storage, bus):
        received = []
        bus.subscribe(DomainEventType.CHANGE_MERGE_FAILED, lambda ctx, e: received.append(e))
        bus.emit(storage, _event())
        bus.wait_idle()
        assert received == []

    def test_failing_handler_is_isolated(self, storage, bus):
        received = []

        def broken(ctx, event):
            raise RuntimeError("boom")

        bus.subscribe(DomainEventType.CHANGE_MERGED, broken)
        bus.subscribe(DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append(e))

        bus.emit(storage, _event())
        bus.wait_idle()

        assert len(received) == 1

    def test_emit_does_not_wait_for_handlers(self, storage, bus):
        release = threading.Event()
        done = threading.Event()

        def slow(ctx, event):
            release.wait(timeout=5)
            done.set()

        bus.subscribe(DomainEventType.CHANGE_MERGED, slow)
        bus.emit(storage, _event())

        assert not done.is_set()
        release.set()
        bus.wait_idle()
        assert done.is_set()

    def test_unsubscribe(self, storage, bus):
        received = []
        unsubscribe = bus.subscribe(
            DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append(e)
        )
        unsubscribe()
        bus.emit(storage, _event())
        bus.wait_idle()
        assert received == []

    def test_clear(self, storage, bus):
        received = []
        bus.subscribe(DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append(e))
        bus.clear()
        bus.emit(storage, _event())
        bus.wait_idle()
        assert received == []

    def test_buses_are_isolated(self, storage, bus):
        other = EventBus(persist=False)
        received = []
        other.subscribe(DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append(e))
        try:
            bus.emit(storage, _event())
            bus.wait_idle()
            other.wait_idle()
        finally:
            other.close()
        assert received == []


class TestPersistence:
    def test_telemetry_row_written(self, storage, db_session, bus):
        bus.emit(storage, _event("change-9"))

        (row,) = db_session.query(TelemetryEventModel).all()
        assert row.event_type == "change.merged"
        assert row.entity_id == "change-9"
        assert row.tenant_id == "tenant-a"
        assert row.actor == "user-1"
        assert row.payload["actor_type"] == "user"
        assert row.payload["status"] == "merged"

    def test_persistence_can_be_disabled(self, storage, db_session):
        quiet = EventBus(persist=False)
        try:
            quiet.emit(storage, _event())
        finally:
            quiet.close()
        assert db_session.query(TelemetryEventModel).count() == 0

    def test_persist_failure_is_swallowed(self, bus):
        storage = mock.Mock()
        storage.ctx = TenantContext(tenant_id="tenant-a")
        storage.create_telemetry_event.side_effect = RuntimeError("db down")
        received = []
        bus.subscribe(DomainEventType.CHANGE_MERGED, lambda ctx, e: received.append(e))

        bus.emit(storage, _event())
        bus.wait_idle()

        storage.create_telemetry_event.assert_called_once()
        assert len(received) == 1

    def test_system_actor(self, bus):
        storage = mock.Mock()
        storage.ctx = TenantContext(tenant_id="tenant-a")

        bus.emit(storage, _event())

        payload = storage.create_telemetry_event.call_args.kwargs["payload"]
        assert payload["actor_type"] == "system"
        assert payload["actor_id"] == "system"
