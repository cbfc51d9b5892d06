"""Tests for the change state machine and merge."""

from unittest import mock

import pytest

from changegraph.changes import (
    ALLOWED_TRANSITIONS,
    ChangeService,
    ChangeTargetService,
    ExecutionResult,
    PatchOpService,
    can_transition,
)
from changegraph.enums import ChangeStatus
from changegraph.errors import (
    ImmutabilityError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailureError,
)
from changegraph.events import DomainEventType
from changegraph.primitives import TenantContext
from changegraph.storage import SqlSchemaStorage


def _collect(bus, event_type):
    seen = []
    bus.subscribe(event_type, lambda ctx, event: seen.append(event))
    return seen


def _walk(svc, change_id, *statuses):
    for status in statuses:
        svc.update_status(change_id, status)


class TestCreateChange:
    def test_create_in_draft(self, storage, project):
        change = ChangeService(storage).create_change("Add priority", project.id)
        assert change.status == "Draft"
        assert change.project_id == project.id
        assert change.created_by == "user-1"
        assert change.tenant_id == "tenant-a"

    def test_created_by_agent(self, db_session, project):
        agent_storage = SqlSchemaStorage(
            db_session, TenantContext(tenant_id="tenant-a", agent_id="agent-7")
        )
        change = ChangeService(agent_storage).create_change("Agent change", project.id)
        assert change.created_by == "agent-7"

    def test_created_by_defaults_to_configured_actor(self, db_session, project):
        system_storage = SqlSchemaStorage(db_session, TenantContext(tenant_id="tenant-a"))
        change = ChangeService(system_storage).create_change("Nightly sync", project.id)
        assert change.created_by == "system"

    def test_project_must_exist(self, storage):
        with pytest.raises(NotFoundError) as exc_info:
            ChangeService(storage).create_change("Orphan", "missing-project")
        assert exc_info.value.status_code == 404

    def test_list_by_project(self, storage, project):
        svc = ChangeService(storage)
        svc.create_change("One", project.id)
        svc.create_change("Two", project.id)
        assert len(svc.list()) == 2
        assert len(svc.list(project_id=project.id)) == 2
        assert svc.list(project_id="other") == []


class TestStatusTransitions:
    def test_merged_is_terminal(self):
        assert "Merged" not in ALLOWED_TRANSITIONS
        assert not can_transition("Merged", "Draft")

    def test_full_happy_path(self, storage, project, bus):
        svc = ChangeService(storage, bus)
        events = _collect(bus, DomainEventType.CHANGE_STATUS_CHANGED)
        change = svc.create_change("Walk", project.id)

        _walk(svc, change.id, "Implementing", "WorkspaceRunning", "Validating", "Ready")

        assert svc.get(change.id).status == "Ready"
        bus.wait_idle()
        assert [e.status for e in events] == [
            "Implementing",
            "WorkspaceRunning",
            "Validating",
            "Ready",
        ]

    def test_validation_failed_recovers_to_workspace_running(self, storage, project):
        svc = ChangeService(storage)
        change = svc.create_change("Retry", project.id)
        _walk(svc, change.id, "Implementing", "WorkspaceRunning", "Validating")
        _walk(svc, change.id, ChangeStatus.VALIDATION_FAILED, "WorkspaceRunning")
        assert svc.get(change.id).status == "WorkspaceRunning"

    def test_illegal_jump_rejected(self, storage, project):
        svc = ChangeService(storage)
        change = svc.create_change("Skip", project.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            svc.update_status(change.id, "Ready")
        assert "from 'Draft' to 'Ready'" in exc_info.value.message
        assert svc.get(change.id).status == "Draft"

    def test_unknown_change(self, storage):
        with pytest.raises(NotFoundError):
            ChangeService(storage).update_status("missing", "Implementing")


class TestMerge:
    def _change_with_op(self, storage, project, payload):
        change = ChangeService(storage).create_change("Merge me", project.id)
        target = ChangeTargetService(storage).add_target(
            change.id, "record_type", {"recordTypeKey": "incident"}
        )
        PatchOpService(storage).add_patch_op(change.id, target.id, payload[0], payload[1])
        return change

    def test_merge_success(self, storage, project, task_and_incident, bus):
        merged_events = _collect(bus, DomainEventType.CHANGE_MERGED)
        change = self._change_with_op(
            storage,
            project,
            ("add_field", {"field": "priority", "definition": {"type": "choice"}}),
        )

        merged = ChangeService(storage, bus).merge_change(change.id)

        assert merged.status == "Merged"
        fields = [f["name"] for f in storage.get_record_type_by_key("incident").schema["fields"]]
        assert "priority" in fields
        bus.wait_idle()
        assert len(merged_events) == 1
        assert merged_events[0].entity_id == change.id
        assert merged_events[0].metadata == {"appliedCount": 1}

    def test_merge_failure_forces_validation_failed(
        self, storage, project, task_and_incident, bus
    ):
        failed_events = _collect(bus, DomainEventType.CHANGE_MERGE_FAILED)
        change = self._change_with_op(
            storage, project, ("remove_field", {"field": "title"})
        )

        with pytest.raises(ValidationFailureError) as exc_info:
            ChangeService(storage, bus).merge_change(change.id)

        assert exc_info.value.status_code == 422
        assert exc_info.value.message.startswith("Execution failed: ")
        assert "protected by base type" in exc_info.value.message
        assert storage.get_change_by_id(change.id).status == "ValidationFailed"
        bus.wait_idle()
        assert len(failed_events) == 1

    def test_unexpected_persist_error_forces_validation_failed(
        self, storage, project, task_and_incident
    ):
        change = self._change_with_op(
            storage,
            project,
            ("add_field", {"field": "priority", "definition": {"type": "choice"}}),
        )

        with mock.patch.object(
            storage, "stamp_patch_op", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(ValidationFailureError) as exc_info:
                ChangeService(storage).merge_change(change.id)

        assert exc_info.value.message == "Execution failed: Persist failed: disk full"
        assert storage.get_change_by_id(change.id).status == "ValidationFailed"
        assert storage.get_snapshot(change.id, "incident") is None
        incident = storage.get_record_type_by_key("incident")
        assert [f["name"] for f in incident.schema["fields"]] == ["title", "severity"]

    def test_merge_merged_change_fails_fast(self, storage, project):
        change = ChangeService(storage).create_change("Done", project.id)
        storage.update_change_status(change.id, "Merged")
        executor = mock.Mock()
        svc = ChangeService(storage, executor=executor)

        with pytest.raises(ImmutabilityError):
            svc.merge_change(change.id)

        executor.execute.assert_not_called()

    def test_merge_uses_injected_executor(self, storage, project):
        change = ChangeService(storage).create_change("Stubbed", project.id)
        executor = mock.Mock()
        executor.execute.return_value = ExecutionResult(success=True, applied_count=0)

        merged = ChangeService(storage, executor=executor).merge_change(change.id)

        executor.execute.assert_called_once_with(change.id)
        assert merged.status == "Merged"


class TestTerminality:
    """Nothing about a merged change can be altered."""

    @pytest.fixture
    def merged(self, storage, project, task_and_incident):
        svc = ChangeService(storage)
        change = svc.create_change("Terminal", project.id)
        target = ChangeTargetService(storage).add_target(
            change.id, "record_type", {"recordTypeKey": "incident"}
        )
        op = PatchOpService(storage).add_patch_op(
            change.id, target.id, "add_field", {"field": "p", "definition": {"type": "string"}}
        )
        svc.merge_change(change.id)
        return change, target, op

    def test_no_status_transition(self, storage, merged):
        change, _, _ = merged
        for status in ("Draft", "ValidationFailed", "Merged"):
            with pytest.raises(ImmutabilityError):
                ChangeService(storage).update_status(change.id, status)

    def test_no_new_targets(self, storage, merged):
        change, _, _ = merged
        with pytest.raises(ImmutabilityError):
            ChangeTargetService(storage).add_target(
                change.id, "file", {"filePath": "README.md"}
            )

    def test_no_new_patch_ops(self, storage, merged):
        change, target, _ = merged
        with pytest.raises(ImmutabilityError):
            PatchOpService(storage).add_patch_op(
                change.id, target.id, "add_field", {"field": "q", "definition": {"type": "string"}}
            )

    def test_no_patch_op_deletion(self, storage, merged):
        change, _, op = merged
        with pytest.raises(ImmutabilityError):
            PatchOpService(storage).delete_patch_op(change.id, op.id)

    def test_no_second_merge(self, storage, merged):
        change, _, _ = merged
        with pytest.raises(ImmutabilityError) as exc_info:
            ChangeService(storage).merge_change(change.id)
        assert exc_info.value.message == "Change is already merged"
