"""Tests for the tenant-scoped SQL storage."""

import pytest

from changegraph.db.models import ProjectModel, RecordTypeModel
from changegraph.errors import ConflictError, NotFoundError
from changegraph.primitives import TenantContext
from changegraph.storage import SqlSchemaStorage


@pytest.fixture
def other_tenant(db_session):
    return SqlSchemaStorage(db_session, TenantContext(tenant_id="tenant-b", user_id="user-2"))


@pytest.fixture
def record_type(storage, project):
    return storage.create_record_type(
        key="incident",
        name="Incident",
        project_id=project.id,
        schema={"fields": []},
    )


class TestTenantIsolation:
    def test_reads_are_scoped(self, storage, other_tenant, project, record_type):
        assert other_tenant.get_project_by_id(project.id) is None
        assert other_tenant.get_projects() == []
        assert other_tenant.get_record_type_by_key("incident") is None
        assert other_tenant.get_record_types() == []

    def test_same_key_in_two_tenants(self, storage, other_tenant, record_type):
        theirs = other_tenant.create_project("Theirs")
        other_tenant.create_record_type(
            key="incident", name="Incident", project_id=theirs.id, schema={"fields": []}
        )
        assert storage.get_record_type_by_key("incident").id == record_type.id
        assert other_tenant.get_record_type_by_key("incident").id != record_type.id

    def test_schema_update_cannot_cross_tenants(self, other_tenant, record_type):
        with pytest.raises(NotFoundError):
            other_tenant.update_record_type_schema(record_type.id, {"fields": []})

    def test_rows_carry_tenant(self, db_session, project, record_type):
        assert db_session.get(ProjectModel, project.id).tenant_id == "tenant-a"
        assert db_session.get(RecordTypeModel, record_type.id).tenant_id == "tenant-a"


class TestSchemaUpdate:
    def test_bumps_version(self, storage, record_type):
        new_schema = {"fields": [{"name": "title", "type": "string"}]}

        updated = storage.update_record_type_schema(record_type.id, new_schema, expected_version=1)

        assert updated.version == 2
        assert updated.schema == new_schema

    def test_stale_version_conflicts(self, storage, record_type):
        storage.update_record_type_schema(record_type.id, {"fields": []}, expected_version=1)

        with pytest.raises(ConflictError) as exc_info:
            storage.update_record_type_schema(record_type.id, {"fields": []}, expected_version=1)

        assert "modified concurrently" in exc_info.value.message
        assert storage.get_record_type_by_id(record_type.id).version == 2

    def test_unconditional_update(self, storage, record_type):
        assert storage.update_record_type_schema(record_type.id, {"fields": []}).version == 2

    def test_missing_record_type(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_record_type_schema("missing", {"fields": []}, expected_version=1)


class TestTransaction:
    def test_commits_on_success(self, storage, db_session):
        with storage.transaction():
            storage.create_project("One")
            storage.create_project("Two")
        db_session.rollback()
        assert sorted(p.name for p in storage.get_projects()) == ["One", "Two"]

    def test_rolls_back_on_error(self, storage, db_session, project):
        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.create_project("Doomed")
                raise RuntimeError("boom")

        assert [p.name for p in storage.get_projects()] == ["Service Desk"]

    def test_nested_blocks_commit_once(self, storage):
        with pytest.raises(ConflictError):
            with storage.transaction():
                storage.create_project("Outer")
                with storage.transaction():
                    storage.create_project("Inner")
                raise ConflictError("late failure")

        assert storage.get_projects() == []


class TestPatchOpRows:
    def test_stamp_and_delete(self, storage, project):
        change = storage.create_change("Edit", project.id)
        target = storage.create_change_target(
            change.id, project.id, "record_type", {"recordTypeKey": "incident"}
        )
        op = storage.create_patch_op(change.id, target.id, "remove_field", {"field": "x"})

        storage.stamp_patch_op(op.id, {"fields": []}, executed_at=change.created_at)
        storage.db.refresh(op)
        assert op.previous_snapshot == {"fields": []}
        assert op.executed_at is not None

        storage.delete_patch_op(op.id)
        assert storage.get_change_patch_ops(change.id) == []

    def test_stamp_missing_op(self, storage):
        with pytest.raises(NotFoundError):
            storage.stamp_patch_op("missing", None, executed_at=None)
