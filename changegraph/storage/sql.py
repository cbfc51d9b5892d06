"""
SQLAlchemy implementation of the storage port.

Outside ``transaction()`` every write commits immediately, the way the
service layer has always worked. Inside it, writes are only flushed and the
outermost block commits once, or rolls everything back on error.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import structlog
from sqlalchemy import desc, update
from sqlalchemy.orm import Session

from ..db.models import (
    ChangeModel,
    ChangeTargetModel,
    EnvironmentModel,
    GraphPackageInstallModel,
    PatchOpModel,
    ProjectModel,
    PromotionIntentModel,
    RecordTypeModel,
    RecordTypeSnapshotModel,
    TelemetryEventModel,
)
from ..errors import ConflictError, NotFoundError
from ..primitives import TenantContext, generate_ulid, utc_now
from .port import SchemaStorage

logger = structlog.get_logger()


class SqlSchemaStorage(SchemaStorage):
    """Tenant-scoped storage over a SQLAlchemy session."""

    def __init__(self, db: Session, ctx: TenantContext):
        self.db = db
        self.ctx = ctx
        self._tx_depth = 0

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["SqlSchemaStorage"]:
        self._tx_depth += 1
        try:
            yield self
        except Exception:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.db.rollback()
                logger.warning("storage_transaction_rolled_back", tenant_id=self.ctx.tenant_id)
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.db.commit()

    def _write(self, obj: Any = None) -> None:
        if obj is not None:
            self.db.add(obj)
        if self._tx_depth:
            self.db.flush()
        else:
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        if obj is not None:
            self.db.refresh(obj)

    def _query(self, model):
        return self.db.query(model).filter(model.tenant_id == self.ctx.tenant_id)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_projects(self) -> List[ProjectModel]:
        return self._query(ProjectModel).order_by(ProjectModel.created_at).all()

    def get_project_by_id(self, project_id: str) -> Optional[ProjectModel]:
        return self._query(ProjectModel).filter(ProjectModel.id == project_id).first()

    def create_project(self, name: str, description: Optional[str] = None) -> ProjectModel:
        project = ProjectModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            name=name,
            description=description,
            created_at=utc_now(),
        )
        self._write(project)
        return project

    # ------------------------------------------------------------------
    # Record types
    # ------------------------------------------------------------------

    def get_record_types(self) -> List[RecordTypeModel]:
        return (
            self._query(RecordTypeModel)
            .order_by(RecordTypeModel.created_at, RecordTypeModel.id)
            .all()
        )

    def get_record_type_by_id(self, record_type_id: str) -> Optional[RecordTypeModel]:
        return (
            self._query(RecordTypeModel)
            .filter(RecordTypeModel.id == record_type_id)
            .first()
        )

    def get_record_type_by_key(self, key: str) -> Optional[RecordTypeModel]:
        return (
            self._query(RecordTypeModel)
            .filter(RecordTypeModel.key == key)
            .order_by(RecordTypeModel.created_at)
            .first()
        )

    def get_record_type_by_key_and_project(
        self, key: str, project_id: str
    ) -> Optional[RecordTypeModel]:
        return (
            self._query(RecordTypeModel)
            .filter(RecordTypeModel.key == key, RecordTypeModel.project_id == project_id)
            .first()
        )

    def get_record_type_by_name(self, name: str) -> Optional[RecordTypeModel]:
        return self._query(RecordTypeModel).filter(RecordTypeModel.name == name).first()

    def create_record_type(
        self,
        key: str,
        name: str,
        project_id: str,
        schema: Dict[str, Any],
        base_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> RecordTypeModel:
        now = utc_now()
        record_type = RecordTypeModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            project_id=project_id,
            key=key,
            name=name,
            description=description,
            base_type=base_type,
            schema=schema,
            status="draft",
            version=1,
            created_at=now,
            updated_at=now,
        )
        self._write(record_type)
        return record_type

    def update_record_type_schema(
        self,
        record_type_id: str,
        schema: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> RecordTypeModel:
        stmt = update(RecordTypeModel).where(
            RecordTypeModel.id == record_type_id,
            RecordTypeModel.tenant_id == self.ctx.tenant_id,
        )
        if expected_version is not None:
            stmt = stmt.where(RecordTypeModel.version == expected_version)
        stmt = stmt.values(
            schema=schema,
            version=RecordTypeModel.version + 1,
            updated_at=utc_now(),
        ).execution_options(synchronize_session=False)

        result = self.db.execute(stmt)
        if result.rowcount == 0:
            if self.get_record_type_by_id(record_type_id) is None:
                raise NotFoundError("Record type not found")
            raise ConflictError(
                f"Record type {record_type_id} was modified concurrently "
                f"(expected version {expected_version})"
            )
        self._write()

        record_type = self.get_record_type_by_id(record_type_id)
        self.db.refresh(record_type)
        return record_type

    def update_record_type_status(
        self, record_type_id: str, status: str
    ) -> Optional[RecordTypeModel]:
        record_type = self.get_record_type_by_id(record_type_id)
        if not record_type:
            return None
        record_type.status = status
        record_type.updated_at = utc_now()
        self._write(record_type)
        return record_type

    # ------------------------------------------------------------------
    # Changes
    # ------------------------------------------------------------------

    def get_changes(self) -> List[ChangeModel]:
        return self._query(ChangeModel).order_by(desc(ChangeModel.created_at)).all()

    def get_changes_by_project(self, project_id: str) -> List[ChangeModel]:
        return (
            self._query(ChangeModel)
            .filter(ChangeModel.project_id == project_id)
            .order_by(desc(ChangeModel.created_at))
            .all()
        )

    def get_change_by_id(self, change_id: str) -> Optional[ChangeModel]:
        return self._query(ChangeModel).filter(ChangeModel.id == change_id).first()

    def create_change(
        self,
        title: str,
        project_id: str,
        description: Optional[str] = None,
        base_sha: Optional[str] = None,
        branch_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ChangeModel:
        now = utc_now()
        change = ChangeModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            project_id=project_id,
            title=title,
            description=description,
            status="Draft",
            base_sha=base_sha,
            branch_name=branch_name,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._write(change)
        return change

    def update_change_status(self, change_id: str, status: str) -> Optional[ChangeModel]:
        change = self.get_change_by_id(change_id)
        if not change:
            return None
        change.status = status
        change.updated_at = utc_now()
        self._write(change)
        return change

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def get_change_target_by_id(self, target_id: str) -> Optional[ChangeTargetModel]:
        return (
            self._query(ChangeTargetModel)
            .filter(ChangeTargetModel.id == target_id)
            .first()
        )

    def get_change_targets(self, change_id: str) -> List[ChangeTargetModel]:
        return (
            self._query(ChangeTargetModel)
            .filter(ChangeTargetModel.change_id == change_id)
            .order_by(ChangeTargetModel.created_at, ChangeTargetModel.id)
            .all()
        )

    def create_change_target(
        self,
        change_id: str,
        project_id: str,
        type: str,
        selector: Dict[str, Any],
    ) -> ChangeTargetModel:
        target = ChangeTargetModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            change_id=change_id,
            project_id=project_id,
            type=type,
            selector=selector,
            created_at=utc_now(),
        )
        self._write(target)
        return target

    # ------------------------------------------------------------------
    # Patch ops
    # ------------------------------------------------------------------

    def get_patch_op_by_id(self, op_id: str) -> Optional[PatchOpModel]:
        return self._query(PatchOpModel).filter(PatchOpModel.id == op_id).first()

    def get_change_patch_ops(self, change_id: str) -> List[PatchOpModel]:
        return (
            self._query(PatchOpModel)
            .filter(PatchOpModel.change_id == change_id)
            .order_by(PatchOpModel.created_at, PatchOpModel.id)
            .all()
        )

    def create_patch_op(
        self,
        change_id: str,
        target_id: str,
        op_type: str,
        payload: Dict[str, Any],
    ) -> PatchOpModel:
        op = PatchOpModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            change_id=change_id,
            target_id=target_id,
            op_type=op_type,
            payload=payload,
            previous_snapshot=None,
            executed_at=None,
            created_at=utc_now(),
        )
        self._write(op)
        return op

    def delete_patch_op(self, op_id: str) -> None:
        op = self.get_patch_op_by_id(op_id)
        if op is None:
            raise NotFoundError("Patch op not found")
        self.db.delete(op)
        self._write()

    def stamp_patch_op(
        self,
        op_id: str,
        previous_snapshot: Optional[Dict[str, Any]],
        executed_at: datetime,
    ) -> None:
        stmt = (
            update(PatchOpModel)
            .where(
                PatchOpModel.id == op_id,
                PatchOpModel.tenant_id == self.ctx.tenant_id,
            )
            .values(previous_snapshot=previous_snapshot, executed_at=executed_at)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Patch op not found")
        self._write()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_snapshot(
        self, change_id: str, record_type_key: str
    ) -> Optional[RecordTypeSnapshotModel]:
        return (
            self._query(RecordTypeSnapshotModel)
            .filter(
                RecordTypeSnapshotModel.change_id == change_id,
                RecordTypeSnapshotModel.record_type_key == record_type_key,
            )
            .first()
        )

    def create_snapshot(
        self,
        project_id: str,
        change_id: str,
        record_type_key: str,
        schema: Dict[str, Any],
    ) -> RecordTypeSnapshotModel:
        snapshot = RecordTypeSnapshotModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            project_id=project_id,
            change_id=change_id,
            record_type_key=record_type_key,
            schema=schema,
            created_at=utc_now(),
        )
        self._write(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Package installs
    # ------------------------------------------------------------------

    def get_graph_package_installs(self) -> List[GraphPackageInstallModel]:
        return (
            self._query(GraphPackageInstallModel)
            .order_by(GraphPackageInstallModel.installed_at, GraphPackageInstallModel.id)
            .all()
        )

    def get_graph_package_install_by_key(
        self, package_key: str
    ) -> Optional[GraphPackageInstallModel]:
        return (
            self._query(GraphPackageInstallModel)
            .filter(GraphPackageInstallModel.package_key == package_key)
            .order_by(
                desc(GraphPackageInstallModel.installed_at),
                desc(GraphPackageInstallModel.id),
            )
            .first()
        )

    def create_graph_package_install(
        self,
        package_key: str,
        package_version: str,
        checksum: str,
        installed_by: str,
        manifest: Dict[str, Any],
        project_id: Optional[str] = None,
    ) -> GraphPackageInstallModel:
        install = GraphPackageInstallModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            project_id=project_id,
            package_key=package_key,
            package_version=package_version,
            checksum=checksum,
            installed_by=installed_by,
            manifest=manifest,
            installed_at=utc_now(),
        )
        self._write(install)
        return install

    # ------------------------------------------------------------------
    # Environments and promotion intents
    # ------------------------------------------------------------------

    def get_environments(self) -> List[EnvironmentModel]:
        return (
            self._query(EnvironmentModel)
            .order_by(EnvironmentModel.ordinal, EnvironmentModel.name)
            .all()
        )

    def get_environment_by_id(self, environment_id: str) -> Optional[EnvironmentModel]:
        return (
            self._query(EnvironmentModel)
            .filter(EnvironmentModel.id == environment_id)
            .first()
        )

    def create_environment(self, name: str, slug: str, ordinal: int = 0) -> EnvironmentModel:
        environment = EnvironmentModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            name=name,
            slug=slug,
            ordinal=ordinal,
            created_at=utc_now(),
        )
        self._write(environment)
        return environment

    def get_promotion_intents(self) -> List[PromotionIntentModel]:
        return (
            self._query(PromotionIntentModel)
            .order_by(desc(PromotionIntentModel.created_at))
            .all()
        )

    def get_promotion_intent_by_id(self, intent_id: str) -> Optional[PromotionIntentModel]:
        return (
            self._query(PromotionIntentModel)
            .filter(PromotionIntentModel.id == intent_id)
            .first()
        )

    def create_promotion_intent(
        self,
        source_environment_id: str,
        target_environment_id: str,
        created_by: Optional[str] = None,
    ) -> PromotionIntentModel:
        now = utc_now()
        intent = PromotionIntentModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            source_environment_id=source_environment_id,
            target_environment_id=target_environment_id,
            status="draft",
            diff={},
            approved_by=None,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._write(intent)
        return intent

    def update_promotion_intent(
        self,
        intent_id: str,
        status: str,
        approved_by: Optional[str] = None,
    ) -> Optional[PromotionIntentModel]:
        intent = self.get_promotion_intent_by_id(intent_id)
        if not intent:
            return None
        intent.status = status
        if approved_by is not None:
            intent.approved_by = approved_by
        intent.updated_at = utc_now()
        self._write(intent)
        return intent

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def create_telemetry_event(
        self,
        event_type: str,
        entity_id: str,
        payload: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> TelemetryEventModel:
        event = TelemetryEventModel(
            id=generate_ulid(),
            tenant_id=self.ctx.tenant_id,
            ts=utc_now(),
            event_type=event_type,
            entity_id=entity_id,
            actor=actor,
            payload=payload,
        )
        self._write(event)
        return event
