"""
SQLAlchemy Database Models.

Every table carries ``tenant_id``; the storage layer filters on it for
every read and stamps it on every write.

Notes:
- schema / selector / payload / manifest are stored as JSON
- record types carry an integer ``version`` used for optimistic concurrency
- graph package installs are append-only
"""

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .base import Base


def _iso(value):
    return value.isoformat() if value else None


class ProjectModel(Base):
    """A tenant project; the authoritative scope for record types and changes."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "created_at": _iso(self.created_at),
        }


class RecordTypeModel(Base):
    """A record type and its field schema."""

    __tablename__ = "record_types"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    key = Column(String(128), nullable=False)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    base_type = Column(String(128), nullable=True)
    schema = Column(JSON, nullable=False, default=lambda: {"fields": []})
    status = Column(String(32), nullable=False, default="draft")
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "project_id", "key", name="uq_record_types_key"),
        UniqueConstraint("tenant_id", "name", name="uq_record_types_name"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "base_type": self.base_type,
            "schema": self.schema,
            "status": self.status,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ChangeModel(Base):
    """A reviewable unit of schema edits."""

    __tablename__ = "changes"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="Draft", index=True)
    base_sha = Column(String(64), nullable=True)
    branch_name = Column(String(256), nullable=True)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "base_sha": self.base_sha,
            "branch_name": self.branch_name,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ChangeTargetModel(Base):
    """What a change touches: a typed selector."""

    __tablename__ = "change_targets"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    change_id = Column(String(36), ForeignKey("changes.id"), nullable=False, index=True)
    project_id = Column(String(36), nullable=False)
    type = Column(String(32), nullable=False)
    selector = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "change_id": self.change_id,
            "project_id": self.project_id,
            "type": self.type,
            "selector": self.selector,
            "created_at": _iso(self.created_at),
        }


class PatchOpModel(Base):
    """One schema edit attached to a change target.

    ``previous_snapshot`` and ``executed_at`` are only ever written together.
    """

    __tablename__ = "patch_ops"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    change_id = Column(String(36), ForeignKey("changes.id"), nullable=False, index=True)
    target_id = Column(String(36), ForeignKey("change_targets.id"), nullable=False)
    op_type = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False)
    previous_snapshot = Column(JSON, nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "change_id": self.change_id,
            "target_id": self.target_id,
            "op_type": self.op_type,
            "payload": self.payload,
            "previous_snapshot": self.previous_snapshot,
            "executed_at": _iso(self.executed_at),
            "created_at": _iso(self.created_at),
        }


class RecordTypeSnapshotModel(Base):
    """Pre-mutation copy of a record type schema, one per (change, record type)."""

    __tablename__ = "record_type_snapshots"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    project_id = Column(String(36), nullable=False)
    change_id = Column(String(36), ForeignKey("changes.id"), nullable=False)
    record_type_key = Column(String(128), nullable=False)
    schema = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "change_id", "record_type_key", name="uq_snapshot_change_rt"
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "change_id": self.change_id,
            "record_type_key": self.record_type_key,
            "schema": self.schema,
            "created_at": _iso(self.created_at),
        }


class GraphPackageInstallModel(Base):
    """Append-only audit row for every successful package install."""

    __tablename__ = "graph_package_installs"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    project_id = Column(String(36), nullable=True)
    package_key = Column(String(128), nullable=False, index=True)
    package_version = Column(String(64), nullable=False)
    checksum = Column(String(64), nullable=False)
    installed_by = Column(String(128), nullable=False)
    manifest = Column(JSON, nullable=False)
    installed_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_graph_package_installs_key_ts", "tenant_id", "package_key", "installed_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "package_key": self.package_key,
            "package_version": self.package_version,
            "checksum": self.checksum,
            "installed_by": self.installed_by,
            "manifest": self.manifest,
            "installed_at": _iso(self.installed_at),
        }


class EnvironmentModel(Base):
    """A deployment environment packages are promoted between."""

    __tablename__ = "environments"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    slug = Column(String(128), nullable=False)
    ordinal = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_environments_slug"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "ordinal": self.ordinal,
            "created_at": _iso(self.created_at),
        }


class PromotionIntentModel(Base):
    """Approval record for promoting one environment's state into another."""

    __tablename__ = "promotion_intents"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    source_environment_id = Column(String(36), ForeignKey("environments.id"), nullable=False)
    target_environment_id = Column(String(36), ForeignKey("environments.id"), nullable=False)
    status = Column(String(32), nullable=False, default="draft")
    diff = Column(JSON, nullable=False, default=dict)
    approved_by = Column(String(128), nullable=True)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "source_environment_id": self.source_environment_id,
            "target_environment_id": self.target_environment_id,
            "status": self.status,
            "diff": self.diff,
            "approved_by": self.approved_by,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class TelemetryEventModel(Base):
    """Persisted record of an emitted domain event (best-effort)."""

    __tablename__ = "telemetry_events"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    ts = Column(DateTime(timezone=True), nullable=False, default=func.now(), index=True)
    event_type = Column(String(128), nullable=False, index=True)
    entity_id = Column(String(256), nullable=False)
    actor = Column(String(128), nullable=True)
    payload = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_telemetry_events_type_ts", "tenant_id", "event_type", "ts"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "ts": _iso(self.ts),
            "event_type": self.event_type,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "payload": self.payload,
        }
