"""
Schema & Storage Port.

Abstract tenant-scoped persistence interface consumed by every service in
the engine. Implementations bind to exactly one tenant at construction time;
no method accepts a tenant identifier.

Concurrency contract: ``update_record_type_schema`` with an
``expected_version`` is a compare-and-swap, and ``transaction()`` makes all
writes issued inside it commit together or not at all. The patch op
executor and the package installer rely on both.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Dict, List, Optional

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
from ..primitives import TenantContext


class SchemaStorage(ABC):
    """Tenant-scoped typed CRUD for the schema graph."""

    ctx: TenantContext

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Group writes so they commit together or roll back together."""
        pass

    # Projects

    @abstractmethod
    def get_projects(self) -> List[ProjectModel]:
        pass

    @abstractmethod
    def get_project_by_id(self, project_id: str) -> Optional[ProjectModel]:
        pass

    @abstractmethod
    def create_project(self, name: str, description: Optional[str] = None) -> ProjectModel:
        pass

    # Record types

    @abstractmethod
    def get_record_types(self) -> List[RecordTypeModel]:
        pass

    @abstractmethod
    def get_record_type_by_id(self, record_type_id: str) -> Optional[RecordTypeModel]:
        pass

    @abstractmethod
    def get_record_type_by_key(self, key: str) -> Optional[RecordTypeModel]:
        pass

    @abstractmethod
    def get_record_type_by_key_and_project(
        self, key: str, project_id: str
    ) -> Optional[RecordTypeModel]:
        pass

    @abstractmethod
    def get_record_type_by_name(self, name: str) -> Optional[RecordTypeModel]:
        pass

    @abstractmethod
    def create_record_type(
        self,
        key: str,
        name: str,
        project_id: str,
        schema: Dict[str, Any],
        base_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> RecordTypeModel:
        pass

    @abstractmethod
    def update_record_type_schema(
        self,
        record_type_id: str,
        schema: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> RecordTypeModel:
        """Replace a record type's schema and bump its version.

        Raises:
            NotFoundError: no such record type for this tenant
            ConflictError: ``expected_version`` given and stale
        """
        pass

    @abstractmethod
    def update_record_type_status(
        self, record_type_id: str, status: str
    ) -> Optional[RecordTypeModel]:
        pass

    # Changes

    @abstractmethod
    def get_changes(self) -> List[ChangeModel]:
        pass

    @abstractmethod
    def get_changes_by_project(self, project_id: str) -> List[ChangeModel]:
        pass

    @abstractmethod
    def get_change_by_id(self, change_id: str) -> Optional[ChangeModel]:
        pass

    @abstractmethod
    def create_change(
        self,
        title: str,
        project_id: str,
        description: Optional[str] = None,
        base_sha: Optional[str] = None,
        branch_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ChangeModel:
        pass

    @abstractmethod
    def update_change_status(self, change_id: str, status: str) -> Optional[ChangeModel]:
        pass

    # Targets

    @abstractmethod
    def get_change_target_by_id(self, target_id: str) -> Optional[ChangeTargetModel]:
        pass

    @abstractmethod
    def get_change_targets(self, change_id: str) -> List[ChangeTargetModel]:
        pass

    @abstractmethod
    def create_change_target(
        self,
        change_id: str,
        project_id: str,
        type: str,
        selector: Dict[str, Any],
    ) -> ChangeTargetModel:
        pass

    # Patch ops

    @abstractmethod
    def get_patch_op_by_id(self, op_id: str) -> Optional[PatchOpModel]:
        pass

    @abstractmethod
    def get_change_patch_ops(self, change_id: str) -> List[PatchOpModel]:
        """Ops of a change in creation order."""
        pass

    @abstractmethod
    def create_patch_op(
        self,
        change_id: str,
        target_id: str,
        op_type: str,
        payload: Dict[str, Any],
    ) -> PatchOpModel:
        pass

    @abstractmethod
    def delete_patch_op(self, op_id: str) -> None:
        pass

    @abstractmethod
    def stamp_patch_op(
        self,
        op_id: str,
        previous_snapshot: Optional[Dict[str, Any]],
        executed_at: datetime,
    ) -> None:
        """Write ``previous_snapshot`` and ``executed_at`` in one statement."""
        pass

    # Snapshots

    @abstractmethod
    def get_snapshot(
        self, change_id: str, record_type_key: str
    ) -> Optional[RecordTypeSnapshotModel]:
        pass

    @abstractmethod
    def create_snapshot(
        self,
        project_id: str,
        change_id: str,
        record_type_key: str,
        schema: Dict[str, Any],
    ) -> RecordTypeSnapshotModel:
        pass

    # Package installs

    @abstractmethod
    def get_graph_package_installs(self) -> List[GraphPackageInstallModel]:
        pass

    @abstractmethod
    def get_graph_package_install_by_key(
        self, package_key: str
    ) -> Optional[GraphPackageInstallModel]:
        """Most recent install row for ``package_key``."""
        pass

    @abstractmethod
    def create_graph_package_install(
        self,
        package_key: str,
        package_version: str,
        checksum: str,
        installed_by: str,
        manifest: Dict[str, Any],
        project_id: Optional[str] = None,
    ) -> GraphPackageInstallModel:
        pass

    # Environments and promotion intents

    @abstractmethod
    def get_environments(self) -> List[EnvironmentModel]:
        pass

    @abstractmethod
    def get_environment_by_id(self, environment_id: str) -> Optional[EnvironmentModel]:
        pass

    @abstractmethod
    def create_environment(self, name: str, slug: str, ordinal: int = 0) -> EnvironmentModel:
        pass

    @abstractmethod
    def get_promotion_intents(self) -> List[PromotionIntentModel]:
        pass

    @abstractmethod
    def get_promotion_intent_by_id(self, intent_id: str) -> Optional[PromotionIntentModel]:
        pass

    @abstractmethod
    def create_promotion_intent(
        self,
        source_environment_id: str,
        target_environment_id: str,
        created_by: Optional[str] = None,
    ) -> PromotionIntentModel:
        pass

    @abstractmethod
    def update_promotion_intent(
        self,
        intent_id: str,
        status: str,
        approved_by: Optional[str] = None,
    ) -> Optional[PromotionIntentModel]:
        pass

    # Telemetry

    @abstractmethod
    def create_telemetry_event(
        self,
        event_type: str,
        entity_id: str,
        payload: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> TelemetryEventModel:
        pass
