"""
Change lifecycle service.

Owns the Change state machine. ``Merged`` is terminal: once a change is
merged no further status transition succeeds. ``merge_change`` is the
composite operation that runs the patch op executor and only advances the
change to ``Merged`` when every op applied.
"""

from typing import Dict, List, Optional, Tuple

import structlog

from ..enums import ChangeStatus
from ..errors import (
    ImmutabilityError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailureError,
)
from ..events import DomainEvent, DomainEventType, EventBus
from ..db.models import ChangeModel
from ..storage.port import SchemaStorage
from .executor import PatchOpExecutor

logger = structlog.get_logger()


ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    ChangeStatus.DRAFT.value: (ChangeStatus.IMPLEMENTING.value,),
    ChangeStatus.IMPLEMENTING.value: (ChangeStatus.WORKSPACE_RUNNING.value,),
    ChangeStatus.WORKSPACE_RUNNING.value: (ChangeStatus.VALIDATING.value,),
    ChangeStatus.VALIDATING.value: (
        ChangeStatus.READY.value,
        ChangeStatus.VALIDATION_FAILED.value,
    ),
    ChangeStatus.VALIDATION_FAILED.value: (ChangeStatus.WORKSPACE_RUNNING.value,),
    ChangeStatus.READY.value: (
        ChangeStatus.MERGED.value,
        ChangeStatus.VALIDATION_FAILED.value,
    ),
    # Merged is terminal
}


def can_transition(current: str, new: str) -> bool:
    """Whether ``current -> new`` is an edge of the change state machine."""
    return new in ALLOWED_TRANSITIONS.get(current, ())


class ChangeService:
    """Service for managing Changes."""

    def __init__(
        self,
        storage: SchemaStorage,
        bus: Optional[EventBus] = None,
        executor: Optional[PatchOpExecutor] = None,
    ):
        self.storage = storage
        self.bus = bus
        self.executor = executor or PatchOpExecutor(storage)

    def create_change(
        self,
        title: str,
        project_id: str,
        description: Optional[str] = None,
        base_sha: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> ChangeModel:
        """Create a new Change in Draft."""
        if not self.storage.get_project_by_id(project_id):
            raise NotFoundError("Project not found")

        change = self.storage.create_change(
            title=title,
            project_id=project_id,
            description=description,
            base_sha=base_sha,
            branch_name=branch_name,
            created_by=self.storage.ctx.actor_id,
        )
        logger.info(
            "change_created",
            tenant_id=self.storage.ctx.tenant_id,
            change_id=change.id,
            project_id=project_id,
        )
        return change

    def get(self, change_id: str) -> Optional[ChangeModel]:
        """Get a Change by ID."""
        return self.storage.get_change_by_id(change_id)

    def list(self, project_id: Optional[str] = None) -> List[ChangeModel]:
        """List Changes, optionally for one project."""
        if project_id:
            return self.storage.get_changes_by_project(project_id)
        return self.storage.get_changes()

    def update_status(self, change_id: str, new_status: str) -> ChangeModel:
        """Move a Change along the state machine.

        Raises:
            NotFoundError: change does not exist
            ImmutabilityError: change is already Merged
            InvalidTransitionError: ``new_status`` is not reachable from the
                current status
        """
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise NotFoundError("Change not found")

        if change.status == ChangeStatus.MERGED.value:
            raise ImmutabilityError("Cannot modify a merged change")

        new_status = getattr(new_status, "value", new_status)
        if not can_transition(change.status, new_status):
            raise InvalidTransitionError(
                f"Invalid status transition from '{change.status}' to '{new_status}'"
            )

        return self._set_status(change, new_status)

    def merge_change(self, change_id: str) -> ChangeModel:
        """Execute every patch op of a Change, then mark it Merged.

        On executor failure the change is forced to ValidationFailed and a
        422 ValidationFailureError carrying the executor's message is raised.
        """
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise NotFoundError("Change not found")

        if change.status == ChangeStatus.MERGED.value:
            raise ImmutabilityError("Change is already merged")

        result = self.executor.execute(change_id)

        if not result.success:
            self._set_status(change, ChangeStatus.VALIDATION_FAILED.value)
            self._emit(
                DomainEvent(
                    DomainEventType.CHANGE_MERGE_FAILED,
                    "failed",
                    change_id,
                    error={"message": result.error},
                )
            )
            raise ValidationFailureError(f"Execution failed: {result.error}", 422)

        merged = self._set_status(change, ChangeStatus.MERGED.value, announce=False)
        self._emit(
            DomainEvent(
                DomainEventType.CHANGE_MERGED,
                "merged",
                change_id,
                metadata={"appliedCount": result.applied_count},
            )
        )
        return merged

    def _set_status(
        self, change: ChangeModel, new_status: str, announce: bool = True
    ) -> ChangeModel:
        old_status = change.status
        updated = self.storage.update_change_status(change.id, new_status)
        if not updated:
            raise NotFoundError("Change not found")

        logger.info(
            "change_status_changed",
            tenant_id=self.storage.ctx.tenant_id,
            change_id=change.id,
            from_status=old_status,
            to_status=new_status,
        )
        if announce:
            self._emit(
                DomainEvent(
                    DomainEventType.CHANGE_STATUS_CHANGED,
                    new_status,
                    change.id,
                    metadata={"from": old_status, "to": new_status},
                )
            )
        return updated

    def _emit(self, event: DomainEvent) -> None:
        if self.bus is not None:
            self.bus.emit(self.storage, event)
