"""
Patch op service.

Guards every patch op before it is stored, so the executor only ever sees
ops that were well-formed at creation time.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..db.models import PatchOpModel
from ..enums import (
    ChangeStatus,
    PATCH_OP_TYPES,
    PatchOpType,
    TargetType,
    VALID_FIELD_TYPES,
)
from ..errors import (
    ConflictError,
    ImmutabilityError,
    NotFoundError,
    ValidationFailureError,
)
from ..storage.port import SchemaStorage
from .payloads import (
    AddFieldPayload,
    PatchOpPayload,
    RemoveFieldPayload,
    RenameFieldPayload,
    SetFieldPayload,
    parse_payload,
)

logger = structlog.get_logger()

CREATABLE_STATUSES = (
    ChangeStatus.DRAFT.value,
    ChangeStatus.IMPLEMENTING.value,
    ChangeStatus.WORKSPACE_RUNNING.value,
    ChangeStatus.VALIDATION_FAILED.value,
)


def _field_key(
    payload: PatchOpPayload, selector: Optional[Dict[str, Any]]
) -> Optional[Tuple[str, str]]:
    """(record type, field) an op touches, or None for file ops."""
    if isinstance(payload, (AddFieldPayload, SetFieldPayload, RemoveFieldPayload)):
        field = payload.field
    elif isinstance(payload, RenameFieldPayload):
        field = payload.old_name
    else:
        return None
    record_type = payload.record_type or (selector or {}).get("recordTypeKey")
    if not record_type:
        return None
    return record_type, field


class PatchOpService:
    """Service for managing PatchOps."""

    def __init__(self, storage: SchemaStorage):
        self.storage = storage

    def add_patch_op(
        self,
        change_id: str,
        target_id: str,
        op_type: str,
        payload: Dict[str, Any],
    ) -> PatchOpModel:
        """Create a new PatchOp on a change's target."""
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise NotFoundError("Change not found")

        if change.status == ChangeStatus.MERGED.value:
            raise ImmutabilityError("Cannot add patch ops to a merged change")

        if change.status not in CREATABLE_STATUSES:
            raise ValidationFailureError(
                f"Cannot add patch ops when change is in '{change.status}' status"
            )

        op_type = getattr(op_type, "value", op_type)
        if op_type not in PATCH_OP_TYPES:
            raise ValidationFailureError(
                f'Invalid op type "{op_type}". Allowed types: {", ".join(PATCH_OP_TYPES)}'
            )

        parsed = parse_payload(op_type, payload)

        target = self.storage.get_change_target_by_id(target_id)
        if not target:
            raise NotFoundError("Target not found")
        if target.change_id != change_id:
            raise ValidationFailureError("Target does not belong to this change")

        if isinstance(parsed, (AddFieldPayload, SetFieldPayload)):
            field_type = parsed.definition.type
            if field_type and field_type not in VALID_FIELD_TYPES:
                raise ValidationFailureError(
                    f'Invalid field type "{field_type}". '
                    f"Allowed types: {', '.join(VALID_FIELD_TYPES)}"
                )

        if op_type != PatchOpType.EDIT_FILE.value and target.type != TargetType.RECORD_TYPE.value:
            raise ValidationFailureError(
                f"{op_type} ops require a record_type target, got '{target.type}'"
            )

        if target.type == TargetType.RECORD_TYPE.value:
            rt_key = (target.selector or {}).get("recordTypeKey")
            if rt_key:
                in_project = self.storage.get_record_type_by_key_and_project(
                    rt_key, change.project_id
                )
                if not in_project and self.storage.get_record_type_by_key(rt_key):
                    raise ValidationFailureError(
                        f'Record type "{rt_key}" belongs to a different project '
                        f"than the change"
                    )

        key = _field_key(parsed, target.selector)
        if key is not None:
            self._guard_duplicate(change_id, key)

        op = self.storage.create_patch_op(
            change_id=change_id,
            target_id=target_id,
            op_type=op_type,
            payload=parsed.to_wire(),
        )
        logger.info(
            "patch_op_created",
            tenant_id=self.storage.ctx.tenant_id,
            change_id=change_id,
            op_id=op.id,
            op_type=op_type,
        )
        return op

    def list_patch_ops(self, change_id: str) -> List[PatchOpModel]:
        """List the PatchOps of a Change in creation order."""
        return self.storage.get_change_patch_ops(change_id)

    def delete_patch_op(self, change_id: str, op_id: str) -> None:
        """Delete a pending PatchOp."""
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise NotFoundError("Change not found")

        if change.status == ChangeStatus.MERGED.value:
            raise ImmutabilityError("Cannot delete patch ops from a merged change")

        # another tenant's op is indistinguishable from a missing one
        op = self.storage.get_patch_op_by_id(op_id)
        if not op:
            raise NotFoundError("Patch op not found")

        if op.change_id != change_id:
            raise ValidationFailureError("Patch op does not belong to this change")

        if op.executed_at is not None:
            raise ImmutabilityError("Cannot delete an executed patch op", 409)

        self.storage.delete_patch_op(op_id)
        logger.info(
            "patch_op_deleted",
            tenant_id=self.storage.ctx.tenant_id,
            change_id=change_id,
            op_id=op_id,
        )

    def _guard_duplicate(self, change_id: str, key: Tuple[str, str]) -> None:
        selectors = {
            t.id: t.selector for t in self.storage.get_change_targets(change_id)
        }
        for existing in self.storage.get_change_patch_ops(change_id):
            payload = parse_payload(existing.op_type, existing.payload)
            if _field_key(payload, selectors.get(existing.target_id)) == key:
                raise ConflictError(
                    f'A pending patch op for field "{key[1]}" on record type '
                    f'"{key[0]}" already exists in this change'
                )
