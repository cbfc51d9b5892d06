"""
Change target service.

Targets are typed pointers from a Change to what it intends to modify. They
may only be added while the change is in Draft, and always inherit the
change's project.
"""

from typing import Any, Dict, List

from ..db.models import ChangeTargetModel
from ..enums import ChangeStatus, TargetType, VALID_TARGET_TYPES
from ..errors import ImmutabilityError, NotFoundError, ValidationFailureError
from ..storage.port import SchemaStorage

# Selector key each target type must carry.
SELECTOR_KEYS: Dict[str, str] = {
    TargetType.RECORD_TYPE.value: "recordTypeKey",
    TargetType.FILE.value: "filePath",
    TargetType.WORKFLOW.value: "workflowKey",
    TargetType.FORM.value: "formKey",
    TargetType.RULE.value: "ruleKey",
    TargetType.SCRIPT.value: "scriptKey",
}


class ChangeTargetService:
    """Service for managing ChangeTargets."""

    def __init__(self, storage: SchemaStorage):
        self.storage = storage

    def add_target(
        self, change_id: str, type: str, selector: Dict[str, Any]
    ) -> ChangeTargetModel:
        """Attach a target to a Draft change."""
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise NotFoundError("Change not found")

        if change.status == ChangeStatus.MERGED.value:
            raise ImmutabilityError("Cannot add targets to a merged change")

        if change.status != ChangeStatus.DRAFT.value:
            raise ValidationFailureError("Change must be in Draft status to add targets")

        type = getattr(type, "value", type)
        if type not in VALID_TARGET_TYPES:
            raise ValidationFailureError(
                f'Invalid target type "{type}". '
                f"Allowed types: {', '.join(VALID_TARGET_TYPES)}"
            )

        selector = dict(selector or {})
        required_key = SELECTOR_KEYS[type]
        if not selector.get(required_key):
            raise ValidationFailureError(
                f"{type} targets require a '{required_key}' in selector"
            )

        return self.storage.create_change_target(
            change_id=change_id,
            project_id=change.project_id,
            type=type,
            selector=selector,
        )

    def list_targets(self, change_id: str) -> List[ChangeTargetModel]:
        """List the targets of a Change."""
        return self.storage.get_change_targets(change_id)
