"""
Changes: reviewable units of schema edits, their targets and patch ops,
and the executor that applies them.
"""

from .executor import ExecutionResult, PatchOpExecutor, execute_patch_ops
from .patch_ops import CREATABLE_STATUSES, PatchOpService
from .payloads import (
    AddFieldPayload,
    EditFilePayload,
    FieldSpec,
    PatchOpPayload,
    RemoveFieldPayload,
    RenameFieldPayload,
    SetFieldPayload,
    parse_payload,
)
from .service import ALLOWED_TRANSITIONS, ChangeService, can_transition
from .targets import SELECTOR_KEYS, ChangeTargetService

__all__ = [
    "ALLOWED_TRANSITIONS",
    "CREATABLE_STATUSES",
    "SELECTOR_KEYS",
    "AddFieldPayload",
    "ChangeService",
    "ChangeTargetService",
    "EditFilePayload",
    "ExecutionResult",
    "FieldSpec",
    "PatchOpExecutor",
    "PatchOpPayload",
    "PatchOpService",
    "RemoveFieldPayload",
    "RenameFieldPayload",
    "SetFieldPayload",
    "can_transition",
    "execute_patch_ops",
    "parse_payload",
]
