"""
Canonical enums for the change graph engine.

These enums define the allowed values for statuses and vocabularies shared
by changes, targets, patch ops and the graph layer.
"""

from enum import Enum


class ChangeStatus(str, Enum):
    """Lifecycle status of a Change."""

    DRAFT = "Draft"
    IMPLEMENTING = "Implementing"
    WORKSPACE_RUNNING = "WorkspaceRunning"
    VALIDATING = "Validating"
    VALIDATION_FAILED = "ValidationFailed"
    READY = "Ready"
    MERGED = "Merged"


class TargetType(str, Enum):
    """What kind of entity a ChangeTarget points at."""

    RECORD_TYPE = "record_type"
    FORM = "form"
    WORKFLOW = "workflow"
    RULE = "rule"
    SCRIPT = "script"
    FILE = "file"


class PatchOpType(str, Enum):
    """Closed vocabulary of patch op types."""

    SET_FIELD = "set_field"
    ADD_FIELD = "add_field"
    REMOVE_FIELD = "remove_field"
    RENAME_FIELD = "rename_field"
    EDIT_FILE = "edit_file"


class FieldType(str, Enum):
    """Closed vocabulary of record type field types."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    REFERENCE = "reference"
    CHOICE = "choice"
    TEXT = "text"
    DATE = "date"
    DATETIME = "datetime"


class RecordTypeStatus(str, Enum):
    """Publication status of a record type."""

    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"


class NodeType(str, Enum):
    """Kinds of node in the tenant graph."""

    RECORD_TYPE = "record_type"
    WORKFLOW = "workflow"
    FORM = "form"


class EdgeType(str, Enum):
    """Kinds of edge in the tenant graph."""

    INHERITS = "inherits"
    TRIGGERS = "triggers"
    BINDS_TO = "binds_to"


class PromotionIntentStatus(str, Enum):
    """Lifecycle status of a promotion intent."""

    DRAFT = "draft"
    PREVIEWED = "previewed"
    APPROVED = "approved"
    EXECUTED = "executed"
    REJECTED = "rejected"


class ActorKind(str, Enum):
    """Types of actors that can perform work."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


VALID_FIELD_TYPES = tuple(t.value for t in FieldType)
VALID_TARGET_TYPES = tuple(t.value for t in TargetType)
PATCH_OP_TYPES = tuple(t.value for t in PatchOpType)
