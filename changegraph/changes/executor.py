"""
Patch Op Executor.

Applies every patch op of a change in three strictly separated phases:

1. Load      read-only: resolve the change, its targets and record types,
             check project consistency, collect base-type protected fields
2. Transform pure: apply each op to a value copy of the affected schema
3. Persist   snapshot originals, write mutated schemas, stamp ops

No write happens unless every op in the batch transforms cleanly. Persist
runs inside one storage transaction and compare-and-swaps each record type
on the version read during Load, so a concurrent merge that touched the same
record type makes this batch fail without writing anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

import structlog

from ..enums import ChangeStatus, PatchOpType, TargetType, VALID_FIELD_TYPES
from ..errors import ServiceError, ValidationFailureError
from ..graph.contracts import FieldDefinition, RecordTypeSchema
from ..primitives import utc_now
from ..storage.port import SchemaStorage
from .payloads import (
    AddFieldPayload,
    EditFilePayload,
    PatchOpPayload,
    RemoveFieldPayload,
    RenameFieldPayload,
    SetFieldPayload,
    parse_payload,
)

logger = structlog.get_logger()


@dataclass
class ExecutionResult:
    """Outcome of executing a change's patch ops."""

    success: bool
    applied_count: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "appliedCount": self.applied_count}
        return {"success": False, "error": self.error}


class OpRejected(Exception):
    """A single op cannot be applied; the whole batch is abandoned."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class LoadedRecordType:
    """A record type as read during Load."""

    id: str
    key: str
    project_id: str
    base_type: Optional[str]
    version: int
    original: RecordTypeSchema
    protected: Set[str] = field(default_factory=set)


@dataclass
class PlannedOp:
    """An op resolved against its target, ready to transform."""

    op_id: str
    op_type: str
    payload: PatchOpPayload
    record_type_key: Optional[str]


def _check_field_type(field_type: Optional[str]) -> None:
    if field_type and field_type not in VALID_FIELD_TYPES:
        raise OpRejected(f'Invalid field type "{field_type}"')


def _apply_add_field(
    schema: RecordTypeSchema, payload: AddFieldPayload, rt: LoadedRecordType
) -> None:
    if schema.find(payload.field) is not None:
        raise OpRejected(
            f'Field "{payload.field}" already exists on record type "{rt.key}"'
        )
    _check_field_type(payload.definition.type)
    schema.fields.append(
        FieldDefinition(
            name=payload.field,
            type=payload.definition.type or "string",
            required=payload.definition.required,
        )
    )


def _apply_set_field(
    schema: RecordTypeSchema, payload: SetFieldPayload, rt: LoadedRecordType
) -> None:
    _check_field_type(payload.definition.type)
    idx = schema.find(payload.field)
    if idx is None:
        schema.fields.append(
            FieldDefinition(
                name=payload.field,
                type=payload.definition.type or "string",
                required=payload.definition.required,
            )
        )
        return

    existing = schema.fields[idx]
    if (
        payload.field in rt.protected
        and existing.required
        and payload.definition.required is False
    ):
        raise OpRejected(
            f'Field "{payload.field}" is protected by base type "{rt.base_type}" '
            f"and cannot have required weakened"
        )
    schema.fields[idx] = existing.model_copy(
        update={
            "type": payload.definition.type or existing.type,
            "required": (
                payload.definition.required
                if payload.definition.required is not None
                else existing.required
            ),
        }
    )


def _apply_remove_field(
    schema: RecordTypeSchema, payload: RemoveFieldPayload, rt: LoadedRecordType
) -> None:
    if payload.field in rt.protected:
        raise OpRejected(
            f'Field "{payload.field}" is protected by base type "{rt.base_type}" '
            f"and cannot be removed"
        )
    idx = schema.find(payload.field)
    if idx is None:
        raise OpRejected(f'Field "{payload.field}" not found on record type "{rt.key}"')
    del schema.fields[idx]


def _apply_rename_field(
    schema: RecordTypeSchema, payload: RenameFieldPayload, rt: LoadedRecordType
) -> None:
    if payload.old_name in rt.protected:
        raise OpRejected(
            f'Field "{payload.old_name}" is protected by base type "{rt.base_type}" '
            f"and cannot be renamed"
        )
    idx = schema.find(payload.old_name)
    if idx is None:
        raise OpRejected(
            f'Field "{payload.old_name}" not found on record type "{rt.key}"'
        )
    if schema.find(payload.new_name) is not None:
        raise OpRejected(
            f'Field "{payload.new_name}" already exists on record type "{rt.key}"'
        )
    schema.fields[idx] = schema.fields[idx].model_copy(update={"name": payload.new_name})


SchemaTransform = Callable[[RecordTypeSchema, Any, LoadedRecordType], None]

# Every schema-mutating payload type maps to exactly one transform;
# EditFilePayload is the only payload without one.
SCHEMA_TRANSFORMS: Dict[type, SchemaTransform] = {
    AddFieldPayload: _apply_add_field,
    SetFieldPayload: _apply_set_field,
    RemoveFieldPayload: _apply_remove_field,
    RenameFieldPayload: _apply_rename_field,
}


class PatchOpExecutor:
    """Executes all pending patch ops of one change, all or nothing."""

    def __init__(self, storage: SchemaStorage):
        self.storage = storage

    def execute(self, change_id: str) -> ExecutionResult:
        log = logger.bind(tenant_id=self.storage.ctx.tenant_id, change_id=change_id)
        try:
            result = self._execute(change_id)
        except OpRejected as exc:
            log.warning("patch_ops_rejected", error=exc.message)
            return ExecutionResult(success=False, error=exc.message)

        log.info("patch_ops_executed", applied_count=result.applied_count)
        return result

    # ------------------------------------------------------------------

    def _execute(self, change_id: str) -> ExecutionResult:
        # Phase 1: Load
        change = self.storage.get_change_by_id(change_id)
        if not change:
            raise OpRejected("Change not found")
        if change.status == ChangeStatus.MERGED.value:
            raise OpRejected("Cannot execute a merged change")

        ops = self.storage.get_change_patch_ops(change_id)
        if not ops:
            return ExecutionResult(success=True, applied_count=0)

        if any(op.executed_at is not None for op in ops):
            raise OpRejected("Change contains already-executed ops")

        record_types: Dict[str, LoadedRecordType] = {}
        plan: List[PlannedOp] = []
        targets: Dict[str, Any] = {}

        for op in ops:
            target = targets.get(op.target_id)
            if target is None:
                target = self.storage.get_change_target_by_id(op.target_id)
                if not target:
                    raise OpRejected(f"Target {op.target_id} not found")
                targets[op.target_id] = target

            try:
                payload = parse_payload(op.op_type, op.payload)
            except ValidationFailureError as exc:
                raise OpRejected(exc.message)

            rt_key = None
            if op.op_type != PatchOpType.EDIT_FILE.value:
                if target.type != TargetType.RECORD_TYPE.value:
                    raise OpRejected(
                        f"{op.op_type} requires a record_type target, "
                        f"got {target.type} target {target.id}"
                    )
                rt_key = (target.selector or {}).get("recordTypeKey")
                if not rt_key:
                    raise OpRejected(f"Target {target.id} has no recordTypeKey")
                if rt_key not in record_types:
                    record_types[rt_key] = self._load_record_type(rt_key, change.project_id)

            plan.append(
                PlannedOp(
                    op_id=op.id,
                    op_type=op.op_type,
                    payload=payload,
                    record_type_key=rt_key,
                )
            )

        self._load_protected_fields(record_types)

        # Phase 2: Transform (pure, no writes)
        mutated: Dict[str, RecordTypeSchema] = {
            key: rt.original.clone() for key, rt in record_types.items()
        }
        for planned in plan:
            if isinstance(planned.payload, EditFilePayload):
                continue
            transform = SCHEMA_TRANSFORMS.get(type(planned.payload))
            if transform is None:
                raise OpRejected(f"Unknown op type: {planned.op_type}")
            rt = record_types[planned.record_type_key]
            transform(mutated[rt.key], planned.payload, rt)

        # Phase 3: Persist
        try:
            self._persist(change, record_types, mutated, plan)
        except ServiceError as exc:
            raise OpRejected(exc.message)
        except Exception as exc:
            logger.exception("patch_ops_persist_error", change_id=change.id, error=str(exc))
            raise OpRejected(f"Persist failed: {exc}")

        return ExecutionResult(success=True, applied_count=len(plan))

    def _load_record_type(self, key: str, project_id: str) -> LoadedRecordType:
        rt = self.storage.get_record_type_by_key_and_project(key, project_id)
        if not rt:
            elsewhere = self.storage.get_record_type_by_key(key)
            if elsewhere:
                raise OpRejected(
                    f'Record type "{key}" belongs to project {elsewhere.project_id}, '
                    f"but change belongs to project {project_id}"
                )
            raise OpRejected(f'Record type "{key}" not found')
        return LoadedRecordType(
            id=rt.id,
            key=rt.key,
            project_id=rt.project_id,
            base_type=rt.base_type,
            version=rt.version,
            original=RecordTypeSchema.from_raw(rt.schema),
        )

    def _load_protected_fields(self, record_types: Dict[str, LoadedRecordType]) -> None:
        for rt in record_types.values():
            if not rt.base_type:
                continue
            base = self.storage.get_record_type_by_key_and_project(
                rt.base_type, rt.project_id
            )
            if base:
                rt.protected = set(RecordTypeSchema.from_raw(base.schema).field_names())

    def _persist(
        self,
        change,
        record_types: Dict[str, LoadedRecordType],
        mutated: Dict[str, RecordTypeSchema],
        plan: List[PlannedOp],
    ) -> None:
        now = utc_now()
        originals = {key: rt.original.to_wire() for key, rt in record_types.items()}

        with self.storage.transaction():
            for key, rt in record_types.items():
                # one snapshot per (change, record type), first execution wins
                if not self.storage.get_snapshot(change.id, key):
                    self.storage.create_snapshot(
                        project_id=change.project_id,
                        change_id=change.id,
                        record_type_key=key,
                        schema=originals[key],
                    )
                self.storage.update_record_type_schema(
                    rt.id, mutated[key].to_wire(), expected_version=rt.version
                )

            for planned in plan:
                previous = (
                    None
                    if planned.record_type_key is None
                    else originals[planned.record_type_key]
                )
                self.storage.stamp_patch_op(planned.op_id, previous, now)


def execute_patch_ops(storage: SchemaStorage, change_id: str) -> ExecutionResult:
    """Executor entry point."""
    return PatchOpExecutor(storage).execute(change_id)
