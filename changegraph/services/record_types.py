"""
Record type service.

Creation enforces the tenant-wide structural rules up front: the project
must exist, keys are unique per project, names are unique per tenant, field
types come from the fixed vocabulary and a base type must live in the same
project.
"""

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..db.models import RecordTypeModel
from ..enums import RecordTypeStatus, VALID_FIELD_TYPES
from ..errors import ConflictError, NotFoundError, ValidationFailureError
from ..graph.contracts import RecordTypeSchema
from ..storage.port import SchemaStorage

logger = structlog.get_logger()


class RecordTypeService:
    """Service for managing RecordTypes."""

    def __init__(self, storage: SchemaStorage):
        self.storage = storage

    def create_record_type(
        self,
        key: str,
        name: str,
        project_id: str,
        base_type: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> RecordTypeModel:
        """Create a new RecordType in draft status."""
        if not self.storage.get_project_by_id(project_id):
            raise NotFoundError("Project not found")

        if self.storage.get_record_type_by_key_and_project(key, project_id):
            raise ConflictError(f'Record type with key "{key}" already exists')

        if self.storage.get_record_type_by_name(name):
            raise ConflictError(f'Record type with name "{name}" already exists')

        try:
            parsed = RecordTypeSchema.from_raw(schema)
        except ValidationError as exc:
            raise ValidationFailureError(
                f"Record type schema is malformed ({exc.error_count()} error(s))"
            ) from exc

        for field in parsed.fields:
            if field.type not in VALID_FIELD_TYPES:
                raise ValidationFailureError(
                    f'Invalid field type "{field.type}". '
                    f"Allowed types: {', '.join(VALID_FIELD_TYPES)}"
                )

        if base_type and not self.storage.get_record_type_by_key_and_project(
            base_type, project_id
        ):
            raise NotFoundError(f'Base type "{base_type}" not found')

        record_type = self.storage.create_record_type(
            key=key,
            name=name,
            project_id=project_id,
            schema=parsed.to_wire(),
            base_type=base_type,
            description=description,
        )
        logger.info(
            "record_type_created",
            tenant_id=self.storage.ctx.tenant_id,
            record_type_id=record_type.id,
            key=key,
        )
        return record_type

    def get(self, record_type_id: str) -> Optional[RecordTypeModel]:
        """Get a RecordType by ID."""
        return self.storage.get_record_type_by_id(record_type_id)

    def get_by_key(self, key: str) -> Optional[RecordTypeModel]:
        """Get a RecordType by key."""
        return self.storage.get_record_type_by_key(key)

    def list(self) -> List[RecordTypeModel]:
        """List RecordTypes."""
        return self.storage.get_record_types()

    def activate(self, record_type_id: str) -> RecordTypeModel:
        return self._set_status(record_type_id, RecordTypeStatus.ACTIVE)

    def retire(self, record_type_id: str) -> RecordTypeModel:
        return self._set_status(record_type_id, RecordTypeStatus.RETIRED)

    def _set_status(self, record_type_id: str, status: RecordTypeStatus) -> RecordTypeModel:
        record_type = self.storage.update_record_type_status(record_type_id, status.value)
        if not record_type:
            raise NotFoundError("Record type not found")
        logger.info(
            "record_type_status_changed",
            tenant_id=self.storage.ctx.tenant_id,
            record_type_id=record_type_id,
            status=status.value,
        )
        return record_type
