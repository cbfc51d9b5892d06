"""
Patch op payloads.

A closed tagged union: each op type has exactly one payload shape, and
``parse_payload`` is the only way raw JSON becomes a payload object.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..enums import PatchOpType
from ..errors import ValidationFailureError


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Stored form of the payload (camelCase, no discriminator)."""
        return self.model_dump(
            by_alias=True, mode="json", exclude_none=True, exclude={"op_type"}
        )


class FieldSpec(_Payload):
    type: Optional[str] = None
    required: Optional[bool] = None


class AddFieldPayload(_Payload):
    op_type: Literal["add_field"] = "add_field"
    record_type: Optional[str] = None
    field: str = Field(min_length=1)
    definition: FieldSpec


class SetFieldPayload(_Payload):
    op_type: Literal["set_field"] = "set_field"
    record_type: Optional[str] = None
    field: str = Field(min_length=1)
    definition: FieldSpec


class RemoveFieldPayload(_Payload):
    op_type: Literal["remove_field"] = "remove_field"
    record_type: Optional[str] = None
    field: str = Field(min_length=1)


class RenameFieldPayload(_Payload):
    op_type: Literal["rename_field"] = "rename_field"
    record_type: Optional[str] = None
    old_name: str = Field(min_length=1)
    new_name: str = Field(min_length=1)


class EditFilePayload(_Payload):
    op_type: Literal["edit_file"] = "edit_file"
    file_path: Optional[str] = None
    diff: Optional[str] = None


PatchOpPayload = Annotated[
    Union[
        AddFieldPayload,
        SetFieldPayload,
        RemoveFieldPayload,
        RenameFieldPayload,
        EditFilePayload,
    ],
    Field(discriminator="op_type"),
]

_payload_adapter = TypeAdapter(PatchOpPayload)

_REQUIREMENTS = {
    PatchOpType.ADD_FIELD.value: "add_field requires field and definition",
    PatchOpType.SET_FIELD.value: "set_field requires field and definition",
    PatchOpType.REMOVE_FIELD.value: "remove_field requires field",
    PatchOpType.RENAME_FIELD.value: "rename_field requires oldName and newName",
    PatchOpType.EDIT_FILE.value: "edit_file payload is malformed",
}


def parse_payload(op_type: str, raw: Optional[Dict[str, Any]]) -> PatchOpPayload:
    """Parse a stored or submitted payload for ``op_type``.

    Raises:
        ValidationFailureError: unknown op type or a payload that does not
            match the op type's shape.
    """
    if op_type not in _REQUIREMENTS:
        raise ValidationFailureError(f"Unknown op type: {op_type}")

    data = dict(raw or {})
    data.pop("op_type", None)
    data["opType"] = op_type
    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as exc:
        raise ValidationFailureError(
            f"{_REQUIREMENTS[op_type]} ({exc.error_count()} payload error(s))"
        ) from exc
