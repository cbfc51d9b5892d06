"""Tests for the error taxonomy and the patch op payload union."""

import pytest

from changegraph.changes.payloads import (
    AddFieldPayload,
    EditFilePayload,
    RenameFieldPayload,
    parse_payload,
)
from changegraph.errors import (
    ConflictError,
    ForbiddenError,
    ImmutabilityError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
    ValidationFailureError,
)


class TestErrors:
    @pytest.mark.parametrize(
        "error_cls,code,status",
        [
            (NotFoundError, "NOT_FOUND", 404),
            (InvalidTransitionError, "INVALID_TRANSITION", 400),
            (ConflictError, "CONFLICT", 409),
            (ValidationFailureError, "VALIDATION_FAILED", 400),
            (ImmutabilityError, "IMMUTABILITY_VIOLATION", 400),
            (ForbiddenError, "FORBIDDEN", 403),
        ],
    )
    def test_codes_and_statuses(self, error_cls, code, status):
        error = error_cls("something went wrong")
        assert isinstance(error, ServiceError)
        assert error.to_dict() == {
            "error": code,
            "status_code": status,
            "message": "something went wrong",
        }
        assert str(error) == "something went wrong"

    def test_status_override(self):
        assert ImmutabilityError("Cannot delete an executed patch op", 409).status_code == 409


class TestParsePayload:
    def test_add_field(self):
        payload = parse_payload(
            "add_field",
            {"recordType": "incident", "field": "priority", "definition": {"type": "choice"}},
        )
        assert isinstance(payload, AddFieldPayload)
        assert payload.record_type == "incident"
        assert payload.definition.type == "choice"
        assert payload.definition.required is None

    def test_snake_case_accepted(self):
        payload = parse_payload("rename_field", {"old_name": "a", "new_name": "b"})
        assert isinstance(payload, RenameFieldPayload)
        assert payload.to_wire() == {"oldName": "a", "newName": "b"}

    def test_edit_file_is_opaque(self):
        payload = parse_payload("edit_file", {"filePath": "src/app.py", "diff": "@@"})
        assert isinstance(payload, EditFilePayload)
        assert payload.file_path == "src/app.py"

    def test_stored_discriminator_ignored(self):
        payload = parse_payload("remove_field", {"op_type": "add_field", "field": "x"})
        assert payload.op_type == "remove_field"

    def test_unknown_op_type(self):
        with pytest.raises(ValidationFailureError) as exc_info:
            parse_payload("drop_field", {"field": "x"})
        assert exc_info.value.message == "Unknown op type: drop_field"

    @pytest.mark.parametrize(
        "op_type,raw",
        [
            ("add_field", {"field": "x"}),
            ("add_field", {"field": "", "definition": {}}),
            ("set_field", None),
            ("rename_field", {"oldName": "a", "newName": ""}),
            ("remove_field", {"field": "x", "extra": 1}),
        ],
    )
    def test_malformed(self, op_type, raw):
        with pytest.raises(ValidationFailureError) as exc_info:
            parse_payload(op_type, raw)
        assert exc_info.value.message.startswith(f"{op_type} requires")
