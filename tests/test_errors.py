"""Unit tests for notetree.engine.errors — Error hierarchy & serialization."""

import json
import pytest

from notetree.engine.errors import (
    NoteTreeConfigError,
    NoteTreeConflictError,
    NoteTreeError,
    NoteTreeNetworkError,
    NoteTreeNotFoundError,
    NoteTreePartialBatchError,
    NoteTreeServerError,
    NoteTreeValidationError,
    error_for_status,
)


class TestNoteTreeError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = NoteTreeError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "NoteTreeError"
        assert err.operation is None
        assert err.entity_id is None

    def test_context_fields(self):
        err = NoteTreeError("fail", operation="delete", entity_kind="folder", entity_id="notes")
        assert err.operation == "delete"
        assert err.entity_kind == "folder"
        assert err.entity_id == "notes"

    def test_to_dict(self):
        err = NoteTreeError("fail", operation="move", entity_id="doc-1", attempt=2)
        d = err.to_dict()
        assert d["error_type"] == "NoteTreeError"
        assert d["message"] == "fail"
        assert d["operation"] == "move"
        assert d["entity_id"] == "doc-1"
        assert d["context"] == {"attempt": "2"}
        assert "timestamp" in d

    def test_to_json(self):
        parsed = json.loads(NoteTreeError("fail").to_json())
        assert parsed["error_type"] == "NoteTreeError"
        assert parsed["message"] == "fail"

    def test_repr(self):
        err = NoteTreeError("fail", operation="rename", entity_id="x")
        assert repr(err) == "NoteTreeError: fail | operation=rename | entity_id=x"


class TestSubclasses:

    def test_validation_field(self):
        err = NoteTreeValidationError("Title must not be empty", field="title")
        assert err.field == "title"
        assert err.to_dict()["field"] == "title"
        assert isinstance(err, NoteTreeError)

    def test_network_url(self):
        err = NoteTreeNetworkError("timeout", url="/api/markdown")
        assert err.url == "/api/markdown"

    def test_server_status(self):
        err = NoteTreeServerError("boom", status_code=500, response_body="{}")
        assert err.status_code == 500
        assert err.response_body == "{}"
        assert err.to_dict()["status_code"] == 500

    def test_not_found_default_status(self):
        err = NoteTreeNotFoundError("gone")
        assert err.status_code == 404
        assert isinstance(err, NoteTreeServerError)

    def test_conflict_default_status(self):
        assert NoteTreeConflictError("taken").status_code == 409

    def test_partial_batch(self):
        err = NoteTreePartialBatchError("1 of 3 failed", failed_ids=["a"], total=3)
        assert err.failed_ids == ["a"]
        assert err.total == 3
        d = err.to_dict()
        assert d["failed_ids"] == ["a"]
        assert d["total"] == 3

    def test_config_error_is_base(self):
        assert isinstance(NoteTreeConfigError("bad yaml"), NoteTreeError)


class TestErrorForStatus:

    @pytest.mark.parametrize(
        "status, cls",
        [
            (404, NoteTreeNotFoundError),
            (409, NoteTreeConflictError),
            (500, NoteTreeServerError),
            (422, NoteTreeServerError),
        ],
    )
    def test_mapping(self, status, cls):
        err = error_for_status(status, "msg", operation="op")
        assert type(err) is cls
        assert err.status_code == status
        assert err.operation == "op"
