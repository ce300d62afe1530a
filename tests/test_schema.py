"""Tests for JSON-schema to pydantic model mapping."""

from typing import Any, Optional, Union

import pytest

from chat_bridge.errors import ToolArgumentParseError
from chat_bridge.schema import python_type_for, schema_to_model, validate_arguments


class TestPythonTypeFor:
    """Test mapping JSON schema types to Python types."""

    @pytest.mark.parametrize(
        "json_type, expected",
        [
            ("string", str),
            ("number", Union[int, float]),
            ("integer", Union[int, float]),
            ("boolean", bool),
            ("array", list[Any]),
            ("object", dict[str, Any]),
            ("null", Any),
            (None, Any),
        ],
    )
    def test_mapping(self, json_type, expected):
        """JSON schema types map to Python types."""
        prop = {} if json_type is None else {"type": json_type}
        assert python_type_for(prop) == expected

    def test_nullable_union_uses_concrete_type(self):
        """Type lists with null use the concrete type."""
        assert python_type_for({"type": ["string", "null"]}) is str


class TestSchemaToModel:
    """Test building argument models from tool schemas."""

    SCHEMA = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "Task title"},
            "priority": {"type": "integer"},
            "urgent": {"type": "boolean"},
            "tags": {"type": "array"},
            "meta": {"type": "object"},
        },
        "required": ["title"],
    }

    def test_required_and_optional_fields(self):
        """Required fields have no default and optional ones default to None."""
        model = schema_to_model("create_task", self.SCHEMA)
        fields = model.model_fields

        assert fields["title"].is_required()
        assert fields["title"].annotation is str
        assert not fields["priority"].is_required()
        assert fields["priority"].annotation == Optional[Union[int, float]]
        assert fields["priority"].default is None

    def test_missing_required_field(self):
        """Missing required fields fail validation."""
        model = schema_to_model("create_task", self.SCHEMA)
        with pytest.raises(ToolArgumentParseError):
            validate_arguments(model, "create_task", {"priority": 1})

    def test_wrong_type(self):
        """Wrongly typed values fail validation."""
        model = schema_to_model("create_task", self.SCHEMA)
        with pytest.raises(ToolArgumentParseError):
            validate_arguments(model, "create_task", {"title": "x", "meta": "not an object"})

    def test_unset_optionals_are_not_forwarded(self):
        """Optional fields left out stay out."""
        model = schema_to_model("create_task", self.SCHEMA)
        assert validate_arguments(model, "create_task", {"title": "Mop"}) == {"title": "Mop"}

    def test_values_round_trip(self):
        """Valid arguments come back unchanged."""
        model = schema_to_model("create_task", self.SCHEMA)
        args = {"title": "Mop", "priority": 2, "urgent": True, "tags": ["a"], "meta": {"k": 1}}
        assert validate_arguments(model, "create_task", args) == args

    def test_unknown_keys_are_kept(self):
        """Keys outside the schema are passed through."""
        model = schema_to_model("create_task", self.SCHEMA)
        result = validate_arguments(model, "create_task", {"title": "Mop", "assignee": "Bob"})
        assert result == {"title": "Mop", "assignee": "Bob"}

    def test_awkward_property_names(self):
        """Keywords and non-identifiers are aliased and keep their names."""
        schema = {
            "type": "object",
            "properties": {
                "staff-id": {"type": "string"},
                "model_name": {"type": "string"},
                "class": {"type": "string"},
                "_private": {"type": "string"},
            },
            "required": ["staff-id"],
        }
        model = schema_to_model("weird tool!", schema)
        args = {"staff-id": "s1", "model_name": "m", "class": "c", "_private": "p"}
        assert validate_arguments(model, "weird tool!", args) == args

    @pytest.mark.parametrize("schema", [None, {}, {"type": "object"}])
    def test_empty_schema_accepts_anything(self, schema):
        """Schemas without properties accept any object."""
        model = schema_to_model("noop", schema)
        assert validate_arguments(model, "noop", {"x": 1}) == {"x": 1}
        assert validate_arguments(model, "noop", {}) == {}
