"""
JSON-schema to typed-argument mapping.

Tool providers describe their parameters with a JSON-schema-like
``inputSchema``. Before a tool runs, the model's arguments are validated
against a pydantic model derived from that schema:

    string            -> str
    number | integer  -> int | float
    boolean           -> bool
    array             -> list[Any]
    object            -> dict[str, Any]
    anything else     -> Any

Properties not listed in ``required`` are optional and are not forwarded
when the model leaves them out. Keys outside ``properties`` are kept.
"""

from __future__ import annotations

import keyword
import re
from typing import Any, Final, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from chat_bridge.errors import ToolArgumentParseError

__all__ = ["JSON_TYPE_MAP", "python_type_for", "schema_to_model", "validate_arguments"]

JSON_TYPE_MAP: Final[dict[str, Any]] = {
    "string": str,
    "number": Union[int, float],
    "integer": Union[int, float],
    "boolean": bool,
    "array": list[Any],
    "object": dict[str, Any],
}


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())


def python_type_for(prop: dict[str, Any]) -> Any:
    json_type = prop.get("type")
    # ["string", "null"] style unions: use the first concrete type.
    if isinstance(json_type, list):
        concrete = [t for t in json_type if t != "null"]
        json_type = concrete[0] if concrete else None
    return JSON_TYPE_MAP.get(json_type, Any)


def _model_name(tool_name: str) -> str:
    cleaned = re.sub(r"\W+", "_", tool_name).strip("_") or "tool"
    return f"{cleaned}_args"


def schema_to_model(tool_name: str, schema: Optional[dict[str, Any]]) -> type[BaseModel]:
    """Build a pydantic model for a tool's input schema. Pure: no I/O."""
    schema = schema or {}
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    fields: dict[str, Any] = {}
    for index, (key, prop) in enumerate(properties.items()):
        prop = prop if isinstance(prop, dict) else {}
        py_type = python_type_for(prop)
        description = prop.get("description")
        # Schema keys are not always valid (or safe) attribute names; keep them as aliases.
        attr = key if _usable_attribute(key) else f"field_{index}"
        if key in required:
            fields[attr] = (py_type, Field(..., alias=key, description=description))
        else:
            fields[attr] = (Optional[py_type], Field(None, alias=key, description=description))

    return create_model(_model_name(tool_name), __base__=ToolArguments, **fields)


def _usable_attribute(name: str) -> bool:
    return (
        name.isidentifier()
        and not keyword.iskeyword(name)
        and not name.startswith("_")
        and not hasattr(BaseModel, name)
    )


def validate_arguments(model: type[BaseModel], tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Validate raw arguments and return the typed values to send to the tool."""
    try:
        parsed = model.model_validate(arguments)
    except ValidationError as exc:
        raise ToolArgumentParseError(f"Invalid arguments for tool {tool_name!r}: {exc}", exc) from exc
    return parsed.model_dump(by_alias=True, exclude_unset=True)
