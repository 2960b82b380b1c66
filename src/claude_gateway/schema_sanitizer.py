"""JSON-Schema sanitation for upstreams that accept only a strict subset."""

from typing import Any, Dict, Optional

UNSUPPORTED_SCHEMA_KEYWORDS = frozenset({
    "$schema",
    "$ref",
    "$defs",
    "definitions",
    "anyOf",
    "allOf",
    "oneOf",
    "not",
    "if",
    "then",
    "else",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "multipleOf",
    "propertyNames",
    "patternProperties",
    "unevaluatedProperties",
    "dependentSchemas",
    "dependentRequired",
    "minProperties",
    "maxProperties",
    "contains",
    "minContains",
    "maxContains",
    "unevaluatedItems",
    "prefixItems",
    "uniqueItems",
    "contentEncoding",
    "contentMediaType",
    "contentSchema",
    "const",
    "deprecated",
    "readOnly",
    "writeOnly",
    "examples",
    "default",
})


def sanitize_schema(schema: Any) -> Any:
    """Return a copy of ``schema`` without unsupported keywords.

    Nested schemas are cleaned recursively. Keys of ``properties`` are property
    names, not keywords, so they are kept even if they collide with a removed
    keyword (a property called ``default`` survives).
    """
    if isinstance(schema, list):
        return [sanitize_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in UNSUPPORTED_SCHEMA_KEYWORDS:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: sanitize_schema(prop) for name, prop in value.items()}
        else:
            cleaned[key] = sanitize_schema(value)
    return cleaned


def sanitize_tool_parameters(parameters: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Sanitise a tool's ``parameters`` schema; ``None`` passes through."""
    if parameters is None:
        return None
    return sanitize_schema(parameters)
