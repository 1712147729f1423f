"""Stable structural hashing of schema subtrees."""

import hashlib
import json
from typing import Any

# Keywords whose values are maps keyed by user-chosen names, not schema objects
_NAMED_SCHEMA_MAPS = frozenset(
    {"properties", "patternProperties", "dependentSchemas", "$defs", "definitions"}
)

# Keywords whose values are instance data, hashed without dropping extensions
_LITERAL_KEYWORDS = frozenset({"enum", "const", "default", "example", "examples"})


def _literal(value: Any) -> Any:
    """Instance data with mapping keys as strings, so mixed key types still sort."""
    if isinstance(value, dict):
        return {str(key): _literal(child) for key, child in value.items()}
    if isinstance(value, list):
        return [_literal(item) for item in value]
    return value


def _canonical(value: Any) -> Any:
    """Drop ``x-`` extensions from schema objects, keeping names and literal data."""
    if isinstance(value, dict):
        result = {}
        for key, child in value.items():
            key = str(key)
            if key.startswith("x-"):
                continue
            if key in _NAMED_SCHEMA_MAPS and isinstance(child, dict):
                result[key] = {str(name): _canonical(sub) for name, sub in child.items()}
            elif key in _LITERAL_KEYWORDS:
                result[key] = _literal(child)
            else:
                result[key] = _canonical(child)
        return result
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    return value


def hash_schema(schema: Any) -> str:
    """
    Compute a stable hash of a schema subtree.

    Mapping key order does not affect the result and ``x-`` extensions are
    ignored, so the same schema written in two files hashes identically.
    Sequence order is significant.

    Args:
        schema: A schema dict, boolean schema, or any JSON-like value

    Returns:
        A 16 character hexadecimal digest

    Example:
        hash_schema({"type": "string", "format": "uuid"}) == hash_schema(
            {"format": "uuid", "type": "string", "x-internal": True}
        )  # True
    """
    canonical = json.dumps(
        _canonical(schema),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.blake2b(canonical.encode("utf-8"), digest_size=8).hexdigest()
