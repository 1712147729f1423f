"""Optimize: replace duplicated inline schemas with shared components.

Every inline complex schema is hashed. Hashes seen more than once get a
component under ``components/schemas`` and every occurrence is replaced
with a ``$ref`` to it. Duplicates identical to an existing top-level
component schema are pointed at that component instead. Schemas inside
named component schemas are never extracted.

Replacement runs deepest occurrence first, so inner duplicates inside a
shared schema are already references by the time the outer schema is
turned into a component.

Only "complex" schemas are extracted: compositions, enums, objects,
multi-type and conditional schemas. ``{"type": "string"}`` stays inline.
"""

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from oaskit.core.cancel import CancelToken
from oaskit.core.hashing import hash_schema
from oaskit.core.references import component_reference
from oaskit.core.walker import NodeKind, WalkItem, is_reference, walk

logger = logging.getLogger(__name__)

# (suggested_name, content_hash, locations, schema) -> name to use
NameCallback = Callable[[str, str, list[str], Any], str]

SUGGESTED_NAME_PREFIX = "Schema_"

_COMPLEX_KEYWORDS = (
    "allOf",
    "oneOf",
    "anyOf",
    "not",
    "enum",
    "properties",
    "additionalProperties",
    "patternProperties",
    "dependentSchemas",
    "if",
    "then",
    "else",
)


def is_complex_schema(schema: Any) -> bool:
    """
    Return True if ``schema`` is worth extracting into a component.

    Example:
        is_complex_schema({"type": "string"})  # False
        is_complex_schema({"type": "object", "properties": {"id": {"type": "integer"}}})  # True
    """
    if not isinstance(schema, dict) or is_reference(schema):
        return False
    if any(keyword in schema for keyword in _COMPLEX_KEYWORDS):
        return True

    schema_type = schema.get("type")
    if schema_type == "object":
        return True
    if isinstance(schema_type, list):
        if "object" in schema_type:
            return True
        return len([t for t in schema_type if t != "null"]) > 1
    return False


def suggested_name(content_hash: str) -> str:
    return SUGGESTED_NAME_PREFIX + content_hash[:8]


def ensure_unique_name(name: str, used_names: set[str]) -> str:
    """Suffix ``name`` with ``_1``, ``_2`` ... until it is not in ``used_names``."""
    result = name
    counter = 1
    while result in used_names:
        result = f"{name}_{counter}"
        counter += 1
    return result


@dataclass
class SchemaOccurrence:
    """One inline occurrence of a schema, with the means to replace it."""

    item: WalkItem

    @property
    def pointer(self) -> str:
        return self.item.pointer

    @property
    def depth(self) -> int:
        return self.item.depth


@dataclass
class CollectedSchema:
    """All occurrences of schemas sharing one content hash."""

    content_hash: str
    schema: Any
    occurrences: list[SchemaOccurrence] = field(default_factory=list)

    @property
    def locations(self) -> list[str]:
        return [o.pointer for o in self.occurrences]


def _is_top_level_component_schema(item: WalkItem) -> bool:
    """True for a named component schema and everything nested inside it."""
    return len(item.location) >= 3 and item.location[:2] == ("components", "schemas")


def _catalog_existing(spec: dict) -> dict[str, str]:
    """Map content hash -> name for existing complex top-level schemas."""
    schemas = (spec.get("components") or {}).get("schemas") or {}
    existing: dict[str, str] = {}
    for name, schema in schemas.items():
        if is_complex_schema(schema):
            existing.setdefault(hash_schema(schema), str(name))
    return existing


def collect_inline_schemas(spec: dict, cancel: CancelToken | None = None) -> dict[str, CollectedSchema]:
    """Group every inline complex schema of ``spec`` by content hash, in walk order."""
    collected: dict[str, CollectedSchema] = {}
    for item in walk(spec, cancel=cancel):
        if item.kind != NodeKind.SCHEMA or _is_top_level_component_schema(item):
            continue
        if not is_complex_schema(item.value):
            continue
        content_hash = hash_schema(item.value)
        entry = collected.get(content_hash)
        if entry is None:
            entry = collected[content_hash] = CollectedSchema(content_hash, item.value)
        entry.occurrences.append(SchemaOccurrence(item))
    return collected


def optimize(
    spec: dict,
    name_callback: NameCallback | None = None,
    cancel: CancelToken | None = None,
) -> dict:
    """
    Deduplicate identical inline schemas into shared components.

    Args:
        spec: The OpenAPI specification as a dictionary
        name_callback: Called once per new component with the suggested
                       name, the content hash, the JSON pointers of every
                       occurrence and the schema; returns the name to use.
                       Names are de-conflicted after the callback.
        cancel: Optional cancellation token

    Returns:
        The optimized specification (mutated in-place and returned)

    Raises:
        OperationCancelled: If ``cancel`` is triggered
    """
    existing = _catalog_existing(spec)
    collected = collect_inline_schemas(spec, cancel)

    duplicated = {h: entry for h, entry in collected.items() if len(entry.occurrences) > 1}
    if not duplicated:
        return spec

    schemas_section = (spec.get("components") or {}).get("schemas") or {}
    used_names = {str(name) for name in schemas_section}

    occurrences = [(h, o) for h, entry in duplicated.items() for o in entry.occurrences]
    occurrences.sort(key=lambda pair: pair[1].depth, reverse=True)

    assigned: dict[str, str] = {}
    for content_hash, occurrence in occurrences:
        name = assigned.get(content_hash)
        if name is None:
            name = existing.get(content_hash)
        if name is None:
            entry = duplicated[content_hash]
            name = suggested_name(content_hash)
            if name_callback is not None:
                name = name_callback(name, content_hash, entry.locations, entry.schema) or name
            name = ensure_unique_name(name, used_names)
            used_names.add(name)
            logger.info("Extracting %d occurrences of schema %s as %s", len(entry.occurrences), content_hash, name)
        assigned[content_hash] = name
        occurrence.item.set_value({"$ref": component_reference("schemas", name)})

    new_components = {
        assigned[h]: copy.deepcopy(entry.schema) for h, entry in duplicated.items() if h not in existing
    }
    if new_components:
        spec.setdefault("components", {}).setdefault("schemas", {}).update(new_components)
    return spec
