"""Sanitize: strip extensions and unknown properties, then clean.

Extension handling is driven by SanitizeOptions.extension_patterns:

- not set, or both lists empty: every ``x-`` extension is removed
- ``keep`` only: extensions matching a keep pattern survive
- ``remove`` only: extensions matching a remove pattern are removed
- both: extensions matching a remove pattern are removed unless a keep
  pattern also matches them

Patterns are shell-style globs (``x-speakeasy-*``). Invalid patterns and
patterns that match nothing produce warnings, not errors.

Unknown properties are keys an object of that kind does not define in
OpenAPI 3.0/3.1/3.2 (extensions excepted). Finally unused components are
removed with clean() unless ``keep_unused_components`` is set.
"""

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from oaskit.config import ExtensionFilter, SanitizeOptions
from oaskit.core.cancel import CancelToken
from oaskit.core.walker import NodeKind, WalkItem, is_reference, walk
from oaskit.transformers.clean import clean

logger = logging.getLogger(__name__)

_SCHEMA_KEYWORDS = frozenset(
    {
        # core and applicators
        "$schema", "$id", "$ref", "$anchor", "$dynamicRef", "$dynamicAnchor", "$vocabulary",
        "$comment", "$defs", "definitions", "$recursiveRef", "$recursiveAnchor",
        "allOf", "anyOf", "oneOf", "not", "if", "then", "else", "dependentSchemas",
        "prefixItems", "items", "additionalItems", "contains", "properties",
        "patternProperties", "additionalProperties", "propertyNames",
        "unevaluatedItems", "unevaluatedProperties",
        # validation
        "type", "enum", "const", "multipleOf", "maximum", "exclusiveMaximum", "minimum",
        "exclusiveMinimum", "maxLength", "minLength", "pattern", "maxItems", "minItems",
        "uniqueItems", "maxContains", "minContains", "maxProperties", "minProperties",
        "required", "dependentRequired", "dependencies",
        # meta-data, format and content
        "title", "description", "default", "deprecated", "readOnly", "writeOnly", "examples",
        "format", "contentEncoding", "contentMediaType", "contentSchema",
        # OpenAPI
        "nullable", "discriminator", "xml", "externalDocs", "example",
    }
)

KNOWN_FIELDS: dict[NodeKind, frozenset[str]] = {
    NodeKind.DOCUMENT: frozenset(
        {"openapi", "$self", "info", "jsonSchemaDialect", "servers", "paths", "webhooks",
         "components", "security", "tags", "externalDocs"}
    ),
    NodeKind.INFO: frozenset(
        {"title", "summary", "description", "termsOfService", "contact", "license", "version"}
    ),
    NodeKind.CONTACT: frozenset({"name", "url", "email"}),
    NodeKind.LICENSE: frozenset({"name", "identifier", "url"}),
    NodeKind.EXTERNAL_DOCS: frozenset({"description", "url"}),
    NodeKind.TAG: frozenset({"name", "summary", "description", "externalDocs", "parent", "kind"}),
    NodeKind.SERVER: frozenset({"url", "description", "name", "variables"}),
    NodeKind.SERVER_VARIABLE: frozenset({"enum", "default", "description"}),
    NodeKind.PATH_ITEM: frozenset(
        {"$ref", "summary", "description", "servers", "parameters", "additionalOperations",
         "get", "put", "post", "delete", "options", "head", "patch", "trace", "query"}
    ),
    NodeKind.OPERATION: frozenset(
        {"tags", "summary", "description", "externalDocs", "operationId", "parameters",
         "requestBody", "responses", "callbacks", "deprecated", "security", "servers"}
    ),
    NodeKind.PARAMETER: frozenset(
        {"name", "in", "description", "required", "deprecated", "allowEmptyValue", "style",
         "explode", "allowReserved", "schema", "example", "examples", "content"}
    ),
    NodeKind.HEADER: frozenset(
        {"description", "required", "deprecated", "allowEmptyValue", "style", "explode",
         "allowReserved", "schema", "example", "examples", "content"}
    ),
    NodeKind.REQUEST_BODY: frozenset({"description", "content", "required"}),
    NodeKind.RESPONSE: frozenset({"summary", "description", "headers", "content", "links"}),
    NodeKind.MEDIA_TYPE: frozenset(
        {"schema", "itemSchema", "example", "examples", "encoding", "prefixEncoding", "itemEncoding"}
    ),
    NodeKind.ENCODING: frozenset(
        {"contentType", "headers", "style", "explode", "allowReserved", "encoding",
         "prefixEncoding", "itemEncoding"}
    ),
    NodeKind.EXAMPLE: frozenset(
        {"summary", "description", "value", "externalValue", "dataValue", "serializedValue"}
    ),
    NodeKind.LINK: frozenset(
        {"operationRef", "operationId", "parameters", "requestBody", "description", "server"}
    ),
    NodeKind.SECURITY_SCHEME: frozenset(
        {"type", "description", "name", "in", "scheme", "bearerFormat", "flows",
         "openIdConnectUrl", "oauth2MetadataUrl", "deprecated"}
    ),
    NodeKind.OAUTH_FLOWS: frozenset(
        {"implicit", "password", "clientCredentials", "authorizationCode", "deviceAuthorization"}
    ),
    NodeKind.OAUTH_FLOW: frozenset(
        {"authorizationUrl", "deviceAuthorizationUrl", "tokenUrl", "refreshUrl", "scopes"}
    ),
    NodeKind.COMPONENTS: frozenset(
        {"schemas", "responses", "parameters", "examples", "requestBodies", "headers",
         "securitySchemes", "links", "callbacks", "pathItems", "mediaTypes"}
    ),
    NodeKind.SCHEMA: _SCHEMA_KEYWORDS,
}


@dataclass
class SanitizeResult:
    """Outcome of sanitize(); warnings are non-fatal."""

    warnings: list[str] = field(default_factory=list)


def is_valid_pattern(pattern: str) -> bool:
    """
    Check glob syntax: escapes must escape something, classes must close.

    Example:
        is_valid_pattern("x-speakeasy-*")  # True
        is_valid_pattern("x-[abc")  # False
    """
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            if i + 1 >= len(pattern):
                return False
            i += 2
            continue
        if char == "[":
            j = i + 1
            if j < len(pattern) and pattern[j] in "!^":
                j += 1
            # a "]" right after the opening bracket is a literal member
            if j < len(pattern) and pattern[j] == "]":
                j += 1
            close = pattern.find("]", j)
            if close == -1:
                return False
            i = close + 1
            continue
        i += 1
    return True


class _PatternSet:
    """Patterns with per-pattern usage tracking for warnings."""

    def __init__(self, label: str, patterns: list[str]):
        self.label = label
        self.valid = [p for p in patterns if is_valid_pattern(p)]
        self.invalid = [p for p in patterns if not is_valid_pattern(p)]
        self.matched: set[str] = set()
        self._order = list(patterns)

    def __bool__(self) -> bool:
        return bool(self._order)

    def first_match(self, key: str, record: bool = True) -> str | None:
        for pattern in self.valid:
            if fnmatchcase(key, pattern):
                if record:
                    self.matched.add(pattern)
                return pattern
        return None

    def record_all(self, key: str) -> None:
        self.matched.update(p for p in self.valid if fnmatchcase(key, p))

    def warnings(self) -> list[str]:
        result = []
        for pattern in self._order:
            if pattern in self.invalid:
                result.append(f"invalid {self.label} pattern '{pattern}' was skipped")
            elif pattern not in self.matched:
                result.append(
                    f"{self.label} pattern '{pattern}' did not match any extensions in the document"
                )
        return result


class ExtensionRemover:
    """Decides, extension by extension, what the filter removes."""

    def __init__(self, extension_filter: ExtensionFilter | None):
        extension_filter = extension_filter or ExtensionFilter()
        self.keep = _PatternSet("keep", list(extension_filter.keep))
        self.remove = _PatternSet("remove", list(extension_filter.remove))

    def should_remove(self, key: str) -> bool:
        if not self.keep and not self.remove:
            return True

        if self.keep and not self.remove:
            return self.keep.first_match(key) is None

        if self.remove and not self.keep:
            return self.remove.first_match(key) is not None

        if self.remove.first_match(key, record=False) is None:
            return False
        self.remove.record_all(key)
        return self.keep.first_match(key) is None

    def warnings(self) -> list[str]:
        return self.keep.warnings() + self.remove.warnings()


def remove_extensions(
    spec: dict,
    extension_filter: ExtensionFilter | None = None,
    cancel: CancelToken | None = None,
) -> list[str]:
    """
    Remove ``x-`` extensions from every object in ``spec``.

    Returns:
        Warnings for invalid patterns and patterns that matched nothing
    """
    remover = ExtensionRemover(extension_filter)
    removed = 0
    for item in walk(spec, cancel=cancel):
        if item.kind != NodeKind.EXTENSIONS:
            continue
        owner = item.value
        for key in [k for k in owner if str(k).startswith("x-")]:
            if remover.should_remove(str(key)):
                del owner[key]
                removed += 1
    logger.info("Removed %d extension(s)", removed)
    return remover.warnings()


def _remove_unknown(item: WalkItem) -> None:
    known = KNOWN_FIELDS.get(item.kind)
    value = item.value
    if known is None or not isinstance(value, dict) or is_reference(value):
        return
    for key in [k for k in value if not str(k).startswith("x-") and k not in known]:
        logger.debug("Removing unknown property %s at %s", key, item.pointer or "/")
        del value[key]


def remove_unknown_properties(spec: dict, cancel: CancelToken | None = None) -> dict:
    """Remove properties that are not part of the OpenAPI object they sit in."""
    for item in walk(spec, cancel=cancel):
        _remove_unknown(item)
    return spec


def sanitize(
    spec: dict,
    options: SanitizeOptions | None = None,
    cancel: CancelToken | None = None,
) -> SanitizeResult:
    """
    Strip extensions and unknown properties from ``spec``, then clean it.

    Args:
        spec: The OpenAPI specification as a dictionary (mutated in-place)
        options: What to keep; defaults remove every extension, every
                 unknown property and every unused component
        cancel: Optional cancellation token

    Returns:
        SanitizeResult with any pattern warnings

    Raises:
        OperationCancelled: If ``cancel`` is triggered
    """
    options = options or SanitizeOptions()
    result = SanitizeResult()

    result.warnings.extend(remove_extensions(spec, options.extension_patterns, cancel))

    if not options.keep_unknown_properties:
        remove_unknown_properties(spec, cancel)

    if not options.keep_unused_components:
        clean(spec, cancel)

    for warning in result.warnings:
        logger.info("Sanitize warning: %s", warning)
    return result
