"""Structure-aware traversal of OpenAPI documents.

The walker knows the OpenAPI 3.x object layout and visits every meaningful
node of a plain dict document, tagging it with a NodeKind. Each WalkItem
carries its location (a tuple of keys and list indices from the walk root)
and can overwrite its own value in the live tree.

Order is stable: document fields are visited as info, externalDocs, tags,
servers, security, paths, webhooks, components; mappings are visited in
insertion order; an object's extensions come after its children.

Example:
    for item in walk(spec):
        if item.kind == NodeKind.SCHEMA and item.is_reference:
            print(item.pointer, item.ref)
"""

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from oaskit.core.cancel import CancelToken, check_cancelled
from oaskit.core.jsonpointer import to_pointer

Location = tuple[str | int, ...]
LocationFilter = Callable[[Location], bool]


class NodeKind(Enum):
    """Every node type the walker can produce."""

    DOCUMENT = "document"
    INFO = "info"
    CONTACT = "contact"
    LICENSE = "license"
    EXTERNAL_DOCS = "externalDocs"
    TAG = "tag"
    SERVER = "server"
    SERVER_VARIABLE = "serverVariable"
    SECURITY_REQUIREMENT = "securityRequirement"
    PATHS = "paths"
    PATH_ITEM = "pathItem"
    OPERATION = "operation"
    PARAMETER = "parameter"
    REQUEST_BODY = "requestBody"
    RESPONSES = "responses"
    RESPONSE = "response"
    MEDIA_TYPE = "mediaType"
    ENCODING = "encoding"
    HEADER = "header"
    EXAMPLE = "example"
    LINK = "link"
    CALLBACK = "callback"
    SCHEMA = "schema"
    SECURITY_SCHEME = "securityScheme"
    OAUTH_FLOWS = "oauthFlows"
    OAUTH_FLOW = "oauthFlow"
    COMPONENTS = "components"
    EXTENSIONS = "extensions"


# Referenceable node kinds and the components section that holds each
COMPONENT_SECTIONS: dict[NodeKind, str] = {
    NodeKind.SCHEMA: "schemas",
    NodeKind.RESPONSE: "responses",
    NodeKind.PARAMETER: "parameters",
    NodeKind.EXAMPLE: "examples",
    NodeKind.REQUEST_BODY: "requestBodies",
    NodeKind.HEADER: "headers",
    NodeKind.SECURITY_SCHEME: "securitySchemes",
    NodeKind.LINK: "links",
    NodeKind.CALLBACK: "callbacks",
    NodeKind.PATH_ITEM: "pathItems",
    NodeKind.MEDIA_TYPE: "mediaTypes",
}
SECTION_KINDS: dict[str, NodeKind] = {section: kind for kind, section in COMPONENT_SECTIONS.items()}

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace", "query")

_SCHEMA_SINGLE = (
    "not",
    "if",
    "then",
    "else",
    "items",
    "additionalItems",
    "contains",
    "propertyNames",
    "additionalProperties",
    "unevaluatedItems",
    "unevaluatedProperties",
    "contentSchema",
)
_SCHEMA_LISTS = ("allOf", "anyOf", "oneOf", "prefixItems", "items")
_SCHEMA_MAPS = ("properties", "patternProperties", "dependentSchemas", "$defs", "definitions")


def is_reference(value: Any) -> bool:
    """Return True if ``value`` is a ``{"$ref": "..."}`` object."""
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


def has_extensions(value: Any) -> bool:
    return isinstance(value, dict) and any(str(k).startswith("x-") for k in value)


@dataclass
class WalkItem:
    """A node visited by walk()."""

    kind: NodeKind
    value: Any
    location: Location
    parent: Any = None
    key: str | int | None = None

    @property
    def pointer(self) -> str:
        return to_pointer(self.location)

    @property
    def depth(self) -> int:
        return len(self.location)

    @property
    def is_reference(self) -> bool:
        return self.kind in COMPONENT_SECTIONS and is_reference(self.value)

    @property
    def ref(self) -> str | None:
        return self.value["$ref"] if self.is_reference else None

    def set_value(self, value: Any) -> None:
        """Replace this node in its parent container."""
        if self.parent is None:
            raise ValueError("cannot replace the root of a walk")
        self.parent[self.key] = value
        self.value = value

    def match(
        self,
        handlers: Mapping[NodeKind, Callable[["WalkItem"], Any]],
        default: Callable[["WalkItem"], Any] | None = None,
    ) -> Any:
        """
        Dispatch this item to the handler registered for its kind.

        Returns the handler's result, or None when no handler applies.
        """
        handler = handlers.get(self.kind, default)
        if handler is None:
            return None
        return handler(self)


class _Walker:
    def __init__(self, cancel: CancelToken | None, location_filter: LocationFilter | None):
        self._cancel = cancel
        self._filter = location_filter
        self._active: set[int] = set()
        self._children = {
            NodeKind.DOCUMENT: self._document,
            NodeKind.INFO: self._info,
            NodeKind.TAG: self._tag,
            NodeKind.SERVER: self._server,
            NodeKind.PATHS: self._paths,
            NodeKind.PATH_ITEM: self._path_item,
            NodeKind.OPERATION: self._operation,
            NodeKind.PARAMETER: self._parameter,
            NodeKind.HEADER: self._parameter,
            NodeKind.REQUEST_BODY: self._request_body,
            NodeKind.RESPONSES: self._responses,
            NodeKind.RESPONSE: self._response,
            NodeKind.MEDIA_TYPE: self._media_type,
            NodeKind.ENCODING: self._encoding,
            NodeKind.LINK: self._link,
            NodeKind.CALLBACK: self._callback,
            NodeKind.SCHEMA: self._schema,
            NodeKind.SECURITY_SCHEME: self._security_scheme,
            NodeKind.OAUTH_FLOWS: self._oauth_flows,
            NodeKind.COMPONENTS: self._components,
        }

    def visit(self, kind: NodeKind, value: Any, location: Location, parent: Any, key: Any) -> Iterator[WalkItem]:
        check_cancelled(self._cancel)
        if self._filter is not None and not self._filter(location):
            return

        item = WalkItem(kind, value, location, parent, key)
        yield item
        # the consumer may have replaced or edited the node
        value = item.value

        if not isinstance(value, dict) or id(value) in self._active:
            return
        if kind in COMPONENT_SECTIONS and is_reference(value):
            return

        self._active.add(id(value))
        try:
            children = self._children.get(kind)
            if children is not None:
                yield from children(value, location)
            if has_extensions(value):
                check_cancelled(self._cancel)
                yield WalkItem(NodeKind.EXTENSIONS, value, location, parent, key)
        finally:
            self._active.discard(id(value))

    # -- helpers -------------------------------------------------------------

    def _field(self, kind: NodeKind, obj: dict, field: str, location: Location) -> Iterator[WalkItem]:
        if field in obj and obj[field] is not None:
            yield from self.visit(kind, obj[field], location + (field,), obj, field)

    def _list(self, kind: NodeKind, obj: dict, field: str, location: Location) -> Iterator[WalkItem]:
        items = obj.get(field)
        if not isinstance(items, list):
            return
        for i in range(len(items)):
            if i < len(items):
                yield from self.visit(kind, items[i], location + (field, i), items, i)

    def _entries(self, kind: NodeKind, mapping: Any, location: Location, skip_extensions: bool) -> Iterator[WalkItem]:
        if not isinstance(mapping, dict):
            return
        for name in list(mapping):
            if skip_extensions and str(name).startswith("x-"):
                continue
            if name in mapping:
                yield from self.visit(kind, mapping[name], location + (name,), mapping, name)

    def _map(self, kind: NodeKind, obj: dict, field: str, location: Location) -> Iterator[WalkItem]:
        if field in obj:
            yield from self._entries(kind, obj[field], location + (field,), skip_extensions=False)

    # -- object layouts ------------------------------------------------------

    def _document(self, doc: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.INFO, doc, "info", location)
        yield from self._field(NodeKind.EXTERNAL_DOCS, doc, "externalDocs", location)
        yield from self._list(NodeKind.TAG, doc, "tags", location)
        yield from self._list(NodeKind.SERVER, doc, "servers", location)
        yield from self._list(NodeKind.SECURITY_REQUIREMENT, doc, "security", location)
        yield from self._field(NodeKind.PATHS, doc, "paths", location)
        yield from self._map(NodeKind.PATH_ITEM, doc, "webhooks", location)
        yield from self._field(NodeKind.COMPONENTS, doc, "components", location)

    def _info(self, info: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.CONTACT, info, "contact", location)
        yield from self._field(NodeKind.LICENSE, info, "license", location)

    def _tag(self, tag: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.EXTERNAL_DOCS, tag, "externalDocs", location)

    def _server(self, server: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._map(NodeKind.SERVER_VARIABLE, server, "variables", location)

    def _paths(self, paths: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._entries(NodeKind.PATH_ITEM, paths, location, skip_extensions=True)

    def _path_item(self, path_item: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._list(NodeKind.SERVER, path_item, "servers", location)
        yield from self._list(NodeKind.PARAMETER, path_item, "parameters", location)
        for method in HTTP_METHODS:
            yield from self._field(NodeKind.OPERATION, path_item, method, location)
        yield from self._map(NodeKind.OPERATION, path_item, "additionalOperations", location)

    def _operation(self, operation: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.EXTERNAL_DOCS, operation, "externalDocs", location)
        yield from self._list(NodeKind.PARAMETER, operation, "parameters", location)
        yield from self._field(NodeKind.REQUEST_BODY, operation, "requestBody", location)
        yield from self._field(NodeKind.RESPONSES, operation, "responses", location)
        yield from self._map(NodeKind.CALLBACK, operation, "callbacks", location)
        yield from self._list(NodeKind.SECURITY_REQUIREMENT, operation, "security", location)
        yield from self._list(NodeKind.SERVER, operation, "servers", location)

    def _parameter(self, parameter: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.SCHEMA, parameter, "schema", location)
        yield from self._map(NodeKind.MEDIA_TYPE, parameter, "content", location)
        yield from self._map(NodeKind.EXAMPLE, parameter, "examples", location)

    def _request_body(self, body: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._map(NodeKind.MEDIA_TYPE, body, "content", location)

    def _responses(self, responses: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._entries(NodeKind.RESPONSE, responses, location, skip_extensions=True)

    def _response(self, response: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._map(NodeKind.HEADER, response, "headers", location)
        yield from self._map(NodeKind.MEDIA_TYPE, response, "content", location)
        yield from self._map(NodeKind.LINK, response, "links", location)

    def _media_type(self, media_type: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.SCHEMA, media_type, "schema", location)
        yield from self._field(NodeKind.SCHEMA, media_type, "itemSchema", location)
        yield from self._map(NodeKind.EXAMPLE, media_type, "examples", location)
        yield from self._map(NodeKind.ENCODING, media_type, "encoding", location)

    def _encoding(self, encoding: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._map(NodeKind.HEADER, encoding, "headers", location)

    def _link(self, link: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.SERVER, link, "server", location)

    def _callback(self, callback: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._entries(NodeKind.PATH_ITEM, callback, location, skip_extensions=True)

    def _security_scheme(self, scheme: dict, location: Location) -> Iterator[WalkItem]:
        yield from self._field(NodeKind.OAUTH_FLOWS, scheme, "flows", location)

    def _oauth_flows(self, flows: dict, location: Location) -> Iterator[WalkItem]:
        for flow in ("implicit", "password", "clientCredentials", "authorizationCode", "deviceAuthorization"):
            yield from self._field(NodeKind.OAUTH_FLOW, flows, flow, location)

    def _schema(self, schema: dict, location: Location) -> Iterator[WalkItem]:
        for keyword in _SCHEMA_SINGLE:
            if isinstance(schema.get(keyword), (dict, bool)):
                yield from self._field(NodeKind.SCHEMA, schema, keyword, location)
        for keyword in _SCHEMA_LISTS:
            yield from self._list(NodeKind.SCHEMA, schema, keyword, location)
        for keyword in _SCHEMA_MAPS:
            yield from self._map(NodeKind.SCHEMA, schema, keyword, location)
        yield from self._field(NodeKind.EXTERNAL_DOCS, schema, "externalDocs", location)

    def _components(self, components: dict, location: Location) -> Iterator[WalkItem]:
        for section, kind in SECTION_KINDS.items():
            yield from self._map(kind, components, section, location)


def walk(
    root: Any,
    *,
    kind: NodeKind = NodeKind.DOCUMENT,
    location: Location = (),
    cancel: CancelToken | None = None,
    location_filter: LocationFilter | None = None,
) -> Iterator[WalkItem]:
    """
    Lazily visit every node under ``root``.

    Args:
        root: The node to start from, usually a whole document
        kind: What ``root`` is; pass e.g. NodeKind.SCHEMA to crawl a schema
              fetched from another file as if it were a fresh root
        location: Location of ``root``, prefixed to every reported location
        cancel: Checked before every visit; raises OperationCancelled
        location_filter: Called with each node's location; returning False
                         skips that node and everything beneath it

    Yields:
        WalkItem for every node, parents before children

    Raises:
        OperationCancelled: If ``cancel`` is triggered during the walk
    """
    walker = _Walker(cancel, location_filter)
    yield from walker.visit(kind, root, tuple(location), None, None)
