"""Bundle: pull external references into the document's components.

Every reference that points outside the root document is resolved, its
target copied into ``components`` under a conflict-free name, and the
reference rewritten to ``#/components/{section}/{name}``. Copied content is
crawled in turn, using the location it was loaded from as the base, so
references several files deep are bundled too.

Naming tries the reference's simple name first (the last pointer segment,
or the file stem for whole-file references). A schema whose simple name is
already taken by identical content is reused instead of copied again.
Otherwise the configured strategy decides:

- ``COUNTER``: ``User``, ``User_1``, ``User_2`` ...
- ``FILE_PATH``: a name derived from the file path relative to the root
  document, e.g. ``schemas_user_yaml__User``

After resolution, references inside the copied content are rewritten to
the new local names, then the root document's own references are.
"""

import copy
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any

from oaskit.config import BundleNamingStrategy
from oaskit.core.cancel import CancelToken
from oaskit.core.hashing import hash_schema
from oaskit.core.references import (
    component_reference,
    extract_simple_name,
    is_internal_reference,
    make_relative_for_naming,
    normalize_path_for_component_name,
    reference_key,
    resolve_against,
    split_reference,
)
from oaskit.core.resolver import ResolveOptions, Resolver, absolute_location
from oaskit.core.walker import COMPONENT_SECTIONS, NodeKind, WalkItem, walk
from oaskit.errors import InvalidReferenceError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")


@dataclass
class BundleOptions:
    """Options for bundle().

    Attributes:
        resolve_options: Root location, filesystem and HTTP client
        naming_strategy: How to name components whose simple names collide
    """

    resolve_options: ResolveOptions = field(default_factory=ResolveOptions)
    naming_strategy: BundleNamingStrategy = BundleNamingStrategy.COUNTER


@dataclass
class ComponentStorage:
    """Everything collected during one bundle() call.

    Attributes:
        root_location: Absolute location of the root document
        refs: Normalized absolute reference -> assigned component name
        internal_refs: Normalized absolute reference -> local ref, for
                       chains that end back in the root document
        schemas: Bundled schemas by name
        schema_hashes: Content hash of every known schema name, including
                       schemas already in the document
        schema_sources: Location each bundled schema was loaded from
        components: Bundled non-schema components by section, then name
        component_sources: (section, name) -> location it was loaded from
        used_names: Taken names per section
    """

    root_location: str
    refs: dict[str, str] = field(default_factory=dict)
    internal_refs: dict[str, str] = field(default_factory=dict)
    schemas: dict[str, Any] = field(default_factory=dict)
    schema_hashes: dict[str, str] = field(default_factory=dict)
    schema_sources: dict[str, str] = field(default_factory=dict)
    components: dict[str, dict[str, Any]] = field(default_factory=dict)
    component_sources: dict[tuple[str, str], str] = field(default_factory=dict)
    used_names: dict[str, set[str]] = field(
        default_factory=lambda: {section: set() for section in COMPONENT_SECTIONS.values()}
    )

    def seed(self, spec: dict) -> None:
        """Reserve the names (and schema hashes) the document already has."""
        components = spec.get("components")
        if not isinstance(components, dict):
            return
        for section in COMPONENT_SECTIONS.values():
            entries = components.get(section)
            if isinstance(entries, dict):
                self.used_names[section].update(str(name) for name in entries)
        schemas = components.get("schemas")
        if isinstance(schemas, dict):
            for name, schema in schemas.items():
                self.schema_hashes[str(name)] = hash_schema(schema)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def generate_counter_name(ref: str, used_names: set[str]) -> str:
    """Return the simple name of ``ref``, suffixed ``_1``, ``_2`` ... until unused."""
    base_name = extract_simple_name(ref)
    name = base_name
    counter = 1
    while name in used_names:
        name = f"{base_name}_{counter}"
        counter += 1
    return name


def generate_file_path_name(ref: str, used_names: set[str], root_location: str) -> str:
    """
    Derive a component name from the file path and fragment of ``ref``.

    Example:
        generate_file_path_name("schemas/user.yaml#/User", set(), "/api/root.yaml")
        # "schemas_user_yaml__User"
    """
    file_path, fragment = split_reference(ref)

    clean_path = re.sub(r"/+", "/", file_path.replace("\\", "/"))
    while clean_path.startswith("./"):
        clean_path = clean_path[2:]

    if root_location and (clean_path.startswith("/") or ".." in clean_path or re.match(r"^[A-Za-z]:/", clean_path)):
        clean_path = normalize_path_for_component_name(clean_path, root_location)

    stem, dot, ext = clean_path.rpartition(".")
    if dot and "/" not in ext and stem and not stem.endswith("/"):
        clean_path = f"{stem}_{ext}"

    safe_name = _UNSAFE_NAME_RE.sub("_", clean_path)
    if fragment in ("", "/"):
        name = safe_name
    else:
        name = safe_name + "__" + _UNSAFE_NAME_RE.sub("_", fragment.lstrip("/"))

    original = name
    counter = 1
    while name in used_names:
        name = f"{original}_{counter}"
        counter += 1
    return name


def generate_component_name(
    ref: str,
    strategy: BundleNamingStrategy,
    used_names: set[str],
    root_location: str,
) -> str:
    """Pick a name for a component loaded from the absolute reference ``ref``."""
    relative = make_relative_for_naming(ref, root_location)
    if strategy == BundleNamingStrategy.FILE_PATH:
        simple_name = extract_simple_name(relative)
        if simple_name not in used_names:
            return simple_name
        return generate_file_path_name(relative, used_names, root_location)
    return generate_counter_name(relative, used_names)


def generate_schema_name(
    ref: str,
    strategy: BundleNamingStrategy,
    storage: ComponentStorage,
    content_hash: str,
) -> str:
    """
    Pick a name for a bundled schema.

    The simple name is used when it is free, or when the schema already
    stored under it has the same content (the two are then merged).
    """
    relative = make_relative_for_naming(ref, storage.root_location)
    simple_name = extract_simple_name(relative)
    existing_hash = storage.schema_hashes.get(simple_name)
    if existing_hash is None:
        return simple_name
    if existing_hash == content_hash:
        return simple_name
    return generate_component_name(ref, strategy, set(storage.schema_hashes), storage.root_location)


def find_circular_reference_match(ref: str, refs: dict[str, str]) -> str | None:
    """
    Find the bundled name for a bare fragment that lost track of its file.

    A ``#/User`` left inside copied content is matched against any stored
    absolute reference ending in ``#/User``. When two external files both
    define ``/User`` the first one stored wins.
    """
    if not ref.startswith("#/") or ref.startswith("#/components/"):
        return None
    for external_ref, name in refs.items():
        if external_ref.endswith(ref):
            return name
    return None


# ---------------------------------------------------------------------------
# Bundler
# ---------------------------------------------------------------------------


class _Bundler:
    def __init__(self, spec: dict, options: BundleOptions, resolver: Resolver):
        self.spec = spec
        self.strategy = options.naming_strategy
        self.resolver = resolver
        self.cancel: CancelToken | None = options.resolve_options.cancel
        self.storage = ComponentStorage(root_location=options.resolve_options.root_location)
        self.storage.seed(spec)

    def _external_key(self, ref: str, base_location: str) -> str | None:
        try:
            absolute = resolve_against(ref, base_location)
        except InvalidReferenceError:
            logger.debug("Skipping malformed reference %r", ref)
            return None
        key = reference_key(absolute)
        if is_internal_reference(key, self.storage.root_location):
            return None
        return key

    def bundle_object(self, value: Any, kind: NodeKind, base_location: str) -> None:
        for item in walk(value, kind=kind, cancel=self.cancel):
            if not item.is_reference:
                continue
            if item.kind == NodeKind.SCHEMA:
                self.bundle_schema(item, base_location)
            else:
                self.bundle_component(item, base_location)

    def bundle_schema(self, item: WalkItem, base_location: str) -> None:
        ref = item.ref
        key = self._external_key(ref, base_location)
        if key is None or key in self.storage.refs or key in self.storage.internal_refs:
            return

        result = self.resolver.resolve(ref, base_location)
        final_key = reference_key(result.absolute_reference)
        if self.map_to_root(key, final_key):
            return

        resolved = copy.deepcopy(result.value)
        content_hash = hash_schema(resolved)
        name = generate_schema_name(key, self.strategy, self.storage, content_hash)

        self.storage.refs[key] = name
        self.storage.refs.setdefault(final_key, name)

        if name in self.storage.schema_hashes:
            logger.debug("Reusing schema %s for %s", name, ref)
            return

        logger.info("Bundling schema %s as %s", ref, name)
        self.storage.schema_hashes[name] = content_hash
        self.storage.used_names["schemas"].add(name)
        self.storage.schemas[name] = resolved
        self.storage.schema_sources[name] = result.document_location
        self.bundle_object(resolved, NodeKind.SCHEMA, result.document_location)

    def map_to_root(self, key: str, final_key: str) -> bool:
        """Point ``key`` at the root document when its chain ends there."""
        if not is_internal_reference(final_key, self.storage.root_location):
            return False
        local_ref = "#" + split_reference(final_key)[1]
        logger.debug("Reference %s resolves into the root document at %s", key, local_ref)
        self.storage.internal_refs[key] = local_ref
        return True

    def bundle_component(self, item: WalkItem, base_location: str) -> None:
        ref = item.ref
        section = COMPONENT_SECTIONS[item.kind]
        key = self._external_key(ref, base_location)
        if key is None or key in self.storage.refs or key in self.storage.internal_refs:
            return

        result = self.resolver.resolve(ref, base_location)
        final_key = reference_key(result.absolute_reference)
        if final_key in self.storage.refs:
            self.storage.refs[key] = self.storage.refs[final_key]
            return
        if self.map_to_root(key, final_key):
            return

        used = self.storage.used_names[section]
        name = generate_component_name(final_key, self.strategy, used, self.storage.root_location)
        used.add(name)
        self.storage.refs[final_key] = name
        self.storage.refs[key] = name

        logger.info("Bundling %s %s as %s", section, ref, name)
        resolved = copy.deepcopy(result.value)
        self.storage.components.setdefault(section, {})[name] = resolved
        self.storage.component_sources[(section, name)] = result.document_location
        self.bundle_object(resolved, item.kind, result.document_location)

    # -- rewriting -----------------------------------------------------------

    def local_reference(self, item: WalkItem, base_location: str) -> str | None:
        """The ``#/components/...`` form of ``item``'s reference, if bundled."""
        ref = item.ref
        section = COMPONENT_SECTIONS[item.kind]
        try:
            key = reference_key(resolve_against(ref, base_location))
        except InvalidReferenceError:
            return None

        name = self.storage.refs.get(key)
        if name is not None:
            return component_reference(section, name)
        if key in self.storage.internal_refs:
            return self.storage.internal_refs[key]

        if item.kind == NodeKind.SCHEMA:
            name = find_circular_reference_match(ref, self.storage.refs)
            if name is not None:
                return component_reference("schemas", name)

        uri, fragment = split_reference(key)
        if uri and is_internal_reference(key, self.storage.root_location):
            return f"#{fragment}"
        return None

    def rewrite_refs(self, value: Any, kind: NodeKind, source_location: str) -> None:
        for item in walk(value, kind=kind, cancel=self.cancel):
            if not item.is_reference:
                continue
            new_ref = self.local_reference(item, source_location)
            if new_ref is not None and new_ref != item.ref:
                item.value["$ref"] = new_ref

    def rewrite_bundled(self) -> None:
        for name, schema in self.storage.schemas.items():
            self.rewrite_refs(schema, NodeKind.SCHEMA, self.storage.schema_sources[name])
        kinds = {section: kind for kind, section in COMPONENT_SECTIONS.items()}
        for section, entries in self.storage.components.items():
            for name, value in entries.items():
                source = self.storage.component_sources[(section, name)]
                self.rewrite_refs(value, kinds[section], source)

    def add_components(self) -> None:
        if not self.storage.schemas and not any(self.storage.components.values()):
            return
        components = self.spec.setdefault("components", {})
        if self.storage.schemas:
            components.setdefault("schemas", {}).update(self.storage.schemas)
        for section in COMPONENT_SECTIONS.values():
            entries = self.storage.components.get(section)
            if entries:
                components.setdefault(section, {}).update(entries)

    def run(self) -> None:
        root = self.storage.root_location
        self.bundle_object(self.spec, NodeKind.DOCUMENT, root)
        self.rewrite_bundled()
        self.rewrite_refs(self.spec, NodeKind.DOCUMENT, root)
        self.add_components()


def bundle(spec: dict, options: BundleOptions | None = None) -> dict:
    """
    Inline every external reference of ``spec`` into its components.

    Args:
        spec: The OpenAPI specification as a dictionary
        options: Resolution and naming options; the root location should
                 be the path or URL ``spec`` was loaded from

    Returns:
        The bundled specification (mutated in-place and returned)

    Raises:
        ResolutionError: If any external reference cannot be fetched or
                         resolved; ``spec`` may be partially modified
        OperationCancelled: If cancellation was requested

    Example:
        spec, _ = load_spec(Path("api.yaml"))
        bundle(spec, BundleOptions(ResolveOptions(root_location="api.yaml")))
    """
    options = options or BundleOptions()
    resolve_options = replace(
        options.resolve_options,
        root_location=absolute_location(options.resolve_options.root_location),
        root_document=options.resolve_options.root_document or spec,
    )
    options = replace(options, resolve_options=resolve_options)

    with Resolver(resolve_options) as resolver:
        _Bundler(spec, options, resolver).run()
    return spec
