"""Inline: replace every ``$ref`` with a copy of its target.

The inverse of bundle. The document is walked once; each reference is
resolved (following chains and external files) and swapped for a deep copy
of the target. The walk then continues into the copy, so references inside
it are inlined in turn.

References inside a copy are first rewritten relative to the root document,
which lets one resolver base serve every node. References that point back
into the root document become plain ``#/...`` fragments.

Circular references cannot be expanded. A reference whose target is already
being expanded above it (or whose target is the component it sits in) is
kept as a reference:

- a target inside the root document keeps its ``#/...`` pointer
- an external target is copied once into ``components`` under a
  conflict-free name and referenced from there
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from oaskit.core.cancel import CancelToken
from oaskit.core.jsonpointer import to_pointer
from oaskit.core.references import (
    component_reference,
    is_internal_reference,
    make_relative_for_naming,
    reference_key,
    resolve_against,
    split_reference,
)
from oaskit.core.resolver import ResolveOptions, Resolver, ResolveResult, absolute_location
from oaskit.core.walker import COMPONENT_SECTIONS, Location, NodeKind, WalkItem, walk
from oaskit.errors import InvalidReferenceError
from oaskit.transformers.bundle import generate_counter_name
from oaskit.transformers.clean import remove_unused_components
from oaskit.transformers.ops_base import rewrite_refs

logger = logging.getLogger(__name__)


@dataclass
class InlineOptions:
    """Options for inline().

    Attributes:
        resolve_options: Root location, filesystem and HTTP client
        remove_unused_components: Drop components nothing references once
                                  everything is inlined
    """

    resolve_options: ResolveOptions = field(default_factory=ResolveOptions)
    remove_unused_components: bool = False


class _Inliner:
    def __init__(self, spec: dict, options: InlineOptions, resolver: Resolver):
        self.spec = spec
        self.resolver = resolver
        self.cancel: CancelToken | None = options.resolve_options.cancel
        self.root_location = options.resolve_options.root_location
        # location of every inlined copy -> reference keys it was expanded from
        self.origins: dict[Location, frozenset[str]] = {}
        self.cycle_names: dict[str, str] = {}
        self.added: dict[str, dict[str, Any]] = {}
        self.used_names: dict[str, set[str]] = {section: set() for section in COMPONENT_SECTIONS.values()}

        components = spec.get("components")
        if isinstance(components, dict):
            for section in COMPONENT_SECTIONS.values():
                if isinstance(components.get(section), dict):
                    self.used_names[section].update(str(name) for name in components[section])

    def key(self, ref: str) -> str:
        return reference_key(resolve_against(ref, self.root_location))

    def rebase(self, value: Any, document_location: str) -> Any:
        """Rewrite the references of a copy loaded from ``document_location``."""

        def _rebase(ref: str) -> str | None:
            try:
                absolute = resolve_against(ref, document_location)
            except InvalidReferenceError:
                return None
            if is_internal_reference(absolute, self.root_location):
                absolute = "#" + split_reference(absolute)[1]
            return absolute if absolute != ref else None

        return rewrite_refs(value, _rebase)

    def on_stack(self, location: Location, keys: frozenset[str]) -> bool:
        """True if any of ``keys`` is being expanded at or above ``location``."""
        for i in range(len(location), -1, -1):
            if self.origins.get(location[:i], frozenset()) & keys:
                return True
        if len(location) >= 3 and location[0] == "components":
            return self.key("#" + to_pointer(location[:3])) in keys
        return False

    def expand(self, value: Any, kind: NodeKind, location: Location) -> None:
        for item in walk(value, kind=kind, location=location, cancel=self.cancel):
            if item.is_reference:
                self.inline_reference(item)

    def inline_reference(self, item: WalkItem) -> None:
        result = self.resolver.resolve(item.ref, self.root_location)
        keys = frozenset(result.chain) | {self.key(item.ref)}
        if self.on_stack(item.location, keys):
            new_ref = self.cycle_reference(item, result)
            logger.debug("Keeping circular reference %s at %s as %s", item.ref, item.pointer, new_ref)
            item.value["$ref"] = new_ref
            return

        content = self.rebase(copy.deepcopy(result.value), result.document_location)
        siblings = {k: v for k, v in item.value.items() if k != "$ref"}
        if item.kind == NodeKind.SCHEMA and siblings and isinstance(content, dict):
            content.update(siblings)
        logger.debug("Inlining %s at %s", item.ref, item.pointer)
        item.set_value(content)
        self.origins[item.location] = self.origins.get(item.location, frozenset()) | keys
        if item.is_reference:
            # the target was itself a reference with sibling keywords
            self.inline_reference(item)

    def cycle_reference(self, item: WalkItem, result: ResolveResult) -> str:
        """The reference left in place of a circular one."""
        final_key = reference_key(result.absolute_reference)
        if is_internal_reference(final_key, self.root_location):
            return "#" + split_reference(final_key)[1]

        section = COMPONENT_SECTIONS[item.kind]
        name = self.cycle_names.get(final_key)
        if name is None:
            used = self.used_names[section]
            name = generate_counter_name(make_relative_for_naming(final_key, self.root_location), used)
            used.add(name)
            self.cycle_names[final_key] = name
            logger.info("Adding circular %s %s as a component named %s", section, item.ref, name)

            content = self.rebase(copy.deepcopy(result.value), result.document_location)
            location = ("components", section, name)
            self.origins[location] = frozenset(result.chain) | {final_key}
            self.added.setdefault(section, {})[name] = content
            self.expand(content, item.kind, location)
        return component_reference(section, name)

    def add_components(self) -> None:
        if not self.added:
            return
        components = self.spec.setdefault("components", {})
        for section in COMPONENT_SECTIONS.values():
            if section in self.added:
                components.setdefault(section, {}).update(self.added[section])

    def run(self) -> None:
        self.expand(self.spec, NodeKind.DOCUMENT, ())
        self.add_components()


def inline(spec: dict, options: InlineOptions | None = None) -> dict:
    """
    Replace every reference in ``spec`` with the content it points at.

    Args:
        spec: The OpenAPI specification as a dictionary
        options: Resolution options and whether to drop components left
                 unused afterwards

    Returns:
        The inlined specification (mutated in-place and returned)

    Raises:
        ResolutionError: If a reference cannot be fetched or resolved
        OperationCancelled: If cancellation was requested

    Example:
        spec, _ = load_spec(Path("api.yaml"))
        inline(spec, InlineOptions(ResolveOptions(root_location="api.yaml"), remove_unused_components=True))
    """
    options = options or InlineOptions()
    resolve_options = replace(
        options.resolve_options,
        root_location=absolute_location(options.resolve_options.root_location),
        # targets are copied from the document as it was before inlining started
        root_document=copy.deepcopy(options.resolve_options.root_document or spec),
    )

    with Resolver(resolve_options) as resolver:
        _Inliner(spec, replace(options, resolve_options=resolve_options), resolver).run()

    if options.remove_unused_components:
        remove_unused_components(spec, resolve_options.cancel)
    return spec
