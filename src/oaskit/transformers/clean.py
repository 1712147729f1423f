"""Clean: remove unreachable components and unused tags.

Reachability is computed in two phases:
1. Seed from everything under ``/paths``, ``/webhooks`` and ``/security``.
   Security requirements name security schemes directly instead of via
   ``$ref``, so they are tracked separately.
2. Re-walk ``/components`` visiting only entries already marked used, until
   a full pass adds nothing new.

Components never reached are deleted, including self-referencing and
mutually circular ones that nothing reachable points at. Empty sections
are removed, and ``components`` itself when it ends up empty. Top-level
tags survive only if some reachable operation lists them.
"""

import logging
from dataclasses import dataclass, field

from oaskit.core.cancel import CancelToken
from oaskit.core.jsonpointer import parse_pointer
from oaskit.core.walker import COMPONENT_SECTIONS, Location, NodeKind, WalkItem, walk

logger = logging.getLogger(__name__)

_COMPONENT_REF_PREFIX = "#/components/"
_ENTRY_POINTS = ("paths", "webhooks", "security")


@dataclass
class ReachabilityTracker:
    """Component names and tag names found to be in use. Only ever grows."""

    components: dict[str, set[str]] = field(
        default_factory=lambda: {section: set() for section in COMPONENT_SECTIONS.values()}
    )
    tags: set[str] = field(default_factory=set)

    def size(self) -> int:
        return sum(len(names) for names in self.components.values())

    def is_used(self, section: str, name: str) -> bool:
        return name in self.components.get(section, ())

    def track_reference(self, ref: str) -> None:
        """Mark the component named by a local ``#/components/...`` ref as used."""
        if not ref.startswith(_COMPONENT_REF_PREFIX):
            return
        try:
            tokens = parse_pointer(ref)
        except ValueError:
            return
        if len(tokens) >= 3 and tokens[1] in self.components:
            self.components[tokens[1]].add(tokens[2])

    def track(self, item: WalkItem) -> None:
        item.match(self._handlers)

    def _track_ref(self, item: WalkItem) -> None:
        if item.is_reference:
            self.track_reference(item.ref)

    def _track_security(self, item: WalkItem) -> None:
        if isinstance(item.value, dict):
            self.components["securitySchemes"].update(str(name) for name in item.value)

    def _track_operation(self, item: WalkItem) -> None:
        tags = item.value.get("tags") if isinstance(item.value, dict) else None
        if isinstance(tags, list):
            self.tags.update(t for t in tags if isinstance(t, str))

    @property
    def _handlers(self):
        handlers = {kind: self._track_ref for kind in COMPONENT_SECTIONS}
        handlers[NodeKind.SECURITY_REQUIREMENT] = self._track_security
        handlers[NodeKind.OPERATION] = self._track_operation
        return handlers


def _seed_filter(location: Location) -> bool:
    return not location or location[0] in _ENTRY_POINTS


def _expansion_filter(tracker: ReachabilityTracker):
    def _filter(location: Location) -> bool:
        if not location:
            return True
        if location[0] != "components":
            return False
        if len(location) < 3:
            return len(location) == 1 or location[1] in tracker.components
        return tracker.is_used(str(location[1]), str(location[2]))

    return _filter


def find_reachable(spec: dict, cancel: CancelToken | None = None) -> ReachabilityTracker:
    """
    Compute which components and tags are reachable from the entry points.

    Returns:
        The populated ReachabilityTracker
    """
    tracker = ReachabilityTracker()

    for item in walk(spec, cancel=cancel, location_filter=_seed_filter):
        tracker.track(item)

    expansion_filter = _expansion_filter(tracker)
    passes = 0
    while True:
        before = tracker.size()
        for item in walk(spec, cancel=cancel, location_filter=expansion_filter):
            tracker.track(item)
        passes += 1
        if tracker.size() == before:
            break

    logger.debug("Reachability reached a fixed point after %d expansion pass(es)", passes)
    return tracker


def _prune_components(spec: dict, tracker: ReachabilityTracker) -> None:
    components = spec.get("components")
    if not isinstance(components, dict):
        return

    for section in COMPONENT_SECTIONS.values():
        entries = components.get(section)
        if not isinstance(entries, dict):
            continue
        for name in list(entries):
            if not tracker.is_used(section, str(name)):
                logger.info("Removing unused component #/components/%s/%s", section, name)
                del entries[name]
        if not entries:
            del components[section]

    if not components:
        del spec["components"]


def _prune_tags(spec: dict, tracker: ReachabilityTracker) -> None:
    tags = spec.get("tags")
    if not isinstance(tags, list):
        return

    kept = [tag for tag in tags if isinstance(tag, dict) and tag.get("name") in tracker.tags]
    for tag in tags:
        if tag not in kept:
            logger.info("Removing unused tag %s", tag.get("name") if isinstance(tag, dict) else tag)

    if kept:
        spec["tags"] = kept
    else:
        del spec["tags"]


def clean(spec: dict, cancel: CancelToken | None = None) -> dict:
    """
    Remove components and tags that nothing reachable uses.

    Args:
        spec: The OpenAPI specification as a dictionary
        cancel: Optional cancellation token

    Returns:
        The cleaned specification (mutated in-place and returned)

    Raises:
        OperationCancelled: If ``cancel`` is triggered
    """
    tracker = find_reachable(spec, cancel)
    _prune_components(spec, tracker)
    _prune_tags(spec, tracker)
    return spec


def remove_unused_components(spec: dict, cancel: CancelToken | None = None) -> dict:
    """Remove unreachable components only, leaving tags untouched."""
    _prune_components(spec, find_reachable(spec, cancel))
    return spec
