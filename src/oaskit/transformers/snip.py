"""Snip: remove operations from a document, then clean up what they left behind.

Operations are named either by ``operationId`` or by ``path:METHOD``. A path
item left without any operation is removed as well, and the clean pass drops
every component and tag that only the removed operations used.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from oaskit.core.cancel import CancelToken, check_cancelled
from oaskit.core.walker import HTTP_METHODS, is_reference
from oaskit.errors import ConfigurationError
from oaskit.transformers.clean import clean

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationIdentifier:
    """Either an operationId or a path plus HTTP method."""

    operation_id: str = ""
    path: str = ""
    method: str = ""

    def matches(self, path: str, method: str, operation: dict) -> bool:
        if self.operation_id:
            return operation.get("operationId") == self.operation_id
        return self.path == path and self.method == method

    def __str__(self) -> str:
        return self.operation_id or f"{self.path}:{self.method.upper()}"


def parse_operation(value: str) -> OperationIdentifier:
    """
    Parse a ``path:METHOD`` operation name.

    The method is taken after the last colon, so paths containing colons
    work.

    Examples:
        >>> parse_operation("/users/{id}:GET")
        OperationIdentifier(operation_id='', path='/users/{id}', method='get')

    Raises:
        ConfigurationError: If the path or method is missing or the method is unknown
    """
    path, sep, method = value.rpartition(":")
    method = method.strip().lower()
    if not sep or not path or not method:
        raise ConfigurationError(f"invalid operation {value!r}: expected path:METHOD")
    if method not in HTTP_METHODS:
        raise ConfigurationError(f"invalid operation {value!r}: unknown method {method!r}")
    return OperationIdentifier(path=path, method=method)


def iter_operations(spec: dict) -> Iterator[tuple[str, str, dict]]:
    """Yield (path, method, operation) for every operation under ``paths``."""
    paths = spec.get("paths")
    if not isinstance(paths, dict):
        return
    for path, path_item in paths.items():
        # referenced path items belong to another document
        if not isinstance(path_item, dict) or is_reference(path_item):
            continue
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if isinstance(operation, dict):
                yield path, method, operation


def operations_to_remove(spec: dict, keep: list[OperationIdentifier]) -> list[OperationIdentifier]:
    """Invert a keep list: every operation matching none of ``keep``."""
    return [
        OperationIdentifier(path=path, method=method)
        for path, method, operation in iter_operations(spec)
        if not any(k.matches(path, method, operation) for k in keep)
    ]


def snip(spec: dict, operations: list[OperationIdentifier], cancel: CancelToken | None = None) -> int:
    """
    Remove ``operations`` from ``spec`` and clean up afterwards.

    Args:
        spec: The OpenAPI specification as a dictionary
        operations: Operations to remove
        cancel: Optional cancellation token

    Returns:
        Number of operations removed

    Raises:
        OperationCancelled: If cancellation was requested
    """
    check_cancelled(cancel)

    matched: list[tuple[str, str]] = []
    found: set[OperationIdentifier] = set()
    for path, method, operation in iter_operations(spec):
        hits = {o for o in operations if o.matches(path, method, operation)}
        if hits:
            matched.append((path, method))
            found |= hits

    paths = spec["paths"] if matched else {}
    for path, method in matched:
        logger.debug("Removing operation %s %s", method.upper(), path)
        path_item = paths[path]
        del path_item[method]
        if not any(m in path_item for m in HTTP_METHODS):
            logger.debug("Removing empty path item %s", path)
            del paths[path]

    for operation in operations:
        if operation not in found:
            logger.warning("Operation %s not found", operation)

    clean(spec, cancel)
    return len(matched)
