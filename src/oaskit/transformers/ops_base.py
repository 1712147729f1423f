"""Structure-agnostic helpers for dict/list trees.

These work on any parsed YAML/JSON content, including external files that
are not OpenAPI documents themselves.
"""

from collections.abc import Callable, Iterator
from typing import Any


def recursive_walk(
    data: Any,
    transform_func: Callable[[Any, Any | None, str | int | None], Any],
    parent: Any | None = None,
    key_in_parent: str | int | None = None,
) -> Any:
    """
    Recursively traverse a nested dict/list structure and apply transformations.

    Args:
        data: The current node being processed (can be dict, list, or scalar)
        transform_func: A callable that takes (data, parent, key_in_parent)
                       and returns the transformed data
        parent: The parent container (dict or list) of the current node
        key_in_parent: The key (str for dict) or index (int for list) of
                      this node in its parent

    Returns:
        The transformed data (same type as input, but potentially modified)

    Example:
        def uppercase_strings(data, parent, key):
            if isinstance(data, str):
                return data.upper()
            return data

        result = recursive_walk({"name": "john"}, uppercase_strings)
        # Result: {"name": "JOHN"}
    """
    data = transform_func(data, parent, key_in_parent)

    if isinstance(data, dict):
        # We must list keys because the loop might modify the dict
        for k in list(data.keys()):
            data[k] = recursive_walk(data[k], transform_func, parent=data, key_in_parent=k)
    elif isinstance(data, list):
        for i, item in enumerate(data):
            data[i] = recursive_walk(item, transform_func, parent=data, key_in_parent=i)

    return data


def iter_refs(data: Any) -> Iterator[str]:
    """Yield every ``$ref`` string in ``data``, in document order."""
    if isinstance(data, dict):
        for key, value in data.items():
            if key == "$ref" and isinstance(value, str):
                yield value
            else:
                yield from iter_refs(value)
    elif isinstance(data, list):
        for item in data:
            yield from iter_refs(item)


def rewrite_refs(data: Any, rewrite: Callable[[str], str | None]) -> Any:
    """
    Replace every ``$ref`` string in ``data`` in place.

    ``rewrite`` returns the new reference, or None to leave it unchanged.
    """

    def _rewrite(node: Any, parent: Any | None, key: str | int | None) -> Any:
        if key == "$ref" and isinstance(parent, dict) and isinstance(node, str):
            new_ref = rewrite(node)
            return node if new_ref is None else new_ref
        return node

    return recursive_walk(data, _rewrite)
