"""RFC 6901 JSON pointer helpers."""

from collections.abc import Iterable
from typing import Any


def escape_token(token: str | int) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def unescape_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def to_pointer(segments: Iterable[str | int]) -> str:
    """
    Build a JSON pointer from path segments.

    Example:
        to_pointer(["paths", "/users", "get"])  # "/paths/~1users/get"
    """
    return "".join("/" + escape_token(s) for s in segments)


def parse_pointer(pointer: str) -> list[str]:
    """
    Split a JSON pointer (with or without leading '#') into unescaped tokens.

    Example:
        parse_pointer("#/paths/~1users")  # ["paths", "/users"]
        parse_pointer("/")  # [""]
    """
    if pointer.startswith("#"):
        pointer = pointer[1:]
    if not pointer:
        return []
    if not pointer.startswith("/"):
        raise ValueError(f"invalid JSON pointer: {pointer!r}")
    return [unescape_token(t) for t in pointer[1:].split("/")]


def get_by_pointer(document: Any, pointer: str) -> Any:
    """
    Return the value addressed by ``pointer`` inside ``document``.

    Raises:
        KeyError: If any token does not exist in the document
        ValueError: If the pointer is malformed
    """
    current = document
    for token in parse_pointer(pointer):
        if isinstance(current, dict):
            if token not in current:
                raise KeyError(f"{token!r} not found while evaluating {pointer!r}")
            current = current[token]
        elif isinstance(current, list):
            if not token.isdigit() or int(token) >= len(current):
                raise KeyError(f"index {token!r} out of range while evaluating {pointer!r}")
            current = current[int(token)]
        else:
            raise KeyError(f"cannot descend into scalar at {token!r} while evaluating {pointer!r}")
    return current
