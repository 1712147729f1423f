"""Classification and path algebra for ``$ref`` values.

A reference has two logical parts, a URI (URL, absolute or relative file
path, or empty for "this document") and a JSON pointer fragment. Engines
compare references by their *normalized absolute* form so that the same
target reached through different chains of relative files gets one key.

Windows-style references (backslash separators, drive letters, UNC shares)
are joined with ``ntpath`` and keep their separators; everything else is
joined with ``posixpath``. URLs are joined per RFC 3986 and never passed
through path normalization.
"""

import ntpath
import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urljoin, urlsplit

from oaskit.core.jsonpointer import parse_pointer, to_pointer
from oaskit.errors import InvalidReferenceError

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")
# component keys must match ^[a-zA-Z0-9.\-_]+$
_UNSAFE_COMPONENT_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]")


class ReferenceType(Enum):
    """The kind of target a reference string points at."""

    FRAGMENT = "fragment"
    RELATIVE_PATH = "relative_path"
    ABSOLUTE_PATH = "absolute_path"
    URL = "url"


@dataclass(frozen=True)
class ReferenceClassification:
    """Result of classify_reference."""

    type: ReferenceType
    original: str

    @property
    def is_url(self) -> bool:
        return self.type == ReferenceType.URL

    @property
    def is_fragment(self) -> bool:
        return self.type == ReferenceType.FRAGMENT

    @property
    def is_file(self) -> bool:
        return self.type in (ReferenceType.RELATIVE_PATH, ReferenceType.ABSOLUTE_PATH)


def _is_windows_absolute(path: str) -> bool:
    return bool(_WINDOWS_DRIVE_RE.match(path)) or path.startswith("\\\\")


def _is_windows_style(path: str) -> bool:
    return "\\" in path and "/" not in path


def _is_absolute_path(path: str) -> bool:
    return path.startswith("/") or _is_windows_absolute(path)


def classify_reference(ref: str) -> ReferenceClassification:
    """
    Classify a reference string.

    Args:
        ref: A ``$ref`` value, e.g. ``#/components/schemas/User``,
             ``./schemas/user.yaml#/User``, ``C:\\specs\\api.yaml`` or
             ``https://example.com/api.yaml``

    Returns:
        The classification of ``ref``

    Raises:
        InvalidReferenceError: If ``ref`` is empty or not a parseable URI
    """
    if not ref:
        raise InvalidReferenceError("empty reference")

    if ref.startswith("#"):
        return ReferenceClassification(ReferenceType.FRAGMENT, ref)

    # "C:\foo" parses as a URL with scheme "c"
    if _is_windows_absolute(ref):
        return ReferenceClassification(ReferenceType.ABSOLUTE_PATH, ref)

    try:
        parts = urlsplit(ref)
    except ValueError as e:
        raise InvalidReferenceError(f"invalid reference {ref!r}: {e}") from e

    if parts.scheme and len(parts.scheme) > 1:
        return ReferenceClassification(ReferenceType.URL, ref)

    if _is_absolute_path(ref):
        return ReferenceClassification(ReferenceType.ABSOLUTE_PATH, ref)

    return ReferenceClassification(ReferenceType.RELATIVE_PATH, ref)


def split_reference(ref: str) -> tuple[str, str]:
    """Split ``ref`` into (uri, fragment); the fragment has no leading '#'."""
    uri, _, fragment = ref.partition("#")
    return uri, fragment


def _with_fragment(uri: str, fragment: str) -> str:
    return f"{uri}#{fragment}" if fragment else uri


def _path_module(*texts: str):
    if any(_is_windows_style(t) for t in texts if t):
        return ntpath
    return posixpath


def join_reference(base: str, relative: str) -> str:
    """
    Resolve ``relative`` against the location ``base``.

    Example:
        join_reference("/specs/api.yaml", "./schemas/user.yaml#/User")
        # "/specs/schemas/user.yaml#/User"
        join_reference("https://example.com/v1/api.yaml", "common.yaml")
        # "https://example.com/v1/common.yaml"
        join_reference("C:\\specs\\api.yaml", "..\\shared\\user.yaml")
        # "C:\\shared\\user.yaml"

    Raises:
        InvalidReferenceError: If either argument is malformed
    """
    if not base:
        return relative
    if not relative:
        return base

    rel = classify_reference(relative)
    if rel.is_url:
        return relative
    if rel.is_fragment:
        return split_reference(base)[0] + relative

    if classify_reference(base).is_url:
        return urljoin(base, relative)

    rel_uri, rel_fragment = split_reference(relative)
    if rel.type == ReferenceType.ABSOLUTE_PATH:
        return relative

    base_uri = split_reference(base)[0]
    mod = _path_module(base_uri, rel_uri)
    joined = mod.normpath(mod.join(mod.dirname(base_uri), rel_uri))
    return _with_fragment(joined, rel_fragment)


def resolve_against(ref: str, base_location: str) -> str:
    """
    Express a reference found in the document at ``base_location`` as an
    absolute reference in the coordinate system of the root document.

    URLs are returned unchanged, a bare fragment gets the base URI
    prefixed, and file paths are joined and normalized.

    Raises:
        InvalidReferenceError: If ``ref`` or ``base_location`` is malformed
    """
    classification = classify_reference(ref)
    if classification.is_url or not base_location:
        return ref
    return join_reference(base_location, ref)


def reference_key(ref: str) -> str:
    """
    Normalize an absolute reference for use as a dictionary key.

    File paths are converted to forward slashes so that ``C:\\a\\b.yaml`` and
    ``C:/a/b.yaml`` collapse to one key; an empty fragment is dropped.
    """
    uri, fragment = split_reference(ref)
    if uri and not classify_reference(uri).is_url:
        uri = uri.replace("\\", "/")
        if _is_windows_style(uri) or _WINDOWS_DRIVE_RE.match(uri):
            uri = ntpath.normpath(uri).replace("\\", "/")
        else:
            uri = posixpath.normpath(uri)
    return _with_fragment(uri, fragment)


def is_internal_reference(ref: str, root_location: str) -> bool:
    """Return True if the absolute ``ref`` points into the root document."""
    uri = split_reference(ref)[0]
    if not uri:
        return True
    if not root_location:
        return False
    return reference_key(uri) == reference_key(split_reference(root_location)[0])


def make_relative_for_naming(ref: str, root_location: str) -> str:
    """
    Turn an absolute file reference back into one relative to the root
    document's directory, for deriving readable component names.

    URLs, fragments and references that cannot be made relative are
    returned unchanged.
    """
    if not root_location:
        return ref
    uri, fragment = split_reference(ref)
    if not uri:
        return ref
    try:
        if not classify_reference(uri).is_file or not _is_absolute_path(uri):
            return ref
    except InvalidReferenceError:
        return ref

    root_uri = split_reference(root_location)[0]
    if _WINDOWS_DRIVE_RE.match(uri) or uri.startswith("\\\\"):
        try:
            rel = ntpath.relpath(uri, ntpath.dirname(root_uri)).replace("\\", "/")
        except ValueError:
            # different drives
            return ref
    else:
        if not root_uri.startswith("/"):
            return ref
        rel = posixpath.relpath(uri, posixpath.dirname(root_uri))
    return _with_fragment(rel, fragment)


def _file_stem(uri: str) -> str:
    try:
        if classify_reference(uri).is_url:
            uri = urlsplit(uri).path
    except InvalidReferenceError:
        pass
    base = posixpath.basename(uri.replace("\\", "/"))
    stem, ext = posixpath.splitext(base)
    return stem if ext else base


def extract_simple_name(ref: str) -> str:
    """
    Derive the simplest component name for a reference.

    Example:
        extract_simple_name("schemas/user.yaml#/components/schemas/User")  # "User"
        extract_simple_name("schemas/user-profile.yaml")  # "user_profile"
        extract_simple_name("paths.yaml#/paths/~1users")  # "users"
    """
    uri, fragment = split_reference(ref)
    if fragment in ("", "/"):
        return _UNSAFE_NAME_RE.sub("_", _file_stem(uri)) or "unknown"
    try:
        tokens = parse_pointer(fragment)
    except ValueError:
        tokens = fragment.strip("/").split("/")
    token = tokens[-1] if tokens else ""
    name = _UNSAFE_COMPONENT_NAME_RE.sub("_", token)
    if name != token:
        name = name.strip("_")
    return name or "unknown"


def component_reference(section: str, name: str) -> str:
    """
    Build the local reference to a component, escaping the name.

    Example:
        component_reference("schemas", "User")  # "#/components/schemas/User"
    """
    return "#" + to_pointer(["components", section, name])


def normalize_path_for_component_name(path: str, target_location: str) -> str:
    """
    Replace leading ``..`` hops with the name of the directory they land in.

    ``../../../other/api.yaml`` referenced from ``/repo/openapi/a/b/c/spec.yaml``
    becomes ``openapi/other/api.yaml``. Absolute paths lose their root. The
    result is never empty for a non-empty path.
    """
    normalized = path.replace("\\", "/")
    parts = normalized.split("/")

    parent_count = 0
    real_parts: list[str] = []
    for i, part in enumerate(parts):
        if part == "..":
            parent_count += 1
        elif part in (".", ""):
            continue
        else:
            real_parts = parts[i:]
            break

    result_parts: list[str] = []
    if parent_count and target_location:
        target_uri = split_reference(target_location)[0].replace("\\", "/")
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(target_uri), normalized))
        abs_parts = resolved.split("/")
        landing_index = len(abs_parts) - len(real_parts) - 1
        if 0 <= landing_index < len(abs_parts) and abs_parts[landing_index] not in ("", ".."):
            result_parts.append(abs_parts[landing_index])

    result_parts.extend(real_parts)
    result = "/".join(result_parts)
    if result.startswith("./"):
        result = result[2:]
    return result or posixpath.basename(normalized) or "root"
