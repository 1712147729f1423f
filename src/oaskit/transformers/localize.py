"""Localize: copy every external file a document references into one directory.

Unlike bundle, the document keeps its external references; they are
rewritten to point at copies written next to each other in the target
directory. Whole files are the unit of localization, so references to two
fragments of one file share a single copy.

1. Discovery walks the document, then the raw content of each fetched
   file, collecting every distinct external file (keyed by its path
   relative to the root document, or its URL).
2. Naming gives each file its base name. Files sharing a base name are
   renamed by the naming strategy: ``PATH_BASED`` keeps the first one as
   is and prefixes the others with their directories
   (``schemas-address.yaml``, ``..`` becoming ``parent``); ``COUNTER`` gives
   ``address.yaml``, ``address_1.yaml`` ...
3. Each file is parsed, its ``$ref`` values rewritten to the sibling copies
   and written to the target directory through the VirtualFS.
4. The root document's references are rewritten to the copies, keeping
   their fragments.
"""

import logging
import posixpath
from dataclasses import dataclass, field, replace
from urllib.parse import urlsplit

import yaml

from oaskit.config import LocalizeNamingStrategy
from oaskit.core.loader import detect_format, parse_spec
from oaskit.core.references import (
    classify_reference,
    is_internal_reference,
    make_relative_for_naming,
    resolve_against,
    split_reference,
)
from oaskit.core.resolver import LocalFileSystem, ResolveOptions, Resolver, VirtualFS, absolute_location
from oaskit.core.walker import walk
from oaskit.core.writer import dump_spec
from oaskit.errors import ConfigurationError, InvalidReferenceError, LocalizeWriteError, ResolutionError
from oaskit.transformers.ops_base import iter_refs, rewrite_refs

logger = logging.getLogger(__name__)

REMOTE_FALLBACK_FILENAME = "remote-schema.yaml"


@dataclass
class LocalizeOptions:
    """Options for localize().

    Attributes:
        resolve_options: Root location, filesystem and HTTP client used to
                         read the external files
        target_directory: Directory the copies are written to (required)
        virtual_fs: Filesystem the copies are written through
        naming_strategy: How to rename files whose base names collide
    """

    resolve_options: ResolveOptions = field(default_factory=ResolveOptions)
    target_directory: str = ""
    virtual_fs: VirtualFS = field(default_factory=LocalFileSystem)
    naming_strategy: LocalizeNamingStrategy = LocalizeNamingStrategy.PATH_BASED


@dataclass
class LocalizeStorage:
    """State of one localize() call.

    Attributes:
        files: File key -> localized filename, in discovery order
        locations: File key -> absolute location it was read from
        contents: File key -> raw bytes
    """

    files: dict[str, str] = field(default_factory=dict)
    locations: dict[str, str] = field(default_factory=dict)
    contents: dict[str, bytes] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def _is_url(path: str) -> bool:
    try:
        return classify_reference(path).is_url
    except InvalidReferenceError:
        return False


def _base_filename(file_key: str) -> str:
    if _is_url(file_key):
        return posixpath.basename(urlsplit(file_key).path) or REMOTE_FALLBACK_FILENAME
    return posixpath.basename(file_key)


def _with_counter(filename: str, used: set[str]) -> str:
    stem, ext = posixpath.splitext(filename)
    result = filename
    counter = 1
    while result in used:
        result = f"{stem}_{counter}{ext}"
        counter += 1
    return result


def generate_path_based_filename(file_key: str, used: set[str]) -> str:
    """
    Build a directory-prefixed filename for a file whose base name is taken.

    Example:
        generate_path_based_filename("../shared/schemas/user.yaml", {"user.yaml"})
        # "parent-shared-schemas-user.yaml"
    """
    if _is_url(file_key):
        return _with_counter(_base_filename(file_key), used)

    clean_path = posixpath.normpath(file_key.replace("\\", "/"))
    if clean_path.startswith("./"):
        clean_path = clean_path[2:]
    clean_path = clean_path.replace("..", "parent")

    directory, filename = posixpath.split(clean_path)
    directory = directory.strip("/")
    result = f"{directory.replace('/', '-')}-{filename}" if directory and directory != "." else filename
    return _with_counter(result, used)


def generate_counter_filename(file_key: str, used: set[str]) -> str:
    """Return the base name of ``file_key``, suffixed ``_1``, ``_2`` ... until unused."""
    return _with_counter(_base_filename(file_key), used)


def generate_localized_filenames(file_keys: list[str], strategy: LocalizeNamingStrategy) -> dict[str, str]:
    """
    Assign a conflict-free filename to every discovered file.

    Files are named in the order given, which makes the result
    deterministic for a given document.
    """
    by_base: dict[str, list[str]] = {}
    for key in file_keys:
        by_base.setdefault(_base_filename(key), []).append(key)

    used: set[str] = set()
    claimed_bases: set[str] = set()
    names: dict[str, str] = {}
    for key in file_keys:
        base = _base_filename(key)
        if len(by_base[base]) == 1:
            filename = _with_counter(base, used)
        elif strategy == LocalizeNamingStrategy.PATH_BASED and base not in claimed_bases and base not in used:
            filename = base
            claimed_bases.add(base)
        elif strategy == LocalizeNamingStrategy.PATH_BASED:
            filename = generate_path_based_filename(key, used)
        else:
            filename = generate_counter_filename(key, used)
        names[key] = filename
        used.add(filename)
    return names


# ---------------------------------------------------------------------------
# Localizer
# ---------------------------------------------------------------------------


class _Localizer:
    def __init__(self, spec: dict, options: LocalizeOptions, resolver: Resolver):
        self.spec = spec
        self.options = options
        self.resolver = resolver
        self.root_location = options.resolve_options.root_location
        self.storage = LocalizeStorage()

    def file_key(self, absolute_uri: str) -> str:
        """Key a file by its path relative to the root document, or by its URL."""
        if _is_url(absolute_uri):
            return absolute_uri
        relative = make_relative_for_naming(absolute_uri, self.root_location)
        relative = posixpath.normpath(relative.replace("\\", "/"))
        return relative[2:] if relative.startswith("./") else relative

    def _external_uri(self, ref: str, base_location: str) -> tuple[str, str] | None:
        """Return (absolute uri, fragment) for an external ref, None otherwise."""
        try:
            absolute = resolve_against(ref, base_location)
        except InvalidReferenceError:
            logger.debug("Skipping malformed reference %r", ref)
            return None
        uri, fragment = split_reference(absolute)
        if not uri or is_internal_reference(absolute, self.root_location):
            return None
        return uri, fragment

    # -- discovery -----------------------------------------------------------

    def discover(self) -> None:
        for item in walk(self.spec, cancel=self.options.resolve_options.cancel):
            if item.is_reference:
                self.discover_reference(item.ref, self.root_location)

    def discover_reference(self, ref: str, base_location: str) -> None:
        external = self._external_uri(ref, base_location)
        if external is None:
            return
        uri, fragment = external
        key = self.file_key(uri)
        if key in self.storage.files:
            return

        if fragment:
            # fails early on references to fragments that do not exist
            self.resolver.resolve(ref, base_location, follow_chain=False)
        content = self.resolver.fetch_bytes(uri, ref)

        logger.info("Discovered external file %s", key)
        self.storage.files[key] = ""
        self.storage.locations[key] = uri
        self.storage.contents[key] = content

        try:
            parsed = parse_spec(content)
        except yaml.YAMLError as e:
            raise ResolutionError(ref, e) from e
        for nested_ref in iter_refs(parsed):
            self.discover_reference(nested_ref, uri)

    # -- copying -------------------------------------------------------------

    def localized_reference(self, ref: str, base_location: str) -> str | None:
        external = self._external_uri(ref, base_location)
        if external is None:
            return None
        uri, fragment = external
        filename = self.storage.files.get(self.file_key(uri))
        if not filename:
            return None
        return f"{filename}#{fragment}" if fragment else filename

    def copy_files(self) -> None:
        target_directory = self.options.target_directory
        for key, filename in self.storage.files.items():
            location = self.storage.locations[key]
            content = self.storage.contents[key]
            try:
                parsed = parse_spec(content)
            except yaml.YAMLError as e:
                raise ResolutionError(location, e) from e

            def _rewrite(ref: str, base: str = location) -> str | None:
                if ref.startswith("#"):
                    return None
                return self.localized_reference(ref, base)

            rewrite_refs(parsed, _rewrite)
            data = dump_spec(parsed, detect_format(filename, content)).encode("utf-8")

            target_path = posixpath.join(target_directory.replace("\\", "/"), filename)
            try:
                self.options.virtual_fs.write_bytes(target_path, data)
            except OSError as e:
                raise LocalizeWriteError(target_path, e) from e
            logger.info("Localized %s -> %s", key, target_path)

    def rewrite_root(self) -> None:
        for item in walk(self.spec, cancel=self.options.resolve_options.cancel):
            if not item.is_reference:
                continue
            new_ref = self.localized_reference(item.ref, self.root_location)
            if new_ref is not None:
                item.value["$ref"] = new_ref

    def run(self) -> None:
        self.discover()
        names = generate_localized_filenames(list(self.storage.files), self.options.naming_strategy)
        self.storage.files.update(names)
        self.copy_files()
        self.rewrite_root()


def localize(spec: dict, options: LocalizeOptions) -> dict:
    """
    Copy the external files ``spec`` references into a target directory.

    Args:
        spec: The OpenAPI specification as a dictionary
        options: Localize options; ``target_directory`` must be set

    Returns:
        The specification with references pointing at the copies (mutated
        in-place and returned). The root document itself is not written.

    Raises:
        ConfigurationError: If no target directory is given
        ResolutionError: If an external file cannot be fetched or parsed
        LocalizeWriteError: If a copy cannot be written
        OperationCancelled: If cancellation was requested
    """
    if not options.target_directory:
        raise ConfigurationError("target directory is required for localize")

    resolve_options = replace(
        options.resolve_options,
        root_location=absolute_location(options.resolve_options.root_location),
        root_document=options.resolve_options.root_document or spec,
    )
    options = replace(options, resolve_options=resolve_options)

    with Resolver(resolve_options) as resolver:
        _Localizer(spec, options, resolver).run()
    return spec

