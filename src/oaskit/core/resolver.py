"""Fetching and resolving external references.

Raw bytes come from a VirtualFS for file paths and from an httpx client for
URLs. Both raw content and parsed documents are cached per absolute URI so
that every distinct file is fetched at most once per operation.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml

from oaskit.core.cancel import CancelToken, check_cancelled
from oaskit.core.jsonpointer import get_by_pointer
from oaskit.core.loader import parse_spec
from oaskit.core.references import (
    ReferenceType,
    classify_reference,
    is_internal_reference,
    reference_key,
    resolve_against,
    split_reference,
)
from oaskit.core.walker import is_reference
from oaskit.errors import InvalidReferenceError, ResolutionError

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0


class VirtualFS(Protocol):
    """Byte-level file access used for reading references and writing output."""

    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...


class LocalFileSystem:
    """VirtualFS backed by the real filesystem."""

    def read_bytes(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class MemoryFileSystem:
    """
    VirtualFS holding files in a dict, keyed by path.

    Example:
        fs = MemoryFileSystem({"/specs/user.yaml": "User:\\n  type: object\\n"})
    """

    def __init__(self, files: dict[str, bytes | str] | None = None):
        self.files: dict[str, bytes] = {}
        for path, content in (files or {}).items():
            self.write_bytes(path, content.encode("utf-8") if isinstance(content, str) else content)

    def read_bytes(self, path: str) -> bytes:
        try:
            return self.files[reference_key(path)]
        except KeyError:
            raise FileNotFoundError(f"No such file: {path}") from None

    def write_bytes(self, path: str, data: bytes) -> None:
        self.files[reference_key(path)] = data


@dataclass
class ResolveOptions:
    """
    Where the root document lives and how to reach everything else.

    Attributes:
        root_location: Absolute path or URL of the root document
        root_document: The in-memory root document; references back into it
                       resolve here instead of re-reading the file
        virtual_fs: File access for path references
        http_client: Client for URL references; created on first use if None
        cancel: Cancellation token checked before each fetch
    """

    root_location: str = ""
    root_document: Any = None
    virtual_fs: VirtualFS = field(default_factory=LocalFileSystem)
    http_client: httpx.Client | None = None
    cancel: CancelToken | None = None


@dataclass
class ResolveResult:
    """The target of a resolved reference.

    Attributes:
        value: The node the reference points at (after following chains)
        absolute_reference: Absolute form of the final reference
        document_location: Absolute URI of the document holding ``value``
        document: The whole document holding ``value``
        chain: Absolute references visited, first to last
    """

    value: Any
    absolute_reference: str
    document_location: str
    document: Any
    chain: list[str] = field(default_factory=list)


class Resolver:
    """Resolves references relative to a root document, with caching."""

    def __init__(self, options: ResolveOptions):
        self.options = options
        self._raw: dict[str, bytes] = {}
        self._documents: dict[str, Any] = {}
        self._owned_client: httpx.Client | None = None

    def close(self) -> None:
        if self._owned_client is not None:
            self._owned_client.close()
            self._owned_client = None

    def __enter__(self) -> "Resolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _client(self) -> httpx.Client:
        if self.options.http_client is not None:
            return self.options.http_client
        if self._owned_client is None:
            self._owned_client = httpx.Client(timeout=DEFAULT_HTTP_TIMEOUT, follow_redirects=True)
        return self._owned_client

    def fetch_bytes(self, uri: str, reference: str | None = None) -> bytes:
        """
        Return the raw content at ``uri`` (an absolute path or URL).

        Raises:
            ResolutionError: If the content cannot be read
            OperationCancelled: If cancellation was requested
        """
        key = reference_key(uri)
        if key in self._raw:
            return self._raw[key]

        check_cancelled(self.options.cancel)
        reference = reference or uri
        try:
            if classify_reference(uri).is_url:
                logger.debug("Fetching %s", uri)
                response = self._client().get(uri)
                response.raise_for_status()
                data = response.content
            else:
                logger.debug("Reading %s", uri)
                data = self.options.virtual_fs.read_bytes(uri)
        except (OSError, httpx.HTTPError, InvalidReferenceError) as e:
            raise ResolutionError(reference, e) from e

        self._raw[key] = data
        return data

    def load_document(self, uri: str, reference: str | None = None) -> Any:
        """
        Return the parsed document at ``uri``.

        Raises:
            ResolutionError: If the content cannot be read or parsed
        """
        key = reference_key(uri)
        if key in self._documents:
            return self._documents[key]

        data = self.fetch_bytes(uri, reference)
        try:
            document = parse_spec(data)
        except yaml.YAMLError as e:
            raise ResolutionError(reference or uri, e) from e

        self._documents[key] = document
        return document

    def _document_for(self, uri: str, reference: str) -> Any:
        if self.options.root_document is not None and is_internal_reference(
            uri or "#", self.options.root_location
        ):
            return self.options.root_document
        if not uri:
            raise ResolutionError(reference, "no document location to resolve against")
        return self.load_document(uri, reference)

    def resolve(self, ref: str, base_location: str | None = None, follow_chain: bool = True) -> ResolveResult:
        """
        Resolve ``ref`` found in the document at ``base_location``.

        Args:
            ref: The ``$ref`` value
            base_location: Absolute location of the document containing
                           ``ref``; defaults to the root location
            follow_chain: Keep resolving while the target is itself only a
                          reference

        Returns:
            ResolveResult describing the final target

        Raises:
            ResolutionError: On fetch, parse or pointer failures and on
                             chains that loop back on themselves
        """
        if base_location is None:
            base_location = self.options.root_location

        chain: list[str] = []
        current_ref, current_base = ref, base_location
        while True:
            try:
                absolute = resolve_against(current_ref, current_base)
            except InvalidReferenceError as e:
                raise ResolutionError(current_ref, e) from e

            key = reference_key(absolute)
            if key in chain:
                raise ResolutionError(ref, f"circular reference chain: {' -> '.join(chain + [key])}")
            chain.append(key)

            uri, fragment = split_reference(absolute)
            document = self._document_for(uri, ref)
            try:
                value = get_by_pointer(document, fragment)
            except (KeyError, ValueError) as e:
                raise ResolutionError(ref, e) from e

            document_location = uri or split_reference(self.options.root_location)[0]
            if follow_chain and is_reference(value) and len(value) == 1:
                current_ref, current_base = value["$ref"], document_location
                continue

            return ResolveResult(
                value=value,
                absolute_reference=absolute,
                document_location=document_location,
                document=document,
                chain=chain,
            )


def absolute_location(location: str) -> str:
    """Make a root location absolute; URLs and empty strings pass through."""
    if not location:
        return location
    try:
        classification = classify_reference(location)
    except InvalidReferenceError:
        return location
    if classification.is_url or classification.type == ReferenceType.ABSOLUTE_PATH:
        return location
    return os.path.abspath(location)
