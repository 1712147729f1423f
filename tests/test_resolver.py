"""Tests for reference resolution."""

from pathlib import Path

import httpx
import pytest

from oaskit.core.resolver import (
    LocalFileSystem,
    MemoryFileSystem,
    ResolveOptions,
    Resolver,
    absolute_location,
)
from oaskit.errors import ResolutionError

ROOT = "/specs/api.yaml"


class CountingFileSystem(MemoryFileSystem):
    """MemoryFileSystem that records every read."""

    def __init__(self, files):
        super().__init__(files)
        self.reads: list[str] = []

    def read_bytes(self, path: str) -> bytes:
        self.reads.append(path)
        return super().read_bytes(path)


@pytest.fixture
def files():
    return {
        "/specs/schemas/user.yaml": (
            "User:\n"
            "  type: object\n"
            "  properties:\n"
            "    address:\n"
            "      $ref: './address.yaml#/Address'\n"
        ),
        "/specs/schemas/address.yaml": "Address:\n  type: object\n",
        "/specs/schemas/alias.yaml": "Alias:\n  $ref: './user.yaml#/User'\n",
        "/specs/loop-a.yaml": "A:\n  $ref: './loop-b.yaml#/B'\n",
        "/specs/loop-b.yaml": "B:\n  $ref: './loop-a.yaml#/A'\n",
        "/specs/broken.yaml": "key: [unclosed\n",
    }


def _resolver(files, **kwargs):
    return Resolver(ResolveOptions(root_location=ROOT, virtual_fs=MemoryFileSystem(files), **kwargs))


class TestMemoryFileSystem:
    """Test the in-memory VirtualFS."""

    def test_round_trip(self):
        fs = MemoryFileSystem()
        fs.write_bytes("/out/a.yaml", b"a: 1\n")

        assert fs.read_bytes("/out/a.yaml") == b"a: 1\n"

    def test_paths_are_normalized(self):
        fs = MemoryFileSystem({"/specs/./schemas/../a.yaml": "a: 1\n"})

        assert fs.read_bytes("/specs/a.yaml") == b"a: 1\n"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            MemoryFileSystem().read_bytes("/nope.yaml")


class TestLocalFileSystem:
    """Test the real-filesystem VirtualFS."""

    def test_write_creates_directories(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "a.yaml"

        LocalFileSystem().write_bytes(str(target), b"a: 1\n")

        assert LocalFileSystem().read_bytes(str(target)) == b"a: 1\n"


class TestResolve:
    """Test Resolver.resolve."""

    def test_relative_file_reference(self, files):
        result = _resolver(files).resolve("schemas/user.yaml#/User")

        assert result.value["type"] == "object"
        assert result.document_location == "/specs/schemas/user.yaml"
        assert result.absolute_reference == "/specs/schemas/user.yaml#/User"

    def test_nested_reference_resolves_against_its_own_file(self, files):
        resolver = _resolver(files)
        user = resolver.resolve("schemas/user.yaml#/User")

        address = resolver.resolve(user.value["properties"]["address"]["$ref"], user.document_location)

        assert address.value == {"type": "object"}
        assert address.document_location == "/specs/schemas/address.yaml"

    def test_whole_file_reference(self, files):
        result = _resolver(files).resolve("schemas/address.yaml")

        assert result.value == {"Address": {"type": "object"}}

    def test_chain_is_followed(self, files):
        result = _resolver(files).resolve("schemas/alias.yaml#/Alias")

        assert result.value["type"] == "object"
        assert result.chain == ["/specs/schemas/alias.yaml#/Alias", "/specs/schemas/user.yaml#/User"]
        assert result.document_location == "/specs/schemas/user.yaml"

    def test_chain_not_followed_when_disabled(self, files):
        result = _resolver(files).resolve("schemas/alias.yaml#/Alias", follow_chain=False)

        assert result.value == {"$ref": "./user.yaml#/User"}

    def test_circular_chain_fails(self, files):
        with pytest.raises(ResolutionError, match="circular"):
            _resolver(files).resolve("loop-a.yaml#/A")

    def test_internal_reference_uses_root_document(self, files):
        root = {"components": {"schemas": {"Pet": {"type": "string"}}}}

        result = _resolver(files, root_document=root).resolve("#/components/schemas/Pet")

        assert result.value == {"type": "string"}
        assert result.document is root

    def test_missing_file(self, files):
        with pytest.raises(ResolutionError) as exc_info:
            _resolver(files).resolve("schemas/missing.yaml#/Missing")

        assert exc_info.value.reference == "schemas/missing.yaml#/Missing"

    def test_missing_pointer(self, files):
        with pytest.raises(ResolutionError):
            _resolver(files).resolve("schemas/user.yaml#/Nope")

    def test_unparseable_document(self, files):
        with pytest.raises(ResolutionError):
            _resolver(files).resolve("broken.yaml")


class TestFetching:
    """Test caching and HTTP fetching."""

    def test_each_file_is_read_once(self, files):
        fs = CountingFileSystem(files)
        resolver = Resolver(ResolveOptions(root_location=ROOT, virtual_fs=fs))

        resolver.resolve("schemas/user.yaml#/User")
        resolver.resolve("./schemas/user.yaml#/User/properties")
        resolver.resolve("schemas/../schemas/user.yaml")

        assert fs.reads == ["/specs/schemas/user.yaml"]

    def test_url_reference(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, text="Pet:\n  type: object\n")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with Resolver(ResolveOptions(root_location=ROOT, http_client=client)) as resolver:
            first = resolver.resolve("https://example.com/pet.yaml#/Pet")
            resolver.resolve("https://example.com/pet.yaml#/Pet")

        assert first.value == {"type": "object"}
        assert first.document_location == "https://example.com/pet.yaml"
        assert requested == ["https://example.com/pet.yaml"]

    def test_relative_reference_inside_remote_document(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/api.yaml":
                return httpx.Response(200, text="Pet:\n  $ref: 'common.yaml#/Base'\n")
            return httpx.Response(200, text="Base:\n  type: string\n")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with Resolver(ResolveOptions(root_location=ROOT, http_client=client)) as resolver:
            result = resolver.resolve("https://example.com/v1/api.yaml#/Pet")

        assert result.value == {"type": "string"}
        assert result.document_location == "https://example.com/v1/common.yaml"

    def test_http_error(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        with pytest.raises(ResolutionError):
            Resolver(ResolveOptions(root_location=ROOT, http_client=client)).resolve("https://example.com/a.yaml")

    def test_supplied_client_is_not_closed(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="a: 1")))

        with Resolver(ResolveOptions(root_location=ROOT, http_client=client)):
            pass

        assert not client.is_closed


class TestAbsoluteLocation:
    """Test absolute_location."""

    def test_relative_path_becomes_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert absolute_location("api.yaml") == str(Path.cwd() / "api.yaml")

    def test_url_and_absolute_pass_through(self):
        assert absolute_location("https://example.com/api.yaml") == "https://example.com/api.yaml"
        assert absolute_location("/specs/api.yaml") == "/specs/api.yaml"
        assert absolute_location("") == ""
