"""Tests for reference classification and path algebra."""

import pytest

from oaskit.core.references import (
    ReferenceType,
    classify_reference,
    component_reference,
    extract_simple_name,
    is_internal_reference,
    join_reference,
    make_relative_for_naming,
    normalize_path_for_component_name,
    reference_key,
    resolve_against,
    split_reference,
)
from oaskit.errors import InvalidReferenceError


class TestClassifyReference:
    """Test the classify_reference function."""

    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("#/components/schemas/User", ReferenceType.FRAGMENT),
            ("schemas/user.yaml", ReferenceType.RELATIVE_PATH),
            ("./schemas/user.yaml#/User", ReferenceType.RELATIVE_PATH),
            ("../shared.yaml", ReferenceType.RELATIVE_PATH),
            ("/specs/api.yaml", ReferenceType.ABSOLUTE_PATH),
            ("C:\\specs\\api.yaml", ReferenceType.ABSOLUTE_PATH),
            ("C:/specs/api.yaml", ReferenceType.ABSOLUTE_PATH),
            ("\\\\server\\share\\api.yaml", ReferenceType.ABSOLUTE_PATH),
            ("https://example.com/api.yaml#/User", ReferenceType.URL),
        ],
    )
    def test_classifies(self, ref, expected):
        """Test every kind of reference."""
        assert classify_reference(ref).type == expected

    def test_flags(self):
        """Test the convenience properties."""
        url = classify_reference("https://example.com/a.yaml")
        fragment = classify_reference("#/a")
        path = classify_reference("a.yaml")

        assert url.is_url and not url.is_fragment and not url.is_file
        assert fragment.is_fragment and not fragment.is_url
        assert path.is_file

    def test_empty_reference_is_invalid(self):
        """Test that an empty string is rejected."""
        with pytest.raises(InvalidReferenceError):
            classify_reference("")

    def test_malformed_url_is_invalid(self):
        """Test that an unparseable URL is rejected."""
        with pytest.raises(InvalidReferenceError):
            classify_reference("http://[broken")


class TestJoinReference:
    """Test the join_reference function."""

    def test_posix_relative(self):
        assert join_reference("/specs/api.yaml", "./schemas/user.yaml") == "/specs/schemas/user.yaml"

    def test_posix_parent_directory(self):
        assert join_reference("/specs/v1/api.yaml", "../shared/user.yaml#/User") == "/specs/shared/user.yaml#/User"

    def test_fragment_replaces_base_fragment(self):
        assert join_reference("/specs/api.yaml#/Old", "#/New") == "/specs/api.yaml#/New"

    def test_url_base(self):
        assert join_reference("https://example.com/v1/api.yaml", "common.yaml#/Err") == (
            "https://example.com/v1/common.yaml#/Err"
        )

    def test_url_relative_is_kept(self):
        assert join_reference("/specs/api.yaml", "https://example.com/a.yaml") == "https://example.com/a.yaml"

    def test_windows_separators_are_preserved(self):
        """Test that a backslash base is joined with Windows semantics."""
        assert join_reference("C:\\specs\\v1\\api.yaml", "..\\shared\\user.yaml") == "C:\\specs\\shared\\user.yaml"

    def test_absolute_relative_is_returned_as_is(self):
        assert join_reference("/specs/api.yaml", "/other/user.yaml") == "/other/user.yaml"

    def test_empty_base(self):
        assert join_reference("", "user.yaml") == "user.yaml"


class TestResolveAgainst:
    """Test the resolve_against function."""

    def test_relative_chain_normalizes_to_one_key(self):
        """Test that two routes to the same file produce the same key."""
        direct = resolve_against("schemas/address.yaml#/Address", "/specs/api.yaml")
        via_subdir = resolve_against("./address.yaml#/Address", "/specs/schemas/user.yaml")

        assert reference_key(direct) == reference_key(via_subdir) == "/specs/schemas/address.yaml#/Address"

    def test_fragment_gets_base_prefix(self):
        assert resolve_against("#/User", "/specs/user.yaml") == "/specs/user.yaml#/User"

    def test_url_untouched(self):
        assert resolve_against("https://example.com/a.yaml", "/specs/api.yaml") == "https://example.com/a.yaml"


class TestReferenceKey:
    """Test the reference_key function."""

    def test_windows_paths_collapse(self):
        assert reference_key("C:\\specs\\a.yaml#/X") == reference_key("C:/specs/a.yaml#/X") == "C:/specs/a.yaml#/X"

    def test_empty_fragment_dropped(self):
        assert reference_key("/specs/a.yaml#") == "/specs/a.yaml"


class TestHelpers:
    """Test the smaller reference helpers."""

    def test_split_reference(self):
        assert split_reference("a.yaml#/User") == ("a.yaml", "/User")
        assert split_reference("#/User") == ("", "/User")
        assert split_reference("a.yaml") == ("a.yaml", "")

    def test_is_internal_reference(self):
        assert is_internal_reference("#/components/schemas/A", "/specs/api.yaml")
        assert is_internal_reference("/specs/./api.yaml#/A", "/specs/api.yaml")
        assert not is_internal_reference("/specs/other.yaml#/A", "/specs/api.yaml")

    def test_make_relative_for_naming(self):
        assert make_relative_for_naming("/specs/schemas/user.yaml#/User", "/specs/api.yaml") == (
            "schemas/user.yaml#/User"
        )
        assert make_relative_for_naming("/shared/user.yaml", "/specs/api.yaml") == "../shared/user.yaml"
        assert make_relative_for_naming("https://x.io/a.yaml", "/specs/api.yaml") == "https://x.io/a.yaml"
        assert make_relative_for_naming("#/User", "/specs/api.yaml") == "#/User"

    def test_component_reference_escapes_name(self):
        assert component_reference("schemas", "User") == "#/components/schemas/User"
        assert component_reference("pathItems", "a/b~c") == "#/components/pathItems/a~1b~0c"

    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("schemas/user.yaml#/components/schemas/User", "User"),
            ("schemas/user-profile.yaml", "user_profile"),
            ("schemas/user.yaml#/", "user"),
            ("https://example.com/specs/pet.v2.yaml", "pet_v2"),
            ("a.yaml#/definitions/a~1b", "a_b"),
            ("paths.yaml#/paths/~1users", "users"),
            ("a.yaml#/definitions/_Private", "_Private"),
            ("a.yaml#/definitions/user.v2-final", "user.v2-final"),
        ],
    )
    def test_extract_simple_name(self, ref, expected):
        assert extract_simple_name(ref) == expected


class TestNormalizePathForComponentName:
    """Test the landing directory extraction."""

    def test_parent_hops_land_in_directory(self):
        result = normalize_path_for_component_name("../../../other/api.yaml", "/repo/openapi/a/b/c/spec.yaml")

        assert result == "openapi/other/api.yaml"

    def test_absolute_path_loses_root(self):
        assert normalize_path_for_component_name("/abs/schemas/user.yaml", "/specs/api.yaml") == "abs/schemas/user.yaml"

    def test_hops_above_filesystem_root_still_produce_a_name(self):
        """Test that walking past the root never yields an empty name."""
        result = normalize_path_for_component_name("../../../../user.yaml", "/a/spec.yaml")

        assert result == "user.yaml"

    def test_plain_relative_path_unchanged(self):
        assert normalize_path_for_component_name("schemas/user.yaml", "/specs/api.yaml") == "schemas/user.yaml"
