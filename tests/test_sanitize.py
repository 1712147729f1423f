"""Tests for the sanitize transformation."""

import pytest

from oaskit.config import ExtensionFilter, SanitizeOptions
from oaskit.transformers.sanitize import (
    ExtensionRemover,
    is_valid_pattern,
    remove_extensions,
    remove_unknown_properties,
    sanitize,
)


@pytest.fixture
def spec():
    return {
        "openapi": "3.1.0",
        "x-speakeasy-retries": {"strategy": "backoff"},
        "info": {"title": "Test", "version": "1.0", "x-logo": "logo.png"},
        "paths": {
            "x-internal-paths": True,
            "/users": {
                "get": {
                    "x-speakeasy-name-override": "list",
                    "x-internal-secret": True,
                    "x-internal-public": True,
                    "operationId": "listUsers",
                    "vendorField": "drop me",
                    "responses": {
                        "200": {
                            "description": "OK",
                            "content": {
                                "application/json": {"schema": {"$ref": "#/components/schemas/User"}}
                            },
                        }
                    },
                }
            },
        },
        "components": {
            "schemas": {
                "User": {
                    "type": "object",
                    "nullable": True,
                    "x-go-type": "User",
                    "properties": {"x-raw": {"type": "string"}},
                    "example": {"x-raw": "literal"},
                    "bogus": 1,
                },
                "Unused": {"type": "string"},
            }
        },
    }


def _operation(spec):
    return spec["paths"]["/users"]["get"]


class TestRemoveExtensions:
    """Test extension filtering."""

    def test_removes_all_by_default(self, spec):
        warnings = remove_extensions(spec)

        assert "x-speakeasy-retries" not in spec
        assert "x-logo" not in spec["info"]
        assert "x-internal-paths" not in spec["paths"]
        assert not [k for k in _operation(spec) if k.startswith("x-")]
        assert "x-go-type" not in spec["components"]["schemas"]["User"]
        assert warnings == []

    def test_property_names_and_literals_are_not_extensions(self, spec):
        remove_extensions(spec)

        user = spec["components"]["schemas"]["User"]
        assert "x-raw" in user["properties"]
        assert user["example"] == {"x-raw": "literal"}

    def test_keep_patterns(self, spec):
        remove_extensions(spec, ExtensionFilter(keep=["x-speakeasy-*"]))

        assert "x-speakeasy-retries" in spec
        assert "x-speakeasy-name-override" in _operation(spec)
        assert "x-internal-secret" not in _operation(spec)
        assert "x-logo" not in spec["info"]

    def test_remove_patterns(self, spec):
        remove_extensions(spec, ExtensionFilter(remove=["x-internal-*"]))

        assert "x-internal-secret" not in _operation(spec)
        assert "x-internal-paths" not in spec["paths"]
        assert "x-speakeasy-name-override" in _operation(spec)
        assert "x-logo" in spec["info"]

    def test_keep_overrides_remove(self, spec):
        remove_extensions(spec, ExtensionFilter(keep=["x-internal-public"], remove=["x-internal-*"]))

        operation = _operation(spec)
        assert "x-internal-public" in operation
        assert "x-internal-secret" not in operation
        assert "x-speakeasy-name-override" in operation

    def test_unmatched_pattern_warns(self, spec):
        warnings = remove_extensions(spec, ExtensionFilter(keep=["x-speakeasy-*", "x-nothing-*"]))

        assert warnings == ["keep pattern 'x-nothing-*' did not match any extensions in the document"]

    def test_invalid_pattern_warns_and_is_skipped(self, spec):
        warnings = remove_extensions(spec, ExtensionFilter(remove=["x-[internal", "x-logo"]))

        assert warnings == ["invalid remove pattern 'x-[internal' was skipped"]
        assert "x-logo" not in spec["info"]
        assert "x-internal-secret" in _operation(spec)

    def test_combined_mode_tracks_both_lists(self, spec):
        """Test that a remove pattern overridden by keep still counts as matched."""
        warnings = remove_extensions(spec, ExtensionFilter(keep=["x-internal-*"], remove=["x-internal-secret"]))

        assert warnings == []
        assert "x-internal-secret" in _operation(spec)


class TestExtensionRemover:
    """Test the per-extension decision."""

    def test_should_remove_modes(self):
        assert ExtensionRemover(None).should_remove("x-a")
        assert not ExtensionRemover(ExtensionFilter(keep=["x-a"])).should_remove("x-a")
        assert ExtensionRemover(ExtensionFilter(keep=["x-a"])).should_remove("x-b")
        assert ExtensionRemover(ExtensionFilter(remove=["x-a"])).should_remove("x-a")
        assert not ExtensionRemover(ExtensionFilter(remove=["x-a"])).should_remove("x-b")

    @pytest.mark.parametrize(
        "pattern,valid",
        [
            ("x-speakeasy-*", True),
            ("x-?", True),
            ("x-[abc]", True),
            ("x-[]]", True),
            ("x-[abc", False),
            ("x-\\", False),
            ("x-\\*", True),
        ],
    )
    def test_is_valid_pattern(self, pattern, valid):
        assert is_valid_pattern(pattern) is valid


class TestRemoveUnknownProperties:
    """Test removal of properties OpenAPI does not define."""

    def test_unknown_fields_removed(self, spec):
        remove_unknown_properties(spec)

        assert "vendorField" not in _operation(spec)
        assert "bogus" not in spec["components"]["schemas"]["User"]

    def test_known_fields_and_extensions_kept(self, spec):
        remove_unknown_properties(spec)

        operation = _operation(spec)
        user = spec["components"]["schemas"]["User"]
        assert operation["operationId"] == "listUsers"
        assert "x-internal-secret" in operation
        assert user["nullable"] is True
        assert "x-raw" in user["properties"]

    def test_references_are_left_alone(self):
        spec = {"paths": {"/a": {"get": {"parameters": [{"$ref": "#/components/parameters/P", "summary": "s"}]}}}}

        remove_unknown_properties(spec)

        assert spec["paths"]["/a"]["get"]["parameters"][0] == {"$ref": "#/components/parameters/P", "summary": "s"}


class TestSanitize:
    """Test the sanitize function."""

    def test_defaults(self, spec):
        result = sanitize(spec)

        assert result.warnings == []
        assert "x-speakeasy-retries" not in spec
        assert "vendorField" not in _operation(spec)
        assert list(spec["components"]["schemas"]) == ["User"]

    def test_keep_unused_components(self, spec):
        sanitize(spec, SanitizeOptions(keep_unused_components=True))

        assert "Unused" in spec["components"]["schemas"]

    def test_keep_unknown_properties(self, spec):
        sanitize(spec, SanitizeOptions(keep_unknown_properties=True))

        assert _operation(spec)["vendorField"] == "drop me"

    def test_options_from_aliases(self, spec):
        options = SanitizeOptions.model_validate(
            {"extensionPatterns": {"keep": ["x-logo", "x-missing"]}, "keepUnusedComponents": True}
        )

        result = sanitize(spec, options)

        assert spec["info"]["x-logo"] == "logo.png"
        assert "Unused" in spec["components"]["schemas"]
        assert result.warnings == ["keep pattern 'x-missing' did not match any extensions in the document"]
