"""Integration tests for whole-file pipelines.

These tests run several operations over real files:
1. Bundling a multi-file document
2. Optimizing and cleaning the bundled result
3. Writing JSON or YAML according to the output path
"""

import copy
import json

import pytest
import yaml

from oaskit.config import FileFormat, SanitizeOptions
from oaskit.core.resolver import ResolveOptions
from oaskit.transformers.bundle import BundleOptions, bundle
from oaskit.transformers.clean import clean
from oaskit.transformers.manager import apply_steps, output_format, process_spec
from oaskit.transformers.optimize import optimize
from oaskit.transformers.sanitize import sanitize

OWNER = {"type": "object", "properties": {"email": {"type": "string", "format": "email"}}}

PET = {"type": "object", "properties": {"name": {"type": "string"}, "owner": OWNER}}


@pytest.fixture
def multi_file_spec(tmp_path):
    """A root document whose schemas live in two external files."""
    (tmp_path / "models").mkdir()
    (tmp_path / "models" / "pet.yaml").write_text(
        yaml.dump({"Pet": PET, "PetList": {"type": "array", "items": {"$ref": "#/Pet"}}})
    )
    (tmp_path / "models" / "errors.json").write_text(
        json.dumps({"Error": {"type": "object", "x-go-type": "Err", "properties": {"code": {"type": "integer"}}}})
    )
    spec = {
        "openapi": "3.1.0",
        "info": {"title": "Pets", "version": "1.0.0", "x-audience": "public"},
        "paths": {
            "/pets": {
                "get": {
                    "responses": {
                        "200": {
                            "description": "OK",
                            "content": {"application/json": {"schema": {"$ref": "models/pet.yaml#/PetList"}}},
                        },
                        "default": {
                            "description": "Error",
                            "content": {"application/json": {"schema": {"$ref": "models/errors.json#/Error"}}},
                        },
                    }
                },
                "post": {
                    "requestBody": {
                        "content": {"application/json": {"schema": {"$ref": "./models/pet.yaml#/Pet"}}}
                    },
                    "responses": {
                        "201": {
                            "description": "Created",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {"email": {"type": "string", "format": "email"}},
                                    }
                                }
                            },
                        }
                    },
                },
                "put": {
                    "requestBody": {"content": {"application/json": {"schema": copy.deepcopy(OWNER)}}},
                    "responses": {"204": {"description": "Updated"}},
                },
            }
        },
    }
    path = tmp_path / "api.yaml"
    path.write_text(yaml.dump(spec, sort_keys=False))
    return path


def _bundle_step(path):
    options = BundleOptions(resolve_options=ResolveOptions(root_location=str(path)))
    return ("bundle", lambda spec: bundle(spec, options))


class TestOutputFormat:
    """Test output format selection."""

    def test_output_suffix_wins(self, tmp_path):
        assert output_format(tmp_path / "a.json", FileFormat.YAML) == FileFormat.JSON
        assert output_format(tmp_path / "a.yml", FileFormat.JSON) == FileFormat.YAML

    def test_falls_back_to_input_format(self, tmp_path):
        assert output_format(None, FileFormat.JSON) == FileFormat.JSON
        assert output_format(tmp_path / "a.txt", FileFormat.YAML) == FileFormat.YAML


class TestApplySteps:
    """Test step sequencing."""

    def test_steps_run_in_order(self):
        calls = []
        steps = [("first", lambda spec: calls.append("first")), ("second", lambda spec: calls.append("second"))]

        apply_steps({}, steps)

        assert calls == ["first", "second"]


class TestPipeline:
    """End-to-end runs over files on disk."""

    def test_bundle_then_optimize(self, multi_file_spec):
        """Test that bundled schemas and inline duplicates end up as components."""
        output = multi_file_spec.parent / "out.yaml"

        process_spec(
            multi_file_spec,
            output,
            [_bundle_step(multi_file_spec), ("optimize", optimize), ("clean", clean)],
        )

        result = yaml.safe_load(output.read_text())
        schemas = result["components"]["schemas"]
        assert {"Pet", "PetList", "Error"} <= set(schemas)
        assert schemas["PetList"]["items"] == {"$ref": "#/components/schemas/Pet"}

        # the 201 response body and the PUT body are identical, the owner inside Pet stays inline
        created = result["paths"]["/pets"]["post"]["responses"]["201"]["content"]["application/json"]["schema"]
        updated = result["paths"]["/pets"]["put"]["requestBody"]["content"]["application/json"]["schema"]
        assert created == updated
        assert created["$ref"].startswith("#/components/schemas/Schema_")
        assert schemas["Pet"]["properties"]["owner"] == OWNER

    def test_bundle_then_sanitize_to_json(self, multi_file_spec):
        """Test that sanitize strips extensions from bundled content too."""
        output = multi_file_spec.parent / "out.json"

        process_spec(
            multi_file_spec,
            output,
            [_bundle_step(multi_file_spec), ("sanitize", lambda spec: sanitize(spec, SanitizeOptions()))],
        )

        result = json.loads(output.read_text())
        assert "x-audience" not in result["info"]
        assert "x-go-type" not in result["components"]["schemas"]["Error"]

    def test_returns_text_without_output_path(self, multi_file_spec):
        text = process_spec(multi_file_spec, None, [("clean", clean)])

        assert yaml.safe_load(text)["info"]["title"] == "Pets"

    def test_bundle_is_stable_across_runs(self, multi_file_spec):
        first = process_spec(multi_file_spec, None, [_bundle_step(multi_file_spec)])
        second = process_spec(multi_file_spec, None, [_bundle_step(multi_file_spec)])

        assert first == second
