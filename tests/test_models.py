"""Tests for building flattened schemas from pydantic models."""

import pytest
from pydantic import BaseModel, create_model

from fastapi_schemas.errors import SchemaKeyConflict
from fastapi_schemas.models import JSON_SCHEMA_7, build_json_schemas, to_json_schema_document
from fastapi_schemas.settings import schema_settings


class Address(BaseModel):
    street: str
    city: str


class User(BaseModel):
    name: str
    address: Address


class Node(BaseModel):
    value: int
    children: list["Node"] = []


def test_root_document_shape():
    # type: () -> None
    """Test the intermediate root document built from the models."""
    document = to_json_schema_document({"User": User, "UserId": int})
    assert document["$id"] == "Schema"
    assert document["$schema"] == JSON_SCHEMA_7
    assert document["type"] == "object"
    assert list(document["properties"]) == ["User", "UserId"]
    assert document["required"] == ["User", "UserId"]
    assert document["additionalProperties"] is False
    assert document["properties"]["UserId"] == {"type": "integer"}


def test_openapi3_target_has_no_schema_tag():
    # type: () -> None
    """Test that the openApi3 target leaves documents untagged."""
    document = to_json_schema_document({"UserId": int}, schema_id="Models", target="openApi3")
    assert document["$id"] == "Models"
    assert "$schema" not in document
    schemas = build_json_schemas({"UserId": int}, target="openApi3")
    assert schemas.get("UserId") == {"$id": "UserId", "type": "integer"}


def test_defaults_follow_schema_settings(monkeypatch):
    # type: (pytest.MonkeyPatch) -> None
    """Test that the root id and target default to the configured settings."""
    document = to_json_schema_document({"UserId": int})
    assert document["$id"] == "Schema"
    assert document["$schema"] == JSON_SCHEMA_7

    monkeypatch.setattr(schema_settings, "schema_id", "Models")
    monkeypatch.setattr(schema_settings, "target", "openApi3")
    document = to_json_schema_document({"UserId": int})
    assert document["$id"] == "Models"
    assert "$schema" not in document
    assert build_json_schemas({"UserId": int}).get("UserId") == {"$id": "UserId", "type": "integer"}
    # explicit arguments win
    assert to_json_schema_document({"UserId": int}, schema_id="Other", target="jsonSchema7")["$id"] == "Other"


def test_listed_nested_model_is_referenced_by_key():
    # type: () -> None
    """Test that a nested model that is also listed becomes a ref to its schema."""
    schemas = build_json_schemas({"User": User, "Address": Address})
    assert schemas.ids == ["User", "Address"]
    assert schemas.get("User")["properties"]["address"] == {"$ref": "Address#"}
    assert schemas.get("Address")["properties"]["street"]["type"] == "string"
    assert "definitions" not in schemas.document


def test_unlisted_nested_model_is_extracted_from_definitions():
    # type: () -> None
    """Test that an unlisted nested model is extracted from the root definitions."""
    schemas = build_json_schemas({"User": User})
    assert schemas.ids == ["User", "Schema_definitions_Address"]
    assert schemas.get("User")["properties"]["address"] == {"$ref": "Schema_definitions_Address#"}


def test_recursive_model():
    # type: () -> None
    """Test that a self-referencing model references its own document."""
    schemas = build_json_schemas({"Node": Node})
    assert schemas.ids == ["Node"]
    node = schemas.get("Node")
    assert node["type"] == "object"
    assert node["properties"]["children"]["items"] == {"$ref": "Node#"}


def test_ref_and_components():
    # type: () -> None
    """Test the route-facing helpers of the result."""
    schemas = build_json_schemas({"User": User, "Address": Address}, target="openApi3")
    assert schemas.ref("User") == {"$ref": "User#"}
    components = schemas.to_components()
    assert components["User"]["properties"]["address"] == {"$ref": "#/components/schemas/Address"}
    assert "$id" not in components["User"]


def test_merge_refs_replaces_inline_copies():
    # type: () -> None
    """Test that merging turns an inline copy of a listed schema into a ref."""
    models = {"Names": list[str], "Pair": tuple[list[str], int]}
    assert build_json_schemas(models).get("Pair")["prefixItems"][0] == {"type": "array", "items": {"type": "string"}}
    merged = build_json_schemas(models, merge_refs=True)
    assert merged.get("Pair")["prefixItems"][0] == {"$ref": "Names#"}
    assert merged.get("Pair")["prefixItems"][1] == {"type": "integer"}


def test_conflicting_definitions_raise():
    # type: () -> None
    """Test that two different types generating the same definition name are rejected."""

    def make_wrapper(field):
        # type: (str) -> type[BaseModel]
        item = create_model("Item", **{field: (int, ...)})
        return create_model("Wrapper", item=(item, ...))

    with pytest.raises(SchemaKeyConflict):
        to_json_schema_document({"A": make_wrapper("a"), "B": make_wrapper("b")})
