"""Tests for flattening a root schema into named schemas."""

import pytest
from pydantic import BaseModel

from fastapi_schemas.errors import (
    InvalidPropertySchema,
    NotAnObjectSchema,
    UnresolvedReference,
)
from fastapi_schemas.flatten import extracted_schema_id, flatten, flatten_json_schema, schema_body
from fastapi_schemas.models import to_json_schema_document
from fastapi_schemas.path import get_at_path
from fastapi_schemas.refs import ref_path_of
from fastapi_schemas.traversal import map_deep, visit_deep


class Leaf(BaseModel):
    label: str


class Node(BaseModel):
    leaf: Leaf
    children: list["Node"] = []


def inline_root_refs(root, node, stack):
    # type: (dict, dict, tuple) -> dict
    """Resolve the root's local refs below `node`; a ref back to a property on `stack` becomes a marker."""

    def transform(value, path):
        ref_path = ref_path_of(value)
        if ref_path is None:
            return value
        siblings = {k: v for k, v in value.items() if k != "$ref"}
        target = ref_path.path
        if len(target) == 2 and target[0] == "properties":
            if target[1] in stack:
                return {"$recursive": target[1], **siblings}
            return {**inline_root_refs(root, get_at_path(root, target), (*stack, target[1])), **siblings}
        return {**inline_root_refs(root, get_at_path(root, target), stack), **siblings}

    return map_deep(node, transform)


def inline_schema_refs(schemas, node, stack):
    # type: (list[dict], dict, tuple) -> dict
    """Resolve `Id#...` refs below `node` against the flattened set, with the same recursion markers."""
    by_id = {schema["$id"]: schema for schema in schemas}

    def transform(value, path):
        ref_path = ref_path_of(value)
        if ref_path is None:
            return value
        siblings = {k: v for k, v in value.items() if k != "$ref"}
        if ref_path.base_path in stack and not ref_path.path:
            return {"$recursive": ref_path.base_path, **siblings}
        target = get_at_path(schema_body(by_id[ref_path.base_path]), ref_path.path)
        return {**inline_schema_refs(schemas, target, (*stack, ref_path.base_path)), **siblings}

    return map_deep(node, transform)


def assert_document_refs_resolve(schemas):
    # type: (list[dict]) -> None
    """Every ref addresses a whole schema of the set."""
    by_id = {schema["$id"]: schema for schema in schemas}
    assert len(by_id) == len(schemas)

    def visit(node, path):
        ref_path = ref_path_of(node)
        if ref_path is not None:
            assert ref_path.base_path in by_id, node["$ref"]
            assert ref_path.path == (), node["$ref"]

    visit_deep(schemas, visit)


def assert_nothing_lost(root, schemas):
    # type: (dict, list[dict]) -> None
    """Each property schema, with refs resolved, reads the same as the root property it came from."""
    by_id = {schema["$id"]: schema for schema in schemas}
    for key, original in root["properties"].items():
        expected = inline_root_refs(root, original, (key,))
        assert inline_schema_refs(schemas, schema_body(by_id[key]), (key,)) == expected, key


@pytest.fixture
def models_root():
    # type: () -> dict
    """Root with sibling, nested-property and definitions refs plus duplicate subtrees."""
    return {
        "$id": "Models",
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {
            "Address": {"type": "object", "properties": {"street": {"type": "string"}}},
            "User": {
                "type": "object",
                "properties": {
                    "home": {"$ref": "#/properties/Address"},
                    "street": {"$ref": "#/properties/Address/properties/street", "description": "home street"},
                    "tag": {"$ref": "#/definitions/Tag"},
                    "work": {"type": "object", "properties": {"street": {"type": "string"}}},
                },
            },
            "Street": {"type": "string"},
        },
        "definitions": {"Tag": {"type": "string", "enum": ["a", "b"]}},
    }


@pytest.mark.parametrize("merge_refs", [False, True])
def test_flattening_loses_no_information(models_root, merge_refs):
    """Test that resolving every ref of the flattened set restores the root properties."""
    schemas = flatten_json_schema(models_root, merge_refs=merge_refs)
    ids = [schema["$id"] for schema in schemas]
    assert ids[:3] == ["Address", "User", "Street"]
    assert "Models_definitions_Tag" in ids
    assert_document_refs_resolve(schemas)
    assert_nothing_lost(models_root, schemas)


def test_merging_changes_the_flattened_set(models_root):
    """Test that the merge variant actually rewrites duplicates the plain variant keeps inline."""
    assert flatten_json_schema(models_root, merge_refs=True) != flatten_json_schema(models_root)


@pytest.mark.parametrize("merge_refs", [False, True])
def test_flattening_recursive_model_loses_no_information(merge_refs):
    """Test ref integrity and content of a recursive model with an extracted definition."""
    root = to_json_schema_document({"Node": Node})
    schemas = flatten_json_schema(root, merge_refs=merge_refs)
    assert len(schemas) == 2
    assert schemas[0]["properties"]["children"]["items"] == {"$ref": "Node#"}
    assert_document_refs_resolve(schemas)
    assert_nothing_lost(root, schemas)


def test_sibling_ref_becomes_document_ref(root_schema):
    """Test that '#/properties/B' inside property A becomes 'B#'."""
    schemas = flatten_json_schema(root_schema)
    assert [schema["$id"] for schema in schemas] == ["A", "B"]
    assert schemas[0] == {"$id": "A", "type": "object", "properties": {"b": {"$ref": "B#"}}}
    assert schemas[1] == {"$id": "B", "type": "string"}


def test_named_root_is_not_emitted():
    """Test that a root with its own $id yields only the property schemas."""
    schema = {
        "$id": "Root",
        "type": "object",
        "properties": {
            "A": {"type": "string"},
            "B": {"type": "object", "properties": {"x": {"$ref": "#/properties/A"}}},
        },
    }
    result = flatten(schema)
    assert result.ids == ["A", "B"]
    assert result.get("A") == {"$id": "A", "type": "string"}
    assert result.get("B") == {"$id": "B", "type": "object", "properties": {"x": {"$ref": "A#"}}}


def test_input_is_not_modified(root_schema):
    """Test that flattening is pure."""
    flatten_json_schema(root_schema)
    assert root_schema["properties"]["A"]["properties"]["b"] == {"$ref": "#/properties/B"}


def test_nested_ref_is_extracted():
    """Test that a ref pointing into a property is extracted into its own schema."""
    schema = {
        "type": "object",
        "properties": {
            "A": {
                "type": "object",
                "properties": {"x": {"type": "object", "properties": {"y": {"type": "string"}}}},
            },
            "C": {"$ref": "#/properties/A/properties/x"},
        },
    }
    result = flatten(schema)
    assert result.ids == ["A", "C", "A_properties_x"]
    assert result.get("C") == {"$id": "C", "$ref": "A_properties_x#"}
    assert result.get("A_properties_x") == {
        "$id": "A_properties_x",
        "type": "object",
        "properties": {"y": {"type": "string"}},
    }


def test_refs_below_extracted_address_are_rebased():
    """Test that deeper refs under an extracted address point into the new schema."""
    schema = {
        "type": "object",
        "properties": {
            "A": {
                "type": "object",
                "properties": {"x": {"type": "object", "properties": {"y": {"type": "string"}}}},
            },
            "C": {"$ref": "#/properties/A/properties/x"},
            "D": {"$ref": "#/properties/A/properties/x/properties/y"},
        },
    }
    result = flatten(schema)
    assert result.get("C")["$ref"] == "A_properties_x#"
    assert result.get("D")["$ref"] == "A_properties_x_properties_y#"
    assert result.get("A_properties_x_properties_y") == {"$id": "A_properties_x_properties_y", "type": "string"}


def test_ref_into_root_definitions_is_extracted():
    """Test that refs into root-level definitions resolve against the root."""
    schema = {
        "$id": "Models",
        "type": "object",
        "properties": {
            "User": {"type": "object", "properties": {"address": {"$ref": "#/definitions/Address"}}},
        },
        "definitions": {"Address": {"type": "object", "properties": {"street": {"type": "string"}}}},
    }
    result = flatten(schema)
    assert result.ids == ["User", "Models_definitions_Address"]
    assert result.get("User")["properties"]["address"] == {"$ref": "Models_definitions_Address#"}


def test_self_reference_is_a_document_ref():
    """Test that recursive properties reference their own document."""
    schema = {
        "type": "object",
        "properties": {
            "Node": {
                "type": "object",
                "properties": {"children": {"type": "array", "items": {"$ref": "#/properties/Node"}}},
            }
        },
    }
    result = flatten(schema)
    assert result.ids == ["Node"]
    assert result.get("Node")["properties"]["children"]["items"] == {"$ref": "Node#"}


def test_sibling_keys_of_ref_are_kept():
    """Test that a description next to $ref survives rewriting."""
    schema = {
        "type": "object",
        "properties": {
            "A": {"type": "object", "properties": {"b": {"$ref": "#/properties/B", "description": "the b"}}},
            "B": {"type": "string"},
        },
    }
    result = flatten(schema)
    assert result.get("A")["properties"]["b"] == {"$ref": "B#", "description": "the b"}


def test_schema_tag_is_propagated():
    """Test that the root $schema tag is copied onto every property schema."""
    schema = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {"A": {"type": "string"}},
    }
    result = flatten(schema)
    assert result.get("A") == {"$id": "A", "$schema": "http://json-schema.org/draft-07/schema#", "type": "string"}


def test_merge_refs_replaces_duplicate_subtrees():
    """Test that subtrees equal to another schema body become refs when merging."""
    schema = {
        "type": "object",
        "properties": {
            "A": {"type": "object", "properties": {"n": {"type": "string", "enum": ["x"]}}},
            "B": {"type": "string", "enum": ["x"]},
        },
    }
    assert flatten(schema).get("A")["properties"]["n"] == {"type": "string", "enum": ["x"]}
    assert flatten(schema, merge_refs=True).get("A")["properties"]["n"] == {"$ref": "B#"}


def test_merge_refs_keeps_bools_and_numbers_apart():
    """Test that {'const': true} is not merged into {'const': 1}."""
    schema = {
        "type": "object",
        "properties": {
            "A": {"type": "object", "properties": {"flag": {"const": True}}},
            "One": {"const": 1},
        },
    }
    assert flatten(schema, merge_refs=True).get("A")["properties"]["flag"] == {"const": True}


def test_merge_refs_first_schema_is_canonical():
    """Test that the first of several equal schemas is the merge target."""
    schema = {
        "type": "object",
        "properties": {
            "A": {"type": "object", "properties": {"n": {"type": "integer"}}},
            "First": {"type": "integer"},
            "Second": {"type": "integer"},
        },
    }
    result = flatten(schema, merge_refs=True)
    assert result.get("A")["properties"]["n"] == {"$ref": "First#"}
    assert result.get("Second") == {"$id": "Second", "type": "integer"}


def test_not_an_object_schema():
    """Test that the root must be an object schema with properties."""
    with pytest.raises(NotAnObjectSchema):
        flatten_json_schema({"type": "string"})
    with pytest.raises(NotAnObjectSchema):
        flatten_json_schema({"type": "object"})
    with pytest.raises(ValueError):
        flatten_json_schema(["not", "a", "schema"])


def test_invalid_property_schema():
    """Test that every root property must be a schema map."""
    with pytest.raises(InvalidPropertySchema):
        flatten_json_schema({"type": "object", "properties": {"A": "string"}})


def test_property_shadowing_root_id_is_rejected():
    """Test that a property may not take the root schema id."""
    with pytest.raises(InvalidPropertySchema):
        flatten_json_schema({"$id": "Root", "type": "object", "properties": {"Root": {"type": "string"}}})


def test_unknown_document_ref_raises():
    """Test that refs to documents outside the set are reported."""
    schema = {"type": "object", "properties": {"A": {"$ref": "Other#"}}}
    with pytest.raises(UnresolvedReference):
        flatten_json_schema(schema)


def test_ref_to_missing_property_raises():
    """Test that a ref to a non-existent location is an addressing error."""
    schema = {"type": "object", "properties": {"A": {"$ref": "#/properties/B/properties/x"}, "B": {"type": "object"}}}
    with pytest.raises(LookupError):
        flatten_json_schema(schema)


def test_ref_helper(root_schema):
    """Test the sanctioned way to reference a flattened schema."""
    result = flatten(root_schema)
    assert result.ref("A") == {"$ref": "A#"}
    assert result.ref("B", description="a b") == {"$ref": "B#", "description": "a b"}
    with pytest.raises(UnresolvedReference):
        result.ref("Missing")


def test_to_components(root_schema):
    """Test converting the set into an OpenAPI components.schemas map."""
    components = flatten(root_schema).to_components()
    assert components == {
        "A": {"type": "object", "properties": {"b": {"$ref": "#/components/schemas/B"}}},
        "B": {"type": "string"},
    }
    definitions = flatten(root_schema).to_components(("definitions",))
    assert definitions["A"]["properties"]["b"] == {"$ref": "#/definitions/B"}


def test_flattened_schemas_is_iterable(root_schema):
    """Test iteration and length of the schema set."""
    result = flatten(root_schema)
    assert len(result) == 2
    assert [schema["$id"] for schema in result] == ["A", "B"]


def test_extracted_schema_id():
    """Test id synthesis from a reference address."""
    assert extracted_schema_id("B#/properties/x") == "B_properties_x"
    assert extracted_schema_id("#/definitions/Address") == "definitions_Address"
    assert extracted_schema_id("A#//x") == "A_x"
