"""Test fixtures for schema flattening and spec transformation."""

import pytest


def component_ref(key):
    # type: (str) -> dict
    """Reference to an OpenAPI component schema."""
    return {"$ref": f"#/components/schemas/{key}"}


def json_response(schema):
    # type: (dict) -> dict
    """GET operation answering with a JSON body of the given schema."""
    return {
        "get": {
            "responses": {
                "200": {
                    "description": "OK",
                    "content": {"application/json": {"schema": schema}},
                }
            }
        }
    }


def make_openapi(schemas, paths=None):
    # type: (dict, dict|None) -> dict
    """Minimal OpenAPI 3 document with the given component schemas."""
    return {
        "openapi": "3.1.0",
        "info": {"title": "Test API", "version": "0.1.0"},
        "paths": paths or {},
        "components": {"schemas": schemas},
    }


@pytest.fixture
def duplicate_spec():
    # type: () -> dict
    """Spec with two structurally identical schemas, both used by a route."""
    return make_openapi(
        {
            "Foo": {"type": "string", "enum": ["a"]},
            "Bar": {"type": "string", "enum": ["a"]},
        },
        {
            "/foo": json_response(component_ref("Foo")),
            "/bar": json_response(component_ref("Bar")),
        },
    )


@pytest.fixture
def nested_spec():
    # type: () -> dict
    """Spec with a schema holding inline nested object properties."""
    return make_openapi(
        {
            "User": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "address": {
                        "type": "object",
                        "properties": {"street": {"type": "string"}},
                    },
                },
                "required": ["name"],
            }
        },
        {"/users": json_response(component_ref("User"))},
    )


@pytest.fixture
def swagger_spec():
    # type: () -> dict
    """Swagger 2 document keeping its schemas under definitions."""
    return {
        "swagger": "2.0",
        "info": {"title": "Test API", "version": "0.1.0"},
        "paths": {
            "/foo": {"get": {"responses": {"200": {"description": "OK", "schema": {"$ref": "#/definitions/Foo"}}}}},
            "/bar": {"get": {"responses": {"200": {"description": "OK", "schema": {"$ref": "#/definitions/Bar"}}}}},
        },
        "definitions": {
            "Foo": {"type": "string", "enum": ["a"]},
            "Bar": {"type": "string", "enum": ["a"]},
        },
    }


@pytest.fixture
def root_schema():
    # type: () -> dict
    """Root object schema whose property A references sibling property B."""
    return {
        "type": "object",
        "properties": {
            "A": {"type": "object", "properties": {"b": {"$ref": "#/properties/B"}}},
            "B": {"type": "string"},
        },
    }
