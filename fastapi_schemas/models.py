"""
Pydantic binding.

Converts a mapping of pydantic-compatible types into one root JSON-Schema document and flattens it into
named schemas that routes can reference.

## Terms

- **Models** - mapping of schema key to any type pydantic can build a `TypeAdapter` for (BaseModel
  subclasses, builtins, `Annotated[...]`, unions, ...)
- **Root document** - object schema whose properties are the models, keyed by schema key
- **Target** - `jsonSchema7` tags the document with the draft-07 `$schema`; `openApi3` leaves it untagged
"""

import typing

from pydantic import TypeAdapter

from fastapi_schemas.document import clone_document, deep_equal
from fastapi_schemas.errors import SchemaKeyConflict
from fastapi_schemas.flatten import FlattenedSchemas, flatten_json_schema, rewrite_refs
from fastapi_schemas.refs import RefPath, ref_path_of
from fastapi_schemas.settings import schema_settings


__all__ = [
    "JSON_SCHEMA_7",
    "Target",
    "JsonSchemas",
    "to_json_schema_document",
    "build_json_schemas",
]


JSON_SCHEMA_7 = "http://json-schema.org/draft-07/schema#"
REF_TEMPLATE = "#/definitions/{model}"

Target = typing.Literal["jsonSchema7", "openApi3"]
Mode = typing.Literal["validation", "serialization"]


class JsonSchemas(FlattenedSchemas):
    """
    Flattened schemas built from pydantic models.

    :param schemas: Named schemas
    :param document: Root document the schemas were flattened from
    """

    def __init__(self, schemas, document):
        # type: (list[dict], dict) -> None
        super().__init__(schemas)
        self.document = document


def _definition_name(ref_path):
    # type: (RefPath) -> str|None
    if ref_path.base_path == "" and len(ref_path.path) >= 2 and ref_path.path[0] == "definitions":
        return ref_path.path[1]
    return None


def _hoist_definitions(properties, definitions):
    # type: (dict, dict) -> tuple[dict, dict]
    """
    Fold definitions that duplicate a root property into that property.

    A property that is a bare reference to a definition (recursive models) takes the definition's body. A
    definition equal to a property body is dropped. References follow to `#/properties/<key>`.
    """
    hoisted = {}  # type: dict[str, str]
    merged = {}
    for key, schema in properties.items():
        ref_path = ref_path_of(schema)
        name = _definition_name(ref_path) if ref_path is not None and len(schema) == 1 else None
        if name is not None and len(ref_path.path) == 2 and name in definitions and name not in hoisted:
            merged[key] = definitions[name]
            hoisted[name] = key
        else:
            merged[key] = schema

    for name, definition in definitions.items():
        if name in hoisted:
            continue
        for key, schema in merged.items():
            if deep_equal(schema, definition):
                hoisted[name] = key
                break

    def rebase(ref_path):
        name = _definition_name(ref_path)
        if name not in hoisted:
            return None
        return RefPath("", ("properties", hoisted[name], *ref_path.path[2:]))

    remaining = {name: definition for name, definition in definitions.items() if name not in hoisted}
    return rewrite_refs(merged, rebase), rewrite_refs(remaining, rebase)


def to_json_schema_document(models, schema_id=None, target=None, mode="validation"):
    # type: (typing.Mapping[str, typing.Any], str|None, Target|None, Mode) -> dict
    """
    Build the root JSON-Schema document for a set of models.

    :param models: Mapping of schema key to pydantic-compatible type
    :param schema_id: `$id` of the root document (default: `schema_settings.schema_id`)
    :param target: `jsonSchema7` or `openApi3` (default: `schema_settings.target`)
    :param mode: pydantic JSON-schema mode (`validation` or `serialization`)
    :return: Root object schema with one property per model
    :raises SchemaKeyConflict: If two different types produce definitions with the same name
    """
    schema_id = schema_id or schema_settings.schema_id
    target = target or schema_settings.target
    properties = {}
    definitions = {}  # type: dict[str, dict]
    for key, type_ in models.items():
        schema = TypeAdapter(type_).json_schema(ref_template=REF_TEMPLATE, mode=mode)
        for name, definition in schema.pop("$defs", {}).items():
            if name in definitions and not deep_equal(definitions[name], definition):
                raise SchemaKeyConflict(f"definition '{name}' is generated by two different types")
            definitions[name] = definition
        properties[key] = schema

    properties, definitions = _hoist_definitions(properties, definitions)

    document = {"$id": schema_id}  # type: dict[str, typing.Any]
    if target == "jsonSchema7":
        document["$schema"] = JSON_SCHEMA_7
    document["type"] = "object"
    document["properties"] = properties
    document["required"] = list(properties)
    document["additionalProperties"] = False
    if definitions:
        document["definitions"] = definitions
    return clone_document(document)


def build_json_schemas(
    models,
    schema_id=None,
    target=None,
    mode="validation",
    merge_refs=False,
):
    # type: (typing.Mapping[str, typing.Any], str|None, Target|None, Mode, bool) -> JsonSchemas
    """
    Build flattened, individually addressable JSON schemas from pydantic models.

    Example:
        schemas = build_json_schemas({"User": User, "UserId": int})
        schemas.ref("User")  # {"$ref": "User#"}

    :param models: Mapping of schema key to pydantic-compatible type
    :param schema_id: `$id` of the intermediate root document (default: `schema_settings.schema_id`)
    :param target: `jsonSchema7` or `openApi3` (default: `schema_settings.target`)
    :param mode: pydantic JSON-schema mode
    :param merge_refs: Replace subtrees that duplicate another schema by references
    :return: JsonSchemas with `schemas`, `ref()` and `to_components()`
    """
    document = to_json_schema_document(models, schema_id=schema_id, target=target, mode=mode)
    return JsonSchemas(flatten_json_schema(document, merge_refs=merge_refs), document)
