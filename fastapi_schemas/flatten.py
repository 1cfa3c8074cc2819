"""
Schema flattening.

Turns one root object schema into a set of independent named schemas linked by `$ref`:

1. every root-level property becomes its own schema (`$id` = property key)
2. references between root properties are rewritten to point at the new documents (`#/properties/A` →
   `A#`)
3. any reference still pointing *into* a document (`B#/properties/x`) has its target extracted into a new
   schema (`B_properties_x`), and every reference under that address is rewritten, until only whole-document
   references remain
4. optionally, subtrees that duplicate another schema's body are replaced by a reference to it

The extraction order is pre-order over the schema set (first match wins), which fixes the generated ids.
"""

import re
import typing

from loguru import logger

from fastapi_schemas.document import deep_equal, is_record, is_ref
from fastapi_schemas.errors import (
    InvalidPropertySchema,
    NotAnObjectSchema,
    SchemaKeyConflict,
    UnresolvedReference,
)
from fastapi_schemas.path import get_at_path, match_path_prefix, replace_path_prefix
from fastapi_schemas.refs import RefPath, make_ref, ref_path_of
from fastapi_schemas.traversal import find_first_deep, map_deep, visit_deep

if typing.TYPE_CHECKING:
    from fastapi_schemas.document import Document  # noqa: F401


__all__ = [
    "DEFAULT_SCHEMA_ID",
    "FlattenedSchemas",
    "flatten",
    "flatten_json_schema",
    "extracted_schema_id",
]


DEFAULT_SCHEMA_ID = "Schema"
TAG_KEYS = ("$id", "$schema")


def extracted_schema_id(ref):
    # type: (str) -> str
    """
    Derive the id of a schema extracted from a reference address.

    `B#/properties/x` → `B_properties_x`

    :param ref: Wire address of the extracted target
    :return: Schema id
    """
    return re.sub(r"_+", "_", re.sub(r"[#/]", "_", ref)).strip("_")


def schema_body(schema):
    # type: (dict) -> dict
    """Schema content without its `$id` / `$schema` tags."""
    return {key: value for key, value in schema.items() if key not in TAG_KEYS}


def rewrite_refs(doc, rewrite):
    # type: (Document, typing.Callable[[RefPath], RefPath|None]) -> Document
    """
    Return a copy of `doc` with reference addresses passed through `rewrite`.

    `rewrite` returns the new address, or None to keep a reference unchanged. Sibling keys of `$ref`
    (e.g. `description`) are preserved.
    """

    def transform(node, path):
        ref_path = ref_path_of(node)
        if ref_path is None:
            return node
        next_ref_path = rewrite(ref_path)
        if next_ref_path is None or next_ref_path == ref_path:
            return node
        return {**node, "$ref": next_ref_path.format()}

    return map_deep(doc, transform)


class FlattenedSchemas:
    """
    Result of flattening: an ordered schema set plus the sanctioned way to point into it.

    :param schemas: Named schemas, each with a unique `$id`
    """

    def __init__(self, schemas):
        # type: (list[dict]) -> None
        self.schemas = schemas

    @property
    def ids(self):
        # type: () -> list[str]
        return [schema["$id"] for schema in self.schemas]

    def get(self, key):
        # type: (str) -> dict
        """
        Look up a schema by id.

        :raises UnresolvedReference: If no schema has this id
        """
        for schema in self.schemas:
            if schema["$id"] == key:
                return schema
        raise UnresolvedReference(f"schema '{key}' not found")

    def ref(self, key, description=None):
        # type: (str, str|None) -> dict
        """
        Reference to a schema of the set, e.g. `{"$ref": "User#"}`.

        :param key: Schema id
        :param description: Optional description placed next to `$ref`
        :return: Reference node
        :raises UnresolvedReference: If no schema has this id
        """
        self.get(key)
        return make_ref(key, description=description)

    def to_components(self, schemas_path=("components", "schemas")):
        # type: (typing.Sequence[str]) -> dict[str, dict]
        """
        Schemas keyed by id, ready to embed into a specification document.

        Tags are dropped and `Id#/p` references become `#/<schemas_path>/Id/p`.

        :param schemas_path: Path of the schema container in the target document
        :return: Mapping of schema id to schema body
        """
        ids = set(self.ids)
        prefix = tuple(schemas_path)

        def rebase(ref_path):
            if ref_path.base_path not in ids:
                return None
            return RefPath("", (*prefix, ref_path.base_path, *ref_path.path))

        return {schema["$id"]: rewrite_refs(schema_body(schema), rebase) for schema in self.schemas}

    def __iter__(self):
        return iter(self.schemas)

    def __len__(self):
        return len(self.schemas)


def _check_root(schema):
    # type: (Document) -> None
    if not is_record(schema) or schema.get("type") != "object" or not is_record(schema.get("properties")):
        raise NotAnObjectSchema("input schema is not an object type with a properties map")


def _rebase_root_refs(root, root_id):
    # type: (dict, str) -> dict
    """Point root-relative references at the per-property documents, or explicitly at the root."""
    keys = set(root["properties"])

    def rebase(ref_path):
        if ref_path.base_path not in ("", root_id):
            return None
        path = ref_path.path
        if len(path) >= 2 and path[0] == "properties" and path[1] in keys:
            return RefPath(path[1], path[2:])
        return RefPath(root_id, path)

    return rewrite_refs(root, rebase)


def _root_property_schemas(root, root_id):
    # type: (dict, str) -> list[dict]
    tag = {"$schema": root["$schema"]} if "$schema" in root else {}
    schemas = []
    for key, value in root["properties"].items():
        if not is_record(value):
            raise InvalidPropertySchema(f"input schema property with key '{key}' is not an object")
        if key == root_id:
            raise InvalidPropertySchema(f"input schema property with key '{key}' shadows the root schema id")
        schemas.append({"$id": key, **tag, **{k: v for k, v in value.items() if k != "$id"}})
    return schemas


def _resolve(schemas, root, root_id, ref_path):
    # type: (list[dict], dict, str, RefPath) -> Document
    for schema in schemas:
        if schema["$id"] == ref_path.base_path:
            return get_at_path(schema, ref_path.path)
    if ref_path.base_path == root_id:
        return get_at_path(root, ref_path.path)
    raise UnresolvedReference(f"schema '{ref_path.base_path}' not found while resolving '{ref_path.format()}'")


def _find_first_nested_ref(schemas):
    # type: (list[dict]) -> RefPath|None
    def is_nested_ref(node, path):
        return is_ref(node) and not RefPath.parse(node["$ref"]).is_document

    found, node, _ = find_first_deep(schemas, is_nested_ref)
    return RefPath.parse(node["$ref"]) if found else None


def _extract_ref(schemas, root, root_id, ref_path):
    # type: (list[dict], dict, str, RefPath) -> list[dict]
    target = _resolve(schemas, root, root_id, ref_path)
    if not is_record(target):
        raise UnresolvedReference(f"'{ref_path.format()}' does not address a schema object")
    schema_id = extracted_schema_id(ref_path.format())
    body = {key: value for key, value in target.items() if key != "$id"}
    existing = next((schema for schema in schemas if schema["$id"] == schema_id), None)
    if existing is None:
        logger.debug(f"Extracting {ref_path.format()} as schema '{schema_id}'")
        schemas = [*schemas, {"$id": schema_id, **body}]
    elif not deep_equal(schema_body(existing), schema_body(body)):
        raise SchemaKeyConflict(f"schema '{schema_id}' already exists with a different value")

    def rewrite(candidate):
        if candidate.base_path != ref_path.base_path or not match_path_prefix(ref_path.path, candidate.path):
            return None
        return RefPath(schema_id, replace_path_prefix(ref_path.path, (), candidate.path))

    return [rewrite_refs(schema, rewrite) for schema in schemas]


def _extract_refs(schemas, root, root_id):
    # type: (list[dict], dict, str) -> list[dict]
    ref_path = _find_first_nested_ref(schemas)
    while ref_path is not None:
        schemas = _extract_ref(schemas, root, root_id, ref_path)
        ref_path = _find_first_nested_ref(schemas)
    return schemas


def _is_merge_target(body):
    # type: (dict) -> bool
    return len(body) > 0 and not is_ref(body)


def _merge_pass(schemas):
    # type: (list[dict]) -> tuple[list[dict], int]
    """Replace nested subtrees equal to a schema body by a reference to the first such schema."""
    targets = [(schema["$id"], schema_body(schema)) for schema in schemas]
    targets = [(schema_id, body) for schema_id, body in targets if _is_merge_target(body)]
    changes = 0

    def transform(node, path):
        nonlocal changes
        # () is the set itself, (i,) a top-level document; only nested subtrees are merged
        if len(path) < 2 or not is_record(node) or is_ref(node):
            return node
        for schema_id, body in targets:
            if deep_equal(node, body):
                changes += 1
                return make_ref(schema_id)
        return node

    return map_deep(schemas, transform), changes


def _merge_refs(schemas):
    # type: (list[dict]) -> list[dict]
    schemas, changes = _merge_pass(schemas)
    while changes:
        logger.debug(f"Merged {changes} duplicate subtree(s)")
        schemas, changes = _merge_pass(schemas)
    return schemas


def _check_refs(schemas):
    # type: (list[dict]) -> None
    ids = {schema["$id"] for schema in schemas}

    def visit(node, path):
        ref_path = ref_path_of(node)
        if ref_path is None:
            return True
        if ref_path.base_path not in ids:
            raise UnresolvedReference(f"'{ref_path.format()}' at '{'/'.join(path)}' does not resolve")
        for schema in schemas:
            if schema["$id"] == ref_path.base_path:
                get_at_path(schema, ref_path.path)
        return True

    visit_deep(schemas, visit)


def flatten_json_schema(schema, merge_refs=False):
    # type: (Document, bool) -> list[dict]
    """
    Flatten a root object schema into a list of named schemas.

    The root itself is not part of the output; it stays resolvable while extracting references that point
    into it (e.g. into a `definitions` map).

    :param schema: Root schema with `type: object` and a `properties` map
    :param merge_refs: Also replace subtrees duplicating another schema by references
    :return: Named schemas in insertion order
    :raises NotAnObjectSchema: If the root is not an object schema with properties
    :raises InvalidPropertySchema: If a root property is not a schema map
    :raises UnresolvedReference: If a reference cannot be resolved in the schema set
    """
    _check_root(schema)
    root_id = schema.get("$id") or DEFAULT_SCHEMA_ID
    root = _rebase_root_refs(schema, root_id)
    schemas = _extract_refs(_root_property_schemas(root, root_id), root, root_id)
    if merge_refs:
        schemas = _merge_refs(schemas)
    _check_refs(schemas)
    logger.debug(f"Flattened schema '{root_id}' into {len(schemas)} schema(s)")
    return schemas


def flatten(schema, merge_refs=False):
    # type: (Document, bool) -> FlattenedSchemas
    """
    Flatten a root object schema and wrap the result for route registration.

    :param schema: Root schema with `type: object` and a `properties` map
    :param merge_refs: Also replace subtrees duplicating another schema by references
    :return: FlattenedSchemas with `schemas` and `ref()`
    """
    return FlattenedSchemas(flatten_json_schema(schema, merge_refs=merge_refs))
