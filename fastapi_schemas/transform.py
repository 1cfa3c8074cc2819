"""
Spec transformer.

Normalizes a generated OpenAPI 3 (`components.schemas`) or Swagger 2 (`definitions`) document in four kinds
of stages:

1. **rewriteSchemasAbsoluteRefs** - root schema-relative `$ref`s (`#/properties/a` inside schema `S`) at `S`
2. **extractSchemasProperties** - move inline property/item schemas into new named schemas
3. **mergeRefs / mergeSchemas** - replace subtrees equal to a schema body by a reference to that schema
4. **deleteUnusedSchemas** - drop schemas that nothing outside themselves references

Every stage is a pure function `(spec, ...) -> (new_spec, changes)`. Internally a stage works on a private
copy (`_Workspace`) that lives for exactly one stage run. A recursive stage repeats its pass until a pass
reports zero changes. Merging runs both before extraction (so inline copies of existing schemas become
references instead of conflicting extractions) and after it (so extracted duplicates collapse).
"""

import typing

import msgspec
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_pascal, to_snake

from fastapi_schemas.document import clone_document, deep_equal, is_record, is_ref
from fastapi_schemas.errors import SchemaKeyConflict, UnrecognizedSpecDialect, UnresolvedReference
from fastapi_schemas.path import (
    delete_at_path,
    get_at_path,
    get_at_path_safe,
    match_path_prefix,
    replace_path_prefix,
    set_at_path,
    stringify_path,
)
from fastapi_schemas.refs import RefPath, ref_path_of
from fastapi_schemas.traversal import find_first_deep, map_deep, visit_deep
from fastapi_schemas.utils import Timings, timer

if typing.TYPE_CHECKING:
    from fastapi_schemas.path import Path  # noqa: F401


__all__ = [
    "EXTRACT_KEYS",
    "SchemaKeysOptions",
    "TransformOptions",
    "TransformResult",
    "SpecTransformer",
    "detect_schemas_path",
    "change_case",
    "create_schema_key",
    "rewrite_schemas_absolute_refs",
    "extract_schemas_properties",
    "merge_refs",
    "merge_schemas",
    "delete_unused_schemas",
]


SCHEMA_CONTAINERS = (("components", "schemas"), ("definitions",))
EXTRACT_KEYS = ("properties", "additionalProperties", "patternProperties", "items")

StageMode = typing.Literal["shallow", "recursive"]
ExtractKey = typing.Literal["properties", "additionalProperties", "patternProperties", "items"]
CaseStyle = typing.Literal["preserve", "camelCase", "PascalCase", "snake_case", "param-case"]


class RefNode(BaseModel):
    """Reference node given as a merge target, e.g. `{"$ref": "#/components/schemas/User"}`."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ref: str = Field(alias="$ref")


class SchemaKeysOptions(BaseModel):
    """Naming of schemas created by property extraction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    remove_initial_schemas_prefix: bool = Field(
        False,
        description="Drop the parent key from names derived from schemas present in the input",
    )
    change_case: CaseStyle = Field("preserve", description="Case style applied to derived names")


class TransformOptions(BaseModel):
    """
    Transformer configuration.

    Fields accept their snake_case names or the camelCase wire names (`mergeSchemas` is an alias of
    `mergeRefs`). Every stage defaults to its most thorough behavior.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    rewrite_schemas_absolute_refs: bool = True
    extract_schemas_properties: bool | StageMode | list[ExtractKey] = "recursive"
    merge_refs: bool | StageMode | list[str | RefNode] = Field(
        "recursive",
        validation_alias=AliasChoices("merge_refs", "mergeRefs", "merge_schemas", "mergeSchemas"),
    )
    delete_unused_schemas: bool = True
    keep_schemas: list[str] = Field(default_factory=list, description="Schemas never deleted as unused")
    schema_keys: SchemaKeysOptions = Field(default_factory=SchemaKeysOptions)


class TransformResult(msgspec.Struct):
    spec: dict
    timings: dict[str, Timings]


def _is_schema_container(value):
    # type: (typing.Any) -> bool
    return is_record(value) and all(is_record(schema) or isinstance(schema, bool) for schema in value.values())


def detect_schemas_path(spec):
    # type: (typing.Any) -> Path
    """
    Locate the schema container of a specification document.

    :param spec: OpenAPI 3 or Swagger 2 document
    :return: `("components", "schemas")` or `("definitions",)`
    :raises UnrecognizedSpecDialect: If neither container is present and well formed
    """
    if is_record(spec) and ("paths" not in spec or is_record(spec["paths"])):
        components = spec.get("components")
        if is_record(components) and _is_schema_container(components.get("schemas")):
            return SCHEMA_CONTAINERS[0]
        if _is_schema_container(spec.get("definitions")):
            return SCHEMA_CONTAINERS[1]
    raise UnrecognizedSpecDialect(
        "document is neither an OpenAPI spec with components.schemas nor a Swagger spec with definitions"
    )


def change_case(name, style):
    # type: (str, CaseStyle) -> str
    if style == "PascalCase":
        return to_pascal(to_snake(name))
    if style == "camelCase":
        return to_camel(to_snake(name))
    if style == "snake_case":
        return to_snake(name)
    if style == "param-case":
        return to_snake(name).replace("_", "-")
    return name


def create_schema_key(parent_key, segment, options=None, initial_schema_keys=()):
    # type: (str, str, SchemaKeysOptions|None, typing.Collection[str]) -> str
    """
    Derive the key of a schema extracted from `parent_key`.

    `("User", "address")` → `User_address`, or `address` when the parent prefix is removed.

    :param parent_key: Key of the schema the value is extracted from
    :param segment: Property key, `item`, `item_<i>` or `value`
    :param options: Naming options
    :param initial_schema_keys: Keys present before the transformation started
    :return: New schema key
    """
    options = options or SchemaKeysOptions()
    if options.remove_initial_schemas_prefix and parent_key in initial_schema_keys:
        name = segment
    else:
        name = f"{parent_key}_{segment}"
    return change_case(name, options.change_case)


class _Workspace:
    """Private mutable copy of a specification, scoped to one stage run."""

    def __init__(self, spec):
        # type: (dict) -> None
        self.schemas_path = detect_schemas_path(spec)
        self.spec = clone_document(spec)

    @property
    def schemas(self):
        # type: () -> dict
        return get_at_path(self.spec, self.schemas_path)

    def schema_keys(self):
        # type: () -> list[str]
        return list(self.schemas)

    def schema_path(self, key):
        # type: (str) -> Path
        return (*self.schemas_path, key)

    def absolute_path(self, ref_path):
        # type: (RefPath) -> Path|None
        """Path of a reference target inside the spec, None for external documents."""
        if ref_path.base_path == "":
            return ref_path.path
        if ref_path.base_path in self.schemas:
            return (*self.schema_path(ref_path.base_path), *ref_path.path)
        return None

    def set(self, path, value):
        # type: (Path, typing.Any) -> None
        logger.debug(f"Setting {stringify_path(path)}")
        set_at_path(self.spec, path, value)

    def delete(self, path):
        # type: (Path) -> None
        logger.debug(f"Deleting {stringify_path(path)}")
        delete_at_path(self.spec, path)

    def ref_nodes(self):
        # type: () -> list[dict]
        nodes = []

        def visit(node, path):
            if is_ref(node):
                nodes.append(node)

        visit_deep(self.spec, visit)
        return nodes

    def redirect_refs(self, prev_path, next_path):
        # type: (Path, Path) -> int
        """Point every reference into `prev_path` at the same place under `next_path`."""
        changes = 0
        for node in self.ref_nodes():
            target = self.absolute_path(RefPath.parse(node["$ref"]))
            if target is not None and match_path_prefix(prev_path, target):
                node["$ref"] = RefPath("", replace_path_prefix(prev_path, next_path, target)).format()
                changes += 1
        return changes


def _run(stage, run_pass, recursive):
    # type: (str, typing.Callable[[], int], bool) -> int
    total = changes = run_pass()
    while changes and recursive:
        changes = run_pass()
        total += changes
    logger.debug(f"{stage}: {total} change(s)")
    return total


# rewriteSchemasAbsoluteRefs


def _rewrite_absolute_refs_pass(ws):
    # type: (_Workspace) -> int
    root_keys = set(ws.spec)
    changes = 0
    for key in ws.schema_keys():
        schema_path = ws.schema_path(key)

        def visit(node, path):
            nonlocal changes
            ref_path = ref_path_of(node)
            if ref_path is None or ref_path.base_path != "":
                return True
            if ref_path.path and ref_path.path[0] in root_keys:
                return True
            node["$ref"] = RefPath("", (*schema_path, *ref_path.path)).format()
            changes += 1
            return False

        visit_deep(ws.schemas[key], visit)
    return changes


def rewrite_schemas_absolute_refs(spec, recursive=True):
    # type: (dict, bool) -> tuple[dict, int]
    """
    Root schema-relative references at their schema.

    A reference with an empty base whose first pointer segment is not a top-level key of the spec
    (`#/properties/a` inside `User`) becomes `#/components/schemas/User/properties/a`.

    :param spec: Specification document
    :param recursive: Repeat until nothing changes
    :return: Tuple of (new spec, number of rewritten references)
    """
    ws = _Workspace(spec)
    changes = _run("rewriteSchemasAbsoluteRefs", lambda: _rewrite_absolute_refs_pass(ws), recursive)
    return ws.spec, changes


# extractSchemasProperties


def _is_inline(value):
    # type: (typing.Any) -> bool
    return is_record(value) and not is_ref(value)


def _inline_values(schema, properties_keys):
    # type: (dict, typing.Collection[str]) -> list[tuple[Path, str]]
    """Relative paths of inline subschemas to extract, with their key segment."""
    found = []
    for properties_key in properties_keys:
        value = schema.get(properties_key)
        if properties_key in ("properties", "patternProperties"):
            if is_record(value):
                found.extend(((properties_key, key), key) for key, child in value.items() if _is_inline(child))
        elif properties_key == "additionalProperties":
            if _is_inline(value):
                found.append(((properties_key,), "value"))
        elif properties_key == "items":
            if _is_inline(value):
                found.append(((properties_key,), "item"))
            elif isinstance(value, list):
                found.extend(
                    ((properties_key, str(i)), f"item_{i}") for i, child in enumerate(value) if _is_inline(child)
                )
    return found


def _rebase_refs(ws, value, prev_path, next_path):
    # type: (_Workspace, typing.Any, Path, Path) -> typing.Any
    """Copy of `value` whose references into `prev_path` point at the same place under `next_path`."""

    def transform(node, path):
        if not is_ref(node):
            return node
        target = ws.absolute_path(RefPath.parse(node["$ref"]))
        if target is None or not match_path_prefix(prev_path, target):
            return node
        return {**node, "$ref": RefPath("", replace_path_prefix(prev_path, next_path, target)).format()}

    return map_deep(value, transform)


def _extract_value(ws, prev_path, next_key):
    # type: (_Workspace, Path, str) -> None
    value = get_at_path(ws.spec, prev_path)
    next_path = ws.schema_path(next_key)
    if next_key in ws.schemas:
        # compare as it would read once moved
        if not deep_equal(ws.schemas[next_key], _rebase_refs(ws, value, prev_path, next_path)):
            raise SchemaKeyConflict(
                f"schema key '{next_key}' derived from '{stringify_path(prev_path)}' "
                "already names a different schema"
            )
        logger.debug(f"Reusing schema '{next_key}' for {stringify_path(prev_path)}")
    else:
        ws.set(next_path, value)
    ws.set(prev_path, RefPath("", next_path).to_ref())
    ws.redirect_refs(prev_path, next_path)


def _extract_pass(ws, properties_keys, options, initial_schema_keys):
    # type: (_Workspace, typing.Collection[str], SchemaKeysOptions, typing.Collection[str]) -> int
    changes = 0
    for parent_key in ws.schema_keys():
        schema = ws.schemas[parent_key]
        if not is_record(schema):
            continue
        for relative_path, segment in _inline_values(schema, properties_keys):
            next_key = create_schema_key(parent_key, segment, options, initial_schema_keys)
            _extract_value(ws, (*ws.schema_path(parent_key), *relative_path), next_key)
            changes += 1
    return changes


def extract_schemas_properties(
    spec,
    properties_keys=EXTRACT_KEYS,
    recursive=True,
    schema_keys=None,
    initial_schema_keys=None,
):
    # type: (dict, typing.Collection[str], bool, SchemaKeysOptions|None, set[str]|None) -> tuple[dict, int]
    """
    Move inline subschemas into their own named schemas.

    Each inline (non-ref) map under the selected keywords becomes a schema named
    `<parent>_<propertyKey>` (`item` for `items`, `item_<i>` for tuple items, `value` for
    `additionalProperties`) and is replaced by a reference to it.

    :param spec: Specification document
    :param properties_keys: Keywords whose inline values are extracted
    :param recursive: Also extract from the schemas created by extraction, until nothing is left
    :param schema_keys: Naming options
    :param initial_schema_keys: Schema keys considered "initial" for prefix removal (default: current keys)
    :return: Tuple of (new spec, number of extracted values)
    :raises SchemaKeyConflict: If a derived key already names a schema with different content
    """
    ws = _Workspace(spec)
    options = schema_keys or SchemaKeysOptions()
    initial = set(ws.schema_keys() if initial_schema_keys is None else initial_schema_keys)
    changes = _run(
        "extractSchemasProperties",
        lambda: _extract_pass(ws, properties_keys, options, initial),
        recursive,
    )
    return ws.spec, changes


# mergeRefs / mergeSchemas


def _is_merge_target(body):
    # type: (typing.Any) -> bool
    return is_record(body) and len(body) > 0 and not is_ref(body)


def _replace_duplicates(ws, targets, skip_paths=frozenset()):
    # type: (_Workspace, list[tuple[Path, dict]], typing.Collection[Path]) -> int
    """Replace subtrees equal to a target body by a reference to the first such target."""
    replaced = []  # type: list[tuple[Path, Path]]

    def transform(node, path):
        if path in skip_paths or not is_record(node) or is_ref(node):
            return node
        for target_path, body in targets:
            if path != target_path and deep_equal(node, body):
                logger.debug(f"Merging {stringify_path(path)} into {stringify_path(target_path)}")
                replaced.append((path, target_path))
                return RefPath("", target_path).to_ref()
        return node

    ws.spec = map_deep(ws.spec, transform)
    for path, target_path in replaced:
        ws.redirect_refs(path, target_path)
    return len(replaced)


def _resolve_ref(ws, ref):
    # type: (_Workspace, str) -> tuple[Path, typing.Any]
    """Follow a reference chain to its final, non-reference target."""
    seen = []  # type: list[Path]
    ref_path = RefPath.parse(ref)
    while True:
        path = ws.absolute_path(ref_path)
        if path is None:
            raise UnresolvedReference(f"'{ref_path.format()}' does not name a schema of the specification")
        if path in seen:
            raise UnresolvedReference(f"'{ref}' is a circular chain of references")
        seen.append(path)
        found, value = get_at_path_safe(ws.spec, path)
        if not found:
            raise UnresolvedReference(f"'{ref_path.format()}' does not resolve")
        ref_path = ref_path_of(value)
        if ref_path is None:
            return path, value


def _merge_ref_pass(ws, ref):
    # type: (_Workspace, str) -> int
    path, value = _resolve_ref(ws, ref)
    if not _is_merge_target(value):
        raise UnresolvedReference(f"'{ref}' does not address a non-empty schema object")
    return _replace_duplicates(ws, [(path, value)])


def merge_refs(spec, refs, recursive=True):
    # type: (dict, typing.Iterable[str|dict|RefNode], bool) -> tuple[dict, int]
    """
    Replace every subtree equal to one of the given targets by a reference to it.

    Targets are resolved through reference chains first, so `#/components/schemas/Alias` merges into
    whatever `Alias` finally points at.

    :param spec: Specification document
    :param refs: Target addresses, as strings or reference nodes
    :param recursive: Repeat until nothing changes
    :return: Tuple of (new spec, number of replaced subtrees)
    :raises UnresolvedReference: If a target does not resolve to a schema object
    """
    ws = _Workspace(spec)
    addresses = [_ref_address(ref) for ref in refs]

    def run_pass():
        return sum(_merge_ref_pass(ws, address) for address in addresses)

    changes = _run("mergeRefs", run_pass, recursive)
    return ws.spec, changes


def _ref_address(ref):
    # type: (str|dict|RefNode) -> str
    if isinstance(ref, RefNode):
        return ref.ref
    if isinstance(ref, dict):
        return RefNode.model_validate(ref).ref
    return ref


def _merge_schemas_pass(ws):
    # type: (_Workspace) -> int
    targets = []  # type: list[tuple[Path, dict]]
    changes = 0
    for key in ws.schema_keys():
        body = ws.schemas[key]
        if not _is_merge_target(body):
            continue
        path = ws.schema_path(key)
        canonical = next((target_path for target_path, target in targets if deep_equal(target, body)), None)
        if canonical is None:
            targets.append((path, body))
            continue
        logger.debug(f"Aliasing schema '{key}' to {stringify_path(canonical)}")
        ws.set(path, RefPath("", canonical).to_ref())
        ws.redirect_refs(path, canonical)
        changes += 1
    top_level = {ws.schema_path(key) for key in ws.schema_keys()}
    return changes + _replace_duplicates(ws, targets, top_level)


def merge_schemas(spec, recursive=True):
    # type: (dict, bool) -> tuple[dict, int]
    """
    Deduplicate structurally equal schemas.

    The first schema in container order is canonical. A later top-level schema with the same body becomes an
    alias (`{"$ref": <canonical>}`) and references into it are redirected to the canonical schema. Nested
    subtrees equal to a schema body are replaced by a reference.

    :param spec: Specification document
    :param recursive: Repeat until nothing changes
    :return: Tuple of (new spec, number of aliased schemas and replaced subtrees)
    """
    ws = _Workspace(spec)
    changes = _run("mergeSchemas", lambda: _merge_schemas_pass(ws), recursive)
    return ws.spec, changes


# deleteUnusedSchemas


def _has_proper_ref(ws, key):
    # type: (_Workspace, str) -> bool
    """True if a reference outside the schema's own subtree points at or into it."""
    schema_path = ws.schema_path(key)

    def is_inbound(node, path):
        if match_path_prefix(schema_path, path):
            return False
        ref_path = ref_path_of(node)
        if ref_path is None:
            return False
        target = ws.absolute_path(ref_path)
        return target is not None and match_path_prefix(schema_path, target)

    found, _, _ = find_first_deep(ws.spec, is_inbound)
    return found


def _delete_unused_pass(ws, keep):
    # type: (_Workspace, typing.Collection[str]) -> int
    changes = 0
    for key in ws.schema_keys():
        if key in keep or _has_proper_ref(ws, key):
            continue
        ws.delete(ws.schema_path(key))
        changes += 1
    return changes


def delete_unused_schemas(spec, keep=()):
    # type: (dict, typing.Collection[str]) -> tuple[dict, int]
    """
    Delete schemas that are not referenced from outside their own subtree.

    Runs until no schema is deleted, so chains of schemas only used by deleted schemas disappear too.

    :param spec: Specification document
    :param keep: Schema keys that are never deleted
    :return: Tuple of (new spec, number of deleted schemas)
    """
    ws = _Workspace(spec)
    keep = set(keep)
    changes = _run("deleteUnusedSchemas", lambda: _delete_unused_pass(ws, keep), True)
    return ws.spec, changes


def _stage_mode(value):
    # type: (typing.Any) -> StageMode|None
    if value is False:
        return None
    if value is True or not isinstance(value, str):
        return "recursive"
    return value


class SpecTransformer:
    """
    Run the configured stages over a specification.

    The input is validated and cloned once; `transform` never modifies it and may be called repeatedly
    with different options.

    Example:
        spec = SpecTransformer(app.openapi()).transform({"mergeSchemas": True})

    :param spec: OpenAPI 3 or Swagger 2 document
    :raises UnrecognizedSpecDialect: If the document has no recognizable schema container
    :raises InvalidDocument: If the document is not JSON-representable
    """

    def __init__(self, spec):
        # type: (dict) -> None
        self.spec = clone_document(spec)
        self.schemas_path = detect_schemas_path(self.spec)
        self.initial_schema_keys = list(get_at_path(self.spec, self.schemas_path))

    def transform(self, options=None):
        # type: (TransformOptions|dict|None) -> dict
        """
        Transform the specification.

        :param options: TransformOptions or a mapping of (snake_case or camelCase) options
        :return: New specification document
        """
        return self.transform_with_timings(options).spec

    def transform_with_timings(self, options=None):
        # type: (TransformOptions|dict|None) -> TransformResult
        """
        Transform the specification and report how long each enabled stage took.

        Timing keys: `rewriteSchemasAbsoluteRefs`, `mergeRefs`, `extractSchemasProperties`,
        `mergeExtractedSchemas`, `deleteUnusedSchemas` and `total`.

        :param options: TransformOptions or a mapping of options
        :return: TransformResult with the new spec and per-stage Timings
        """
        options = _options(options)
        extract_mode = _stage_mode(options.extract_schemas_properties)
        merge_mode = _stage_mode(options.merge_refs)
        spec = self.spec
        timings = {}  # type: dict[str, Timings]

        def merge(spec):
            if isinstance(options.merge_refs, list):
                return merge_refs(spec, options.merge_refs)[0]
            return merge_schemas(spec, recursive=merge_mode == "recursive")[0]

        with timer("Transforming specification", level="DEBUG") as total:
            if options.rewrite_schemas_absolute_refs:
                with timer("rewriteSchemasAbsoluteRefs", level="DEBUG") as t:
                    spec, _ = rewrite_schemas_absolute_refs(spec)
                timings["rewriteSchemasAbsoluteRefs"] = t.timings
            if merge_mode is not None:
                with timer("mergeRefs", level="DEBUG") as t:
                    spec = merge(spec)
                timings["mergeRefs"] = t.timings
            if extract_mode is not None:
                properties_keys = (
                    options.extract_schemas_properties
                    if isinstance(options.extract_schemas_properties, list)
                    else EXTRACT_KEYS
                )
                with timer("extractSchemasProperties", level="DEBUG") as t:
                    spec, _ = extract_schemas_properties(
                        spec,
                        properties_keys,
                        recursive=extract_mode == "recursive",
                        schema_keys=options.schema_keys,
                        initial_schema_keys=self.initial_schema_keys,
                    )
                timings["extractSchemasProperties"] = t.timings
                if merge_mode is not None:
                    with timer("mergeExtractedSchemas", level="DEBUG") as t:
                        spec = merge(spec)
                    timings["mergeExtractedSchemas"] = t.timings
            if options.delete_unused_schemas:
                with timer("deleteUnusedSchemas", level="DEBUG") as t:
                    spec, _ = delete_unused_schemas(spec, keep=options.keep_schemas)
                timings["deleteUnusedSchemas"] = t.timings
        timings["total"] = total.timings

        if spec is self.spec:
            spec = clone_document(spec)
        count = len(get_at_path(spec, self.schemas_path))
        logger.info(f"Transformed specification: {len(self.initial_schema_keys)} schema(s) in, {count} out")
        return TransformResult(spec=spec, timings=timings)


def _options(options):
    # type: (TransformOptions|dict|None) -> TransformOptions
    if options is None:
        return TransformOptions()
    if isinstance(options, TransformOptions):
        return options
    return TransformOptions.model_validate(options)
