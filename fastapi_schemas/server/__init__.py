"""
FastAPI integration.

`register()` wires flattened schemas and the spec transformer into an application:

- flattened schemas are added to the generated OpenAPI document under `components.schemas`, and references
  of the form `User#` (as returned by `JsonSchemas.ref()`) are rebased onto them
- the transformed OpenAPI document is served at `<prefix>/json` and `<prefix>/yaml`
"""

from fastapi import APIRouter, FastAPI  # noqa: F401
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fastapi_schemas.document import deep_equal
from fastapi_schemas.flatten import FlattenedSchemas, rewrite_refs  # noqa: F401
from fastapi_schemas.refs import RefPath
from fastapi_schemas.serialize import dumps_document
from fastapi_schemas.settings import schema_settings
from fastapi_schemas.transform import SpecTransformer, TransformOptions


__all__ = ["TransformSpecOptions", "TransformedSpec", "register"]


COMPONENTS_PATH = ("components", "schemas")


class TransformSpecOptions(BaseModel):
    """
    Serving options for the transformed spec.

    Unset values fall back to `schema_settings`.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    cache: bool | None = Field(None, description="Compute each rendering once and reuse it")
    route_prefix: str | None = Field(None, description="Route prefix, default /openapi_transformed")
    options: TransformOptions = Field(default_factory=TransformOptions)


class TransformedSpec:
    """
    Lazily transformed OpenAPI document of an application.

    :param app: Application whose `openapi()` is transformed
    :param options: Transformer options
    :param cache: Keep the transformed spec and its YAML rendering after the first computation
    """

    def __init__(self, app, options=None, cache=True):
        # type: (FastAPI, TransformOptions|None, bool) -> None
        self.app = app
        self.options = options or TransformOptions()
        self.cache = cache
        self._spec = None  # type: dict|None
        self._yaml = None  # type: str|None

    def get(self):
        # type: () -> dict
        """
        Transformed OpenAPI document.

        :return: Transformed document
        :raises SchemaError: If the application's document cannot be transformed
        """
        if self._spec is not None:
            return self._spec
        spec = SpecTransformer(self.app.openapi()).transform(self.options)
        if self.cache:
            self._spec = spec
        return spec

    def json(self):
        # type: () -> dict
        return self.get()

    def yaml(self):
        # type: () -> str
        if self._yaml is not None:
            return self._yaml
        text = dumps_document(self.get(), "yaml")
        if self.cache:
            self._yaml = text
        return text

    def clear(self):
        # type: () -> None
        """Drop cached renderings, e.g. after routes were added."""
        self._spec = None
        self._yaml = None


def _normalize_prefix(prefix):
    # type: (str) -> str
    return "/" + prefix.strip().strip("/")


def _install_components(app, json_schemas):
    # type: (FastAPI, FlattenedSchemas) -> None
    """Extend `app.openapi` with the flattened schemas; existing component names win."""
    components = json_schemas.to_components(COMPONENTS_PATH)
    generate = app.openapi

    def rebase(ref_path):
        if ref_path.base_path not in components:
            return None
        return RefPath("", (*COMPONENTS_PATH, ref_path.base_path, *ref_path.path))

    def openapi():
        # type: () -> dict
        if app.openapi_schema:
            return app.openapi_schema
        spec = generate()
        schemas = spec.setdefault("components", {}).setdefault("schemas", {})
        for key, schema in components.items():
            if key in schemas and not deep_equal(schemas[key], schema):
                logger.warning(
                    f"Component schema '{key}' is already defined by the application with a different body; "
                    f"references to '{key}#' resolve to the application schema"
                )
            elif key in schemas:
                logger.debug(f"Component schema '{key}' already defined by the application")
            schemas.setdefault(key, schema)
        app.openapi_schema = rewrite_refs(spec, rebase)
        return app.openapi_schema

    app.openapi_schema = None
    app.openapi = openapi


def register(app, json_schemas=None, transform_spec=None):
    # type: (FastAPI, FlattenedSchemas|None, TransformSpecOptions|dict|bool|None) -> TransformedSpec|None
    """
    Register schemas and the transformed-spec routes on an application.

    Example:
        schemas = build_json_schemas({"User": User})
        register(app, schemas, transform_spec={"options": {"mergeSchemas": True}})

    :param app: FastAPI application
    :param json_schemas: Flattened schemas to publish under `components.schemas`
    :param transform_spec: Serve the transformed spec (True for defaults, or TransformSpecOptions)
    :return: The TransformedSpec behind the routes, or None if no routes were added
    """
    if json_schemas is not None:
        _install_components(app, json_schemas)
        logger.info(f"Registered {len(json_schemas)} schema(s) as OpenAPI components")

    if transform_spec is None or transform_spec is False:
        return None
    if transform_spec is True:
        transform_spec = TransformSpecOptions()
    elif not isinstance(transform_spec, TransformSpecOptions):
        transform_spec = TransformSpecOptions.model_validate(transform_spec)

    cache = schema_settings.cache_transformed_spec if transform_spec.cache is None else transform_spec.cache
    prefix = _normalize_prefix(transform_spec.route_prefix or schema_settings.transformed_route_prefix)
    transformed = TransformedSpec(app, transform_spec.options, cache=cache)

    router = APIRouter(prefix=prefix, tags=["openapi"], include_in_schema=False)

    @router.get("/json")
    def transformed_json():
        # type: () -> JSONResponse
        """Transformed OpenAPI document as JSON."""
        return JSONResponse(transformed.json())

    @router.get("/yaml")
    def transformed_yaml():
        # type: () -> Response
        """Transformed OpenAPI document as YAML."""
        return Response(content=transformed.yaml(), media_type="text/x-yaml")

    app.include_router(router)
    logger.info(f"Serving transformed OpenAPI document at {prefix}/json and {prefix}/yaml")
    return transformed
