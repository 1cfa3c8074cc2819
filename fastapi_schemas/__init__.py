"""Flatten JSON schemas and transform FastAPI OpenAPI documents."""

from importlib import metadata

__package_name__ = "fastapi-schemas"
__version__ = metadata.version(__package_name__)

from fastapi_schemas.errors import SchemaError  # noqa: E402
from fastapi_schemas.flatten import FlattenedSchemas, flatten, flatten_json_schema  # noqa: E402
from fastapi_schemas.models import JsonSchemas, build_json_schemas  # noqa: E402
from fastapi_schemas.settings import SchemaSettings, schema_settings  # noqa: E402
from fastapi_schemas.transform import SpecTransformer, TransformOptions  # noqa: E402

__all__ = [
    "SchemaError",
    "FlattenedSchemas",
    "flatten",
    "flatten_json_schema",
    "JsonSchemas",
    "build_json_schemas",
    "SchemaSettings",
    "schema_settings",
    "SpecTransformer",
    "TransformOptions",
]
