"""
Runtime settings for fastapi-schemas.

**PURPOSE**: Defaults for the FastAPI integration and the CLI, configurable via environment variables.

**CONFIGURATION SOURCE**: Environment variables with FASTAPI_SCHEMAS_ prefix, or a .env file

Per-call transformation options are not settings; they are passed as `TransformOptions` (see
`fastapi_schemas.transform`).

Provides configuration management using Pydantic settings with support for:
- Environment variables with FASTAPI_SCHEMAS_ prefix
- .env file loading
- Runtime settings override
- Type validation and defaults
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


__all__ = [
    "SchemaSettings",
    "schema_settings",
]


class SchemaSettings(BaseSettings):
    """
    Application settings for fastapi-schemas.

    Settings can be configured via:
    - Environment variables (prefixed with FASTAPI_SCHEMAS_)
    - .env file in the working directory
    - Direct instantiation with parameters
    - Runtime override using the override() method

    Attributes:
        transformed_route_prefix: Route prefix under which the transformed spec is served
        cache_transformed_spec: Compute the transformed spec once per rendering and reuse it
        spec_format: Default output format of the CLI (json or yaml)
        schema_id: `$id` of the root document built from pydantic models
        target: JSON-schema flavour built from pydantic models (jsonSchema7 or openApi3)
    """

    transformed_route_prefix: str = Field(
        "/openapi_transformed",
        description="Route prefix for the transformed spec (serves <prefix>/json and <prefix>/yaml)",
    )

    cache_transformed_spec: bool = Field(
        True,
        description="Cache the transformed spec after the first request",
    )

    spec_format: Literal["json", "yaml"] = Field(
        "json",
        description="Default CLI output format",
    )

    schema_id: str = Field(
        "Schema",
        description="$id of the root document built from pydantic models",
    )

    target: Literal["jsonSchema7", "openApi3"] = Field(
        "jsonSchema7",
        description="JSON-schema flavour of schemas built from pydantic models",
    )

    @field_validator("transformed_route_prefix", mode="before")
    @classmethod
    def normalize_route_prefix(cls, v):
        # type: (str) -> str
        """
        Normalize the route prefix to a leading slash and no trailing slash.

        :param v: Route prefix as configured
        :return: Normalized prefix, e.g. "/openapi_transformed"
        """
        if isinstance(v, str):
            return "/" + v.strip().strip("/")
        return v

    model_config = SettingsConfigDict(
        env_prefix="FASTAPI_SCHEMAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    def override(self, update=None):
        # type: (dict|None) -> SchemaSettings
        """
        Returns an updated and validated deep copy of the current settings instance.

        :param update: Dictionary of field names and values to override.
        :return: New SchemaSettings instance with updated and validated fields.
        """

        update = update or {}  # sets {} if update is None

        settings = self.model_copy(deep=True)
        # We need update fields individually so validation gets triggered
        for field, value in update.items():
            setattr(settings, field, value)
        return settings


schema_settings = SchemaSettings()
