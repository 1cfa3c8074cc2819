"""
Exception hierarchy for fastapi-schemas.

Three families of errors, all fatal to the current call:

- **Input-shape errors** - the caller passed a document that violates a structural precondition
- **Addressing errors** - a path or reference does not resolve (misuse or broken invariant)
- **Conflict errors** - two different schemas compete for the same derived key

Every class also derives from the closest builtin so callers may catch `ValueError` / `LookupError`.
"""

__all__ = [
    "SchemaError",
    "InputShapeError",
    "NotAnObjectSchema",
    "InvalidPropertySchema",
    "UnrecognizedSpecDialect",
    "InvalidDocument",
    "AddressingError",
    "PathNotFound",
    "IndexOutOfBounds",
    "InvalidIndex",
    "KeyNotFound",
    "PrefixMismatch",
    "UnresolvedReference",
    "ConflictError",
    "SchemaKeyConflict",
]


class SchemaError(Exception):
    """Base class for all fastapi-schemas errors."""


class InputShapeError(SchemaError, ValueError):
    """Document violates a structural precondition."""


class NotAnObjectSchema(InputShapeError):
    """Root schema is not an object type with a `properties` map."""


class InvalidPropertySchema(InputShapeError):
    """A property of the root schema is not a schema map."""


class UnrecognizedSpecDialect(InputShapeError):
    """Document is neither an OpenAPI (components.schemas) nor a Swagger (definitions) spec."""


class InvalidDocument(InputShapeError):
    """Value cannot be represented as a JSON document."""


class AddressingError(SchemaError, LookupError):
    """A path or reference cannot be resolved."""


class PathNotFound(AddressingError):
    """No value at the requested path."""


class IndexOutOfBounds(AddressingError):
    """Array index beyond the end of the array."""


class InvalidIndex(AddressingError):
    """Array segment is not a usable index for the operation."""


class KeyNotFound(AddressingError):
    """Map key missing on delete."""


class PrefixMismatch(AddressingError):
    """Path does not start with the expected prefix."""


class UnresolvedReference(AddressingError):
    """A `$ref` points at a schema that does not exist."""


class ConflictError(SchemaError, ValueError):
    """Deterministic naming collision."""


class SchemaKeyConflict(ConflictError):
    """Derived schema key already names a schema with different content."""
