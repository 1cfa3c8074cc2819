"""
Document model shared by the flattener and the spec transformer.

A Document is a plain JSON tree: maps (`dict` with `str` keys), sequences (`list`) and scalar leaves
(`str`, `int`, `float`, `bool`, `None`). External input is checked once, at the boundary, by
`clone_document`; everything downstream dispatches over that closed set of node kinds.
"""

import typing

import msgspec

from fastapi_schemas.errors import InvalidDocument


__all__ = [
    "Document",
    "is_record",
    "is_ref",
    "deep_equal",
    "clone_document",
]


Document = typing.Union[dict, list, str, int, float, bool, None]


def is_record(value):
    # type: (typing.Any) -> bool
    """Check whether a node is a map."""
    return isinstance(value, dict)


def is_ref(value):
    # type: (typing.Any) -> bool
    """
    Check whether a node is a reference node.

    :param value: Any document node
    :return: True for maps carrying a string `$ref`
    """
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


def deep_equal(a, b):
    # type: (Document, Document) -> bool
    """
    Strict structural equality of two documents.

    Map key order is ignored. Booleans never compare equal to numbers, unlike Python's `==`
    (`True == 1`), so `{"const": true}` and `{"const": 1}` stay distinct schemas.

    :param a: First document
    :param b: Second document
    :return: True if both trees have the same shape and leaves
    """
    if isinstance(a, dict):
        if not isinstance(b, dict) or len(a) != len(b):
            return False
        return all(key in b and deep_equal(value, b[key]) for key, value in a.items())
    if isinstance(a, list):
        if not isinstance(b, list) or len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(b, (dict, list)):
        return False
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


def clone_document(value):
    # type: (typing.Any) -> Document
    """
    Validate a value as a JSON document and return an independent deep copy.

    The value is round-tripped through msgspec's JSON codec, so anything that is not representable as
    JSON (arbitrary objects, cyclic containers) is rejected here instead of deep inside a traversal.
    Tuples come back as lists.

    :param value: Candidate document (usually parsed JSON/YAML or a FastAPI OpenAPI dict)
    :return: Deep copy made only of dict/list/scalar nodes
    :raises InvalidDocument: If value cannot be encoded as JSON
    """
    try:
        return msgspec.json.decode(msgspec.json.encode(value))
    except (TypeError, ValueError, RecursionError, msgspec.EncodeError) as e:
        raise InvalidDocument(f"value is not a JSON document: {e}") from e
