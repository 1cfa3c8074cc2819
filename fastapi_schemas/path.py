"""
Path addressing over nested documents.

A path is a sequence of string segments. Map segments are keys, array segments are string-encoded
non-negative integers (`"0"`, `"1"`, ...). All functions are pure except `set_at_path` and
`delete_at_path`, which mutate the document they are given.
"""

import typing

from fastapi_schemas.errors import (
    IndexOutOfBounds,
    InvalidIndex,
    KeyNotFound,
    PathNotFound,
    PrefixMismatch,
)

if typing.TYPE_CHECKING:
    from fastapi_schemas.document import Document  # noqa: F401


__all__ = [
    "Path",
    "stringify_path",
    "equal_path",
    "child_path",
    "get_at_path",
    "get_at_path_safe",
    "set_at_path",
    "delete_at_path",
    "match_path_prefix",
    "replace_path_prefix",
]


Path = typing.Tuple[str, ...]


def stringify_path(path):
    # type: (typing.Sequence[str]) -> str
    return "/".join(path)


def equal_path(a, b):
    # type: (typing.Sequence[str], typing.Sequence[str]) -> bool
    return tuple(a) == tuple(b)


def child_path(path, *segments):
    # type: (typing.Sequence[str], str) -> Path
    return (*path, *segments)


def _parse_index(path, segment):
    # type: (typing.Sequence[str], str) -> int
    if not (segment.isascii() and segment.isdigit()):
        raise InvalidIndex(f"path='{stringify_path(path)}': segment='{segment}' is not an array index")
    return int(segment)


def _get_child_safe(current, path, segment):
    # type: (Document, typing.Sequence[str], str) -> tuple[bool, Document]
    if isinstance(current, list):
        index = _parse_index(path, segment)
        if index >= len(current):
            return False, None
        return True, current[index]
    if isinstance(current, dict):
        if segment not in current:
            return False, None
        return True, current[segment]
    return False, None


def get_at_path_safe(doc, path):
    # type: (Document, typing.Sequence[str]) -> tuple[bool, Document]
    """
    Look up a value, tolerating a missing leaf.

    Only the final segment may be absent. A missing or mistyped intermediate segment is still an error,
    because it means the caller's idea of the document shape is wrong.

    :param doc: Document to descend
    :param path: Segments to follow
    :return: Tuple of (found, value); value is None when not found
    :raises PathNotFound: If an intermediate segment is absent
    :raises InvalidIndex: If a segment addressing an array is not a non-negative integer
    """
    current = doc
    for k, segment in enumerate(path):
        found, child = _get_child_safe(current, path, segment)
        if not found:
            if k != len(path) - 1:
                raise PathNotFound(f"parent(path='{stringify_path(path)}') has no child at segment='{segment}'")
            return False, None
        current = child
    return True, current


def get_at_path(doc, path):
    # type: (Document, typing.Sequence[str]) -> Document
    """
    Look up a value that must exist.

    :param doc: Document to descend
    :param path: Segments to follow
    :return: Value at path
    :raises PathNotFound: If any segment is absent or type-mismatched
    """
    found, value = get_at_path_safe(doc, path)
    if not found:
        raise PathNotFound(f"value(path='{stringify_path(path)}') not found")
    return value


def _split_parent(doc, path):
    # type: (Document, typing.Sequence[str]) -> tuple[Document, str]
    if len(path) == 0:
        raise PathNotFound("path='' has no parent")
    found, parent = get_at_path_safe(doc, path[:-1])
    if not found:
        raise PathNotFound(f"parent(path='{stringify_path(path)}') not found")
    return parent, path[-1]


def set_at_path(doc, path, value):
    # type: (Document, typing.Sequence[str], Document) -> None
    """
    Set a value in place.

    The parent of the final segment must exist. On arrays the index may be at most the current length;
    an index equal to the length appends.

    :param doc: Document to mutate
    :param path: Non-empty path of the value to set
    :param value: New value
    :raises PathNotFound: If the parent is missing or is a scalar
    :raises IndexOutOfBounds: If an array index is greater than the array length
    """
    parent, key = _split_parent(doc, path)
    if isinstance(parent, list):
        index = _parse_index(path, key)
        if index > len(parent):
            raise IndexOutOfBounds(f"index(path='{stringify_path(path)}', index='{index}') is out of bounds")
        if index == len(parent):
            parent.append(value)
        else:
            parent[index] = value
    elif isinstance(parent, dict):
        parent[key] = value
    else:
        raise PathNotFound(f"parent(path='{stringify_path(path)}') is not an array or a map")


def delete_at_path(doc, path):
    # type: (Document, typing.Sequence[str]) -> None
    """
    Delete a value in place.

    Array removal is restricted to the last element so that no other index shifts.

    :param doc: Document to mutate
    :param path: Non-empty path of the value to delete
    :raises PathNotFound: If the parent is missing or is a scalar
    :raises KeyNotFound: If a map key is absent
    :raises InvalidIndex: If an array index is not the last index
    """
    parent, key = _split_parent(doc, path)
    if isinstance(parent, list):
        index = _parse_index(path, key)
        if index != len(parent) - 1:
            raise InvalidIndex(
                f"index(path='{stringify_path(path)}', index='{index}') is invalid: "
                "only the last item of an array can be deleted"
            )
        parent.pop()
    elif isinstance(parent, dict):
        if key not in parent:
            raise KeyNotFound(f"key(path='{stringify_path(path)}', key='{key}') not found in parent")
        del parent[key]
    else:
        raise PathNotFound(f"parent(path='{stringify_path(path)}') is not an array or a map")


def match_path_prefix(prefix, path):
    # type: (typing.Sequence[str], typing.Sequence[str]) -> bool
    """True iff `path` starts with every segment of `prefix`."""
    if len(path) < len(prefix):
        return False
    return all(a == b for a, b in zip(prefix, path))


def replace_path_prefix(prev_prefix, next_prefix, path):
    # type: (typing.Sequence[str], typing.Sequence[str], typing.Sequence[str]) -> Path
    """
    Splice `next_prefix` in place of `prev_prefix`.

    :raises PrefixMismatch: If `path` does not start with `prev_prefix`
    """
    if not match_path_prefix(prev_prefix, path):
        raise PrefixMismatch(
            f"path='{stringify_path(path)}' doesn't match prefix='{stringify_path(prev_prefix)}'"
        )
    return (*next_prefix, *path[len(prev_prefix) :])
