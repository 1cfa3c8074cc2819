"""
Reference address algebra.

A `$ref` address has the wire form `<basePath>#<pointer>`, e.g. `User#/properties/id` or
`#/components/schemas/User`. An empty base path means "this same document". `RefPath` is the parsed,
comparable form; `format()` produces the exact wire string again.
"""

import typing

import msgspec

from fastapi_schemas.document import is_ref


__all__ = ["RefPath", "make_ref", "ref_path_of"]


def _unescape(segment):
    # type: (str) -> str
    return segment.replace("~1", "/").replace("~0", "~")


def _escape(segment):
    # type: (str) -> str
    return segment.replace("~", "~0").replace("/", "~1")


class RefPath(msgspec.Struct, frozen=True):
    """Parsed `$ref` address."""

    base_path: str  # Id of the addressed document, "" for the current document
    path: typing.Tuple[str, ...] = ()  # JSON-pointer segments inside that document (unescaped)

    @classmethod
    def parse(cls, ref):
        # type: (str) -> RefPath
        """
        Parse a wire address.

        `"A#"` and `"A"` both address the whole document `A`. JSON-pointer escapes are decoded.

        :param ref: Address string
        :return: Parsed RefPath
        """
        base_path, sep, pointer = ref.partition("#")
        if not sep or pointer in ("", "/"):
            return cls(base_path, ())
        return cls(base_path, tuple(_unescape(segment) for segment in pointer.split("/")[1:]))

    @property
    def is_document(self):
        # type: () -> bool
        """True when the address points at a whole document (ends in a bare `#`)."""
        return len(self.path) == 0

    def format(self):
        # type: () -> str
        """Return the wire string, e.g. `User#/properties/id`."""
        return f"{self.base_path}#" + "".join(f"/{_escape(segment)}" for segment in self.path)

    def to_ref(self):
        # type: () -> dict
        """Return a reference node `{"$ref": ...}`."""
        return {"$ref": self.format()}

    def child(self, *segments):
        # type: (str) -> RefPath
        return RefPath(self.base_path, (*self.path, *segments))


def make_ref(base_path, path=(), description=None):
    # type: (str, typing.Sequence[str], str|None) -> dict
    """
    Build a reference node.

    :param base_path: Addressed document id ("" for the current document)
    :param path: Pointer segments
    :param description: Optional description placed next to `$ref`
    :return: Reference node
    """
    node = RefPath(base_path, tuple(path)).to_ref()
    if description is not None:
        node["description"] = description
    return node


def ref_path_of(node):
    # type: (typing.Any) -> RefPath|None
    """Parsed address of a reference node, None for any other node."""
    if not is_ref(node):
        return None
    return RefPath.parse(node["$ref"])
