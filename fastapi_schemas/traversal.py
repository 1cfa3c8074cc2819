"""
Deep traversal primitives over documents.

Maps and sequences are treated uniformly: each map value and each sequence element is visited with the
path extended by its key or its (string-encoded) index. Traversal is pre-order.
"""

import typing

if typing.TYPE_CHECKING:
    from fastapi_schemas.document import Document  # noqa: F401
    from fastapi_schemas.path import Path  # noqa: F401


__all__ = ["children", "visit_deep", "map_deep", "find_first_deep"]


def children(node):
    # type: (Document) -> typing.Iterator[tuple[str, Document]]
    """Yield (segment, child) pairs of a map or sequence; nothing for scalars."""
    if isinstance(node, dict):
        yield from list(node.items())
    elif isinstance(node, list):
        yield from ((str(i), item) for i, item in enumerate(list(node)))


def visit_deep(doc, visit, path=()):
    # type: (Document, typing.Callable[[Document, Path], bool|None], Path) -> None
    """
    Call `visit(node, path)` on every node, root included.

    When `visit` returns `False` the node's children are skipped. Any other return value (including
    None) descends.

    :param doc: Document to walk
    :param visit: Callback receiving the node and its path
    :param path: Path of `doc` itself
    """
    if visit(doc, path) is False:
        return
    for segment, child in children(doc):
        visit_deep(child, visit, (*path, segment))


def map_deep(doc, transform, path=()):
    # type: (Document, typing.Callable[[Document, Path], Document], Path) -> Document
    """
    Rebuild a document by passing every node through `transform(node, path)`.

    The transform is applied top-down: a node is replaced first, then the replacement's children are
    mapped. A transform that swaps a whole subtree for a `$ref` node therefore never sees the subtree it
    removed. The input document is not modified.

    :param doc: Document to map
    :param transform: Callback returning the replacement node
    :param path: Path of `doc` itself
    :return: New document
    """
    node = transform(doc, path)
    if isinstance(node, dict):
        return {key: map_deep(value, transform, (*path, key)) for key, value in node.items()}
    if isinstance(node, list):
        return [map_deep(item, transform, (*path, str(i))) for i, item in enumerate(node)]
    return node


def find_first_deep(doc, predicate, path=()):
    # type: (Document, typing.Callable[[Document, Path], bool], Path) -> tuple[bool, Document, Path]
    """
    Return the first node, in pre-order, matching `predicate(node, path)`.

    :param doc: Document to search
    :param predicate: Match callback
    :param path: Path of `doc` itself
    :return: Tuple of (found, value, path); (False, None, ()) when nothing matches
    """
    if predicate(doc, path):
        return True, doc, path
    for segment, child in children(doc):
        found, value, found_path = find_first_deep(child, predicate, (*path, segment))
        if found:
            return found, value, found_path
    return False, None, ()
