"""
Depth first traversal of document trees.

The visitor is called as ``visit(path, key, value)`` for every node, root
first. ``path`` is the path of the node's parent container and ``key`` is the
node's own map key or sequence index; the root is visited with ``()`` and
``None``. The visitor returns ``(new_value, descend)``: the walker continues
into ``new_value`` rather than the original, and when ``descend`` is false
``new_value`` is used as the finished subtree.

Containers are rebuilt for every walk, so the input tree is never shared with
the output tree.
"""

import logging
import typing

import attr

from .paths import Path, Segment, format_path, is_scalar
from .utils import TreeTooDeep

log = logging.getLogger(__name__)

MAX_DEPTH = 256

Key = typing.Optional[Segment]
Visitor = typing.Callable[[Path, Key, typing.Any], typing.Tuple[typing.Any, bool]]
Predicate = typing.Callable[[Path, Key, typing.Any], bool]


def walk(tree: typing.Any, visit: Visitor, max_depth: int = MAX_DEPTH) -> typing.Any:
    return _walk_value((), None, tree, visit, max_depth)


def _walk_value(path: Path, key: Key, value: typing.Any, visit: Visitor, max_depth: int) -> typing.Any:
    value, descend = visit(path, key, value)
    if not descend:
        return value

    if isinstance(value, dict):
        return _walk_map(_child_path(path, key, max_depth), value, visit, max_depth)
    if isinstance(value, list):
        return _walk_list(_child_path(path, key, max_depth), value, visit, max_depth)
    return value


def _child_path(path: Path, key: Key, max_depth: int) -> Path:
    if key is None:
        return path

    child_path = (*path, key)
    if len(child_path) > max_depth:
        raise TreeTooDeep(
            f"Document is nested deeper than {max_depth} levels at {format_path(child_path[:8])}...")
    return child_path


def _walk_map(path: Path, mapping: typing.Dict[str, typing.Any], visit: Visitor, max_depth: int) -> dict:
    return {k: _walk_value(path, k, v, visit, max_depth) for k, v in mapping.items()}


def _walk_list(path: Path, sequence: typing.List[typing.Any], visit: Visitor, max_depth: int) -> list:
    return [_walk_value(path, i, v, visit, max_depth) for i, v in enumerate(sequence)]


@attr.s(frozen=True)
class FieldInfo:
    path: Path = attr.ib()
    value: typing.Any = attr.ib()

    @property
    def key(self) -> Segment:
        return self.path[-1]

    def __str__(self):
        return format_path(self.path)


def find_fields(
        tree: typing.Any,
        predicate: Predicate,
        stop_at_match: bool = False,
        max_depth: int = MAX_DEPTH) -> typing.List[FieldInfo]:
    """
    Collect every non-root node the predicate accepts, in visit order.

    With stop_at_match, nothing below an accepted node is considered.
    """
    found: typing.List[FieldInfo] = []

    def visit(path: Path, key: Key, value: typing.Any) -> typing.Tuple[typing.Any, bool]:
        if key is not None and predicate(path, key, value):
            found.append(FieldInfo(path=(*path, key), value=value))
            return value, not stop_at_match
        return value, True

    walk(tree, visit, max_depth)
    log.debug(f"Found {len(found)} matching fields")
    return found


def leaves(tree: typing.Any) -> typing.List[FieldInfo]:
    """Every scalar below the root, with its full path."""
    return find_fields(tree, lambda path, key, value: is_scalar(value))
