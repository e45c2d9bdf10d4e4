"""
Addressing nodes inside a document tree.

A path is a tuple of segments. Map keys are strings and sequence indices are
integers, so an index can never be mistaken for a key. The dotted text form
used on the command line writes indices in brackets:

\b
    database.hosts[0].name  <->  ('database', 'hosts', 0, 'name')
"""

import re
import typing

from .utils import PathError

Segment = typing.Union[str, int]
Path = typing.Tuple[Segment, ...]

_SEGMENT = re.compile(r'(?P<key>[^.\[\]]*)(?P<indices>(\[[^\]]*\])*)$')
_INDEX = re.compile(r'\[([^\]]*)\]')


def is_scalar(value: typing.Any) -> bool:
    """Strings, numbers, booleans, dates and None are scalars."""
    return not isinstance(value, (dict, list, tuple))


def is_index(segment: Segment) -> bool:
    return isinstance(segment, int) and not isinstance(segment, bool)


def get_value(tree: typing.Any, path: typing.Sequence[Segment]) -> typing.Tuple[typing.Any, bool]:
    """Return the value at a path and whether it was found."""
    current = tree
    for segment in path:
        if isinstance(current, dict):
            if is_index(segment) or segment not in current:
                return None, False
            current = current[segment]
        elif isinstance(current, list):
            if not is_index(segment) or not 0 <= segment < len(current):
                return None, False
            current = current[segment]
        else:
            return None, False
    return current, True


def set_value(tree: typing.Any, path: typing.Sequence[Segment], value: typing.Any) -> bool:
    """
    Replace the value at a path in place.

    The root itself can't be replaced, and the parent container must
    already exist. Returns False rather than raising when the path is
    unusable.
    """
    if not path:
        return False

    *parent_path, last = path
    parent, found = get_value(tree, parent_path)
    if not found:
        return False

    if isinstance(parent, dict) and not is_index(last):
        parent[last] = value
        return True

    if isinstance(parent, list) and is_index(last) and 0 <= last < len(parent):
        parent[last] = value
        return True

    return False


def format_path(path: typing.Sequence[Segment]) -> str:
    text = ''
    for segment in path:
        if is_index(segment):
            text += f'[{segment}]'
        elif text:
            text += f'.{segment}'
        else:
            text = str(segment)
    return text


def parse_path(text: str) -> Path:
    if not text:
        raise PathError("Path is empty")

    segments: typing.List[Segment] = []
    for part in text.split('.'):
        match = _SEGMENT.match(part)
        if match is None or not (match.group('key') or match.group('indices')):
            raise PathError(f"Malformed path {text!r}")
        if match.group('key'):
            segments.append(match.group('key'))
        for index in _INDEX.findall(match.group('indices')):
            try:
                segments.append(int(index))
            except ValueError:
                raise PathError(f"Malformed index [{index}] in path {text!r}") from None
    return tuple(segments)
