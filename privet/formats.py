"""
Reading and writing documents, and presenting decrypted trees.
"""

import json
import logging
import typing

import toml
import yaml

from .paths import Path, format_path
from .records import FieldMeta
from .utils import DocumentError

log = logging.getLogger(__name__)

OUTPUT_FORMATS = ('toml', 'json', 'yaml', 'env', 'flat')


def parse_document(data: bytes) -> typing.Dict[str, typing.Any]:
    try:
        return toml.loads(data.decode('utf-8'))
    except (toml.TomlDecodeError, UnicodeDecodeError) as error:
        raise DocumentError(f"Failed to parse TOML: {error}") from error


def serialize_document(tree: typing.Dict[str, typing.Any]) -> bytes:
    try:
        return toml.dumps(tree).encode('utf-8')
    except (TypeError, ValueError) as error:
        raise DocumentError(f"Failed to write TOML: {error}") from error


def format_output(tree: typing.Any, output: str) -> str:
    if output == 'json':
        return json.dumps(tree, indent=2, default=str) + '\n'
    if output == 'yaml':
        return yaml.safe_dump(tree, sort_keys=False, default_flow_style=False, allow_unicode=True)
    if output == 'env':
        return ''.join(f"{name.upper()}={value}\n" for name, value in _flatten(tree, (), '_'))
    if output == 'flat':
        return ''.join(f"{name}={value}\n" for name, value in _flatten(tree, (), '.'))
    if output == 'toml':
        return serialize_document(tree).decode('utf-8')
    raise ValueError(f"Unknown output format {output!r}")


def _flatten(value: typing.Any, path: Path, separator: str) -> typing.Iterator[typing.Tuple[str, typing.Any]]:
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _flatten(child, (*path, key), separator)
    elif isinstance(value, list):
        for index, child in enumerate(value):
            yield from _flatten(child, (*path, index), separator)
    elif separator == '.':
        yield format_path(path), _scalar_text(value)
    else:
        yield separator.join(str(segment) for segment in path), _scalar_text(value)


def _scalar_text(value: typing.Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return ''
    return str(value)


def encrypted_paths(fields: typing.Iterable[FieldMeta]) -> typing.Set[Path]:
    return {field.path for field in fields if field.was_encrypted}


def private_only(tree: typing.Any, fields: typing.Iterable[FieldMeta]) -> typing.Any:
    """Keep just the encrypted fields and the containers leading to them."""
    paths = encrypted_paths(fields)
    kept, _ = _keep(tree, (), paths)
    return kept if kept is not None else {}


def _keep(value: typing.Any, path: Path, paths: typing.Set[Path]) -> typing.Tuple[typing.Any, bool]:
    if path in paths:
        return value, True

    if isinstance(value, dict):
        kept = {}
        for key, child in value.items():
            child_value, found = _keep(child, (*path, key), paths)
            if found:
                kept[key] = child_value
        return kept, bool(kept)

    if isinstance(value, list):
        items = [_keep(child, (*path, index), paths) for index, child in enumerate(value)]
        kept_items = [child_value for child_value, found in items if found]
        return kept_items, bool(kept_items)

    return None, False


def public_only(tree: typing.Any, fields: typing.Iterable[FieldMeta]) -> typing.Any:
    """Drop every encrypted field, keeping everything else as it is."""
    return _drop(tree, (), encrypted_paths(fields))


def _drop(value: typing.Any, path: Path, paths: typing.Set[Path]) -> typing.Any:
    if isinstance(value, dict):
        return {
            key: _drop(child, (*path, key), paths)
            for key, child in value.items() if (*path, key) not in paths}
    if isinstance(value, list):
        return [
            _drop(child, (*path, index), paths)
            for index, child in enumerate(value) if (*path, index) not in paths]
    return value


def count_fields(tree: typing.Any) -> int:
    """Count map entries at every level, tables included."""
    if isinstance(tree, dict):
        return sum(1 + count_fields(value) for value in tree.values())
    if isinstance(tree, list):
        return sum(count_fields(value) for value in tree)
    return 0
