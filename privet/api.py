import pathlib
import typing

from .document import Options, Result, Tree, load, save, transform
from .records import FieldMeta


def read_file(path: pathlib.Path, options: Options = Options()) -> Result:
    return load(pathlib.Path(path).read_bytes(), options)


def write_file(path: pathlib.Path, tree: Tree, options: Options) -> typing.List[FieldMeta]:
    data, fields = save(tree, options)
    pathlib.Path(path).write_bytes(data)
    return fields


def edit_file(
        path: pathlib.Path,
        options: Options,
        mutate: typing.Callable[[Tree], None]) -> typing.List[FieldMeta]:
    path = pathlib.Path(path)
    data, fields = transform(path.read_bytes(), options, mutate)
    path.write_bytes(data)
    return fields
