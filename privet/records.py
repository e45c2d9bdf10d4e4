import typing

import attr

from .paths import Path, format_path


@attr.s(frozen=True, kw_only=True)
class FieldMeta:
    """What happened to one leaf during a load or save."""

    path: Path = attr.ib(converter=tuple)
    was_encrypted: bool = attr.ib(default=True)
    armored: typing.Optional[str] = attr.ib(default=None, repr=False)
    used_recipients: typing.Sequence[str] = attr.ib(factory=tuple, converter=tuple)
    used_passphrase: bool = attr.ib(default=False)
    decrypted: bool = attr.ib(default=False)

    def __str__(self):
        return format_path(self.path)


@attr.s
class FieldRecorder:
    fields: typing.List[FieldMeta] = attr.ib(factory=list)

    def record(self, path: Path, **kwargs) -> FieldMeta:
        field = FieldMeta(path=path, **kwargs)
        self.fields.append(field)
        return field

    def __len__(self):
        return len(self.fields)

    def __iter__(self):
        return iter(self.fields)
