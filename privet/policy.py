import typing

import attr

from .walk import Key, Predicate
from .paths import Path
from .utils import PolicyError

DEFAULT_PREFIX = 'private_'


@attr.s(frozen=True)
class PrefixPolicy:
    """Encrypt fields whose key starts with a prefix."""

    prefix: str = attr.ib(default=DEFAULT_PREFIX)

    @prefix.validator
    def _check_prefix(self, attribute, value):
        if not value:
            raise PolicyError("An empty prefix would encrypt every field")

    def __call__(self, path: Path, key: Key, value: typing.Any) -> bool:
        return isinstance(key, str) and key.startswith(self.prefix)


def resolve_policy(
        prefix: typing.Optional[str] = None,
        should_encrypt: typing.Optional[Predicate] = None) -> Predicate:
    if should_encrypt is not None:
        return should_encrypt
    return PrefixPolicy(DEFAULT_PREFIX if prefix is None else prefix)
