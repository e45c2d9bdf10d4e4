"""
Selective encryption of document trees.

Loading opens every leaf that looks like an armored age block and leaves the
rest alone. Saving seals every field the policy selects, skipping fields that
are already armored so that saving a loaded-and-saved document again doesn't
churn its ciphertext. Both directions return a fresh tree and a list of
FieldMeta records, one per field they touched.

A leaf that can't be opened stays armored, and by default a leaf that can't
be sealed stays as it was; neither stops the rest of the document from being
processed.
"""

import logging
import typing

import attr

from . import age
from .codec import decode_leaf, encode_leaf, is_armored
from .formats import parse_document, serialize_document
from .paths import Path, format_path
from .policy import DEFAULT_PREFIX, resolve_policy
from .records import FieldMeta, FieldRecorder
from .utils import NoRecipients, PrivetException, SealError
from .walk import MAX_DEPTH, Key, Predicate, walk

log = logging.getLogger(__name__)

Tree = typing.Dict[str, typing.Any]


@attr.s(frozen=True, kw_only=True)
class Options:
    keys: age.KeySources = attr.ib(factory=age.KeySources)
    private_prefix: str = attr.ib(default=DEFAULT_PREFIX)
    should_encrypt: typing.Optional[Predicate] = attr.ib(default=None)
    strict: bool = attr.ib(default=False)
    max_depth: int = attr.ib(default=MAX_DEPTH)

    @property
    def policy(self) -> Predicate:
        return resolve_policy(self.private_prefix, self.should_encrypt)


@attr.s(frozen=True)
class Result:
    tree: Tree = attr.ib()
    fields: typing.List[FieldMeta] = attr.ib(factory=list)

    @property
    def undecrypted(self) -> typing.List[FieldMeta]:
        return [field for field in self.fields if field.was_encrypted and not field.decrypted]


@attr.s
class _Opener:
    identities: typing.Sequence[age.Identity] = attr.ib()
    recorder: FieldRecorder = attr.ib(factory=FieldRecorder)

    def __call__(self, path: Path, key: Key, value: typing.Any) -> typing.Tuple[typing.Any, bool]:
        if key is None or not is_armored(value):
            return value, True

        field_path = (*path, key)
        try:
            decoded = decode_leaf(age.open_armored(value, self.identities))
        except age.DecryptionError as error:
            log.warning(f"Could not decrypt {format_path(field_path)}: {error.message}")
            self.recorder.record(field_path, armored=value)
            return value, True
        except UnicodeDecodeError as error:
            log.warning(f"Decrypted {format_path(field_path)} is not UTF-8 text, keeping it encrypted: {error}")
            self.recorder.record(field_path, armored=value)
            return value, True

        log.debug(f"Decrypted {format_path(field_path)}")
        self.recorder.record(field_path, armored=value, decrypted=True)
        return decoded, False


@attr.s
class _Sealer:
    recipients: typing.Sequence[age.Recipient] = attr.ib()
    policy: Predicate = attr.ib()
    strict: bool = attr.ib(default=False)
    recorder: FieldRecorder = attr.ib(factory=FieldRecorder)

    def __call__(self, path: Path, key: Key, value: typing.Any) -> typing.Tuple[typing.Any, bool]:
        if key is None or not self.policy(path, key, value):
            return value, True

        field_path = (*path, key)
        if is_armored(value):
            log.debug(f"Keeping existing ciphertext for {format_path(field_path)}")
            self.record(field_path, value)
            return value, False

        try:
            armored = age.seal(encode_leaf(value), self.recipients)
        except (TypeError, ValueError, age.EncryptionError) as error:
            if self.strict:
                raise SealError(f"Failed to encrypt {format_path(field_path)}: {error}") from error
            log.warning(f"Leaving {format_path(field_path)} unencrypted: {error}")
            return value, True

        log.debug(f"Encrypted {format_path(field_path)}")
        self.record(field_path, armored)
        return armored, False

    def record(self, path: Path, armored: str) -> FieldMeta:
        return self.recorder.record(
            path,
            armored=armored,
            used_recipients=age.recipient_labels(self.recipients),
            used_passphrase=age.has_passphrase(self.recipients))


def load_tree(
        tree: typing.Any,
        identities: typing.Sequence[age.Identity],
        max_depth: int = MAX_DEPTH) -> Result:
    """Decrypt every armored leaf the identities can open."""
    opener = _Opener(identities)
    decrypted = walk(tree, opener, max_depth)
    opened = sum(1 for field in opener.recorder if field.decrypted)
    log.info(f"Decrypted {opened} of {len(opener.recorder)} encrypted fields")
    return Result(decrypted, opener.recorder.fields)


def save_tree(
        tree: typing.Any,
        recipients: typing.Sequence[age.Recipient],
        policy: typing.Optional[Predicate] = None,
        strict: bool = False,
        max_depth: int = MAX_DEPTH) -> Result:
    """Encrypt every field the policy selects that isn't already encrypted."""
    if not recipients:
        raise NoRecipients()

    sealer = _Sealer(recipients, policy or resolve_policy(), strict)
    encrypted = walk(tree, sealer, max_depth)
    log.info(f"Encrypted {len(sealer.recorder)} fields for {len(recipients)} recipients")
    return Result(encrypted, sealer.recorder.fields)


def load(data: bytes, options: Options = Options()) -> Result:
    """Parse a TOML document and decrypt it."""
    tree = parse_document(data)
    identities = options.keys.load_identities()
    return load_tree(tree, identities, options.max_depth)


def save(tree: Tree, options: Options) -> typing.Tuple[bytes, typing.List[FieldMeta]]:
    """Encrypt a tree and write it as a TOML document."""
    recipients = options.keys.load_recipients()
    result = save_tree(tree, recipients, options.policy, options.strict, options.max_depth)
    return serialize_document(result.tree), result.fields


def transform(
        data: bytes,
        options: Options,
        mutate: typing.Callable[[Tree], None]) -> typing.Tuple[bytes, typing.List[FieldMeta]]:
    """Decrypt a document, let mutate edit the tree in place, and encrypt it again."""
    result = load(data, options)

    try:
        mutate(result.tree)
    except PrivetException:
        raise
    except Exception as error:
        raise PrivetException(f"Transformation failed: {error}") from error

    return save(result.tree, options)
