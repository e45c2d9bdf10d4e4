import functools
import logging
import os
import os.path
import pathlib
import typing

import click

from . import __doc__, __version__, formats
from .age import ArmorError, KeySources, header_stanzas
from .codec import decode_leaf, is_armored
from .document import Options, load_tree, save, transform
from .formats import OUTPUT_FORMATS, count_fields, format_output, parse_document
from .paths import format_path, get_value, parse_path, set_value
from .policy import DEFAULT_PREFIX, PrefixPolicy
from .records import FieldMeta
from .utils import KeyMaterialError, PolicyError, PrivetException, check_ignored
from .walk import FieldInfo, find_fields

log = logging.getLogger(__name__)


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


def field(path: typing.Sequence) -> str:
    """Style the path to a field."""
    return click.style(format_path(path), fg='green')


class PathType(click.Path):
    # Split multiple paths from environment variables on whitespace, not os.pathsep.
    envvar_list_splitter = None

    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


file_argument = click.argument(
    'file',
    type=PathType(exists=True, dir_okay=False),
    required=True)

identity_option = click.option(
    '-i', '--identity', 'identity_files',
    metavar='FILE',
    envvar='PRIVET_IDENTITY',
    multiple=True,
    type=PathType(exists=True, dir_okay=False),
    help="File containing age identities.")

key_option = click.option(
    '-k', '--key', 'keys',
    metavar='KEY',
    multiple=True,
    help="Inline age identity (insecure, for testing).")

recipients_option = click.option(
    '-r', '--recipients', 'recipient_files',
    metavar='FILE',
    envvar='PRIVET_RECIPIENTS',
    multiple=True,
    type=PathType(exists=True, dir_okay=False),
    help="File containing age or SSH public keys, one per line.")

recipients_inline_option = click.option(
    '--recipients-inline',
    metavar='KEYS',
    default=None,
    help="Comma separated age or SSH public keys.")


def check_prefix(ctx, param, value: str) -> str:
    try:
        PrefixPolicy(value)
    except PolicyError as error:
        raise click.BadParameter(error.message) from error
    return value


private_prefix_option = click.option(
    '--private-prefix',
    default=DEFAULT_PREFIX,
    show_default=True,
    callback=check_prefix,
    help="Fields whose names start with this are encrypted.")


def passphrase_options(func):
    func = click.option(
        '--passphrase-env',
        metavar='NAME',
        default=None,
        help="Read the passphrase from an environment variable.")(func)
    func = click.option(
        '--passphrase-file',
        type=PathType(exists=True, dir_okay=False),
        default=None,
        help="Read the passphrase from the first line of a file.")(func)
    func = click.option(
        '--passphrase', 'passphrase_prompt',
        default=False,
        is_flag=True,
        help="Prompt for a passphrase.")(func)
    return func


def passphrase_provider(
        passphrase_prompt: bool = False,
        passphrase_file: typing.Optional[pathlib.Path] = None,
        passphrase_env: typing.Optional[str] = None) -> typing.Optional[typing.Callable[[], str]]:
    if passphrase_prompt:
        return functools.lru_cache()(functools.partial(click.prompt, 'Passphrase', hide_input=True))

    if passphrase_file is not None:
        def from_file() -> str:
            lines = passphrase_file.read_text().splitlines()
            if not lines:
                raise KeyMaterialError(f"Passphrase file {passphrase_file} is empty")
            return lines[0].strip()
        return from_file

    if passphrase_env is not None:
        def from_env() -> str:
            passphrase = os.environ.get(passphrase_env)
            if not passphrase:
                raise KeyMaterialError(f"Passphrase environment variable {passphrase_env} is empty")
            return passphrase
        return from_env

    return None


def key_sources(
        identity_files: typing.Sequence[pathlib.Path] = (),
        keys: typing.Sequence[str] = (),
        recipient_files: typing.Sequence[pathlib.Path] = (),
        recipients_inline: typing.Optional[str] = None,
        **passphrase) -> KeySources:
    recipients = [r.strip() for r in (recipients_inline or '').split(',') if r.strip()]
    return KeySources(
        identity_files=identity_files,
        identities=keys,
        recipient_files=recipient_files,
        recipients=recipients,
        passphrase_provider=passphrase_provider(**passphrase))


def count_encrypted(fields: typing.Iterable[FieldMeta]) -> int:
    return sum(1 for f in fields if f.was_encrypted)


@click.group(help=__doc__)
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
def main(debug: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))


@main.command()
def version():
    """Show the application version."""
    click.echo(f"privet {__version__}")


@main.command()
@file_argument
@identity_option
@key_option
@passphrase_options
@click.option(
    '-o', '--output',
    type=click.Choice(OUTPUT_FORMATS),
    default='toml',
    show_default=True,
    help="Output format.")
@click.option(
    '--raw',
    default=False,
    is_flag=True,
    help="Show encrypted values without decrypting them.")
@click.option(
    '--path', 'path_text',
    metavar='PATH',
    default=None,
    help="Extract a single value, e.g. 'database.private_password'.")
@click.option(
    '--private-only',
    default=False,
    is_flag=True,
    help="Show only encrypted fields.")
@click.option(
    '--public-only',
    default=False,
    is_flag=True,
    help="Show only fields that are not encrypted.")
@click.option(
    '--to', 'destination',
    type=PathType(dir_okay=False),
    default=None,
    help="Write the decrypted output to a file ignored by git.")
@click.option('-q', '--quiet', default=False, is_flag=True, help="Suppress non-essential output.")
@click.option('-v', '--verbose', default=False, is_flag=True, help="Show how many fields were decrypted.")
def read(
        file: pathlib.Path,
        output: str,
        raw: bool,
        path_text: typing.Optional[str],
        private_only: bool,
        public_only: bool,
        destination: typing.Optional[pathlib.Path],
        quiet: bool,
        verbose: bool,
        **keys):
    """Read and decrypt a TOML configuration file."""
    if private_only and public_only:
        raise click.UsageError("--private-only and --public-only can't be used together")

    tree = parse_document(file.read_bytes())
    if raw:
        fields = [
            FieldMeta(path=info.path, armored=info.value)
            for info in find_fields(tree, lambda path, key, value: is_armored(value))]
    else:
        options = Options(keys=key_sources(**keys))
        result = load_tree(tree, options.keys.load_identities(), options.max_depth)
        tree, fields = result.tree, result.fields

        if result.undecrypted and not quiet:
            click.secho(
                f"{len(result.undecrypted)} encrypted fields in {rel(file)} could not be decrypted",
                fg='yellow', err=True)

    if private_only:
        tree = formats.private_only(tree, fields)
    elif public_only:
        tree = formats.public_only(tree, fields)

    if path_text:
        value, found = get_value(tree, parse_path(path_text))
        if not found:
            raise PrivetException(f"Path not found: {path_text}")
        tree = {path_text: value}

    text = format_output(tree, output)

    if destination is not None:
        check_ignored(destination)
        destination.write_text(text)
        if not quiet:
            click.echo(f"Decrypted {rel(file)} to {rel(destination)}")
    else:
        click.echo(text, nl=False)

    if verbose and not quiet:
        click.secho(f"Processed {count_encrypted(fields)} encrypted fields", fg='blue', err=True)


main.add_command(read, name='decrypt')
main.add_command(read, name='show')
main.add_command(read, name='view')


@main.command()
@file_argument
@recipients_option
@recipients_inline_option
@passphrase_options
@click.option(
    '-o', '--output', 'destination',
    type=PathType(dir_okay=False),
    default=None,
    help="Output file path (default: stdout).")
@click.option(
    '-f', '--force',
    default=False,
    is_flag=True,
    help="Overwrite the output file if it exists.")
@private_prefix_option
@click.option(
    '--dry-run',
    default=False,
    is_flag=True,
    help="Show what would be encrypted without doing it.")
@click.option('--stats', default=False, is_flag=True, help="Show encryption statistics.")
@click.option(
    '--strict/--no-strict',
    default=False,
    help="Fail instead of leaving a private field unencrypted when it can't be encrypted.")
@click.option('-q', '--quiet', default=False, is_flag=True, help="Suppress non-essential output.")
@click.option('-v', '--verbose', default=False, is_flag=True, help="List encrypted fields with --stats.")
def encrypt(
        file: pathlib.Path,
        destination: typing.Optional[pathlib.Path],
        force: bool,
        private_prefix: str,
        dry_run: bool,
        stats: bool,
        strict: bool,
        quiet: bool,
        verbose: bool,
        **keys):
    """
    Encrypt the private fields of a TOML configuration file.

    The $PRIVET_RECIPIENTS environment variable can hold a whitespace
    separated list of recipient files.
    """
    tree = parse_document(file.read_bytes())

    if dry_run:
        policy = Options(private_prefix=private_prefix).policy
        targets: typing.List[FieldInfo] = find_fields(tree, policy, stop_at_match=True)
        if quiet:
            return
        if not targets:
            click.echo("No fields found with the specified prefix")
            return
        click.echo(f"Would encrypt {len(targets)} fields:")
        for target in targets:
            note = " (already encrypted)" if is_armored(target.value) else ""
            click.echo(f"  - {field(target.path)}{note}")
        return

    options = Options(keys=key_sources(**keys), private_prefix=private_prefix, strict=strict)
    data, fields = save(tree, options)

    if destination is not None:
        if destination.exists() and not force:
            raise PrivetException(f"Output file exists: {rel(destination)} (use --force to overwrite)")
        destination.write_bytes(data)
        if not quiet:
            click.echo(f"Encrypted configuration written to {rel(destination)}")
    else:
        click.echo(data.decode('utf-8'), nl=False)

    if stats and not quiet:
        click.secho(f"Encrypted {count_encrypted(fields)} fields", fg='green', err=True)
        if verbose:
            for meta in fields:
                click.echo(f"  - {field(meta.path)}", err=True)


main.add_command(encrypt, name='enc')
main.add_command(encrypt, name='generate')


@main.command()
@file_argument
@click.option('--fields', 'show_fields', default=False, is_flag=True, help="List encrypted field paths.")
@click.option('--recipients', 'show_recipients', default=False, is_flag=True,
              help="Show the recipient types of each field.")
@click.option('--stats', 'show_stats', default=False, is_flag=True, help="Show encryption statistics.")
def inspect(file: pathlib.Path, show_fields: bool, show_recipients: bool, show_stats: bool):
    """Show which fields are encrypted without decrypting anything."""
    data = file.read_bytes()
    tree = parse_document(data)
    encrypted = find_fields(tree, lambda path, key, value: is_armored(value))

    if show_stats:
        click.echo(f"File: {rel(file)}")
        click.echo(f"Total fields: {count_fields(tree)}")
        click.echo(f"Encrypted fields: {len(encrypted)}")
        click.echo(f"File size: {len(data)} bytes")

    if show_fields:
        click.echo("Encrypted fields:")
        for info in encrypted:
            click.echo(f"  {field(info.path)}")

    if show_recipients:
        click.echo("Recipients per field:")
        for info in encrypted:
            click.echo(f"  {field(info.path)}:")
            try:
                stanzas = header_stanzas(info.value)
            except ArmorError as error:
                click.echo(f"    (could not read header: {error.message})")
                continue
            for stanza in stanzas:
                click.echo(f"    - {stanza}")

    if not (show_stats or show_fields or show_recipients):
        click.echo(f"File: {rel(file)}")
        click.echo(f"Encrypted fields: {len(encrypted)}")
        for info in encrypted:
            click.echo(f"  - {field(info.path)}")


@main.command()
@file_argument
@identity_option
@key_option
@passphrase_options
@click.option('--check-all', default=False, is_flag=True, help="Run every check.")
@click.option('--check-format', default=False, is_flag=True, help="Check the file is valid TOML.")
@click.option('--check-armor', default=False, is_flag=True, help="Check every armored block is well formed.")
def verify(file: pathlib.Path, check_all: bool, check_format: bool, check_armor: bool, **keys):
    """
    Verify file integrity and decryptability.

    Decryptability is checked with --check-all or when identities are given.
    Without any flags the format and armor are checked.
    """
    decrypt = check_all or bool(keys['identity_files'] or keys['keys'])
    if not (check_all or check_format or check_armor or decrypt):
        check_format = check_armor = True

    failures = 0

    def ok(message: str):
        click.secho(f"✓ {message}", fg='green')

    def fail(message: str):
        nonlocal failures
        failures += 1
        click.secho(f"✗ {message}", fg='red')

    click.echo(f"File: {rel(file)}")

    try:
        tree = parse_document(file.read_bytes())
    except PrivetException as error:
        fail(error.message)
        raise PrivetException("Verification failed") from error

    if check_all or check_format:
        ok("TOML format valid")

    if check_all or check_armor:
        encrypted = find_fields(tree, lambda path, key, value: is_armored(value))
        invalid = 0
        for info in encrypted:
            try:
                header_stanzas(info.value)
            except ArmorError as error:
                invalid += 1
                fail(f"Invalid armor block in field {format_path(info.path)}: {error.message}")
        if not encrypted:
            click.secho("No armor blocks found to verify", fg='blue')
        elif not invalid:
            ok(f"All {len(encrypted)} armor blocks are valid")

    if decrypt:
        options = Options(keys=key_sources(**keys))
        result = load_tree(tree, options.keys.load_identities(), options.max_depth)
        opened = sum(1 for meta in result.fields if meta.decrypted)
        if result.undecrypted:
            fail(f"{len(result.undecrypted)} fields could not be decrypted")
            for meta in result.undecrypted:
                click.echo(f"  - {field(meta.path)}")
        if opened:
            ok(f"{opened} fields successfully decrypted")
        if not result.fields:
            click.secho("No encrypted fields found", fg='blue')

    if failures:
        raise PrivetException("Verification failed")


@main.command()
@file_argument
@identity_option
@key_option
@recipients_option
@recipients_inline_option
@passphrase_options
@private_prefix_option
def edit(file: pathlib.Path, private_prefix: str, **keys):
    """
    Edit a file's decrypted contents without writing plaintext to disk.

    Private fields are encrypted again when the editor is closed.
    """
    def mutate(tree: dict) -> None:
        old_text = format_output(tree, 'toml')
        new_text = click.edit(text=old_text, extension='.toml')

        if not new_text:
            raise PrivetException("File is empty")

        if new_text == old_text:
            raise PrivetException("No changes were made to the file")

        new_tree = parse_document(new_text.encode('utf-8'))
        tree.clear()
        tree.update(new_tree)

    options = Options(keys=key_sources(**keys), private_prefix=private_prefix)
    data, fields = transform(file.read_bytes(), options, mutate)
    file.write_bytes(data)
    click.echo(f"Saved {rel(file)} with {count_encrypted(fields)} encrypted fields")


@main.command(name='set')
@file_argument
@click.argument('path_text', metavar='PATH')
@click.argument('value')
@identity_option
@key_option
@recipients_option
@recipients_inline_option
@passphrase_options
@private_prefix_option
@click.option(
    '--string', 'as_string',
    default=False,
    is_flag=True,
    help="Store VALUE as text even if it looks like a number, boolean or JSON.")
def set_(file: pathlib.Path, path_text: str, value: str, private_prefix: str, as_string: bool, **keys):
    """
    Set a single value and re-encrypt the file in place.

    VALUE is read as JSON when it parses as JSON, otherwise as text.
    """
    path = parse_path(path_text)
    new_value = value if as_string else decode_leaf(value.encode('utf-8'))

    def mutate(tree: dict) -> None:
        if not set_value(tree, path, new_value):
            raise PrivetException(f"Cannot set {path_text}: its parent does not exist")

    options = Options(keys=key_sources(**keys), private_prefix=private_prefix)
    data, fields = transform(file.read_bytes(), options, mutate)
    file.write_bytes(data)
    click.echo(f"Set {field(path)} in {rel(file)}")
