import pathlib
import typing

import attr
import click.testing
import pyrage
import pytest

import privet.age
import privet.cli


@attr.s(frozen=True)
class KeyPair:
    identity: str = attr.ib()
    recipient: str = attr.ib()

    @classmethod
    def generate(cls) -> 'KeyPair':
        identity = pyrage.x25519.Identity.generate()
        return cls(identity=str(identity), recipient=str(identity.to_public()))

    def identities(self) -> typing.List[privet.age.Identity]:
        return [privet.age.parse_identity(self.identity)]

    def recipients(self) -> typing.List[privet.age.Recipient]:
        return [privet.age.parse_recipient(self.recipient)]


@pytest.fixture()
def alice() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture()
def mallory() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture()
def identity_file(tmp_path: pathlib.Path, alice: KeyPair) -> pathlib.Path:
    path = tmp_path / 'key.txt'
    path.write_text(f"# public key: {alice.recipient}\n{alice.identity}\n")
    return path


@pytest.fixture()
def recipients_file(tmp_path: pathlib.Path, alice: KeyPair) -> pathlib.Path:
    path = tmp_path / 'recipients.txt'
    path.write_text(f"# alice\n\n{alice.recipient}\n")
    return path


@attr.s(frozen=True)
class ExampleDocument:
    name: str = attr.ib()
    text: str = attr.ib()

    def __str__(self):
        return self.name


SCENARIO = """\
username = "alice"
private_password = "secret123"

[database]
host = "localhost"
private_connection_string = "postgresql://x"
"""


@pytest.fixture(params=[
    ExampleDocument('flat', SCENARIO),
    ExampleDocument('typed', """\
port = 5432
private_count = 42
private_ratio = 0.5
private_enabled = true
private_hosts = ["a", "b"]

[private_table]
user = "admin"
"""),
    ExampleDocument('arrays', """\
[[servers]]
name = "one"
private_token = "token-one"

[[servers]]
name = "two"
private_token = "123"
"""),
], ids=str)
def document(request) -> ExampleDocument:
    return request.param


@pytest.fixture()
def config_file(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / 'config.toml'
    path.write_text(SCENARIO)
    return path


@pytest.fixture()
def invoke():
    def invoke_func(arguments: typing.Sequence[str], exit_code: int = 0, **kwargs) -> click.testing.Result:
        arguments = [str(arg) for arg in arguments]
        runner = click.testing.CliRunner()
        result = runner.invoke(privet.cli.main, arguments, **kwargs)
        if result.exit_code != exit_code:
            message = f"Command privet {' '.join(arguments)} exited with {result.exit_code}:\n{result.output}"
            raise Exception(message) from result.exception
        return result

    return invoke_func
