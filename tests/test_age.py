import base64

import pytest

import privet.age
from privet.age import (
    ArmorError, DecryptionError, EncryptionError, KeySources, dearmor, header_stanzas,
    open_armored, seal)
from privet.codec import is_armored
from privet.utils import KeyMaterialError

PASSPHRASE = 'test-passphrase-never-use-in-production'


def test_seal_and_open(alice):
    armored = seal(b'hello world', alice.recipients())
    assert is_armored(armored)
    assert 'hello world' not in armored
    assert open_armored(armored, alice.identities()) == b'hello world'


def test_seal_is_randomised(alice):
    assert seal(b'value', alice.recipients()) != seal(b'value', alice.recipients())


def test_seal_requires_recipients():
    with pytest.raises(EncryptionError):
        seal(b'value', [])


def test_seal_to_several_recipients(alice, mallory):
    armored = seal(b'shared', alice.recipients() + mallory.recipients())
    assert open_armored(armored, alice.identities()) == b'shared'
    assert open_armored(armored, mallory.identities()) == b'shared'
    assert header_stanzas(armored).count('X25519') == 2


def test_open_with_wrong_identity(alice, mallory):
    armored = seal(b'value', alice.recipients())
    with pytest.raises(DecryptionError):
        open_armored(armored, mallory.identities())


def test_open_requires_identities(alice):
    with pytest.raises(DecryptionError):
        open_armored(seal(b'value', alice.recipients()), [])


def test_passphrase():
    armored = seal(b'value', [privet.age.passphrase_recipient(PASSPHRASE)])
    assert 'scrypt' in header_stanzas(armored)
    assert open_armored(armored, [privet.age.passphrase_identity(PASSPHRASE)]) == b'value'

    with pytest.raises(DecryptionError):
        open_armored(armored, [privet.age.passphrase_identity('wrong')])


def test_passphrase_must_be_alone(alice):
    recipients = alice.recipients() + [privet.age.passphrase_recipient(PASSPHRASE)]
    with pytest.raises(EncryptionError):
        seal(b'value', recipients)


def test_seal_output_is_armored(alice):
    armored = seal(bytes(range(256)), alice.recipients())
    lines = armored.splitlines()
    assert lines[0] == privet.age.BEGIN_MARKER
    assert lines[-1] == privet.age.END_MARKER
    assert all(len(line) == 64 for line in lines[1:-2])
    assert dearmor(armored).startswith(b'age-encryption.org/v1\n')


def test_open_tolerates_surrounding_whitespace(alice):
    armored = seal(b'value', alice.recipients())
    assert open_armored(f"\n  {armored.strip()}  \n", alice.identities()) == b'value'


def test_open_tries_passphrases_after_keys(alice):
    armored = seal(b'value', [privet.age.passphrase_recipient(PASSPHRASE)])
    identities = alice.identities() + [privet.age.passphrase_identity(PASSPHRASE)]
    assert open_armored(armored, identities) == b'value'


def test_open_malformed_armor(alice):
    corrupt = f"{privet.age.BEGIN_MARKER}\nnot base64!\n{privet.age.END_MARKER}\n"
    with pytest.raises(DecryptionError):
        open_armored(corrupt, alice.identities())


@pytest.mark.parametrize('armored', [
    'no markers at all',
    f"{privet.age.BEGIN_MARKER}\n!!!!\n{privet.age.END_MARKER}",
    f"{privet.age.BEGIN_MARKER}\n{'A' * 65}\n{privet.age.END_MARKER}",
    f"{privet.age.BEGIN_MARKER}\nAAAA\nAAAA\n{privet.age.END_MARKER}",
])
def test_dearmor_rejects_malformed(armored):
    with pytest.raises(ArmorError):
        dearmor(armored)


def test_header_stanzas_requires_age_header():
    body = base64.b64encode(b'not an age file').decode('ascii')
    with pytest.raises(ArmorError):
        header_stanzas(f"{privet.age.BEGIN_MARKER}\n{body}\n{privet.age.END_MARKER}\n")


def test_parse_rejects_malformed_keys():
    with pytest.raises(KeyMaterialError):
        privet.age.parse_identity('AGE-SECRET-KEY-1NOTAKEY')
    with pytest.raises(KeyMaterialError):
        privet.age.parse_identity('something else')
    with pytest.raises(KeyMaterialError):
        privet.age.parse_recipient('age1notakey')
    with pytest.raises(KeyMaterialError):
        privet.age.parse_recipient('pgp-key')


def test_recipient_metadata(alice):
    recipients = alice.recipients()
    assert privet.age.recipient_labels(recipients) == [alice.recipient]
    assert not privet.age.has_passphrase(recipients)
    assert privet.age.has_passphrase([privet.age.passphrase_recipient(PASSPHRASE)])


def test_key_sources_from_files(alice, mallory, identity_file, recipients_file):
    keys = KeySources(
        identity_files=[identity_file],
        identities=[mallory.identity],
        recipient_files=[recipients_file],
        recipients=[mallory.recipient])

    assert [i.label for i in keys.load_identities()] == [alice.recipient, mallory.recipient]
    assert [r.label for r in keys.load_recipients()] == [alice.recipient, mallory.recipient]


def test_key_sources_passphrase():
    keys = KeySources(passphrase_provider=lambda: PASSPHRASE)
    assert [i.kind for i in keys.load_identities()] == ['scrypt']
    assert [r.label for r in keys.load_recipients()] == ['passphrase']


def test_key_sources_passphrase_with_recipients(alice):
    keys = KeySources(recipients=[alice.recipient], passphrase_provider=lambda: PASSPHRASE)
    with pytest.raises(KeyMaterialError):
        keys.load_recipients()


def test_key_sources_empty_passphrase():
    with pytest.raises(KeyMaterialError):
        KeySources(passphrase_provider=lambda: '').load_identities()


def test_key_sources_bad_file(tmp_path):
    path = tmp_path / 'broken.txt'
    path.write_text('AGE-SECRET-KEY-1BROKEN\n')

    with pytest.raises(KeyMaterialError, match='broken.txt'):
        KeySources(identity_files=[path]).load_identities()

    with pytest.raises(KeyMaterialError, match='missing.txt'):
        KeySources(recipient_files=[tmp_path / 'missing.txt']).load_recipients()
