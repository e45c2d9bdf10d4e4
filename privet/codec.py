"""
Turning leaf values into bytes for sealing, and back.

Strings are sealed as their UTF-8 text. Everything else (numbers, booleans,
tables, arrays) goes through JSON first, so an encrypted table is sealed as a
single value. Decoding tries JSON before falling back to text.
"""

import json
import logging
import typing

log = logging.getLogger(__name__)

BEGIN_MARKER = '-----BEGIN AGE ENCRYPTED FILE-----'
END_MARKER = '-----END AGE ENCRYPTED FILE-----'


def is_armored(value: typing.Any) -> bool:
    """Recognise a value that already holds an armored age block."""
    if not isinstance(value, str):
        return False
    begin = value.find(BEGIN_MARKER)
    return begin != -1 and value.find(END_MARKER, begin + len(BEGIN_MARKER)) != -1


def _parses_as_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def encode_leaf(value: typing.Any) -> bytes:
    """
    Serialise a leaf for sealing.

    Raises TypeError or ValueError for values JSON can't represent.
    """
    if isinstance(value, str) and not _parses_as_json(value):
        return value.encode('utf-8')
    # Strings like "123" or "true" are quoted so they don't come back as numbers.
    return json.dumps(value).encode('utf-8')


def decode_leaf(data: bytes) -> typing.Any:
    """
    Turn opened bytes back into a leaf value.

    Raises UnicodeDecodeError for bytes that aren't UTF-8 text.
    """
    text = data.decode('utf-8')
    try:
        return json.loads(text)
    except ValueError:
        return text
