"""Parsing and rendering of Distinguished Name strings.

The accepted format is the loose one used by Windows for certificate subjects and
for publisher names configured by administrators, e.g.::

    CN="Microsoft Corporation",O="Microsoft Corporation",L=Redmond,S=Washington,C=US

Attributes are ``key=value`` pairs separated by ``,``, ``;`` or ``+``. Values may be
quoted, in which case separators inside the quotes are literal, and unquoted values
may contain escapes of the form ``\\xHH``, where ``HH`` is a hexadecimal byte.

Only a single value is kept per key: when a key is repeated, the last occurrence
wins.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Mapping

from signmatch._typing import DnMap

logger = logging.getLogger(__name__)

SEPARATORS = (",", ";", "+")
_KEY_SPECIAL_CHARACTERS = frozenset(',;+="\\ ')


def parse_dn(raw: str) -> DnMap:
    """Parses a Distinguished Name into a mapping of attribute keys to values.

    This never raises: malformed input results in a partial, or empty, mapping.
    Text that is not part of a ``key=value`` pair is discarded, as are pairs with an
    empty key.

    Spaces outside quotes are dropped at the start of a token, and before the
    boundary that ends the token (a separator, the ``=`` that ends a key or a ``+``
    that ends a value). Spaces inside a value are retained.

    :param raw: The Distinguished Name to parse
    :return: A dictionary of attribute keys to values
    """

    seq = raw.strip()
    length = len(seq)
    result: DnMap = {}

    key: str | None = None
    token = ""
    quoted = False

    position = 0
    while position < length:
        ch = seq[position]
        position += 1

        if quoted:
            if ch == '"':
                quoted = False
            else:
                token += ch
            continue

        if ch == '"':
            quoted = True
            continue

        if ch == "\\":
            if position < length:
                hex_digits = seq[position + 1 : position + 3]
                if len(hex_digits) == 2 and all(
                    c in string.hexdigits for c in hex_digits
                ):
                    token += chr(int(hex_digits, 16))
                    position += 3
                else:
                    token += "\\" + seq[position]
                    position += 1
            continue

        if key is None and ch == "=":
            key, token = token, ""
            continue

        if ch in SEPARATORS:
            if key is not None:
                _store(result, key, token)
            elif token:
                logger.debug(f"Discarding text {token!r} without an attribute key")
            key, token = None, ""
            continue

        if ch == " ":
            if not token:
                continue

            lookahead = position
            while lookahead < length and seq[lookahead] == " ":
                lookahead += 1
            next_char = seq[lookahead] if lookahead < length else ""

            if (
                next_char in (",", ";")
                or (key is None and next_char == "=")
                or (key is not None and next_char == "+")
            ):
                continue

        token += ch

    if key is not None:
        _store(result, key, token)

    return result


def _store(result: DnMap, key: str, value: str) -> None:
    if not key:
        logger.debug(f"Discarding value {value!r} without an attribute key")
        return
    result[key] = value


def _quote(value: str) -> str:
    # A quote can't appear inside a quoted span, so it is escaped between two spans
    return '"' + value.replace('"', '"\\x22"') + '"'


def render_dn(mapping: Mapping[str, str]) -> str:
    """Renders a mapping of attribute keys to values into the flattened form
    ``KEY="value",KEY="value",``. This is the inverse of :func:`parse_dn`: parsing
    the result yields the original mapping.

    :param mapping: The attributes to render, rendered in iteration order
    """

    result = []
    for key, value in mapping.items():
        if any(c in _KEY_SPECIAL_CHARACTERS for c in key):
            key = _quote(key)
        result.append(f"{key}={_quote(value)},")
    return "".join(result)
