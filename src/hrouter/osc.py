"""OSC message encoding and decoding.

Thin layer over python-osc.  The router only ever deals with single
messages carrying one argument, so this module flattens the library's
types into ``(address, value)`` pairs.

Example:
    >>> from hrouter.osc import encode_message, decode_message
    >>> raw = encode_message("/avatar/parameters/motor", 42)
    >>> decode_message(raw)
    ('/avatar/parameters/motor', 42)
"""

import math

from pythonosc.osc_bundle import OscBundle
from pythonosc.osc_message import OscMessage, ParseError
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder


def encode_message(address: str, value: int) -> bytes:
    """Build an OSC message with a single int32 argument.

    Raises:
        ValueError: If *address* is not a valid OSC address or *value*
            does not fit in an int32.
    """
    builder = OscMessageBuilder(address=address)
    builder.add_arg(int(value), OscMessageBuilder.ARG_TYPE_INT)
    try:
        return builder.build().dgram
    except BuildError as exc:
        raise ValueError("cannot encode %s: %s" % (address, exc)) from exc


def decode_message(dgram: bytes) -> tuple[str, object] | None:
    """Decode a datagram into ``(address, first_argument)``.

    Bundles, unparseable datagrams (including non-UTF-8 addresses or
    strings) and argument-less messages all return None; the router
    ignores them.  The first argument is returned untouched, numeric or
    not.
    """
    if not dgram:
        return None
    if OscBundle.dgram_is_bundle(dgram):
        return None
    try:
        msg = OscMessage(dgram)
    except (ParseError, UnicodeDecodeError):
        return None

    params = msg.params
    if not params:
        return None
    return msg.address, params[0]


def as_number(value: object) -> float | None:
    """Return *value* as a float if it is a finite OSC int or float, else None.

    OSC booleans decode to Python bools; they are not numbers here.
    NaN and infinities are malformed samples.
    """
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number
