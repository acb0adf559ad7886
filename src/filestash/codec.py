"""Value codec: literal payloads where safe, a pickle envelope everywhere else.

Payloads end up inside a JSON entry file, so a literal payload is any value
JSON carries without losing its type. Everything else is wrapped in a text
envelope of the form ``<tag>:<body>``. The envelope-encoded ``None`` is the
two characters ``N;``.

Decoding only inspects the shape of a string payload, so encoding must never
store a literal string of that shape.
"""

from __future__ import annotations

import base64
import binascii
import math
import pickle
import pickletools
from typing import Any

from filestash.errors import EnvelopeDecodeError, NonSerializableValueError

NULL_MARKER = "N;"
ENVELOPE_DELIMITER = ":"
PICKLE_TAG = "P"

# Memo lookups: the stream refers back to an object it already emitted.
_BACK_REFERENCE_OPCODES = frozenset({"GET", "BINGET", "LONG_BINGET"})
_MEMO_PUT_OPCODES = frozenset({"PUT", "BINPUT", "LONG_BINPUT"})
# Immutable values pickle memoizes too; sharing them is not aliasing.
_IMMUTABLE_OPCODES = frozenset(
    {
        "STRING",
        "BINSTRING",
        "SHORT_BINSTRING",
        "UNICODE",
        "BINUNICODE",
        "SHORT_BINUNICODE",
        "BINUNICODE8",
        "BINBYTES",
        "SHORT_BINBYTES",
        "BINBYTES8",
    }
)
_LITERAL_SCALARS = (bool, int, str)
_ARRAY_TYPES = (list, tuple, dict)


def looks_like_envelope(value: str) -> bool:
    return len(value) >= 3 and value[1] == ENVELOPE_DELIMITER


def encode(key: str, value: Any) -> Any:
    """Return the payload to store for ``value`` under ``key``."""
    value_type = type(value)
    if value is None:
        return NULL_MARKER
    if value_type is str:
        if value == NULL_MARKER or looks_like_envelope(value):
            return _wrap(_dumps(key, value))
        return value
    if value_type in (bool, int):
        return value
    if value_type is float:
        return value if math.isfinite(value) else _wrap(_dumps(key, value))
    if value_type in _ARRAY_TYPES:
        serialized = _dumps(key, value)
        restored = _loads(key, value, serialized)
        # Back-references first: self-referencing values would recurse below.
        try:
            literal = (
                not has_back_reference(serialized)
                and _is_native(value)
                and _strict_equal(restored, value)
            )
        except RecursionError:
            literal = False
        return value if literal else _wrap(serialized)
    return _wrap(_dumps(key, value))


def decode(payload: Any) -> Any:
    if payload == NULL_MARKER:
        return None
    if isinstance(payload, str) and looks_like_envelope(payload):
        return _unwrap(payload)
    return payload


def has_back_reference(serialized: bytes) -> bool:
    """True if the pickle refers back to a container it already emitted."""
    immutable: set[int] = set()
    memo_size = 0
    previous = None
    for opcode, arg, _pos in pickletools.genops(serialized):
        name = opcode.name
        if name == "FRAME":
            continue
        if name == "MEMOIZE":
            if previous in _IMMUTABLE_OPCODES:
                immutable.add(memo_size)
            memo_size += 1
        elif name in _MEMO_PUT_OPCODES:
            if previous in _IMMUTABLE_OPCODES:
                immutable.add(arg)
        elif name in _BACK_REFERENCE_OPCODES and arg not in immutable:
            return True
        previous = name
    return False


def _dumps(key: str, value: Any) -> bytes:
    try:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as exc:
        raise NonSerializableValueError(key, type(value).__name__) from exc


def _loads(key: str, value: Any, serialized: bytes) -> Any:
    try:
        return pickle.loads(serialized)
    except Exception as exc:  # noqa: BLE001
        raise NonSerializableValueError(key, type(value).__name__) from exc


def _wrap(serialized: bytes) -> str:
    body = base64.b64encode(serialized).decode("ascii")
    return f"{PICKLE_TAG}{ENVELOPE_DELIMITER}{body}"


def _unwrap(payload: str) -> Any:
    tag = payload[0]
    if tag != PICKLE_TAG:
        raise EnvelopeDecodeError(f"Unknown envelope tag {tag!r}")
    try:
        raw = base64.b64decode(payload[2:], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeDecodeError("Envelope body is not valid base64") from exc
    try:
        return pickle.loads(raw)
    except Exception as exc:  # noqa: BLE001
        raise EnvelopeDecodeError(f"Envelope could not be unpickled: {exc}") from exc


def _strict_equal(left: Any, right: Any) -> bool:
    if type(left) is not type(right):
        return False
    if isinstance(left, (list, tuple)):
        return len(left) == len(right) and all(
            _strict_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, dict):
        if len(left) != len(right):
            return False
        return all(
            _strict_equal(ka, kb) and _strict_equal(va, vb)
            for (ka, va), (kb, vb) in zip(left.items(), right.items())
        )
    if left is None or isinstance(left, (_LITERAL_SCALARS, float, bytes)):
        return left == right
    # An unpickled object is never the same object as the original.
    return False


def _is_native(value: Any) -> bool:
    value_type = type(value)
    if value is None or value_type in _LITERAL_SCALARS:
        return True
    if value_type is float:
        return math.isfinite(value)
    if value_type is list:
        return all(_is_native(item) for item in value)
    if value_type is dict:
        return all(type(k) is str and _is_native(v) for k, v in value.items())
    return False
