from dataclasses import dataclass
import enum
import math
import pickle
import threading

import pytest

from filestash import codec
from filestash.errors import EnvelopeDecodeError, NonSerializableValueError


@dataclass
class Point:
    x: int
    y: int


class Color(enum.IntEnum):
    RED = 1


def test_plain_scalars_are_stored_literally() -> None:
    for value in (42, -7, 1.5, True, False, "hello", ""):
        payload = codec.encode("k", value)
        assert payload == value
        assert type(payload) is type(value)
        assert codec.decode(payload) == value


def test_none_uses_null_marker() -> None:
    assert codec.encode("k", None) == "N;"
    assert codec.decode("N;") is None


@pytest.mark.parametrize("value", ["N;", "a:b", "s:5:\"hello\";", "x::", "P:Zm9v"])
def test_envelope_shaped_strings_are_wrapped(value: str) -> None:
    payload = codec.encode("k", value)
    assert payload != value
    assert payload.startswith("P:")
    assert codec.decode(payload) == value


def test_short_strings_with_delimiter_stay_literal() -> None:
    assert codec.encode("k", "x:") == "x:"
    assert codec.decode("x:") == "x:"
    assert codec.encode("k", "ab:cd") == "ab:cd"


def test_plain_list_and_dict_are_literal() -> None:
    assert codec.encode("k", [1, 2, 3]) == [1, 2, 3]
    value = {"name": "film", "year": 1999, "tags": ["x", "y"], "score": None}
    payload = codec.encode("k", value)
    assert payload is value
    assert codec.decode(payload) == value


def test_tuples_and_non_string_keys_are_enveloped() -> None:
    for value in ((1, 2), {1: "a"}, [("nested", 1)]):
        payload = codec.encode("k", value)
        assert isinstance(payload, str) and payload.startswith("P:")
        assert codec.decode(payload) == value


def test_shared_references_are_enveloped_and_preserved() -> None:
    inner = [1, 2]
    payload = codec.encode("k", [inner, inner])
    assert isinstance(payload, str)
    restored = codec.decode(payload)
    assert restored == [[1, 2], [1, 2]]
    assert restored[0] is restored[1]


def test_self_referencing_list_is_enveloped() -> None:
    value: list = [1]
    value.append(value)
    restored = codec.decode(codec.encode("k", value))
    assert restored[1] is restored


def test_objects_are_enveloped() -> None:
    payload = codec.encode("k", Point(1, 2))
    assert codec.decode(payload) == Point(1, 2)

    payload = codec.encode("k", [Point(3, 4)])
    assert isinstance(payload, str)
    assert codec.decode(payload) == [Point(3, 4)]


def test_scalar_subclasses_keep_their_type() -> None:
    restored = codec.decode(codec.encode("k", Color.RED))
    assert restored is Color.RED


def test_non_finite_float_is_enveloped() -> None:
    payload = codec.encode("k", float("nan"))
    assert isinstance(payload, str)
    assert math.isnan(codec.decode(payload))
    assert codec.decode(codec.encode("k", float("inf"))) == float("inf")


def test_bytes_round_trip() -> None:
    payload = codec.encode("k", b"\x00raw")
    assert isinstance(payload, str)
    assert codec.decode(payload) == b"\x00raw"


def test_unpicklable_value_raises_with_key_and_type() -> None:
    lock = threading.Lock()
    with pytest.raises(NonSerializableValueError) as excinfo:
        codec.encode("handle", lock)
    assert excinfo.value.key == "handle"
    assert excinfo.value.type_name == type(lock).__name__


def test_decode_passes_through_non_envelope_payloads() -> None:
    assert codec.decode([1, "N;"]) == [1, "N;"]
    assert codec.decode({"a": "b:c"}) == {"a": "b:c"}
    assert codec.decode(3) == 3


def test_decode_rejects_bad_envelopes() -> None:
    with pytest.raises(EnvelopeDecodeError):
        codec.decode("X:abc")
    with pytest.raises(EnvelopeDecodeError):
        codec.decode("P:not base64!")
    with pytest.raises(EnvelopeDecodeError):
        codec.decode("P:Zm9vYmFy")


def test_back_reference_detection() -> None:
    assert codec.has_back_reference(pickle.dumps([1, 2, 3])) is False
    shared = {"a": 1}
    assert codec.has_back_reference(pickle.dumps([shared, shared])) is True


def test_repeated_strings_stay_literal() -> None:
    word = "x"
    value = [word, word, {"name": word}]
    assert codec.encode("k", value) is value
    assert codec.has_back_reference(pickle.dumps([word, word])) is False


def test_deeply_nested_list_is_non_serializable() -> None:
    value: list = []
    current = value
    for _ in range(200_000):
        child: list = []
        current.append(child)
        current = child

    with pytest.raises(NonSerializableValueError) as excinfo:
        codec.encode("deep", value)
    assert excinfo.value.type_name == "list"


def test_failed_round_trip_load_is_non_serializable(monkeypatch) -> None:
    def broken_loads(*_args, **_kwargs):
        raise ValueError("cannot rebuild")

    monkeypatch.setattr("filestash.codec.pickle.loads", broken_loads)

    with pytest.raises(NonSerializableValueError):
        codec.encode("k", [1, 2])
