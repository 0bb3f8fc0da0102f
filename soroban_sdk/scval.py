# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Typed value codec between Python values and Wire Values.

Encoding has two entry points:

- :func:`encode` with a hint performs a direct conversion for that type. A
  value of the wrong shape (a ``vec`` hint given a dict, a ``u32`` hint given
  a negative number) raises :class:`~soroban_sdk.errors.InvalidArgumentShapeError`.
- :func:`encode` without a hint inspects the value and picks a tag:

  ================================  ==========================================
  Python value                      Wire Value
  ================================  ==========================================
  ``None``                          void
  ``bool``                          bool
  ``int``                           i32 when it fits, else i64, i128, i256
  ``float`` with a fraction         i64, truncated toward zero
  56 character ``G...`` strkey      address, or string if it does not decode
  other ``str``                     string
  ``bytes``/``bytearray``           bytes
  ``list``/``tuple``                vec, elements encoded the same way
  ``dict`` or any ``Mapping``       map, keys and values encoded the same way
  :class:`WireValue`                unchanged
  :class:`Address`                  address
  ================================  ==========================================

  Anything else raises :class:`~soroban_sdk.errors.UnsupportedTypeError`.

Decoding is the inverse. :func:`decode` without a hint fails loudly on a tag
it does not know. :func:`decode` with a hint returns ``None`` when the value's
tag does not match the hint instead of raising, so callers can probe
optional or union shaped return values. Decoded maps are ``dict`` objects and
the entry order of the wire map is not guaranteed to survive.

Examples:
    Encoding contract arguments::

        from soroban_sdk import scval

        args = scval.encode_args(
            ["GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF", 1000],
            ["address", "i128"],
        )

    Probing a return value::

        scval.decode(result, "u32")   # None when the contract returned a string
"""

from __future__ import annotations

import math
import typing
import unittest
from collections.abc import Mapping
from enum import Enum
from typing import Any, List, Optional, Sequence, Union

from .address import Address, ParseAddressError
from .errors import (
    ArgumentCountMismatchError,
    InvalidArgumentShapeError,
    UnknownWireTagError,
    UnsupportedTypeError,
)
from .wire_value import ScType, WireValue, int_range, is_integer_tag

Hint = Union[str, ScType]


class Probe(Enum):
    """Coarse classification of a Python value for unhinted encoding."""

    NONE = "none"
    WIRE = "wire"
    ADDRESS = "address"
    BOOL = "bool"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BUFFER = "buffer"
    ARRAY = "array"
    MAP = "map"
    OTHER = "other"

    @staticmethod
    def of(value: Any) -> Probe:
        # bool is an int subclass and must be tested first.
        if value is None:
            return Probe.NONE
        if isinstance(value, WireValue):
            return Probe.WIRE
        if isinstance(value, Address):
            return Probe.ADDRESS
        if isinstance(value, bool):
            return Probe.BOOL
        if isinstance(value, int):
            return Probe.INTEGER
        if isinstance(value, float):
            return Probe.FLOAT
        if isinstance(value, str):
            return Probe.STRING
        if isinstance(value, (bytes, bytearray, memoryview)):
            return Probe.BUFFER
        if isinstance(value, (list, tuple)):
            return Probe.ARRAY
        if isinstance(value, Mapping):
            return Probe.MAP
        return Probe.OTHER


_WIDE_SIGNED = (WireValue.I32, WireValue.I64, WireValue.I128, WireValue.I256)


def encode(value: Any, hint: Optional[Hint] = None) -> WireValue:
    """Convert a Python value to a Wire Value, optionally guided by a hint."""
    if hint is not None:
        return encode_with_hint(value, hint)

    kind = Probe.of(value)
    if kind == Probe.NONE:
        return WireValue.void()
    if kind == Probe.WIRE:
        return value
    if kind == Probe.ADDRESS:
        return WireValue.address(value)
    if kind == Probe.BOOL:
        return WireValue.bool(value)
    if kind == Probe.INTEGER:
        return _encode_integer(value)
    if kind == Probe.FLOAT:
        if math.isnan(value) or math.isinf(value):
            raise UnsupportedTypeError(f"Cannot encode non-finite number {value}")
        if value.is_integer():
            return _encode_integer(int(value))
        return WireValue.i64(math.trunc(value))
    if kind == Probe.STRING:
        if _looks_like_account(value):
            try:
                return WireValue.address(Address.from_str(value))
            except ParseAddressError:
                pass
        return WireValue.string(value)
    if kind == Probe.BUFFER:
        return WireValue.bytes(value)
    if kind == Probe.ARRAY:
        return WireValue.vec([encode(item) for item in value])
    if kind == Probe.MAP:
        return WireValue.map([(encode(k), encode(v)) for k, v in value.items()])
    raise UnsupportedTypeError(
        f"Unsupported type for wire value conversion: {type(value).__name__}"
    )


def encode_with_hint(value: Any, hint: Hint) -> WireValue:
    sc_type = ScType.parse(hint)

    # None is void whatever the hint, so optional arguments can be omitted.
    if value is None or sc_type == ScType.VOID:
        return WireValue.void()
    if sc_type == ScType.OPTION:
        return encode(value)
    if sc_type == ScType.BOOL:
        return WireValue.bool(bool(value))
    tag = sc_type.wire_tag()
    if tag is not None and is_integer_tag(tag):
        return WireValue(tag, _coerce_integer(value, sc_type))
    if sc_type == ScType.F32 or sc_type == ScType.F64:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise InvalidArgumentShapeError(f"Expected number for {sc_type}, got {value!r}")
        try:
            number = float(value)
        except ValueError:
            raise InvalidArgumentShapeError(f"Expected number for {sc_type}, got {value!r}") from None
        return WireValue(tag, number)
    if sc_type == ScType.BYTES:
        return to_bytes(value) if isinstance(value, str) else WireValue.bytes(_as_buffer(value))
    if sc_type == ScType.STRING:
        return WireValue.string(value if isinstance(value, str) else str(value))
    if sc_type == ScType.SYMBOL:
        return to_symbol(value)
    if sc_type == ScType.ADDRESS:
        return to_address(value)
    if sc_type == ScType.VEC or sc_type == ScType.TUPLE:
        if not isinstance(value, (list, tuple)):
            raise InvalidArgumentShapeError(f"Expected list or tuple for {sc_type} type")
        return WireValue.vec([encode(item) for item in value])
    if sc_type == ScType.SET:
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise InvalidArgumentShapeError("Expected list or set for set type")
        return WireValue.vec([encode(item) for item in value])
    if sc_type == ScType.MAP:
        if not isinstance(value, Mapping):
            raise InvalidArgumentShapeError("Expected mapping for map type")
        return WireValue.map([(encode(k), encode(v)) for k, v in value.items()])
    raise UnsupportedTypeError(f"Unsupported type: {sc_type}")


def decode(value: WireValue, hint: Optional[Hint] = None) -> Any:
    """Convert a Wire Value to a Python value.

    Without a hint every tag maps to its natural Python type: integers to
    ``int``, bytes to ``bytes``, addresses to their strkey ``str``, vec to
    ``list`` and map to ``dict``. Map keys that decode to unhashable values
    (lists, dicts) are converted to tuples.

    With a hint, a value whose tag does not match returns ``None``.
    """
    if hint is not None:
        return decode_with_hint(value, hint)

    tag = value.tag
    if tag == WireValue.VOID:
        return None
    if tag == WireValue.ADDRESS:
        return str(value.value)
    if tag == WireValue.VEC:
        return [decode(item) for item in value.value]
    if tag == WireValue.MAP:
        return {_hashable(decode(k)): decode(v) for k, v in value.value}
    if tag in (
        WireValue.BOOL,
        WireValue.F32,
        WireValue.F64,
        WireValue.BYTES,
        WireValue.STRING,
        WireValue.SYMBOL,
    ) or is_integer_tag(tag):
        return value.value
    raise UnknownWireTagError(tag)


def decode_with_hint(value: WireValue, hint: Hint) -> Any:
    sc_type = ScType.parse(hint)

    if sc_type == ScType.VOID:
        return None
    if sc_type == ScType.OPTION:
        return None if value.tag == WireValue.VOID else decode(value)
    if sc_type == ScType.RESULT:
        raise UnsupportedTypeError(f"Unsupported type: {sc_type}")
    if value.tag != sc_type.wire_tag():
        return None
    if sc_type == ScType.TUPLE:
        return tuple(decode(item) for item in value.value)
    if sc_type == ScType.SET:
        return {_hashable(decode(item)) for item in value.value}
    if sc_type == ScType.MAP:
        result = {}
        for k, v in value.value:
            key = decode(k)
            result[key if isinstance(key, str) else str(key)] = decode(v)
        return result
    return decode(value)


def encode_args(
    values: Sequence[Any], hints: Optional[Sequence[Optional[Hint]]] = None
) -> List[WireValue]:
    """Encode an argument list, pairing each value with its hint when given.

    Raises:
        ArgumentCountMismatchError: If hints are given and their count differs
            from the number of values.
    """
    if hints is not None and len(hints) != len(values):
        raise ArgumentCountMismatchError(len(hints), len(values))
    if hints is None:
        return [encode(value) for value in values]
    return [encode(value, hint) for value, hint in zip(values, hints)]


def decode_result(value: WireValue, hint: Optional[Hint] = None) -> Any:
    return decode(value, hint)


def to_symbol(value: str) -> WireValue:
    if not isinstance(value, str):
        raise InvalidArgumentShapeError(f"Expected symbol string, got {value!r}")
    return WireValue.symbol(value)


def to_address(value: typing.Union[str, Address]) -> WireValue:
    if not isinstance(value, (str, Address)):
        raise InvalidArgumentShapeError(f"Expected address, got {value!r}")
    return WireValue.address(value)


def to_bytes(data: typing.Union[str, bytes, bytearray]) -> WireValue:
    """Build a bytes Wire Value from raw bytes or a hex string."""
    if isinstance(data, str):
        text = data[2:] if data.startswith("0x") else data
        try:
            return WireValue.bytes(bytes.fromhex(text))
        except ValueError:
            raise InvalidArgumentShapeError(f"Invalid hex string: {data!r}") from None
    return WireValue.bytes(_as_buffer(data))


def _encode_integer(value: int) -> WireValue:
    for tag in _WIDE_SIGNED:
        minimum, maximum = int_range(tag)
        if minimum <= value <= maximum:
            return WireValue(tag, value)
    raise InvalidArgumentShapeError(f"Integer {value} does not fit in i256")


def _coerce_integer(value: Any, sc_type: ScType) -> int:
    if isinstance(value, bool):
        raise InvalidArgumentShapeError(f"Expected integer for {sc_type}, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            pass
    raise InvalidArgumentShapeError(f"Expected integer for {sc_type}, got {value!r}")


def _as_buffer(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (list, tuple)):
        try:
            return bytes(value)
        except (TypeError, ValueError):
            pass
    raise InvalidArgumentShapeError(f"Expected bytes, got {value!r}")


def _looks_like_account(value: str) -> bool:
    return len(value) == Address.STRKEY_LENGTH and value.startswith(
        Address.ACCOUNT_SIGIL
    )


def _hashable(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_hashable(item) for item in value)
    if isinstance(value, dict):
        return tuple((k, _hashable(v)) for k, v in value.items())
    if isinstance(value, set):
        return frozenset(value)
    return value


class Test(unittest.TestCase):
    ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"

    def test_round_trip(self):
        values = [
            None,
            True,
            False,
            0,
            -1,
            2**31 - 1,
            -(2**40),
            2**100,
            "hello",
            "",
            b"\x00\xff",
            [],
            [1, [2, [3]]],
            {},
            {"a": 1, "b": [True, None]},
            self.ACCOUNT,
        ]
        for value in values:
            self.assertEqual(decode(encode(value)), value)

    def test_integer_widths(self):
        self.assertEqual(encode(7).tag, WireValue.I32)
        self.assertEqual(encode(2**31).tag, WireValue.I64)
        self.assertEqual(encode(-(2**63) - 1).tag, WireValue.I128)
        self.assertEqual(encode(2**200).tag, WireValue.I256)
        with self.assertRaises(InvalidArgumentShapeError):
            encode(2**300)

    def test_float(self):
        self.assertEqual(encode(2.0), WireValue.i32(2))
        self.assertEqual(encode(-2.75), WireValue.i64(-2))
        with self.assertRaises(UnsupportedTypeError):
            encode(float("nan"))

    def test_address_detection(self):
        self.assertEqual(encode(self.ACCOUNT).tag, WireValue.ADDRESS)
        wrong_sigil = "X" + self.ACCOUNT[1:]
        self.assertEqual(encode(wrong_sigil), WireValue.string(wrong_sigil))
        bad_checksum = self.ACCOUNT[:-1] + "A"
        self.assertEqual(encode(bad_checksum).tag, WireValue.STRING)

    def test_unsupported(self):
        with self.assertRaises(UnsupportedTypeError):
            encode(object())
        with self.assertRaises(UnsupportedTypeError):
            encode({1, 2})

    def test_hinted_encode(self):
        self.assertEqual(encode(5, "u64"), WireValue.u64(5))
        self.assertEqual(encode("1000", "i128"), WireValue.i128(1000))
        self.assertEqual(encode("transfer", "symbol"), WireValue.symbol("transfer"))
        self.assertEqual(encode("0x0aff", "bytes"), WireValue.bytes(b"\x0a\xff"))
        self.assertEqual(encode(None, "option"), WireValue.void())
        self.assertEqual(encode(3, "option"), WireValue.i32(3))
        self.assertEqual(encode({1, 2}, "set").tag, WireValue.VEC)
        self.assertEqual(encode((1, "a"), "tuple").tag, WireValue.VEC)
        self.assertEqual(encode(1.5, "f32"), WireValue.f32(1.5))

    def test_hinted_encode_shape_errors(self):
        with self.assertRaises(InvalidArgumentShapeError):
            encode({"a": 1}, "vec")
        with self.assertRaises(InvalidArgumentShapeError):
            encode([1], "map")
        with self.assertRaises(InvalidArgumentShapeError):
            encode("abc", "tuple")
        with self.assertRaises(InvalidArgumentShapeError):
            encode(-1, "u32")
        with self.assertRaises(InvalidArgumentShapeError):
            encode(2**64, "u64")
        with self.assertRaises(InvalidArgumentShapeError):
            encode(1.5, "i64")
        with self.assertRaises(InvalidArgumentShapeError):
            encode("not an address", "address")
        with self.assertRaises(UnsupportedTypeError):
            encode(1, "result")

    def test_decode_with_mismatched_hint(self):
        self.assertIsNone(decode(WireValue.string("x"), "u32"))
        self.assertIsNone(decode(WireValue.u32(1), "i128"))
        self.assertIsNone(decode(WireValue.vec([]), "map"))
        self.assertIsNone(decode(WireValue.void(), "option"))
        self.assertEqual(decode(WireValue.u32(9), "option"), 9)
        self.assertEqual(decode(WireValue.u32(9), "u32"), 9)

    def test_decode_with_container_hints(self):
        vec = encode([1, 2, 2])
        self.assertEqual(decode(vec, "tuple"), (1, 2, 2))
        self.assertEqual(decode(vec, "set"), {1, 2})
        mapping = WireValue.map([(WireValue.u32(1), WireValue.bool(True))])
        self.assertEqual(decode(mapping, "map"), {"1": True})

    def test_decode_unhashable_keys(self):
        mapping = WireValue.map(
            [(WireValue.vec([WireValue.u32(1)]), WireValue.string("x"))]
        )
        self.assertEqual(decode(mapping), {(1,): "x"})

    def test_encode_args(self):
        with self.assertRaises(ArgumentCountMismatchError):
            encode_args([1, 2], ["u32"])
        self.assertEqual(
            encode_args([1, 2], ["u32", "u64"]),
            [WireValue.u32(1), WireValue.u64(2)],
        )
        self.assertEqual(encode_args([1, "a"]), [WireValue.i32(1), WireValue.string("a")])

    def test_none_is_void_with_any_hint(self):
        self.assertEqual(encode(None, "u32"), WireValue.void())
        self.assertEqual(encode(None, "vec"), WireValue.void())
        self.assertEqual(encode(None, "address"), WireValue.void())
        self.assertEqual(
            encode_args([None, 7], ["u32", "u64"]),
            [WireValue.void(), WireValue.u64(7)],
        )

    def test_helpers(self):
        self.assertEqual(to_address(self.ACCOUNT).tag, WireValue.ADDRESS)
        self.assertEqual(to_bytes(b"\x01"), WireValue.bytes(b"\x01"))
        with self.assertRaises(InvalidArgumentShapeError):
            to_bytes("zz")
        self.assertEqual(decode_result(WireValue.i128(-4)), -4)


if __name__ == "__main__":
    unittest.main()
