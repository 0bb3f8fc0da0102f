# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Wire Values: the tagged union exchanged with Soroban contracts.

Every argument sent to a contract, every return value, every storage key and
every event topic is a Wire Value. The tag alone decides the payload shape:

=========  ===================================================
Tag        Payload
=========  ===================================================
void       ``None``
bool       ``bool``
u32..u256  ``int`` within the unsigned width
i32..i256  ``int`` within the signed width
f32, f64   ``float``
bytes      ``bytes``
string     ``str``
symbol     ``str`` of at most 32 characters from ``[a-zA-Z0-9_]``
address    :class:`~soroban_sdk.address.Address`
vec        ``list`` of Wire Values
map        ``list`` of ``(key, value)`` Wire Value pairs
=========  ===================================================

Map keys are Wire Values themselves, so any value (including a vec) can be a
key. The payload is checked when a Wire Value is built; a value that does not
fit its tag is rejected with :class:`~soroban_sdk.errors.InvalidArgumentShapeError`.

:class:`ScType` holds the type labels callers use as hints. It is the set of
wire tags plus ``option``, ``result``, ``set`` and ``tuple``.

On the network Wire Values travel as ``SCVal`` XDR; see
:mod:`soroban_sdk.xdr_codec`.

Examples:
    Building values directly::

        from soroban_sdk.wire_value import WireValue

        amount = WireValue.i128(-5)
        args = WireValue.vec([WireValue.symbol("transfer"), amount])

    Canonical bytes, used for equality and hashing::

        data = args.to_bytes()
        WireValue.from_bytes(data) == args  # True
"""

from __future__ import annotations

import re
import typing
import unittest
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from . import bcs
from .address import Address, ParseAddressError
from .bcs import Deserializable, Deserializer, Serializable, Serializer
from .errors import InvalidArgumentShapeError, UnknownWireTagError, UnsupportedTypeError

SYMBOL_MAX_LENGTH = 32
SYMBOL_PATTERN = re.compile(r"^[a-zA-Z0-9_]*$")


class ScType(Enum):
    """Type labels used as codec hints."""

    VOID = "void"
    BOOL = "bool"
    U32 = "u32"
    I32 = "i32"
    U64 = "u64"
    I64 = "i64"
    U128 = "u128"
    I128 = "i128"
    U256 = "u256"
    I256 = "i256"
    F32 = "f32"
    F64 = "f64"
    BYTES = "bytes"
    STRING = "string"
    SYMBOL = "symbol"
    ADDRESS = "address"
    VEC = "vec"
    MAP = "map"
    OPTION = "option"
    RESULT = "result"
    SET = "set"
    TUPLE = "tuple"

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def parse(value: typing.Union[str, ScType]) -> ScType:
        """Resolve a hint from its label.

        Labels are case-insensitive and generic forms resolve to their outer
        type, so ``"Vec<u32>"`` is ``ScType.VEC`` and ``"Option<Address>"`` is
        ``ScType.OPTION``. ``"str"`` and ``"int"`` are accepted as aliases for
        ``string`` and ``i64``.

        Raises:
            UnsupportedTypeError: If the label is not a known type.
        """
        if isinstance(value, ScType):
            return value
        label = value.strip().lower()
        bracket = label.find("<")
        if bracket >= 0 and label.endswith(">"):
            label = label[:bracket].strip()
        label = _ALIASES.get(label, label)
        try:
            return ScType(label)
        except ValueError:
            raise UnsupportedTypeError(f"Unsupported type: {value}") from None

    @staticmethod
    def from_tag(tag: int) -> ScType:
        if tag not in _TAG_TYPES:
            raise UnknownWireTagError(tag)
        return _TAG_TYPES[tag]

    def wire_tag(self) -> Optional[int]:
        """The wire tag a value with this hint encodes to.

        ``set`` and ``tuple`` travel as ``vec``. ``option`` and ``result`` have
        no single tag and return None.
        """
        return _TYPE_TAGS.get(self)


_ALIASES = {"str": "string", "int": "i64", "integer": "i64", "boolean": "bool"}


class WireValue(Deserializable, Serializable):
    """A tagged Wire Value.

    Attributes:
        VOID .. MAP: Tag discriminators, also used as the canonical variant
        tag: The discriminator of this value
        value: The payload, shaped as described in the module docstring
    """

    VOID: int = 0
    BOOL: int = 1
    U32: int = 2
    I32: int = 3
    U64: int = 4
    I64: int = 5
    U128: int = 6
    I128: int = 7
    U256: int = 8
    I256: int = 9
    F32: int = 10
    F64: int = 11
    BYTES: int = 12
    STRING: int = 13
    SYMBOL: int = 14
    ADDRESS: int = 15
    VEC: int = 16
    MAP: int = 17

    tag: int
    value: Any

    def __init__(self, tag: int, value: Any = None):
        if tag not in _TAG_TYPES:
            raise UnknownWireTagError(tag)
        self.tag = tag
        self.value = _check_payload(tag, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WireValue):
            return NotImplemented
        return self.tag == other.tag and self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __str__(self) -> str:
        if self.tag == WireValue.VOID:
            return "void"
        if self.tag == WireValue.VEC:
            return "vec[" + ", ".join(str(item) for item in self.value) + "]"
        if self.tag == WireValue.MAP:
            entries = ", ".join(f"{key}: {value}" for key, value in self.value)
            return "map{" + entries + "}"
        if self.tag == WireValue.BYTES:
            return f"bytes(0x{self.value.hex()})"
        return f"{self.type()}({self.value})"

    def __repr__(self) -> str:
        return self.__str__()

    def type(self) -> ScType:
        return _TAG_TYPES[self.tag]

    # Constructors, one per tag.

    @staticmethod
    def void() -> WireValue:
        return WireValue(WireValue.VOID)

    @staticmethod
    def bool(value: bool) -> WireValue:
        return WireValue(WireValue.BOOL, value)

    @staticmethod
    def u32(value: int) -> WireValue:
        return WireValue(WireValue.U32, value)

    @staticmethod
    def i32(value: int) -> WireValue:
        return WireValue(WireValue.I32, value)

    @staticmethod
    def u64(value: int) -> WireValue:
        return WireValue(WireValue.U64, value)

    @staticmethod
    def i64(value: int) -> WireValue:
        return WireValue(WireValue.I64, value)

    @staticmethod
    def u128(value: int) -> WireValue:
        return WireValue(WireValue.U128, value)

    @staticmethod
    def i128(value: int) -> WireValue:
        return WireValue(WireValue.I128, value)

    @staticmethod
    def u256(value: int) -> WireValue:
        return WireValue(WireValue.U256, value)

    @staticmethod
    def i256(value: int) -> WireValue:
        return WireValue(WireValue.I256, value)

    @staticmethod
    def f32(value: float) -> WireValue:
        return WireValue(WireValue.F32, value)

    @staticmethod
    def f64(value: float) -> WireValue:
        return WireValue(WireValue.F64, value)

    @staticmethod
    def bytes(value: typing.Union[bytes, bytearray, memoryview]) -> WireValue:
        return WireValue(WireValue.BYTES, value)

    @staticmethod
    def string(value: str) -> WireValue:
        return WireValue(WireValue.STRING, value)

    @staticmethod
    def symbol(value: str) -> WireValue:
        return WireValue(WireValue.SYMBOL, value)

    @staticmethod
    def address(value: typing.Union[str, Address]) -> WireValue:
        return WireValue(WireValue.ADDRESS, value)

    @staticmethod
    def vec(values: typing.Iterable[WireValue]) -> WireValue:
        return WireValue(WireValue.VEC, list(values))

    @staticmethod
    def map(entries: typing.Iterable[Tuple[WireValue, WireValue]]) -> WireValue:
        return WireValue(WireValue.MAP, list(entries))

    # Canonical binary form.

    @staticmethod
    def deserialize(deserializer: Deserializer) -> WireValue:
        tag = deserializer.uleb128()
        if tag == WireValue.VOID:
            return WireValue(tag)
        elif tag == WireValue.BOOL:
            return WireValue(tag, deserializer.bool())
        elif tag in _INT_CODECS:
            return WireValue(tag, _INT_CODECS[tag][1](deserializer))
        elif tag == WireValue.F32:
            return WireValue(tag, deserializer.f32())
        elif tag == WireValue.F64:
            return WireValue(tag, deserializer.f64())
        elif tag == WireValue.BYTES:
            return WireValue(tag, deserializer.to_bytes())
        elif tag == WireValue.STRING or tag == WireValue.SYMBOL:
            return WireValue(tag, deserializer.str())
        elif tag == WireValue.ADDRESS:
            return WireValue(tag, Address.deserialize(deserializer))
        elif tag == WireValue.VEC:
            return WireValue(tag, deserializer.sequence(WireValue.deserialize))
        elif tag == WireValue.MAP:
            return WireValue(
                tag, deserializer.entries(WireValue.deserialize, WireValue.deserialize)
            )
        raise UnknownWireTagError(tag)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.tag)
        if self.tag == WireValue.VOID:
            return
        elif self.tag == WireValue.BOOL:
            serializer.bool(self.value)
        elif self.tag in _INT_CODECS:
            _INT_CODECS[self.tag][0](serializer, self.value)
        elif self.tag == WireValue.F32:
            serializer.f32(self.value)
        elif self.tag == WireValue.F64:
            serializer.f64(self.value)
        elif self.tag == WireValue.BYTES:
            serializer.to_bytes(self.value)
        elif self.tag == WireValue.STRING or self.tag == WireValue.SYMBOL:
            serializer.str(self.value)
        elif self.tag == WireValue.ADDRESS:
            serializer.struct(self.value)
        elif self.tag == WireValue.VEC:
            serializer.sequence(self.value, Serializer.struct)
        elif self.tag == WireValue.MAP:
            serializer.entries(self.value, Serializer.struct, Serializer.struct)


_TAG_TYPES: Dict[int, ScType] = {
    WireValue.VOID: ScType.VOID,
    WireValue.BOOL: ScType.BOOL,
    WireValue.U32: ScType.U32,
    WireValue.I32: ScType.I32,
    WireValue.U64: ScType.U64,
    WireValue.I64: ScType.I64,
    WireValue.U128: ScType.U128,
    WireValue.I128: ScType.I128,
    WireValue.U256: ScType.U256,
    WireValue.I256: ScType.I256,
    WireValue.F32: ScType.F32,
    WireValue.F64: ScType.F64,
    WireValue.BYTES: ScType.BYTES,
    WireValue.STRING: ScType.STRING,
    WireValue.SYMBOL: ScType.SYMBOL,
    WireValue.ADDRESS: ScType.ADDRESS,
    WireValue.VEC: ScType.VEC,
    WireValue.MAP: ScType.MAP,
}

_TYPE_TAGS: Dict[ScType, int] = {sc_type: tag for tag, sc_type in _TAG_TYPES.items()}
_TYPE_TAGS[ScType.SET] = WireValue.VEC
_TYPE_TAGS[ScType.TUPLE] = WireValue.VEC

# tag -> (writer, reader, minimum, maximum)
_INT_CODECS: Dict[int, Tuple[Any, Any, int, int]] = {
    WireValue.U32: (Serializer.u32, Deserializer.u32, 0, bcs.MAX_U32),
    WireValue.I32: (Serializer.i32, Deserializer.i32, bcs.MIN_I32, bcs.MAX_I32),
    WireValue.U64: (Serializer.u64, Deserializer.u64, 0, bcs.MAX_U64),
    WireValue.I64: (Serializer.i64, Deserializer.i64, bcs.MIN_I64, bcs.MAX_I64),
    WireValue.U128: (Serializer.u128, Deserializer.u128, 0, bcs.MAX_U128),
    WireValue.I128: (Serializer.i128, Deserializer.i128, bcs.MIN_I128, bcs.MAX_I128),
    WireValue.U256: (Serializer.u256, Deserializer.u256, 0, bcs.MAX_U256),
    WireValue.I256: (Serializer.i256, Deserializer.i256, bcs.MIN_I256, bcs.MAX_I256),
}


def int_range(tag: int) -> Tuple[int, int]:
    """Inclusive bounds of an integer tag."""
    _, _, minimum, maximum = _INT_CODECS[tag]
    return minimum, maximum


def is_integer_tag(tag: int) -> bool:
    return tag in _INT_CODECS


def _check_payload(tag: int, value: Any) -> Any:
    name = _TAG_TYPES[tag]
    if tag == WireValue.VOID:
        if value is not None:
            raise InvalidArgumentShapeError(f"void carries no payload, got {value!r}")
        return None
    if tag == WireValue.BOOL:
        if not isinstance(value, bool):
            raise InvalidArgumentShapeError(f"Expected bool, got {value!r}")
        return value
    if tag in _INT_CODECS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgumentShapeError(f"Expected integer for {name}, got {value!r}")
        minimum, maximum = int_range(tag)
        if value < minimum or value > maximum:
            raise InvalidArgumentShapeError(f"Value {value} out of range for {name}")
        return value
    if tag == WireValue.F32 or tag == WireValue.F64:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidArgumentShapeError(f"Expected float for {name}, got {value!r}")
        return float(value)
    if tag == WireValue.BYTES:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise InvalidArgumentShapeError(f"Expected bytes, got {value!r}")
        return bytes(value)
    if tag == WireValue.STRING:
        if not isinstance(value, str):
            raise InvalidArgumentShapeError(f"Expected string, got {value!r}")
        return value
    if tag == WireValue.SYMBOL:
        if not isinstance(value, str):
            raise InvalidArgumentShapeError(f"Expected symbol, got {value!r}")
        if len(value) > SYMBOL_MAX_LENGTH or not SYMBOL_PATTERN.match(value):
            raise InvalidArgumentShapeError(f"Invalid symbol: {value!r}")
        return value
    if tag == WireValue.ADDRESS:
        if isinstance(value, Address):
            return value
        if isinstance(value, str):
            try:
                return Address.from_str(value)
            except ParseAddressError as e:
                raise InvalidArgumentShapeError(str(e)) from e
        raise InvalidArgumentShapeError(f"Expected address, got {value!r}")
    if tag == WireValue.VEC:
        items = list(value) if isinstance(value, (list, tuple)) else None
        if items is None or not all(isinstance(item, WireValue) for item in items):
            raise InvalidArgumentShapeError("vec payload must be a list of WireValue")
        return items
    if tag == WireValue.MAP:
        if not isinstance(value, (list, tuple)):
            raise InvalidArgumentShapeError("map payload must be a list of pairs")
        entries: List[Tuple[WireValue, WireValue]] = []
        for entry in value:
            if (
                not isinstance(entry, tuple)
                or len(entry) != 2
                or not isinstance(entry[0], WireValue)
                or not isinstance(entry[1], WireValue)
            ):
                raise InvalidArgumentShapeError(
                    "map entries must be (WireValue, WireValue) pairs"
                )
            entries.append(entry)
        return entries
    raise UnknownWireTagError(tag)


class Test(unittest.TestCase):
    ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"

    def samples(self) -> List[WireValue]:
        return [
            WireValue.void(),
            WireValue.bool(True),
            WireValue.u32(0),
            WireValue.i32(-1),
            WireValue.u64(2**64 - 1),
            WireValue.i64(-(2**63)),
            WireValue.u128(2**100),
            WireValue.i128(-(10**30)),
            WireValue.u256(2**255),
            WireValue.i256(-(2**200)),
            WireValue.f32(0.5),
            WireValue.f64(-3.25),
            WireValue.bytes(b"\x00\x01"),
            WireValue.string("hello"),
            WireValue.symbol("transfer"),
            WireValue.address(self.ACCOUNT),
            WireValue.vec([]),
            WireValue.map([]),
            WireValue.vec([WireValue.u32(1), WireValue.vec([WireValue.void()])]),
            WireValue.map(
                [
                    (WireValue.vec([WireValue.u32(1)]), WireValue.string("a")),
                    (WireValue.symbol("b"), WireValue.map([])),
                ]
            ),
        ]

    def test_bytes_round_trip(self):
        for value in self.samples():
            self.assertEqual(WireValue.from_bytes(value.to_bytes()), value)

    def test_map_equality_ignores_entry_order(self):
        first = WireValue.map(
            [(WireValue.symbol("a"), WireValue.u32(1)), (WireValue.symbol("b"), WireValue.u32(2))]
        )
        second = WireValue.map(
            [(WireValue.symbol("b"), WireValue.u32(2)), (WireValue.symbol("a"), WireValue.u32(1))]
        )
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))

    def test_same_payload_different_tag(self):
        self.assertNotEqual(WireValue.u32(1), WireValue.i32(1))
        self.assertNotEqual(WireValue.string("a"), WireValue.symbol("a"))

    def test_payload_checks(self):
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.u32(-1)
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.i32(2**31)
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.u64(True)
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.symbol("has space")
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.symbol("x" * 33)
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.vec([1, 2])
        with self.assertRaises(InvalidArgumentShapeError):
            WireValue.address("GNOTANADDRESS")

    def test_unknown_tag(self):
        with self.assertRaises(UnknownWireTagError):
            WireValue(99, None)
        with self.assertRaises(UnknownWireTagError):
            WireValue.from_bytes(b"\x63")

    def test_sc_type_parse(self):
        self.assertEqual(ScType.parse("U64"), ScType.U64)
        self.assertEqual(ScType.parse("Vec<u32>"), ScType.VEC)
        self.assertEqual(ScType.parse("Map<Symbol, i128>"), ScType.MAP)
        self.assertEqual(ScType.parse("Option<Address>"), ScType.OPTION)
        self.assertEqual(ScType.parse("str"), ScType.STRING)
        self.assertEqual(ScType.parse(ScType.SET), ScType.SET)
        with self.assertRaises(UnsupportedTypeError):
            ScType.parse("decimal")

    def test_wire_tag(self):
        self.assertEqual(ScType.TUPLE.wire_tag(), WireValue.VEC)
        self.assertEqual(ScType.I128.wire_tag(), WireValue.I128)
        self.assertIsNone(ScType.OPTION.wire_tag())
        self.assertEqual(ScType.from_tag(WireValue.MAP), ScType.MAP)

    def test_str(self):
        value = WireValue.vec([WireValue.u32(1), WireValue.void()])
        self.assertEqual(str(value), "vec[u32(1), void]")


if __name__ == "__main__":
    unittest.main()
