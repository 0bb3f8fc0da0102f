# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Canonical binary encoding used by the Soroban SDK.

Wire Values and transaction requests need one deterministic byte form: it
backs structural comparison, fingerprinting of contract keys and, most
importantly, the payload a signer signs. This module implements that form
as a Binary Canonical Serialization (BCS) style codec.

Layout rules:

- fixed width integers are little-endian; signed integers use two's
  complement at their declared width (i32, i64, i128, i256)
- floats are IEEE-754 little-endian (f32, f64)
- lengths and enum variants are ULEB128
- sequences are a length followed by the elements
- maps are a length followed by entries sorted by their encoded key bytes,
  so insertion order never changes the output

Examples:
    Writing and reading back::

        from soroban_sdk.bcs import Serializer, Deserializer

        ser = Serializer()
        ser.i64(-5)
        ser.str("transfer")

        der = Deserializer(ser.output())
        der.i64()   # -5
        der.str()   # "transfer"
"""

from __future__ import annotations

import io
import struct as _struct
import typing
import unittest
from typing import Dict, List

from typing_extensions import Protocol

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1
MAX_U256 = 2**256 - 1

MIN_I32 = -(2**31)
MAX_I32 = 2**31 - 1
MIN_I64 = -(2**63)
MAX_I64 = 2**63 - 1
MIN_I128 = -(2**127)
MAX_I128 = 2**127 - 1
MIN_I256 = -(2**255)
MAX_I256 = 2**255 - 1


class Deserializable(Protocol):
    """Anything that can be rebuilt from canonical bytes."""

    @classmethod
    def from_bytes(cls, indata: bytes) -> Deserializable:
        der = Deserializer(indata)
        return der.struct(cls)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Deserializable:
        ...


class Serializable(Protocol):
    """Anything that can write itself in canonical form.

    Implementers provide ``serialize``; ``to_bytes`` is derived from it.
    """

    def to_bytes(self) -> bytes:
        ser = Serializer()
        ser.struct(self)
        return ser.output()

    def serialize(self, serializer: Serializer):
        ...


class Deserializer:
    """Reads canonical values from a byte buffer, front to back.

    Every read consumes exactly the bytes of one value. Running past the end
    of the buffer raises, it never returns a short value.
    """

    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def bool(self) -> bool:
        value = self._read_int(1)
        if value == 0:
            return False
        elif value == 1:
            return True
        else:
            raise Exception("Unexpected boolean value: ", value)

    def to_bytes(self) -> bytes:
        return self._read(self.uleb128())

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def map(
        self,
        key_decoder: typing.Callable[[Deserializer], typing.Any],
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> Dict[typing.Any, typing.Any]:
        """Read a length-prefixed run of key/value pairs into a dict.

        Keys must be hashable once decoded; use :meth:`entries` when they are
        not.
        """
        return dict(self.entries(key_decoder, value_decoder))

    def entries(
        self,
        key_decoder: typing.Callable[[Deserializer], typing.Any],
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Tuple[typing.Any, typing.Any]]:
        """Read a length-prefixed run of key/value pairs as a list of tuples."""
        length = self.uleb128()
        values: List = []
        while len(values) < length:
            key = key_decoder(self)
            value = value_decoder(self)
            values.append((key, value))
        return values

    def sequence(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Any]:
        length = self.uleb128()
        values: List = []
        while len(values) < length:
            values.append(value_decoder(self))
        return values

    def str(self) -> str:
        return self.to_bytes().decode()

    def struct(self, struct: typing.Any) -> typing.Any:
        return struct.deserialize(self)

    def u8(self) -> int:
        return self._read_int(1)

    def u16(self) -> int:
        return self._read_int(2)

    def u32(self) -> int:
        return self._read_int(4)

    def u64(self) -> int:
        return self._read_int(8)

    def u128(self) -> int:
        return self._read_int(16)

    def u256(self) -> int:
        return self._read_int(32)

    def i32(self) -> int:
        return self._read_int(4, signed=True)

    def i64(self) -> int:
        return self._read_int(8, signed=True)

    def i128(self) -> int:
        return self._read_int(16, signed=True)

    def i256(self) -> int:
        return self._read_int(32, signed=True)

    def f32(self) -> float:
        return _struct.unpack("<f", self._read(4))[0]

    def f64(self) -> float:
        return _struct.unpack("<d", self._read(8))[0]

    def uleb128(self) -> int:
        """Read a ULEB128 integer, rejecting anything wider than u32."""
        value = 0
        shift = 0

        while value <= MAX_U32:
            byte = self._read_int(1)
            value |= (byte & 0x7F) << shift
            if byte & 0x80 == 0:
                break
            shift += 7

        if value > MAX_U32:
            raise Exception("Unexpectedly large uleb128 value")

        return value

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            error = (
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
            raise Exception(error)
        return value

    def _read_int(self, length: int, signed: bool = False) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=signed)


class Serializer:
    """Accumulates canonical bytes.

    Integer writers check their range before writing anything, so a failed
    write leaves the buffer unchanged.
    """

    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self._write_int(int(value), 1)

    def to_bytes(self, value: bytes):
        self.uleb128(len(value))
        self._output.write(value)

    def fixed_bytes(self, value):
        self._output.write(value)

    def map(
        self,
        values: typing.Dict[typing.Any, typing.Any],
        key_encoder: typing.Callable[[Serializer, typing.Any], None],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.entries(list(values.items()), key_encoder, value_encoder)

    def entries(
        self,
        values: typing.List[typing.Tuple[typing.Any, typing.Any]],
        key_encoder: typing.Callable[[Serializer, typing.Any], None],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        """Write key/value pairs sorted by the bytes of their encoded keys.

        Accepts a list of pairs so keys that are not hashable in Python (such
        as Wire Value vectors) can still be written.
        """
        encoded_values = []
        for key, value in values:
            encoded_values.append(
                (encoder(key, key_encoder), encoder(value, value_encoder))
            )
        encoded_values.sort(key=lambda item: item[0])

        self.uleb128(len(encoded_values))
        for key, value in encoded_values:
            self.fixed_bytes(key)
            self.fixed_bytes(value)

    @staticmethod
    def sequence_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, values: self.sequence(values, value_encoder)

    def sequence(
        self,
        values: typing.Sequence[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.uleb128(len(values))
        for value in values:
            self.fixed_bytes(encoder(value, value_encoder))

    def str(self, value: str):
        self.to_bytes(value.encode())

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        self._write_unsigned(value, MAX_U8, 1, "u8")

    def u16(self, value: int):
        self._write_unsigned(value, MAX_U16, 2, "u16")

    def u32(self, value: int):
        self._write_unsigned(value, MAX_U32, 4, "u32")

    def u64(self, value: int):
        self._write_unsigned(value, MAX_U64, 8, "u64")

    def u128(self, value: int):
        self._write_unsigned(value, MAX_U128, 16, "u128")

    def u256(self, value: int):
        self._write_unsigned(value, MAX_U256, 32, "u256")

    def i32(self, value: int):
        self._write_signed(value, MIN_I32, MAX_I32, 4, "i32")

    def i64(self, value: int):
        self._write_signed(value, MIN_I64, MAX_I64, 8, "i64")

    def i128(self, value: int):
        self._write_signed(value, MIN_I128, MAX_I128, 16, "i128")

    def i256(self, value: int):
        self._write_signed(value, MIN_I256, MAX_I256, 32, "i256")

    def f32(self, value: float):
        self._output.write(_struct.pack("<f", value))

    def f64(self, value: float):
        self._output.write(_struct.pack("<d", value))

    def uleb128(self, value: int):
        if value < 0 or value > MAX_U32:
            raise Exception(f"Cannot encode {value} into uleb128")

        while value >= 0x80:
            # Low 7 bits with the continuation bit set.
            byte = value & 0x7F
            self.u8(byte | 0x80)
            value >>= 7

        self.u8(value & 0x7F)

    def _write_unsigned(self, value: int, maximum: int, length: int, name: str):
        if value < 0 or value > maximum:
            raise Exception(f"Cannot encode {value} into {name}")
        self._write_int(value, length)

    def _write_signed(
        self, value: int, minimum: int, maximum: int, length: int, name: str
    ):
        if value < minimum or value > maximum:
            raise Exception(f"Cannot encode {value} into {name}")
        self._output.write(value.to_bytes(length, "little", signed=True))

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


def encoder(
    value: typing.Any, encoder: typing.Callable[[Serializer, typing.Any], typing.Any]
) -> bytes:
    """Run a single encoder against a fresh Serializer and return its bytes."""
    ser = Serializer()
    encoder(ser, value)
    return ser.output()


class Test(unittest.TestCase):
    def test_bool_error(self):
        ser = Serializer()
        ser.u8(32)
        der = Deserializer(ser.output())
        with self.assertRaises(Exception):
            der.bool()

    def test_map_is_order_independent(self):
        first = Serializer()
        first.map({"a": 1, "b": 2, "c": 3}, Serializer.str, Serializer.u32)
        second = Serializer()
        second.map({"c": 3, "a": 1, "b": 2}, Serializer.str, Serializer.u32)

        self.assertEqual(first.output(), second.output())
        der = Deserializer(first.output())
        self.assertEqual(
            der.map(Deserializer.str, Deserializer.u32), {"a": 1, "b": 2, "c": 3}
        )

    def test_entries_with_unhashable_keys(self):
        in_value = [([1, 2], "x"), ([0], "y")]

        ser = Serializer()
        ser.entries(
            in_value,
            Serializer.sequence_serializer(Serializer.u8),
            Serializer.str,
        )
        der = Deserializer(ser.output())
        out_value = der.entries(
            lambda d: d.sequence(Deserializer.u8), Deserializer.str
        )

        self.assertEqual(out_value, [([0], "y"), ([1, 2], "x")])

    def test_sequence(self):
        in_value = ["transfer", "mint", "burn"]

        ser = Serializer()
        ser.sequence(in_value, Serializer.str)
        der = Deserializer(ser.output())

        self.assertEqual(der.sequence(Deserializer.str), in_value)
        self.assertEqual(der.remaining(), 0)

    def test_signed_integers(self):
        cases = [
            (Serializer.i32, Deserializer.i32, [MIN_I32, -1, 0, MAX_I32]),
            (Serializer.i64, Deserializer.i64, [MIN_I64, -42, MAX_I64]),
            (Serializer.i128, Deserializer.i128, [MIN_I128, -(10**30), MAX_I128]),
            (Serializer.i256, Deserializer.i256, [MIN_I256, -7, MAX_I256]),
        ]
        for write, read, values in cases:
            for value in values:
                ser = Serializer()
                write(ser, value)
                self.assertEqual(read(Deserializer(ser.output())), value)

    def test_negative_twos_complement(self):
        ser = Serializer()
        ser.i32(-1)
        self.assertEqual(ser.output(), b"\xff\xff\xff\xff")

    def test_signed_out_of_range(self):
        ser = Serializer()
        with self.assertRaises(Exception):
            ser.i32(MAX_I32 + 1)
        with self.assertRaises(Exception):
            ser.i64(MIN_I64 - 1)
        self.assertEqual(ser.output(), b"")

    def test_unsigned_rejects_negative(self):
        ser = Serializer()
        with self.assertRaises(Exception):
            ser.u64(-1)

    def test_floats(self):
        ser = Serializer()
        ser.f32(1.5)
        ser.f64(-2.25)
        der = Deserializer(ser.output())
        self.assertEqual(der.f32(), 1.5)
        self.assertEqual(der.f64(), -2.25)

    def test_u256(self):
        in_value = 2**255 + 12345

        ser = Serializer()
        ser.u256(in_value)

        self.assertEqual(Deserializer(ser.output()).u256(), in_value)

    def test_uleb128(self):
        ser = Serializer()
        ser.uleb128(300)
        self.assertEqual(ser.output(), b"\xac\x02")
        self.assertEqual(Deserializer(ser.output()).uleb128(), 300)

    def test_short_input(self):
        der = Deserializer(b"\x01\x02")
        with self.assertRaises(Exception):
            der.u32()


if __name__ == "__main__":
    unittest.main()
