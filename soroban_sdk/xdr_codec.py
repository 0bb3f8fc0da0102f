# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Conversion between Wire Values and the network's ``SCVal`` XDR.

Everything the RPC client sends or receives goes through :func:`to_sc_val`
and :func:`from_sc_val`. The network has no floating point values, so ``f32``
and ``f64`` Wire Values cannot be sent. Some network values have no Wire
Value of their own and are narrowed on the way in: time points and durations
become ``u64`` and an error value becomes its ``u32`` code.
"""

from __future__ import annotations

import unittest
from typing import Union

from stellar_sdk import scval as stellar_scval
from stellar_sdk import xdr as stellar_xdr

from .address import Address
from .errors import InvalidArgumentShapeError, UnknownWireTagError, UnsupportedTypeError
from .wire_value import WireValue

SCValType = stellar_xdr.SCValType

_TO_INT = {
    WireValue.U32: stellar_scval.to_uint32,
    WireValue.I32: stellar_scval.to_int32,
    WireValue.U64: stellar_scval.to_uint64,
    WireValue.I64: stellar_scval.to_int64,
    WireValue.U128: stellar_scval.to_uint128,
    WireValue.I128: stellar_scval.to_int128,
    WireValue.U256: stellar_scval.to_uint256,
    WireValue.I256: stellar_scval.to_int256,
}

_FROM_INT = {
    SCValType.SCV_U32: (WireValue.U32, stellar_scval.from_uint32),
    SCValType.SCV_I32: (WireValue.I32, stellar_scval.from_int32),
    SCValType.SCV_U64: (WireValue.U64, stellar_scval.from_uint64),
    SCValType.SCV_I64: (WireValue.I64, stellar_scval.from_int64),
    SCValType.SCV_TIMEPOINT: (WireValue.U64, stellar_scval.from_timepoint),
    SCValType.SCV_DURATION: (WireValue.U64, stellar_scval.from_duration),
    SCValType.SCV_U128: (WireValue.U128, stellar_scval.from_uint128),
    SCValType.SCV_I128: (WireValue.I128, stellar_scval.from_int128),
    SCValType.SCV_U256: (WireValue.U256, stellar_scval.from_uint256),
    SCValType.SCV_I256: (WireValue.I256, stellar_scval.from_int256),
}


def to_sc_val(value: WireValue) -> stellar_xdr.SCVal:
    tag = value.tag
    if tag == WireValue.VOID:
        return stellar_scval.to_void()
    if tag == WireValue.BOOL:
        return stellar_scval.to_bool(value.value)
    if tag in _TO_INT:
        return _TO_INT[tag](value.value)
    if tag in (WireValue.F32, WireValue.F64):
        raise UnsupportedTypeError(f"{value.type()} values cannot be sent to the network")
    if tag == WireValue.BYTES:
        return stellar_scval.to_bytes(value.value)
    if tag == WireValue.STRING:
        return stellar_scval.to_string(value.value)
    if tag == WireValue.SYMBOL:
        return stellar_scval.to_symbol(value.value)
    if tag == WireValue.ADDRESS:
        return stellar_scval.to_address(str(value.value))
    if tag == WireValue.VEC:
        return stellar_scval.to_vec([to_sc_val(item) for item in value.value])
    if tag == WireValue.MAP:
        # Entries are sorted by key as the network requires.
        return stellar_scval.to_map(
            {to_sc_val(key): to_sc_val(item) for key, item in value.value}
        )
    raise UnknownWireTagError(tag)


def from_sc_val(sc_val: Union[stellar_xdr.SCVal, str, bytes]) -> WireValue:
    """Read an ``SCVal``, given as an object, base64 XDR or raw XDR bytes."""
    if isinstance(sc_val, str):
        sc_val = stellar_xdr.SCVal.from_xdr(sc_val)
    elif isinstance(sc_val, bytes):
        sc_val = stellar_xdr.SCVal.from_xdr_bytes(sc_val)

    sc_type = sc_val.type
    if sc_type == SCValType.SCV_VOID:
        return WireValue.void()
    if sc_type == SCValType.SCV_BOOL:
        return WireValue.bool(stellar_scval.from_bool(sc_val))
    if sc_type in _FROM_INT:
        tag, read = _FROM_INT[sc_type]
        return WireValue(tag, read(sc_val))
    if sc_type == SCValType.SCV_ERROR:
        return WireValue.u32(_error_code(sc_val.error))
    if sc_type == SCValType.SCV_BYTES:
        return WireValue.bytes(stellar_scval.from_bytes(sc_val))
    if sc_type == SCValType.SCV_STRING:
        raw = stellar_scval.from_string(sc_val)
        try:
            return WireValue.string(raw.decode("utf-8"))
        except UnicodeDecodeError:
            return WireValue.bytes(raw)
    if sc_type == SCValType.SCV_SYMBOL:
        return WireValue.symbol(stellar_scval.from_symbol(sc_val))
    if sc_type == SCValType.SCV_ADDRESS:
        address = stellar_scval.from_address(sc_val).address
        if not Address.is_valid(address):
            raise UnsupportedTypeError(f"Unsupported address kind: {address}")
        return WireValue.address(address)
    if sc_type == SCValType.SCV_VEC:
        items = sc_val.vec.sc_vec if sc_val.vec is not None else []
        return WireValue.vec([from_sc_val(item) for item in items])
    if sc_type == SCValType.SCV_MAP:
        entries = sc_val.map.sc_map if sc_val.map is not None else []
        return WireValue.map(
            [(from_sc_val(entry.key), from_sc_val(entry.val)) for entry in entries]
        )
    raise UnknownWireTagError(sc_type.name)


def to_base64(value: WireValue) -> str:
    return to_sc_val(value).to_xdr()


def from_base64(data: str) -> WireValue:
    try:
        sc_val = stellar_xdr.SCVal.from_xdr(data)
    except ValueError as e:
        raise InvalidArgumentShapeError(f"Malformed SCVal XDR: {e}") from e
    return from_sc_val(sc_val)


def _error_code(error: stellar_xdr.SCError) -> int:
    if error.type == stellar_xdr.SCErrorType.SCE_CONTRACT:
        return error.contract_code.uint32
    return int(error.code)


class Test(unittest.TestCase):
    ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"

    def test_scalars(self):
        self.assertEqual(to_sc_val(WireValue.u32(7)), stellar_scval.to_uint32(7))
        self.assertEqual(to_sc_val(WireValue.i128(-5)), stellar_scval.to_int128(-5))
        self.assertEqual(to_sc_val(WireValue.symbol("mint")), stellar_scval.to_symbol("mint"))
        self.assertEqual(to_sc_val(WireValue.void()), stellar_scval.to_void())
        self.assertEqual(
            to_sc_val(WireValue.address(self.ACCOUNT)),
            stellar_scval.to_address(self.ACCOUNT),
        )

        self.assertEqual(from_sc_val(stellar_scval.to_uint256(2**200)), WireValue.u256(2**200))
        self.assertEqual(from_sc_val(stellar_scval.to_string("hi")), WireValue.string("hi"))
        self.assertEqual(from_sc_val(stellar_scval.to_bool(True)), WireValue.bool(True))
        self.assertEqual(
            from_sc_val(stellar_scval.to_address(self.ACCOUNT)),
            WireValue.address(self.ACCOUNT),
        )

    def test_nested_values(self):
        value = WireValue.map(
            [
                (WireValue.symbol("b"), WireValue.vec([WireValue.u64(1), WireValue.bytes(b"\x01")])),
                (WireValue.symbol("a"), WireValue.i32(-1)),
            ]
        )
        sc_val = to_sc_val(value)
        keys = [stellar_scval.from_symbol(entry.key) for entry in sc_val.map.sc_map]
        self.assertEqual(keys, ["a", "b"])
        self.assertEqual(from_base64(to_base64(value)), value)

    def test_narrowed_values(self):
        self.assertEqual(from_sc_val(stellar_scval.to_timepoint(99)), WireValue.u64(99))
        self.assertEqual(from_sc_val(stellar_scval.to_duration(5)), WireValue.u64(5))
        error = stellar_xdr.SCVal(
            SCValType.SCV_ERROR,
            error=stellar_xdr.SCError(
                stellar_xdr.SCErrorType.SCE_CONTRACT, contract_code=stellar_xdr.Uint32(6)
            ),
        )
        self.assertEqual(from_sc_val(error), WireValue.u32(6))

    def test_unsupported_values(self):
        with self.assertRaises(UnsupportedTypeError):
            to_sc_val(WireValue.f64(1.5))
        with self.assertRaises(UnknownWireTagError):
            from_sc_val(
                stellar_xdr.SCVal(SCValType.SCV_LEDGER_KEY_CONTRACT_INSTANCE)
            )
        with self.assertRaises(InvalidArgumentShapeError):
            from_base64("not xdr")


if __name__ == "__main__":
    unittest.main()
