# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Account and contract identities.

Soroban names both accounts and contracts with a 32 byte key rendered as a
56 character strkey: account keys start with ``G`` and contract ids start
with ``C``. The strkey carries a version byte and a CRC16 checksum; encoding
and validation are delegated to ``stellar_sdk.StrKey`` so this module only
decides which of the two identity kinds a string is.

Examples:
    Parsing identities::

        from soroban_sdk.address import Address

        account = Address.from_str("GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF")
        account.is_account()  # True

        contract = Address.from_contract_id(bytes(32))
        str(contract)         # "CAAAA..."
"""

from __future__ import annotations

import unittest

from stellar_sdk import StrKey

from .bcs import Deserializer, Serializer


class ParseAddressError(Exception):
    """A string or byte sequence is not a valid account or contract identity."""


class Address:
    """An account or contract identity.

    Attributes:
        ACCOUNT: Variant of ``G...`` account identities (0)
        CONTRACT: Variant of ``C...`` contract identities (1)
        kind: One of the variants above
        key: The 32 raw key bytes
    """

    ACCOUNT: int = 0
    CONTRACT: int = 1

    LENGTH: int = 32
    STRKEY_LENGTH: int = 56
    ACCOUNT_SIGIL: str = "G"
    CONTRACT_SIGIL: str = "C"

    kind: int
    key: bytes

    def __init__(self, kind: int, key: bytes):
        if kind not in (Address.ACCOUNT, Address.CONTRACT):
            raise ParseAddressError(f"Unknown address kind: {kind}")
        if len(key) != Address.LENGTH:
            raise ParseAddressError(f"Expected address of length {Address.LENGTH}")
        self.kind = kind
        self.key = bytes(key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self.kind == other.kind and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.kind, self.key))

    def __str__(self) -> str:
        if self.kind == Address.ACCOUNT:
            return StrKey.encode_ed25519_public_key(self.key)
        return StrKey.encode_contract(self.key)

    def __repr__(self) -> str:
        return f"Address({self})"

    def is_account(self) -> bool:
        return self.kind == Address.ACCOUNT

    def is_contract(self) -> bool:
        return self.kind == Address.CONTRACT

    @staticmethod
    def from_account_key(key: bytes) -> Address:
        return Address(Address.ACCOUNT, key)

    @staticmethod
    def from_contract_id(contract_id: bytes) -> Address:
        return Address(Address.CONTRACT, contract_id)

    @staticmethod
    def from_str(address: str) -> Address:
        """Parse a ``G...`` or ``C...`` strkey.

        Raises:
            ParseAddressError: If the string has the wrong length or sigil, or
                its checksum does not match.
        """
        if len(address) != Address.STRKEY_LENGTH:
            raise ParseAddressError(
                f"Expected {Address.STRKEY_LENGTH} characters, got {len(address)}"
            )
        try:
            if address.startswith(Address.ACCOUNT_SIGIL):
                return Address(
                    Address.ACCOUNT, StrKey.decode_ed25519_public_key(address)
                )
            if address.startswith(Address.CONTRACT_SIGIL):
                return Address(Address.CONTRACT, StrKey.decode_contract(address))
        except ValueError as e:
            raise ParseAddressError(f"Invalid address {address}: {e}") from e
        raise ParseAddressError(f"Unsupported address sigil: {address[:1]}")

    @staticmethod
    def is_valid(address: str) -> bool:
        try:
            Address.from_str(address)
        except ParseAddressError:
            return False
        return True

    @staticmethod
    def is_valid_account(address: str) -> bool:
        return StrKey.is_valid_ed25519_public_key(address)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Address:
        kind = deserializer.uleb128()
        return Address(kind, deserializer.fixed_bytes(Address.LENGTH))

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.kind)
        serializer.fixed_bytes(self.key)


class Test(unittest.TestCase):
    ZERO_ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"

    def test_account(self):
        address = Address.from_str(self.ZERO_ACCOUNT)
        self.assertTrue(address.is_account())
        self.assertEqual(address.key, bytes(32))
        self.assertEqual(str(address), self.ZERO_ACCOUNT)

    def test_contract(self):
        contract = Address.from_contract_id(b"\x07" * 32)
        text = str(contract)
        self.assertTrue(text.startswith("C"))
        self.assertEqual(len(text), Address.STRKEY_LENGTH)
        self.assertEqual(Address.from_str(text), contract)

    def test_wrong_sigil(self):
        with self.assertRaises(ParseAddressError):
            Address.from_str("X" + self.ZERO_ACCOUNT[1:])
        self.assertFalse(Address.is_valid("X" + self.ZERO_ACCOUNT[1:]))

    def test_bad_checksum(self):
        self.assertFalse(Address.is_valid(self.ZERO_ACCOUNT[:-1] + "A"))

    def test_wrong_length(self):
        with self.assertRaises(ParseAddressError):
            Address.from_str("GABC")

    def test_serialize(self):
        address = Address.from_contract_id(b"\x01" * 32)
        ser = Serializer()
        address.serialize(ser)
        self.assertEqual(len(ser.output()), 33)
        self.assertEqual(Address.deserialize(Deserializer(ser.output())), address)


if __name__ == "__main__":
    unittest.main()
