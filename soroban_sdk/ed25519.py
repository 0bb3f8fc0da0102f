# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ed25519 signing for Soroban transactions.

The contract manager only needs an opaque signing capability, described by
the :class:`Signer` protocol: something with a strkey public key that can sign
a byte payload. :class:`Keypair` is the bundled implementation backed by
PyNaCl. Key material is otherwise out of scope; hardware wallets or remote
signers only need to satisfy the protocol.

Examples:
    Signing with a stored seed::

        keypair = Keypair.from_secret("SB...")
        keypair.public_key()          # "GA..."
        signature = keypair.sign(payload)
"""

from __future__ import annotations

import unittest

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey
from stellar_sdk import StrKey
from typing_extensions import Protocol

from .address import Address


class Signer(Protocol):
    def public_key(self) -> str:
        """Strkey (``G...``) of the account that signs."""
        ...

    def sign(self, data: bytes) -> bytes:
        """Sign ``data`` and return the 64 byte signature."""
        ...


class Keypair:
    """An ed25519 keypair.

    Attributes:
        LENGTH: Length of the seed and of the public key (32)
        SIGNATURE_LENGTH: Length of a signature (64)
    """

    LENGTH: int = 32
    SIGNATURE_LENGTH: int = 64

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.key == other.key

    def __repr__(self) -> str:
        return f"Keypair({self.public_key()})"

    @staticmethod
    def random() -> Keypair:
        return Keypair(SigningKey.generate())

    @staticmethod
    def from_seed(seed: bytes) -> Keypair:
        if len(seed) != Keypair.LENGTH:
            raise ValueError(f"Expected seed of length {Keypair.LENGTH}")
        return Keypair(SigningKey(seed))

    @staticmethod
    def from_secret(secret: str) -> Keypair:
        """Load a keypair from an ``S...`` secret seed strkey."""
        return Keypair(SigningKey(StrKey.decode_ed25519_secret_seed(secret)))

    def secret(self) -> str:
        return StrKey.encode_ed25519_secret_seed(self.key.encode())

    def public_key_bytes(self) -> bytes:
        return self.key.verify_key.encode()

    def public_key(self) -> str:
        return StrKey.encode_ed25519_public_key(self.public_key_bytes())

    def address(self) -> Address:
        return Address.from_account_key(self.public_key_bytes())

    def sign(self, data: bytes) -> bytes:
        return self.key.sign(data).signature

    def hint(self) -> bytes:
        """Last four bytes of the public key, used to match signatures to keys."""
        return self.public_key_bytes()[-4:]

    @staticmethod
    def verify(public_key: str, data: bytes, signature: bytes) -> bool:
        try:
            VerifyKey(StrKey.decode_ed25519_public_key(public_key)).verify(
                data, signature
            )
        except BadSignatureError:
            return False
        return True


class Test(unittest.TestCase):
    def test_sign_and_verify(self):
        keypair = Keypair.random()
        signature = keypair.sign(b"payload")
        self.assertEqual(len(signature), Keypair.SIGNATURE_LENGTH)
        self.assertTrue(Keypair.verify(keypair.public_key(), b"payload", signature))
        self.assertFalse(Keypair.verify(keypair.public_key(), b"tampered", signature))

    def test_secret_round_trip(self):
        keypair = Keypair.from_seed(bytes(range(32)))
        secret = keypair.secret()
        self.assertTrue(secret.startswith("S"))
        self.assertEqual(Keypair.from_secret(secret), keypair)

    def test_public_key(self):
        keypair = Keypair.random()
        self.assertTrue(keypair.public_key().startswith("G"))
        self.assertEqual(str(keypair.address()), keypair.public_key())
        self.assertEqual(keypair.hint(), keypair.public_key_bytes()[-4:])

    def test_bad_seed(self):
        with self.assertRaises(ValueError):
            Keypair.from_seed(b"short")


if __name__ == "__main__":
    unittest.main()
