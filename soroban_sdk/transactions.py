# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Transaction requests sent through the RPC client.

A :class:`TransactionRequest` carries exactly one host function call, the
single operation every Soroban transaction performs. It is built unsigned,
simulated, then :meth:`prepared <TransactionRequest.prepare>` with the
resource data, authorization entries and fee the simulation reported, and
finally signed.

The envelope itself is assembled with ``stellar_sdk.TransactionBuilder``. The
bytes a signer signs are the envelope hash, which covers the network
passphrase, so a signature made for one network can never be replayed on
another.
"""

from __future__ import annotations

import hashlib
import os
import time
import typing
import unittest
from typing import List, Optional

from stellar_sdk import (
    Account,
    Address as StellarAddress,
    DecoratedSignature,
    Network,
    SorobanDataBuilder,
    StrKey,
    TransactionBuilder,
    TransactionEnvelope,
)
from stellar_sdk import xdr as stellar_xdr

from . import xdr_codec
from .address import Address
from .errors import InvalidArgumentShapeError
from .types import ResourceCost, SimulationResult
from .wire_value import WireValue

SALT_LENGTH = 32


def wasm_hash(code: bytes) -> bytes:
    return hashlib.sha256(code).digest()


class InvokeContract:
    contract_id: str
    function: str
    args: List[WireValue]

    def __init__(self, contract_id: str, function: str, args: List[WireValue]):
        self.contract_id = contract_id
        self.function = function
        self.args = list(args)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InvokeContract):
            return NotImplemented
        return (
            self.contract_id == other.contract_id
            and self.function == other.function
            and self.args == other.args
        )

    def append_to(self, builder: TransactionBuilder, auth: List[typing.Any]):
        builder.append_invoke_contract_function_op(
            self.contract_id,
            self.function,
            [xdr_codec.to_sc_val(arg) for arg in self.args],
            auth=auth,
        )


class CreateContract:
    """Instantiate uploaded code under an address derived from deployer and salt."""

    deployer: str
    wasm_hash: bytes
    salt: bytes

    def __init__(self, deployer: str, wasm_hash: bytes, salt: Optional[bytes] = None):
        if salt is None:
            salt = os.urandom(SALT_LENGTH)
        if len(salt) != SALT_LENGTH:
            raise InvalidArgumentShapeError(
                f"Expected salt of length {SALT_LENGTH}, got {len(salt)}"
            )
        self.deployer = deployer
        self.wasm_hash = wasm_hash
        self.salt = bytes(salt)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CreateContract):
            return NotImplemented
        return (
            self.deployer == other.deployer
            and self.wasm_hash == other.wasm_hash
            and self.salt == other.salt
        )

    def contract_id(self, network_passphrase: str) -> str:
        """The address the contract will have on the given network."""
        preimage = stellar_xdr.HashIDPreimage(
            stellar_xdr.EnvelopeType.ENVELOPE_TYPE_CONTRACT_ID,
            contract_id=stellar_xdr.HashIDPreimageContractID(
                network_id=stellar_xdr.Hash(Network(network_passphrase).network_id()),
                contract_id_preimage=stellar_xdr.ContractIDPreimage(
                    stellar_xdr.ContractIDPreimageType.CONTRACT_ID_PREIMAGE_FROM_ADDRESS,
                    from_address=stellar_xdr.ContractIDPreimageFromAddress(
                        address=StellarAddress(self.deployer).to_xdr_sc_address(),
                        salt=stellar_xdr.Uint256(self.salt),
                    ),
                ),
            ),
        )
        return str(Address.from_contract_id(hashlib.sha256(preimage.to_xdr_bytes()).digest()))

    def append_to(self, builder: TransactionBuilder, auth: List[typing.Any]):
        builder.append_create_contract_op(
            self.wasm_hash, self.deployer, salt=self.salt, auth=auth
        )


class UploadContractWasm:
    code: bytes

    def __init__(self, code: bytes):
        self.code = bytes(code)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UploadContractWasm):
            return NotImplemented
        return self.code == other.code

    def append_to(self, builder: TransactionBuilder, auth: List[typing.Any]):
        # Uploading code needs no authorization beyond the source signature.
        builder.append_upload_contract_wasm_op(self.code)


class HostFunction:
    """A single host function call, a discriminated union over the classes above.

    The variants follow the network's ``HostFunctionType``.

    Attributes:
        INVOKE_CONTRACT: Call a method of a deployed contract (0)
        CREATE_CONTRACT: Create a contract from uploaded code (1)
        UPLOAD_CONTRACT_WASM: Upload contract code (2)
    """

    INVOKE_CONTRACT: int = 0
    CREATE_CONTRACT: int = 1
    UPLOAD_CONTRACT_WASM: int = 2

    value: typing.Any

    def __init__(self, value: typing.Any):
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HostFunction):
            return NotImplemented
        return self.variant() == other.variant() and self.value == other.value

    def __repr__(self) -> str:
        return f"HostFunction({type(self.value).__name__})"

    def variant(self) -> int:
        if isinstance(self.value, InvokeContract):
            return HostFunction.INVOKE_CONTRACT
        if isinstance(self.value, CreateContract):
            return HostFunction.CREATE_CONTRACT
        if isinstance(self.value, UploadContractWasm):
            return HostFunction.UPLOAD_CONTRACT_WASM
        raise Exception(f"Invalid host function: {type(self.value).__name__}")

    def append_to(self, builder: TransactionBuilder, auth: List[typing.Any]):
        self.value.append_to(builder, auth)


class TransactionRequest:
    """An unsigned or signed transaction carrying one host function call.

    ``fee`` is the inclusion fee until :meth:`prepare` adds the minimum
    resource fee from a successful simulation. ``valid_until`` is the unix
    time after which the network rejects the transaction, 0 for no limit; it
    is fixed when the request is created so the envelope, and with it the
    signature payload, stays the same however often it is rebuilt.
    """

    source: str
    sequence: int
    fee: int
    network_passphrase: str
    operations: List[HostFunction]
    timeout: int
    valid_until: int
    resource_fee: int
    transaction_data: Optional[str]
    auth: List[str]
    signatures: List[DecoratedSignature]

    def __init__(
        self,
        source: str,
        sequence: int,
        fee: int,
        network_passphrase: str,
        operations: List[HostFunction],
        timeout: int = 30,
        resource_fee: int = 0,
        transaction_data: Optional[str] = None,
        auth: Optional[List[str]] = None,
        valid_until: Optional[int] = None,
    ):
        if len(operations) != 1:
            raise InvalidArgumentShapeError(
                f"A transaction carries exactly one host function, got {len(operations)}"
            )
        if valid_until is None:
            valid_until = int(time.time()) + timeout if timeout > 0 else 0
        self.source = source
        self.sequence = sequence
        self.fee = fee
        self.network_passphrase = network_passphrase
        self.operations = list(operations)
        self.timeout = timeout
        self.valid_until = valid_until
        self.resource_fee = resource_fee
        self.transaction_data = transaction_data
        self.auth = list(auth or [])
        self.signatures = []

    def __repr__(self) -> str:
        return (
            f"TransactionRequest(source={self.source}, sequence={self.sequence}, "
            f"fee={self.fee}, operations={self.operations})"
        )

    def prepare(self, simulation: SimulationResult) -> TransactionRequest:
        """Return a copy annotated with the simulated resources and fee.

        Raises:
            ValueError: If the simulation failed; a failed simulation must
                never reach signing.
        """
        if not simulation.success:
            raise ValueError(f"Cannot prepare from failed simulation: {simulation.error}")
        cost = simulation.cost or ResourceCost()
        return TransactionRequest(
            source=self.source,
            sequence=self.sequence,
            fee=self.fee + cost.min_resource_fee,
            network_passphrase=self.network_passphrase,
            operations=self.operations,
            timeout=self.timeout,
            resource_fee=cost.min_resource_fee,
            transaction_data=simulation.transaction_data,
            auth=simulation.auth,
            valid_until=self.valid_until,
        )

    def to_envelope(self) -> TransactionEnvelope:
        # The builder bumps the account sequence, so start one below.
        builder = TransactionBuilder(
            source_account=Account(self.source, self.sequence - 1),
            network_passphrase=self.network_passphrase,
            base_fee=self.fee,
        )
        builder.add_time_bounds(0, self.valid_until)
        if self.transaction_data is not None:
            builder.set_soroban_data(self.transaction_data)
        auth = [stellar_xdr.SorobanAuthorizationEntry.from_xdr(entry) for entry in self.auth]
        self.operations[0].append_to(builder, auth)

        envelope = builder.build()
        # The builder adds the soroban data resource fee on top of base_fee.
        envelope.transaction.fee = self.fee
        envelope.signatures.extend(self.signatures)
        return envelope

    def signature_payload(self) -> bytes:
        return self.to_envelope().hash()

    def hash(self) -> str:
        return self.signature_payload().hex()

    def sign(self, signer: typing.Any) -> TransactionRequest:
        """Append a signature from ``signer`` and return self."""
        public_key = StrKey.decode_ed25519_public_key(signer.public_key())
        signature = signer.sign(self.signature_payload())
        self.signatures.append(DecoratedSignature(public_key[-4:], signature))
        return self

    def to_xdr(self) -> str:
        """The base64 envelope XDR, signatures included."""
        return self.to_envelope().to_xdr()


class Test(unittest.TestCase):
    SOURCE = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"
    PASSPHRASE = "Test SDF Network ; September 2015"
    CONTRACT = str(Address.from_contract_id(b"\x05" * 32))

    def request(self, passphrase: str = PASSPHRASE, source: str = SOURCE) -> TransactionRequest:
        call = InvokeContract(self.CONTRACT, "hello", [WireValue.symbol("world")])
        return TransactionRequest(
            source, 7, 100, passphrase, [HostFunction(call)], valid_until=1_900_000_000
        )

    def test_payload_depends_on_network(self):
        testnet = self.request().signature_payload()
        mainnet = self.request("Public Global Stellar Network ; September 2015").signature_payload()
        self.assertEqual(len(testnet), 32)
        self.assertNotEqual(testnet, mainnet)
        self.assertEqual(testnet, self.request().signature_payload())

    def test_envelope(self):
        envelope = self.request().to_envelope()
        transaction = envelope.transaction
        self.assertEqual(transaction.sequence, 7)
        self.assertEqual(transaction.fee, 100)
        self.assertEqual(transaction.preconditions.time_bounds.max_time, 1_900_000_000)

        invoke = transaction.operations[0].host_function.invoke_contract
        self.assertEqual(invoke.function_name.sc_symbol, b"hello")
        self.assertEqual(invoke.args, [xdr_codec.to_sc_val(WireValue.symbol("world"))])

    def test_prepare(self):
        soroban_data = SorobanDataBuilder().set_resource_fee(5000).build().to_xdr()
        simulation = SimulationResult(
            cost=ResourceCost(10, 20, 5000), transaction_data=soroban_data
        )
        prepared = self.request().prepare(simulation)
        self.assertEqual(prepared.fee, 5100)
        self.assertEqual(prepared.resource_fee, 5000)
        self.assertEqual(prepared.valid_until, 1_900_000_000)

        transaction = prepared.to_envelope().transaction
        self.assertEqual(transaction.fee, 5100)
        self.assertEqual(transaction.soroban_data.resource_fee.int64, 5000)
        self.assertNotEqual(prepared.hash(), self.request().hash())

        with self.assertRaises(ValueError):
            self.request().prepare(SimulationResult(error="boom"))

    def test_sign(self):
        from .ed25519 import Keypair

        keypair = Keypair.random()
        request = self.request(source=keypair.public_key())
        request.sign(keypair)
        self.assertEqual(len(request.signatures), 1)
        self.assertEqual(request.signatures[0].signature_hint, keypair.hint())
        self.assertTrue(
            Keypair.verify(
                keypair.public_key(),
                request.signature_payload(),
                request.signatures[0].signature,
            )
        )

        envelope = TransactionEnvelope.from_xdr(request.to_xdr(), self.PASSPHRASE)
        self.assertEqual(envelope.hash(), request.signature_payload())
        self.assertEqual(len(envelope.signatures), 1)

    def test_single_host_function(self):
        call = HostFunction(UploadContractWasm(b"\x00asm"))
        with self.assertRaises(InvalidArgumentShapeError):
            TransactionRequest(self.SOURCE, 1, 100, self.PASSPHRASE, [call, call])
        with self.assertRaises(InvalidArgumentShapeError):
            TransactionRequest(self.SOURCE, 1, 100, self.PASSPHRASE, [])

    def test_salt(self):
        with self.assertRaises(InvalidArgumentShapeError):
            CreateContract(self.SOURCE, wasm_hash(b"code"), b"short")
        first = CreateContract(self.SOURCE, wasm_hash(b"code"))
        second = CreateContract(self.SOURCE, wasm_hash(b"code"))
        self.assertNotEqual(first.salt, second.salt)

    def test_contract_id(self):
        create = CreateContract(self.SOURCE, wasm_hash(b"code"), b"\x01" * 32)
        contract_id = create.contract_id(self.PASSPHRASE)
        self.assertTrue(Address.is_valid(contract_id))
        self.assertTrue(contract_id.startswith("C"))
        self.assertEqual(
            contract_id,
            CreateContract(self.SOURCE, wasm_hash(b"other"), b"\x01" * 32).contract_id(
                self.PASSPHRASE
            ),
        )
        self.assertNotEqual(contract_id, create.contract_id("Public Global Stellar Network ; September 2015"))
        self.assertNotEqual(
            contract_id,
            CreateContract(self.SOURCE, wasm_hash(b"code"), b"\x02" * 32).contract_id(
                self.PASSPHRASE
            ),
        )

    def test_variants(self):
        self.assertEqual(
            HostFunction(UploadContractWasm(b"\x00asm")).variant(),
            HostFunction.UPLOAD_CONTRACT_WASM,
        )
        create = HostFunction(CreateContract(self.SOURCE, wasm_hash(b"code"), b"\x01" * 32))
        self.assertEqual(create.variant(), HostFunction.CREATE_CONTRACT)
        self.assertEqual(
            HostFunction.CREATE_CONTRACT,
            stellar_xdr.HostFunctionType.HOST_FUNCTION_TYPE_CREATE_CONTRACT.value,
        )


if __name__ == "__main__":
    unittest.main()
