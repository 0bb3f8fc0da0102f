# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Deploy, invoke, read and upgrade Soroban contracts.

Every state changing operation runs the same pipeline::

    BUILDING -> SIMULATING -> PREPARING -> SIGNING -> SUBMITTING -> POLLING -> SUCCESS
                     |                                                  |
                     +-> SIMULATION_FAILED                              +-> EXECUTION_FAILED
                     +-> SIMULATE_ONLY_COMPLETE

A failed simulation is terminal: nothing is signed or submitted. Simulate-only
invocations stop after simulation and return a result with an empty
transaction hash and ledger 0, so the same call serves read-only queries and
state changing calls.

Failures are raised as one of the :class:`~soroban_sdk.errors.ContractOperationError`
subclasses, e.g. :class:`~soroban_sdk.errors.InvocationError`, whose ``cause``
is the classified error. Argument encoding errors are raised directly. The
manager never retries; see :func:`soroban_sdk.error_parser.retry`.
"""

from __future__ import annotations

import asyncio
import logging
import unittest
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Type
from unittest.mock import AsyncMock

from . import scval
from .address import Address
from .ed25519 import Keypair, Signer
from .error_parser import classify, parse_simulation_error, parse_transaction_error
from .errors import (
    ArgumentCountMismatchError,
    ContractOperationError,
    ContractSimulationError,
    DeploymentError,
    ErrorKind,
    EventQueryError,
    InvalidArgumentShapeError,
    InvocationError,
    StateQueryError,
    SimulationFailedError,
    TransactionFailedError,
    TransactionTimeoutError,
    UpgradeError,
)
from .rpc_client import ClientConfig, RpcClient
from .transactions import (
    CreateContract,
    HostFunction,
    InvokeContract,
    TransactionRequest,
    UploadContractWasm,
    wasm_hash,
)
from .types import (
    AccountState,
    ContractEvent,
    DeploymentResult,
    EventFilter,
    GetTransactionResponse,
    InvocationRequest,
    InvocationResult,
    LedgerEntry,
    LedgerKey,
    SendStatus,
    SendTransactionResponse,
    SimulationResult,
    TransactionStatus,
    UpgradeResult,
)
from .wire_value import WireValue

# Source account for simulations that have no signer.
PLACEHOLDER_ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"
PLACEHOLDER_SEQUENCE = 1


class InvocationState(Enum):
    BUILDING = "building"
    SIMULATING = "simulating"
    SIMULATION_FAILED = "simulation_failed"
    SIMULATE_ONLY_COMPLETE = "simulate_only_complete"
    PREPARING = "preparing"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCESS = "success"
    EXECUTION_FAILED = "execution_failed"


class ContractManager:
    """Runs contract operations against an :class:`~soroban_sdk.rpc_client.RpcClient`."""

    rpc_client: RpcClient
    client_config: ClientConfig

    def __init__(
        self, rpc_client: RpcClient, client_config: ClientConfig = ClientConfig()
    ):
        self.rpc_client = rpc_client
        self.client_config = client_config

    async def deploy(
        self,
        code: bytes,
        signer: Signer,
        network_passphrase: str,
        salt: Optional[bytes] = None,
        simulate_only: bool = False,
    ) -> DeploymentResult:
        """Upload ``code`` and instantiate a contract from it.

        A transaction carries a single host function, so the upload and the
        instantiation are submitted one after the other. The contract address
        is derived from the deployer and ``salt``; a random salt is used when
        none is given. Simulate-only deployments only simulate the upload and
        return the derived address.
        """
        try:
            deployer = signer.public_key()
            create = CreateContract(deployer, wasm_hash(code), salt)
            self._transition(InvocationState.BUILDING, None, "deploy")
            account = await self.rpc_client.get_account(deployer)
            upload = self._build(
                account, network_passphrase, HostFunction(UploadContractWasm(code))
            )
            simulation = await self._simulate(upload, None, "deploy")
            if simulate_only:
                self._transition(InvocationState.SIMULATE_ONLY_COMPLETE, None, "deploy")
                return DeploymentResult(create.contract_id(network_passphrase), "", 0)
            await self._submit(upload, simulation, signer, None, "deploy")

            account = AccountState(account.account_id, account.sequence + 1)
            request = self._build(account, network_passphrase, HostFunction(create))
            simulation = await self._simulate(request, None, "deploy")
            transaction_hash, result = await self._submit(
                request, simulation, signer, None, "deploy"
            )
            contract_id = _contract_id(result.return_value) or create.contract_id(
                network_passphrase
            )
            return DeploymentResult(contract_id, transaction_hash, result.ledger)
        except Exception as e:
            raise _wrap(DeploymentError, e) from e

    async def invoke(
        self,
        contract_id: str,
        method: str,
        args: Sequence[Any] = (),
        signer: Optional[Signer] = None,
        network_passphrase: str = "",
        simulate_only: bool = False,
        hints: Optional[Sequence[Any]] = None,
    ) -> InvocationResult:
        """Call ``method`` on a deployed contract.

        ``args`` are encoded with :func:`soroban_sdk.scval.encode_args`, using
        ``hints`` when given. Without a signer only simulate-only calls are
        allowed.

        Raises:
            CodecError: If the arguments cannot be encoded.
            InvocationError: If any step of the pipeline failed.
        """
        return await self.invoke_request(
            InvocationRequest(
                contract_id=contract_id,
                method=method,
                args=tuple(args),
                signer=signer,
                network_passphrase=network_passphrase,
                simulate_only=simulate_only,
                hints=hints,
            )
        )

    async def invoke_request(self, request: InvocationRequest) -> InvocationResult:
        contract_id = request.contract_id
        method = request.method
        self._transition(InvocationState.BUILDING, contract_id, method)
        args = scval.encode_args(request.args, request.hints)
        if request.signer is None and not request.simulate_only:
            raise InvalidArgumentShapeError(
                "A signer is required unless simulate_only is set"
            )

        try:
            account = await self._source_account(
                request.signer.public_key() if request.signer is not None else None
            )
            transaction = self._build(
                account,
                request.network_passphrase,
                HostFunction(InvokeContract(contract_id, method, args)),
            )
            simulation = await self._simulate(transaction, contract_id, method)
            if request.simulate_only:
                self._transition(
                    InvocationState.SIMULATE_ONLY_COMPLETE, contract_id, method
                )
                return InvocationResult(
                    result=simulation.result or WireValue.void(),
                    transaction_hash="",
                    ledger=0,
                    events=simulation.events,
                    auth=simulation.auth,
                )
            transaction_hash, result = await self._submit(
                transaction, simulation, request.signer, contract_id, method
            )
            return InvocationResult(
                result=result.return_value or WireValue.void(),
                transaction_hash=transaction_hash,
                ledger=result.ledger,
                events=result.events,
                auth=result.auth,
            )
        except Exception as e:
            raise _wrap(InvocationError, e, contract_id, method) from e

    async def simulate(
        self,
        contract_id: str,
        method: str,
        args: Sequence[Any] = (),
        network_passphrase: str = "",
        source: Optional[str] = None,
        hints: Optional[Sequence[Any]] = None,
    ) -> SimulationResult:
        """Dry run a call and return the full simulation including its cost.

        Without ``source`` the simulation runs from a placeholder account.
        """
        self._transition(InvocationState.BUILDING, contract_id, method)
        encoded = scval.encode_args(args, hints)
        try:
            account = await self._source_account(source)
            transaction = self._build(
                account,
                network_passphrase,
                HostFunction(InvokeContract(contract_id, method, encoded)),
            )
            simulation = await self._simulate(transaction, contract_id, method)
            self._transition(InvocationState.SIMULATE_ONLY_COMPLETE, contract_id, method)
            return simulation
        except Exception as e:
            raise _wrap(ContractSimulationError, e, contract_id, method) from e

    async def read_state(
        self,
        contract_id: str,
        key: Any,
        network_passphrase: str = "",
        durability: str = "persistent",
        hint: Optional[Any] = None,
    ) -> Any:
        """Read one storage entry of a contract.

        ``key`` is encoded like an unhinted argument, so a ``str`` key becomes
        a string Wire Value; pass ``scval.to_symbol(...)`` for symbol keys.
        Returns ``None`` when the entry does not exist.
        """
        wire_key = scval.encode(key)
        try:
            entries = await self.rpc_client.get_ledger_entries(
                [LedgerKey(contract_id, wire_key, durability)]
            )
        except Exception as e:
            raise _wrap(StateQueryError, e, contract_id) from e
        if not entries or entries[0].value is None:
            return None
        return scval.decode(entries[0].value, hint)

    async def query_events(
        self,
        contract_id: str,
        start_ledger: int,
        end_ledger: Optional[int] = None,
        event_types: Optional[List[str]] = None,
        topics: Optional[List[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[ContractEvent]:
        """Historical events of one contract, decoded, in ledger order.

        ``event_types`` are matched as symbol first topics; ``topics`` are
        encoded like unhinted arguments and matched against the topics that
        follow.
        """
        flt = EventFilter(
            [contract_id],
            [scval.to_symbol(event_type) for event_type in event_types or []],
            [scval.encode(topic) for topic in topics or []],
        )
        try:
            events = await self.rpc_client.get_events(
                start_ledger,
                [flt],
                end_ledger=end_ledger,
                limit=limit,
            )
        except Exception as e:
            raise _wrap(EventQueryError, e, contract_id) from e
        return [event.with_decoded() for event in events]

    async def upgrade(
        self,
        contract_id: str,
        new_code: bytes,
        signer: Signer,
        network_passphrase: str,
    ) -> UpgradeResult:
        """Upload ``new_code`` and call the contract's ``upgrade`` method with its hash.

        The contract must export ``upgrade(new_wasm_hash: BytesN<32>)`` and
        authorize ``signer`` to call it.
        """
        new_hash = wasm_hash(new_code)
        try:
            self._transition(InvocationState.BUILDING, contract_id, "upgrade")
            account = await self.rpc_client.get_account(signer.public_key())
            upload = self._build(
                account, network_passphrase, HostFunction(UploadContractWasm(new_code))
            )
            simulation = await self._simulate(upload, contract_id, "upgrade")
            await self._submit(upload, simulation, signer, contract_id, "upgrade")

            account = AccountState(account.account_id, account.sequence + 1)
            request = self._build(
                account,
                network_passphrase,
                HostFunction(
                    InvokeContract(contract_id, "upgrade", [WireValue.bytes(new_hash)])
                ),
            )
            simulation = await self._simulate(request, contract_id, "upgrade")
            transaction_hash, result = await self._submit(
                request, simulation, signer, contract_id, "upgrade"
            )
            return UpgradeResult(contract_id, transaction_hash, new_hash.hex(), result.ledger)
        except Exception as e:
            raise _wrap(UpgradeError, e, contract_id, "upgrade") from e

    async def wait_for_transaction(self, transaction_hash: str) -> GetTransactionResponse:
        """
        Polls until the transaction reaches a terminal status, for up to the
        duration specified in client_config.
        """
        waited = 0.0
        while True:
            response = await self.rpc_client.get_transaction(transaction_hash)
            if response.status.is_terminal():
                return response
            if waited >= self.client_config.transaction_wait_in_seconds:
                raise TransactionTimeoutError(transaction_hash, waited)
            await asyncio.sleep(self.client_config.poll_interval)
            waited += self.client_config.poll_interval

    #
    # Pipeline steps
    #

    async def _source_account(self, account_id: Optional[str]) -> AccountState:
        if account_id is None:
            return AccountState(PLACEHOLDER_ACCOUNT, PLACEHOLDER_SEQUENCE)
        return await self.rpc_client.get_account(account_id)

    def _build(
        self,
        account: AccountState,
        network_passphrase: str,
        operation: HostFunction,
    ) -> TransactionRequest:
        return TransactionRequest(
            source=account.account_id,
            sequence=account.sequence + 1,
            fee=self.client_config.base_fee,
            network_passphrase=network_passphrase,
            operations=[operation],
            timeout=self.client_config.transaction_timeout,
        )

    async def _simulate(
        self,
        request: TransactionRequest,
        contract_id: Optional[str] = None,
        method: Optional[str] = None,
    ) -> SimulationResult:
        self._transition(InvocationState.SIMULATING, contract_id, method)
        simulation = await self.rpc_client.simulate_transaction(request)
        if not simulation.success:
            self._transition(InvocationState.SIMULATION_FAILED, contract_id, method)
            cause = parse_simulation_error(simulation.error, simulation.result)
            raise SimulationFailedError(
                f"Simulation failed: {simulation.error}",
                cause.code,
                cause.kind,
                simulation,
            )
        return simulation

    async def _submit(
        self,
        request: TransactionRequest,
        simulation: SimulationResult,
        signer: Signer,
        contract_id: Optional[str] = None,
        method: Optional[str] = None,
    ) -> Tuple[str, GetTransactionResponse]:
        self._transition(InvocationState.PREPARING, contract_id, method)
        prepared = request.prepare(simulation)

        self._transition(InvocationState.SIGNING, contract_id, method)
        prepared.sign(signer)

        self._transition(InvocationState.SUBMITTING, contract_id, method)
        sent: SendTransactionResponse = await self.rpc_client.send_transaction(prepared)
        if sent.status != SendStatus.PENDING.value:
            self._transition(InvocationState.EXECUTION_FAILED, contract_id, method)
            raise TransactionFailedError(
                f"Transaction failed: {sent.status}", sent.status, sent.hash, sent.error
            )

        self._transition(InvocationState.POLLING, contract_id, method)
        result = await self.wait_for_transaction(sent.hash)
        if result.status != TransactionStatus.SUCCESS:
            self._transition(InvocationState.EXECUTION_FAILED, contract_id, method)
            cause = parse_transaction_error(result)
            raise TransactionFailedError(
                f"Transaction execution failed: {result.result}",
                result.status.value,
                sent.hash,
                result.result,
                cause.code,
                cause.kind,
            )

        self._transition(InvocationState.SUCCESS, contract_id, method)
        return sent.hash, result

    def _transition(
        self, state: InvocationState, contract_id: Optional[str], method: Optional[str]
    ):
        logging.debug(f"{contract_id or '-'}.{method or '-'}: {state.name}")


def _wrap(
    error_class: Type[ContractOperationError],
    error: Exception,
    contract_id: Optional[str] = None,
    method: Optional[str] = None,
) -> ContractOperationError:
    return error_class(classify(error).with_context(contract_id, method))


def _contract_id(value: Optional[WireValue]) -> str:
    if value is None or value.tag != WireValue.ADDRESS:
        return ""
    return str(value.value)


class Test(unittest.IsolatedAsyncioTestCase):
    PASSPHRASE = "Test SDF Network ; September 2015"

    def setUp(self):
        self.contract_id = str(Address.from_contract_id(b"\x09" * 32))
        self.keypair = Keypair.random()
        self.rpc = AsyncMock()
        self.rpc.get_account.return_value = AccountState(self.keypair.public_key(), 10)
        self.rpc.simulate_transaction.return_value = SimulationResult(
            result=WireValue.u32(42)
        )
        self.rpc.send_transaction.return_value = SendTransactionResponse("PENDING", "ab12")
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.SUCCESS, ledger=77, return_value=WireValue.u32(43)
        )
        self.manager = ContractManager(
            self.rpc, ClientConfig(transaction_wait_in_seconds=2, poll_interval=0.01)
        )

    async def test_simulate_only_invoke(self):
        result = await self.manager.invoke(
            self.contract_id, "get", [], None, self.PASSPHRASE, simulate_only=True
        )
        self.assertEqual(result.transaction_hash, "")
        self.assertEqual(result.ledger, 0)
        self.assertEqual(result.decoded(), 42)
        self.rpc.send_transaction.assert_not_called()
        self.rpc.get_transaction.assert_not_called()
        self.rpc.get_account.assert_not_called()
        transaction = self.rpc.simulate_transaction.call_args.args[0]
        self.assertEqual(transaction.source, PLACEHOLDER_ACCOUNT)

    async def test_full_invoke(self):
        result = await self.manager.invoke(
            self.contract_id,
            "increment",
            [5],
            self.keypair,
            self.PASSPHRASE,
            hints=["u32"],
        )
        self.assertEqual(result.transaction_hash, "ab12")
        self.assertEqual(result.ledger, 77)
        self.assertEqual(result.result, WireValue.u32(43))

        sent = self.rpc.send_transaction.call_args.args[0]
        self.assertEqual(sent.sequence, 11)
        self.assertEqual(len(sent.signatures), 1)
        call = sent.operations[0].value
        self.assertEqual(call.function, "increment")
        self.assertEqual(call.args, [WireValue.u32(5)])

    async def test_simulation_failure_never_submits(self):
        self.rpc.simulate_transaction.return_value = SimulationResult(
            error="host invocation failed: insufficient balance"
        )
        with self.assertRaises(InvocationError) as context:
            await self.manager.invoke(
                self.contract_id, "transfer", [], self.keypair, self.PASSPHRASE
            )
        error = context.exception
        self.assertEqual(error.kind, ErrorKind.INSUFFICIENT_BALANCE)
        self.assertEqual(error.code, 4002)
        self.assertEqual(error.contract_id, self.contract_id)
        self.assertEqual(error.method, "transfer")
        self.assertIsInstance(error.cause, SimulationFailedError)
        self.assertEqual(
            str(error),
            "Contract invocation failed: Simulation failed: host invocation failed: insufficient balance",
        )
        self.rpc.send_transaction.assert_not_called()

    async def test_send_rejected(self):
        self.rpc.send_transaction.return_value = SendTransactionResponse("ERROR", "ab12")
        with self.assertRaises(InvocationError) as context:
            await self.manager.invoke(
                self.contract_id, "transfer", [], self.keypair, self.PASSPHRASE
            )
        self.assertEqual(str(context.exception), "Contract invocation failed: Transaction failed: ERROR")
        self.assertEqual(context.exception.kind, ErrorKind.TRANSACTION_FAILED)
        self.rpc.get_transaction.assert_not_called()

    async def test_execution_failure_keeps_result(self):
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.FAILED, ledger=77, result="AAAAAAAAAGT////3AAAAAA=="
        )
        with self.assertRaises(InvocationError) as context:
            await self.manager.invoke(
                self.contract_id, "transfer", [], self.keypair, self.PASSPHRASE
            )
        cause = context.exception.cause
        self.assertIsInstance(cause, TransactionFailedError)
        self.assertEqual(cause.result, "AAAAAAAAAGT////3AAAAAA==")
        self.assertEqual(cause.transaction_hash, "ab12")

    async def test_polls_until_terminal(self):
        self.rpc.get_transaction.side_effect = [
            GetTransactionResponse(TransactionStatus.NOT_FOUND),
            GetTransactionResponse(TransactionStatus.SUCCESS, ledger=5),
        ]
        result = await self.manager.invoke(
            self.contract_id, "ping", [], self.keypair, self.PASSPHRASE
        )
        self.assertEqual(result.ledger, 5)
        self.assertEqual(self.rpc.get_transaction.call_count, 2)

    async def test_poll_timeout(self):
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.NOT_FOUND
        )
        manager = ContractManager(
            self.rpc, ClientConfig(transaction_wait_in_seconds=0, poll_interval=0.01)
        )
        with self.assertRaises(InvocationError) as context:
            await manager.invoke(self.contract_id, "ping", [], self.keypair, self.PASSPHRASE)
        self.assertEqual(context.exception.kind, ErrorKind.TIMEOUT)

    async def test_codec_errors_are_not_wrapped(self):
        with self.assertRaises(ArgumentCountMismatchError):
            await self.manager.invoke(
                self.contract_id, "f", [1, 2], self.keypair, self.PASSPHRASE, hints=["u32"]
            )
        with self.assertRaises(InvalidArgumentShapeError):
            await self.manager.invoke(self.contract_id, "f", [], None, self.PASSPHRASE)
        self.rpc.simulate_transaction.assert_not_called()

    async def test_network_error_is_classified(self):
        import httpx

        self.rpc.get_account.side_effect = httpx.ConnectError("refused")
        with self.assertRaises(InvocationError) as context:
            await self.manager.invoke(
                self.contract_id, "f", [], self.keypair, self.PASSPHRASE
            )
        self.assertEqual(context.exception.kind, ErrorKind.NETWORK_ERROR)
        self.assertIsInstance(context.exception.__cause__, httpx.ConnectError)

    async def test_deploy(self):
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.SUCCESS,
            ledger=90,
            return_value=WireValue.address(self.contract_id),
        )
        result = await self.manager.deploy(
            b"\x00asm", self.keypair, self.PASSPHRASE, salt=b"\x01" * 32
        )
        self.assertEqual(result.contract_id, self.contract_id)
        self.assertEqual(result.ledger, 90)
        sent = [call.args[0] for call in self.rpc.send_transaction.call_args_list]
        self.assertEqual(
            [request.operations[0].variant() for request in sent],
            [HostFunction.UPLOAD_CONTRACT_WASM, HostFunction.CREATE_CONTRACT],
        )
        self.assertEqual([request.sequence for request in sent], [11, 12])
        self.assertEqual(sent[0].operations[0].value, UploadContractWasm(b"\x00asm"))
        self.assertEqual(sent[1].operations[0].value.salt, b"\x01" * 32)
        self.assertEqual(sent[1].operations[0].value.wasm_hash, wasm_hash(b"\x00asm"))

    async def test_simulate_only_deploy(self):
        result = await self.manager.deploy(
            b"\x00asm", self.keypair, self.PASSPHRASE, salt=b"\x01" * 32, simulate_only=True
        )
        expected = CreateContract(
            self.keypair.public_key(), wasm_hash(b"\x00asm"), b"\x01" * 32
        ).contract_id(self.PASSPHRASE)
        self.assertEqual(result, DeploymentResult(expected, "", 0))
        self.rpc.send_transaction.assert_not_called()
        simulated = self.rpc.simulate_transaction.call_args.args[0]
        self.assertEqual(simulated.operations[0].variant(), HostFunction.UPLOAD_CONTRACT_WASM)

    async def test_deploy_upload_failure_stops(self):
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.FAILED, ledger=90
        )
        with self.assertRaises(DeploymentError):
            await self.manager.deploy(b"\x00asm", self.keypair, self.PASSPHRASE)
        self.assertEqual(self.rpc.send_transaction.call_count, 1)

    async def test_deploy_bad_salt(self):
        with self.assertRaises(DeploymentError) as context:
            await self.manager.deploy(b"\x00asm", self.keypair, self.PASSPHRASE, salt=b"x")
        self.assertEqual(context.exception.kind, ErrorKind.INVALID_ARGUMENT_SHAPE)

    async def test_upgrade(self):
        result = await self.manager.upgrade(
            self.contract_id, b"new code", self.keypair, self.PASSPHRASE
        )
        self.assertEqual(result.new_wasm_hash, wasm_hash(b"new code").hex())
        self.assertEqual(result.contract_id, self.contract_id)
        sent = [call.args[0] for call in self.rpc.send_transaction.call_args_list]
        self.assertEqual(len(sent), 2)
        self.assertEqual(sent[0].operations[0].value, UploadContractWasm(b"new code"))
        self.assertEqual(
            sent[1].operations[0].value,
            InvokeContract(
                self.contract_id, "upgrade", [WireValue.bytes(wasm_hash(b"new code"))]
            ),
        )

    async def test_simulate(self):
        simulation = await self.manager.simulate(self.contract_id, "get", [], self.PASSPHRASE)
        self.assertEqual(simulation.result, WireValue.u32(42))

        self.rpc.simulate_transaction.return_value = SimulationResult(error="method not found")
        with self.assertRaises(ContractSimulationError) as context:
            await self.manager.simulate(self.contract_id, "nope", [], self.PASSPHRASE)
        self.assertEqual(context.exception.kind, ErrorKind.METHOD_NOT_FOUND)

    async def test_read_state(self):
        self.rpc.get_ledger_entries.return_value = []
        self.assertIsNone(await self.manager.read_state(self.contract_id, "counter"))

        self.rpc.get_ledger_entries.return_value = [LedgerEntry(None, WireValue.u64(12))]
        self.assertEqual(await self.manager.read_state(self.contract_id, "counter"), 12)
        key = self.rpc.get_ledger_entries.call_args.args[0][0]
        self.assertEqual(key.key, WireValue.string("counter"))

        self.rpc.get_ledger_entries.side_effect = RuntimeError("contract not found")
        with self.assertRaises(StateQueryError) as context:
            await self.manager.read_state(self.contract_id, "counter")
        self.assertEqual(context.exception.kind, ErrorKind.CONTRACT_NOT_FOUND)

    async def test_query_events(self):
        self.rpc.get_events.return_value = [
            ContractEvent(self.contract_id, "contract", [WireValue.symbol("mint")], WireValue.i128(5))
        ]
        events = await self.manager.query_events(
            self.contract_id, 100, 200, event_types=["mint"]
        )
        self.assertEqual(events[0].decoded_topics, ["mint"])
        self.assertEqual(events[0].decoded_data, 5)
        args = self.rpc.get_events.call_args
        self.assertEqual(args.args[0], 100)
        self.assertEqual(args.args[1][0].event_types, [WireValue.symbol("mint")])
        self.assertEqual(args.args[1][0].topics, [])
        self.assertEqual(args.kwargs["end_ledger"], 200)


if __name__ == "__main__":
    unittest.main()
