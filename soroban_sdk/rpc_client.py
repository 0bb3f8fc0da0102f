# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Access to a Soroban RPC endpoint.

The contract manager and the event monitor only depend on the
:class:`RpcClient` protocol: account lookup, latest ledger, simulation,
submission, transaction status, ledger entry lookup and event queries. Any
object with these coroutines can be plugged in, which is how the unit tests
replace the network with ``AsyncMock``.

:class:`SorobanRpcClient` implements the protocol on top of
``stellar_sdk``'s ``SorobanServerAsync``, with requests sent through an
``httpx`` client. Transactions travel as base64 envelope XDR and values as
``SCVal`` XDR, converted to and from Wire Values by
:mod:`soroban_sdk.xdr_codec`.

Examples:
    Querying the network::

        client = SorobanRpcClient("https://soroban-testnet.stellar.org")
        ledger = await client.get_latest_ledger()
        await client.close()
"""

from __future__ import annotations

import logging
import unittest
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Awaitable, Dict, List, Optional, Tuple, TypeVar
from unittest.mock import AsyncMock, patch

import httpx
from stellar_sdk import Address as StellarAddress
from stellar_sdk import scval as stellar_scval
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.client.base_async_client import BaseAsyncClient
from stellar_sdk.client.response import Response
from stellar_sdk.exceptions import SorobanRpcErrorResponse
from stellar_sdk.soroban_rpc import EventFilter as RpcEventFilter
from stellar_sdk.soroban_rpc import EventFilterType, EventInfo, GetTransactionStatus
from stellar_sdk.soroban_server_async import SorobanServerAsync
from typing_extensions import Protocol

from . import xdr_codec
from .address import Address
from .errors import ApiError, RpcError
from .metadata import Metadata
from .transactions import HostFunction, InvokeContract, TransactionRequest
from .types import (
    AccountState,
    ContractEvent,
    EventFilter,
    GetTransactionResponse,
    LedgerEntry,
    LedgerKey,
    ResourceCost,
    SendTransactionResponse,
    SimulationResult,
    TransactionStatus,
)
from .wire_value import WireValue

T = TypeVar("T")

DURABILITY = {
    "persistent": stellar_xdr.ContractDataDurability.PERSISTENT,
    "temporary": stellar_xdr.ContractDataDurability.TEMPORARY,
}


@dataclass
class ClientConfig:
    """Common configuration for the RPC client and the contract manager.

    Attributes:
        base_fee: Inclusion fee in stroops added before the resource fee
        transaction_timeout: Validity window of submitted transactions in seconds
        transaction_wait_in_seconds: How long to poll for a terminal status
        poll_interval: Seconds between status polls
        http2: Enable HTTP/2
        api_key: Optional bearer token for authenticated endpoints
    """

    base_fee: int = 100
    transaction_timeout: int = 30
    transaction_wait_in_seconds: int = 20
    poll_interval: float = 1.0
    http2: bool = True
    api_key: Optional[str] = None


class RpcClient(Protocol):
    async def get_account(self, account_id: str) -> AccountState:
        ...

    async def get_latest_ledger(self) -> int:
        ...

    async def simulate_transaction(
        self, transaction: TransactionRequest
    ) -> SimulationResult:
        ...

    async def send_transaction(
        self, transaction: TransactionRequest
    ) -> SendTransactionResponse:
        ...

    async def get_transaction(self, transaction_hash: str) -> GetTransactionResponse:
        ...

    async def get_ledger_entries(self, keys: List[LedgerKey]) -> List[LedgerEntry]:
        ...

    async def get_events(
        self,
        start_ledger: int,
        filters: List[EventFilter],
        end_ledger: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ContractEvent]:
        ...

    async def close(self):
        ...


class HttpxClient(BaseAsyncClient):
    """Sends the requests of ``SorobanServerAsync`` through an ``httpx.AsyncClient``.

    HTTP statuses of 400 and above are raised as :class:`ApiError` before the
    body is read as a JSON-RPC response.
    """

    client: httpx.AsyncClient

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        max_content_size: Optional[int] = None,
    ) -> Response:
        return _response(url, await self.client.get(url, params=params))

    async def post(
        self,
        url: str,
        data: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Response:
        if json_data is not None:
            response = await self.client.post(url, json=json_data)
        else:
            response = await self.client.post(url, data=data)
        return _response(url, response)

    def stream(
        self, url: str, params: Optional[Dict[str, str]] = None
    ) -> AsyncGenerator[Dict[str, Any], None]:
        raise NotImplementedError("Soroban RPC has no streaming endpoints")

    async def close(self):
        await self.client.aclose()


class SorobanRpcClient:
    """``SorobanServerAsync`` backed implementation of :class:`RpcClient`."""

    base_url: str
    client: httpx.AsyncClient
    client_config: ClientConfig
    server: SorobanServerAsync

    def __init__(self, base_url: str, client_config: ClientConfig = ClientConfig()):
        self.base_url = base_url
        limits = httpx.Limits()
        # No pool timeout: callers wait as long as requests make progress.
        timeout = httpx.Timeout(60.0, pool=None)
        headers = {Metadata.SOROBAN_HEADER: Metadata.get_soroban_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
        )
        self.client_config = client_config
        if client_config.api_key:
            self.client.headers["Authorization"] = f"Bearer {client_config.api_key}"
        self.server = SorobanServerAsync(base_url, client=HttpxClient(self.client))

    async def close(self):
        await self.server.close()

    async def get_account(self, account_id: str) -> AccountState:
        account = await self._call(self.server.load_account(account_id))
        return AccountState(account_id, account.sequence)

    async def get_latest_ledger(self) -> int:
        response = await self._call(self.server.get_latest_ledger())
        return response.sequence

    async def simulate_transaction(
        self, transaction: TransactionRequest
    ) -> SimulationResult:
        response = await self._call(
            self.server.simulate_transaction(transaction.to_envelope())
        )
        events = [
            _contract_event(stellar_xdr.DiagnosticEvent.from_xdr(event).event)
            for event in response.events or []
        ]
        if response.error:
            return SimulationResult(
                error=response.error, events=events, latest_ledger=response.latest_ledger
            )

        results = response.results or []
        first = results[0] if results else None
        return SimulationResult(
            result=xdr_codec.from_base64(first.xdr) if first is not None else None,
            cost=_resource_cost(response.transaction_data, response.min_resource_fee),
            events=events,
            auth=list(first.auth or []) if first is not None else [],
            transaction_data=response.transaction_data,
            latest_ledger=response.latest_ledger,
        )

    async def send_transaction(
        self, transaction: TransactionRequest
    ) -> SendTransactionResponse:
        response = await self._call(self.server.send_transaction(transaction.to_envelope()))
        return SendTransactionResponse(
            status=response.status.value,
            hash=response.hash,
            error=response.error_result_xdr,
        )

    async def get_transaction(self, transaction_hash: str) -> GetTransactionResponse:
        response = await self._call(self.server.get_transaction(transaction_hash))
        ledger = response.ledger or 0
        timestamp = response.create_at or 0

        return_value, events = None, []
        if response.result_meta_xdr:
            return_value, events = _transaction_meta(
                response.result_meta_xdr, ledger, transaction_hash, timestamp
            )
        if response.status == GetTransactionStatus.FAILED:
            # Contract errors are reported as diagnostic events.
            events.extend(
                _contract_event(
                    stellar_xdr.DiagnosticEvent.from_xdr(event).event,
                    ledger,
                    transaction_hash,
                    timestamp,
                )
                for event in response.diagnostic_events_xdr or []
            )
        return GetTransactionResponse(
            status=TransactionStatus(response.status.value),
            ledger=ledger,
            return_value=return_value,
            result=response.result_xdr,
            events=events,
            auth=_envelope_auth(response.envelope_xdr) if response.envelope_xdr else [],
        )

    async def get_ledger_entries(self, keys: List[LedgerKey]) -> List[LedgerEntry]:
        response = await self._call(
            self.server.get_ledger_entries([_ledger_key(key) for key in keys])
        )
        entries = []
        for entry in response.entries or []:
            data = stellar_xdr.LedgerEntryData.from_xdr(entry.xdr)
            value = None
            if data.contract_data is not None:
                value = xdr_codec.from_sc_val(data.contract_data.val)
            entries.append(
                LedgerEntry(
                    key=entry.key,
                    value=value,
                    last_modified_ledger=entry.last_modified_ledger,
                    live_until_ledger=entry.live_until_ledger,
                )
            )
        return entries

    async def get_events(
        self,
        start_ledger: int,
        filters: List[EventFilter],
        end_ledger: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ContractEvent]:
        response = await self._call(
            self.server.get_events(
                start_ledger=start_ledger,
                # The RPC end ledger is exclusive.
                end_ledger=end_ledger + 1 if end_ledger is not None else None,
                filters=[_rpc_filter(flt) for flt in filters],
                limit=limit,
            )
        )
        return [_event_info(event) for event in response.events]

    async def _call(self, request: Awaitable[T]) -> T:
        try:
            return await request
        except SorobanRpcErrorResponse as e:
            logging.debug("RPC request failed: %s (%s)", e.message, e.code)
            raise RpcError(e.message or "Unknown RPC error", e.code, e.data) from e


def _response(url: str, response: httpx.Response) -> Response:
    if response.status_code >= 400:
        raise ApiError(response.text, response.status_code)
    return Response(response.status_code, response.text, dict(response.headers), url)


def _ledger_key(key: LedgerKey) -> stellar_xdr.LedgerKey:
    return stellar_xdr.LedgerKey(
        stellar_xdr.LedgerEntryType.CONTRACT_DATA,
        contract_data=stellar_xdr.LedgerKeyContractData(
            contract=StellarAddress(key.contract_id).to_xdr_sc_address(),
            key=xdr_codec.to_sc_val(key.key),
            durability=DURABILITY[key.durability],
        ),
    )


def _rpc_filter(flt: EventFilter) -> RpcEventFilter:
    """One topic filter per event type, each followed by ``topics`` and a wildcard tail."""
    topics = None
    if flt.event_types or flt.topics:
        firsts = [xdr_codec.to_base64(event_type) for event_type in flt.event_types] or ["*"]
        rest = [xdr_codec.to_base64(topic) for topic in flt.topics]
        topics = [[first] + rest + ["**"] for first in firsts]
    return RpcEventFilter(
        event_type=EventFilterType(flt.type),
        contract_ids=list(flt.contract_ids),
        topics=topics,
    )


def _event_info(event: EventInfo) -> ContractEvent:
    return ContractEvent(
        contract_id=event.contract_id or "",
        type=event.event_type,
        topics=[xdr_codec.from_base64(topic) for topic in event.topic],
        data=xdr_codec.from_base64(event.value),
        timestamp=int(event.ledger_close_at.timestamp()),
        ledger=event.ledger,
        tx_hash=event.transaction_hash,
    )


def _contract_event(
    event: stellar_xdr.ContractEvent, ledger: int = 0, tx_hash: str = "", timestamp: int = 0
) -> ContractEvent:
    contract_id = ""
    if event.contract_id is not None:
        contract_id = str(Address.from_contract_id(event.contract_id.contract_id.hash))
    body = event.body.v0
    return ContractEvent(
        contract_id=contract_id,
        type=event.type.name.lower(),
        topics=[xdr_codec.from_sc_val(topic) for topic in body.topics],
        data=xdr_codec.from_sc_val(body.data),
        timestamp=timestamp,
        ledger=ledger,
        tx_hash=tx_hash,
    )


def _transaction_meta(
    meta_xdr: str, ledger: int, tx_hash: str, timestamp: int
) -> Tuple[Optional[WireValue], List[ContractEvent]]:
    """Return value and contract events of an executed transaction."""
    meta = stellar_xdr.TransactionMeta.from_xdr(meta_xdr)
    if meta.v4 is not None:
        soroban = meta.v4.soroban_meta
        raw_events = [event for operation in meta.v4.operations for event in operation.events]
    elif meta.v3 is not None:
        soroban = meta.v3.soroban_meta
        raw_events = soroban.events if soroban is not None else []
    else:
        return None, []

    return_value = None
    if soroban is not None and soroban.return_value is not None:
        return_value = xdr_codec.from_sc_val(soroban.return_value)
    events = [_contract_event(event, ledger, tx_hash, timestamp) for event in raw_events]
    return return_value, events


def _envelope_auth(envelope_xdr: str) -> List[str]:
    envelope = stellar_xdr.TransactionEnvelope.from_xdr(envelope_xdr)
    if envelope.v1 is None:
        return []
    auth = []
    for operation in envelope.v1.tx.operations:
        invoke = operation.body.invoke_host_function_op
        if invoke is not None:
            auth.extend(entry.to_xdr() for entry in invoke.auth)
    return auth


def _resource_cost(transaction_data: Optional[str], min_resource_fee: Optional[int]) -> ResourceCost:
    # Memory use is no longer reported by the RPC endpoint.
    instructions = 0
    if transaction_data:
        data = stellar_xdr.SorobanTransactionData.from_xdr(transaction_data)
        instructions = data.resources.instructions.uint32
    return ResourceCost(
        cpu_instructions=instructions,
        memory_bytes=0,
        min_resource_fee=min_resource_fee or 0,
    )


class Test(unittest.IsolatedAsyncioTestCase):
    URL = "https://rpc.example"
    CONTRACT = str(Address.from_contract_id(b"\x02" * 32))

    def response(self, status: int, body: Any) -> httpx.Response:
        return httpx.Response(status, json=body)

    def result(self, result: Dict[str, Any]) -> httpx.Response:
        return self.response(200, {"jsonrpc": "2.0", "id": "1", "result": result})

    def contract_event(self, topic: str, data: WireValue) -> stellar_xdr.ContractEvent:
        return stellar_xdr.ContractEvent(
            ext=stellar_xdr.ExtensionPoint(0),
            contract_id=stellar_xdr.ContractID(stellar_xdr.Hash(b"\x02" * 32)),
            type=stellar_xdr.ContractEventType.CONTRACT,
            body=stellar_xdr.ContractEventBody(
                0,
                v0=stellar_xdr.ContractEventV0(
                    topics=[stellar_scval.to_symbol(topic)],
                    data=xdr_codec.to_sc_val(data),
                ),
            ),
        )

    async def asyncSetUp(self):
        with patch.object(Metadata, "get_soroban_header_val", return_value="soroban-python-sdk/test"):
            self.client = SorobanRpcClient(self.URL, ClientConfig(http2=False, api_key="secret"))

    async def asyncTearDown(self):
        await self.client.close()

    async def test_headers(self):
        self.assertEqual(self.client.client.headers["Authorization"], "Bearer secret")
        self.assertEqual(
            self.client.client.headers[Metadata.SOROBAN_HEADER], "soroban-python-sdk/test"
        )

    async def test_latest_ledger(self):
        post = AsyncMock(
            return_value=self.result(
                {
                    "id": "ab",
                    "protocolVersion": 22,
                    "sequence": 512,
                    "closeTime": 1700000000,
                    "headerXdr": "",
                    "metadataXdr": "",
                }
            )
        )
        with patch.object(self.client.client, "post", post):
            self.assertEqual(await self.client.get_latest_ledger(), 512)
        payload = post.call_args.kwargs["json"]
        self.assertEqual(payload["method"], "getLatestLedger")
        self.assertEqual(payload["jsonrpc"], "2.0")
        self.assertEqual(post.call_args.args[0], self.URL)

    async def test_http_error(self):
        post = AsyncMock(return_value=self.response(503, {"detail": "down"}))
        with patch.object(self.client.client, "post", post):
            with self.assertRaises(ApiError) as context:
                await self.client.get_latest_ledger()
        self.assertEqual(context.exception.status_code, 503)

    async def test_rpc_error(self):
        post = AsyncMock(
            return_value=self.response(
                200, {"jsonrpc": "2.0", "id": "1", "error": {"code": -32602, "message": "bad params"}}
            )
        )
        with patch.object(self.client.client, "post", post):
            with self.assertRaises(RpcError) as context:
                await self.client.get_latest_ledger()
        self.assertEqual(context.exception.rpc_code, -32602)
        self.assertEqual(context.exception.message, "bad params")
        self.assertIsInstance(context.exception.__cause__, SorobanRpcErrorResponse)

    async def test_get_events(self):
        body = {
            "events": [
                {
                    "type": "contract",
                    "ledger": 101,
                    "ledgerClosedAt": "2023-11-14T22:13:20Z",
                    "contractId": self.CONTRACT,
                    "id": "0000433791-0",
                    "topic": [xdr_codec.to_base64(WireValue.symbol("mint"))],
                    "value": xdr_codec.to_base64(WireValue.u32(3)),
                    "inSuccessfulContractCall": True,
                    "operationIndex": 0,
                    "transactionIndex": 0,
                    "txHash": "ff",
                }
            ],
            "latestLedger": 200,
            "oldestLedger": 1,
            "latestLedgerCloseTime": 1700000000,
            "oldestLedgerCloseTime": 1600000000,
            "cursor": "0000433791-0",
        }
        post = AsyncMock(return_value=self.result(body))
        flt = EventFilter([self.CONTRACT], [WireValue.symbol("mint"), WireValue.symbol("burn")])
        with patch.object(self.client.client, "post", post):
            events = await self.client.get_events(101, [flt], end_ledger=150, limit=1000)

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].topics, [WireValue.symbol("mint")])
        self.assertEqual(events[0].data, WireValue.u32(3))
        self.assertEqual(events[0].timestamp, 1700000000)
        self.assertEqual(events[0].tx_hash, "ff")

        params = post.call_args.kwargs["json"]["params"]
        self.assertEqual(params["startLedger"], 101)
        self.assertEqual(params["endLedger"], 151)
        self.assertEqual(params["pagination"]["limit"], 1000)
        self.assertEqual(params["filters"][0]["contractIds"], [self.CONTRACT])
        self.assertEqual(
            params["filters"][0]["topics"],
            [
                [xdr_codec.to_base64(WireValue.symbol("mint")), "**"],
                [xdr_codec.to_base64(WireValue.symbol("burn")), "**"],
            ],
        )

    async def test_filter_without_event_types(self):
        flt = _rpc_filter(EventFilter([self.CONTRACT], topics=[WireValue.u32(1)]))
        self.assertEqual(flt.topics, [["*", xdr_codec.to_base64(WireValue.u32(1)), "**"]])
        self.assertIsNone(_rpc_filter(EventFilter([self.CONTRACT])).topics)

    async def test_get_transaction(self):
        meta = stellar_xdr.TransactionMeta(
            3,
            v3=stellar_xdr.TransactionMetaV3(
                ext=stellar_xdr.ExtensionPoint(0),
                tx_changes_before=stellar_xdr.LedgerEntryChanges([]),
                operations=[],
                tx_changes_after=stellar_xdr.LedgerEntryChanges([]),
                soroban_meta=stellar_xdr.SorobanTransactionMeta(
                    ext=stellar_xdr.SorobanTransactionMetaExt(0),
                    events=[self.contract_event("mint", WireValue.i128(5))],
                    return_value=stellar_scval.to_bool(True),
                    diagnostic_events=[],
                ),
            ),
        )
        body = {
            "status": "SUCCESS",
            "txHash": "ab",
            "latestLedger": 10,
            "latestLedgerCloseTime": 1700000000,
            "oldestLedger": 1,
            "oldestLedgerCloseTime": 1600000000,
            "resultMetaXdr": meta.to_xdr(),
            "ledger": 9,
            "createdAt": 1699999999,
        }
        post = AsyncMock(return_value=self.result(body))
        with patch.object(self.client.client, "post", post):
            response = await self.client.get_transaction("ab")
        self.assertEqual(response.status, TransactionStatus.SUCCESS)
        self.assertEqual(response.ledger, 9)
        self.assertEqual(response.return_value, WireValue.bool(True))
        self.assertEqual(len(response.events), 1)
        event = response.events[0]
        self.assertEqual(event.contract_id, self.CONTRACT)
        self.assertEqual(event.type, "contract")
        self.assertEqual(event.topics, [WireValue.symbol("mint")])
        self.assertEqual(event.data, WireValue.i128(5))
        self.assertEqual(event.timestamp, 1699999999)

    async def test_simulate_transaction(self):
        request = TransactionRequest(
            "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF",
            1,
            100,
            "Test SDF Network ; September 2015",
            [HostFunction(InvokeContract(self.CONTRACT, "get", []))],
        )
        body = {
            "minResourceFee": "5000",
            "results": [{"auth": [], "xdr": xdr_codec.to_base64(WireValue.u32(42))}],
            "latestLedger": 12,
        }
        post = AsyncMock(return_value=self.result(body))
        with patch.object(self.client.client, "post", post):
            simulation = await self.client.simulate_transaction(request)
        self.assertTrue(simulation.success)
        self.assertEqual(simulation.result, WireValue.u32(42))
        self.assertEqual(simulation.cost.min_resource_fee, 5000)
        self.assertEqual(simulation.latest_ledger, 12)
        sent = post.call_args.kwargs["json"]["params"]["transaction"]
        self.assertEqual(sent, request.to_xdr())

        post = AsyncMock(return_value=self.result({"error": "HostError: trapped", "latestLedger": 12}))
        with patch.object(self.client.client, "post", post):
            failed = await self.client.simulate_transaction(request)
        self.assertFalse(failed.success)
        self.assertIsNone(failed.result)

    async def test_get_ledger_entries(self):
        key = LedgerKey(self.CONTRACT, WireValue.symbol("counter"))
        data = stellar_xdr.LedgerEntryData(
            stellar_xdr.LedgerEntryType.CONTRACT_DATA,
            contract_data=stellar_xdr.ContractDataEntry(
                ext=stellar_xdr.ExtensionPoint(0),
                contract=StellarAddress(self.CONTRACT).to_xdr_sc_address(),
                key=xdr_codec.to_sc_val(key.key),
                durability=stellar_xdr.ContractDataDurability.PERSISTENT,
                val=stellar_scval.to_uint64(12),
            ),
        )
        body = {
            "entries": [
                {
                    "key": _ledger_key(key).to_xdr(),
                    "xdr": data.to_xdr(),
                    "lastModifiedLedgerSeq": 7,
                    "liveUntilLedgerSeq": 1000,
                }
            ],
            "latestLedger": 10,
        }
        post = AsyncMock(return_value=self.result(body))
        with patch.object(self.client.client, "post", post):
            entries = await self.client.get_ledger_entries([key])
        self.assertEqual(entries[0].value, WireValue.u64(12))
        self.assertEqual(entries[0].last_modified_ledger, 7)
        self.assertEqual(entries[0].live_until_ledger, 1000)
        params = post.call_args.kwargs["json"]["params"]
        self.assertEqual(params["keys"], [_ledger_key(key).to_xdr()])


if __name__ == "__main__":
    unittest.main()
