# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Value types shared by the RPC client, the contract manager and the event
monitor.

Results and events are immutable dataclasses holding Wire Values. The RPC
client builds them from the network's responses; nothing here knows about
XDR.
"""

from __future__ import annotations

import dataclasses
import unittest
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from . import scval
from .wire_value import WireValue


class TransactionStatus(Enum):
    """Status reported for a submitted transaction."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"

    def is_terminal(self) -> bool:
        return self != TransactionStatus.NOT_FOUND


class SendStatus(Enum):
    """Status reported by the submission endpoint."""

    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ContractEvent:
    """An event emitted by a contract.

    ``decoded_topics``, ``decoded_data`` and ``event_name`` are filled in by
    :meth:`with_decoded` or by the event decoder; events straight from the RPC
    client carry only the raw Wire Values.
    """

    contract_id: str
    type: str
    topics: List[WireValue]
    data: WireValue
    timestamp: int = 0
    ledger: int = 0
    tx_hash: str = ""
    decoded_topics: Optional[List[Any]] = None
    decoded_data: Any = None
    event_name: Optional[str] = None

    def with_decoded(self, event_name: Optional[str] = None) -> ContractEvent:
        return dataclasses.replace(
            self,
            decoded_topics=[scval.decode(topic) for topic in self.topics],
            decoded_data=scval.decode(self.data),
            event_name=event_name if event_name is not None else self.event_name,
        )


@dataclass(frozen=True)
class ResourceCost:
    cpu_instructions: int = 0
    memory_bytes: int = 0
    min_resource_fee: int = 0


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of a dry run.

    A result whose ``error`` is set is terminal: it must not be used to
    prepare, sign or submit a transaction.

    ``auth`` holds base64 ``SorobanAuthorizationEntry`` XDR and
    ``transaction_data`` base64 ``SorobanTransactionData`` XDR, both ready to
    be attached to the transaction.
    """

    result: Optional[WireValue] = None
    cost: ResourceCost = field(default_factory=ResourceCost)
    events: List[ContractEvent] = field(default_factory=list)
    auth: List[str] = field(default_factory=list)
    transaction_data: Optional[str] = None
    error: Optional[str] = None
    latest_ledger: int = 0

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class InvocationRequest:
    """Everything needed to invoke one contract method.

    ``signer`` may be omitted only when ``simulate_only`` is set.
    """

    contract_id: str
    method: str
    args: Sequence[Any] = ()
    signer: Any = None
    network_passphrase: str = ""
    simulate_only: bool = False
    hints: Optional[Sequence[Any]] = None


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of an invocation.

    Simulate-only invocations have an empty ``transaction_hash`` and a
    ``ledger`` of 0.
    """

    result: WireValue
    transaction_hash: str = ""
    ledger: int = 0
    events: List[ContractEvent] = field(default_factory=list)
    auth: List[Any] = field(default_factory=list)

    def decoded(self, hint: Any = None) -> Any:
        return scval.decode(self.result, hint)


@dataclass(frozen=True)
class DeploymentResult:
    contract_id: str
    transaction_hash: str
    ledger: int


@dataclass(frozen=True)
class UpgradeResult:
    contract_id: str
    transaction_hash: str
    new_wasm_hash: str
    ledger: int


@dataclass(frozen=True)
class AccountState:
    account_id: str
    sequence: int


@dataclass(frozen=True)
class SendTransactionResponse:
    """``error`` is the base64 ``TransactionResult`` XDR of a rejected submission."""

    status: str
    hash: str
    error: Optional[str] = None


@dataclass(frozen=True)
class GetTransactionResponse:
    """Status of a submitted transaction.

    ``result`` is the base64 ``TransactionResult`` XDR as the RPC endpoint
    returned it.
    """

    status: TransactionStatus
    ledger: int = 0
    return_value: Optional[WireValue] = None
    result: Optional[str] = None
    events: List[ContractEvent] = field(default_factory=list)
    auth: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerKey:
    """A contract storage slot."""

    contract_id: str
    key: WireValue
    durability: str = "persistent"


@dataclass(frozen=True)
class LedgerEntry:
    key: Any
    value: Optional[WireValue]
    last_modified_ledger: int = 0
    live_until_ledger: Optional[int] = None


@dataclass(frozen=True)
class EventFilter:
    """Selects events by emitting contract and by topic.

    An event matches when its first topic is one of ``event_types`` (any
    first topic when empty) and the following topics start with ``topics``.
    """

    contract_ids: List[str]
    event_types: List[WireValue] = field(default_factory=list)
    topics: List[WireValue] = field(default_factory=list)
    type: str = "contract"


@dataclass(frozen=True)
class Bounds:
    """Inclusive minimum and maximum, zero when there was nothing to measure."""

    min: int = 0
    max: int = 0

    @staticmethod
    def of(values: Sequence[int]) -> Bounds:
        positive = [value for value in values if value > 0]
        if not positive:
            return Bounds()
        return Bounds(min(positive), max(positive))


@dataclass(frozen=True)
class EventStats:
    total_events: int = 0
    unique_contracts: int = 0
    unique_types: int = 0
    ledger_range: Bounds = field(default_factory=Bounds)
    time_range: Bounds = field(default_factory=Bounds)


@dataclass(frozen=True)
class EventSubscription:
    """A live event subscription as registered with the event monitor."""

    id: str
    contract_id: str
    on_event: Callable[[ContractEvent], Any]
    event_types: Optional[List[str]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_close: Optional[Callable[[], Any]] = None


class Test(unittest.TestCase):
    def test_event_with_decoded(self):
        event = ContractEvent(
            contract_id="CABC",
            type="contract",
            topics=[WireValue.symbol("transfer")],
            data=WireValue.i128(-5),
            ledger=12,
        )
        self.assertIsNone(event.decoded_topics)

        decoded = event.with_decoded("Transfer")
        self.assertEqual(decoded.decoded_topics, ["transfer"])
        self.assertEqual(decoded.decoded_data, -5)
        self.assertEqual(decoded.event_name, "Transfer")
        self.assertEqual(decoded.with_decoded().event_name, "Transfer")

    def test_simulation_success(self):
        self.assertTrue(SimulationResult(result=WireValue.u32(7)).success)
        failed = SimulationResult(error="insufficient fee")
        self.assertFalse(failed.success)
        self.assertIsNone(failed.result)

    def test_transaction_status(self):
        self.assertTrue(TransactionStatus.FAILED.is_terminal())
        self.assertTrue(TransactionStatus.SUCCESS.is_terminal())
        self.assertFalse(TransactionStatus.NOT_FOUND.is_terminal())

    def test_bounds(self):
        self.assertEqual(Bounds.of([]), Bounds(0, 0))
        self.assertEqual(Bounds.of([0, 5, 3]), Bounds(3, 5))


if __name__ == "__main__":
    unittest.main()
