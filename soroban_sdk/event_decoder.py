# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Helpers that turn raw contract events into Python values.

:func:`decode_event` decodes topics and data without type information.
:func:`decode_event_with_schema` uses an :class:`EventSchema` to decode each
topic and data field with its declared type and names the fields. The
``decode_*_event`` helpers read the conventional token and error events;
they return ``None`` for events of a different shape.
"""

from __future__ import annotations

import json
import unittest
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from . import scval
from .address import Address
from .types import Bounds, ContractEvent
from .wire_value import ScType, WireValue

Hint = Union[str, ScType]


@dataclass(frozen=True)
class EventSchema:
    name: str
    topic_types: Sequence[Hint] = ()
    data_types: Sequence[Hint] = ()


@dataclass(frozen=True)
class ParsedEvent:
    """An event decoded against its schema.

    ``topics`` maps ``topic0``, ``topic1``, ... to the decoded topics. With a
    single data type ``data`` is the decoded value, otherwise a dict of
    ``field0``, ``field1``, ...
    """

    name: str
    event: ContractEvent
    event_type: Any = None
    topics: Dict[str, Any] = field(default_factory=dict)
    data: Any = None


@dataclass(frozen=True)
class TransferEvent:
    from_address: Any
    to_address: Any
    amount: str


@dataclass(frozen=True)
class ApprovalEvent:
    owner: Any
    spender: Any
    amount: str


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    code: Optional[int] = None
    context: Any = None


@dataclass(frozen=True)
class FieldMapping:
    """Where a custom event field lives: a topic index or a data map key."""

    type: Hint
    topic: Optional[int] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class EventTypeStats:
    total_events: int
    event_types: Dict[str, int]
    contracts: Dict[str, int]
    time_range: Bounds


def decode_event(event: ContractEvent, definition: Optional[Any] = None) -> ContractEvent:
    """Fill in decoded topics and data; the name comes from ``definition`` if given."""
    name = getattr(definition, "name", None) or "unknown"
    return event.with_decoded(name)


def decode_event_with_schema(event: ContractEvent, schema: EventSchema) -> ParsedEvent:
    decoded_topics = [
        scval.decode(topic, _hint_at(schema.topic_types, index))
        for index, topic in enumerate(event.topics)
    ]

    if len(schema.data_types) == 1:
        decoded_data = scval.decode(event.data, schema.data_types[0])
    elif event.data.tag == WireValue.VEC:
        decoded_data = [
            scval.decode(item, _hint_at(schema.data_types, index))
            for index, item in enumerate(event.data.value)
        ]
    else:
        decoded_data = scval.decode(event.data)

    if len(schema.data_types) == 1:
        data = decoded_data
    else:
        items = decoded_data if isinstance(decoded_data, list) else []
        data = {
            f"field{index}": items[index] if index < len(items) else None
            for index in range(len(schema.data_types))
        }

    decoded = ContractEvent(
        contract_id=event.contract_id,
        type=event.type,
        topics=event.topics,
        data=event.data,
        timestamp=event.timestamp,
        ledger=event.ledger,
        tx_hash=event.tx_hash,
        decoded_topics=decoded_topics,
        decoded_data=decoded_data,
        event_name=schema.name,
    )
    return ParsedEvent(
        name=schema.name,
        event=decoded,
        event_type=decoded_topics[0] if schema.topic_types and decoded_topics else None,
        topics={f"topic{index}": topic for index, topic in enumerate(decoded_topics)},
        data=data,
    )


def decode_transfer_event(event: ContractEvent) -> Optional[TransferEvent]:
    """Read a ``transfer`` event.

    Two layouts are understood: topics ``[transfer, from, to, amount]``, or a
    ``transfer`` topic with a map payload holding ``from``, ``to`` and
    ``amount``.
    """
    event = _decoded(event)
    topics = event.decoded_topics
    if len(topics) >= 4:
        return TransferEvent(topics[1], topics[2], _amount(topics[3]))
    if topics and topics[0] == "transfer" and event.decoded_data:
        data = event.decoded_data if isinstance(event.decoded_data, dict) else {}
        return TransferEvent(
            data.get("from") or "", data.get("to") or "", _amount(data.get("amount"))
        )
    return None


def decode_approval_event(event: ContractEvent) -> Optional[ApprovalEvent]:
    event = _decoded(event)
    topics = event.decoded_topics
    if len(topics) >= 4:
        return ApprovalEvent(topics[1], topics[2], _amount(topics[3]))
    if topics and topics[0] == "approve" and event.decoded_data:
        data = event.decoded_data if isinstance(event.decoded_data, dict) else {}
        return ApprovalEvent(
            data.get("owner") or "", data.get("spender") or "", _amount(data.get("amount"))
        )
    return None


def decode_error_event(event: ContractEvent) -> Optional[ErrorEvent]:
    event = _decoded(event)
    topics = event.decoded_topics
    if not topics or topics[0] != "error":
        return None
    info = event.decoded_data
    if isinstance(info, str):
        return ErrorEvent(info)
    if isinstance(info, dict):
        return ErrorEvent(
            info.get("message") or info.get("error") or "Unknown error",
            info.get("code"),
            info.get("context"),
        )
    return None


def decode_custom_event(
    event: ContractEvent, field_mapping: Dict[str, FieldMapping]
) -> Dict[str, Any]:
    """Extract named fields from topics or from a map payload.

    Fields whose topic index or data key is missing are left out.
    """
    decoded: Dict[str, Any] = {}
    entries = event.data.value if event.data.tag == WireValue.MAP else []
    for name, mapping in field_mapping.items():
        if mapping.topic is not None:
            if mapping.topic < len(event.topics):
                decoded[name] = scval.decode(event.topics[mapping.topic], mapping.type)
        elif mapping.data is not None:
            for key, value in entries:
                if scval.decode(key) == mapping.data:
                    decoded[name] = scval.decode(value, mapping.type)
                    break
    return decoded


def create_event_decoder(
    schemas: Sequence[EventSchema],
) -> Callable[[ContractEvent], Union[ParsedEvent, ContractEvent]]:
    """Build a decoder that picks the schema named by the first topic or event name."""

    def decoder(event: ContractEvent) -> Union[ParsedEvent, ContractEvent]:
        event = _decoded(event)
        first = event.decoded_topics[0] if event.decoded_topics else None
        for schema in schemas:
            if first == schema.name or event.event_name == schema.name:
                return decode_event_with_schema(event, schema)
        return decode_event(event)

    return decoder


def filter_events_by_type(events: List[ContractEvent], event_type: str) -> List[ContractEvent]:
    matches = []
    for event in events:
        decoded = _decoded(event)
        first = decoded.decoded_topics[0] if decoded.decoded_topics else None
        if first == event_type or decoded.event_name == event_type:
            matches.append(event)
    return matches


def group_events_by_transaction(
    events: List[ContractEvent],
) -> Dict[str, List[ContractEvent]]:
    grouped: Dict[str, List[ContractEvent]] = {}
    for event in events:
        grouped.setdefault(event.tx_hash, []).append(event)
    return grouped


def extract_event_stats(events: List[ContractEvent]) -> EventTypeStats:
    event_types: Dict[str, int] = {}
    contracts: Dict[str, int] = {}
    for event in events:
        name = _event_type(_decoded(event))
        event_types[name] = event_types.get(name, 0) + 1
        contracts[event.contract_id] = contracts.get(event.contract_id, 0) + 1
    return EventTypeStats(
        total_events=len(events),
        event_types=event_types,
        contracts=contracts,
        time_range=Bounds.of([event.timestamp for event in events]),
    )


def format_event(event: ContractEvent) -> str:
    """One line summary: ``[time] type (contract) Topics: [...] Data: ...``."""
    event = _decoded(event)
    timestamp = datetime.fromtimestamp(event.timestamp, timezone.utc).isoformat()
    line = f"[{timestamp}] {_event_type(event)} ({event.contract_id})"
    if len(event.decoded_topics) > 1:
        topics = ", ".join(_render(topic) for topic in event.decoded_topics[1:])
        line += f" Topics: [{topics}]"
    if event.decoded_data is not None:
        line += f" Data: {_render(event.decoded_data)}"
    return line


def _decoded(event: ContractEvent) -> ContractEvent:
    if event.decoded_topics is not None:
        return event
    return event.with_decoded()


def _event_type(event: ContractEvent) -> str:
    if event.decoded_topics and event.decoded_topics[0]:
        return str(event.decoded_topics[0])
    return event.event_name or "unknown"


def _hint_at(hints: Sequence[Hint], index: int) -> Optional[Hint]:
    return hints[index] if index < len(hints) else None


def _amount(value: Any) -> str:
    return "0" if value is None else str(value)


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class Test(unittest.TestCase):
    FROM = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"
    TO = str(Address.from_account_key(b"\x01" * 32))
    CONTRACT = str(Address.from_contract_id(b"\x02" * 32))

    def topic(self, value) -> WireValue:
        # Event names are published as symbols.
        if isinstance(value, str) and not Address.is_valid(value):
            return scval.to_symbol(value)
        return scval.encode(value)

    def event(self, topics, data, tx_hash="aa", timestamp=1_700_000_000) -> ContractEvent:
        return ContractEvent(
            contract_id=self.CONTRACT,
            type="contract",
            topics=[self.topic(topic) for topic in topics],
            data=data,
            timestamp=timestamp,
            ledger=10,
            tx_hash=tx_hash,
        )

    def test_decode_event(self):
        event = decode_event(self.event(["mint"], WireValue.i128(5)))
        self.assertEqual(event.decoded_topics, ["mint"])
        self.assertEqual(event.decoded_data, 5)
        self.assertEqual(event.event_name, "unknown")
        self.assertEqual(decode_event(event, EventSchema("Mint")).event_name, "Mint")

    def test_schema_single_data(self):
        schema = EventSchema("transfer", ["symbol", "address", "address"], ["i128"])
        parsed = decode_event_with_schema(
            self.event(["transfer", self.FROM, self.TO], WireValue.i128(99)), schema
        )
        self.assertEqual(parsed.event_type, "transfer")
        self.assertEqual(parsed.topics, {"topic0": "transfer", "topic1": self.FROM, "topic2": self.TO})
        self.assertEqual(parsed.data, 99)
        self.assertEqual(parsed.event.event_name, "transfer")

    def test_schema_tuple_data(self):
        schema = EventSchema("swap", ["symbol"], ["u32", "string"])
        parsed = decode_event_with_schema(
            self.event(["swap"], WireValue.vec([WireValue.u32(1), WireValue.string("x")])),
            schema,
        )
        self.assertEqual(parsed.data, {"field0": 1, "field1": "x"})

        mismatched = decode_event_with_schema(
            self.event(["swap"], WireValue.vec([WireValue.string("1"), WireValue.string("x")])),
            schema,
        )
        self.assertEqual(mismatched.data, {"field0": None, "field1": "x"})

    def test_transfer_event(self):
        transfer = decode_transfer_event(
            self.event(["transfer", self.FROM, self.TO, 100], WireValue.void())
        )
        self.assertEqual(transfer, TransferEvent(self.FROM, self.TO, "100"))

        payload = scval.encode({"from": self.FROM, "to": self.TO, "amount": 7})
        self.assertEqual(
            decode_transfer_event(self.event(["transfer"], payload)),
            TransferEvent(self.FROM, self.TO, "7"),
        )
        self.assertIsNone(decode_transfer_event(self.event(["mint"], WireValue.i128(1))))

    def test_approval_event(self):
        approval = decode_approval_event(
            self.event(["approve", self.FROM, self.TO, 3], WireValue.void())
        )
        self.assertEqual(approval, ApprovalEvent(self.FROM, self.TO, "3"))
        self.assertIsNone(decode_approval_event(self.event(["approve"], WireValue.void())))

    def test_error_event(self):
        self.assertEqual(
            decode_error_event(self.event(["error"], WireValue.string("boom"))),
            ErrorEvent("boom"),
        )
        payload = scval.encode({"message": "bad", "code": 4})
        self.assertEqual(
            decode_error_event(self.event(["error"], payload)), ErrorEvent("bad", 4)
        )
        self.assertEqual(
            decode_error_event(self.event(["error"], scval.encode({"code": 4}))).error,
            "Unknown error",
        )
        self.assertIsNone(decode_error_event(self.event(["mint"], WireValue.string("x"))))

    def test_custom_event(self):
        payload = WireValue.map([(WireValue.symbol("amount"), WireValue.i128(12))])
        decoded = decode_custom_event(
            self.event(["deposit", self.FROM], payload),
            {
                "user": FieldMapping("address", topic=1),
                "amount": FieldMapping("i128", data="amount"),
                "memo": FieldMapping("string", data="memo"),
                "extra": FieldMapping("u32", topic=5),
            },
        )
        self.assertEqual(decoded, {"user": self.FROM, "amount": 12})

    def test_create_event_decoder(self):
        decoder = create_event_decoder([EventSchema("mint", ["symbol"], ["i128"])])
        parsed = decoder(self.event(["mint"], WireValue.i128(1)))
        self.assertIsInstance(parsed, ParsedEvent)
        self.assertEqual(parsed.data, 1)

        basic = decoder(self.event(["burn"], WireValue.i128(1)))
        self.assertIsInstance(basic, ContractEvent)
        self.assertEqual(basic.event_name, "unknown")

    def test_grouping_and_stats(self):
        events = [
            self.event(["mint"], WireValue.void(), "aa", 5),
            self.event(["mint"], WireValue.void(), "bb", 0),
            self.event(["burn"], WireValue.void(), "aa", 9),
        ]
        self.assertEqual(len(filter_events_by_type(events, "mint")), 2)
        grouped = group_events_by_transaction(events)
        self.assertEqual({k: len(v) for k, v in grouped.items()}, {"aa": 2, "bb": 1})

        stats = extract_event_stats(events)
        self.assertEqual(stats.total_events, 3)
        self.assertEqual(stats.event_types, {"mint": 2, "burn": 1})
        self.assertEqual(stats.contracts, {self.CONTRACT: 3})
        self.assertEqual(stats.time_range, Bounds(5, 9))
        self.assertEqual(extract_event_stats([]).time_range, Bounds(0, 0))

    def test_format_event(self):
        line = format_event(self.event(["mint", 5], WireValue.string("memo"), timestamp=0))
        self.assertEqual(
            line, f"[1970-01-01T00:00:00+00:00] mint ({self.CONTRACT}) Topics: [5] Data: memo"
        )


if __name__ == "__main__":
    unittest.main()
