# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Live contract event subscriptions on top of the pull based event query.

Each subscription owns a cursor, the last ledger it has scanned, and two
tasks:

- a poll task that wakes up every ``poll_interval`` seconds, asks for the
  latest ledger and, when it moved past the cursor, queries the events in
  ``(cursor, latest]``;
- a delivery task that drains the subscription's queue and calls
  ``on_event`` for each decoded event in the order the query returned them.

A poll only advances the cursor after all of its events were delivered, even
when it found none, so no ledger range is scanned twice or skipped. Errors
raised while polling or delivering go to ``on_error`` (or the log) and the
subscription keeps polling.

``unsubscribe`` stops future polls only. A poll that is already running
finishes and its events are still delivered.

Examples:
    Following transfers of a token contract::

        monitor = ContractEventMonitor(SorobanRpcClient(url))
        subscription_id = await monitor.subscribe(
            contract_id, print, event_types=["transfer"]
        )
        ...
        monitor.unsubscribe(subscription_id)
        await monitor.destroy()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import string
import time
import unittest
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set
from unittest.mock import AsyncMock

from . import scval
from .address import Address
from .error_parser import classify
from .errors import ErrorKind, EventQueryError, InvalidArgumentShapeError, SorobanError
from .rpc_client import RpcClient
from .types import Bounds, ContractEvent, EventFilter, EventStats, EventSubscription
from .wire_value import WireValue

ID_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
ID_SUFFIX_LENGTH = 9


@dataclass
class EventMonitorConfig:
    """
    poll_interval: Seconds between polls of one subscription
    query_limit: Maximum number of events fetched per query
    """

    poll_interval: float = 5.0
    query_limit: int = 1000


@dataclass
class _SubscriptionState:
    subscription: EventSubscription
    event_filter: EventFilter
    cursor: int
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    poll_task: Optional[asyncio.Task] = None
    delivery_task: Optional[asyncio.Task] = None


class ContractEventMonitor:
    """Registry of live subscriptions and one-shot event queries.

    The registry belongs to this instance; create one monitor per consumer and
    call :meth:`destroy` when done with it.
    """

    rpc_client: RpcClient
    config: EventMonitorConfig
    _subscriptions: Dict[str, _SubscriptionState]
    _issued_ids: Set[str]
    _tasks: Set[asyncio.Task]

    def __init__(
        self, rpc_client: RpcClient, config: EventMonitorConfig = EventMonitorConfig()
    ):
        self.rpc_client = rpc_client
        self.config = config
        self._subscriptions = {}
        self._issued_ids = set()
        self._tasks = set()

    async def subscribe(
        self,
        contract_id: str,
        on_event: Callable[[ContractEvent], Any],
        event_types: Optional[List[str]] = None,
        on_error: Optional[Callable[[SorobanError], Any]] = None,
        on_close: Optional[Callable[[], Any]] = None,
    ) -> str:
        """Start following the events of ``contract_id``.

        Callbacks may be plain functions or coroutine functions. Only events
        emitted after the current latest ledger are delivered.

        Raises:
            InvalidArgumentShapeError: If an event type is not a valid symbol.
            Exception: If the latest ledger cannot be fetched. ``on_error`` is
                called with the classified error before it is raised.
        """
        event_filter = _event_filter(contract_id, event_types)
        subscription_id = self._generate_id(contract_id)
        try:
            cursor = await self.rpc_client.get_latest_ledger()
        except Exception as e:
            if on_error is not None:
                await _call(on_error, classify(e))
            raise

        state = _SubscriptionState(
            subscription=EventSubscription(
                id=subscription_id,
                contract_id=contract_id,
                on_event=on_event,
                event_types=list(event_types) if event_types else None,
                on_error=on_error,
                on_close=on_close,
            ),
            event_filter=event_filter,
            cursor=cursor,
        )
        self._subscriptions[subscription_id] = state
        state.delivery_task = self._spawn(self._deliver(state))
        state.poll_task = self._spawn(self._run(state))
        logging.info(f"subscribed {subscription_id} at ledger {cursor}")
        return subscription_id

    def unsubscribe(self, subscription_id: str):
        """Stop a subscription. Unknown ids are ignored."""
        state = self._subscriptions.pop(subscription_id, None)
        if state is None:
            return
        state.stopped.set()
        on_close = state.subscription.on_close
        if on_close is not None:
            result = on_close()
            if inspect.isawaitable(result):
                self._spawn(result)
        logging.info(f"unsubscribed {subscription_id}")

    def unsubscribe_all(self):
        for subscription_id in list(self._subscriptions):
            self.unsubscribe(subscription_id)

    async def destroy(self):
        """Unsubscribe everything and wait for the background tasks to finish."""
        self.unsubscribe_all()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def subscriptions(self) -> List[EventSubscription]:
        return [state.subscription for state in self._subscriptions.values()]

    async def poll(self, subscription_id: str) -> int:
        """Run one poll of a subscription now and return how many events it delivered.

        Raises:
            KeyError: If the subscription does not exist.
        """
        state = self._subscriptions.get(subscription_id)
        if state is None:
            raise KeyError(f"Unknown subscription: {subscription_id}")
        return await self._poll(state)

    async def query_events(
        self,
        contract_id: str,
        start_ledger: int,
        end_ledger: Optional[int] = None,
        event_types: Optional[List[str]] = None,
        topics: Optional[List[Any]] = None,
    ) -> List[ContractEvent]:
        """One-shot historical query; subscription cursors are not touched."""
        flt = _event_filter(contract_id, event_types, topics)
        try:
            events = await self.rpc_client.get_events(
                start_ledger, [flt], end_ledger=end_ledger, limit=self.config.query_limit
            )
        except Exception as e:
            raise EventQueryError(classify(e).with_context(contract_id)) from e
        return [event.with_decoded() for event in events]

    @staticmethod
    def filter_events_by_topic(
        events: List[ContractEvent], topic: Any
    ) -> List[ContractEvent]:
        return [event for event in events if topic in _decoded_topics(event)]

    @staticmethod
    def filter_events_by_contract(
        events: List[ContractEvent], contract_id: str
    ) -> List[ContractEvent]:
        return [event for event in events if event.contract_id == contract_id]

    @staticmethod
    def filter_events_by_time_range(
        events: List[ContractEvent], start_time: int, end_time: int
    ) -> List[ContractEvent]:
        return [event for event in events if start_time <= event.timestamp <= end_time]

    @staticmethod
    def get_event_stats(events: List[ContractEvent]) -> EventStats:
        return EventStats(
            total_events=len(events),
            unique_contracts=len({event.contract_id for event in events}),
            unique_types=len({event.type for event in events}),
            ledger_range=Bounds.of([event.ledger for event in events]),
            time_range=Bounds.of([event.timestamp for event in events]),
        )

    async def _run(self, state: _SubscriptionState):
        try:
            while not await _wait(state.stopped, self.config.poll_interval):
                await self._poll(state)
            # Let a poll that is still running deliver before delivery stops.
            async with state.lock:
                state.delivery_task.cancel()
        except asyncio.CancelledError:
            state.delivery_task.cancel()
        except Exception as e:
            logging.error(e, exc_info=True)

    async def _poll(self, state: _SubscriptionState) -> int:
        subscription = state.subscription
        async with state.lock:
            try:
                latest = await self.rpc_client.get_latest_ledger()
                if latest <= state.cursor:
                    return 0
                events = await self.rpc_client.get_events(
                    state.cursor + 1,
                    [state.event_filter],
                    end_ledger=latest,
                    limit=self.config.query_limit,
                )
            except Exception as e:
                await self._report(state, e)
                return 0

            for event in events:
                await state.queue.put(event.with_decoded())
            await state.queue.join()
            logging.debug(
                f"{subscription.id}: {len(events)} events in ({state.cursor}, {latest}]"
            )
            state.cursor = latest
            return len(events)

    async def _deliver(self, state: _SubscriptionState):
        try:
            while True:
                event = await state.queue.get()
                try:
                    await _call(state.subscription.on_event, event)
                except Exception as e:
                    await self._report(state, e)
                finally:
                    state.queue.task_done()
        except asyncio.CancelledError:
            return

    async def _report(self, state: _SubscriptionState, error: Exception):
        on_error = state.subscription.on_error
        if on_error is None:
            logging.error(error, exc_info=True)
            return
        try:
            await _call(on_error, classify(error).with_context(state.subscription.contract_id))
        except Exception as e:
            logging.error(e, exc_info=True)

    def _spawn(self, coroutine) -> asyncio.Task:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _generate_id(self, contract_id: str) -> str:
        while True:
            suffix = "".join(random.choices(ID_SUFFIX_ALPHABET, k=ID_SUFFIX_LENGTH))
            subscription_id = f"{contract_id[:8]}_{int(time.time() * 1000)}_{suffix}"
            if subscription_id not in self._issued_ids:
                self._issued_ids.add(subscription_id)
                return subscription_id


def _event_filter(
    contract_id: str,
    event_types: Optional[List[str]] = None,
    topics: Optional[List[Any]] = None,
) -> EventFilter:
    return EventFilter(
        [contract_id],
        [scval.to_symbol(event_type) for event_type in event_types or []],
        [scval.encode(topic) for topic in topics or []],
    )


def _decoded_topics(event: ContractEvent) -> List[Any]:
    if event.decoded_topics is not None:
        return event.decoded_topics
    return [scval.decode(topic) for topic in event.topics]


async def _call(callback: Callable[..., Any], *args: Any):
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def _wait(event: asyncio.Event, timeout: float) -> bool:
    """True if ``event`` was set within ``timeout`` seconds."""
    try:
        await asyncio.wait_for(event.wait(), timeout)
    except asyncio.TimeoutError:
        return False
    return True


class Test(unittest.IsolatedAsyncioTestCase):
    CONTRACT = str(Address.from_contract_id(bytes(32)))

    def event(self, ledger: int, name: str = "transfer", contract: str = CONTRACT) -> ContractEvent:
        return ContractEvent(
            contract_id=contract,
            type="contract",
            topics=[WireValue.symbol(name)],
            data=WireValue.u32(ledger),
            timestamp=1_700_000_000 + ledger,
            ledger=ledger,
        )

    async def asyncSetUp(self):
        self.rpc = AsyncMock()
        self.rpc.get_events.return_value = []
        # Long interval so only explicit polls run.
        self.monitor = ContractEventMonitor(self.rpc, EventMonitorConfig(poll_interval=3600))

    async def asyncTearDown(self):
        await self.monitor.destroy()

    async def test_cursor_advances_only_on_new_ledgers(self):
        self.rpc.get_latest_ledger.side_effect = [100, 100, 150]
        subscription_id = await self.monitor.subscribe(self.CONTRACT, lambda event: None)

        self.assertEqual(await self.monitor.poll(subscription_id), 0)
        self.rpc.get_events.assert_not_called()

        await self.monitor.poll(subscription_id)
        self.rpc.get_events.assert_called_once()
        args = self.rpc.get_events.call_args
        self.assertEqual(args.args[0], 101)
        self.assertEqual(args.kwargs["end_ledger"], 150)
        self.assertEqual(args.kwargs["limit"], 1000)
        self.assertEqual(args.args[1][0].contract_ids, [self.CONTRACT])

    async def test_delivers_decoded_events_in_order(self):
        self.rpc.get_latest_ledger.side_effect = [100, 110, 120]
        self.rpc.get_events.side_effect = [
            [self.event(101), self.event(105)],
            [self.event(111)],
        ]
        received = []

        async def on_event(event):
            received.append(event)

        subscription_id = await self.monitor.subscribe(
            self.CONTRACT, on_event, event_types=["transfer"]
        )
        self.assertEqual(await self.monitor.poll(subscription_id), 2)
        self.assertEqual(await self.monitor.poll(subscription_id), 1)

        self.assertEqual([event.ledger for event in received], [101, 105, 111])
        self.assertEqual(received[0].decoded_topics, ["transfer"])
        self.assertEqual(received[0].decoded_data, 101)
        self.assertEqual(self.rpc.get_events.call_args_list[1].args[0], 111)
        flt = self.rpc.get_events.call_args.args[1][0]
        self.assertEqual(flt.event_types, [WireValue.symbol("transfer")])

    async def test_lifecycle(self):
        self.rpc.get_latest_ledger.return_value = 100
        closed = []
        first = await self.monitor.subscribe(
            self.CONTRACT, print, on_close=lambda: closed.append(1)
        )
        self.assertEqual(len(self.monitor.subscriptions()), 1)

        self.monitor.unsubscribe(first)
        self.monitor.unsubscribe(first)
        self.monitor.unsubscribe("unknown")
        self.assertEqual(self.monitor.subscriptions(), [])
        self.assertEqual(closed, [1])

        ids = [await self.monitor.subscribe(self.CONTRACT, print) for _ in range(3)]
        self.assertEqual(len(set(ids + [first])), 4)
        self.monitor.unsubscribe_all()
        self.assertEqual(self.monitor.subscriptions(), [])

        with self.assertRaises(KeyError):
            await self.monitor.poll(first)

    async def test_subscribe_failure(self):
        import httpx

        self.rpc.get_latest_ledger.side_effect = httpx.ConnectError("refused")
        errors = []
        with self.assertRaises(httpx.ConnectError):
            await self.monitor.subscribe(self.CONTRACT, print, on_error=errors.append)
        self.assertEqual(errors[0].kind, ErrorKind.NETWORK_ERROR)
        self.assertEqual(self.monitor.subscriptions(), [])

    async def test_subscribe_rejects_invalid_event_type(self):
        self.rpc.get_latest_ledger.return_value = 100
        with self.assertRaises(InvalidArgumentShapeError):
            await self.monitor.subscribe(
                self.CONTRACT, print, event_types=["token-transfer"]
            )
        self.assertEqual(self.monitor.subscriptions(), [])
        self.rpc.get_latest_ledger.assert_not_called()

    async def test_poll_error_keeps_subscription(self):
        self.rpc.get_latest_ledger.side_effect = [100, RuntimeError("rpc down"), 120]
        errors = []
        subscription_id = await self.monitor.subscribe(
            self.CONTRACT, print, on_error=errors.append
        )
        self.assertEqual(await self.monitor.poll(subscription_id), 0)
        self.assertEqual(errors[0].message, "rpc down")
        self.assertEqual(errors[0].contract_id, self.CONTRACT)

        await self.monitor.poll(subscription_id)
        self.assertEqual(self.rpc.get_events.call_args.args[0], 101)

    async def test_in_flight_poll_delivers_after_unsubscribe(self):
        self.rpc.get_latest_ledger.side_effect = [100, 101]
        gate = asyncio.Event()

        async def get_events(*args, **kwargs):
            await gate.wait()
            return [self.event(101)]

        self.rpc.get_events.side_effect = get_events
        received = []
        subscription_id = await self.monitor.subscribe(self.CONTRACT, received.append)

        poll = asyncio.create_task(self.monitor.poll(subscription_id))
        while not self.rpc.get_events.called:
            await asyncio.sleep(0)
        self.monitor.unsubscribe(subscription_id)
        gate.set()

        self.assertEqual(await poll, 1)
        self.assertEqual([event.ledger for event in received], [101])

    async def test_background_polling(self):
        ledgers = iter([100, 101])
        self.rpc.get_latest_ledger.side_effect = lambda: next(ledgers, 101)
        self.rpc.get_events.side_effect = [[self.event(101)], []]
        delivered = asyncio.Event()
        monitor = ContractEventMonitor(self.rpc, EventMonitorConfig(poll_interval=0.01))

        await monitor.subscribe(self.CONTRACT, lambda event: delivered.set())
        await asyncio.wait_for(delivered.wait(), 5)
        await monitor.destroy()
        self.assertEqual(self.rpc.get_events.call_count, 1)

    async def test_query_events(self):
        self.rpc.get_events.return_value = [self.event(5, "mint")]
        events = await self.monitor.query_events(
            self.CONTRACT, 1, 10, event_types=["mint"], topics=["GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"]
        )
        self.assertEqual(events[0].decoded_topics, ["mint"])
        flt = self.rpc.get_events.call_args.args[1][0]
        self.assertEqual(flt.event_types, [WireValue.symbol("mint")])
        self.assertEqual(flt.topics[0].tag, WireValue.ADDRESS)

        self.rpc.get_events.side_effect = RuntimeError("boom")
        with self.assertRaises(EventQueryError) as context:
            await self.monitor.query_events(self.CONTRACT, 1)
        self.assertEqual(str(context.exception), "Event query failed: boom")

    def test_filters(self):
        other = "CBBB"
        events = [self.event(1, "mint"), self.event(2, "burn"), self.event(3, "mint", other)]
        self.assertEqual(len(ContractEventMonitor.filter_events_by_topic(events, "mint")), 2)
        self.assertEqual(len(ContractEventMonitor.filter_events_by_contract(events, other)), 1)
        in_range = ContractEventMonitor.filter_events_by_time_range(
            events, 1_700_000_001, 1_700_000_002
        )
        self.assertEqual([event.ledger for event in in_range], [1, 2])

    def test_stats(self):
        self.assertEqual(
            ContractEventMonitor.get_event_stats([]),
            EventStats(0, 0, 0, Bounds(0, 0), Bounds(0, 0)),
        )
        stats = ContractEventMonitor.get_event_stats(
            [self.event(7), self.event(3), self.event(5, contract="CBBB")]
        )
        self.assertEqual(stats.total_events, 3)
        self.assertEqual(stats.unique_contracts, 2)
        self.assertEqual(stats.unique_types, 1)
        self.assertEqual(stats.ledger_range, Bounds(3, 7))
        self.assertEqual(stats.time_range, Bounds(1_700_000_003, 1_700_000_007))


if __name__ == "__main__":
    unittest.main()
