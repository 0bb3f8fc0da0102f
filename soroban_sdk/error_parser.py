# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Classification of raw failures and the retry policy built on it.

Raw failure material comes in three shapes: an error payload Wire Value
returned by a contract, a free-text message from simulation, or an arbitrary
exception raised while talking to the RPC endpoint. Each is mapped to a
:class:`~soroban_sdk.errors.SorobanError` with a kind from the closed
:class:`~soroban_sdk.errors.ErrorKind` taxonomy.

Simulation messages are matched against :data:`SIMULATION_ERROR_RULES`, an
ordered table of substrings. The first rule whose substring occurs in the
message wins, so a message mentioning both "insufficient fee" and
"insufficient balance" is classified as ``InsufficientFee``. Matching is case
sensitive.

The orchestrator never retries on its own. Callers that want retries can use
:func:`should_retry` and :func:`retry_delay` directly or wrap an operation in
:func:`retry`.
"""

from __future__ import annotations

import asyncio
import logging
import unittest
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import httpx
from stellar_sdk.exceptions import ConnectionError as StellarConnectionError

from .errors import ErrorKind, RpcError, SorobanError, TransactionFailedError
from .wire_value import WireValue

T = TypeVar("T")

CONTRACT_ERROR_CODES: Dict[int, Tuple[str, ErrorKind]] = {
    1: ("Contract panicked", ErrorKind.CONTRACT_PANIC),
    2: ("Arithmetic overflow", ErrorKind.ARITHMETIC_OVERFLOW),
    3: ("Division by zero", ErrorKind.DIVISION_BY_ZERO),
    4: ("Invalid arithmetic", ErrorKind.INVALID_ARITHMETIC),
    5: ("Invalid input", ErrorKind.INVALID_INPUT),
    6: ("Index out of bounds", ErrorKind.INDEX_OUT_OF_BOUNDS),
    7: ("Memory access violation", ErrorKind.MEMORY_ACCESS_VIOLATION),
    8: ("Invalid conversion", ErrorKind.INVALID_CONVERSION),
    9: ("Missing value in optional", ErrorKind.MISSING_VALUE),
    10: ("Expected error in result", ErrorKind.EXPECTED_ERROR),
    11: ("Host context error", ErrorKind.HOST_CONTEXT_ERROR),
}

# (substring, message, code, kind), evaluated in order.
SIMULATION_ERROR_RULES: List[Tuple[str, str, int, ErrorKind]] = [
    ("insufficient fee", "Insufficient fee for transaction", 4001, ErrorKind.INSUFFICIENT_FEE),
    ("insufficient balance", "Insufficient balance", 4002, ErrorKind.INSUFFICIENT_BALANCE),
    ("contract not found", "Contract not found", 4003, ErrorKind.CONTRACT_NOT_FOUND),
    ("method not found", "Method not found", 4004, ErrorKind.METHOD_NOT_FOUND),
    ("invalid argument", "Invalid argument", 4005, ErrorKind.INVALID_ARGUMENT),
]
SIMULATION_ERROR_CODE = 4000

RECOVERABLE_KINDS = frozenset(
    [
        ErrorKind.INSUFFICIENT_FEE,
        ErrorKind.INSUFFICIENT_BALANCE,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT,
    ]
)
NON_RETRYABLE_KINDS = frozenset(
    [ErrorKind.INSUFFICIENT_BALANCE, ErrorKind.CONTRACT_NOT_FOUND]
)
MAX_RETRY_ATTEMPTS = 3

DEFAULT_RETRY_DELAY = 1.0
RETRY_DELAYS: Dict[ErrorKind, float] = {
    ErrorKind.INSUFFICIENT_FEE: 2.0,
    ErrorKind.NETWORK_ERROR: 5.0,
    ErrorKind.TIMEOUT: 3.0,
}


def parse_error(value: Optional[WireValue]) -> SorobanError:
    """Classify an error payload returned by a contract.

    Integers are looked up in :data:`CONTRACT_ERROR_CODES`, strings and
    symbols become ``Custom`` errors, and maps are read as an error struct
    with optional ``code``, ``message`` and ``type`` entries.
    """
    if value is None:
        return SorobanError("Unknown error occurred", -1, ErrorKind.UNKNOWN)

    try:
        if value.tag in (WireValue.U32, WireValue.I32):
            return parse_error_code(value.value)
        if value.tag in (WireValue.STRING, WireValue.SYMBOL):
            return SorobanError(value.value, 0, ErrorKind.CUSTOM)
        if value.tag == WireValue.MAP:
            return _parse_error_struct(value)
        return SorobanError(
            f"Unrecognized error format: {value}", -1, ErrorKind.INVALID_FORMAT
        )
    except Exception as e:
        return SorobanError(f"Failed to parse error: {e}", -2, ErrorKind.PARSE_ERROR)


def parse_error_code(code: int) -> SorobanError:
    if code in CONTRACT_ERROR_CODES:
        message, kind = CONTRACT_ERROR_CODES[code]
        return SorobanError(message, code, kind)
    return SorobanError(f"Unknown error code: {code}", code, ErrorKind.UNKNOWN_CODE)


def parse_simulation_error(
    message: Optional[str] = None, result: Optional[WireValue] = None
) -> SorobanError:
    if message:
        return _match_rules(message) or SorobanError(
            message, SIMULATION_ERROR_CODE, ErrorKind.SIMULATION_ERROR
        )
    if result is not None:
        return parse_error(result)
    return SorobanError(
        "Simulation failed", SIMULATION_ERROR_CODE, ErrorKind.SIMULATION_ERROR
    )


def parse_transaction_error(response: Any) -> SorobanError:
    """Classify a failed transaction from its status response.

    The first contract ``error`` event is parsed as an error payload; without
    one the failure is a plain ``TransactionFailed``.
    """
    for event in getattr(response, "events", None) or []:
        topics = event.topics
        if event.type == "error" or (
            topics and topics[0].tag == WireValue.SYMBOL and topics[0].value == "error"
        ):
            return parse_error(event.data)
    return SorobanError(
        "Transaction failed but no specific error found",
        -1,
        ErrorKind.TRANSACTION_FAILED,
    )


def classify(error: BaseException) -> SorobanError:
    """Map any exception to a classified error.

    Classified errors pass through unchanged, except JSON-RPC errors whose
    message matches a simulation rule. Transport timeouts become ``Timeout``,
    other transport failures and remaining JSON-RPC errors ``NetworkError``.
    Anything else is classified by its message using the simulation rules,
    falling back to ``Unknown``.
    """
    if isinstance(error, RpcError):
        return _match_rules(error.message) or error
    if isinstance(error, SorobanError):
        return error
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return SorobanError(str(error) or "Request timed out", 0, ErrorKind.TIMEOUT)
    if isinstance(error, (httpx.TransportError, StellarConnectionError)):
        return SorobanError(str(error) or "Network error", 0, ErrorKind.NETWORK_ERROR)

    message = str(error) or type(error).__name__
    return _match_rules(message) or SorobanError(message, 0, ErrorKind.UNKNOWN)


def is_recoverable(error: SorobanError) -> bool:
    return error.kind in RECOVERABLE_KINDS


def should_retry(error: SorobanError, attempt: int) -> bool:
    """Whether a failed attempt (1-based) is worth repeating."""
    if not is_recoverable(error):
        return False
    if attempt >= MAX_RETRY_ATTEMPTS:
        return False
    return error.kind not in NON_RETRYABLE_KINDS


def retry_delay(error: SorobanError, attempt: int) -> float:
    """Seconds to wait before the next attempt, doubling every attempt."""
    base = RETRY_DELAYS.get(error.kind, DEFAULT_RETRY_DELAY)
    return base * 2 ** (attempt - 1)


def format_error(error: SorobanError) -> str:
    message = error.message
    if error.contract_id:
        message += f" (Contract: {error.contract_id})"
    if error.method:
        message += f" (Method: {error.method})"
    if error.code != 0:
        message += f" (Code: {error.code})"
    message += f" (Type: {error.kind})"
    return message


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = MAX_RETRY_ATTEMPTS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the retry policy gives up.

    The last error is re-raised once :func:`should_retry` says no or
    ``max_attempts`` is reached.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            error = classify(e)
            cause = getattr(error, "cause", error)
            if attempt >= max_attempts or not should_retry(cause, attempt):
                raise
            delay = retry_delay(cause, attempt)
            logging.warning(
                "attempt %d failed with %s, retrying in %.1fs", attempt, cause.kind, delay
            )
            await sleep(delay)
            attempt += 1


def _match_rules(message: str) -> Optional[SorobanError]:
    for substring, canonical, code, kind in SIMULATION_ERROR_RULES:
        if substring in message:
            return SorobanError(canonical, code, kind)
    return None


def _parse_error_struct(value: WireValue) -> SorobanError:
    fields = {}
    for key, entry in value.value:
        if key.tag in (WireValue.STRING, WireValue.SYMBOL):
            fields[key.value] = entry

    code = fields.get("code")
    message = fields.get("message")
    type_name = fields.get("type")

    kind = ErrorKind.CONTRACT_ERROR
    if type_name is not None and type_name.tag in (WireValue.STRING, WireValue.SYMBOL):
        try:
            kind = ErrorKind.from_str(type_name.value)
        except ValueError:
            kind = ErrorKind.CONTRACT_ERROR

    text = None
    if message is not None and message.tag in (WireValue.STRING, WireValue.SYMBOL):
        text = message.value

    if code is not None and code.tag in (WireValue.U32, WireValue.I32):
        return SorobanError(text or "Contract error", code.value, kind)
    return SorobanError(text or "Unknown contract error", 0, kind)


class Test(unittest.TestCase):
    def test_error_codes(self):
        error = parse_error(WireValue.u32(2))
        self.assertEqual(error.message, "Arithmetic overflow")
        self.assertEqual(error.code, 2)
        self.assertEqual(error.kind, ErrorKind.ARITHMETIC_OVERFLOW)

        unknown = parse_error(WireValue.i32(42))
        self.assertEqual(unknown.message, "Unknown error code: 42")
        self.assertEqual(unknown.code, 42)
        self.assertEqual(unknown.kind, ErrorKind.UNKNOWN_CODE)

    def test_payload_shapes(self):
        self.assertEqual(parse_error(None).kind, ErrorKind.UNKNOWN)
        self.assertEqual(parse_error(None).code, -1)

        custom = parse_error(WireValue.symbol("not_owner"))
        self.assertEqual((custom.message, custom.code, custom.kind), ("not_owner", 0, ErrorKind.CUSTOM))

        invalid = parse_error(WireValue.bool(True))
        self.assertEqual(invalid.kind, ErrorKind.INVALID_FORMAT)
        self.assertEqual(invalid.code, -1)

    def test_error_struct(self):
        struct = WireValue.map(
            [
                (WireValue.symbol("code"), WireValue.u32(77)),
                (WireValue.symbol("message"), WireValue.string("frozen account")),
            ]
        )
        error = parse_error(struct)
        self.assertEqual(error.message, "frozen account")
        self.assertEqual(error.code, 77)
        self.assertEqual(error.kind, ErrorKind.CONTRACT_ERROR)

        typed = parse_error(
            WireValue.map([(WireValue.symbol("type"), WireValue.symbol("InvalidInput"))])
        )
        self.assertEqual(typed.message, "Unknown contract error")
        self.assertEqual(typed.code, 0)
        self.assertEqual(typed.kind, ErrorKind.INVALID_INPUT)

    def test_simulation_rules(self):
        fee = parse_simulation_error("tx rejected: insufficient fee")
        self.assertEqual((fee.message, fee.code, fee.kind), ("Insufficient fee for transaction", 4001, ErrorKind.INSUFFICIENT_FEE))

        balance = parse_simulation_error("insufficient balance for transfer")
        self.assertEqual(balance.kind, ErrorKind.INSUFFICIENT_BALANCE)
        self.assertEqual(balance.code, 4002)

        both = parse_simulation_error("insufficient balance and insufficient fee")
        self.assertEqual(both.kind, ErrorKind.INSUFFICIENT_FEE)

        self.assertEqual(parse_simulation_error("Contract Not Found").kind, ErrorKind.SIMULATION_ERROR)

        other = parse_simulation_error("wasm trap")
        self.assertEqual((other.message, other.code), ("wasm trap", 4000))

        self.assertEqual(parse_simulation_error(None, WireValue.u32(1)).kind, ErrorKind.CONTRACT_PANIC)
        self.assertEqual(parse_simulation_error().message, "Simulation failed")

    def test_classify(self):
        self.assertEqual(classify(httpx.ConnectError("refused")).kind, ErrorKind.NETWORK_ERROR)
        self.assertEqual(classify(httpx.ReadTimeout("slow")).kind, ErrorKind.TIMEOUT)
        self.assertEqual(classify(asyncio.TimeoutError()).kind, ErrorKind.TIMEOUT)
        self.assertEqual(classify(ValueError("method not found")).kind, ErrorKind.METHOD_NOT_FOUND)
        self.assertEqual(classify(ValueError("boom")).kind, ErrorKind.UNKNOWN)

        error = TransactionFailedError("failed", "FAILED")
        self.assertIs(classify(error), error)

    def test_classify_rpc_error(self):
        fee = classify(RpcError("transaction rejected: insufficient fee", -32000))
        self.assertEqual(fee.kind, ErrorKind.INSUFFICIENT_FEE)
        self.assertTrue(should_retry(fee, 1))

        unavailable = RpcError("node unavailable", -32603)
        self.assertIs(classify(unavailable), unavailable)
        self.assertEqual(unavailable.kind, ErrorKind.NETWORK_ERROR)
        self.assertTrue(should_retry(unavailable, 1))

    def test_retry_policy(self):
        fee = parse_simulation_error("insufficient fee")
        self.assertTrue(should_retry(fee, 1))
        self.assertTrue(should_retry(fee, 2))
        self.assertFalse(should_retry(fee, 3))

        balance = parse_simulation_error("insufficient balance")
        self.assertTrue(is_recoverable(balance))
        self.assertFalse(should_retry(balance, 1))

        self.assertFalse(should_retry(parse_error_code(1), 1))

    def test_retry_delay(self):
        self.assertEqual(retry_delay(SorobanError("x", kind=ErrorKind.INSUFFICIENT_FEE), 1), 2.0)
        self.assertEqual(retry_delay(SorobanError("x", kind=ErrorKind.NETWORK_ERROR), 2), 10.0)
        self.assertEqual(retry_delay(SorobanError("x", kind=ErrorKind.TIMEOUT), 3), 12.0)
        self.assertEqual(retry_delay(SorobanError("x"), 1), 1.0)

    def test_format_error(self):
        error = SorobanError("Invalid input", 5, ErrorKind.INVALID_INPUT, "CABC", "mint")
        self.assertEqual(
            format_error(error),
            "Invalid input (Contract: CABC) (Method: mint) (Code: 5) (Type: InvalidInput)",
        )
        self.assertEqual(format_error(SorobanError("boom")), "boom (Type: Unknown)")


class RetryTest(unittest.IsolatedAsyncioTestCase):
    async def test_retries_recoverable(self):
        calls = []
        delays = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("refused")
            return "ok"

        async def sleep(delay):
            delays.append(delay)

        self.assertEqual(await retry(operation, sleep=sleep), "ok")
        self.assertEqual(delays, [5.0, 10.0])

    async def test_retries_rpc_error(self):
        calls = []

        async def operation():
            calls.append(1)
            raise RpcError("node unavailable", -32603)

        async def sleep(delay):
            pass

        with self.assertRaises(RpcError):
            await retry(operation, sleep=sleep)
        self.assertEqual(len(calls), MAX_RETRY_ATTEMPTS)

    async def test_gives_up(self):
        calls = []

        async def operation():
            calls.append(1)
            raise SorobanError("Insufficient balance", 4002, ErrorKind.INSUFFICIENT_BALANCE)

        async def sleep(delay):
            pass

        with self.assertRaises(SorobanError):
            await retry(operation, sleep=sleep)
        self.assertEqual(len(calls), 1)


if __name__ == "__main__":
    unittest.main()
