# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for the Soroban SDK.

Every failure the SDK surfaces is a :class:`SorobanError`. Each one carries a
human readable message, a numeric code (0 when the platform assigned none),
a taxonomy tag from :class:`ErrorKind` and, where it applies, the contract and
method that were being called. That is enough to tell what failed without
looking at the raw RPC response.

The hierarchy splits into three families:

- codec errors (:class:`CodecError` and subclasses): programmer errors raised
  while converting between Python values and Wire Values. Never retried.
- transport errors (:class:`ApiError`, :class:`RpcError`): the RPC endpoint
  could not be reached or answered with an error object.
- operational errors (:class:`SimulationFailedError`,
  :class:`TransactionFailedError`, :class:`TransactionTimeoutError` and the
  per-operation wrappers such as :class:`InvocationError`): the platform
  rejected or failed the request. Callers decide whether to retry using
  :mod:`soroban_sdk.error_parser`.

Examples:
    Reading the context of a failed call::

        try:
            await manager.invoke(contract_id, "transfer", args, signer, passphrase)
        except SorobanError as e:
            print(e.kind, e.code, e.contract_id, e.method)
"""

from __future__ import annotations

import unittest
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Closed taxonomy of failure categories."""

    # Contract host error codes 1 through 11.
    CONTRACT_PANIC = "ContractPanic"
    ARITHMETIC_OVERFLOW = "ArithmeticOverflow"
    DIVISION_BY_ZERO = "DivisionByZero"
    INVALID_ARITHMETIC = "InvalidArithmetic"
    INVALID_INPUT = "InvalidInput"
    INDEX_OUT_OF_BOUNDS = "IndexOutOfBounds"
    MEMORY_ACCESS_VIOLATION = "MemoryAccessViolation"
    INVALID_CONVERSION = "InvalidConversion"
    MISSING_VALUE = "MissingValue"
    EXPECTED_ERROR = "ExpectedError"
    HOST_CONTEXT_ERROR = "HostContextError"
    UNKNOWN_CODE = "UnknownCode"

    # Simulation and submission failures.
    INSUFFICIENT_FEE = "InsufficientFee"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    CONTRACT_NOT_FOUND = "ContractNotFound"
    METHOD_NOT_FOUND = "MethodNotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    SIMULATION_ERROR = "SimulationError"
    TRANSACTION_FAILED = "TransactionFailed"

    # Infrastructure.
    PARSE_ERROR = "ParseError"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"

    # Codec violations.
    UNSUPPORTED_TYPE = "UnsupportedType"
    INVALID_ARGUMENT_SHAPE = "InvalidArgumentShape"
    ARGUMENT_COUNT_MISMATCH = "ArgumentCountMismatch"
    UNKNOWN_WIRE_TAG = "UnknownWireTag"

    # Error payload shapes.
    CUSTOM = "Custom"
    CONTRACT_ERROR = "ContractError"
    INVALID_FORMAT = "InvalidFormat"

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def from_str(value: str) -> ErrorKind:
        """Resolve a tag by its value (``"InsufficientFee"``) or name."""
        for kind in ErrorKind:
            if value == kind.value or value == kind.name:
                return kind
        raise ValueError(f"Unknown error kind: {value}")


class SorobanError(Exception):
    """Base class of all classified SDK errors."""

    message: str
    code: int
    kind: ErrorKind
    contract_id: Optional[str]
    method: Optional[str]

    def __init__(
        self,
        message: str,
        code: int = 0,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        contract_id: Optional[str] = None,
        method: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind
        self.contract_id = contract_id
        self.method = method

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, code={self.code}, "
            f"kind={self.kind}, contract_id={self.contract_id!r}, method={self.method!r})"
        )

    def with_context(
        self, contract_id: Optional[str] = None, method: Optional[str] = None
    ) -> SorobanError:
        """Fill in missing contract and method context, returning self."""
        if self.contract_id is None:
            self.contract_id = contract_id
        if self.method is None:
            self.method = method
        return self


class CodecError(SorobanError):
    """A value could not be converted to or from a Wire Value."""


class UnsupportedTypeError(CodecError):
    def __init__(self, message: str):
        super().__init__(message, kind=ErrorKind.UNSUPPORTED_TYPE)


class InvalidArgumentShapeError(CodecError):
    def __init__(self, message: str):
        super().__init__(message, kind=ErrorKind.INVALID_ARGUMENT_SHAPE)


class ArgumentCountMismatchError(CodecError):
    expected: int
    actual: int

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Expected {expected} type hints, got {actual} arguments",
            kind=ErrorKind.ARGUMENT_COUNT_MISMATCH,
        )
        self.expected = expected
        self.actual = actual


class UnknownWireTagError(CodecError):
    tag: Any

    def __init__(self, tag: Any):
        super().__init__(f"Unknown wire value tag: {tag}", kind=ErrorKind.UNKNOWN_WIRE_TAG)
        self.tag = tag


class ApiError(SorobanError):
    """The RPC endpoint returned a non-success HTTP status, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        super().__init__(message, kind=ErrorKind.NETWORK_ERROR)
        self.status_code = status_code


class RpcError(SorobanError):
    """The RPC endpoint answered with a JSON-RPC error object."""

    rpc_code: int
    data: Any

    def __init__(self, message: str, rpc_code: int, data: Any = None):
        super().__init__(message, kind=ErrorKind.NETWORK_ERROR)
        self.rpc_code = rpc_code
        self.data = data


class SimulationFailedError(SorobanError):
    """Simulation reported an error; the request was never signed or sent."""

    simulation: Any

    def __init__(
        self,
        message: str,
        code: int = 0,
        kind: ErrorKind = ErrorKind.SIMULATION_ERROR,
        simulation: Any = None,
    ):
        super().__init__(message, code=code, kind=kind)
        self.simulation = simulation


class TransactionFailedError(SorobanError):
    """Submission was rejected, or the transaction finished unsuccessfully.

    ``result`` holds the raw result payload returned by the RPC endpoint so
    the failure can be diagnosed.
    """

    status: str
    transaction_hash: Optional[str]
    result: Any

    def __init__(
        self,
        message: str,
        status: str,
        transaction_hash: Optional[str] = None,
        result: Any = None,
        code: int = -1,
        kind: ErrorKind = ErrorKind.TRANSACTION_FAILED,
    ):
        super().__init__(message, code=code, kind=kind)
        self.status = status
        self.transaction_hash = transaction_hash
        self.result = result


class TransactionTimeoutError(SorobanError):
    """The transaction did not reach a terminal status in time."""

    transaction_hash: str

    def __init__(self, transaction_hash: str, waited: float):
        super().__init__(
            f"transaction {transaction_hash} timed out after {waited}s",
            kind=ErrorKind.TIMEOUT,
        )
        self.transaction_hash = transaction_hash


class ContractOperationError(SorobanError):
    """A contract manager operation failed.

    The message is prefixed with the operation name and the underlying
    classified error is kept both as ``cause`` and as ``__cause__``. Code and
    kind are taken from the cause.
    """

    operation: str = "Contract operation"
    cause: SorobanError

    def __init__(self, cause: SorobanError):
        super().__init__(
            f"{self.operation} failed: {cause.message}",
            code=cause.code,
            kind=cause.kind,
            contract_id=cause.contract_id,
            method=cause.method,
        )
        self.cause = cause


class DeploymentError(ContractOperationError):
    operation = "Contract deployment"


class InvocationError(ContractOperationError):
    operation = "Contract invocation"


class ContractSimulationError(ContractOperationError):
    operation = "Contract simulation"


class StateQueryError(ContractOperationError):
    operation = "Contract state query"


class EventQueryError(ContractOperationError):
    operation = "Event query"


class UpgradeError(ContractOperationError):
    operation = "Contract upgrade"


class Test(unittest.TestCase):
    def test_kind_from_str(self):
        self.assertEqual(ErrorKind.from_str("InsufficientFee"), ErrorKind.INSUFFICIENT_FEE)
        self.assertEqual(ErrorKind.from_str("TIMEOUT"), ErrorKind.TIMEOUT)
        with self.assertRaises(ValueError):
            ErrorKind.from_str("NotAKind")

    def test_with_context_keeps_existing(self):
        error = SorobanError("boom", contract_id="CA")
        error.with_context("CB", "transfer")
        self.assertEqual(error.contract_id, "CA")
        self.assertEqual(error.method, "transfer")

    def test_operation_wrapper(self):
        cause = SimulationFailedError(
            "Simulation failed: insufficient fee",
            code=4001,
            kind=ErrorKind.INSUFFICIENT_FEE,
        ).with_context("CABC", "transfer")
        error = InvocationError(cause)

        self.assertEqual(
            str(error), "Contract invocation failed: Simulation failed: insufficient fee"
        )
        self.assertEqual(error.code, 4001)
        self.assertEqual(error.kind, ErrorKind.INSUFFICIENT_FEE)
        self.assertEqual(error.contract_id, "CABC")
        self.assertEqual(error.method, "transfer")
        self.assertIs(error.cause, cause)

    def test_codec_errors(self):
        error = ArgumentCountMismatchError(1, 2)
        self.assertEqual(error.kind, ErrorKind.ARGUMENT_COUNT_MISMATCH)
        self.assertIsInstance(error, CodecError)
        self.assertEqual(UnknownWireTagError(99).tag, 99)


if __name__ == "__main__":
    unittest.main()
