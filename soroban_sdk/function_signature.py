# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Contract function signatures: ``name(type, type, ...)`` strings, argument
validation against declared input types, and invocation values.
"""

from __future__ import annotations

import hashlib
import re
import unittest
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from . import scval
from .errors import CodecError
from .wire_value import ScType, WireValue

SIGNATURE_PATTERN = re.compile(r"^(\w+)\((.*)\)$")
SELECTOR_LENGTH = 4


@dataclass(frozen=True)
class FunctionInput:
    name: str
    type: str


@dataclass(frozen=True)
class ContractFunction:
    name: str
    inputs: List[FunctionInput] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    def input_types(self) -> List[str]:
        return [arg.type for arg in self.inputs]

    def signature(self) -> str:
        return build_signature_string(self.name, self.input_types())


def build_signature_string(name: str, input_types: Sequence[Any]) -> str:
    return f"{name}({', '.join(str(t) for t in input_types)})"


def build_signature_hash(name: str, input_types: Sequence[Any]) -> str:
    """Hex sha256 digest of the signature string."""
    signature = build_signature_string(name, input_types).encode()
    return hashlib.sha256(signature).hexdigest()


def build_function_selector(name: str, input_types: Sequence[Any]) -> bytes:
    return bytes.fromhex(build_signature_hash(name, input_types))[:SELECTOR_LENGTH]


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``"transfer(address, address, i128)"`` into its name and input types.

    Raises:
        ValueError: If ``signature`` is not of the form ``name(types)``.
    """
    match = SIGNATURE_PATTERN.match(signature)
    if not match:
        raise ValueError(f"Invalid function signature format: {signature}")
    name, types = match.group(1), match.group(2)
    if not types.strip():
        return name, []
    return name, [t.strip() for t in types.split(",")]


def validate_argument_type(value: Any, expected_type: str) -> Optional[str]:
    try:
        scval.encode(value, expected_type)
    except CodecError as e:
        return f"Type validation failed: {e.message}"
    return None


def validate_arguments(
    function: ContractFunction, args: Sequence[Any]
) -> Tuple[bool, List[str]]:
    """Check ``args`` against the declared inputs.

    A count mismatch is reported alone; otherwise every argument that cannot
    be encoded as its declared type gets one error line.
    """
    if len(args) != len(function.inputs):
        names = ", ".join(arg.name for arg in function.inputs)
        return False, [
            f"Expected {len(function.inputs)} arguments, got {len(args)}. "
            f"Expected: [{names}]"
        ]

    errors = []
    for index, (value, arg) in enumerate(zip(args, function.inputs)):
        error = validate_argument_type(value, arg.type)
        if error:
            errors.append(f"Argument {index} ({arg.name}): {error}")
    return not errors, errors


def create_invocation(
    name: str, args: Sequence[Any], input_types: Optional[Sequence[Any]] = None
) -> WireValue:
    """A vec of the function name as a symbol followed by the encoded arguments."""
    encoded = [
        scval.encode(value, input_types[index] if input_types else None)
        for index, value in enumerate(args)
    ]
    return WireValue.vec([WireValue.symbol(name)] + encoded)


def infer_type(value: WireValue) -> str:
    return str(value.type())


def signature_from_values(name: str, args: Sequence[WireValue]) -> str:
    return build_signature_string(name, [infer_type(arg) for arg in args])


def matches_signature(
    function: ContractFunction, name: str, input_types: Sequence[Any]
) -> bool:
    if function.name != name or len(function.inputs) != len(input_types):
        return False
    return all(
        ScType.parse(arg.type) == ScType.parse(expected)
        for arg, expected in zip(function.inputs, input_types)
    )


def generate_signature_docs(function: ContractFunction) -> str:
    if len(function.outputs) == 1:
        returns = function.outputs[0]
    else:
        returns = f"({', '.join(function.outputs)})"
    lines = [f"**{function.signature()} -> {returns}**", ""]

    if function.inputs:
        lines.append("**Arguments:**")
        lines.extend(f"- `{arg.name}` ({arg.type})" for arg in function.inputs)
        lines.append("")

    if len(function.outputs) == 1:
        lines.extend(["**Returns:**", f"- {function.outputs[0]}"])
    elif function.outputs:
        lines.append("**Returns:**")
        lines.extend(
            f"- Output {index}: {output}" for index, output in enumerate(function.outputs)
        )
    return "\n".join(lines) + "\n"


class Test(unittest.TestCase):
    TRANSFER = ContractFunction(
        "transfer",
        [
            FunctionInput("from", "address"),
            FunctionInput("to", "address"),
            FunctionInput("amount", "i128"),
        ],
        ["void"],
    )
    ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"

    def test_signature_string(self):
        self.assertEqual(self.TRANSFER.signature(), "transfer(address, address, i128)")
        self.assertEqual(build_signature_string("init", []), "init()")

    def test_parse_signature(self):
        self.assertEqual(
            parse_signature("transfer(address, address,i128)"),
            ("transfer", ["address", "address", "i128"]),
        )
        self.assertEqual(parse_signature("init( )"), ("init", []))
        with self.assertRaises(ValueError):
            parse_signature("not a signature")

    def test_selector(self):
        digest = hashlib.sha256(b"init()").digest()
        self.assertEqual(build_function_selector("init", []), digest[:4])
        self.assertEqual(len(build_signature_hash("init", [])), 64)

    def test_validate_arguments(self):
        self.assertEqual(
            validate_arguments(self.TRANSFER, [self.ACCOUNT, self.ACCOUNT, 5]), (True, [])
        )

        valid, errors = validate_arguments(self.TRANSFER, [self.ACCOUNT])
        self.assertFalse(valid)
        self.assertEqual(errors, ["Expected 3 arguments, got 1. Expected: [from, to, amount]"])

        valid, errors = validate_arguments(self.TRANSFER, [self.ACCOUNT, 7, "x"])
        self.assertFalse(valid)
        self.assertEqual(len(errors), 2)
        self.assertTrue(errors[0].startswith("Argument 1 (to): Type validation failed:"))
        self.assertTrue(errors[1].startswith("Argument 2 (amount): Type validation failed:"))

    def test_create_invocation(self):
        invocation = create_invocation("set", [1, "x"], ["u32", "string"])
        self.assertEqual(
            invocation,
            WireValue.vec(
                [WireValue.symbol("set"), WireValue.u32(1), WireValue.string("x")]
            ),
        )

    def test_signature_from_values(self):
        self.assertEqual(
            signature_from_values("set", [WireValue.u64(1), WireValue.bytes(b"\x00")]),
            "set(u64, bytes)",
        )

    def test_matches_signature(self):
        self.assertTrue(matches_signature(self.TRANSFER, "transfer", ["address", "address", "i128"]))
        self.assertFalse(matches_signature(self.TRANSFER, "transfer", ["address", "address", "u128"]))
        self.assertFalse(matches_signature(self.TRANSFER, "mint", ["address", "address", "i128"]))

    def test_docs(self):
        docs = generate_signature_docs(self.TRANSFER)
        self.assertIn("**transfer(address, address, i128) -> void**", docs)
        self.assertIn("- `amount` (i128)", docs)
        self.assertIn("**Returns:**\n- void", docs)


if __name__ == "__main__":
    unittest.main()
