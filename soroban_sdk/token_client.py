# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client for contracts that implement the standard token interface.

Read calls (balances, metadata) are simulate-only invocations and never
submit a transaction, so they need no signer. Write calls are signed and
submitted through the :class:`~soroban_sdk.contract_manager.ContractManager`.
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union
from unittest.mock import AsyncMock

from .address import Address
from .contract_manager import ContractManager
from .ed25519 import Keypair, Signer
from .rpc_client import ClientConfig
from .types import (
    AccountState,
    GetTransactionResponse,
    InvocationResult,
    SendTransactionResponse,
    SimulationResult,
    TransactionStatus,
)
from .wire_value import WireValue

Amount = Union[int, str]


@dataclass(frozen=True)
class TokenInfo:
    name: str
    symbol: str
    decimals: int
    total_supply: int
    admin: str


class TokenClient:
    manager: ContractManager
    contract_id: str
    network_passphrase: str

    def __init__(
        self, manager: ContractManager, contract_id: str, network_passphrase: str
    ):
        self.manager = manager
        self.contract_id = contract_id
        self.network_passphrase = network_passphrase

    #
    # Reads
    #

    async def info(self) -> TokenInfo:
        info = await self._read("info")
        if not isinstance(info, dict):
            info = {}
        return TokenInfo(
            name=info.get("name") or "",
            symbol=info.get("symbol") or "",
            decimals=info.get("decimals") or 0,
            total_supply=int(info.get("total_supply") or 0),
            admin=info.get("admin") or "",
        )

    async def balance(self, account_id: str) -> int:
        return await self._read("balance", [account_id], ["address"]) or 0

    async def allowance(self, owner: str, spender: str) -> int:
        return (
            await self._read("allowance", [owner, spender], ["address", "address"])
            or 0
        )

    async def decimals(self) -> int:
        return await self._read("decimals") or 0

    async def name(self) -> str:
        return await self._read("name") or ""

    async def symbol(self) -> str:
        return await self._read("symbol") or ""

    async def total_supply(self) -> int:
        return await self._read("total_supply") or 0

    async def admin(self) -> str:
        return await self._read("admin") or ""

    async def is_authorized(self, account_id: str) -> bool:
        return bool(await self._read("is_authorized", [account_id], ["address"]))

    #
    # Writes
    #

    async def transfer(self, sender: Signer, to: str, amount: Amount) -> InvocationResult:
        return await self._write(
            sender,
            "transfer",
            [sender.public_key(), to, int(amount)],
            ["address", "address", "i128"],
        )

    async def approve(
        self,
        owner: Signer,
        spender: str,
        amount: Amount,
        expiration_ledger: Optional[int] = None,
    ) -> InvocationResult:
        args: List[Any] = [owner.public_key(), spender, int(amount)]
        hints = ["address", "address", "i128"]
        if expiration_ledger:
            args.append(expiration_ledger)
            hints.append("u32")
        return await self._write(owner, "approve", args, hints)

    async def transfer_from(
        self, spender: Signer, from_address: str, to: str, amount: Amount
    ) -> InvocationResult:
        return await self._write(
            spender,
            "transfer_from",
            [spender.public_key(), from_address, to, int(amount)],
            ["address", "address", "address", "i128"],
        )

    async def mint(self, admin: Signer, to: str, amount: Amount) -> InvocationResult:
        return await self._write(admin, "mint", [to, int(amount)], ["address", "i128"])

    async def burn(self, owner: Signer, amount: Amount) -> InvocationResult:
        return await self._write(
            owner, "burn", [owner.public_key(), int(amount)], ["address", "i128"]
        )

    async def _read(
        self,
        method: str,
        args: Sequence[Any] = (),
        hints: Optional[Sequence[str]] = None,
    ) -> Any:
        result = await self.manager.invoke(
            self.contract_id,
            method,
            args,
            network_passphrase=self.network_passphrase,
            simulate_only=True,
            hints=hints if args else None,
        )
        return result.decoded()

    async def _write(
        self, signer: Signer, method: str, args: Sequence[Any], hints: Sequence[str]
    ) -> InvocationResult:
        return await self.manager.invoke(
            self.contract_id,
            method,
            args,
            signer=signer,
            network_passphrase=self.network_passphrase,
            hints=hints,
        )


class Test(unittest.IsolatedAsyncioTestCase):
    PASSPHRASE = "Test SDF Network ; September 2015"

    def setUp(self):
        self.contract_id = str(Address.from_contract_id(b"\x05" * 32))
        self.holder = str(Address.from_account_key(b"\x07" * 32))
        self.keypair = Keypair.random()
        self.rpc = AsyncMock()
        self.rpc.get_account.return_value = AccountState(self.keypair.public_key(), 3)
        self.rpc.send_transaction.return_value = SendTransactionResponse("PENDING", "cd34")
        self.rpc.get_transaction.return_value = GetTransactionResponse(
            TransactionStatus.SUCCESS, ledger=21, return_value=WireValue.void()
        )
        manager = ContractManager(
            self.rpc, ClientConfig(transaction_wait_in_seconds=2, poll_interval=0.01)
        )
        self.token = TokenClient(manager, self.contract_id, self.PASSPHRASE)

    def simulated(self, value: WireValue):
        self.rpc.simulate_transaction.return_value = SimulationResult(result=value)

    def sent_call(self):
        transaction = self.rpc.send_transaction.call_args.args[0]
        return transaction.operations[0].value

    async def test_balance_is_read_only(self):
        self.simulated(WireValue.i128(1_000))
        self.assertEqual(await self.token.balance(self.holder), 1_000)
        self.rpc.send_transaction.assert_not_called()
        self.rpc.get_account.assert_not_called()

        call = self.rpc.simulate_transaction.call_args.args[0].operations[0].value
        self.assertEqual(call.function, "balance")
        self.assertEqual(call.args, [WireValue.address(self.holder)])

    async def test_reads_default_when_empty(self):
        self.simulated(WireValue.void())
        self.assertEqual(await self.token.balance(self.holder), 0)
        self.assertEqual(await self.token.name(), "")
        self.assertEqual(await self.token.decimals(), 0)
        self.assertFalse(await self.token.is_authorized(self.holder))
        self.rpc.send_transaction.assert_not_called()

    async def test_info(self):
        self.simulated(
            WireValue.map(
                [
                    (WireValue.symbol("name"), WireValue.string("Lumen")),
                    (WireValue.symbol("symbol"), WireValue.string("XLM")),
                    (WireValue.symbol("decimals"), WireValue.u32(7)),
                    (WireValue.symbol("total_supply"), WireValue.i128(10**12)),
                ]
            )
        )
        info = await self.token.info()
        self.assertEqual(info, TokenInfo("Lumen", "XLM", 7, 10**12, ""))

    async def test_transfer(self):
        self.simulated(WireValue.void())
        result = await self.token.transfer(self.keypair, self.holder, "250")
        self.assertEqual(result.transaction_hash, "cd34")
        self.assertEqual(result.ledger, 21)

        call = self.sent_call()
        self.assertEqual(call.function, "transfer")
        self.assertEqual(
            call.args,
            [
                WireValue.address(self.keypair.public_key()),
                WireValue.address(self.holder),
                WireValue.i128(250),
            ],
        )

    async def test_approve_with_expiration(self):
        self.simulated(WireValue.void())
        await self.token.approve(self.keypair, self.holder, 10, expiration_ledger=500)
        self.assertEqual(self.sent_call().args[-1], WireValue.u32(500))

        await self.token.approve(self.keypair, self.holder, 10)
        self.assertEqual(len(self.sent_call().args), 3)

    async def test_transfer_from_and_burn(self):
        self.simulated(WireValue.void())
        await self.token.transfer_from(self.keypair, self.holder, self.holder, 1)
        call = self.sent_call()
        self.assertEqual(call.function, "transfer_from")
        self.assertEqual(call.args[0], WireValue.address(self.keypair.public_key()))
        self.assertEqual(len(call.args), 4)

        await self.token.burn(self.keypair, 2)
        self.assertEqual(self.sent_call().args[1], WireValue.i128(2))


if __name__ == "__main__":
    unittest.main()
