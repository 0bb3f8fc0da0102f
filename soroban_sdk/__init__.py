# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Soroban Python SDK - deploy, invoke and monitor Soroban smart contracts.

The SDK converts Python values to and from Soroban wire values, builds and
signs contract transactions, drives them through a Soroban RPC endpoint
(simulate, prepare, sign, submit, poll), and follows contract events with
per-subscription cursors.

Quick Start:
    Invoking a contract::

        import asyncio
        from soroban_sdk.contract_manager import ContractManager
        from soroban_sdk.ed25519 import Keypair
        from soroban_sdk.rpc_client import SorobanRpcClient

        async def main():
            rpc = SorobanRpcClient("https://soroban-testnet.stellar.org")
            manager = ContractManager(rpc)
            signer = Keypair.from_secret("S...")

            result = await manager.invoke(
                "C...",
                "increment",
                [5],
                signer,
                "Test SDF Network ; September 2015",
                hints=["u32"],
            )
            print(result.transaction_hash, result.decoded())

            await rpc.close()

        asyncio.run(main())

    Following events::

        from soroban_sdk.event_monitor import ContractEventMonitor

        monitor = ContractEventMonitor(rpc)
        subscription_id = await monitor.subscribe("C...", print, ["transfer"])
        ...
        await monitor.destroy()

Module Organization:
    Values:
    - **wire_value**: The tagged value model and its canonical binary form
    - **xdr_codec**: Wire values as network `SCVal` XDR
    - **scval**: Conversion between Python values and wire values
    - **address**: Account and contract addresses
    - **bcs**: Binary serialization primitives

    Transactions:
    - **transactions**: Host functions, transaction requests and signing
    - **ed25519**: Ed25519 keypairs implementing the signer capability
    - **rpc_client**: Soroban RPC client and its configuration
    - **contract_manager**: Deploy, invoke, simulate, read state, upgrade

    Events:
    - **event_monitor**: Subscriptions, polling and event queries
    - **event_decoder**: Schema driven decoding and token event helpers

    Errors:
    - **errors**: Error kinds and the exception hierarchy
    - **error_parser**: Classification, parsing and retry policy

    Helpers:
    - **token_client**: Standard token interface
    - **function_signature**: Signature strings and argument validation
    - **metadata**: SDK version header
"""
