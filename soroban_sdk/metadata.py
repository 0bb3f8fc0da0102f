# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client identification for requests sent to Soroban RPC endpoints.

Every request made by :class:`~soroban_sdk.rpc_client.SorobanRpcClient` carries
``x-soroban-client: soroban-python-sdk/<version>``, with the version read from
the installed package metadata.
"""

import importlib.metadata as metadata

PACKAGE_NAME = "soroban-python-sdk"


class Metadata:
    SOROBAN_HEADER = "x-soroban-client"

    @staticmethod
    def get_soroban_header_val():
        """Header value in the form ``soroban-python-sdk/{version}``.

        Raises:
            PackageNotFoundError: If the package is not installed.
        """
        version = metadata.version(PACKAGE_NAME)
        return f"soroban-python-sdk/{version}"
