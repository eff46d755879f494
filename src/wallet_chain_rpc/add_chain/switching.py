"""Activate the resolved network for the requesting origin."""

from __future__ import annotations

import logging
from typing import Any

from wallet_chain_rpc.hooks import AddChainHooks, call_hook
from wallet_chain_rpc.models import NetworkClientId, NetworkConfiguration

logger = logging.getLogger("wallet_chain_rpc.add_chain.switching")


def resolve_network_client_id(
    configuration: NetworkConfiguration,
    selection_token: Any = None,
) -> NetworkClientId:
    """Pick the client to activate.

    A string or integer token returned by the confirmation prompt wins;
    otherwise the configuration's default endpoint is used.
    """
    if isinstance(selection_token, bool):
        selection_token = None
    if isinstance(selection_token, (str, int)) and selection_token != "":
        return selection_token

    network_client_id = configuration.default_rpc_endpoint.network_client_id
    if network_client_id is None:
        raise ValueError(
            f"Network {configuration.chain_id} has no client id for its default RPC endpoint "
            f"{configuration.default_rpc_endpoint.url}"
        )
    return network_client_id


async def switch_network(network_client_id: NetworkClientId, hooks: AddChainHooks) -> None:
    await call_hook(hooks.set_active_network, network_client_id)
    logger.info(f"Active network set to {network_client_id}")
