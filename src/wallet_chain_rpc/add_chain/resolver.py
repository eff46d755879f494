"""Decide what a ``wallet_addEthereumChain`` request does to the network store.

:func:`resolve_network` only reads; :func:`apply_network_resolution` issues
the single ``add_network`` / ``update_network`` call a decision implies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from wallet_chain_rpc.errors import InvalidParamsError
from wallet_chain_rpc.hooks import AddChainHooks, accepts_keyword, call_hook
from wallet_chain_rpc.models import (
    AddEthereumChainParams,
    NetworkConfiguration,
    RpcEndpoint,
    RpcEndpointType,
)

logger = logging.getLogger("wallet_chain_rpc.add_chain.resolver")


class NetworkDecision(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SWITCH_ONLY = "switch_only"
    NOOP = "noop"


@dataclass(frozen=True)
class NetworkResolution:
    """Outcome of comparing a request with the stored configuration.

    ``configuration`` is the configuration to persist for CREATE and UPDATE,
    and the untouched stored configuration for SWITCH_ONLY and NOOP.
    """

    decision: NetworkDecision
    configuration: NetworkConfiguration
    existing: Optional[NetworkConfiguration]
    current_chain_id: Optional[str]

    @property
    def is_current_chain(self) -> bool:
        return self.current_chain_id == self.configuration.chain_id


def build_network_configuration(params: AddEthereumChainParams) -> NetworkConfiguration:
    """Configuration for a chain the store has never seen."""
    explorer = params.block_explorer_url
    return NetworkConfiguration(
        chain_id=params.chain_id,
        name=params.chain_name,
        native_currency=params.ticker,
        rpc_endpoints=[
            RpcEndpoint(
                url=params.rpc_url,
                name=params.chain_name,
                type=RpcEndpointType.CUSTOM,
            )
        ],
        default_rpc_endpoint_index=0,
        block_explorer_urls=[explorer] if explorer else [],
        default_block_explorer_url_index=0 if explorer else None,
    )


def merge_network_configuration(
    existing: NetworkConfiguration,
    params: AddEthereumChainParams,
) -> NetworkConfiguration:
    """Copy of *existing* whose default endpoint is the requested RPC URL.

    A URL the network already knows is reused; an unknown one is appended as
    a custom endpoint. The block explorer is handled the same way.
    """
    rpc_endpoints = list(existing.rpc_endpoints)
    urls = [endpoint.url for endpoint in rpc_endpoints]
    if params.rpc_url in urls:
        rpc_index = urls.index(params.rpc_url)
    else:
        rpc_endpoints.append(
            RpcEndpoint(
                url=params.rpc_url,
                name=params.chain_name,
                type=RpcEndpointType.CUSTOM,
            )
        )
        rpc_index = len(rpc_endpoints) - 1

    block_explorer_urls = list(existing.block_explorer_urls)
    explorer_index = existing.default_block_explorer_url_index
    if params.block_explorer_url:
        if params.block_explorer_url in block_explorer_urls:
            explorer_index = block_explorer_urls.index(params.block_explorer_url)
        else:
            block_explorer_urls.append(params.block_explorer_url)
            explorer_index = len(block_explorer_urls) - 1

    return existing.model_copy(
        update={
            "rpc_endpoints": rpc_endpoints,
            "default_rpc_endpoint_index": rpc_index,
            "block_explorer_urls": block_explorer_urls,
            "default_block_explorer_url_index": explorer_index,
        }
    )


async def resolve_network(
    params: AddEthereumChainParams,
    origin: str,
    hooks: AddChainHooks,
) -> NetworkResolution:
    """Classify the request as CREATE, UPDATE, SWITCH_ONLY or NOOP.

    Raises
    ------
    InvalidParamsError
        If a network with the same chain id exists under another currency
        symbol.
    """
    current_chain_id = await call_hook(hooks.get_current_chain_id_for_domain, origin)
    existing = NetworkConfiguration.coerce(
        await call_hook(hooks.get_network_configuration_by_chain_id, params.chain_id)
    )

    if existing is None:
        return NetworkResolution(
            decision=NetworkDecision.CREATE,
            configuration=build_network_configuration(params),
            existing=None,
            current_chain_id=current_chain_id,
        )

    if existing.native_currency != params.ticker:
        raise InvalidParamsError(
            "nativeCurrency.symbol does not match currency symbol for a network the user "
            f"already has added with the same chainId. Received:\n{params.ticker}"
        )

    url_unchanged = existing.default_rpc_endpoint.url == params.rpc_url
    if url_unchanged and current_chain_id == params.chain_id:
        decision = NetworkDecision.NOOP
        configuration = existing
    elif not url_unchanged:
        decision = NetworkDecision.UPDATE
        configuration = merge_network_configuration(existing, params)
    else:
        decision = NetworkDecision.SWITCH_ONLY
        configuration = existing

    logger.debug(
        f"Resolved {params.chain_id} for {origin}: {decision.value} "
        f"(current chain {current_chain_id})"
    )
    return NetworkResolution(
        decision=decision,
        configuration=configuration,
        existing=existing,
        current_chain_id=current_chain_id,
    )


async def apply_network_resolution(
    resolution: NetworkResolution,
    hooks: AddChainHooks,
) -> NetworkConfiguration:
    """Persist a CREATE or UPDATE and return the store's view of the network.

    For SWITCH_ONLY and NOOP the stored configuration is returned unchanged
    and no collaborator is called.
    """
    configuration = resolution.configuration
    if resolution.decision is NetworkDecision.CREATE:
        stored = await call_hook(hooks.add_network, configuration)
        logger.info(f"Added network {configuration.chain_id} ({configuration.name})")
        return NetworkConfiguration.coerce(stored)

    if resolution.decision is NetworkDecision.UPDATE:
        kwargs = {}
        if resolution.is_current_chain and accepts_keyword(
            hooks.update_network, "replacement_selected_rpc_endpoint_index"
        ):
            kwargs["replacement_selected_rpc_endpoint_index"] = configuration.default_rpc_endpoint_index
        stored = await call_hook(hooks.update_network, configuration.chain_id, configuration, **kwargs)
        logger.info(
            f"Updated network {configuration.chain_id}: default RPC is now "
            f"{configuration.default_rpc_endpoint.url}"
        )
        return NetworkConfiguration.coerce(stored)

    return configuration
