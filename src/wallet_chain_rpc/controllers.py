"""In-memory network, permission, selection and approval controllers.

These stand in for the wallet's real controllers so the RPC methods can be
exercised end to end from the CLI and from tests. They keep everything in
process memory; :class:`WalletControllers` converts to and from the
``state`` section of the configuration.
"""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from wallet_chain_rpc.add_chain.permissions import PERMITTED_CHAINS_PERMISSION
from wallet_chain_rpc.chains import get_chain, list_chain_ids
from wallet_chain_rpc.config import WalletStateConfig
from wallet_chain_rpc.errors import UserRejectedRequestError
from wallet_chain_rpc.hooks import AddChainHooks, Hook
from wallet_chain_rpc.models import (
    AddEthereumChainApproval,
    ApprovalFlowHandle,
    NetworkConfiguration,
    PermittedChainsCaveat,
    RpcEndpoint,
    RpcEndpointType,
)

logger = logging.getLogger("wallet_chain_rpc.controllers")


def built_in_networks() -> list[NetworkConfiguration]:
    """Network configurations for every built-in chain."""
    chains = [get_chain(chain_id) for chain_id in list_chain_ids()]
    return [
        NetworkConfiguration(
            chain_id=chain.chain_id,
            name=chain.name,
            native_currency=chain.native_symbol,
            rpc_endpoints=[
                RpcEndpoint(
                    url=chain.rpc_url,
                    type=RpcEndpointType.INFURA,
                    network_client_id=chain.network_client_id,
                )
            ],
            default_rpc_endpoint_index=0,
            block_explorer_urls=[chain.explorer_url],
            default_block_explorer_url_index=0,
        )
        for chain in chains
    ]


# ---------------------------------------------------------------------------
# Networks
# ---------------------------------------------------------------------------


class NetworkController:
    """Stores network configurations keyed by chain id and tracks the
    globally selected network client."""

    def __init__(
        self,
        networks: list[NetworkConfiguration] | None = None,
        *,
        include_built_in: bool = True,
    ) -> None:
        self._networks: dict[str, NetworkConfiguration] = {}
        seed = (built_in_networks() if include_built_in else []) + list(networks or [])
        for network in seed:
            self._networks[network.chain_id] = self._assign_client_ids(network)
        self.selected_network_client_id: str | None = None

    @staticmethod
    def _assign_client_ids(
        network: NetworkConfiguration,
        previous: NetworkConfiguration | None = None,
    ) -> NetworkConfiguration:
        """Give every endpoint without a client id a fresh one.

        Endpoints whose URL already existed in *previous* keep their id.
        """
        known = {}
        if previous is not None:
            known = {ep.url: ep.network_client_id for ep in previous.rpc_endpoints}
        endpoints = []
        for endpoint in network.rpc_endpoints:
            client_id = (
                endpoint.network_client_id
                or known.get(endpoint.url)
                or RpcEndpoint.new_network_client_id()
            )
            endpoints.append(endpoint.model_copy(update={"network_client_id": client_id}))
        return network.model_copy(update={"rpc_endpoints": endpoints}, deep=True)

    @property
    def networks(self) -> list[NetworkConfiguration]:
        return [n.model_copy(deep=True) for n in self._networks.values()]

    def get_network_configuration_by_chain_id(self, chain_id: str) -> NetworkConfiguration | None:
        network = self._networks.get(chain_id)
        return network.model_copy(deep=True) if network is not None else None

    def find_network_client(self, network_client_id: str) -> tuple[NetworkConfiguration, RpcEndpoint]:
        """Return the network and endpoint behind a client id. Raises ``KeyError``."""
        for network in self._networks.values():
            for endpoint in network.rpc_endpoints:
                if endpoint.network_client_id == network_client_id:
                    return network, endpoint
        raise KeyError(f"No network client with id '{network_client_id}'")

    async def add_network(self, network: NetworkConfiguration) -> NetworkConfiguration:
        if network.chain_id in self._networks:
            raise ValueError(
                f"Could not add network for chain {network.chain_id} as another "
                "network for that chain already exists"
            )
        stored = self._assign_client_ids(network)
        self._networks[network.chain_id] = stored
        logger.info(f"Network {stored.chain_id} added ({stored.name})")
        return stored.model_copy(deep=True)

    async def update_network(
        self,
        chain_id: str,
        network: NetworkConfiguration,
        *,
        replacement_selected_rpc_endpoint_index: int | None = None,
    ) -> NetworkConfiguration:
        previous = self._networks.get(chain_id)
        if previous is None:
            raise ValueError(f"Could not update network for chain {chain_id}: not found")
        if network.chain_id != chain_id:
            raise ValueError(
                f"Could not update network: chain id {network.chain_id} does not match {chain_id}"
            )
        stored = self._assign_client_ids(network, previous)
        self._networks[chain_id] = stored

        old_ids = {ep.network_client_id for ep in previous.rpc_endpoints}
        if (
            replacement_selected_rpc_endpoint_index is not None
            and self.selected_network_client_id in old_ids
        ):
            replacement = stored.rpc_endpoints[replacement_selected_rpc_endpoint_index]
            self.selected_network_client_id = replacement.network_client_id
        logger.info(f"Network {chain_id} updated ({len(stored.rpc_endpoints)} RPC endpoints)")
        return stored.model_copy(deep=True)

    async def set_active_network(self, network_client_id: str) -> None:
        self.find_network_client(network_client_id)
        self.selected_network_client_id = network_client_id


class SelectedNetworkController:
    """Per-origin network selection; origins without one follow the global selection."""

    def __init__(self, network_controller: NetworkController) -> None:
        self._networks = network_controller
        self._domains: dict[str, str] = {}

    def set_network_client_id_for_domain(self, origin: str, network_client_id: str) -> None:
        self._networks.find_network_client(network_client_id)
        self._domains[origin] = network_client_id

    def get_network_client_id_for_domain(self, origin: str) -> str | None:
        return self._domains.get(origin, self._networks.selected_network_client_id)

    def get_current_chain_id_for_domain(self, origin: str) -> str | None:
        network_client_id = self.get_network_client_id_for_domain(origin)
        if network_client_id is None:
            return None
        network, _ = self._networks.find_network_client(network_client_id)
        return network.chain_id

    @property
    def domains(self) -> dict[str, str]:
        return dict(self._domains)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionController:
    """Holds the permitted-chains caveat of each origin."""

    def __init__(self, permissions: dict[str, list[str]] | None = None) -> None:
        self._permitted: dict[str, list[str]] = {
            origin: list(chain_ids) for origin, chain_ids in (permissions or {}).items()
        }

    def get_caveat(self, origin: str, permission_key: str) -> PermittedChainsCaveat | None:
        if permission_key != PERMITTED_CHAINS_PERMISSION or origin not in self._permitted:
            return None
        return PermittedChainsCaveat(value=list(self._permitted[origin]))

    def permitted_chains(self, origin: str) -> list[str] | None:
        chain_ids = self._permitted.get(origin)
        return list(chain_ids) if chain_ids is not None else None

    @property
    def permissions(self) -> dict[str, list[str]]:
        return {origin: list(chain_ids) for origin, chain_ids in self._permitted.items()}

    async def request_permitted_chains_permission(self, origin: str, chain_ids: list[str]) -> None:
        """Create the origin's permission record from scratch."""
        if origin in self._permitted:
            raise ValueError(f"{origin} already has a {PERMITTED_CHAINS_PERMISSION} permission")
        self._permitted[origin] = list(dict.fromkeys(chain_ids))
        logger.info(f"{PERMITTED_CHAINS_PERMISSION} granted to {origin}: {chain_ids}")

    async def grant_permitted_chains_permission_incremental(
        self, origin: str, chain_ids: list[str]
    ) -> None:
        """Extend the origin's permitted chains; nothing is ever removed."""
        current = self._permitted.get(origin, [])
        self._permitted[origin] = list(dict.fromkeys([*current, *chain_ids]))
        logger.info(f"{PERMITTED_CHAINS_PERMISSION} extended for {origin}: {chain_ids}")


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------

ApprovalDecider = Callable[[AddEthereumChainApproval], Union[Any, Awaitable[Any]]]


@dataclass
class ApprovalRecord:
    flow_id: Optional[str]
    request: AddEthereumChainApproval
    approved: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ApprovalController:
    """Approval flows and confirmation prompts.

    *decider* is asked about every prompt. It returns ``False`` to reject,
    ``True``/``None`` to approve, or any other value to approve with that
    value as the selection token.
    """

    def __init__(self, decider: ApprovalDecider | None = None) -> None:
        self._decider = decider
        self._open_flows: list[str] = []
        self.history: list[ApprovalRecord] = []

    @property
    def open_flows(self) -> list[str]:
        return list(self._open_flows)

    def start_approval_flow(self) -> ApprovalFlowHandle:
        handle = ApprovalFlowHandle()
        self._open_flows.append(handle.id)
        return handle

    def end_approval_flow(self, handle: ApprovalFlowHandle) -> None:
        if handle.id not in self._open_flows:
            raise ValueError(f"No approval flow with id '{handle.id}' is open")
        self._open_flows.remove(handle.id)

    async def request_user_approval(self, request: AddEthereumChainApproval) -> Any:
        record = ApprovalRecord(
            flow_id=self._open_flows[-1] if self._open_flows else None,
            request=request,
        )
        self.history.append(record)

        decision: Any = None
        if self._decider is not None:
            decision = self._decider(request)
            if inspect.isawaitable(decision):
                decision = await decision
        if decision is False:
            logger.info(f"Approval for {request.request_data.chain_id} rejected")
            raise UserRejectedRequestError()

        record.approved = True
        return None if decision is True else decision


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class WalletControllers:
    networks: NetworkController
    selected: SelectedNetworkController
    permissions: PermissionController
    approvals: ApprovalController

    @classmethod
    def from_state(
        cls,
        state: WalletStateConfig,
        decider: ApprovalDecider | None = None,
    ) -> "WalletControllers":
        networks = NetworkController(
            state.networks, include_built_in=state.include_built_in_networks
        )
        selected = SelectedNetworkController(networks)
        default = networks.get_network_configuration_by_chain_id(state.default_chain_id)
        if default is not None:
            networks.selected_network_client_id = default.default_rpc_endpoint.network_client_id
        for origin, chain_id in state.domains.items():
            network = networks.get_network_configuration_by_chain_id(chain_id)
            if network is None:
                raise ValueError(f"Origin {origin} is set to unknown chain {chain_id}")
            selected.set_network_client_id_for_domain(
                origin, network.default_rpc_endpoint.network_client_id
            )
        return cls(
            networks=networks,
            selected=selected,
            permissions=PermissionController(state.permissions),
            approvals=ApprovalController(decider),
        )

    def to_state(self, base: WalletStateConfig | None = None) -> WalletStateConfig:
        """Snapshot the controllers into a state section.

        Built-in networks are written out only when they were modified.
        """
        base = base or WalletStateConfig()
        built_in = {n.chain_id: n for n in built_in_networks()}
        networks = [
            n for n in self.networks.networks
            if not base.include_built_in_networks or built_in.get(n.chain_id) != n
        ]
        domains = {
            origin: self.selected.get_current_chain_id_for_domain(origin)
            for origin in self.selected.domains
        }
        return base.model_copy(
            update={
                "networks": networks,
                "permissions": self.permissions.permissions,
                "domains": domains,
            }
        )

    def hooks_for(self, origin: str) -> dict[str, Hook]:
        """Capability mapping for requests made by *origin*."""

        async def set_active_network(network_client_id: str) -> None:
            await self.networks.set_active_network(network_client_id)
            self.selected.set_network_client_id_for_domain(origin, network_client_id)

        return {
            "get_current_chain_id_for_domain": self.selected.get_current_chain_id_for_domain,
            "get_network_configuration_by_chain_id": self.networks.get_network_configuration_by_chain_id,
            "add_network": self.networks.add_network,
            "update_network": self.networks.update_network,
            "set_active_network": set_active_network,
            "get_caveat": self.permissions.get_caveat,
            "request_permitted_chains_permission": (
                lambda chain_ids: self.permissions.request_permitted_chains_permission(origin, chain_ids)
            ),
            "grant_permitted_chains_permission_incremental": (
                lambda chain_ids: self.permissions.grant_permitted_chains_permission_incremental(
                    origin, chain_ids
                )
            ),
            "request_user_approval": self.approvals.request_user_approval,
            "start_approval_flow": self.approvals.start_approval_flow,
            "end_approval_flow": self.approvals.end_approval_flow,
        }

    def add_chain_hooks(self, origin: str) -> AddChainHooks:
        return AddChainHooks.from_mapping(self.hooks_for(origin))


@dataclass
class HookCall:
    name: str
    args: tuple
    kwargs: dict
    error: Optional[str] = None


def record_calls(hooks: dict[str, Hook], log: list[HookCall]) -> dict[str, Hook]:
    """Wrap every hook so each call is appended to *log*."""

    def _wrap(name: str, hook: Hook) -> Hook:
        @functools.wraps(hook)
        async def wrapper(*args, **kwargs):
            call = HookCall(name=name, args=args, kwargs=kwargs)
            log.append(call)
            try:
                result = hook(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                call.error = repr(exc)
                raise
            return result

        return wrapper

    return {name: _wrap(name, hook) for name, hook in hooks.items()}
