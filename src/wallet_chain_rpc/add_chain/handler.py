"""``wallet_addEthereumChain``: register and/or switch to an EVM chain.

The handler runs one linear pipeline per request::

    VALIDATING -> RESOLVING -> NOOP
                            -> RECONCILING_PERMISSION -> APPROVING -> SWITCHING -> SUCCESS

and any state may end in ERROR. Within APPROVING the user is prompted (when
needed), then the network configuration is written, then the permission is
granted. A failed grant therefore leaves the written configuration in place
but never switches networks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from wallet_chain_rpc.add_chain.approval import (
    ApprovalPolicy,
    ApprovalSession,
    requires_confirmation,
)
from wallet_chain_rpc.add_chain.permissions import (
    PermissionDecision,
    apply_permission_decision,
    reconcile_permission,
)
from wallet_chain_rpc.add_chain.resolver import (
    NetworkDecision,
    apply_network_resolution,
    resolve_network,
)
from wallet_chain_rpc.add_chain.switching import resolve_network_client_id, switch_network
from wallet_chain_rpc.add_chain.validation import validate_add_ethereum_chain_params
from wallet_chain_rpc.hooks import AddChainHooks, Hook
from wallet_chain_rpc.middleware import rpc_method
from wallet_chain_rpc.models import JsonRpcRequest, NetworkClientId

logger = logging.getLogger("wallet_chain_rpc.add_chain.handler")

METHOD_NAME = "wallet_addEthereumChain"


class HandlerState(str, Enum):
    VALIDATING = "validating"
    RESOLVING = "resolving"
    RECONCILING_PERMISSION = "reconciling_permission"
    APPROVING = "approving"
    SWITCHING = "switching"
    NOOP = "noop"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (HandlerState.NOOP, HandlerState.SUCCESS, HandlerState.ERROR)


@dataclass
class AddChainOutcome:
    """What one invocation decided and did."""

    origin: str
    chain_id: Optional[str] = None
    states: list[HandlerState] = field(default_factory=list)
    network_decision: Optional[NetworkDecision] = None
    permission_decision: Optional[PermissionDecision] = None
    confirmed: bool = False
    network_client_id: Optional[NetworkClientId] = None
    error: Optional[BaseException] = None

    @property
    def state(self) -> HandlerState | None:
        return self.states[-1] if self.states else None

    def advance(self, state: HandlerState) -> None:
        if self.state is not None and self.state.is_terminal:
            raise RuntimeError(f"Cannot leave terminal state {self.state.value} for {state.value}")
        self.states.append(state)
        logger.debug(f"[{self.origin}] {METHOD_NAME} -> {state.value}")


class AddEthereumChainHandler:
    """Runs ``wallet_addEthereumChain`` against an explicit capability set."""

    def __init__(self, hooks: AddChainHooks, policy: ApprovalPolicy | None = None) -> None:
        self.hooks = hooks
        self.policy = policy or ApprovalPolicy()
        self.last_outcome: AddChainOutcome | None = None

    async def handle(self, origin: str, params: Any) -> AddChainOutcome:
        """Process one request.

        Returns the outcome for NOOP and SUCCESS; every failure is re-raised
        unchanged after the approval flow (if any) has been closed.
        """
        outcome = AddChainOutcome(origin=origin)
        self.last_outcome = outcome
        try:
            await self._run(outcome, params)
        except (Exception, asyncio.CancelledError) as exc:
            outcome.error = exc
            outcome.advance(HandlerState.ERROR)
            logger.warning(
                f"{METHOD_NAME} from {origin} failed in "
                f"{outcome.states[-2].value}: {exc!r}"
            )
            raise
        return outcome

    async def _run(self, outcome: AddChainOutcome, params: Any) -> None:
        hooks = self.hooks
        origin = outcome.origin

        outcome.advance(HandlerState.VALIDATING)
        request = validate_add_ethereum_chain_params(params)
        outcome.chain_id = request.chain_id

        outcome.advance(HandlerState.RESOLVING)
        resolution = await resolve_network(request, origin, hooks)
        outcome.network_decision = resolution.decision
        if resolution.decision is NetworkDecision.NOOP:
            outcome.advance(HandlerState.NOOP)
            logger.info(f"{origin} is already on {request.chain_id} via {request.rpc_url}")
            return

        async with ApprovalSession(hooks, origin) as session:
            outcome.advance(HandlerState.RECONCILING_PERMISSION)
            permission = await reconcile_permission(origin, request.chain_id, hooks)
            outcome.permission_decision = permission

            outcome.advance(HandlerState.APPROVING)
            selection_token = None
            if requires_confirmation(resolution.decision, permission, self.policy):
                selection_token = await session.request_confirmation(request, resolution)
                outcome.confirmed = True
            configuration = await apply_network_resolution(resolution, hooks)
            await apply_permission_decision(permission, request.chain_id, hooks)

            outcome.advance(HandlerState.SWITCHING)
            network_client_id = resolve_network_client_id(configuration, selection_token)
            await switch_network(network_client_id, hooks)
            outcome.network_client_id = network_client_id

        outcome.advance(HandlerState.SUCCESS)
        logger.info(
            f"{origin} switched to {request.chain_id} "
            f"(network: {resolution.decision.value}, permission: {permission.value})"
        )


@rpc_method(
    METHOD_NAME,
    hook_names=AddChainHooks.hook_names(),
    description="Add an EVM chain to the wallet and switch the requesting origin to it.",
)
async def add_ethereum_chain(
    request: JsonRpcRequest,
    hooks: dict[str, Hook],
    approval_policy: ApprovalPolicy | None = None,
) -> None:
    handler = AddEthereumChainHandler(AddChainHooks.from_mapping(hooks), approval_policy)
    await handler.handle(request.origin, request.params)
    return None
