"""User confirmation for ``wallet_addEthereumChain``.

An :class:`ApprovalSession` owns the approval flow of one invocation: it is
opened on entry and closed exactly once on exit, whether the pipeline
succeeded, raised, or was cancelled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from wallet_chain_rpc.add_chain.permissions import PermissionDecision
from wallet_chain_rpc.add_chain.resolver import NetworkDecision, NetworkResolution
from wallet_chain_rpc.hooks import AddChainHooks, call_hook
from wallet_chain_rpc.models import (
    AddEthereumChainApproval,
    AddEthereumChainParams,
    AddEthereumChainRequestData,
    ApprovalFlowHandle,
    RpcPrefs,
)

logger = logging.getLogger("wallet_chain_rpc.add_chain.approval")


@dataclass(frozen=True)
class ApprovalPolicy:
    """When to prompt beyond the cases that always need a prompt.

    ``confirm_network_creation``: prompt for a brand-new chain even when the
    origin already holds the permission for it.
    ``confirm_pure_switch``: prompt when the request only switches to a
    known, already-permitted network.
    """

    confirm_network_creation: bool = True
    confirm_pure_switch: bool = False


def requires_confirmation(
    network_decision: NetworkDecision,
    permission_decision: PermissionDecision,
    policy: ApprovalPolicy,
) -> bool:
    if network_decision is NetworkDecision.NOOP:
        return False
    if permission_decision.grants_permission:
        return True
    if network_decision is NetworkDecision.UPDATE:
        return True
    if network_decision is NetworkDecision.CREATE:
        return policy.confirm_network_creation
    return policy.confirm_pure_switch


def build_approval_request(
    origin: str,
    params: AddEthereumChainParams,
    resolution: NetworkResolution,
) -> AddEthereumChainApproval:
    return AddEthereumChainApproval(
        origin=origin,
        request_data=AddEthereumChainRequestData(
            chain_id=params.chain_id,
            chain_name=params.chain_name,
            rpc_url=params.rpc_url,
            ticker=params.ticker,
            rpc_prefs=RpcPrefs(block_explorer_url=params.block_explorer_url),
            existing_network=resolution.existing is not None,
        ),
    )


class ApprovalSession:
    """Async context manager around ``start_approval_flow``/``end_approval_flow``."""

    def __init__(self, hooks: AddChainHooks, origin: str) -> None:
        self._hooks = hooks
        self.origin = origin
        self.flow: ApprovalFlowHandle | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self.flow is not None and not self._closed

    async def __aenter__(self) -> "ApprovalSession":
        if self.flow is not None:
            raise RuntimeError("Approval flow already started for this request")
        handle = await call_hook(self._hooks.start_approval_flow)
        if not isinstance(handle, ApprovalFlowHandle):
            handle = ApprovalFlowHandle.model_validate(handle)
        self.flow = handle
        logger.debug(f"Opened approval flow {handle.id} for {self.origin}")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            await self.close()
            return False
        # The pipeline error is the one reported; a failing close is only logged.
        try:
            await self.close()
        except Exception:
            logger.exception(f"Failed to end approval flow for {self.origin}")
        return False

    async def close(self) -> None:
        if not self.is_open:
            return
        self._closed = True
        await call_hook(self._hooks.end_approval_flow, self.flow)
        logger.debug(f"Closed approval flow {self.flow.id} for {self.origin}")

    async def request_confirmation(
        self,
        params: AddEthereumChainParams,
        resolution: NetworkResolution,
    ) -> Any:
        """Prompt the user and return the selection token the prompt resolved to."""
        if not self.is_open:
            raise RuntimeError("Approval flow is not open")
        request = build_approval_request(self.origin, params, resolution)
        token = await call_hook(self._hooks.request_user_approval, request)
        logger.info(f"User confirmed {params.chain_id} for {self.origin}")
        return token
