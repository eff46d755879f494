"""Reconcile an origin's permitted-chains caveat with a requested chain."""

from __future__ import annotations

import logging
from enum import Enum

from wallet_chain_rpc.hooks import AddChainHooks, call_hook
from wallet_chain_rpc.models import PermittedChainsCaveat

logger = logging.getLogger("wallet_chain_rpc.add_chain.permissions")

PERMITTED_CHAINS_PERMISSION = "endowment:permitted-chains"


class PermissionDecision(str, Enum):
    BOOTSTRAP = "bootstrap"
    INCREMENT = "increment"
    NONE = "none"

    @property
    def grants_permission(self) -> bool:
        return self is not PermissionDecision.NONE


def _coerce_caveat(value: object) -> PermittedChainsCaveat | None:
    if value is None or isinstance(value, PermittedChainsCaveat):
        return value
    return PermittedChainsCaveat.model_validate(value)


async def reconcile_permission(
    origin: str,
    chain_id: str,
    hooks: AddChainHooks,
) -> PermissionDecision:
    """Read the caveat and decide which grant, if any, *chain_id* needs."""
    caveat = _coerce_caveat(
        await call_hook(hooks.get_caveat, origin, PERMITTED_CHAINS_PERMISSION)
    )
    if caveat is None:
        decision = PermissionDecision.BOOTSTRAP
    elif chain_id not in caveat.value:
        decision = PermissionDecision.INCREMENT
    else:
        decision = PermissionDecision.NONE
    logger.debug(f"Permission for {chain_id} on {origin}: {decision.value}")
    return decision


async def apply_permission_decision(
    decision: PermissionDecision,
    chain_id: str,
    hooks: AddChainHooks,
) -> None:
    """Issue the one permission call *decision* implies.

    A rejection propagates unchanged to the caller.
    """
    if decision is PermissionDecision.BOOTSTRAP:
        await call_hook(hooks.request_permitted_chains_permission, [chain_id])
    elif decision is PermissionDecision.INCREMENT:
        await call_hook(hooks.grant_permitted_chains_permission_incremental, [chain_id])
    else:
        return
    logger.info(f"Granted {PERMITTED_CHAINS_PERMISSION} for {chain_id} ({decision.value})")
