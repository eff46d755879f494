"""Shared fixtures: a mocked capability set for wallet_addEthereumChain."""

from __future__ import annotations

from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from wallet_chain_rpc.hooks import AddChainHooks
from wallet_chain_rpc.models import ApprovalFlowHandle, PermittedChainsCaveat

from ._helpers import NON_INFURA_CHAIN_ID, with_client_ids

_UNSET = object()


def _mock_hooks(permitted: Any = _UNSET, **overrides: Any) -> AddChainHooks:
    """Capability set backed by mocks.

    *permitted* is the origin's permitted chain ids; ``None`` means the
    origin has no permission record at all. Defaults to an empty record.
    """
    if permitted is _UNSET:
        permitted = []
    caveat = None if permitted is None else PermittedChainsCaveat(value=list(permitted))

    hooks: dict[str, Any] = {
        "get_current_chain_id_for_domain": MagicMock(return_value=NON_INFURA_CHAIN_ID),
        "get_network_configuration_by_chain_id": MagicMock(return_value=None),
        "add_network": AsyncMock(side_effect=lambda config: with_client_ids(config)),
        "update_network": AsyncMock(
            side_effect=lambda chain_id, config, **kwargs: with_client_ids(config)
        ),
        "set_active_network": AsyncMock(return_value=None),
        "get_caveat": MagicMock(return_value=caveat),
        "request_permitted_chains_permission": AsyncMock(return_value=None),
        "grant_permitted_chains_permission_incremental": AsyncMock(return_value=None),
        "request_user_approval": AsyncMock(return_value=None),
        "start_approval_flow": MagicMock(return_value=ApprovalFlowHandle(id="approvalFlowId")),
        "end_approval_flow": MagicMock(return_value=None),
    }
    hooks.update(overrides)
    return AddChainHooks(**hooks)


@pytest.fixture
def make_hooks() -> Callable[..., AddChainHooks]:
    return _mock_hooks
