"""``wallet_addEthereumChain`` - validation, resolution, permissions, approval and switching."""

from wallet_chain_rpc.add_chain.approval import ApprovalPolicy, ApprovalSession
from wallet_chain_rpc.add_chain.handler import (
    METHOD_NAME,
    AddChainOutcome,
    AddEthereumChainHandler,
    HandlerState,
    add_ethereum_chain,
)
from wallet_chain_rpc.add_chain.permissions import PERMITTED_CHAINS_PERMISSION, PermissionDecision
from wallet_chain_rpc.add_chain.resolver import NetworkDecision, NetworkResolution
from wallet_chain_rpc.add_chain.validation import validate_add_ethereum_chain_params

__all__ = [
    "METHOD_NAME",
    "PERMITTED_CHAINS_PERMISSION",
    "AddChainOutcome",
    "AddEthereumChainHandler",
    "ApprovalPolicy",
    "ApprovalSession",
    "HandlerState",
    "NetworkDecision",
    "NetworkResolution",
    "PermissionDecision",
    "add_ethereum_chain",
    "validate_add_ethereum_chain_params",
]
