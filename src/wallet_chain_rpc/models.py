"""Pydantic models for network configurations, permissions and RPC envelopes.

Field names are snake_case in Python and camelCase on the wire, so a model
can be built from (and dumped back to) the payloads the wallet exchanges
with dapps and with its controllers.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RpcEndpointType(str, Enum):
    CUSTOM = "custom"
    INFURA = "infura"


class ApprovalType(str, Enum):
    ADD_ETHEREUM_CHAIN = "wallet_addEthereumChain"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


# Stores mint string ids; some hand out integers.
NetworkClientId = Union[StrictStr, StrictInt]


class WireModel(BaseModel):
    """Base model with camelCase aliases; accepts either naming on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Network configuration
# ---------------------------------------------------------------------------

class RpcEndpoint(WireModel):
    """One RPC URL of a network. ``network_client_id`` is set by the store."""

    url: str
    type: RpcEndpointType = RpcEndpointType.CUSTOM
    network_client_id: Optional[NetworkClientId] = None
    name: Optional[str] = None

    @classmethod
    def new_network_client_id(cls) -> str:
        return _new_id()


class NetworkConfiguration(WireModel):
    """Stored description of a chain, owned by the network store."""

    chain_id: str
    name: str
    native_currency: str
    rpc_endpoints: list[RpcEndpoint]
    default_rpc_endpoint_index: int = 0
    block_explorer_urls: list[str] = Field(default_factory=list)
    default_block_explorer_url_index: Optional[int] = None

    @model_validator(mode="after")
    def _check_indexes(self) -> "NetworkConfiguration":
        if not 0 <= self.default_rpc_endpoint_index < len(self.rpc_endpoints):
            raise ValueError(
                f"defaultRpcEndpointIndex {self.default_rpc_endpoint_index} is out of "
                f"range for {len(self.rpc_endpoints)} RPC endpoint(s)"
            )
        index = self.default_block_explorer_url_index
        if index is not None and not 0 <= index < len(self.block_explorer_urls):
            raise ValueError(
                f"defaultBlockExplorerUrlIndex {index} is out of range for "
                f"{len(self.block_explorer_urls)} block explorer URL(s)"
            )
        return self

    @classmethod
    def coerce(cls, value: "NetworkConfiguration | dict | None") -> "NetworkConfiguration | None":
        """Accept a model or its wire-format dict, as controllers may return either."""
        if value is None or isinstance(value, cls):
            return value
        return cls.model_validate(value)

    @property
    def default_rpc_endpoint(self) -> RpcEndpoint:
        return self.rpc_endpoints[self.default_rpc_endpoint_index]

    @property
    def default_block_explorer_url(self) -> str | None:
        if self.default_block_explorer_url_index is None:
            return None
        return self.block_explorer_urls[self.default_block_explorer_url_index]


# ---------------------------------------------------------------------------
# wallet_addEthereumChain
# ---------------------------------------------------------------------------

class AddEthereumChainParams(BaseModel):
    """Normalized ``wallet_addEthereumChain`` request, as produced by validation."""

    chain_id: str
    chain_name: str
    rpc_url: str
    block_explorer_url: Optional[str] = None
    ticker: str


class PermittedChainsCaveat(WireModel):
    """The chain ids an origin may switch to. ``None`` in place of this
    model means no permission record exists at all."""

    value: list[str] = Field(default_factory=list)


class ApprovalFlowHandle(WireModel):
    id: str = Field(default_factory=_new_id)


class RpcPrefs(WireModel):
    block_explorer_url: Optional[str] = None


class AddEthereumChainRequestData(WireModel):
    chain_id: str
    chain_name: str
    rpc_url: str
    ticker: str
    rpc_prefs: RpcPrefs = Field(default_factory=RpcPrefs)
    existing_network: bool = False


class AddEthereumChainApproval(WireModel):
    """Confirmation request handed to ``request_user_approval``."""

    origin: str
    type: ApprovalType = ApprovalType.ADD_ETHEREUM_CHAIN
    request_data: AddEthereumChainRequestData


# ---------------------------------------------------------------------------
# JSON-RPC envelopes
# ---------------------------------------------------------------------------

RequestId = Union[int, str, None]


class JsonRpcRequest(BaseModel):
    id: RequestId = None
    jsonrpc: str = "2.0"
    method: str
    params: Any = None
    origin: str


class JsonRpcResponse(BaseModel):
    id: RequestId = None
    jsonrpc: str = "2.0"
    result: Any = None
    error: Optional[dict[str, Any]] = None

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"id": self.id, "jsonrpc": self.jsonrpc}
        if self.error is not None:
            body["error"] = self.error
        else:
            body["result"] = self.result
        return body
