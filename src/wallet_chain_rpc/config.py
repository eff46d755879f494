"""Configuration system for wallet-chain-rpc.

Loads settings from `.wallet-chain-rpc/config.yaml`, supports environment
variable expansion, and describes the wallet state the in-memory controllers
start from.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from wallet_chain_rpc.add_chain.approval import ApprovalPolicy
from wallet_chain_rpc.models import NetworkConfiguration


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class ApprovalPolicyConfig(BaseModel):
    """When ``wallet_addEthereumChain`` prompts the user."""

    confirm_network_creation: bool = True  # prompt for new chains even if already permitted
    confirm_pure_switch: bool = False      # prompt when only switching to a permitted chain

    def to_policy(self) -> ApprovalPolicy:
        return ApprovalPolicy(
            confirm_network_creation=self.confirm_network_creation,
            confirm_pure_switch=self.confirm_pure_switch,
        )


class LoggingConfig(BaseModel):
    level: str = "WARNING"


class WalletStateConfig(BaseModel):
    """Seed state for the in-memory controllers.

    ``permissions`` maps an origin to its permitted chain ids; an origin that
    is missing has no permission record at all. ``domains`` maps an origin to
    the chain id it is currently using.
    """

    include_built_in_networks: bool = True
    networks: list[NetworkConfiguration] = Field(default_factory=list)
    permissions: dict[str, list[str]] = Field(default_factory=dict)
    domains: dict[str, str] = Field(default_factory=dict)
    default_chain_id: str = "0x1"


class WalletRpcConfig(BaseModel):
    """Root configuration object."""

    approval: ApprovalPolicyConfig = Field(default_factory=ApprovalPolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    state: WalletStateConfig = Field(default_factory=WalletStateConfig)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def get_root_dir(base: Path | None = None) -> Path:
    """Return the ``.wallet-chain-rpc/`` directory (no auto-create).

    Parameters
    ----------
    base:
        Parent directory that contains (or will contain) the root folder.
        Defaults to the current working directory.
    """
    if base is None:
        base = Path.cwd()
    return base / ".wallet-chain-rpc"


def get_config_path(base: Path | None = None) -> Path:
    return get_root_dir(base) / "config.yaml"


def load_config(path: Path) -> WalletRpcConfig:
    """Load and validate a configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation. A missing file yields the defaults.
    """
    if not path.exists():
        return WalletRpcConfig()
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return WalletRpcConfig.model_validate(expanded)


def save_config(config: WalletRpcConfig, path: Path) -> None:
    """Serialize a :class:`WalletRpcConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
