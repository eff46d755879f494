"""Chain identifiers, URL helpers and the networks every wallet ships with."""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx
from web3 import Web3

# Largest chain id that survives a round trip through an IEEE-754 double,
# matching what wallets and dapps can both represent.
MAX_SAFE_CHAIN_ID = 4503599627370476

_PREFIXED_HEX_RE = re.compile(r"^0x[1-9a-f]+[0-9a-f]*$", re.IGNORECASE)
_LOCALHOST_NAMES = frozenset({"localhost", "127.0.0.1"})


class CHAIN_IDS:
    """Hex chain ids of well-known networks."""

    MAINNET = "0x1"
    SEPOLIA = "0xaa36a7"
    LINEA_MAINNET = "0xe708"
    OPTIMISM = "0xa"
    POLYGON = "0x89"
    BASE = "0x2105"
    ARBITRUM = "0xa4b1"


@dataclass(frozen=True)
class Chain:
    """A network that is configured out of the box."""

    name: str
    chain_id: str
    rpc_url: str
    native_symbol: str
    explorer_url: str
    network_client_id: str


CHAINS: dict[str, Chain] = {
    CHAIN_IDS.MAINNET: Chain(
        name="Ethereum Mainnet",
        chain_id=CHAIN_IDS.MAINNET,
        rpc_url="https://mainnet.infura.io/v3/",
        native_symbol="ETH",
        explorer_url="https://etherscan.io",
        network_client_id="mainnet",
    ),
    CHAIN_IDS.SEPOLIA: Chain(
        name="Sepolia",
        chain_id=CHAIN_IDS.SEPOLIA,
        rpc_url="https://sepolia.infura.io/v3/",
        native_symbol="SepoliaETH",
        explorer_url="https://sepolia.etherscan.io",
        network_client_id="sepolia",
    ),
    CHAIN_IDS.LINEA_MAINNET: Chain(
        name="Linea Mainnet",
        chain_id=CHAIN_IDS.LINEA_MAINNET,
        rpc_url="https://linea-mainnet.infura.io/v3/",
        native_symbol="ETH",
        explorer_url="https://lineascan.build",
        network_client_id="linea-mainnet",
    ),
}


def get_chain(chain_id: str) -> Chain:
    """Get a built-in chain by hex id. Raises ``KeyError`` if not found."""
    if chain_id not in CHAINS:
        raise KeyError(
            f"Unknown built-in chain '{chain_id}'. Available: {list_chain_ids()}"
        )
    return CHAINS[chain_id]


def list_chain_ids() -> list[str]:
    """Return the hex ids of all built-in chains."""
    return list(CHAINS.keys())


# ---------------------------------------------------------------------------
# Chain id helpers
# ---------------------------------------------------------------------------


def is_prefixed_formatted_hex_string(value: object) -> bool:
    """True for ``0x``-prefixed, unpadded, non-zero hex strings such as ``0x1``."""
    return isinstance(value, str) and bool(_PREFIXED_HEX_RE.match(value))


def chain_id_to_int(chain_id: str) -> int:
    return Web3.to_int(hexstr=chain_id)


def is_safe_chain_id(chain_id: int) -> bool:
    return 0 < chain_id <= MAX_SAFE_CHAIN_ID


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def is_web_url(value: object) -> bool:
    """Accept ``https`` URLs, and plain ``http`` only when it points at localhost."""
    if not isinstance(value, str) or not value:
        return False
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return False
    if not url.host:
        return False
    if url.scheme == "https":
        return True
    return url.scheme == "http" and url.host in _LOCALHOST_NAMES


def first_web_url(urls: object) -> str | None:
    """Return the first usable URL of a list, or ``None``."""
    if not isinstance(urls, list):
        return None
    for url in urls:
        if is_web_url(url):
            return url
    return None
