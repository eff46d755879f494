"""Parameter validation for ``wallet_addEthereumChain``.

Validation is pure: it either returns an :class:`AddEthereumChainParams` or
raises :class:`InvalidParamsError`, and never touches a collaborator.
"""

from __future__ import annotations

import json
from typing import Any

from wallet_chain_rpc.chains import (
    chain_id_to_int,
    first_web_url,
    is_prefixed_formatted_hex_string,
    is_safe_chain_id,
)
from wallet_chain_rpc.errors import InvalidParamsError
from wallet_chain_rpc.models import AddEthereumChainParams

ALLOWED_KEYS: tuple[str, ...] = tuple(
    sorted(("blockExplorerUrls", "chainId", "chainName", "nativeCurrency", "rpcUrls"))
)

MAX_CHAIN_NAME_LENGTH = 100
MAX_TICKER_LENGTH = 6
REQUIRED_DECIMALS = 18


def _dump(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)


def unsupported_keys(payload: dict[str, Any]) -> list[str]:
    """Keys of *payload* outside the allow-list, in the order they appear."""
    return [key for key in payload if key not in ALLOWED_KEYS]


def validate_chain_id(chain_id: Any) -> str:
    """Return the lower-cased chain id or raise ``InvalidParamsError``."""
    normalized = chain_id.lower() if isinstance(chain_id, str) else chain_id
    if not is_prefixed_formatted_hex_string(normalized):
        raise InvalidParamsError(
            "Expected 0x-prefixed, unpadded, non-zero hexadecimal string 'chainId'. "
            f"Received:\n{chain_id}"
        )
    if not is_safe_chain_id(chain_id_to_int(normalized)):
        raise InvalidParamsError(
            f'Invalid chain ID "{normalized}": numerical value greater than max safe value. '
            f"Received:\n{chain_id}"
        )
    return normalized


def _validate_native_currency(native_currency: Any) -> str:
    if not isinstance(native_currency, dict):
        raise InvalidParamsError(
            f"Expected object 'nativeCurrency'. Received:\n{_dump(native_currency)}"
        )
    decimals = native_currency.get("decimals")
    if isinstance(decimals, bool) or decimals != REQUIRED_DECIMALS:
        raise InvalidParamsError(
            "Expected the number 18 for 'nativeCurrency.decimals' when 'nativeCurrency' "
            f"is provided. Received: {decimals}"
        )
    symbol = native_currency.get("symbol")
    if not symbol or not isinstance(symbol, str):
        raise InvalidParamsError(
            f"Expected a string 'nativeCurrency.symbol'. Received: {symbol}"
        )
    if len(symbol) > MAX_TICKER_LENGTH:
        raise InvalidParamsError(
            f"Expected 1-6 character string 'nativeCurrency.symbol'. Received:\n{symbol}"
        )
    return symbol


def validate_add_ethereum_chain_params(params: Any) -> AddEthereumChainParams:
    """Validate and normalize the ``params`` array of a request.

    Raises
    ------
    InvalidParamsError
        If the payload is malformed, carries unsupported keys, or any field
        fails its check.
    """
    if not isinstance(params, list) or len(params) != 1 or not isinstance(params[0], dict):
        raise InvalidParamsError(
            f"Expected single, object parameter. Received:\n{_dump(params)}"
        )
    payload: dict[str, Any] = params[0]

    extra = unsupported_keys(payload)
    if extra:
        listing = "\n".join(extra)
        raise InvalidParamsError(
            f"Received unexpected keys on object parameter. Unsupported keys:\n{listing}"
        )

    chain_id = validate_chain_id(payload.get("chainId"))

    rpc_urls = payload.get("rpcUrls")
    rpc_url = first_web_url(rpc_urls)
    if rpc_url is None:
        raise InvalidParamsError(
            "Expected an array with at least one valid string HTTPS url 'rpcUrls', "
            f"Received:\n{_dump(rpc_urls)}"
        )

    block_explorer_url = first_web_url(payload.get("blockExplorerUrls"))

    chain_name = payload.get("chainName")
    if not isinstance(chain_name, str) or not chain_name:
        raise InvalidParamsError(
            f"Expected non-empty string 'chainName'. Received:\n{chain_name}"
        )

    ticker = _validate_native_currency(payload.get("nativeCurrency"))

    return AddEthereumChainParams(
        chain_id=chain_id,
        chain_name=chain_name[:MAX_CHAIN_NAME_LENGTH],
        rpc_url=rpc_url,
        block_explorer_url=block_explorer_url,
        ticker=ticker,
    )
