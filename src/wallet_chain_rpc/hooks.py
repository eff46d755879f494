"""Capability set handed to ``wallet_addEthereumChain``.

The handler never reaches for global controllers; every collaborator it may
call is a field of :class:`AddChainHooks`. Hooks may be plain callables or
coroutine functions.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Union

Hook = Callable[..., Union[Any, Awaitable[Any]]]


async def call_hook(hook: Hook, *args: Any, **kwargs: Any) -> Any:
    """Invoke a hook and await its result when it returns an awaitable."""
    result = hook(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def accepts_keyword(hook: Hook, name: str) -> bool:
    """Whether *hook* can be called with keyword argument *name*."""
    try:
        signature = inspect.signature(hook)
    except (TypeError, ValueError):
        return False
    for parameter in signature.parameters.values():
        if parameter.kind is parameter.VAR_KEYWORD:
            return True
        if parameter.name == name and parameter.kind in (
            parameter.POSITIONAL_OR_KEYWORD,
            parameter.KEYWORD_ONLY,
        ):
            return True
    return False


@dataclass
class AddChainHooks:
    get_current_chain_id_for_domain: Hook
    get_network_configuration_by_chain_id: Hook
    add_network: Hook
    update_network: Hook
    set_active_network: Hook
    get_caveat: Hook
    request_permitted_chains_permission: Hook
    grant_permitted_chains_permission_incremental: Hook
    request_user_approval: Hook
    start_approval_flow: Hook
    end_approval_flow: Hook

    @classmethod
    def hook_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, hooks: dict[str, Hook]) -> "AddChainHooks":
        """Pick the hooks this method needs out of a larger capability mapping."""
        missing = [name for name in cls.hook_names() if name not in hooks]
        if missing:
            raise KeyError(f"Missing hooks for wallet_addEthereumChain: {missing}")
        return cls(**{name: hooks[name] for name in cls.hook_names()})
