"""RPC method registry - register wallet methods and dispatch requests to them."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from wallet_chain_rpc.errors import (
    InvalidRequestError,
    MethodNotFoundError,
    serialize_error,
)
from wallet_chain_rpc.models import JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger("wallet_chain_rpc.middleware")

Implementation = Callable[..., Awaitable[Any]]


@dataclass
class RpcMethod:
    name: str
    implementation: Implementation
    hook_names: tuple[str, ...]
    description: str = ""

    def select_hooks(self, hooks: Mapping[str, Any]) -> dict[str, Any]:
        """The subset of *hooks* this method is allowed to see."""
        return {name: hooks[name] for name in self.hook_names if name in hooks}

    async def execute(self, request: JsonRpcRequest, hooks: Mapping[str, Any], **options) -> Any:
        return await self.implementation(request, self.select_hooks(hooks), **options)


class MethodRegistry:
    """Global registry of wallet RPC methods."""

    _instance: MethodRegistry | None = None
    _methods: dict[str, RpcMethod]

    def __init__(self):
        self._methods = {}

    @classmethod
    def get(cls) -> MethodRegistry:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, method: RpcMethod) -> None:
        self._methods[method.name] = method

    def get_method(self, name: str) -> RpcMethod | None:
        return self._methods.get(name)

    def list_names(self) -> list[str]:
        return list(self._methods.keys())


def rpc_method(name: str, hook_names: tuple[str, ...], description: str = ""):
    """Decorator to register a coroutine function as an RPC method.

    Usage:
        @rpc_method("wallet_addEthereumChain", hook_names=("add_network", ...))
        async def add_ethereum_chain(request, hooks):
            ...
    """

    def decorator(func: Implementation) -> Implementation:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"RPC method '{name}' must be a coroutine function")
        MethodRegistry.get().register(
            RpcMethod(
                name=name,
                implementation=func,
                hook_names=tuple(hook_names),
                description=description,
            )
        )
        return func

    return decorator


def _load_builtin_methods() -> None:
    # Importing the package registers its methods.
    import wallet_chain_rpc.add_chain  # noqa: F401


async def dispatch(
    request: JsonRpcRequest | dict,
    hooks: Mapping[str, Any],
    registry: MethodRegistry | None = None,
    **options,
) -> dict[str, Any]:
    """Run *request* and return a JSON-RPC 2.0 response dict.

    Errors never escape: RPC errors keep their code and message, anything
    else becomes an internal error carrying the original message.
    """
    if registry is None:
        _load_builtin_methods()
        registry = MethodRegistry.get()

    request_id = request.get("id") if isinstance(request, dict) else request.id
    try:
        if isinstance(request, dict):
            try:
                request = JsonRpcRequest.model_validate(request)
            except ValidationError as exc:
                raise InvalidRequestError(
                    data={"errors": [err["msg"] for err in exc.errors()]}
                ) from exc

        method = registry.get_method(request.method)
        if method is None:
            raise MethodNotFoundError(
                f'The method "{request.method}" does not exist / is not available.'
            )
        result = await method.execute(request, hooks, **options)
    except Exception as exc:
        logger.debug(f"Request {request_id!r} failed: {exc!r}")
        return JsonRpcResponse(id=request_id, error=serialize_error(exc)).to_wire()

    return JsonRpcResponse(id=request_id, result=result).to_wire()
