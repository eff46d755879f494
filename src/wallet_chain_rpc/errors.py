"""JSON-RPC error types raised by wallet RPC methods.

Every error carries a JSON-RPC ``code`` so the dispatcher can serialize it
into the standard error object:

    {"code": -32602, "message": "...", "data": {...optional...}}

Exceptions raised by collaborators are not wrapped; ``serialize_error`` turns
anything that is not an :class:`RpcError` into an internal error that keeps
the original message.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Standard JSON-RPC and EIP-1193 provider error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL = -32603

    USER_REJECTED_REQUEST = 4001
    UNAUTHORIZED = 4100


_DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PARSE_ERROR: "Invalid JSON was received by the server.",
    ErrorCode.INVALID_REQUEST: "The JSON sent is not a valid Request object.",
    ErrorCode.METHOD_NOT_FOUND: "The method does not exist / is not available.",
    ErrorCode.INVALID_PARAMS: "Invalid method parameter(s).",
    ErrorCode.INTERNAL: "Internal JSON-RPC error.",
    ErrorCode.USER_REJECTED_REQUEST: "User rejected the request.",
    ErrorCode.UNAUTHORIZED: "The requested account and/or method has not been authorized by the user.",
}


class RpcError(Exception):
    """An error that maps onto a JSON-RPC error object."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str | None = None, data: Any | None = None) -> None:
        self.message = message or _DEFAULT_MESSAGES[self.code]
        self.data = data
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        err: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            err["data"] = self.data
        return err

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RpcError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((int(self.code), self.message))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={int(self.code)}, message={self.message!r})"


class InvalidRequestError(RpcError):
    code = ErrorCode.INVALID_REQUEST


class MethodNotFoundError(RpcError):
    code = ErrorCode.METHOD_NOT_FOUND


class InvalidParamsError(RpcError):
    code = ErrorCode.INVALID_PARAMS


class InternalError(RpcError):
    code = ErrorCode.INTERNAL


class UserRejectedRequestError(RpcError):
    code = ErrorCode.USER_REJECTED_REQUEST


def serialize_error(exc: BaseException) -> dict[str, Any]:
    """Convert any exception into a JSON-RPC error object."""
    if isinstance(exc, RpcError):
        return exc.to_dict()
    return InternalError(str(exc) or None, data={"cause": exc.__class__.__name__}).to_dict()
