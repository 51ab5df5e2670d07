"""Context variables for structured logging."""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_client_id: ContextVar[str] = ContextVar("client_id", default="")
_flow: ContextVar[str] = ContextVar("flow", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")

_VARS = {
    "client_id": _client_id,
    "flow": _flow,
    "operation": _operation,
}


def set_log_context(
    client_id: str | None = None,
    flow: str | None = None,
    operation: str | None = None,
) -> None:
    if client_id is not None:
        _client_id.set(client_id)
    if flow is not None:
        _flow.set(flow)
    if operation is not None:
        _operation.set(operation)


def get_log_context() -> dict[str, str]:
    return {name: var.get() for name, var in _VARS.items()}


def clear_log_context() -> None:
    for var in _VARS.values():
        var.set("")


@contextmanager
def log_context(
    client_id: str | None = None,
    flow: str | None = None,
    operation: str | None = None,
) -> Iterator[None]:
    """
    Temporarily set log context fields.

    Usage:
        with log_context(client_id=client_id, operation="authenticate"):
            # All logs in this block carry client_id and operation
            await manager.authenticate()
    """
    values = {"client_id": client_id, "flow": flow, "operation": operation}
    tokens = [
        (_VARS[name], _VARS[name].set(value))
        for name, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
