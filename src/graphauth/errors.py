"""
Unified exception hierarchy for graphauth.

Every failure a caller can observe is a ServiceError subclass carrying an
ErrorCode. Transport and provider errors are normalized into this hierarchy
at the token exchange boundary and pass through the synchronous bridge
unchanged in kind.
"""

from dataclasses import dataclass

from graphauth.types import ErrorCode


@dataclass(frozen=True)
class ErrorDetail:
    """Structured error as reported by the service: code plus message."""

    code: str
    message: str

    def __str__(self) -> str:
        return f"Code: {self.code}\nMessage: {self.message}"


class ServiceError(Exception):
    """
    Base exception for all graphauth errors.

    Attributes:
        message: Human-readable error description
        code: Error classification
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    code: ErrorCode = ErrorCode.GENERAL_EXCEPTION

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def error(self) -> ErrorDetail:
        return ErrorDetail(code=self.code.value, message=self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Configuration Errors
# =============================================================================


class InvalidRequestError(ServiceError):
    """Required configuration is missing or empty. Raised at construction."""

    code = ErrorCode.INVALID_REQUEST


class ServiceNotAvailableError(ServiceError):
    """A mandatory collaborator (credential store, consent UI) was not supplied."""

    code = ErrorCode.SERVICE_NOT_AVAILABLE


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthenticationFailure(ServiceError):
    """
    No valid token could be produced.

    Raised when the token endpoint reports an error, returns no usable
    token, or the user cancels interactive consent (``cancelled`` is True).
    """

    code = ErrorCode.AUTHENTICATION_FAILURE

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        cancelled: bool = False,
    ):
        super().__init__(message, cause, context)
        self.cancelled = cancelled


# =============================================================================
# Execution Errors
# =============================================================================


class OperationCanceledError(ServiceError):
    """The underlying asynchronous exchange was cancelled rather than faulted."""

    code = ErrorCode.OPERATION_CANCELED


# =============================================================================
# Classification Utilities
# =============================================================================


def is_auth_error(error: BaseException) -> bool:
    """Check whether an error means the caller has no usable credential."""
    return isinstance(error, AuthenticationFailure)


def find_service_error(error: BaseException | None) -> ServiceError | None:
    """
    Find the first ServiceError in an exception's cause/context chain.

    Args:
        error: Exception to inspect (may itself be a ServiceError)

    Returns:
        The ServiceError found, or None
    """
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        if isinstance(error, ServiceError):
            return error
        seen.add(id(error))
        error = error.__cause__ or error.__context__
    return None


def wrap_exception(error: BaseException) -> ServiceError:
    """
    Normalize any exception into the ServiceError hierarchy.

    ServiceErrors (directly or anywhere in the cause chain) are returned as
    they are. Anything else becomes a generic ServiceError that keeps the
    original as its cause.
    """
    found = find_service_error(error)
    if found is not None:
        return found
    cause = error if isinstance(error, Exception) else None
    return ServiceError(f"{type(error).__name__}: {error}", cause=cause)


__all__ = [
    "ErrorDetail",
    "ServiceError",
    "InvalidRequestError",
    "ServiceNotAvailableError",
    "AuthenticationFailure",
    "OperationCanceledError",
    "is_auth_error",
    "find_service_error",
    "wrap_exception",
]
