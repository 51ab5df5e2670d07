"""
Core types and protocols used across modules.

This module provides base enums and protocol definitions shared by the
session manager, the credential stores and the synchronous bridge.
"""

from collections.abc import MutableMapping
from enum import Enum
from typing import Protocol


class ErrorCode(Enum):
    """
    Error codes carried by every ServiceError.

    Values match the identity provider / Graph service error codes so a
    structured error can be compared against what the service reports.

    Codes:
        INVALID_REQUEST: Missing or empty configuration, never retriable
        AUTHENTICATION_FAILURE: Token endpoint error, no usable token,
                                or the user cancelled consent
        SERVICE_NOT_AVAILABLE: A mandatory collaborator was not supplied
        OPERATION_CANCELED: The asynchronous exchange was cancelled
        GENERAL_EXCEPTION: Unclassified failure surfaced by the bridge
    """

    INVALID_REQUEST = "invalidRequest"
    AUTHENTICATION_FAILURE = "authenticationFailure"
    SERVICE_NOT_AVAILABLE = "serviceNotAvailable"
    OPERATION_CANCELED = "operationCanceled"
    GENERAL_EXCEPTION = "generalException"


class StoreScope(Enum):
    """
    Protection domain of a persisted refresh token.

    USER records are isolated to the current OS user. SYSTEM records are
    shared machine-wide.
    """

    USER = "user"
    SYSTEM = "system"


class SignableRequest(Protocol):
    """
    Anything with a mutable header mapping.

    aiohttp's ClientRequest, requests' PreparedRequest and httpx.Request all
    satisfy this protocol.
    """

    headers: MutableMapping[str, str]


__all__ = [
    "ErrorCode",
    "StoreScope",
    "SignableRequest",
]
