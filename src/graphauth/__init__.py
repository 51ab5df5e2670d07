"""
graphauth: OAuth2 credential and session management for Microsoft Graph.

Async hosts use graphauth.oauth2.SessionManager directly. Blocking callers
use GraphSession, which runs the same session on a private event loop and
pumps the caller's Dispatcher while it waits.
"""

from graphauth.bridge import Dispatcher, LoopThread, SynchronousBridge
from graphauth.client import GraphSession
from graphauth.config import GraphAuthConfig, load_config
from graphauth.errors import (
    AuthenticationFailure,
    InvalidRequestError,
    OperationCanceledError,
    ServiceError,
    ServiceNotAvailableError,
)
from graphauth.oauth2 import (
    AccessToken,
    DelegatedConfig,
    FlowMode,
    ServiceCredentialConfig,
    SessionManager,
    SessionState,
)
from graphauth.storage import FileCredentialStore, MemoryCredentialStore
from graphauth.types import ErrorCode, StoreScope

__version__ = "1.0.0"

__all__ = [
    "GraphSession",
    "SessionManager",
    "GraphAuthConfig",
    "load_config",
    # Flow configuration
    "DelegatedConfig",
    "ServiceCredentialConfig",
    "FlowMode",
    "SessionState",
    "AccessToken",
    # Storage
    "MemoryCredentialStore",
    "FileCredentialStore",
    "StoreScope",
    # Bridge
    "Dispatcher",
    "LoopThread",
    "SynchronousBridge",
    # Errors
    "ErrorCode",
    "ServiceError",
    "InvalidRequestError",
    "ServiceNotAvailableError",
    "AuthenticationFailure",
    "OperationCanceledError",
]
