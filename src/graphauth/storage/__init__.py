"""
Refresh token persistence.

    from graphauth.storage import create_credential_store

    store = create_credential_store("file", client_id, scope=StoreScope.USER)
    store.refresh_token = "..."   # persisted before returning
    store.clear()
"""

from pathlib import Path

from graphauth.errors import InvalidRequestError
from graphauth.storage.base import CredentialStore
from graphauth.storage.file import FileCredentialStore, default_store_dir
from graphauth.storage.memory import MemoryCredentialStore
from graphauth.types import StoreScope


def create_credential_store(
    kind: str,
    client_id: str,
    scope: StoreScope | str = StoreScope.USER,
    base_dir: str | Path | None = None,
) -> CredentialStore:
    """
    Build a credential store by name.

    Args:
        kind: "memory" or "file"
        client_id: Application (client) ID
        scope: StoreScope or its value
        base_dir: Root directory for the file store

    Raises:
        InvalidRequestError: If the kind or scope is unknown
    """
    try:
        scope = StoreScope(scope) if isinstance(scope, str) else scope
    except ValueError as e:
        raise InvalidRequestError(f"Unknown store scope: {scope}", cause=e) from e

    if kind == "memory":
        return MemoryCredentialStore(client_id, scope)
    if kind == "file":
        return FileCredentialStore(client_id, scope, base_dir=base_dir)
    raise InvalidRequestError(f"Unknown credential store: {kind}")


__all__ = [
    "CredentialStore",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "create_credential_store",
    "default_store_dir",
]
