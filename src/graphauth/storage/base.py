"""Credential store contract."""

import logging
import threading
from abc import ABC, abstractmethod

from graphauth.errors import InvalidRequestError
from graphauth.oauth2 import constants as c
from graphauth.types import StoreScope

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """
    Persists one refresh token per (client id, scope).

    The record is loaded once at construction. Every assignment to
    ``refresh_token`` persists (or, for an empty value, deletes) the record
    before returning, so a later instance for the same client id and scope
    observes it.

    Subclasses implement ``_load`` and ``_save``.
    """

    def __init__(self, client_id: str, scope: StoreScope = StoreScope.USER):
        if not client_id:
            raise InvalidRequestError(c.MSG_NO_CLIENT_ID)

        self.client_id = client_id
        self.scope = scope
        self._lock = threading.Lock()
        self._refresh_token = self._load() or ""

    @property
    def refresh_token(self) -> str:
        """Last loaded or assigned refresh token; empty when there is none."""
        with self._lock:
            return self._refresh_token

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None:
        value = value or ""
        with self._lock:
            self._save(value)
            self._refresh_token = value

    def clear(self) -> None:
        """Delete the persisted record."""
        self.refresh_token = ""

    @abstractmethod
    def _load(self) -> str:
        """Read the persisted token. Return empty when none or unreadable."""

    @abstractmethod
    def _save(self, value: str) -> None:
        """Persist ``value``; an empty value deletes the record."""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(client_id={self.client_id!r}, "
            f"scope={self.scope.value!r}, has_token={bool(self._refresh_token)})"
        )


__all__ = ["CredentialStore"]
