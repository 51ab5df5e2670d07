"""In-process credential store for development and tests."""

import logging
import threading

from graphauth.storage.base import CredentialStore
from graphauth.types import StoreScope

logger = logging.getLogger(__name__)


class MemoryCredentialStore(CredentialStore):
    """
    Keeps refresh tokens in a process-wide dict keyed by (client id, scope).

    Nothing survives a restart. Instances for the same key share the record,
    which mirrors what a persistent store gives across instances.
    """

    _records: dict[tuple[str, StoreScope], str] = {}
    _records_lock = threading.Lock()

    def _load(self) -> str:
        with self._records_lock:
            value = self._records.get((self.client_id, self.scope), "")
        logger.debug(
            "Loaded refresh token from memory store",
            extra={"client_id": self.client_id, "has_token": bool(value)},
        )
        return value

    def _save(self, value: str) -> None:
        key = (self.client_id, self.scope)
        with self._records_lock:
            if value:
                self._records[key] = value
            else:
                self._records.pop(key, None)
        logger.debug(
            f"Refresh token {'set' if value else 'cleared'} in memory store",
            extra={"client_id": self.client_id, "store_scope": self.scope.value},
        )

    @classmethod
    def reset(cls) -> None:
        """Drop every record held by the process."""
        with cls._records_lock:
            cls._records.clear()


__all__ = ["MemoryCredentialStore"]
