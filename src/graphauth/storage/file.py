"""
Encrypted on-disk credential store.

Layout:
    <base>/<scope>/.key                Fernet key, mode 0600
    <base>/<scope>/<client_id>.token   Fernet token holding the refresh token

USER scope resolves under the current user's config directory, SYSTEM scope
under a machine-wide directory. Both can be overridden with
GRAPHAUTH_USER_STORE_DIR / GRAPHAUTH_SYSTEM_STORE_DIR or an explicit base
directory.
"""

import logging
import os
import re
import threading
from base64 import urlsafe_b64encode
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from graphauth.errors import ServiceError
from graphauth.storage.base import CredentialStore
from graphauth.types import StoreScope

logger = logging.getLogger(__name__)

KEY_FILENAME = ".key"
TOKEN_SUFFIX = ".token"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")
_key_lock = threading.Lock()


def default_store_dir(scope: StoreScope) -> Path:
    """Base directory for a scope before the scope subdirectory is added."""
    if scope is StoreScope.SYSTEM:
        override = os.getenv("GRAPHAUTH_SYSTEM_STORE_DIR")
        if override:
            return Path(override)
        program_data = os.getenv("PROGRAMDATA")
        if program_data:
            return Path(program_data) / "graphauth" / "tokens"
        return Path("/var/lib/graphauth/tokens")

    override = os.getenv("GRAPHAUTH_USER_STORE_DIR")
    if override:
        return Path(override)
    config_home = os.getenv("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "graphauth" / "tokens"


def _record_name(client_id: str) -> str:
    if _SAFE_NAME.match(client_id) and not client_id.startswith("."):
        return client_id + TOKEN_SUFFIX
    encoded = urlsafe_b64encode(client_id.encode("utf-8")).decode("ascii").rstrip("=")
    return encoded + TOKEN_SUFFIX


def _load_or_create_key(directory: Path) -> bytes:
    """Read the scope key, creating it exclusively with mode 0600 if absent."""
    key_path = directory / KEY_FILENAME
    with _key_lock:
        try:
            return key_path.read_bytes().strip()
        except FileNotFoundError:
            pass

        key = Fernet.generate_key()
        try:
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another process created it first
            return key_path.read_bytes().strip()
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        logger.info(f"Created credential store key: {key_path}")
        return key


class FileCredentialStore(CredentialStore):
    """
    Refresh token store encrypted at rest with Fernet.

    A record that cannot be decrypted (corrupt, or written under another
    key) loads as "no token" and is logged at warning.
    """

    def __init__(
        self,
        client_id: str,
        scope: StoreScope = StoreScope.USER,
        base_dir: str | Path | None = None,
    ):
        """
        Initialize the store and load the existing record.

        Args:
            client_id: Application (client) ID the record belongs to
            scope: USER (per OS user) or SYSTEM (machine-wide)
            base_dir: Root directory; defaults per scope
        """
        root = Path(base_dir).expanduser() if base_dir else default_store_dir(scope)
        self.directory = root / scope.value
        self.path = self.directory / _record_name(client_id or "")
        self._fernet: Fernet | None = None
        super().__init__(client_id, scope)

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            try:
                self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
                key = _load_or_create_key(self.directory)
                self._fernet = Fernet(key)
            except (OSError, ValueError) as e:
                raise ServiceError(
                    f"Credential store key unavailable in {self.directory}",
                    cause=e,
                    context={"store_scope": self.scope.value},
                ) from e
        return self._fernet

    def _load(self) -> str:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning(
                f"Could not read credential record {self.path}: {e}",
                extra={"client_id": self.client_id},
            )
            return ""

        if not data.strip():
            return ""

        try:
            cipher = self._cipher()
        except ServiceError as e:
            logger.warning(
                f"{e}, treating credential record as empty",
                extra={"client_id": self.client_id, "store_scope": self.scope.value},
            )
            return ""

        try:
            return cipher.decrypt(data.strip()).decode("utf-8")
        except (InvalidToken, UnicodeDecodeError):
            logger.warning(
                "Credential record could not be decrypted, treating as empty",
                extra={"client_id": self.client_id, "store_scope": self.scope.value},
            )
            return ""

    def _save(self, value: str) -> None:
        if not value:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise ServiceError(
                    f"Failed to delete credential record {self.path}", cause=e
                ) from e
            logger.debug("Credential record deleted", extra={"client_id": self.client_id})
            return

        token = self._cipher().encrypt(value.encode("utf-8"))
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(token)
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise ServiceError(
                f"Failed to write credential record {self.path}", cause=e
            ) from e
        logger.debug("Credential record written", extra={"client_id": self.client_id})


__all__ = ["FileCredentialStore", "default_store_dir"]
