"""graphauth configuration from YAML file and environment.

Loads from config/graphauth.yaml (or the file named by GRAPHAUTH_CONFIG):

    graphauth:
      flow: delegated
      client_id: ${GRAPHAUTH_CLIENT_ID}
      scopes:
        - offline_access
        - https://graph.microsoft.com/Files.ReadWrite
      store: file
      store_scope: user

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files. GRAPHAUTH_* variables override file values, and a .env
file is loaded first when present.
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from graphauth.errors import InvalidRequestError
from graphauth.oauth2 import constants as c
from graphauth.oauth2.exchange import DEFAULT_HTTP_TIMEOUT_SECONDS
from graphauth.oauth2.models import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    DelegatedConfig,
    FlowMode,
    ServiceCredentialConfig,
    SessionConfig,
    normalize_scopes,
)
from graphauth.storage import CredentialStore, create_credential_store
from graphauth.types import StoreScope

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "graphauth.yaml"
CONFIG_PATH_ENV = "GRAPHAUTH_CONFIG"
ENV_PREFIX = "GRAPHAUTH_"
CONFIG_SECTION = "graphauth"

STORE_KINDS = ("memory", "file")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _split_scopes(value: Any) -> list[str]:
    if isinstance(value, str):
        value = re.split(r"[\s,]+", value)
    return normalize_scopes(value)


@dataclass
class GraphAuthConfig:
    """
    Flat configuration for one graphauth session.

    Empty ``scopes`` means the flow's default scopes.
    """

    flow: str = FlowMode.DELEGATED.value
    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = ""
    redirect_uri: str = c.NATIVE_REDIRECT_URI
    scopes: list[str] = field(default_factory=list)
    store: str = "file"
    store_scope: str = StoreScope.USER.value
    store_dir: str = ""
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS

    def __post_init__(self) -> None:
        self.scopes = _split_scopes(self.scopes)
        try:
            self.http_timeout_seconds = float(self.http_timeout_seconds)
            self.refresh_buffer_seconds = int(self.refresh_buffer_seconds)
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(f"Invalid numeric configuration value: {e}", cause=e) from e

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GraphAuthConfig":
        """Build from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GraphAuthConfig":
        """Build from GRAPHAUTH_* environment variables."""
        return cls.from_dict(_env_values(os.environ if environ is None else environ))

    def validate(self) -> list[str]:
        """
        Check the configuration.

        Returns:
            Problems found, empty when the configuration is usable
        """
        problems = []
        if self.flow not in (FlowMode.DELEGATED.value, FlowMode.SERVICE_CREDENTIAL.value):
            problems.append(f"flow must be 'delegated' or 'service', got '{self.flow}'")
        if not self.client_id:
            problems.append(c.MSG_NO_CLIENT_ID)
        if self.flow == FlowMode.SERVICE_CREDENTIAL.value:
            if not self.client_secret:
                problems.append(c.MSG_NO_CLIENT_SECRET)
            if not self.tenant_id:
                problems.append(c.MSG_NO_TENANT_ID)
        elif not self.redirect_uri:
            problems.append(c.MSG_NO_REDIRECT_URI)
        if self.store not in STORE_KINDS:
            problems.append(f"store must be one of {list(STORE_KINDS)}, got '{self.store}'")
        if self.store_scope not in {s.value for s in StoreScope}:
            problems.append(f"store_scope must be 'user' or 'system', got '{self.store_scope}'")
        if self.http_timeout_seconds <= 0:
            problems.append("http_timeout_seconds must be > 0")
        if self.refresh_buffer_seconds < 0:
            problems.append("refresh_buffer_seconds must be >= 0")
        return problems

    def to_session_config(self) -> SessionConfig:
        """
        Produce the typed flow configuration.

        Raises:
            InvalidRequestError: On the first validation problem
        """
        problems = self.validate()
        if problems:
            raise InvalidRequestError(problems[0], context={"problems": problems})

        if self.flow == FlowMode.SERVICE_CREDENTIAL.value:
            return ServiceCredentialConfig(
                client_id=self.client_id,
                client_secret=self.client_secret,
                tenant_id=self.tenant_id,
                scopes=self.scopes or [c.SCOPE_DEFAULT],
            )
        return DelegatedConfig(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=self.scopes or list(c.DEFAULT_DELEGATED_SCOPES),
        )

    def create_store(self) -> CredentialStore | None:
        """Credential store for a delegated session; None for service sessions."""
        if self.flow == FlowMode.SERVICE_CREDENTIAL.value:
            return None
        return create_credential_store(
            self.store, self.client_id, self.store_scope, base_dir=self.store_dir or None
        )

    def __repr__(self) -> str:
        # Don't leak the secret
        secret = "***" if self.client_secret else ""
        return (
            f"GraphAuthConfig(flow={self.flow!r}, client_id={self.client_id!r}, "
            f"client_secret={secret!r}, tenant_id={self.tenant_id!r}, "
            f"store={self.store!r}, store_scope={self.store_scope!r})"
        )


def _env_values(environ: Mapping[str, str]) -> dict[str, Any]:
    values = {}
    for f in fields(GraphAuthConfig):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw:
            values[f.name] = raw
    return values


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    env_file: Path | None = None,
) -> GraphAuthConfig:
    """Load graphauth configuration.

    Order of precedence: overrides, then GRAPHAUTH_* environment variables,
    then the YAML file. A missing file is allowed when the environment
    supplies the settings.
    """
    load_dotenv(env_file or Path(".env"))

    if config_path is None:
        config_path = Path(os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE)

    data: dict[str, Any] = {}
    if config_path.exists():
        logger.info(f"Loading configuration from file: {config_path}")
        yaml_data = _expand_env_vars(load_yaml(config_path))
        data = yaml_data.get(CONFIG_SECTION, yaml_data) or {}
        if not isinstance(data, dict):
            raise InvalidRequestError(
                f"Invalid config file: '{CONFIG_SECTION}:' must be a mapping ({config_path})"
            )
    else:
        logger.debug(f"Configuration file not found, using environment: {config_path}")

    data = {**data, **_env_values(os.environ)}
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        data.update(overrides)

    config = GraphAuthConfig.from_dict(data)
    logger.debug(f"Configuration loaded: {config!r}")
    return config


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "GraphAuthConfig",
    "load_config",
    "load_yaml",
]
