"""OAuth2 session models and flow configuration."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from graphauth.errors import InvalidRequestError
from graphauth.oauth2 import constants as c

# Default token refresh buffer (5 minutes before expiry)
DEFAULT_REFRESH_BUFFER_SECONDS = 300

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class FlowMode(Enum):
    """Trust model of a session. Fixed at construction."""

    DELEGATED = "delegated"
    SERVICE_CREDENTIAL = "service"


class SessionState(Enum):
    """
    Lifecycle state of a session.

    EXPIRED is never stored; an AUTHENTICATED session whose token has entered
    the refresh buffer reports EXPIRED.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


class GrantType(Enum):
    """Token endpoint grant shapes."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


@dataclass(frozen=True)
class AccessToken:
    """
    Bearer token paired with its absolute expiry.

    Immutable: the session swaps the whole object, so a reader can never see
    a token value with another token's expiry.

    Attributes:
        value: The opaque bearer string
        expires_at: UTC timestamp when the token expires
        token_type: Token type (typically "Bearer")
        scope: Space-separated scopes granted, if reported
    """

    value: str
    expires_at: datetime
    token_type: str = c.BEARER
    scope: str | None = None

    def is_expired(
        self, now: datetime | None = None, buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS
    ) -> bool:
        """
        Check if token is expired or close to expiry.

        Args:
            now: Reference time (defaults to the current UTC time)
            buffer_seconds: Safety buffer before actual expiry (default: 5 minutes)

        Returns:
            True once ``now + buffer >= expires_at``
        """
        now = now or utc_now()
        return now + timedelta(seconds=buffer_seconds) >= self.expires_at

    def remaining_lifetime(self, now: datetime | None = None) -> timedelta:
        """Get remaining time before token expires."""
        return self.expires_at - (now or utc_now())


@dataclass(frozen=True)
class TokenResult:
    """Parsed token endpoint response."""

    token: AccessToken
    refresh_token: str | None = None


def normalize_scopes(scopes) -> list[str]:
    """Accept a space-separated string or an iterable; keep order, drop duplicates."""
    if not scopes:
        return []
    if isinstance(scopes, str):
        scopes = scopes.split()
    return list(dict.fromkeys(s.strip() for s in scopes if s and s.strip()))


@dataclass
class DelegatedConfig:
    """
    Configuration for the delegated (user) flow.

    Attributes:
        client_id: Application (client) ID registered with the identity provider
        redirect_uri: Redirect URI expected back from the consent UI
        scopes: Permissions to request (space-separated string or list)
        token_url: Token endpoint
        authorize_url: Authorization endpoint opened by the consent UI
    """

    client_id: str
    redirect_uri: str = c.NATIVE_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(c.DEFAULT_DELEGATED_SCOPES))
    token_url: str = c.COMMON_TOKEN_URL
    authorize_url: str = c.AUTHORIZE_URL

    flow_mode = FlowMode.DELEGATED

    def __post_init__(self) -> None:
        self.scopes = normalize_scopes(self.scopes)

    def validate(self) -> None:
        """Raise InvalidRequestError for the first missing field."""
        if not self.client_id:
            raise InvalidRequestError(c.MSG_NO_CLIENT_ID)
        if not self.redirect_uri:
            raise InvalidRequestError(c.MSG_NO_REDIRECT_URI)
        if not self.scopes:
            raise InvalidRequestError(c.MSG_NO_SCOPES)


@dataclass
class ServiceCredentialConfig:
    """
    Configuration for the service (client credentials) flow.

    Attributes:
        client_id: Application (client) ID
        client_secret: Application secret
        tenant_id: Directory (tenant) ID the application authenticates against
        scopes: Scopes to request (defaults to the Graph ``.default`` scope)
    """

    client_id: str
    client_secret: str
    tenant_id: str
    scopes: list[str] = field(default_factory=lambda: [c.SCOPE_DEFAULT])

    flow_mode = FlowMode.SERVICE_CREDENTIAL

    def __post_init__(self) -> None:
        self.scopes = normalize_scopes(self.scopes)

    @property
    def token_url(self) -> str:
        return c.TENANT_TOKEN_URL.format(tenant_id=self.tenant_id)

    def validate(self) -> None:
        """Raise InvalidRequestError for the first missing field."""
        if not self.client_id:
            raise InvalidRequestError(c.MSG_NO_CLIENT_ID)
        if not self.client_secret:
            raise InvalidRequestError(c.MSG_NO_CLIENT_SECRET)
        if not self.tenant_id:
            raise InvalidRequestError(c.MSG_NO_TENANT_ID)
        if not self.scopes:
            raise InvalidRequestError(c.MSG_NO_SCOPES)

    def __repr__(self) -> str:
        # Don't leak the secret
        return (
            f"ServiceCredentialConfig(client_id={self.client_id!r}, "
            f"tenant_id={self.tenant_id!r}, scopes={self.scopes!r})"
        )


SessionConfig = DelegatedConfig | ServiceCredentialConfig


@dataclass
class Session:
    """
    Mutable session state owned by exactly one SessionManager.

    Attributes:
        flow_mode: Trust model, fixed at construction
        scopes: Requested permissions, locked after the first token
        token: Current access token, None when unauthenticated
        refresh_token: Delegated-flow refresh token
        state: Stored lifecycle state
        scopes_locked: True once a token has been issued
    """

    flow_mode: FlowMode
    scopes: list[str]
    token: AccessToken | None = None
    refresh_token: str | None = None
    state: SessionState = SessionState.UNAUTHENTICATED
    scopes_locked: bool = False

    def scope_string(self) -> str:
        """Get scopes as space-separated string."""
        return " ".join(self.scopes)


__all__ = [
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "Clock",
    "utc_now",
    "FlowMode",
    "SessionState",
    "GrantType",
    "AccessToken",
    "TokenResult",
    "normalize_scopes",
    "DelegatedConfig",
    "ServiceCredentialConfig",
    "SessionConfig",
    "Session",
]
