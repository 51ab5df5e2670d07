"""
OAuth2 sessions for the Microsoft identity platform.

Keeps one client-side session authenticated: the cached access token is used
until it is within five minutes of expiry, a delegated session then refreshes
silently, and if the refresh token has been revoked the full flow runs again.

Delegated (user) Usage:
    from graphauth.oauth2 import DelegatedConfig, SessionManager
    from graphauth.storage import FileCredentialStore

    config = DelegatedConfig(client_id=os.getenv("GRAPHAUTH_CLIENT_ID"))
    store = FileCredentialStore(config.client_id)
    manager = SessionManager(config, store, consent=BrowserConsent())

    await manager.authenticate_request(request)

Service (client credentials) Usage:
    from graphauth.oauth2 import ServiceCredentialConfig, SessionManager

    config = ServiceCredentialConfig(
        client_id=os.getenv("GRAPHAUTH_CLIENT_ID"),
        client_secret=os.getenv("GRAPHAUTH_CLIENT_SECRET"),
        tenant_id=os.getenv("GRAPHAUTH_TENANT_ID"),
    )
    manager = SessionManager(config)

    await manager.authenticate()
    headers = {}
    manager.sign_request(headers)  # {"Authorization": "Bearer ..."}
"""

from graphauth.oauth2.consent import ConsentCollaborator, ConsentResult, ConsentStatus
from graphauth.oauth2.exchange import (
    TokenExchangeEngine,
    build_token_request,
    parse_token_response,
)
from graphauth.oauth2.models import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    AccessToken,
    DelegatedConfig,
    FlowMode,
    GrantType,
    ServiceCredentialConfig,
    Session,
    SessionState,
    TokenResult,
)
from graphauth.oauth2.session import SessionManager
from graphauth.oauth2.singleflight import SingleFlight

__all__ = [
    # Session
    "SessionManager",
    "SingleFlight",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    # Models
    "AccessToken",
    "TokenResult",
    "Session",
    "SessionState",
    "FlowMode",
    "GrantType",
    "DelegatedConfig",
    "ServiceCredentialConfig",
    # Exchange
    "TokenExchangeEngine",
    "build_token_request",
    "parse_token_response",
    # Consent
    "ConsentCollaborator",
    "ConsentResult",
    "ConsentStatus",
]
