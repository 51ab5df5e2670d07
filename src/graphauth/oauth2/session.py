"""OAuth2 session state machine: cache, silent refresh, interactive fallback."""

import asyncio
import inspect
import logging
from collections.abc import MutableMapping
from datetime import datetime
from typing import Any

from graphauth.bridge import Dispatcher
from graphauth.errors import (
    AuthenticationFailure,
    InvalidRequestError,
    ServiceError,
    ServiceNotAvailableError,
)
from graphauth.logging.context import log_context
from graphauth.oauth2 import constants as c
from graphauth.oauth2.consent import (
    ConsentCollaborator,
    ConsentResult,
    build_admin_consent_url,
    build_authorization_url,
    build_logout_url,
    read_consent_result,
)
from graphauth.oauth2.exchange import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    TokenExchangeEngine,
    build_token_request,
)
from graphauth.oauth2.models import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    AccessToken,
    Clock,
    DelegatedConfig,
    FlowMode,
    GrantType,
    ServiceCredentialConfig,
    Session,
    SessionConfig,
    SessionState,
    TokenResult,
    normalize_scopes,
    utc_now,
)
from graphauth.storage import CredentialStore
from graphauth.types import SignableRequest

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns one OAuth2 session and keeps its access token usable.

    A cached token is reused until it is within the refresh buffer of its
    expiry. After that, a delegated session holding a refresh token refreshes
    silently; if that fails the refresh token is treated as revoked and the
    full flow runs (interactive consent for delegated, client credentials for
    service sessions).

    Usage:
        config = DelegatedConfig(client_id="...")
        manager = SessionManager(config, store, consent)

        await manager.authenticate()
        await manager.authenticate_request(request)  # sets Authorization

        await manager.close()
    """

    def __init__(
        self,
        config: SessionConfig,
        store: CredentialStore | None = None,
        consent: ConsentCollaborator | None = None,
        *,
        dispatcher: Dispatcher | None = None,
        engine: TokenExchangeEngine | None = None,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        clock: Clock | None = None,
    ):
        """
        Initialize the session. No network access happens here.

        Args:
            config: DelegatedConfig or ServiceCredentialConfig
            store: Refresh token store (required for delegated sessions)
            consent: Interactive consent UI (required for delegated sessions)
            dispatcher: Caller's message queue; consent runs on its thread
            engine: Token exchange engine (default: one for config.token_url)
            refresh_buffer_seconds: Time before expiry a token stops being used
            http_timeout_seconds: Total HTTP timeout per token request
            clock: Time source (default: UTC now)

        Raises:
            InvalidRequestError: If required configuration is missing
            ServiceNotAvailableError: If a delegated session lacks a store
                or a consent collaborator
        """
        if not isinstance(config, DelegatedConfig | ServiceCredentialConfig):
            raise InvalidRequestError(f"Unsupported session configuration: {config!r}")
        config.validate()

        if config.flow_mode is FlowMode.DELEGATED:
            if store is None:
                raise ServiceNotAvailableError(c.MSG_NO_STORE)
            if consent is None:
                raise ServiceNotAvailableError(c.MSG_NO_CONSENT)

        self.config = config
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self._store = store
        self._consent = consent
        self._dispatcher = dispatcher
        self._clock = clock or utc_now
        self._engine = engine or TokenExchangeEngine(
            config.token_url, timeout_seconds=http_timeout_seconds, clock=self._clock
        )
        self._auth_lock = asyncio.Lock()

        self._session = Session(flow_mode=config.flow_mode, scopes=list(config.scopes))
        if self.flow_mode is FlowMode.DELEGATED:
            self._session.refresh_token = store.refresh_token or None

        logger.debug(
            f"Initialized {self.flow_mode.value} session "
            f"with {refresh_buffer_seconds}s refresh buffer",
            extra={
                "client_id": config.client_id,
                "has_refresh_token": bool(self._session.refresh_token),
            },
        )

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def flow_mode(self) -> FlowMode:
        return self._session.flow_mode

    @property
    def is_app_based(self) -> bool:
        return self._session.flow_mode is FlowMode.SERVICE_CREDENTIAL

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def tenant_id(self) -> str | None:
        return getattr(self.config, "tenant_id", None)

    @property
    def store(self) -> CredentialStore | None:
        return self._store

    @property
    def state(self) -> SessionState:
        """Lifecycle state; an authenticated session inside the buffer reports EXPIRED."""
        state = self._session.state
        if state is SessionState.AUTHENTICATED and not self._token_usable(self._session.token):
            return SessionState.EXPIRED
        return state

    @property
    def authenticated(self) -> bool:
        return self._token_usable(self._session.token)

    @property
    def access_token(self) -> str | None:
        token = self._session.token
        return token.value if token else None

    @property
    def expires_at(self) -> datetime | None:
        token = self._session.token
        return token.expires_at if token else None

    @property
    def scopes(self) -> list[str]:
        return list(self._session.scopes)

    def set_scopes(self, scopes) -> None:
        """
        Replace the requested scopes.

        Raises:
            InvalidRequestError: Once the session has been issued a token
        """
        if self._session.scopes_locked:
            raise InvalidRequestError(c.MSG_SCOPES_LOCKED)
        normalized = normalize_scopes(scopes)
        if not normalized:
            raise InvalidRequestError(c.MSG_NO_SCOPES)
        self._session.scopes = normalized

    def add_scope(self, scope: str) -> None:
        """Append a scope; duplicates are ignored."""
        self.set_scopes([*self._session.scopes, scope])

    @property
    def refresh_token(self) -> str | None:
        return self._session.refresh_token

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None:
        if self.is_app_based:
            raise InvalidRequestError("Service credential sessions do not use refresh tokens")
        self._set_refresh_token(value)

    def get_token_info(self) -> dict[str, Any]:
        """
        Get information about the session for diagnostics.

        Never includes the access token or refresh token values.
        """
        token = self._session.token
        info: dict[str, Any] = {
            "client_id": self.client_id,
            "tenant_id": self.tenant_id,
            "flow": self.flow_mode.value,
            "state": self.state.value,
            "scopes": self.scopes,
            "has_refresh_token": bool(self._session.refresh_token),
        }
        if token:
            now = self._clock()
            info.update(
                {
                    "expires_at": token.expires_at.isoformat(),
                    "remaining_seconds": token.remaining_lifetime(now).total_seconds(),
                    "is_expired": token.is_expired(now, self.refresh_buffer_seconds),
                    "token_type": token.token_type,
                    "scope": token.scope,
                }
            )
        return info

    # =========================================================================
    # Operations
    # =========================================================================

    async def authenticate(self) -> None:
        """
        Make sure the session holds a usable access token.

        No-op when the cached token is valid. Otherwise refreshes silently
        when a refresh token is held and falls back to the full flow.

        Raises:
            AuthenticationFailure: If no access token could be obtained
            ServiceError: If the credential store cannot be written
        """
        if self.authenticated:
            return

        async with self._auth_lock:
            # Double-check after acquiring lock (another coroutine may have authenticated)
            if self.authenticated:
                logger.debug("Session was authenticated by another coroutine")
                return

            with self._log_context("authenticate"):
                if await self._try_refresh() and self.authenticated:
                    return
                await self._full_flow()

    def sign_request(self, request: SignableRequest | MutableMapping[str, str]) -> bool:
        """
        Attach ``Authorization: Bearer <token>`` if the cached token is usable.

        Args:
            request: Object with a ``headers`` mapping, or the mapping itself

        Returns:
            True if the request was signed
        """
        token = self._session.token
        if not self._token_usable(token):
            return False

        headers = request if isinstance(request, MutableMapping) else request.headers
        headers[c.AUTHORIZATION_HEADER] = f"{c.BEARER} {token.value}"
        return True

    async def authenticate_request(
        self, request: SignableRequest | MutableMapping[str, str]
    ) -> None:
        """
        Sign a request, authenticating first if needed.

        Raises:
            AuthenticationFailure: If the request could not be signed. Failures
                from the full flow propagate as raised.
        """
        if self.sign_request(request):
            return

        async with self._auth_lock:
            if self.sign_request(request):
                return

            with self._log_context("authenticate_request"):
                self._session.token = None

                if await self._try_refresh() and self.sign_request(request):
                    return

                await self._full_flow()
                if self.sign_request(request):
                    return

        logger.error("Request could not be signed after authentication")
        raise AuthenticationFailure(c.MSG_NO_TOKEN)

    async def logout(self) -> None:
        """
        Forget the session's credentials.

        The refresh token is removed from the store before memory. A delegated
        session that held an access token also opens the provider's sign-out
        page; failures there are logged and ignored.
        """
        async with self._auth_lock:
            with self._log_context("logout"):
                had_token = self._session.token is not None

                if self.flow_mode is FlowMode.DELEGATED:
                    self._discard_refresh_token()
                self._session.token = None
                self._session.state = SessionState.LOGGED_OUT

                if had_token and not self.is_app_based and self._consent is not None:
                    try:
                        await self._run_consent(
                            build_logout_url(self.client_id), c.LOGOUT_REDIRECT_URL
                        )
                    except Exception as e:
                        logger.warning(f"Sign-out page failed: {e}")

                logger.info("Session logged out")

    async def get_admin_consent(self, redirect_uri: str) -> bool:
        """
        Ask a tenant administrator to consent to the application.

        Args:
            redirect_uri: Redirect URI registered for the application

        Returns:
            The ``admin_consent`` flag reported on the redirect

        Raises:
            InvalidRequestError: If no tenant id or redirect URI is configured
            ServiceNotAvailableError: If no consent collaborator was supplied
            AuthenticationFailure: If the user cancelled or the redirect
                carries an error
        """
        if not self.tenant_id:
            raise InvalidRequestError(c.MSG_NO_TENANT_ID)
        if not redirect_uri:
            raise InvalidRequestError(c.MSG_NO_REDIRECT_URI)

        with self._log_context("admin_consent"):
            url = build_admin_consent_url(self.tenant_id, self.client_id, redirect_uri)
            values = read_consent_result(await self._run_consent(url, redirect_uri))
            granted = str(values.get(c.ADMIN_CONSENT, "")).lower() == "true"
            logger.info(f"Admin consent {'granted' if granted else 'not granted'}")
            return granted

    async def close(self) -> None:
        """Clean up resources (close the token endpoint HTTP session)."""
        await self._engine.close()
        logger.debug("Session closed", extra={"client_id": self.client_id})

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _log_context(self, operation: str):
        return log_context(
            client_id=self.client_id, flow=self.flow_mode.value, operation=operation
        )

    def _token_usable(self, token: AccessToken | None) -> bool:
        return token is not None and not token.is_expired(
            self._clock(), self.refresh_buffer_seconds
        )

    async def _try_refresh(self) -> bool:
        """Silent refresh. Any failure discards the refresh token."""
        refresh_token = self._session.refresh_token
        if self.flow_mode is not FlowMode.DELEGATED or not refresh_token:
            return False

        self._session.state = SessionState.REFRESHING
        logger.debug("Refreshing access token")
        try:
            result = await self._redeem(GrantType.REFRESH_TOKEN, refresh_token)
        except ServiceError as e:
            logger.warning(f"Silent refresh failed, discarding refresh token: {e}")
            self._discard_refresh_token()
            self._session.state = SessionState.UNAUTHENTICATED
            return False
        except BaseException:
            self._session.state = SessionState.UNAUTHENTICATED
            raise

        self._apply(result)
        return True

    async def _full_flow(self) -> None:
        self._session.state = SessionState.AUTHENTICATING
        try:
            if self.flow_mode is FlowMode.DELEGATED:
                code = await self._request_authorization_code()
                result = await self._redeem(GrantType.AUTHORIZATION_CODE, code)
            else:
                result = await self._redeem(GrantType.CLIENT_CREDENTIALS)
        except BaseException:
            self._session.state = SessionState.UNAUTHENTICATED
            raise
        self._apply(result)

    async def _request_authorization_code(self) -> str:
        config = self.config
        url = build_authorization_url(
            config.client_id, config.redirect_uri, self._session.scopes, config.authorize_url
        )
        logger.info("Requesting interactive consent")
        values = read_consent_result(await self._run_consent(url, config.redirect_uri))

        code = values.get(c.CODE)
        if not code:
            raise AuthenticationFailure(c.MSG_NO_TOKEN_RETURNED)
        return code

    async def _redeem(self, grant: GrantType, value: str | None = None) -> TokenResult:
        fields = build_token_request(grant, self.config, self._session.scope_string(), value)
        return await self._engine.exchange(grant, fields)

    def _apply(self, result: TokenResult) -> None:
        """Install a new token. The refresh token reaches the store first."""
        if result.refresh_token and self.flow_mode is FlowMode.DELEGATED:
            self._set_refresh_token(result.refresh_token)

        self._session.token = result.token
        self._session.state = SessionState.AUTHENTICATED
        self._session.scopes_locked = True

        logger.info(
            f"Access token valid until {result.token.expires_at.isoformat()}",
            extra={"client_id": self.client_id},
        )

    def _set_refresh_token(self, value: str | None) -> None:
        if self._store is not None:
            self._store.refresh_token = value or ""
        self._session.refresh_token = value or None

    def _discard_refresh_token(self) -> None:
        self._set_refresh_token(None)

    async def _run_consent(self, request_url: str, callback_url: str) -> ConsentResult:
        """
        Run the consent collaborator.

        With a dispatcher it runs on the dispatcher's owner thread, which the
        synchronous bridge keeps pumping while it waits. Without one it runs
        in the loop's default executor.
        """
        if self._consent is None:
            raise ServiceNotAvailableError(c.MSG_NO_CONSENT)

        authenticate = self._consent.authenticate
        if inspect.iscoroutinefunction(authenticate):
            return await authenticate(request_url, callback_url)

        if self._dispatcher is not None:
            future = self._dispatcher.invoke(lambda: authenticate(request_url, callback_url))
            result = await asyncio.wrap_future(future)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, authenticate, request_url, callback_url)

        if inspect.isawaitable(result):
            result = await result
        return result


__all__ = ["SessionManager"]
