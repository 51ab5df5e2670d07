"""Token exchange engine: builds grant requests, posts them, parses responses."""

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

import aiohttp

from graphauth.errors import AuthenticationFailure, InvalidRequestError
from graphauth.oauth2 import constants as c
from graphauth.oauth2.models import (
    AccessToken,
    Clock,
    DelegatedConfig,
    GrantType,
    ServiceCredentialConfig,
    SessionConfig,
    TokenResult,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 30


# =============================================================================
# Request bodies
# =============================================================================


def _authorization_code_fields(config: DelegatedConfig, scope: str, code: str) -> dict[str, str]:
    return {
        c.REDIRECT_URI: config.redirect_uri,
        c.CLIENT_ID: config.client_id,
        c.CODE: code,
        c.GRANT_TYPE: GrantType.AUTHORIZATION_CODE.value,
        c.SCOPE: scope,
    }


def _refresh_token_fields(
    config: DelegatedConfig, scope: str, refresh_token: str
) -> dict[str, str]:
    return {
        c.REDIRECT_URI: config.redirect_uri,
        c.CLIENT_ID: config.client_id,
        c.REFRESH_TOKEN: refresh_token,
        c.GRANT_TYPE: GrantType.REFRESH_TOKEN.value,
        c.SCOPE: scope,
    }


def _client_credentials_fields(
    config: ServiceCredentialConfig, scope: str, _unused: str | None
) -> dict[str, str]:
    return {
        c.CLIENT_ID: config.client_id,
        c.CLIENT_SECRET: config.client_secret,
        c.GRANT_TYPE: GrantType.CLIENT_CREDENTIALS.value,
        c.SCOPE: scope,
    }


_REQUEST_BUILDERS: dict[GrantType, tuple[type, Callable[..., dict[str, str]]]] = {
    GrantType.AUTHORIZATION_CODE: (DelegatedConfig, _authorization_code_fields),
    GrantType.REFRESH_TOKEN: (DelegatedConfig, _refresh_token_fields),
    GrantType.CLIENT_CREDENTIALS: (ServiceCredentialConfig, _client_credentials_fields),
}


def build_token_request(
    grant: GrantType,
    config: SessionConfig,
    scope: str,
    value: str | None = None,
) -> dict[str, str]:
    """
    Build the form fields for one token request.

    Args:
        grant: Which grant shape to build
        config: Flow configuration supplying client id, secret, redirect URI
        scope: Space-separated scopes to request
        value: Authorization code or refresh token (unused for client credentials)

    Returns:
        Ordered form fields, ready for ``application/x-www-form-urlencoded``

    Raises:
        InvalidRequestError: If the grant does not fit the flow, or the code
            or refresh token is missing
    """
    config_type, builder = _REQUEST_BUILDERS[grant]
    if not isinstance(config, config_type):
        raise InvalidRequestError(
            f"Grant '{grant.value}' is not available for {config.flow_mode.value} sessions"
        )
    if grant is not GrantType.CLIENT_CREDENTIALS and not value:
        raise InvalidRequestError(f"A value is required for grant '{grant.value}'")
    return builder(config, scope, value)


# =============================================================================
# Response parsing
# =============================================================================


def raise_for_error(values: Mapping[str, Any] | None) -> None:
    """
    Raise AuthenticationFailure if a response carries an error.

    ``error_description`` is preferred over the bare ``error`` code when
    both are present.
    """
    if not values:
        return
    if c.ERROR_DESCRIPTION in values or c.ERROR in values:
        error = values.get(c.ERROR)
        message = values.get(c.ERROR_DESCRIPTION) or error or c.MSG_NO_TOKEN
        raise AuthenticationFailure(str(message), context={"error": error})


def parse_token_response(values: Mapping[str, Any] | None, now: datetime) -> TokenResult:
    """
    Parse a token endpoint response body.

    Args:
        values: Decoded flat JSON object
        now: Time the response is being parsed; expiry is measured from here

    Returns:
        TokenResult with the access token and the refresh token, if rotated

    Raises:
        AuthenticationFailure: On an error response, or when ``access_token``
            or an integer ``expires_in`` is missing
    """
    if not values:
        raise AuthenticationFailure(c.MSG_NO_TOKEN_RETURNED)

    raise_for_error(values)

    access_token = values.get(c.ACCESS_TOKEN)
    expires_in = values.get(c.EXPIRES_IN)
    if not access_token or expires_in is None:
        raise AuthenticationFailure(c.MSG_NO_TOKEN_RETURNED)

    try:
        seconds = int(expires_in)
    except (TypeError, ValueError) as e:
        raise AuthenticationFailure(c.MSG_NO_TOKEN_RETURNED, cause=e) from e

    token = AccessToken(
        value=str(access_token),
        expires_at=now + timedelta(seconds=seconds),
        token_type=str(values.get(c.TOKEN_TYPE) or c.BEARER),
        scope=values.get(c.SCOPE),
    )
    refresh_token = values.get(c.REFRESH_TOKEN) or None
    return TokenResult(token=token, refresh_token=refresh_token)


# =============================================================================
# Engine
# =============================================================================


class TokenExchangeEngine:
    """
    Posts token requests to one identity provider token endpoint.

    Owns a lazily created aiohttp session. All transport failures are
    normalized to AuthenticationFailure; cancellation propagates untouched.
    """

    def __init__(
        self,
        token_url: str,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        clock: Clock | None = None,
    ):
        """
        Initialize the engine.

        Args:
            token_url: Token endpoint URL
            timeout_seconds: Total HTTP timeout per request
            clock: Time source for expiry calculation (default: UTC now)
        """
        if not token_url:
            raise InvalidRequestError("token_url is required")

        self.token_url = token_url
        self.timeout_seconds = timeout_seconds
        self._clock = clock or utc_now
        self._session: aiohttp.ClientSession | None = None

        logger.debug("Initialized token exchange engine", extra={"http_url": token_url})

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def exchange(self, grant: GrantType, fields: Mapping[str, str]) -> TokenResult:
        """
        Send one token request and parse the response.

        Args:
            grant: Grant shape being redeemed (for logging)
            fields: Form fields from build_token_request

        Returns:
            Parsed TokenResult

        Raises:
            AuthenticationFailure: On any provider or transport failure
        """
        session = await self._ensure_session()

        try:
            async with session.post(
                self.token_url,
                data=dict(fields),
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                status = response.status
                body = await response.text()
        except asyncio.TimeoutError as e:
            logger.error(
                f"Token request timed out after {self.timeout_seconds}s",
                extra={"operation": grant.value},
            )
            raise AuthenticationFailure(
                f"Token request timed out after {self.timeout_seconds}s", cause=e
            ) from e
        except aiohttp.ClientError as e:
            logger.error(
                f"HTTP error during token request: {e}", extra={"operation": grant.value}
            )
            raise AuthenticationFailure(f"HTTP error: {e}", cause=e) from e
        except UnicodeDecodeError as e:
            logger.error(
                f"Token response body is not valid text: {e}",
                extra={"operation": grant.value, "http_status": status},
            )
            raise AuthenticationFailure(
                f"Malformed token response (HTTP {status})", cause=e
            ) from e

        values = self._decode(body, status)
        result = parse_token_response(values, self._clock())

        logger.debug(
            "Token request succeeded",
            extra={
                "operation": grant.value,
                "http_status": status,
                "expires_at": result.token.expires_at.isoformat(),
                "refresh_rotated": result.refresh_token is not None,
            },
        )
        return result

    @staticmethod
    def _decode(body: str, status: int) -> dict[str, Any]:
        """Decode a JSON object body; non-JSON bodies fail with the HTTP status."""
        try:
            values = json.loads(body) if body else None
        except ValueError:
            values = None

        if isinstance(values, dict):
            if status != 200 and not (c.ERROR in values or c.ERROR_DESCRIPTION in values):
                logger.error(
                    f"Token request failed: HTTP {status}", extra={"http_status": status}
                )
                raise AuthenticationFailure(f"HTTP {status}: {body[:200]}")
            return values

        if status != 200:
            logger.error(f"Token request failed: HTTP {status}", extra={"http_status": status})
            raise AuthenticationFailure(f"HTTP {status}: {body[:200]}")
        raise AuthenticationFailure(c.MSG_NO_TOKEN_RETURNED)

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)


__all__ = [
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "TokenExchangeEngine",
    "build_token_request",
    "parse_token_response",
    "raise_for_error",
]
