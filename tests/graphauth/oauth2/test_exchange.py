"""Tests for the token exchange engine: request bodies, parsing, transport."""

import asyncio
import json
from datetime import timedelta
from urllib.parse import urlencode

import aiohttp
import pytest

from conftest import CLIENT_ID, T0, TENANT_ID, FakeClock, mock_http_session, token_response
from graphauth.errors import AuthenticationFailure, InvalidRequestError
from graphauth.oauth2 import constants as c
from graphauth.oauth2.exchange import (
    TokenExchangeEngine,
    build_token_request,
    parse_token_response,
    raise_for_error,
)
from graphauth.oauth2.models import DelegatedConfig, GrantType, ServiceCredentialConfig


@pytest.fixture
def delegated():
    return DelegatedConfig(client_id=CLIENT_ID)


@pytest.fixture
def service():
    return ServiceCredentialConfig(CLIENT_ID, "app-secret", TENANT_ID)


# ---------------------------------------------------------------------------
# build_token_request
# ---------------------------------------------------------------------------


class TestBuildTokenRequest:
    def test_authorization_code_fields_in_order(self, delegated):
        fields = build_token_request(GrantType.AUTHORIZATION_CODE, delegated, "a b", "the-code")
        assert list(fields) == ["redirect_uri", "client_id", "code", "grant_type", "scope"]
        assert fields["code"] == "the-code"
        assert fields["grant_type"] == "authorization_code"
        assert fields["scope"] == "a b"
        assert fields["redirect_uri"] == c.NATIVE_REDIRECT_URI

    def test_refresh_token_fields_in_order(self, delegated):
        fields = build_token_request(GrantType.REFRESH_TOKEN, delegated, "a", "rt")
        assert list(fields) == ["redirect_uri", "client_id", "refresh_token", "grant_type", "scope"]
        assert fields["refresh_token"] == "rt"
        assert fields["grant_type"] == "refresh_token"

    def test_client_credentials_fields(self, service):
        fields = build_token_request(GrantType.CLIENT_CREDENTIALS, service, c.SCOPE_DEFAULT)
        assert fields == {
            "client_id": CLIENT_ID,
            "client_secret": "app-secret",
            "grant_type": "client_credentials",
            "scope": "https://graph.microsoft.com/.default",
        }

    def test_form_encoding_space_joins_scopes(self, delegated):
        scope = "offline_access User.Read"
        fields = build_token_request(GrantType.REFRESH_TOKEN, delegated, scope, "rt")
        assert "scope=offline_access+User.Read" in urlencode(fields)

    def test_grant_must_match_flow(self, service):
        with pytest.raises(InvalidRequestError):
            build_token_request(GrantType.REFRESH_TOKEN, service, "s", "rt")

    def test_code_required(self, delegated):
        with pytest.raises(InvalidRequestError):
            build_token_request(GrantType.AUTHORIZATION_CODE, delegated, "s", "")


# ---------------------------------------------------------------------------
# parse_token_response
# ---------------------------------------------------------------------------


class TestParseTokenResponse:
    def test_parses_token_and_expiry(self):
        result = parse_token_response(
            {"access_token": "at", "expires_in": 3600, "refresh_token": "rt"},
            T0,
        )
        assert result.token.value == "at"
        assert result.token.expires_at == T0 + timedelta(seconds=3600)
        assert result.refresh_token == "rt"

    def test_expires_in_as_string(self):
        result = parse_token_response({"access_token": "at", "expires_in": "60"}, T0)
        assert result.token.expires_at == T0 + timedelta(seconds=60)

    def test_absent_refresh_token_is_none(self):
        result = parse_token_response({"access_token": "at", "expires_in": 60}, T0)
        assert result.refresh_token is None

    def test_missing_access_token(self):
        with pytest.raises(AuthenticationFailure, match="no response values returned"):
            parse_token_response({"expires_in": 3600}, T0)

    def test_missing_expires_in(self):
        with pytest.raises(AuthenticationFailure, match="no response values returned"):
            parse_token_response({"access_token": "at"}, T0)

    def test_non_integer_expires_in(self):
        with pytest.raises(AuthenticationFailure, match="no response values returned"):
            parse_token_response({"access_token": "at", "expires_in": "soon"}, T0)

    def test_empty_values(self):
        with pytest.raises(AuthenticationFailure, match="no response values returned"):
            parse_token_response({}, T0)

    def test_error_description_preferred(self):
        with pytest.raises(AuthenticationFailure) as exc_info:
            parse_token_response(
                {"error": "invalid_grant", "error_description": "AADSTS70008: expired"}, T0
            )
        assert exc_info.value.message == "AADSTS70008: expired"
        assert exc_info.value.context["error"] == "invalid_grant"

    def test_error_code_used_without_description(self):
        with pytest.raises(AuthenticationFailure) as exc_info:
            parse_token_response({"error": "invalid_client"}, T0)
        assert exc_info.value.message == "invalid_client"

    def test_raise_for_error_passes_clean_values(self):
        raise_for_error({"access_token": "at"})
        raise_for_error(None)


# ---------------------------------------------------------------------------
# TokenExchangeEngine
# ---------------------------------------------------------------------------


class TestTokenExchangeEngine:
    def test_token_url_required(self):
        with pytest.raises(InvalidRequestError):
            TokenExchangeEngine("")

    async def test_ensure_session_reuses_session(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        session1 = await engine._ensure_session()
        session2 = await engine._ensure_session()
        assert isinstance(session1, aiohttp.ClientSession)
        assert session1 is session2
        await engine.close()
        assert session1.closed

    async def test_posts_form_and_parses(self):
        clock = FakeClock()
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL, clock=clock)
        body = json.dumps({"access_token": "at", "expires_in": 3600, "refresh_token": "rt"})
        engine._session = mock_http_session(token_response(200, body))

        fields = {"client_id": CLIENT_ID, "grant_type": "refresh_token"}
        result = await engine.exchange(GrantType.REFRESH_TOKEN, fields)

        assert result.token.value == "at"
        assert result.token.expires_at == clock.now + timedelta(seconds=3600)
        args, kwargs = engine._session.post.call_args
        assert args[0] == c.COMMON_TOKEN_URL
        assert kwargs["data"] == fields
        assert kwargs["timeout"].total == 30

    async def test_error_body_on_400(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        body = json.dumps({"error": "invalid_grant", "error_description": "revoked"})
        engine._session = mock_http_session(token_response(400, body))

        with pytest.raises(AuthenticationFailure, match="revoked"):
            await engine.exchange(GrantType.REFRESH_TOKEN, {})

    async def test_non_json_error_body(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        engine._session = mock_http_session(token_response(502, "<html>Bad Gateway</html>"))

        with pytest.raises(AuthenticationFailure, match="HTTP 502"):
            await engine.exchange(GrantType.CLIENT_CREDENTIALS, {})

    async def test_non_json_success_body(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        engine._session = mock_http_session(token_response(200, "not json"))

        with pytest.raises(AuthenticationFailure, match="no response values returned"):
            await engine.exchange(GrantType.CLIENT_CREDENTIALS, {})

    async def test_undecodable_body_is_normalized(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        response = token_response(200)
        error = UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")
        response.text.side_effect = error
        engine._session = mock_http_session(response)

        with pytest.raises(AuthenticationFailure, match="Malformed token response") as exc_info:
            await engine.exchange(GrantType.REFRESH_TOKEN, {})
        assert exc_info.value.cause is error

    async def test_client_error_is_normalized(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        error = aiohttp.ClientConnectionError("connection refused")
        engine._session = mock_http_session(error)

        with pytest.raises(AuthenticationFailure) as exc_info:
            await engine.exchange(GrantType.CLIENT_CREDENTIALS, {})
        assert exc_info.value.cause is error
        assert exc_info.value.__cause__ is error

    async def test_timeout_is_normalized(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL, timeout_seconds=5)
        engine._session = mock_http_session(asyncio.TimeoutError())

        with pytest.raises(AuthenticationFailure, match="timed out after 5s"):
            await engine.exchange(GrantType.CLIENT_CREDENTIALS, {})

    async def test_cancellation_propagates(self):
        engine = TokenExchangeEngine(c.COMMON_TOKEN_URL)
        engine._session = mock_http_session(asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await engine.exchange(GrantType.CLIENT_CREDENTIALS, {})
