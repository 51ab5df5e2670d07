"""
Interactive consent boundary.

The session never renders UI. It builds the authorization, admin-consent and
logout URLs, hands them to a ConsentCollaborator (a browser window, an
embedded web view, a test double), and reads back the redirect the
collaborator captured.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit

from graphauth.errors import AuthenticationFailure, InvalidRequestError
from graphauth.oauth2 import constants as c

logger = logging.getLogger(__name__)


class ConsentStatus(Enum):
    """Outcome of an interactive consent round trip."""

    SUCCESS = "success"
    USER_CANCEL = "user_cancel"
    ERROR_HTTP = "error_http"


@dataclass(frozen=True)
class ConsentResult:
    """
    What the consent UI captured.

    Attributes:
        status: Outcome of the round trip
        response_data: Final redirect URL including query and fragment
        error_detail: Transport error text when status is ERROR_HTTP
    """

    status: ConsentStatus
    response_data: str = ""
    error_detail: str = ""


class ConsentCollaborator(Protocol):
    """
    Opens a URL for the user and waits for navigation to the callback URL.

    May be a plain function or a coroutine function; the session awaits the
    result when it is awaitable.
    """

    def authenticate(self, request_url: str, callback_url: str) -> ConsentResult: ...


# =============================================================================
# URL builders
# =============================================================================


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    authorize_url: str = c.AUTHORIZE_URL,
) -> str:
    """Authorization endpoint URL requesting an authorization code."""
    query = urlencode(
        {
            c.REDIRECT_URI: redirect_uri,
            c.CLIENT_ID: client_id,
            c.RESPONSE_TYPE: c.CODE,
            c.SCOPE: " ".join(scopes),
        }
    )
    return f"{authorize_url}?{query}"


def build_admin_consent_url(tenant_id: str, client_id: str, redirect_uri: str) -> str:
    """Tenant admin-consent URL."""
    if not tenant_id:
        raise InvalidRequestError(c.MSG_NO_TENANT_ID)
    query = urlencode(
        {
            c.CLIENT_ID: client_id,
            c.STATE: c.CONSENT_STATE,
            c.REDIRECT_URI: redirect_uri,
        }
    )
    return f"{c.ADMIN_CONSENT_URL.format(tenant_id=tenant_id)}?{query}"


def build_logout_url(client_id: str, post_logout_redirect_uri: str = c.LOGOUT_REDIRECT_URL) -> str:
    """Sign-out URL for the delegated flow."""
    query = urlencode(
        {
            c.CLIENT_ID: client_id,
            c.POST_LOGOUT_REDIRECT_URI: post_logout_redirect_uri,
        }
    )
    return f"{c.LOGOUT_URL}?{query}"


# =============================================================================
# Redirect parsing
# =============================================================================


def parse_redirect(response_data: str) -> dict[str, str]:
    """
    Collect the parameters of a redirect URL.

    Query parameters and fragment parameters are merged; fragment values win
    on conflict.
    """
    if not response_data:
        return {}
    parts = urlsplit(response_data)
    values = dict(parse_qsl(parts.query, keep_blank_values=True))
    values.update(parse_qsl(parts.fragment, keep_blank_values=True))
    return values


def read_consent_result(result: ConsentResult) -> dict[str, str]:
    """
    Turn a consent result into redirect parameters.

    Raises:
        AuthenticationFailure: If the user cancelled (``cancelled`` is set),
            the UI reported a transport error, or the redirect carries an error
    """
    if result.status is ConsentStatus.USER_CANCEL:
        logger.info("User cancelled interactive consent")
        raise AuthenticationFailure(c.MSG_USER_CANCEL, cancelled=True)

    if result.status is ConsentStatus.ERROR_HTTP:
        raise AuthenticationFailure(
            result.error_detail or c.MSG_NO_TOKEN,
            context={"status": result.status.value},
        )

    values = parse_redirect(result.response_data)
    if c.ERROR_DESCRIPTION in values or c.ERROR in values:
        error = values.get(c.ERROR)
        raise AuthenticationFailure(
            values.get(c.ERROR_DESCRIPTION) or error or c.MSG_NO_TOKEN,
            context={"error": error},
        )
    return values


__all__ = [
    "ConsentStatus",
    "ConsentResult",
    "ConsentCollaborator",
    "build_authorization_url",
    "build_admin_consent_url",
    "build_logout_url",
    "parse_redirect",
    "read_consent_result",
]
