"""
pytest configuration for graphauth tests.

Adds src directory to Python path for imports and provides shared fakes:
a settable clock, a scripted consent collaborator and canned token
endpoint responses.
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from graphauth.logging.context import clear_log_context  # noqa: E402
from graphauth.oauth2.consent import ConsentResult, ConsentStatus  # noqa: E402
from graphauth.storage import MemoryCredentialStore  # noqa: E402

CLIENT_ID = "11111111-2222-3333-4444-555555555555"
TENANT_ID = "contoso.onmicrosoft.com"
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Settable time source."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeConsent:
    """Consent collaborator returning scripted results and recording calls."""

    def __init__(self, *results: ConsentResult):
        self.results = list(results)
        self.calls: list[tuple[str, str]] = []

    def authenticate(self, request_url: str, callback_url: str) -> ConsentResult:
        self.calls.append((request_url, callback_url))
        if self.results:
            return self.results.pop(0)
        return ConsentResult(ConsentStatus.SUCCESS, f"{callback_url}?code=auth-code")


def code_result(code: str = "auth-code", callback: str = "urn:ietf:wg:oauth:2.0:oob"):
    return ConsentResult(ConsentStatus.SUCCESS, f"{callback}?code={code}")


def token_response(status: int = 200, body: str = ""):
    """Mock async context manager for a token endpoint response."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.text = AsyncMock(return_value=body)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def mock_http_session(*responses):
    """Mock aiohttp session whose post() returns the given responses in order."""
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(side_effect=list(responses))
    session.close = AsyncMock()
    return session


@pytest.fixture(autouse=True)
def _reset_shared_state():
    MemoryCredentialStore.reset()
    clear_log_context()
    yield
    MemoryCredentialStore.reset()
    clear_log_context()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def consent():
    return FakeConsent()


@pytest.fixture
def store():
    return MemoryCredentialStore(CLIENT_ID)
