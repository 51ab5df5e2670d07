"""Tests for the blocking GraphSession facade."""

import json
import threading

import pytest

from conftest import CLIENT_ID, TENANT_ID, FakeConsent, mock_http_session, token_response
from graphauth.client import GraphSession
from graphauth.config import GraphAuthConfig
from graphauth.errors import AuthenticationFailure
from graphauth.oauth2.consent import ConsentResult, ConsentStatus
from graphauth.oauth2.models import DelegatedConfig, ServiceCredentialConfig
from graphauth.storage import MemoryCredentialStore


def _ok(access="at-1", refresh="rt-1"):
    body = {"access_token": access, "expires_in": 3600, "refresh_token": refresh}
    return token_response(200, json.dumps(body))


class GatedConsent(FakeConsent):
    """Consent that blocks until released, so callers can pile up behind it."""

    def __init__(self, *results):
        super().__init__(*results)
        self.started = threading.Event()
        self.release = threading.Event()

    def authenticate(self, request_url, callback_url):
        self.started.set()
        assert self.release.wait(5)
        return super().authenticate(request_url, callback_url)


def _park_followers(monkeypatch, graph):
    """Signal each caller that blocks on the bridge, leader included."""
    parked = threading.Semaphore(0)
    original = graph._bridge.wait

    def wait(future):
        parked.release()
        return original(future)

    monkeypatch.setattr(graph._bridge, "wait", wait)
    return parked


@pytest.fixture
def graph(store, consent, clock):
    graph = GraphSession(DelegatedConfig(client_id=CLIENT_ID), store, consent, clock=clock)
    yield graph
    graph.close()


class TestSignIn:
    def test_sign_in(self, graph, store, consent):
        graph.session._engine._session = mock_http_session(_ok())

        graph.sign_in()

        assert graph.signed_in
        assert store.refresh_token == "rt-1"
        assert len(consent.calls) == 1

    def test_sign_in_when_signed_in_is_noop(self, graph, consent):
        graph.session._engine._session = mock_http_session(_ok())

        graph.sign_in()
        graph.sign_in()

        assert graph.session._engine._session.post.call_count == 1
        assert len(consent.calls) == 1

    def test_concurrent_sign_in_shares_one_flow(self, monkeypatch, store, clock):
        consent = GatedConsent()
        graph = GraphSession(DelegatedConfig(client_id=CLIENT_ID), store, consent, clock=clock)
        graph.session._engine._session = mock_http_session(_ok())
        parked = _park_followers(monkeypatch, graph)
        errors = []

        def sign_in():
            try:
                graph.sign_in()
            except Exception as e:
                errors.append(e)

        try:
            leader = threading.Thread(target=sign_in)
            leader.start()
            assert consent.started.wait(5)

            followers = [threading.Thread(target=sign_in) for _ in range(3)]
            for t in followers:
                t.start()
            # The leader waits through the same hook
            for _ in range(len(followers) + 1):
                assert parked.acquire(timeout=5)
            consent.release.set()

            for t in [leader, *followers]:
                t.join(5)
        finally:
            graph.close()

        assert errors == []
        assert len(consent.calls) == 1
        assert graph.session._engine._session.post.call_count == 1

    def test_concurrent_sign_in_shares_failure(self, monkeypatch, store, clock):
        consent = GatedConsent(ConsentResult(ConsentStatus.USER_CANCEL))
        graph = GraphSession(DelegatedConfig(client_id=CLIENT_ID), store, consent, clock=clock)
        parked = _park_followers(monkeypatch, graph)
        errors = []

        def sign_in():
            try:
                graph.sign_in()
            except AuthenticationFailure as e:
                errors.append(e)

        try:
            leader = threading.Thread(target=sign_in)
            leader.start()
            assert consent.started.wait(5)
            follower = threading.Thread(target=sign_in)
            follower.start()
            for _ in range(2):
                assert parked.acquire(timeout=5)
            consent.release.set()
            leader.join(5)
            follower.join(5)
        finally:
            graph.close()

        assert len(errors) == 2
        assert errors[0] is errors[1]
        assert errors[0].cancelled
        assert len(consent.calls) == 1


class TestGraphSession:
    def test_authenticate_request(self, graph):
        graph.session._engine._session = mock_http_session(_ok(access="at-signed"))
        headers = {}

        graph.authenticate_request(headers)

        assert headers["Authorization"] == "Bearer at-signed"

    def test_sign_out(self, graph, store, consent):
        graph.session._engine._session = mock_http_session(_ok())
        graph.sign_in()

        graph.sign_out()

        assert not graph.signed_in
        assert store.refresh_token == ""
        assert len(consent.calls) == 2

    def test_get_admin_consent(self, clock):
        consent = FakeConsent(
            ConsentResult(ConsentStatus.SUCCESS, "https://localhost/?admin_consent=True")
        )
        config = ServiceCredentialConfig(CLIENT_ID, "app-secret", TENANT_ID)
        with GraphSession(config, consent=consent, clock=clock) as graph:
            assert graph.get_admin_consent("https://localhost/") is True

    def test_context_manager_closes(self, store, consent):
        with GraphSession(DelegatedConfig(client_id=CLIENT_ID), store, consent) as graph:
            http = mock_http_session()
            graph.session._engine._session = http
            loop_thread = graph._bridge.loop_thread

        http.close.assert_awaited_once()
        assert not loop_thread.running

    def test_from_config(self):
        config = GraphAuthConfig(
            flow="service",
            client_id=CLIENT_ID,
            client_secret="app-secret",
            tenant_id=TENANT_ID,
            refresh_buffer_seconds=120,
        )
        graph = GraphSession.from_config(config)
        try:
            assert graph.session.is_app_based
            assert graph.session.store is None
            assert graph.session.refresh_buffer_seconds == 120
        finally:
            graph.close()

    def test_from_config_delegated_uses_configured_store(self, consent):
        config = GraphAuthConfig(client_id=CLIENT_ID, store="memory")
        graph = GraphSession.from_config(config, consent)
        try:
            assert isinstance(graph.session.store, MemoryCredentialStore)
            assert not graph.session.is_app_based
        finally:
            graph.close()
