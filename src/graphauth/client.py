"""Blocking facade over SessionManager for synchronous callers."""

import logging
from collections.abc import MutableMapping
from typing import Any

from graphauth.bridge import Dispatcher, SynchronousBridge
from graphauth.config import GraphAuthConfig, load_config
from graphauth.oauth2.consent import ConsentCollaborator
from graphauth.oauth2.models import SessionConfig
from graphauth.oauth2.session import SessionManager
from graphauth.oauth2.singleflight import SingleFlight
from graphauth.storage import CredentialStore
from graphauth.types import SignableRequest

logger = logging.getLogger(__name__)


class GraphSession:
    """
    Synchronous sign-in and request signing.

    Concurrent ``sign_in`` calls share one authentication: the first caller
    runs it, the rest wait for and observe the same outcome. When a
    dispatcher is supplied, its owner thread keeps pumping while it waits,
    so a consent UI that must run on that thread can still be shown.

    Usage:
        with GraphSession(DelegatedConfig(client_id="..."), store, consent) as graph:
            graph.sign_in()
            graph.authenticate_request(request)
    """

    def __init__(
        self,
        config: SessionConfig,
        store: CredentialStore | None = None,
        consent: ConsentCollaborator | None = None,
        *,
        dispatcher: Dispatcher | None = None,
        bridge: SynchronousBridge | None = None,
        **session_options: Any,
    ):
        """
        Initialize the facade.

        Args:
            config: DelegatedConfig or ServiceCredentialConfig
            store: Refresh token store (delegated sessions)
            consent: Interactive consent UI (delegated sessions, admin consent)
            dispatcher: Caller's message queue, pumped while blocking
            bridge: Existing bridge to share (default: a private one)
            **session_options: Passed through to SessionManager
        """
        self._bridge = bridge or SynchronousBridge(dispatcher)
        self._owns_bridge = bridge is None
        self._manager = SessionManager(
            config,
            store,
            consent,
            dispatcher=dispatcher or self._bridge.dispatcher,
            **session_options,
        )
        self._sign_in_flight = SingleFlight()

    @classmethod
    def from_config(
        cls,
        config: GraphAuthConfig | None = None,
        consent: ConsentCollaborator | None = None,
        **kwargs: Any,
    ) -> "GraphSession":
        """
        Build a session from file/environment configuration.

        Args:
            config: Loaded configuration (default: load_config())
            consent: Interactive consent UI
            **kwargs: Passed through to the constructor
        """
        config = config or load_config()
        kwargs.setdefault("refresh_buffer_seconds", config.refresh_buffer_seconds)
        kwargs.setdefault("http_timeout_seconds", config.http_timeout_seconds)
        return cls(config.to_session_config(), config.create_store(), consent, **kwargs)

    @property
    def session(self) -> SessionManager:
        return self._manager

    @property
    def signed_in(self) -> bool:
        return self._manager.authenticated

    def sign_in(self) -> None:
        """
        Authenticate, blocking until done.

        Raises:
            AuthenticationFailure: If no token could be obtained
            OperationCanceledError: If the exchange was cancelled
        """
        if self._manager.authenticated:
            return

        self._sign_in_flight.do(
            lambda: self._bridge.execute(self._manager.authenticate()),
            wait=self._bridge.wait,
        )

    def sign_out(self) -> None:
        self._bridge.execute(self._manager.logout())

    def authenticate_request(self, request: SignableRequest | MutableMapping[str, str]) -> None:
        """Sign ``request``, authenticating first if needed."""
        if self._manager.sign_request(request):
            return
        self._bridge.execute(self._manager.authenticate_request(request))

    def get_admin_consent(self, redirect_uri: str) -> bool:
        return self._bridge.execute(self._manager.get_admin_consent(redirect_uri))

    def close(self) -> None:
        """Close the HTTP session and stop the private loop thread."""
        try:
            self._bridge.execute(self._manager.close())
        finally:
            if self._owns_bridge:
                self._bridge.close()

    def __enter__(self) -> "GraphSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


__all__ = ["GraphSession"]
