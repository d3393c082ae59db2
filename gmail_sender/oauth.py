"""OAuth2 authorization-code flow, token refresh, and the local callback listener."""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional

import requests
import uvicorn
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request as HTTPRequest
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.routing import Route

from gmail_sender.config import Settings
from gmail_sender.credential_store import GOOGLE_TOKEN_URI, CredentialStore, TokenRecord
from gmail_sender.errors import (
    AuthorizationExchangeFailed,
    ConfigurationError,
    GmailSenderError,
    ProviderRejected,
    TransportTimeout,
)

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.compose"]
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"

SUCCESS_PAGE = "Authentication successful! You can close this window."

# Consent attempts that never come back are dropped oldest first.
MAX_PENDING_FLOWS = 8


class OAuthClient:
    """Owns the OAuth client configuration and the token lifecycle.

    Built once at startup and handed to both the callback listener and the
    mail operations; the two only meet through the credential store.
    """

    def __init__(self, settings: Settings, store: CredentialStore) -> None:
        self._settings = settings
        self._store = store
        self._pending: Dict[str, Flow] = {}
        self._pending_lock = threading.Lock()

    @property
    def auth_start_url(self) -> str:
        return self._settings.auth_start_url

    def _client_config(self) -> Dict[str, Any]:
        if not self._settings.client_id:
            raise ConfigurationError("Set GMAIL_CLIENT_ID in the environment or env file.")
        if not self._settings.client_secret:
            raise ConfigurationError("Set GMAIL_CLIENT_SECRET in the environment or env file.")
        return {
            "web": {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self._settings.redirect_uri],
            }
        }

    def _new_flow(self) -> Flow:
        return Flow.from_client_config(
            self._client_config(),
            scopes=SCOPES,
            redirect_uri=self._settings.redirect_uri,
        )

    def authorization_url(self) -> str:
        """Return the Google consent URL and remember its flow until the redirect."""
        flow = self._new_flow()
        url, state = flow.authorization_url(access_type="offline", prompt="consent")
        with self._pending_lock:
            self._pending[state] = flow
            while len(self._pending) > MAX_PENDING_FLOWS:
                del self._pending[next(iter(self._pending))]
        return url

    def exchange_code(self, code: str, state: Optional[str] = None) -> TokenRecord:
        """Trade an authorization code for tokens and persist them.

        On failure the stored record, if any, is left as it was.
        """
        with self._pending_lock:
            flow = self._pending.pop(state, None) if state else None
        if flow is None:
            flow = self._new_flow()

        try:
            flow.fetch_token(code=code)
        except Exception as exc:
            raise AuthorizationExchangeFailed(str(exc) or exc.__class__.__name__) from exc

        record = TokenRecord.from_credentials(flow.credentials)
        try:
            self._store.save(record)
        except OSError as exc:
            raise AuthorizationExchangeFailed(f"Cannot store credentials: {exc}") from exc
        logger.info("Authorization complete; credentials stored")
        return record

    def load_credentials(self) -> Optional[Credentials]:
        """Return usable credentials, refreshing an expired access token.

        ``None`` means not authenticated: no record, or a record that can
        neither be used nor refreshed.
        """
        record = self._store.load()
        if record is None:
            return None

        credentials = record.to_credentials(self._settings.client_id, self._settings.client_secret)
        if credentials.valid:
            return credentials
        if not credentials.refresh_token:
            logger.info("Stored access token is unusable and there is no refresh token")
            return None

        self._refresh(credentials)
        self._store.save(TokenRecord.from_credentials(credentials))
        return credentials

    def sync_credentials(self, credentials: Credentials) -> None:
        """Persist credentials the HTTP layer refreshed during a call."""
        record = TokenRecord.from_credentials(credentials)
        if record.access_token and record != self._store.load():
            self._store.save(record)

    def _refresh(self, credentials: Credentials) -> None:
        if not (self._settings.client_id and self._settings.client_secret):
            raise ConfigurationError(
                "GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET are required to refresh the access token."
            )
        request = functools.partial(Request(), timeout=self._settings.api_timeout)
        try:
            credentials.refresh(request)
        except RefreshError as exc:
            raise ProviderRejected(f"Token refresh rejected: {exc}") from exc
        except TransportError as exc:
            if isinstance(exc.__cause__, requests.exceptions.Timeout):
                raise TransportTimeout(f"Token refresh timed out: {exc}") from exc
            raise ProviderRejected(f"Token refresh failed: {exc}") from exc
        logger.info("Refreshed access token")


def create_callback_app(
    oauth: OAuthClient,
    on_authorized: Optional[Callable[[TokenRecord], None]] = None,
) -> Starlette:
    """Routes for starting consent (``/auth``) and catching the redirect."""

    async def start(request: HTTPRequest) -> Response:
        try:
            url = await run_in_threadpool(oauth.authorization_url)
        except GmailSenderError as exc:
            logger.error("Cannot start authorization: %s", exc)
            return PlainTextResponse(f"Authentication failed: {exc}", status_code=500)
        return RedirectResponse(url)

    async def callback(request: HTTPRequest) -> Response:
        error = request.query_params.get("error")
        if error:
            logger.warning("Authorization denied: %s", error)
            return PlainTextResponse(f"Authentication failed: {error}", status_code=400)

        code = request.query_params.get("code")
        if not code:
            return PlainTextResponse("Authentication failed: missing authorization code", status_code=400)

        try:
            record = await run_in_threadpool(oauth.exchange_code, code, request.query_params.get("state"))
        except GmailSenderError as exc:
            logger.error("Authorization code exchange failed: %s", exc)
            return PlainTextResponse(f"Authentication failed: {exc}", status_code=500)

        if on_authorized is not None:
            on_authorized(record)
        return PlainTextResponse(SUCCESS_PAGE)

    return Starlette(
        routes=[
            Route("/auth", start, methods=["GET"]),
            Route("/oauth2callback", callback, methods=["GET"]),
        ]
    )


class OAuthListener:
    """Runs the callback app with uvicorn, by default on a daemon thread."""

    def __init__(self, app: Starlette, host: str, port: int) -> None:
        self.host = host
        self.port = port
        # stdout belongs to the MCP stdio transport, so uvicorn must not log there
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._server.run, name="oauth-callback-listener", daemon=True
        )
        self._thread.start()
        logger.info("OAuth server listening on http://%s:%d", self.host, self.port)

    def serve_forever(self) -> None:
        self._server.run()

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
