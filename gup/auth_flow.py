"""
AuthorizationFlow — the interactive OAuth2 authorization-code flow.

Steps:
    1. If a stored record is still usable, return it (unless force=True).
    2. Build the consent URL (offline access, forced consent so Google
       always issues a refresh token) and open it in the default browser.
    3. Wait for the redirect on the loopback CallbackListener.
    4. Exchange the code through google-auth-oauthlib and persist the record.

The caller passes the overall timeout; whatever happens, the listener is
closed before run() returns or raises.
"""
from __future__ import annotations

import logging
import os
import time
import webbrowser
from typing import Any, Callable, Optional

from google_auth_oauthlib.flow import Flow

from .callback_listener import CALLBACK_PATH, DEFAULT_PORT, CallbackListener
from .errors import CorruptRecordError, ExchangeFailedError, RefreshFailedError
from .models import CredentialRecord
from .token_refresh import GOOGLE_TOKEN_URI, TokenRefresher
from .token_store import TokenStore

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"

DRIVE_SCOPES: list[str] = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata",
]

EventHandler = Callable[[str, dict[str, Any]], None]


def redirect_uri_for(port: int) -> str:
    return f"http://localhost:{port}{CALLBACK_PATH}"


class AuthorizationFlow:
    """Drives one interactive authorization attempt."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        store: TokenStore,
        refresher: TokenRefresher,
        scopes: Optional[list[str]] = None,
        port: int = DEFAULT_PORT,
        open_browser: bool = True,
        on_event: Optional[EventHandler] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._store = store
        self._refresher = refresher
        self.scopes: list[str] = scopes or DRIVE_SCOPES
        self.port = port
        self.redirect_uri = redirect_uri_for(port)
        self._open_browser = open_browser
        self._on_event = on_event

    # ── Public ────────────────────────────────────────────────────────────────

    def run(self, force: bool = False, timeout: Optional[float] = None) -> CredentialRecord:
        """
        Return a usable credential record, prompting the user if needed.

        Raises PortInUseError, AuthorizationFailedError (or a subclass) when
        the interactive attempt fails.
        """
        if not force:
            existing = self.probe()
            if existing is not None:
                self._emit("authenticated", expires_in=existing.expires_in_seconds())
                return existing

        flow = self._build_flow()
        auth_url, _state = flow.authorization_url(
            access_type="offline",
            prompt="consent",
        )

        saved: list[CredentialRecord] = []

        def exchange(code: str) -> None:
            saved.append(self._exchange(flow, code))

        listener = CallbackListener(port=self.port, on_code=exchange)
        try:
            listener.start()
            self._emit("auth_url", url=auth_url)
            self._launch_browser(auth_url)
            self._emit("waiting", port=self.port)
            listener.wait(timeout)
        finally:
            listener.close()

        self._emit("token_saved", path=str(self._store.path))
        return saved[0]

    def probe(self) -> Optional[CredentialRecord]:
        """
        Return the stored record if it can be used as-is or after a refresh.

        Never raises: every failure means "needs authorization". A token
        endpoint that cannot be reached is logged differently from one that
        rejects the refresh token.
        """
        try:
            record = self._store.load()
        except CorruptRecordError as e:
            logger.warning("%s; starting a new authorization", e)
            return None
        except OSError as e:
            logger.warning("Could not read the stored token: %s", e)
            return None
        if record is None:
            return None

        if not record.covers(self.scopes):
            logger.info("Stored token lacks required scopes; re-authorization needed")
            return None

        try:
            return self._refresher.ensure_fresh(record)
        except RefreshFailedError as e:
            if e.transient:
                logger.warning("Could not verify stored token (network problem): %s", e)
            else:
                logger.info("Stored token is no longer valid: %s", e)
            return None
        except OSError as e:
            logger.warning("Could not save the refreshed token: %s", e)
            return None

    # ── Internal ──────────────────────────────────────────────────────────────

    def _build_flow(self) -> Flow:
        client_config = {
            "installed": {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        return Flow.from_client_config(
            client_config, scopes=self.scopes, redirect_uri=self.redirect_uri
        )

    def _exchange(self, flow: Flow, code: str) -> CredentialRecord:
        """Trade the authorization code for tokens and persist them."""
        # Google may return the granted scopes in a different form than requested
        os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")
        try:
            token = flow.fetch_token(code=code)
        except Exception as e:
            raise ExchangeFailedError(f"Token exchange failed: {e}") from e

        record = record_from_token_response(token)
        self._store.save(record)
        logger.info("Authorization complete; token saved to %s", self._store.path)
        return record

    def _launch_browser(self, url: str) -> None:
        """Best effort; the URL has already been shown to the user."""
        if not self._open_browser:
            return
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning("Could not open a browser: %s", e)
            opened = False
        self._emit("browser_opened" if opened else "browser_failed", url=url)

    def _emit(self, event: str, **payload: Any) -> None:
        logger.debug("auth event %s %s", event, payload)
        if self._on_event is not None:
            self._on_event(event, payload)


def record_from_token_response(token: dict[str, Any]) -> CredentialRecord:
    """
    Build a CredentialRecord from an OAuth2 token response.

    Accepts either an absolute ``expires_at`` (epoch seconds, as returned by
    requests-oauthlib) or a relative ``expires_in``.
    """
    if not token.get("access_token"):
        raise ExchangeFailedError("Token endpoint returned no access token")

    expiry_ms: Optional[int] = None
    if token.get("expires_at") is not None:
        expiry_ms = int(float(token["expires_at"]) * 1000)
    elif token.get("expires_in") is not None:
        expiry_ms = int((time.time() + float(token["expires_in"])) * 1000)

    scope = token.get("scope") or ""
    if isinstance(scope, (list, tuple)):
        scope = " ".join(scope)

    return CredentialRecord(
        access_token=token["access_token"],
        refresh_token=token.get("refresh_token"),
        expiry_date=expiry_ms,
        scope=scope,
        token_type=token.get("token_type") or "Bearer",
    )
