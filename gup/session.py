"""
Session — the single entry point for authentication.

One Session is built by the CLI entry point and handed to every command.

    session = Session(Config.load())
    creds = session.get_client()      # google.oauth2.credentials.Credentials
    session.authenticate(force=True)  # interactive browser flow
    session.logout()
    session.is_authenticated()        # token file present (not a validity check)

get_client() re-reads the token file and re-checks expiry on every call,
since another gup process may have refreshed or removed it. The Credentials
object is reused while the record on disk is unchanged.
"""
from __future__ import annotations

import logging
import urllib.parse
from typing import Optional

from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .auth_flow import DRIVE_SCOPES, AuthorizationFlow, EventHandler
from .callback_listener import DEFAULT_PORT
from .config import Config
from .errors import CorruptRecordError, NotAuthenticatedError
from .models import CredentialRecord
from .token_refresh import GOOGLE_TOKEN_URI, TokenRefresher
from .token_store import TokenStore

logger = logging.getLogger(__name__)

GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"
DEFAULT_AUTH_TIMEOUT = 120.0  # seconds


class Session:
    """Owns the credential lifecycle for one gup process."""

    def __init__(
        self,
        config: Config,
        store: Optional[TokenStore] = None,
        scopes: Optional[list[str]] = None,
        port: int = DEFAULT_PORT,
        open_browser: bool = True,
        on_event: Optional[EventHandler] = None,
    ) -> None:
        self.config = config
        self.store = store or TokenStore()
        self.scopes: list[str] = scopes or DRIVE_SCOPES
        self._port = port
        self._open_browser = open_browser
        self._on_event = on_event

        self._refresher: Optional[TokenRefresher] = None
        self._flow: Optional[AuthorizationFlow] = None
        self._client: Optional[Credentials] = None
        self._client_record: Optional[CredentialRecord] = None

    # ── Collaborators (built lazily: they need the OAuth client settings) ────

    @property
    def refresher(self) -> TokenRefresher:
        if self._refresher is None:
            client_id, client_secret = self.config.require_client()
            self._refresher = TokenRefresher(self.store, client_id, client_secret)
        return self._refresher

    @property
    def flow(self) -> AuthorizationFlow:
        if self._flow is None:
            client_id, client_secret = self.config.require_client()
            self._flow = AuthorizationFlow(
                client_id,
                client_secret,
                store=self.store,
                refresher=self.refresher,
                scopes=self.scopes,
                port=self._port,
                open_browser=self._open_browser,
                on_event=self._on_event,
            )
        return self._flow

    # ── Facade ────────────────────────────────────────────────────────────────

    def get_client(self, interactive: bool = True) -> Credentials:
        """
        Return credentials for the Drive API.

        A missing, corrupt, unrefreshable or under-scoped token triggers the
        interactive flow, or NotAuthenticatedError when interactive=False.
        """
        record = self.flow.probe()
        if record is None:
            if not interactive:
                raise NotAuthenticatedError()
            record = self.authenticate(force=True)
        return self._client_for(record)

    def authenticate(
        self, force: bool = False, timeout: Optional[float] = DEFAULT_AUTH_TIMEOUT
    ) -> CredentialRecord:
        """Run the authorization flow. Returns the stored record."""
        record = self.flow.run(force=force, timeout=timeout)
        self._client = None
        self._client_record = None
        return record

    def logout(self) -> bool:
        """Forget the stored token. Returns False if there was none."""
        self._client = None
        self._client_record = None
        removed = self.store.delete()
        if removed:
            logger.info("Logged out; removed %s", self.store.path)
        return removed

    def is_authenticated(self) -> bool:
        return self.store.exists()

    def status(self) -> Optional[CredentialRecord]:
        """The stored record without refreshing it, or None if absent/corrupt."""
        try:
            return self.store.load()
        except CorruptRecordError as e:
            logger.warning("%s", e)
            return None

    def revoke(self) -> bool:
        """
        Revoke the stored token at Google, then log out.

        Returns True if Google confirmed the revocation. The local token is
        removed either way.
        """
        record = self.status()
        revoked = False
        if record is not None:
            token = record.refresh_token or record.access_token
            try:
                response = Request()(
                    url=GOOGLE_REVOKE_URI,
                    method="POST",
                    body=urllib.parse.urlencode({"token": token}),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                revoked = response.status == 200
                if not revoked:
                    logger.warning("Token revocation returned HTTP %s", response.status)
            except TransportError as e:
                logger.warning("Could not reach the revocation endpoint: %s", e)
        self.logout()
        return revoked

    # ── Internal ──────────────────────────────────────────────────────────────

    def _client_for(self, record: CredentialRecord) -> Credentials:
        if self._client is not None and self._client_record == record:
            return self._client

        expiry = record.expiry
        self._client = Credentials(
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scopes=self.scopes,
            # google-auth compares against naive UTC datetimes
            expiry=expiry.replace(tzinfo=None) if expiry else None,
        )
        self._client_record = record
        return self._client
