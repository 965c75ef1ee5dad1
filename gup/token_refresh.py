"""
TokenRefresher — keeps the stored access token usable.

A record is expired when its expiry is unknown or already passed. Expired
records are refreshed with the stored refresh token through google-auth and
the merged result is written back through TokenStore.
"""
from __future__ import annotations

import logging
from datetime import timezone
from typing import Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .errors import RefreshFailedError
from .models import CredentialRecord
from .token_store import TokenStore

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class TokenRefresher:
    """Refreshes expired credential records and persists the result."""

    def __init__(
        self,
        store: TokenStore,
        client_id: str,
        client_secret: str,
        token_uri: str = GOOGLE_TOKEN_URI,
    ) -> None:
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_uri = token_uri

    @staticmethod
    def is_expired(record: CredentialRecord, now_ms: Optional[int] = None) -> bool:
        return record.is_expired(now_ms)

    def ensure_fresh(self, record: CredentialRecord) -> CredentialRecord:
        """
        Return a record whose access token has not expired.

        Raises RefreshFailedError if the record has no refresh token or the
        token endpoint rejects it; callers fall back to re-authorization.
        """
        if not self.is_expired(record):
            return record

        if not record.refresh_token:
            raise RefreshFailedError("Access token expired and no refresh token is stored")

        logger.info("Access token expired, refreshing")
        refreshed = self._request_refresh(record)
        merged = self._merge(record, refreshed)
        self._store.save(merged)
        logger.info("Token refreshed (expires in %ds)", merged.expires_in_seconds())
        return merged

    # ── Internal ──────────────────────────────────────────────────────────────

    def _request_refresh(self, record: CredentialRecord) -> Credentials:
        """Call the token endpoint. Returns the refreshed google-auth credentials."""
        creds = Credentials(
            token=None,
            refresh_token=record.refresh_token,
            token_uri=self._token_uri,
            client_id=self._client_id,
            client_secret=self._client_secret,
        )
        try:
            creds.refresh(Request())
        except RefreshError as e:
            raise RefreshFailedError(f"Refresh token rejected: {e}") from e
        except TransportError as e:
            err = RefreshFailedError(f"Could not reach the token endpoint: {e}")
            err.transient = True
            raise err from e
        return creds

    @staticmethod
    def _merge(record: CredentialRecord, creds: Credentials) -> CredentialRecord:
        expiry_ms: Optional[int] = None
        if creds.expiry is not None:
            # google-auth reports expiry as a naive UTC datetime
            expiry_ms = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)

        granted = getattr(creds, "granted_scopes", None)
        return CredentialRecord(
            access_token=creds.token,
            refresh_token=creds.refresh_token or record.refresh_token,
            expiry_date=expiry_ms,
            scope=" ".join(granted) if granted else record.scope,
            token_type=record.token_type,
        )
