"""
GoogleServiceFactory — builds Google API service objects from a Session.

Service objects are built lazily and cached, so several clients sharing one
factory do not rebuild the discovery document. The cache is dropped whenever
the session hands out a different credentials object (after a refresh done
by this or another process, or a re-authorization).

Usage:
    factory = GoogleServiceFactory(session)
    drive_svc = factory.drive

    from gup.drive_client import DriveClient
    client = DriveClient(factory)
"""
from __future__ import annotations

from typing import Any, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from .session import Session


class GoogleServiceFactory:
    """
    Constructs and caches Google API service objects for one Session.

    Every access goes through Session.get_client(), which re-validates the
    token on disk.
    """

    def __init__(self, session: Session, interactive: bool = True) -> None:
        self._session = session
        self._interactive = interactive
        self._creds: Optional[Credentials] = None
        self._services: dict[str, Any] = {}

    # ── Credentials ───────────────────────────────────────────────────────────

    @property
    def credentials(self) -> Credentials:
        """Return valid (auto-refreshed) OAuth2 credentials."""
        creds = self._session.get_client(interactive=self._interactive)
        if creds is not self._creds:
            self._services.clear()
            self._creds = creds
        return creds

    # ── Internal builder ──────────────────────────────────────────────────────

    def _build(self, name: str, version: str) -> Any:
        """Build and cache a googleapiclient service object."""
        creds = self.credentials
        key = f"{name}/{version}"
        if key not in self._services:
            self._services[key] = build(
                name, version, credentials=creds, cache_discovery=False
            )
        return self._services[key]

    # ── Service properties ────────────────────────────────────────────────────

    @property
    def drive(self) -> Any:
        """Google Drive API v3 service object."""
        return self._build("drive", "v3")
