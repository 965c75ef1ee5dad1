"""
Typed data models for gup.

All classes are plain dataclasses — no external dependencies, safe to import
anywhere. Business logic lives in the client and auth classes, not here.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
GOOGLE_APPS_PREFIX = "application/vnd.google-apps."


# ── Credentials ───────────────────────────────────────────────────────────────

@dataclass
class CredentialRecord:
    """
    The single persisted OAuth2 credential.

    Stored as a flat JSON object shaped like the token endpoint response:
        {"access_token": "...", "refresh_token": "...", "scope": "a b",
         "token_type": "Bearer", "expiry_date": 1735689600000}

    expiry_date is an absolute epoch timestamp in milliseconds.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None
    scope: str = ""
    token_type: str = "Bearer"

    @property
    def scopes(self) -> set[str]:
        return set(self.scope.split())

    @property
    def expiry(self) -> Optional[datetime]:
        """Expiry as an aware UTC datetime, or None if unknown."""
        if self.expiry_date is None:
            return None
        return datetime.fromtimestamp(self.expiry_date / 1000, tz=timezone.utc)

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        """A record with no expiry is treated as expired."""
        if self.expiry_date is None:
            return True
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.expiry_date <= now_ms

    def expires_in_seconds(self) -> int:
        if self.expiry_date is None:
            return 0
        return max(0, int(self.expiry_date / 1000 - time.time()))

    def covers(self, required: list[str]) -> bool:
        """
        True if every required scope was granted.

        Records written before scopes were tracked carry no scope string;
        those are trusted rather than forcing a re-consent.
        """
        if not self.scope:
            return True
        return set(required).issubset(self.scopes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token:
            data["refresh_token"] = self.refresh_token
        if self.expiry_date is not None:
            data["expiry_date"] = self.expiry_date
        if self.scope:
            data["scope"] = self.scope
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialRecord:
        """
        Build a record from its JSON form.

        Also accepts the google-auth ``Credentials.to_json()`` layout
        ("token", ISO "expiry", "scopes" list) so older token files keep
        working. Raises KeyError/TypeError/ValueError on unusable input.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")

        access_token = data.get("access_token") or data.get("token")
        if not access_token or not isinstance(access_token, str):
            raise KeyError("access_token")

        expiry_date = data.get("expiry_date")
        if expiry_date is None and data.get("expiry"):
            expiry_date = _iso_to_ms(data["expiry"])
        elif expiry_date is not None:
            expiry_date = int(expiry_date)

        scope = data.get("scope") or ""
        if not scope and isinstance(data.get("scopes"), list):
            scope = " ".join(data["scopes"])

        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expiry_date=expiry_date,
            scope=scope,
            token_type=data.get("token_type") or "Bearer",
        )


def _iso_to_ms(value: str) -> int:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


# ── Drive ─────────────────────────────────────────────────────────────────────

@dataclass
class DriveFile:
    """A file or folder in Google Drive."""

    file_id: str
    name: str
    mime_type: str
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    web_view_link: str = ""
    size_bytes: Optional[int] = None
    owner: str = ""
    shared: bool = False
    parents: list[str] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def is_google_doc(self) -> bool:
        return self.mime_type.startswith(GOOGLE_APPS_PREFIX) and not self.is_folder

    @property
    def size_kb(self) -> Optional[float]:
        return round(self.size_bytes / 1024, 1) if self.size_bytes is not None else None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view used by ``--json`` output."""
        return {
            "id": self.file_id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size_bytes,
            "createdTime": self.created_time.isoformat() if self.created_time else None,
            "modifiedTime": self.modified_time.isoformat() if self.modified_time else None,
            "isFolder": self.is_folder,
            "owner": self.owner,
            "shared": self.shared,
            "webViewLink": self.web_view_link,
        }
