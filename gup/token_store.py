"""
TokenStore — persistence for the single OAuth2 credential record.

The record lives at ~/.gup/token.json (override with GUP_TOKEN_PATH) and is
always written whole: a temp file with 0600 permissions is renamed over the
target.

Known limitation: there is no cross-process locking. Two gup processes that
refresh at the same time both write the file and the last writer wins; the
loser's access token is still valid until it expires, so this only costs an
extra refresh later.
"""
from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path
from typing import Optional

from .errors import CorruptRecordError
from .models import CredentialRecord

logger = logging.getLogger(__name__)

TOKEN_DIR = Path("~/.gup").expanduser()
TOKEN_FILE = TOKEN_DIR / "token.json"


def default_token_path() -> Path:
    override = os.environ.get("GUP_TOKEN_PATH")
    return Path(override).expanduser() if override else TOKEN_FILE


class TokenStore:
    """Reads, writes and deletes the credential record at a fixed path."""

    def __init__(self, path: Optional[Path | str] = None) -> None:
        self.path: Path = Path(path) if path else default_token_path()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[CredentialRecord]:
        """
        Return the stored record, or None if there is none.

        Raises CorruptRecordError if the file exists but cannot be decoded.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return CredentialRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CorruptRecordError(f"Unreadable token file {self.path}: {e}") from e

    def save(self, record: CredentialRecord) -> None:
        """Overwrite the file with the full record."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.path.parent.chmod(stat.S_IRWXU)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.path.parent)

        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
        tmp.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        os.replace(tmp, self.path)
        logger.debug("Token saved to %s", self.path)

    def delete(self) -> bool:
        """Remove the file. Returns False if there was nothing to remove."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Token deleted from %s", self.path)
        return True
