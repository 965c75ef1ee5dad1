from __future__ import annotations

import socket
import time

import pytest

from gup.config import Config
from gup.models import CredentialRecord
from gup.token_store import TokenStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real ~/.gup and any developer environment."""
    for var in (
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GDRIVE_DEFAULT_FOLDER_ID",
        "GDRIVE_DEFAULT_DOWNLOAD_LOCATION",
        "GDRIVE_VERBOSE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GUP_TOKEN_PATH", str(tmp_path / "gup-home" / "token.json"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(tmp_path / "auth" / "token.json")


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(client_id="cid.apps.googleusercontent.com", client_secret="shh-secret",
                  path=tmp_path / "cfg" / "config.json")


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def fresh_record() -> CredentialRecord:
    return CredentialRecord(
        access_token="ya29.fresh",
        refresh_token="1//refresh",
        expiry_date=now_ms() + 3_600_000,
        scope="https://www.googleapis.com/auth/drive "
              "https://www.googleapis.com/auth/drive.file "
              "https://www.googleapis.com/auth/drive.metadata",
    )


@pytest.fixture
def expired_record(fresh_record) -> CredentialRecord:
    fresh_record.access_token = "ya29.stale"
    fresh_record.expiry_date = now_ms() - 60_000
    return fresh_record
