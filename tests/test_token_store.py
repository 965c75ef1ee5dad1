from __future__ import annotations

import json
import os
import stat
import sys

import pytest

from gup.errors import CorruptRecordError
from gup.models import CredentialRecord
from gup.token_store import TokenStore, default_token_path


class TestTokenStore:
    def test_load_missing_returns_none(self, store) -> None:
        assert store.load() is None
        assert not store.exists()

    def test_save_then_load(self, store, fresh_record) -> None:
        store.save(fresh_record)
        assert store.exists()
        assert store.load() == fresh_record

    def test_saved_file_is_flat_json(self, store) -> None:
        store.save(CredentialRecord("t", "r", 5, "s", "Bearer"))
        assert json.loads(store.path.read_text()) == {
            "access_token": "t",
            "refresh_token": "r",
            "expiry_date": 5,
            "scope": "s",
            "token_type": "Bearer",
        }

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_owner_only(self, store, fresh_record) -> None:
        store.save(fresh_record)
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(store.path.parent).st_mode) == 0o700

    def test_save_replaces_whole_record(self, store, fresh_record) -> None:
        store.save(fresh_record)
        store.save(CredentialRecord("other"))
        assert store.load() == CredentialRecord("other")
        assert not store.path.with_suffix(".tmp").exists()

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"refresh_token": "r"}'])
    def test_corrupt_file(self, store, content) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text(content)
        with pytest.raises(CorruptRecordError):
            store.load()

    def test_delete_is_idempotent(self, store, fresh_record) -> None:
        store.save(fresh_record)
        assert store.delete() is True
        assert store.delete() is False
        assert not store.exists()

    def test_path_override(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("GUP_TOKEN_PATH", str(tmp_path / "x.json"))
        assert default_token_path() == tmp_path / "x.json"
        assert TokenStore().path == tmp_path / "x.json"
