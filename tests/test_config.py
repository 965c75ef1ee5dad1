from __future__ import annotations

import json
import os
import stat
import sys

import pytest

from gup.config import DEFAULT_DOWNLOAD_LOCATION, Config
from gup.errors import ConfigError


@pytest.fixture
def cfg_path(tmp_path):
    return tmp_path / "cfg" / "config.json"


class TestLoad:
    def test_defaults_without_file(self, cfg_path) -> None:
        cfg = Config.load(cfg_path, use_dotenv=False)
        assert cfg.client_id == ""
        assert cfg.default_download_location == DEFAULT_DOWNLOAD_LOCATION
        assert cfg.verbose is False

    def test_reads_file(self, cfg_path) -> None:
        cfg_path.parent.mkdir()
        cfg_path.write_text(json.dumps({"client_id": "id", "verbose": True}))
        cfg = Config.load(cfg_path, use_dotenv=False)
        assert cfg.client_id == "id"
        assert cfg.verbose is True

    def test_accepts_camel_case_keys(self, cfg_path) -> None:
        cfg_path.parent.mkdir()
        cfg_path.write_text(json.dumps({"defaultFolderId": "F1", "clientSecret": "s"}))
        cfg = Config.load(cfg_path, use_dotenv=False)
        assert cfg.default_folder_id == "F1"
        assert cfg.client_secret == "s"

    def test_environment_overrides_file(self, cfg_path, monkeypatch) -> None:
        cfg_path.parent.mkdir()
        cfg_path.write_text(json.dumps({"client_id": "from-file"}))
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "from-env")
        monkeypatch.setenv("GDRIVE_VERBOSE", "yes")
        cfg = Config.load(cfg_path, use_dotenv=False)
        assert cfg.client_id == "from-env"
        assert cfg.verbose is True

    def test_dotenv(self, cfg_path, tmp_path, monkeypatch) -> None:
        (tmp_path / ".env").write_text("GOOGLE_CLIENT_SECRET=dotenv-secret\n")
        monkeypatch.chdir(tmp_path)
        cfg = Config.load(cfg_path)
        monkeypatch.delenv("GOOGLE_CLIENT_SECRET", raising=False)
        assert cfg.client_secret == "dotenv-secret"

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_invalid_file(self, cfg_path, content) -> None:
        cfg_path.parent.mkdir()
        cfg_path.write_text(content)
        with pytest.raises(ConfigError):
            Config.load(cfg_path, use_dotenv=False)


class TestSet:
    def test_persistent(self, cfg_path, monkeypatch) -> None:
        cfg = Config(path=cfg_path)
        cfg.set("default_folder_id", "F2")
        monkeypatch.delenv("GDRIVE_DEFAULT_FOLDER_ID", raising=False)
        assert json.loads(cfg_path.read_text())["default_folder_id"] == "F2"
        assert Config.load(cfg_path, use_dotenv=False).default_folder_id == "F2"

    def test_temporary(self, cfg_path, monkeypatch) -> None:
        cfg = Config(path=cfg_path)
        cfg.set("default_folder_id", "F3", persistent=False)
        assert not cfg_path.exists()
        assert os.environ["GDRIVE_DEFAULT_FOLDER_ID"] == "F3"
        monkeypatch.delenv("GDRIVE_DEFAULT_FOLDER_ID")

    def test_environment_values_are_not_written(self, cfg_path, monkeypatch) -> None:
        """A secret that only came from the environment stays out of the config file."""
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-only-secret")
        cfg = Config.load(cfg_path, use_dotenv=False)
        assert cfg.client_secret == "env-only-secret"
        cfg.set("default_folder_id", "FOLDER")
        monkeypatch.delenv("GDRIVE_DEFAULT_FOLDER_ID")
        saved = json.loads(cfg_path.read_text())
        assert saved == {"default_folder_id": "FOLDER"}
        assert "env-only-secret" not in cfg_path.read_text()

    def test_file_values_survive_environment_override(self, cfg_path, monkeypatch) -> None:
        cfg_path.parent.mkdir(parents=True)
        cfg_path.write_text(json.dumps({"client_id": "from-file"}))
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "from-env")
        cfg = Config.load(cfg_path, use_dotenv=False)
        cfg.set("verbose", True)
        monkeypatch.delenv("GDRIVE_VERBOSE")
        saved = json.loads(cfg_path.read_text())
        assert saved == {"client_id": "from-file", "verbose": True}

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_private(self, cfg_path, monkeypatch) -> None:
        Config(path=cfg_path).set("default_folder_id", "F4")
        monkeypatch.delenv("GDRIVE_DEFAULT_FOLDER_ID")
        assert stat.S_IMODE(cfg_path.stat().st_mode) == 0o600

    def test_persist(self, cfg_path) -> None:
        cfg = Config(client_id="id", client_secret="s", path=cfg_path)
        cfg.persist("client_id", "client_secret")
        assert json.loads(cfg_path.read_text()) == {"client_id": "id", "client_secret": "s"}
        with pytest.raises(ConfigError):
            cfg.persist("colour")

    def test_unknown_key(self, cfg_path) -> None:
        with pytest.raises(ConfigError):
            Config(path=cfg_path).set("colour", "blue")


class TestAccessors:
    def test_require_client(self, config) -> None:
        assert config.require_client() == ("cid.apps.googleusercontent.com", "shh-secret")

    def test_require_client_missing(self, cfg_path) -> None:
        with pytest.raises(ConfigError, match="gup config init"):
            Config(client_id="id", path=cfg_path).require_client()

    def test_as_dict_masks_secret(self, config) -> None:
        shown = config.as_dict()
        assert shown["client_secret"] == "shh-…"
        assert "path" not in shown
        assert config.as_dict(mask_secrets=False)["client_secret"] == "shh-secret"
