"""Tests for storage root resolution and persistent config

Run with pytest from project root:
    pytest tests/test_storage_config.py -v
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from managers.storage_config import (
    DATA_ROOT_ENV,
    SHARED_ROOT_ENV,
    StorageConfig,
    get_config_dir,
    get_default_data_root,
    get_default_shared_root,
    load_storage_config,
    resolve_data_root,
    resolve_shared_root,
    save_storage_config,
)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Point the persistent config at tmp_path and clear the environment."""
    directory = tmp_path / "config"
    monkeypatch.setattr("managers.storage_config.get_config_dir", lambda: directory)
    monkeypatch.delenv(DATA_ROOT_ENV, raising=False)
    monkeypatch.delenv(SHARED_ROOT_ENV, raising=False)
    return directory


class TestDefaults:
    """Tests for platform defaults"""

    def test_default_data_root(self):
        assert get_default_data_root() == Path.home() / "Documents" / "ProvenanceStudio"

    def test_default_shared_root_posix(self):
        with patch("managers.storage_config.platform.system", return_value="Linux"):
            assert get_default_shared_root() == Path("/mnt/shared/ProvenanceStudio")

    def test_default_shared_root_windows(self):
        with patch("managers.storage_config.platform.system", return_value="Windows"):
            assert str(get_default_shared_root()).startswith("\\\\fileserver")

    def test_config_dir_linux(self):
        with patch("managers.storage_config.platform.system", return_value="Linux"):
            assert get_config_dir() == Path.home() / ".config" / "provenance-store"

    def test_config_dir_mac(self):
        with patch("managers.storage_config.platform.system", return_value="Darwin"):
            assert get_config_dir() == Path.home() / "Library" / "Application Support" / "provenance-store"


class TestPersistentConfig:
    """Tests for the storage_config.json file"""

    def test_missing_file_is_empty(self, config_dir):
        assert load_storage_config() == {}

    def test_save_merges(self, config_dir):
        assert save_storage_config({"data_root": "/a"}) is True
        assert save_storage_config({"shared_root": "off"}) is True
        assert load_storage_config() == {"data_root": "/a", "shared_root": "off"}

    def test_corrupt_file_ignored(self, config_dir):
        config_dir.mkdir(parents=True)
        (config_dir / "storage_config.json").write_text("{ nope")
        assert load_storage_config() == {}


class TestResolution:
    """Tests for explicit > env > config > default precedence"""

    def test_data_root_explicit_wins(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.setenv(DATA_ROOT_ENV, str(tmp_path / "env"))
        path, method = resolve_data_root(tmp_path / "explicit")
        assert (path, method) == ((tmp_path / "explicit").resolve(), "explicit")

    def test_data_root_env(self, config_dir, tmp_path, monkeypatch):
        save_storage_config({"data_root": str(tmp_path / "configured")})
        monkeypatch.setenv(DATA_ROOT_ENV, str(tmp_path / "env"))
        assert resolve_data_root() == ((tmp_path / "env").resolve(), "env")

    def test_data_root_persistent_config(self, config_dir, tmp_path):
        save_storage_config({"data_root": str(tmp_path / "configured")})
        assert resolve_data_root() == ((tmp_path / "configured").resolve(), "persistent_config")

    def test_data_root_default(self, config_dir):
        assert resolve_data_root() == (get_default_data_root(), "default")

    @pytest.mark.parametrize("value", ["", "off", "OFF", "none", "disabled", " Disabled "])
    def test_shared_root_disabled_values(self, config_dir, value):
        assert resolve_shared_root(value) == (None, "explicit")

    def test_shared_root_env_disabled(self, config_dir, monkeypatch):
        monkeypatch.setenv(SHARED_ROOT_ENV, "off")
        assert resolve_shared_root() == (None, "env")

    def test_shared_root_env_path(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.setenv(SHARED_ROOT_ENV, str(tmp_path / "share"))
        assert resolve_shared_root() == (tmp_path / "share", "env")

    def test_shared_root_persistent_config(self, config_dir, tmp_path):
        save_storage_config({"shared_root": str(tmp_path / "share")})
        assert resolve_shared_root() == (tmp_path / "share", "persistent_config")

    def test_shared_root_default(self, config_dir):
        assert resolve_shared_root() == (get_default_shared_root(), "default")


class TestStorageConfig:
    """Tests for the StorageConfig object"""

    def test_users_root(self, config_dir, tmp_path):
        config = StorageConfig(data_root=tmp_path / "data", shared_root="off")
        assert config.users_root == (tmp_path / "data").resolve() / "users"
        assert config.mirroring_enabled is False

    def test_set_shared_root(self, config_dir, tmp_path):
        config = StorageConfig(data_root=tmp_path / "data", shared_root="off")

        result = config.set_shared_root(str(tmp_path / "share"))

        assert result == {"success": True, "shared_root": str(tmp_path / "share"), "persisted": False}
        assert config.mirroring_enabled is True
        assert load_storage_config() == {}

    def test_set_shared_root_off(self, config_dir, tmp_path):
        config = StorageConfig(data_root=tmp_path / "data", shared_root=tmp_path / "share")
        assert config.set_shared_root("off")["shared_root"] is None
        assert config.mirroring_enabled is False

    def test_set_shared_root_rejects_file(self, config_dir, tmp_path):
        blocker = tmp_path / "file.txt"
        blocker.write_text("x")
        config = StorageConfig(data_root=tmp_path / "data", shared_root="off")

        result = config.set_shared_root(str(blocker))

        assert result["success"] is False
        assert result["error_code"] == "SHARED_ROOT_NOT_DIRECTORY"
        assert config.shared_root is None

    def test_set_shared_root_persist(self, config_dir, tmp_path):
        config = StorageConfig(data_root=tmp_path / "data", shared_root="off")

        result = config.set_shared_root(str(tmp_path / "share"), persist=True)

        assert result["persisted"] is True
        stored = json.loads((config_dir / "storage_config.json").read_text())
        assert stored == {"shared_root": str(tmp_path / "share")}
        assert StorageConfig(data_root=tmp_path / "data").shared_root == tmp_path / "share"
