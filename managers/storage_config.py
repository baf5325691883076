"""Storage configuration: private data root and shared mirror root"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger("ProvenanceStore")

APP_DIR_NAME = "provenance-store"
DATA_ROOT_ENV = "PROVENANCE_DATA_ROOT"
SHARED_ROOT_ENV = "PROVENANCE_SHARED_ROOT"

# Values that switch mirroring off when given as the shared root
DISABLED_VALUES = {"", "off", "none", "disabled"}


def get_default_shared_root() -> Path:
    """Fixed default network location for the shared mirror."""
    if platform.system() == "Windows":
        return Path(r"\\fileserver\ProvenanceStudio")
    return Path("/mnt/shared/ProvenanceStudio")


def get_default_data_root() -> Path:
    return Path.home() / "Documents" / "ProvenanceStudio"


def get_config_dir() -> Path:
    """Get platform-specific config directory.

    Returns:
        Windows: %APPDATA%/provenance-store
        Mac: ~/Library/Application Support/provenance-store
        Linux: ~/.config/provenance-store
    """
    system = platform.system()
    if system == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata) / APP_DIR_NAME
        return Path.home() / "AppData" / "Roaming" / APP_DIR_NAME
    elif system == "Darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    else:
        return Path.home() / ".config" / APP_DIR_NAME


def get_config_file() -> Path:
    """Get path to the persistent storage config file."""
    return get_config_dir() / "storage_config.json"


def load_storage_config() -> Dict[str, Any]:
    """Load persistent storage configuration.

    Returns:
        Config dict with keys like 'data_root' and 'shared_root'
    """
    config_file = get_config_file()
    if not config_file.exists():
        return {}

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
            return config if isinstance(config, dict) else {}
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Failed to load storage config from {config_file}: {e}")
        return {}


def save_storage_config(config: Dict[str, Any]) -> bool:
    """Merge ``config`` into the persistent storage configuration.

    Returns:
        True if successful, False otherwise
    """
    config_file = get_config_file()

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        existing = load_storage_config()
        existing.update(config)
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(existing, f, indent=2)
        logger.info(f"Saved storage config to {config_file}")
        return True
    except (IOError, OSError) as e:
        logger.error(f"Failed to save storage config to {config_file}: {e}")
        return False


def _is_disabled(value: Union[str, Path]) -> bool:
    return str(value).strip().lower() in DISABLED_VALUES


def resolve_data_root(explicit: Optional[Union[str, Path]] = None) -> Tuple[Path, str]:
    """Resolve the private data root.

    Precedence: explicit > environment > persistent config > default.

    Returns:
        Tuple of (path, method) where method is
        "explicit" | "env" | "persistent_config" | "default"
    """
    if explicit:
        return Path(explicit).expanduser().resolve(), "explicit"

    env_value = os.getenv(DATA_ROOT_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve(), "env"

    configured = load_storage_config().get("data_root")
    if configured:
        return Path(configured).expanduser().resolve(), "persistent_config"

    return get_default_data_root(), "default"


def resolve_shared_root(explicit: Optional[Union[str, Path]] = None) -> Tuple[Optional[Path], str]:
    """Resolve the shared mirror root.

    Precedence: explicit > environment > persistent config > fixed default.
    Any of "", "off", "none", "disabled" turns mirroring off.

    Returns:
        Tuple of (path or None, method)
    """
    candidates = [
        (explicit, "explicit"),
        (os.getenv(SHARED_ROOT_ENV), "env"),
        (load_storage_config().get("shared_root"), "persistent_config"),
    ]
    for value, method in candidates:
        if value is None:
            continue
        if _is_disabled(value):
            return None, method
        # Relative values are anchored at the cwd, UNC paths are left alone
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = path.resolve()
        return path, method

    return get_default_shared_root(), "default"


class StorageConfig:
    """Configuration for the provenance store."""

    def __init__(
        self,
        data_root: Optional[Union[str, Path]] = None,
        shared_root: Optional[Union[str, Path]] = None,
    ):
        """Initialize storage configuration.

        Args:
            data_root: Private data root (resolved from env/config/default if None)
            shared_root: Shared mirror root (resolved from env/config/default if None;
                "off" disables mirroring)
        """
        self.data_root, self.data_root_method = resolve_data_root(data_root)
        self.shared_root, self.shared_root_method = resolve_shared_root(shared_root)

    @property
    def users_root(self) -> Path:
        return self.data_root / "users"

    @property
    def mirroring_enabled(self) -> bool:
        return self.shared_root is not None

    def set_shared_root(self, value: Optional[Union[str, Path]], persist: bool = False) -> Dict[str, Any]:
        """Point the mirror at a new shared root (or switch it off).

        The path is not required to exist; network shares are often offline.
        """
        raw = "" if value is None else str(value)
        if _is_disabled(raw):
            self.shared_root = None
        else:
            path = Path(raw).expanduser()
            if not path.is_absolute():
                path = path.resolve()
            if path.exists() and not path.is_dir():
                return {
                    "success": False,
                    "error": f"Shared root is not a directory: {path}",
                    "error_code": "SHARED_ROOT_NOT_DIRECTORY",
                }
            self.shared_root = path
        self.shared_root_method = "explicit"

        if persist:
            stored = str(self.shared_root) if self.shared_root else "off"
            if not save_storage_config({"shared_root": stored}):
                return {
                    "success": False,
                    "error": f"Failed to save config to {get_config_file()}",
                    "error_code": "CONFIG_SAVE_FAILED",
                }

        logger.info(f"Shared root set to: {self.shared_root or 'disabled'}")
        return {
            "success": True,
            "shared_root": str(self.shared_root) if self.shared_root else None,
            "persisted": persist,
        }
