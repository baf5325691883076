"""Best-effort mirroring of the private user root into a shared root"""

import logging
import os
import shutil
from pathlib import Path, PurePath
from typing import Any, Dict, Optional, Union

from managers.errors import ArtifactIOError, InvalidPathError
from managers.path_sandbox import UserRoot, ensure_subdirectories

logger = logging.getLogger("ProvenanceStore")

TEMP_SUFFIX = ".tmp"


def atomic_write_bytes(path: Path, data: bytes):
    """Write ``data`` to ``path`` via a temp file in the same directory.

    Raises:
        OSError: If the directory cannot be created or the write fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
        temp_path.replace(path)
    except OSError:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise


def _checked_relative(relative_path: Union[str, PurePath]) -> PurePath:
    relative = PurePath(relative_path)
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise InvalidPathError(f"Invalid relative path: '{relative_path}'")
    return relative


class Replicator:
    """Writes to a user's private root and mirrors each write to the shared root.

    The private copy is authoritative. Mirror failures are logged and
    swallowed; they never fail the primary write.
    """

    def __init__(self, user_root: UserRoot, shared_root: Optional[Path]):
        self.user_root = user_root
        self.shared_root = shared_root

    def shared_user_dir(self) -> Optional[Path]:
        """Shared copy of the user root, created on demand; None if unreachable."""
        if self.shared_root is None:
            return None
        shared_dir = self.shared_root / self.user_root.folder_name
        try:
            shared_dir.mkdir(parents=True, exist_ok=True)
            ensure_subdirectories(shared_dir)
            return shared_dir
        except OSError as e:
            logger.warning(f"Shared storage unavailable at {shared_dir}; continuing with local storage only: {e}")
            return None

    def write_both(self, relative_path: Union[str, PurePath], data: bytes) -> Path:
        """Commit ``data`` to the private root, then mirror it.

        Returns:
            Local path written

        Raises:
            ArtifactIOError: If the private write fails
        """
        relative = _checked_relative(relative_path)
        local_path = self.user_root.path / relative
        try:
            atomic_write_bytes(local_path, data)
        except OSError as e:
            raise ArtifactIOError(f"Failed to write {relative.as_posix()}: {e}") from e

        self.mirror_write(relative, data)
        return local_path

    def mirror_write(self, relative_path: Union[str, PurePath], data: bytes) -> bool:
        """Best-effort copy of one write into the shared root. Never raises."""
        if self.shared_root is None:
            return False
        try:
            relative = _checked_relative(relative_path)
            shared_dir = self.shared_user_dir()
            if shared_dir is None:
                return False
            atomic_write_bytes(shared_dir / relative, data)
            return True
        except (OSError, InvalidPathError) as e:
            logger.warning(f"Failed to mirror {relative_path} to shared storage: {e}")
            return False

    def delete_both(self, relative_path: Union[str, PurePath]) -> bool:
        """Remove a file from the private root and, if reachable, the mirror.

        Returns:
            True if a local file was removed

        Raises:
            ArtifactIOError: If the local file exists but cannot be removed
        """
        relative = _checked_relative(relative_path)
        local_path = self.user_root.path / relative
        removed = False
        if local_path.exists():
            try:
                local_path.unlink()
                removed = True
            except OSError as e:
                raise ArtifactIOError(f"Failed to delete {relative.as_posix()}: {e}") from e

        self.mirror_delete(relative)
        return removed

    def mirror_delete(self, relative_path: Union[str, PurePath]) -> bool:
        """Best-effort removal from the shared root. Never raises."""
        if self.shared_root is None:
            return False
        shared_path = self.shared_root / self.user_root.folder_name / PurePath(relative_path)
        try:
            if shared_path.exists():
                shared_path.unlink()
                return True
            return False
        except OSError as e:
            logger.warning(f"Failed to delete {relative_path} from shared storage: {e}")
            return False

    def sync_full_tree(self) -> Dict[str, Any]:
        """Recursively copy the private root over the shared copy.

        Returns:
            {"success": True, "shared_path": ...} or {"success": False, "error": ...}
        """
        if self.shared_root is None:
            return {"success": False, "error": "Shared storage is disabled"}

        shared_dir = self.shared_user_dir()
        if shared_dir is None:
            return {"success": False, "error": "Shared storage unavailable"}

        try:
            shutil.copytree(
                self.user_root.path,
                shared_dir,
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns(f"*{TEMP_SUFFIX}"),
            )
        except (OSError, shutil.Error) as e:
            logger.error(f"Failed to sync local data to shared storage: {e}")
            return {"success": False, "error": str(e)}

        file_count = sum(len(files) for _, _, files in os.walk(self.user_root.path))
        logger.info(f"Synced {file_count} files from {self.user_root.path} to {shared_dir}")
        return {"success": True, "shared_path": str(shared_dir), "file_count": file_count}
