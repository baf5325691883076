"""Per-user storage roots and path containment checks"""

import hashlib
import logging
import os
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from managers.errors import InvalidPathError, SandboxUnavailableError
from models.user import UserIdentity

logger = logging.getLogger("ProvenanceStore")

# Filesystem-hostile characters: wildcards, quotes, separators, control chars
FORBIDDEN_CHARS_REGEX = re.compile(r'[<>:"|?*/\\\x00-\x1f\x7f]')
WHITESPACE_REGEX = re.compile(r"\s+")
ANONYMOUS = "anonymous"

ARTIFACT_FOLDERS = ("outputs", "inputs", "controls", "references", "thumbnails")
SESSIONS_FOLDER = "sessions"
USER_SUBDIRECTORIES = ARTIFACT_FOLDERS + (SESSIONS_FOLDER,)


def sanitize_segment(segment: str) -> str:
    """Make one identity segment safe for use inside a folder name.

    Forbidden characters become ``_``, whitespace runs collapse to a single
    ``_`` and leading/trailing whitespace is dropped. Blank results fall back
    to ``anonymous``.
    """
    text = unicodedata.normalize("NFC", segment or "")
    text = WHITESPACE_REGEX.sub("_", text.strip())
    text = FORBIDDEN_CHARS_REGEX.sub("_", text)
    return text or ANONYMOUS


def user_folder_name(identity: UserIdentity) -> str:
    """Deterministic folder name for an identity: ``<name>_<id>``.

    If either sanitized segment already contains ``_`` the join is ambiguous
    (``a_b`` + ``c`` vs ``a`` + ``b_c``), so a short digest of the pair is
    appended to keep distinct pairs apart.
    """
    name = sanitize_segment(identity.display_name)
    user_id = sanitize_segment(identity.id)
    folder = f"{name}_{user_id}"
    if "_" in name or "_" in user_id:
        digest = hashlib.sha256(f"{name}\x00{user_id}".encode("utf-8")).hexdigest()[:8]
        folder = f"{folder}-{digest}"
    return folder


def canonicalize_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """Resolve path to absolute real path (handles symlinks).

    Raises:
        ValueError: If path cannot be resolved and must_exist=True
    """
    try:
        return Path(path).resolve(strict=must_exist)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot resolve path {path}: {e}")


def is_within(child_path: Union[str, Path], parent_path: Union[str, Path], child_must_exist: bool = True) -> bool:
    """Check if child_path is within parent_path using real path resolution.

    Both paths are canonicalized (symlinks resolved) before comparison.
    """
    try:
        child_real = canonicalize_path(child_path, must_exist=child_must_exist)
        parent_real = canonicalize_path(parent_path, must_exist=True)
        return child_real.is_relative_to(parent_real)
    except (ValueError, OSError, TypeError):
        return False


def validate_filename(filename: str) -> str:
    """A filename must be a single, non-special path component."""
    if not filename or filename in (".", "..") or "/" in filename or "\\" in filename or "\x00" in filename:
        raise InvalidPathError(f"Invalid filename: '{filename}'")
    return filename


def ensure_subdirectories(base_path: Path):
    for name in USER_SUBDIRECTORIES:
        (base_path / name).mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class UserRoot:
    """A resolved per-user storage root."""
    identity: UserIdentity
    folder_name: str
    path: Path

    def folder(self, folder: str) -> Path:
        if folder not in ARTIFACT_FOLDERS:
            raise InvalidPathError(
                f"Unknown artifact folder: '{folder}'. Must be one of: {', '.join(ARTIFACT_FOLDERS)}"
            )
        return self.path / folder

    def artifact_path(self, folder: str, filename: str) -> Path:
        """Path of ``<root>/<folder>/<filename>``, verified to stay inside the root."""
        target = self.folder(folder) / validate_filename(filename)
        if not is_within(target, self.path, child_must_exist=False):
            raise InvalidPathError(f"Artifact path {target} is outside user root {self.path}")
        return target


class PathSandbox:
    """Derives and creates per-user storage roots under ``users_root``."""

    def __init__(self, users_root: Union[str, Path]):
        self.users_root = Path(users_root)

    def resolve_root(self, identity: UserIdentity) -> UserRoot:
        """Return the user's root, creating it and its fixed subtree if absent.

        Nothing is cached: a failure here fails the calling operation, and the
        next call tries again.

        Raises:
            SandboxUnavailableError: If the folders cannot be created or written
        """
        folder_name = user_folder_name(identity)
        user_dir = self.users_root / folder_name
        try:
            user_dir.mkdir(parents=True, exist_ok=True)
            ensure_subdirectories(user_dir)
        except OSError as e:
            logger.error(f"User root unavailable at {user_dir}: {e}")
            raise SandboxUnavailableError(f"Storage unavailable at {user_dir}: {e}") from e

        if not os.access(user_dir, os.W_OK):
            raise SandboxUnavailableError(f"Storage unavailable: {user_dir} is not writable")

        return UserRoot(identity=identity, folder_name=folder_name, path=user_dir.resolve())
