"""Named binary artifacts stored under a user's fixed folders"""

import logging
import shutil
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, Optional, Union

import requests

from managers.errors import ArtifactIOError, PayloadDecodeError
from managers.path_sandbox import UserRoot, validate_filename
from managers.replication import Replicator
from payload_codec import create_thumbnail, decode_payload, encode_payload, fetch_remote_bytes

logger = logging.getLogger("ProvenanceStore")

THUMBNAIL_FOLDER = "thumbnails"

# Receives the suggested filename, returns the chosen destination or None if cancelled
DestinationChooser = Callable[[str], Optional[Union[str, Path]]]


def thumbnail_filename(filename: str) -> str:
    return f"{PurePath(filename).stem}.jpg"


class ArtifactStore:
    """Saves, loads and exports artifacts. No deduplication: callers pass unique filenames."""

    def __init__(self, user_root: UserRoot, replicator: Replicator):
        self.user_root = user_root
        self.replicator = replicator

    def save_artifact(self, folder: str, filename: str, payload: Union[str, bytes]) -> Path:
        """Decode ``payload`` and write it to ``<root>/<folder>/<filename>``.

        Raises:
            InvalidPathError: Unknown folder or unsafe filename
            PayloadDecodeError: Payload is not valid base64
            ArtifactIOError: Local write failed
        """
        self.user_root.artifact_path(folder, filename)
        try:
            data = decode_payload(payload)
        except ValueError as e:
            raise PayloadDecodeError(str(e)) from e
        return self.write_bytes(folder, filename, data)

    def write_bytes(self, folder: str, filename: str, data: bytes) -> Path:
        self.user_root.artifact_path(folder, filename)
        local_path = self.replicator.write_both(PurePath(folder, filename), data)
        logger.debug(f"Saved artifact {folder}/{filename} ({len(data)} bytes)")
        return local_path

    def save_artifact_from_url(self, folder: str, filename: str, url: str, timeout: int = 30) -> Path:
        """Fetch bytes from the remote generation service and store them.

        Raises:
            ArtifactIOError: If the fetch or the write fails
        """
        self.user_root.artifact_path(folder, filename)
        try:
            data = fetch_remote_bytes(url, timeout=timeout)
        except requests.RequestException as e:
            raise ArtifactIOError(f"Failed to fetch artifact from {url}: {e}") from e
        return self.write_bytes(folder, filename, data)

    def exists(self, folder: str, filename: str) -> bool:
        return self.user_root.artifact_path(folder, filename).is_file()

    def read_bytes(self, folder: str, filename: str) -> Optional[bytes]:
        """Raw bytes of an artifact, or None if it does not exist."""
        path = self.user_root.artifact_path(folder, filename)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise ArtifactIOError(f"Failed to read {folder}/{filename}: {e}") from e

    def load_artifact(self, folder: str, filename: str) -> Optional[str]:
        """Artifact as a data URI (prefix inferred from the extension), or None."""
        data = self.read_bytes(folder, filename)
        if data is None:
            return None
        return encode_payload(data, filename)

    def export_artifact(self, folder: str, filename: str, choose_destination: DestinationChooser) -> Dict[str, Any]:
        """Copy an artifact to a user-chosen destination; the store is untouched.

        ``choose_destination`` is only consulted when the artifact exists.
        """
        source = self.user_root.artifact_path(folder, filename)
        if not source.is_file():
            return {"success": False, "error": "File not found", "error_code": "NOT_FOUND"}

        chosen = choose_destination(filename)
        if not chosen:
            return {"success": False, "cancelled": True}

        destination = Path(chosen)
        if destination.is_dir():
            destination = destination / filename
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as e:
            raise ArtifactIOError(f"Failed to export {folder}/{filename} to {destination}: {e}") from e

        logger.info(f"Exported artifact {source} -> {destination}")
        return {"success": True, "path": str(destination)}

    def delete_artifact(self, folder: str, filename: str) -> bool:
        """Delete an artifact (and its mirror). Returns True if a local file was removed."""
        self.user_root.artifact_path(folder, filename)
        return self.replicator.delete_both(PurePath(folder, validate_filename(filename)))

    def save_thumbnail(self, folder: str, filename: str, max_dim: int = 256) -> Optional[str]:
        """Best-effort JPEG thumbnail of an image artifact into ``thumbnails/``.

        Returns:
            Thumbnail filename, or None if the artifact is missing or not an image
        """
        data = self.read_bytes(folder, filename)
        if data is None:
            return None
        try:
            thumb = create_thumbnail(data, max_dim=max_dim)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not create thumbnail for {folder}/{filename}: {e}")
            return None

        thumb_name = thumbnail_filename(filename)
        try:
            self.write_bytes(THUMBNAIL_FOLDER, thumb_name, thumb)
        except ArtifactIOError as e:
            logger.warning(f"Could not save thumbnail for {folder}/{filename}: {e}")
            return None
        return thumb_name
