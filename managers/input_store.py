"""Deduplicated store for uploaded source images"""

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import PurePath
from typing import List, Optional, Tuple, Union

from managers.artifact_store import ArtifactStore
from managers.errors import ArtifactIOError, PayloadDecodeError
from managers.path_sandbox import UserRoot
from managers.replication import Replicator
from models.artifact import InputLogEntry
from payload_codec import decode_payload, sha256_hex

logger = logging.getLogger("ProvenanceStore")

INPUT_FOLDER = "inputs"
INPUT_LOG_FILENAME = "input-image-log.json"
DEFAULT_EXTENSION = ".png"

EXTENSION_REGEX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")
UNSAFE_BASENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def split_original_name(original_name: str) -> Tuple[str, str]:
    """Split an uploaded file's name into (sanitized base, extension).

    Any directory part is dropped. The extension defaults to ``.png``.
    """
    name = re.split(r"[\\/]", original_name or "")[-1]
    suffix = PurePath(name).suffix if name not in (".", "..") else ""
    if suffix and EXTENSION_REGEX.match(suffix):
        base = name[: -len(suffix)]
        ext = suffix
    else:
        base = name
        ext = DEFAULT_EXTENSION

    base = UNSAFE_BASENAME_CHARS.sub("_", base)
    base = re.sub(r"_{2,}", "_", base).strip("_")
    return base or "input", ext


def input_filename(original_name: str, entry_id: str) -> str:
    base, ext = split_original_name(original_name)
    return f"{base}_{entry_id}{ext}"


class InputStore:
    """Stores uploads once per (original_name, size_bytes).

    The sha256 hash is an integrity field only; it is not the lookup key.
    """

    def __init__(self, user_root: UserRoot, replicator: Replicator, artifacts: ArtifactStore):
        self.user_root = user_root
        self.replicator = replicator
        self.artifacts = artifacts

    @property
    def log_path(self):
        return self.user_root.path / INPUT_LOG_FILENAME

    def read_log(self) -> List[InputLogEntry]:
        """Load the dedup log. A corrupt log is quarantined, never overwritten."""
        if not self.log_path.exists():
            return []
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, list):
                raise ValueError(f"expected a list, got {type(raw).__name__}")
            return [InputLogEntry.from_dict(item) for item in raw]
        except (json.JSONDecodeError, ValueError, KeyError, TypeError) as e:
            self._quarantine_log(e)
            return []
        except OSError as e:
            raise ArtifactIOError(f"Failed to read input log: {e}") from e

    def _quarantine_log(self, reason: Exception):
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        quarantined = self.log_path.with_name(f"{INPUT_LOG_FILENAME}.corrupt-{stamp}")
        try:
            self.log_path.replace(quarantined)
        except OSError as e:
            raise ArtifactIOError(f"Input log is corrupt and could not be set aside: {e}") from e
        logger.warning(f"Input log was corrupt ({reason}); moved to {quarantined.name} and starting a new log")

    def write_log(self, entries: List[InputLogEntry]):
        data = json.dumps([entry.to_dict() for entry in entries], indent=2).encode("utf-8")
        self.replicator.write_both(INPUT_LOG_FILENAME, data)

    def store_input(self, original_name: str, size_bytes: int, payload: Union[str, bytes]) -> InputLogEntry:
        """Store an upload, reusing the existing entry for a known (name, size).

        A duplicate whose file went missing on disk is rewritten from
        ``payload`` under the same filename; no second entry is created.

        Raises:
            PayloadDecodeError: Payload is not valid base64
            ArtifactIOError: Write failed (the log is left untouched)
        """
        entries = self.read_log()
        existing = next((entry for entry in entries if entry.matches(original_name, size_bytes)), None)

        if existing is not None:
            if not self.artifacts.exists(INPUT_FOLDER, existing.filename):
                logger.info(f"Input {existing.filename} missing on disk; rewriting from upload")
                self.artifacts.write_bytes(INPUT_FOLDER, existing.filename, self._decode(payload))
            return existing

        data = self._decode(payload)
        entry_id = str(uuid.uuid4())
        entry = InputLogEntry(
            id=entry_id,
            filename=input_filename(original_name, entry_id),
            hash=sha256_hex(data),
            original_name=original_name,
            size_bytes=size_bytes,
        )
        self.artifacts.write_bytes(INPUT_FOLDER, entry.filename, data)

        entries.append(entry)
        self.write_log(entries)
        logger.info(f"Stored input {entry.filename} ({len(data)} bytes)")
        return entry

    def load_input(self, filename: str) -> Optional[str]:
        """Stored input as a data URI, or None if missing."""
        return self.artifacts.load_artifact(INPUT_FOLDER, filename)

    def list_inputs(self) -> List[InputLogEntry]:
        return self.read_log()

    def verify(self, entry: InputLogEntry) -> bool:
        """True if the stored bytes still hash to the recorded value."""
        data = self.artifacts.read_bytes(INPUT_FOLDER, entry.filename)
        return data is not None and sha256_hex(data) == entry.hash

    @staticmethod
    def _decode(payload: Union[str, bytes]) -> bytes:
        try:
            return decode_payload(payload)
        except ValueError as e:
            raise PayloadDecodeError(str(e)) from e
