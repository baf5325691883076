"""Session documents: one JSON file per session under ``sessions/``"""

import json
import logging
import re
import time
import uuid
from pathlib import Path, PurePath
from typing import Any, Dict, List, Optional, Sequence, Union

from managers.artifact_store import ArtifactStore
from managers.errors import (
    ArtifactIOError,
    DocumentCorruptError,
    InvalidPathError,
    InvalidTransitionError,
    PayloadDecodeError,
    RecordNotFoundError,
    StorageError,
)
from managers.input_store import InputStore
from managers.path_sandbox import SESSIONS_FOLDER, UserRoot
from managers.replication import Replicator
from models.artifact import StoredArtifactMeta
from models.session import GenerationRecord, Session, parse_timestamp
from payload_codec import decode_payload, estimate_decoded_size, sha256_hex

logger = logging.getLogger("ProvenanceStore")

SESSION_ID_REGEX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
SESSION_SUFFIX = ".json"
OUTPUT_FOLDER = "outputs"


def validate_session_id(session_id: str) -> str:
    if not isinstance(session_id, str) or not SESSION_ID_REGEX.match(session_id):
        raise InvalidPathError(
            f"Invalid session_id: '{session_id}'. Must match regex: ^[A-Za-z0-9][A-Za-z0-9._-]{{0,127}}$"
        )
    return session_id


def output_filename(output_id: str) -> str:
    return f"output_{int(time.time() * 1000)}_{output_id}.png"


def _normalize_upload(upload: Union[str, Dict[str, Any]], role: str) -> Dict[str, Any]:
    """Uploaded payloads arrive as a bare string or {data, original_name?, size_bytes?}."""
    if isinstance(upload, str):
        upload = {"data": upload}
    data = upload.get("data")
    if not isinstance(data, str):
        raise ValueError(f"{role} image payload is missing 'data'")
    return {
        "data": data,
        "original_name": upload.get("original_name") or f"{role}_image.png",
        "size_bytes": upload.get("size_bytes") if upload.get("size_bytes") is not None else estimate_decoded_size(data),
    }


class SessionStore:
    """Whole-document persistence of sessions.

    Every mutation is load -> change in memory -> write the full document.
    There is no locking: two writers racing on the same session resolve as
    last-writer-wins.
    """

    def __init__(
        self,
        user_root: UserRoot,
        replicator: Replicator,
        artifacts: ArtifactStore,
        inputs: InputStore,
    ):
        self.user_root = user_root
        self.replicator = replicator
        self.artifacts = artifacts
        self.inputs = inputs

    @property
    def sessions_dir(self) -> Path:
        return self.user_root.path / SESSIONS_FOLDER

    def _relative(self, session_id: str) -> PurePath:
        return PurePath(SESSIONS_FOLDER, f"{validate_session_id(session_id)}{SESSION_SUFFIX}")

    def _read_document(self, path: Path) -> Session:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return Session.from_dict(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
            raise DocumentCorruptError(f"Session document {path.name} is corrupt: {e}") from e
        except OSError as e:
            raise ArtifactIOError(f"Failed to read {path.name}: {e}") from e

    def list_sessions(self) -> List[Session]:
        """All readable sessions, most recently updated first. Corrupt documents are skipped."""
        sessions = []
        for path in sorted(self.sessions_dir.glob(f"*{SESSION_SUFFIX}")):
            try:
                sessions.append(self._read_document(path))
            except StorageError as e:
                logger.warning(f"Skipping session document {path.name}: {e}")
        sessions.sort(key=lambda session: parse_timestamp(session.updated_at), reverse=True)
        return sessions

    def load_session(self, session_id: str) -> Optional[Session]:
        """The session, or None if it is missing or unreadable."""
        path = self.user_root.path / self._relative(session_id)
        if not path.is_file():
            return None
        try:
            return self._read_document(path)
        except StorageError as e:
            logger.warning(f"Failed to load session {session_id}: {e}")
            return None

    def save_session(self, session_id: str, session: Session) -> Session:
        """Write the full document for ``session_id``.

        ``updated_at`` never moves backwards, and a generation already terminal
        on disk must be carried over unchanged.

        Raises:
            InvalidPathError: Bad id, or id differs from ``session.session_id``
            InvalidTransitionError: A terminal generation would be changed or dropped
            ArtifactIOError: Write failed
        """
        relative = self._relative(session_id)
        if session.session_id != session_id:
            raise InvalidPathError(
                f"Session id mismatch: saving '{session.session_id}' under '{session_id}'"
            )

        previous = self.load_session(session_id)
        if previous is not None:
            self._check_terminal_records(previous, session)
        session.touch(previous.updated_at if previous else None)
        if session.user is None:
            session.user = self.user_root.identity

        data = json.dumps(session.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        self.replicator.write_both(relative, data)
        logger.debug(f"Saved session {session_id} ({len(session.generations)} generations)")
        return session

    @staticmethod
    def _check_terminal_records(previous: Session, incoming: Session):
        for stored in previous.generations:
            if not stored.is_terminal:
                continue
            candidate = incoming.find_generation(stored.generation_id)
            if candidate is None:
                raise InvalidTransitionError(
                    f"Generation {stored.generation_id} is already {stored.status.value}; it cannot be removed"
                )
            if candidate.to_dict() != stored.to_dict():
                raise InvalidTransitionError(
                    f"Generation {stored.generation_id} is already {stored.status.value}; it cannot be modified"
                )

    def delete_session(self, session_id: str) -> bool:
        """Delete the document locally and from the mirror. Always honored, even if non-empty.

        Returns:
            True if a local document was removed
        """
        removed = self.replicator.delete_both(self._relative(session_id))
        logger.info(f"Deleted session {session_id}" if removed else f"Session {session_id} was already absent")
        return removed

    def _require(self, session_id: str) -> Session:
        session = self.load_session(session_id)
        if session is None:
            raise RecordNotFoundError(f"Session {session_id} not found")
        return session

    def create_session(self, title: str = "New Session") -> Session:
        session = Session.new(title=title, user=self.user_root.identity)
        return self.save_session(session.session_id, session)

    def rename_session(self, session_id: str, title: str) -> Session:
        session = self._require(session_id)
        session.title = title
        return self.save_session(session_id, session)

    def update_session_graph(self, session_id: str, graph: Dict[str, Any]) -> Session:
        session = self._require(session_id)
        session.graph = graph
        return self.save_session(session_id, session)

    def get_generation(self, session_id: str, generation_id: str) -> Optional[GenerationRecord]:
        session = self.load_session(session_id)
        if session is None:
            return None
        return session.find_generation(generation_id)

    def create_generation(
        self,
        session_id: str,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        control_images: Sequence[Union[str, Dict[str, Any]]] = (),
        reference_images: Sequence[Union[str, Dict[str, Any]]] = (),
    ) -> GenerationRecord:
        """Persist input uploads, then append a pending generation to the session."""
        session = self._require(session_id)

        controls = [self._store_upload(upload, "control") for upload in control_images]
        references = [self._store_upload(upload, "reference") for upload in reference_images]

        generation = GenerationRecord.new(
            prompt=prompt,
            parameters=parameters,
            control_images=controls,
            reference_images=references,
        )
        session.generations.append(generation)
        self.save_session(session_id, session)
        return generation

    def _store_upload(self, upload: Union[str, Dict[str, Any]], role: str) -> StoredArtifactMeta:
        try:
            normalized = _normalize_upload(upload, role)
        except ValueError as e:
            raise ArtifactIOError(str(e)) from e
        entry = self.inputs.store_input(
            normalized["original_name"], int(normalized["size_bytes"]), normalized["data"]
        )
        return entry.to_meta()

    def complete_generation(
        self,
        session_id: str,
        generation_id: str,
        output_images: Sequence[str] = (),
        generation_time_ms: Optional[int] = None,
        output_texts: Optional[Sequence[str]] = None,
    ) -> GenerationRecord:
        """Save outputs and move a pending generation to ``completed``.

        Raises:
            RecordNotFoundError: Unknown session or generation
            InvalidTransitionError: Generation is not pending
        """
        session = self._require(session_id)
        generation = self._require_pending(session, generation_id)

        outputs = [self._store_output(payload) for payload in output_images]
        generation.complete(outputs, generation_time_ms, list(output_texts) if output_texts else None)
        self.save_session(session_id, session)
        return generation

    def _store_output(self, payload: str) -> StoredArtifactMeta:
        output_id = str(uuid.uuid4())
        filename = output_filename(output_id)
        try:
            data = decode_payload(payload)
        except ValueError as e:
            raise PayloadDecodeError(str(e)) from e
        self.artifacts.write_bytes(OUTPUT_FOLDER, filename, data)
        self.artifacts.save_thumbnail(OUTPUT_FOLDER, filename)
        return StoredArtifactMeta(
            id=output_id,
            filename=filename,
            hash=sha256_hex(data),
            original_name=filename,
            size_bytes=len(data),
        )

    def fail_generation(self, session_id: str, generation_id: str, error: str) -> GenerationRecord:
        session = self._require(session_id)
        generation = self._require_pending(session, generation_id)
        generation.fail(error)
        self.save_session(session_id, session)
        return generation

    @staticmethod
    def _require_pending(session: Session, generation_id: str) -> GenerationRecord:
        generation = session.find_generation(generation_id)
        if generation is None:
            raise RecordNotFoundError(f"Generation {generation_id} not found in session {session.session_id}")
        if generation.is_terminal:
            raise InvalidTransitionError(
                f"Generation {generation_id} is already {generation.status.value}"
            )
        return generation

    def export_sessions(self) -> Dict[str, Any]:
        return {"sessions": [session.to_dict() for session in self.list_sessions()]}

    def import_sessions(self, bundle: Dict[str, Any]) -> Dict[str, Any]:
        """Save every session of an export bundle; per-session failures are collected."""
        imported, failed = [], []
        for raw in bundle.get("sessions") or []:
            try:
                session = Session.from_dict(raw)
                self.save_session(session.session_id, session)
                imported.append(session.session_id)
            except (KeyError, ValueError, TypeError, AttributeError, StorageError) as e:
                session_id = raw.get("session_id") if isinstance(raw, dict) else None
                logger.warning(f"Failed to import session {session_id}: {e}")
                failed.append({"session_id": session_id, "error": str(e)})
        return {"imported": imported, "failed": failed}
