"""Public facade over the per-user storage managers.

Every operation takes the caller's identity explicitly and returns a result
dict: ``{"success": True, ...}`` or
``{"success": False, "error": <message>, "error_code": <code>}``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Union

from managers.artifact_store import ArtifactStore, DestinationChooser
from managers.errors import DocumentCorruptError, StorageError
from managers.event_log import EventLog
from managers.input_store import InputStore
from managers.path_sandbox import PathSandbox, UserRoot
from managers.replication import Replicator
from managers.session_store import SessionStore
from managers.storage_config import StorageConfig, get_config_file
from models.session import Session
from models.user import UserIdentity
from payload_codec import encode_preview

logger = logging.getLogger("ProvenanceStore")


@dataclass
class UserScope:
    """Managers bound to one resolved user root."""
    root: UserRoot
    replicator: Replicator
    artifacts: ArtifactStore
    inputs: InputStore
    sessions: SessionStore
    events: EventLog


def _failure(error: Exception) -> Dict[str, Any]:
    if isinstance(error, StorageError):
        return {"success": False, "error": str(error), "error_code": error.error_code}
    return {
        "success": False,
        "error": f"Unexpected storage failure: {error}",
        "error_code": StorageError.error_code,
    }


class ProvenanceEngine:
    def __init__(self, config: StorageConfig):
        self.config = config
        self.sandbox = PathSandbox(config.users_root)
        logger.info(
            f"Initialized ProvenanceEngine with data_root={config.data_root} ({config.data_root_method}), "
            f"shared_root={config.shared_root or 'disabled'} ({config.shared_root_method})"
        )

    def open_scope(self, identity: UserIdentity) -> UserScope:
        """Resolve the user's root and wire its managers.

        Raises:
            SandboxUnavailableError: If the root cannot be created
        """
        root = self.sandbox.resolve_root(identity)
        replicator = Replicator(root, self.config.shared_root)
        artifacts = ArtifactStore(root, replicator)
        inputs = InputStore(root, replicator, artifacts)
        return UserScope(
            root=root,
            replicator=replicator,
            artifacts=artifacts,
            inputs=inputs,
            sessions=SessionStore(root, replicator, artifacts, inputs),
            events=EventLog(root, replicator),
        )

    def _call(self, operation: str, identity: UserIdentity, action: Callable[[UserScope], Dict[str, Any]]) -> Dict[str, Any]:
        try:
            scope = self.open_scope(identity)
            return {"success": True, **action(scope)}
        except StorageError as e:
            logger.warning(f"{operation} failed: {e}")
            return _failure(e)
        except Exception as e:
            logger.exception(f"{operation} failed unexpectedly")
            return _failure(e)

    # -- sandbox -----------------------------------------------------------

    def resolve_root(self, identity: UserIdentity) -> Dict[str, Any]:
        return self._call(
            "resolve_root",
            identity,
            lambda scope: {"path": str(scope.root.path), "folder_name": scope.root.folder_name},
        )

    # -- inputs ------------------------------------------------------------

    def store_input(self, identity: UserIdentity, original_name: str, size_bytes: int, payload: Union[str, bytes]) -> Dict[str, Any]:
        return self._call(
            "store_input",
            identity,
            lambda scope: scope.inputs.store_input(original_name, size_bytes, payload).to_dict(),
        )

    def load_input(self, identity: UserIdentity, filename: str) -> Dict[str, Any]:
        return self._call("load_input", identity, lambda scope: {"data": scope.inputs.load_input(filename)})

    def list_inputs(self, identity: UserIdentity) -> Dict[str, Any]:
        return self._call(
            "list_inputs",
            identity,
            lambda scope: {"inputs": [entry.to_dict() for entry in scope.inputs.list_inputs()]},
        )

    # -- artifacts ---------------------------------------------------------

    def save_artifact(self, identity: UserIdentity, folder: str, filename: str, payload: Union[str, bytes]) -> Dict[str, Any]:
        return self._call(
            "save_artifact",
            identity,
            lambda scope: {"path": str(scope.artifacts.save_artifact(folder, filename, payload))},
        )

    def save_artifact_from_url(self, identity: UserIdentity, folder: str, filename: str, url: str) -> Dict[str, Any]:
        return self._call(
            "save_artifact_from_url",
            identity,
            lambda scope: {"path": str(scope.artifacts.save_artifact_from_url(folder, filename, url))},
        )

    def load_artifact(self, identity: UserIdentity, folder: str, filename: str) -> Dict[str, Any]:
        return self._call(
            "load_artifact",
            identity,
            lambda scope: {"data": scope.artifacts.load_artifact(folder, filename)},
        )

    def export_artifact(self, identity: UserIdentity, folder: str, filename: str, choose_destination: DestinationChooser) -> Dict[str, Any]:
        # export_artifact already reports not-found/cancelled in its own result
        def action(scope: UserScope) -> Dict[str, Any]:
            result = scope.artifacts.export_artifact(folder, filename, choose_destination)
            return {key: value for key, value in result.items() if key != "success"}

        result = self._call("export_artifact", identity, action)
        if result.get("success") and ("error" in result or result.get("cancelled")):
            result["success"] = False
        return result

    def delete_artifact(self, identity: UserIdentity, folder: str, filename: str) -> Dict[str, Any]:
        return self._call(
            "delete_artifact",
            identity,
            lambda scope: {"deleted": scope.artifacts.delete_artifact(folder, filename)},
        )

    def preview_artifact(
        self,
        identity: UserIdentity,
        folder: str,
        filename: str,
        max_dim: int = 512,
        max_b64_chars: int = 100_000,
    ) -> Dict[str, Any]:
        """Small WebP rendition of an image artifact for inline display."""
        def action(scope: UserScope) -> Dict[str, Any]:
            data = scope.artifacts.read_bytes(folder, filename)
            if data is None:
                return {"preview": None}
            try:
                return {"preview": encode_preview(data, max_dim=max_dim, max_b64_chars=max_b64_chars)}
            except (OSError, ValueError) as e:
                return {"preview": None, "warning": f"Could not render preview: {e}"}

        return self._call("preview_artifact", identity, action)

    # -- sessions ----------------------------------------------------------

    def list_sessions(self, identity: UserIdentity) -> Dict[str, Any]:
        return self._call(
            "list_sessions",
            identity,
            lambda scope: {"sessions": [session.to_dict() for session in scope.sessions.list_sessions()]},
        )

    def load_session(self, identity: UserIdentity, session_id: str) -> Dict[str, Any]:
        def action(scope: UserScope) -> Dict[str, Any]:
            session = scope.sessions.load_session(session_id)
            return {"session": session.to_dict() if session else None}

        return self._call("load_session", identity, action)

    def save_session(self, identity: UserIdentity, session_id: str, session: Union[Session, Dict[str, Any]]) -> Dict[str, Any]:
        def action(scope: UserScope) -> Dict[str, Any]:
            document = session
            if not isinstance(document, Session):
                try:
                    document = Session.from_dict(document)
                except (KeyError, ValueError, TypeError, AttributeError) as e:
                    raise DocumentCorruptError(f"Session document is malformed: {e}") from e
            return {"session": scope.sessions.save_session(session_id, document).to_dict()}

        return self._call("save_session", identity, action)

    def delete_session(self, identity: UserIdentity, session_id: str) -> Dict[str, Any]:
        return self._call(
            "delete_session",
            identity,
            lambda scope: {"deleted": scope.sessions.delete_session(session_id)},
        )

    def create_session(self, identity: UserIdentity, title: str = "New Session") -> Dict[str, Any]:
        return self._call(
            "create_session",
            identity,
            lambda scope: {"session": scope.sessions.create_session(title).to_dict()},
        )

    def rename_session(self, identity: UserIdentity, session_id: str, title: str) -> Dict[str, Any]:
        return self._call(
            "rename_session",
            identity,
            lambda scope: {"session": scope.sessions.rename_session(session_id, title).to_dict()},
        )

    def update_session_graph(self, identity: UserIdentity, session_id: str, graph: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(
            "update_session_graph",
            identity,
            lambda scope: {"session": scope.sessions.update_session_graph(session_id, graph).to_dict()},
        )

    def create_generation(
        self,
        identity: UserIdentity,
        session_id: str,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        control_images: Sequence[Union[str, Dict[str, Any]]] = (),
        reference_images: Sequence[Union[str, Dict[str, Any]]] = (),
    ) -> Dict[str, Any]:
        return self._call(
            "create_generation",
            identity,
            lambda scope: {
                "generation": scope.sessions.create_generation(
                    session_id, prompt, parameters, control_images, reference_images
                ).to_dict()
            },
        )

    def complete_generation(
        self,
        identity: UserIdentity,
        session_id: str,
        generation_id: str,
        output_images: Sequence[str] = (),
        generation_time_ms: Optional[int] = None,
        output_texts: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        return self._call(
            "complete_generation",
            identity,
            lambda scope: {
                "generation": scope.sessions.complete_generation(
                    session_id, generation_id, output_images, generation_time_ms, output_texts
                ).to_dict()
            },
        )

    def fail_generation(self, identity: UserIdentity, session_id: str, generation_id: str, error: str) -> Dict[str, Any]:
        return self._call(
            "fail_generation",
            identity,
            lambda scope: {"generation": scope.sessions.fail_generation(session_id, generation_id, error).to_dict()},
        )

    def get_generation(self, identity: UserIdentity, session_id: str, generation_id: str) -> Dict[str, Any]:
        def action(scope: UserScope) -> Dict[str, Any]:
            generation = scope.sessions.get_generation(session_id, generation_id)
            return {"generation": generation.to_dict() if generation else None}

        return self._call("get_generation", identity, action)

    def export_sessions(self, identity: UserIdentity) -> Dict[str, Any]:
        return self._call("export_sessions", identity, lambda scope: scope.sessions.export_sessions())

    def import_sessions(self, identity: UserIdentity, bundle: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("import_sessions", identity, lambda scope: scope.sessions.import_sessions(bundle))

    # -- replication, audit, status ----------------------------------------

    def sync_user_data(self, identity: UserIdentity) -> Dict[str, Any]:
        """Full-tree resync of the user's private root into the shared root."""
        def action(scope: UserScope) -> Dict[str, Any]:
            return {key: value for key, value in scope.replicator.sync_full_tree().items() if key != "success"}

        result = self._call("sync_user_data", identity, action)
        if result.get("success") and "error" in result:
            result["success"] = False
            result["error_code"] = "SYNC_FAILED"
        return result

    def log_event(self, identity: UserIdentity, type: str, message: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        def action(scope: UserScope) -> Dict[str, Any]:
            try:
                return {"entry": scope.events.append(type, message, context).to_dict()}
            except ValueError as e:
                return {"error": str(e), "error_code": "INVALID_EVENT_TYPE"}

        result = self._call("log_event", identity, action)
        if "error" in result:
            result["success"] = False
        return result

    def fetch_logs(self, identity: UserIdentity, limit: Optional[int] = None) -> Dict[str, Any]:
        return self._call(
            "fetch_logs",
            identity,
            lambda scope: {"entries": [entry.to_dict() for entry in scope.events.fetch(limit)]},
        )

    def get_storage_info(self, identity: UserIdentity) -> Dict[str, Any]:
        """Storage roots, mirror reachability and record counts for one user."""
        def action(scope: UserScope) -> Dict[str, Any]:
            shared_dir = scope.replicator.shared_user_dir()
            return {
                "folder_name": scope.root.folder_name,
                "local_root": {
                    "path": str(scope.root.path),
                    "data_root": str(self.config.data_root),
                    "detection_method": self.config.data_root_method,
                },
                "shared_root": {
                    "path": str(self.config.shared_root) if self.config.shared_root else None,
                    "enabled": self.config.mirroring_enabled,
                    "reachable": shared_dir is not None,
                    "user_path": str(shared_dir) if shared_dir else None,
                    "detection_method": self.config.shared_root_method,
                },
                "sessions": len(list(scope.sessions.sessions_dir.glob("*.json"))),
                "inputs": len(scope.inputs.list_inputs()),
                "config_file": str(get_config_file()),
            }

        return self._call("get_storage_info", identity, action)

    def set_shared_root(self, value: Optional[str], persist: bool = False) -> Dict[str, Any]:
        return self.config.set_shared_root(value, persist=persist)
