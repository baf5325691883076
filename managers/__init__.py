"""Manager classes for the provenance store"""

from managers.artifact_store import ArtifactStore
from managers.engine import ProvenanceEngine, UserScope
from managers.event_log import EventLog
from managers.input_store import InputStore
from managers.path_sandbox import PathSandbox, UserRoot
from managers.replication import Replicator
from managers.session_store import SessionStore
from managers.storage_config import StorageConfig

__all__ = [
    "ArtifactStore",
    "EventLog",
    "InputStore",
    "PathSandbox",
    "ProvenanceEngine",
    "Replicator",
    "SessionStore",
    "StorageConfig",
    "UserRoot",
    "UserScope",
]
