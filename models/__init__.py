"""Data models for the provenance store"""

from models.artifact import InputLogEntry, StoredArtifactMeta
from models.event import EventLogEntry
from models.session import GenerationRecord, GenerationStatus, Session
from models.user import UserIdentity

__all__ = [
    "EventLogEntry",
    "GenerationRecord",
    "GenerationStatus",
    "InputLogEntry",
    "Session",
    "StoredArtifactMeta",
    "UserIdentity",
]
