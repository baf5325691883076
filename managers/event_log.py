"""Append-only audit trail kept at the user root"""

import json
import logging
from typing import Any, Dict, List, Optional

from managers.errors import ArtifactIOError
from managers.path_sandbox import UserRoot, user_folder_name
from managers.replication import Replicator
from models.event import EventLogEntry

logger = logging.getLogger("ProvenanceStore")

EVENT_LOG_FILENAME = "logs.jsonl"


class EventLog:
    def __init__(self, user_root: UserRoot, replicator: Replicator):
        self.user_root = user_root
        self.replicator = replicator

    @property
    def path(self):
        return self.user_root.path / EVENT_LOG_FILENAME

    def append(self, type: str, message: str, context: Optional[Dict[str, Any]] = None) -> EventLogEntry:
        """Append one event and mirror the whole trail.

        Raises:
            ValueError: Unknown event type
            ArtifactIOError: Local append failed
        """
        entry = EventLogEntry.new(
            user=user_folder_name(self.user_root.identity),
            type=type,
            message=message,
            context=context,
        )
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
            data = self.path.read_bytes()
        except OSError as e:
            raise ArtifactIOError(f"Failed to write to event log: {e}") from e

        self.replicator.mirror_write(EVENT_LOG_FILENAME, data)
        return entry

    def fetch(self, limit: Optional[int] = None) -> List[EventLogEntry]:
        """Events oldest first; with ``limit`` only the most recent ones. Bad lines are skipped."""
        if not self.path.exists():
            return []
        entries = []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(EventLogEntry.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
                        logger.warning(f"Skipping unreadable event log line {line_no}: {e}")
        except OSError as e:
            raise ArtifactIOError(f"Failed to read event log: {e}") from e

        if limit is not None and limit >= 0:
            entries = entries[-limit:] if limit else []
        return entries
