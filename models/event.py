"""Audit event model"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from models.session import utc_now_iso

EVENT_TYPES = ("login", "action", "error")


@dataclass
class EventLogEntry:
    id: str
    timestamp: str
    user: str
    type: str
    message: str
    context: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def new(cls, user: str, type: str, message: str, context: Optional[Dict[str, Any]] = None) -> "EventLogEntry":
        if type not in EVENT_TYPES:
            raise ValueError(f"Invalid event type: {type}. Must be one of {', '.join(EVENT_TYPES)}")
        return cls(
            id=str(uuid.uuid4()),
            timestamp=utc_now_iso(),
            user=user,
            type=type,
            message=message,
            context=context,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "user": self.user,
            "type": self.type,
            "message": self.message,
        }
        if self.context is not None:
            data["context"] = self.context
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventLogEntry":
        return cls(
            id=str(data["id"]),
            timestamp=str(data.get("timestamp") or ""),
            user=str(data.get("user") or ""),
            type=str(data.get("type") or "action"),
            message=str(data.get("message") or ""),
            context=data.get("context"),
        )
