"""User identity model"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class UserIdentity:
    """Already-resolved identity; authentication happens elsewhere."""
    display_name: str = ""
    id: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"display_name": self.display_name, "id": self.id}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserIdentity":
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise TypeError(f"User identity must be an object, got {type(data).__name__}")
        return cls(
            display_name=str(data.get("display_name") or data.get("displayName") or ""),
            id=str(data.get("id") or ""),
        )
