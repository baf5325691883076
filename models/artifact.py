"""Artifact data models"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class StoredArtifactMeta:
    """Reference to a persisted binary (output, control, reference, thumbnail)"""
    id: str
    filename: str
    hash: Optional[str] = None  # sha256 hex of the decoded bytes
    original_name: Optional[str] = None
    size_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "filename": self.filename}
        if self.hash is not None:
            data["hash"] = self.hash
        if self.original_name is not None:
            data["original_name"] = self.original_name
        if self.size_bytes is not None:
            data["size_bytes"] = self.size_bytes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredArtifactMeta":
        return cls(
            id=str(data["id"]),
            filename=str(data["filename"]),
            hash=data.get("hash"),
            original_name=data.get("original_name"),
            size_bytes=data.get("size_bytes"),
        )


@dataclass(frozen=True)
class InputLogEntry:
    """One deduplicated upload. Dedup identity is (original_name, size_bytes)."""
    id: str
    filename: str
    hash: str
    original_name: str
    size_bytes: int

    def matches(self, original_name: str, size_bytes: int) -> bool:
        return self.original_name == original_name and self.size_bytes == size_bytes

    def to_meta(self) -> StoredArtifactMeta:
        return StoredArtifactMeta(
            id=self.id,
            filename=self.filename,
            hash=self.hash,
            original_name=self.original_name,
            size_bytes=self.size_bytes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "hash": self.hash,
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InputLogEntry":
        return cls(
            id=str(data["id"]),
            filename=str(data["filename"]),
            hash=str(data.get("hash", "")),
            original_name=str(data["original_name"]),
            size_bytes=int(data["size_bytes"]),
        )
