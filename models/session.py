"""Session and generation records (the provenance chain)"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from models.artifact import StoredArtifactMeta
from models.user import UserIdentity


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with a trailing Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp; unparseable values sort first."""
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GenerationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _metas(items: Optional[List[Dict[str, Any]]]) -> List[StoredArtifactMeta]:
    return [StoredArtifactMeta.from_dict(item) for item in (items or [])]


@dataclass
class GenerationRecord:
    """One generation: prompt -> inputs -> parameters -> outputs.

    Created as ``pending``; moves exactly once to ``completed`` or ``failed``.
    """
    generation_id: str
    timestamp: str
    prompt: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    status: GenerationStatus = GenerationStatus.PENDING
    control_images: List[StoredArtifactMeta] = field(default_factory=list)
    reference_images: List[StoredArtifactMeta] = field(default_factory=list)
    output_image: Optional[StoredArtifactMeta] = None
    output_images: Optional[List[StoredArtifactMeta]] = None
    output_texts: Optional[List[str]] = None
    generation_time_ms: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def new(
        cls,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        control_images: Optional[List[StoredArtifactMeta]] = None,
        reference_images: Optional[List[StoredArtifactMeta]] = None,
    ) -> "GenerationRecord":
        return cls(
            generation_id=str(uuid.uuid4()),
            timestamp=utc_now_iso(),
            prompt=prompt,
            parameters=dict(parameters or {}),
            control_images=list(control_images or []),
            reference_images=list(reference_images or []),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != GenerationStatus.PENDING

    def complete(
        self,
        outputs: List[StoredArtifactMeta],
        generation_time_ms: Optional[int] = None,
        output_texts: Optional[List[str]] = None,
    ):
        """Attach outputs and mark completed. Raises ValueError if already terminal."""
        if self.is_terminal:
            raise ValueError(
                f"Generation {self.generation_id} is already {self.status.value}; "
                f"cannot mark it completed"
            )
        if outputs:
            self.output_image = outputs[0]
            self.output_images = list(outputs)
        if output_texts:
            self.output_texts = list(output_texts)
        self.generation_time_ms = generation_time_ms
        self.status = GenerationStatus.COMPLETED

    def fail(self, error: str):
        """Record the error and mark failed. Raises ValueError if already terminal."""
        if self.is_terminal:
            raise ValueError(
                f"Generation {self.generation_id} is already {self.status.value}; "
                f"cannot mark it failed"
            )
        self.error = error
        self.status = GenerationStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "generation_id": self.generation_id,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "prompt": self.prompt,
            "control_images": [meta.to_dict() for meta in self.control_images],
            "reference_images": [meta.to_dict() for meta in self.reference_images],
            "parameters": self.parameters,
        }
        if self.output_image is not None:
            data["output_image"] = self.output_image.to_dict()
        if self.output_images is not None:
            data["output_images"] = [meta.to_dict() for meta in self.output_images]
        if self.output_texts is not None:
            data["output_texts"] = list(self.output_texts)
        if self.generation_time_ms is not None:
            data["generation_time_ms"] = self.generation_time_ms
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationRecord":
        output_image = data.get("output_image")
        output_images = data.get("output_images")
        return cls(
            generation_id=str(data["generation_id"]),
            timestamp=str(data.get("timestamp") or ""),
            prompt=str(data.get("prompt") or ""),
            parameters=dict(data.get("parameters") or {}),
            status=GenerationStatus(data.get("status", GenerationStatus.PENDING.value)),
            control_images=_metas(data.get("control_images")),
            reference_images=_metas(data.get("reference_images")),
            output_image=StoredArtifactMeta.from_dict(output_image) if output_image else None,
            output_images=_metas(output_images) if output_images is not None else None,
            output_texts=list(data["output_texts"]) if data.get("output_texts") is not None else None,
            generation_time_ms=data.get("generation_time_ms"),
            error=data.get("error"),
        )


@dataclass
class Session:
    """A titled, ordered list of generations stored as one document."""
    session_id: str
    title: str
    created_at: str
    updated_at: str
    generations: List[GenerationRecord] = field(default_factory=list)
    user: Optional[UserIdentity] = None
    graph: Optional[Dict[str, Any]] = None  # opaque UI graph state

    @classmethod
    def new(cls, title: str = "New Session", user: Optional[UserIdentity] = None) -> "Session":
        now = utc_now_iso()
        return cls(
            session_id=str(uuid.uuid4()),
            title=title,
            created_at=now,
            updated_at=now,
            user=user,
            graph={"nodes": [], "edges": []},
        )

    def find_generation(self, generation_id: str) -> Optional[GenerationRecord]:
        for generation in self.generations:
            if generation.generation_id == generation_id:
                return generation
        return None

    def touch(self, previous_updated_at: Optional[str] = None):
        """Advance updated_at to now, never moving it backwards."""
        now = utc_now_iso()
        floor = max(
            (value for value in (self.updated_at, previous_updated_at) if value),
            key=parse_timestamp,
            default=None,
        )
        if floor and parse_timestamp(floor) > parse_timestamp(now):
            self.updated_at = floor
        else:
            self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "session_id": self.session_id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "generations": [generation.to_dict() for generation in self.generations],
        }
        if self.user is not None:
            data["user"] = self.user.to_dict()
        if self.graph is not None:
            data["graph"] = self.graph
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """Build a Session; raises KeyError/ValueError/TypeError on malformed input."""
        if not isinstance(data, dict):
            raise TypeError(f"Session document must be an object, got {type(data).__name__}")
        created_at = str(data.get("created_at") or "")
        return cls(
            session_id=str(data["session_id"]),
            title=str(data.get("title") or ""),
            created_at=created_at,
            updated_at=str(data.get("updated_at") or created_at),
            generations=[GenerationRecord.from_dict(item) for item in data.get("generations") or []],
            user=UserIdentity.from_dict(data["user"]) if data.get("user") else None,
            graph=data.get("graph"),
        )
