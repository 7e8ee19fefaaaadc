"""
Type definitions for the recall engine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC time as an ISO-8601 string with a 'Z' suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MessageRole(str, Enum):
    """Role of a transcript message sender."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Memory:
    """
    A durable fact persisted in the memory store.

    Attributes:
        id: Store-assigned identifier, monotonically increasing
        text: The fact itself
        created_at: ISO-8601 creation timestamp
        session_id: Session the fact came from ("manual" for hand-entered facts)
        embedding: The stored vector, only populated by MemoryStore.get()
    """

    id: int
    text: str
    created_at: str
    session_id: str
    embedding: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "created_at": self.created_at,
            "session_id": self.session_id,
        }


@dataclass
class MemoryMatch:
    """A memory returned by a similarity search."""

    memory: Memory
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.to_dict(),
            "similarity": self.similarity,
        }


@dataclass
class ExtractedMemory:
    """
    A candidate fact produced by the extraction pipeline.

    Attributes:
        text: The fact to remember
        rationale: Why the model thinks it is worth remembering
    """

    text: str
    rationale: str


@dataclass
class SessionMessage:
    """A user or assistant message from a session transcript."""

    role: MessageRole
    text: str

    def __post_init__(self):
        if not isinstance(self.role, MessageRole):
            self.role = MessageRole(self.role)


@dataclass
class ExtractionOutcome:
    """Result of extracting and storing memories for one session."""

    extracted: int = 0
    stored: int = 0
    skipped: int = 0
    stored_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extracted": self.extracted,
            "stored": self.stored,
            "skipped": self.skipped,
            "stored_ids": list(self.stored_ids),
        }
