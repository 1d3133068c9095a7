"""In-memory session models for uploads and viewers."""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class SessionNamespace(Enum):
    """Registry namespaces; the same identifier may live in both."""
    UPLOAD = "upload"
    STREAM = "stream"


@dataclass(eq=False)
class UploadSession:
    """
    One in-flight upload, keyed by file identifier.

    ``handle`` is owned exclusively by the session: opened lazily on the first
    chunk and closed exactly once, on completion or eviction. Every field
    except ``file_id``, ``destination_path`` and ``declared_size`` is mutated
    only while ``lock`` is held.
    """
    file_id: str
    destination_path: Path
    declared_size: int
    created_at: float
    last_activity: float
    written_size: int = 0
    handle: Optional[Any] = None
    evicted: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_complete(self) -> bool:
        return self.written_size >= self.declared_size

    def idle_for(self, now: float) -> float:
        return now - self.last_activity


@dataclass(eq=False)
class StreamSession:
    """Viewer presence for one identifier."""
    file_id: str
    last_accessed: float
    viewer_count: int = 0
    evicted: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def idle_for(self, now: float) -> float:
        return now - self.last_accessed
