"""Concurrent registry of upload and stream sessions."""
import logging
import threading
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from mediastream.models.session import SessionNamespace, StreamSession, UploadSession
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")


class SessionStore(Generic[T]):
    """
    Thread-safe map from file identifier to one session type.

    The internal lock guards presence/absence only. It is held for plain dict
    operations and never across I/O; session payloads are protected by the
    sessions' own locks.
    """

    def __init__(self, namespace: SessionNamespace):
        self.namespace = namespace
        self._sessions: Dict[str, T] = {}
        self._lock = threading.Lock()

    def get_or_create(self, file_id: str, factory: Callable[[], T]) -> T:
        """Return the session for ``file_id``, installing ``factory()`` if absent."""
        with self._lock:
            session = self._sessions.get(file_id)
            if session is None:
                session = factory()
                self._sessions[file_id] = session
                logger.debug("Created %s session: %s", self.namespace.value, file_id)
            return session

    def get(self, file_id: str) -> Optional[T]:
        with self._lock:
            return self._sessions.get(file_id)

    def remove(self, file_id: str, expected: Optional[T] = None) -> bool:
        """
        Remove the entry for ``file_id``.

        When ``expected`` is given the entry is only removed if it is that
        exact object, so a stale holder never evicts a newer session.
        """
        with self._lock:
            current = self._sessions.get(file_id)
            if current is None:
                return False
            if expected is not None and current is not expected:
                return False
            del self._sessions[file_id]
            logger.debug("Removed %s session: %s", self.namespace.value, file_id)
            return True

    def items(self) -> List[Tuple[str, T]]:
        """Snapshot of the current entries."""
        with self._lock:
            return list(self._sessions.items())

    def for_each(self, visitor: Callable[[str, T], Optional[bool]]) -> None:
        """
        Visit a snapshot of the entries; return False from the visitor to stop.

        Entries inserted or removed while visiting may or may not be seen.
        """
        for file_id, session in self.items():
            if visitor(file_id, session) is False:
                break

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, file_id: object) -> bool:
        with self._lock:
            return file_id in self._sessions


class SessionRegistry:
    """Upload and stream session stores, kept as separate typed namespaces."""

    def __init__(self):
        self.uploads: SessionStore[UploadSession] = SessionStore(SessionNamespace.UPLOAD)
        self.streams: SessionStore[StreamSession] = SessionStore(SessionNamespace.STREAM)

    def store(self, namespace: SessionNamespace) -> Union[SessionStore[UploadSession], SessionStore[StreamSession]]:
        if namespace is SessionNamespace.UPLOAD:
            return self.uploads
        return self.streams

    def get_or_create(self, namespace: SessionNamespace, file_id: str, factory: Callable[[], T]) -> T:
        return self.store(namespace).get_or_create(file_id, factory)

    def remove(self, namespace: SessionNamespace, file_id: str, expected=None) -> bool:
        return self.store(namespace).remove(file_id, expected)

    def for_each(self, namespace: SessionNamespace, visitor: Callable) -> None:
        self.store(namespace).for_each(visitor)

    def stats(self) -> Dict[str, int]:
        """Aggregate counts for monitoring."""
        streams = self.streams.items()
        return {
            "upload_sessions": len(self.uploads),
            "stream_sessions": len(streams),
            "active_viewers": sum(session.viewer_count for _, session in streams),
        }
