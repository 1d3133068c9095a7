"""Service for appending streamed upload bodies to media files."""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, Callable, Optional

import aiofiles

from mediastream.core.decorators import async_performance_monitor
from mediastream.core.exceptions import (
    InvalidRequestException,
    StorageFailureException,
    UploadTimeoutException,
)
from mediastream.models.session import UploadSession
from mediastream.services.session_registry import SessionRegistry
from mediastream.utils.file_utils import media_path, validate_file_id
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass
class UploadResult:
    """Outcome of one append call."""
    file_id: str
    bytes_received: int
    written_size: int
    declared_size: int
    completed: bool


@dataclass
class UploadProgress:
    """Point-in-time view of an in-flight upload."""
    file_id: str
    declared_size: int
    written_size: int
    idle_seconds: float
    handle_open: bool

    @property
    def percentage(self) -> float:
        if self.declared_size <= 0:
            return 0.0
        return round(min(self.written_size / self.declared_size, 1.0) * 100, 2)


class UploadService:
    """
    Chunked upload pipeline.

    Each identifier gets one UploadSession in the registry. Appends for the
    same identifier are serialized by the session lock; different identifiers
    proceed independently. The destination file is opened in append mode, so
    an upload can be spread over any number of requests until the declared
    size has been written.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        storage_path: Path,
        media_extension: str = ".mp4",
        chunk_size: int = 2 * 1024 * 1024,
        read_timeout: Optional[float] = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.storage_path = Path(storage_path)
        self.media_extension = media_extension
        self.chunk_size = chunk_size
        self.read_timeout = read_timeout
        self.clock = clock

    def destination_for(self, file_id: str) -> Path:
        return media_path(self.storage_path, file_id, self.media_extension)

    def _new_session(self, file_id: str, declared_size: int) -> UploadSession:
        now = self.clock()
        return UploadSession(
            file_id=file_id,
            destination_path=self.destination_for(file_id),
            declared_size=declared_size,
            created_at=now,
            last_activity=now,
        )

    @async_performance_monitor(
        "upload.append_chunk",
        slow_threshold=30.0,
        summarize=lambda result: f"{result.file_id} +{result.bytes_received}B"
    )
    async def append_chunk(
        self,
        file_id: str,
        declared_total_size: Optional[int],
        body: AsyncIterable[bytes],
    ) -> UploadResult:
        """
        Append one request body to the upload identified by ``file_id``.

        Args:
            file_id: Media identifier
            declared_total_size: Total size announced for the whole upload
            body: Request body as an async iterable of byte pieces

        Returns:
            UploadResult: Progress after this call

        Raises:
            InvalidRequestException: Bad identifier or size, before any I/O
            StorageFailureException: Destination could not be opened or written
            UploadTimeoutException: Body read stalled longer than read_timeout
        """
        validate_file_id(file_id)
        if declared_total_size is None or declared_total_size <= 0:
            raise InvalidRequestException(
                "Content-length required",
                field="content-length",
                details={"declared_size": declared_total_size}
            )

        while True:
            session = self.registry.uploads.get_or_create(
                file_id, lambda: self._new_session(file_id, declared_total_size)
            )
            async with session.lock:
                if session.evicted:
                    # Completed or reclaimed while we waited; resolve again
                    continue
                return await self._append_locked(session, body)

    async def _append_locked(self, session: UploadSession, body: AsyncIterable[bytes]) -> UploadResult:
        if session.handle is None:
            session.handle = await self._open_destination(session)

        bytes_received = 0
        iterator = body.__aiter__()
        while True:
            try:
                if self.read_timeout is None:
                    piece = await iterator.__anext__()
                else:
                    piece = await asyncio.wait_for(iterator.__anext__(), timeout=self.read_timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                logger.warning(
                    "Upload body stalled for %ss: %s (%d/%d bytes)",
                    self.read_timeout, session.file_id, session.written_size, session.declared_size
                )
                await self._flush(session)
                raise UploadTimeoutException(session.file_id, self.read_timeout, session.written_size)

            for offset in range(0, len(piece), self.chunk_size):
                chunk = piece[offset:offset + self.chunk_size]
                await self._write(session, chunk)
                session.written_size += len(chunk)
                session.last_activity = self.clock()
                bytes_received += len(chunk)

        await self._flush(session)

        completed = session.is_complete
        if completed:
            await self._complete(session)
            logger.info(
                "Upload completed: %s (%d bytes) -> %s",
                session.file_id, session.written_size, session.destination_path
            )
        else:
            logger.info(
                "Upload progress: %s %d/%d bytes",
                session.file_id, session.written_size, session.declared_size
            )

        return UploadResult(
            file_id=session.file_id,
            bytes_received=bytes_received,
            written_size=session.written_size,
            declared_size=session.declared_size,
            completed=completed,
        )

    async def _open_destination(self, session: UploadSession):
        try:
            # Append mode: reopening never truncates bytes already written
            return await aiofiles.open(session.destination_path, mode="ab")
        except OSError as e:
            logger.error("Failed to open %s for upload %s: %s", session.destination_path, session.file_id, e)
            raise StorageFailureException(
                "failed to save video file",
                operation="open",
                details={"file_id": session.file_id, "path": str(session.destination_path)},
                original_error=e
            )

    async def _write(self, session: UploadSession, chunk: bytes) -> None:
        try:
            await session.handle.write(chunk)
        except OSError as e:
            logger.error("Write failed for upload %s after %d bytes: %s", session.file_id, session.written_size, e)
            raise StorageFailureException(
                "failed to write video file",
                operation="write",
                details={"file_id": session.file_id, "written_size": session.written_size},
                original_error=e
            )

    async def _flush(self, session: UploadSession) -> None:
        try:
            await session.handle.flush()
        except OSError as e:
            logger.error("Flush failed for upload %s: %s", session.file_id, e)
            raise StorageFailureException(
                "failed to write video file",
                operation="flush",
                details={"file_id": session.file_id, "written_size": session.written_size},
                original_error=e
            )

    async def _complete(self, session: UploadSession) -> None:
        """Close the handle and drop the session; caller holds the lock."""
        handle, session.handle = session.handle, None
        try:
            await handle.close()
        except OSError as e:
            # Handle is unusable either way; a retry reopens in append mode
            logger.error("Failed to close completed upload %s: %s", session.file_id, e)
            raise StorageFailureException(
                "failed to finalize video file",
                operation="close",
                details={"file_id": session.file_id},
                original_error=e
            )
        session.evicted = True
        self.registry.uploads.remove(session.file_id, expected=session)

    def get_progress(self, file_id: str) -> Optional[UploadProgress]:
        """Progress of an in-flight upload, or None when no session exists."""
        session = self.registry.uploads.get(file_id)
        if session is None:
            return None
        return UploadProgress(
            file_id=session.file_id,
            declared_size=session.declared_size,
            written_size=session.written_size,
            idle_seconds=round(session.idle_for(self.clock()), 3),
            handle_open=session.handle is not None,
        )
