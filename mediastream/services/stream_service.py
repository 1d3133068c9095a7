"""Byte-range streaming of completed media files."""

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import aiofiles

from mediastream.config import RANGE_UNIT
from mediastream.core.decorators import async_performance_monitor
from mediastream.core.exceptions import (
    InvalidRangeException,
    MediaNotFoundException,
    StorageFailureException,
)
from mediastream.models.session import StreamSession
from mediastream.services.session_registry import SessionRegistry
from mediastream.utils.file_utils import media_path, validate_file_id
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

# Single range only; an empty end means "to end of file"
RANGE_PATTERN = re.compile(r"^bytes=(\d+)-(\d*)$")


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte span inside a file."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, file_size: int) -> str:
        return f"{RANGE_UNIT} {self.start}-{self.end}/{file_size}"


def parse_range(range_header: Optional[str], file_size: int) -> Optional[ByteRange]:
    """
    Resolve a Range header against the actual file size.

    Returns None when the whole file should be served: no header, or header
    text that is not of the form ``bytes=<start>-<end>``. Malformed ranges
    are deliberately served as the full file rather than rejected.

    Raises:
        InvalidRangeException: start lies beyond the file, or end < start
    """
    if not range_header:
        return None

    match = RANGE_PATTERN.match(range_header.strip())
    if match is None:
        logger.debug("Unparsable Range header %r, serving full file", range_header)
        return None

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else 0

    if end == 0:
        end = file_size - 1

    if start >= file_size:
        raise InvalidRangeException(start, end, file_size)

    if end >= file_size:
        end = file_size - 1

    if end < start:
        raise InvalidRangeException(start, end, file_size)

    return ByteRange(start=start, end=end)


class RangeStream:
    """
    One viewer's response: status, headers and a lazy body.

    The body can be iterated once. Viewer presence is released exactly once,
    either when iteration ends (normally or with an error) or when
    ``aclose`` is called by the transport.
    """

    def __init__(
        self,
        file_id: str,
        handle: Any,
        file_size: int,
        byte_range: Optional[ByteRange],
        chunk_size: int,
        content_type: str,
        release: Callable[[], Awaitable[None]],
    ):
        self.file_id = file_id
        self.file_size = file_size
        self.byte_range = byte_range
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self._handle = handle
        self._release = release
        self._closed = False
        self._started = False

        if byte_range is None:
            self.status_code = 200
            self.start = 0
            self.content_length = file_size
            self.headers: Dict[str, str] = {
                "Content-Length": str(file_size),
                "Content-Type": content_type,
                "Accept-Ranges": RANGE_UNIT,
            }
        else:
            self.status_code = 206
            self.start = byte_range.start
            self.content_length = byte_range.length
            self.headers = {
                "Content-Range": byte_range.content_range(file_size),
                "Accept-Ranges": RANGE_UNIT,
                "Content-Length": str(byte_range.length),
                "Content-Type": content_type,
            }

    @property
    def partial(self) -> bool:
        return self.byte_range is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._started:
            raise RuntimeError(f"Range stream for {self.file_id} can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        remaining = self.content_length
        try:
            while remaining > 0 and not self._closed:
                try:
                    data = await self._handle.read(min(self.chunk_size, remaining))
                except OSError as e:
                    logger.error("Read failed while streaming %s at %d: %s", self.file_id, self.start + self.bytes_sent, e)
                    raise StorageFailureException(
                        "failed to read video file",
                        operation="read",
                        details={"file_id": self.file_id, "offset": self.start + self.bytes_sent},
                        original_error=e
                    )
                if not data:
                    # Early end of file terminates the stream normally
                    break
                remaining -= len(data)
                self.bytes_sent += len(data)
                yield data
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close the file handle and release viewer presence; idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._handle.close()
        except OSError as e:
            logger.warning("Failed to close stream handle for %s: %s", self.file_id, e)
        finally:
            await self._release()
        logger.debug("Stream finished: %s (%d bytes sent)", self.file_id, self.bytes_sent)


class StreamService:
    """
    Range streaming engine.

    Files are opened independently per request and read without locking; a
    file is only served from its final path, which the upload pipeline stops
    writing to once the upload completes.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        storage_path: Path,
        media_extension: str = ".mp4",
        content_type: str = "video/mp4",
        chunk_size: int = 2 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.storage_path = Path(storage_path)
        self.media_extension = media_extension
        self.content_type = content_type
        self.chunk_size = chunk_size
        self.clock = clock

    def destination_for(self, file_id: str) -> Path:
        return media_path(self.storage_path, file_id, self.media_extension)

    @async_performance_monitor(
        "stream.serve",
        summarize=lambda stream: f"{stream.file_id} status={stream.status_code}"
    )
    async def serve(self, file_id: str, range_header: Optional[str] = None) -> RangeStream:
        """
        Prepare a response for ``file_id`` honoring an optional Range header.

        Validation happens before anything is returned, so the caller can
        map errors to a status code before writing any body bytes.

        Raises:
            InvalidRequestException: Bad identifier
            MediaNotFoundException: No media file for the identifier
            InvalidRangeException: Requested range lies outside the file
            StorageFailureException: stat/seek failure
        """
        validate_file_id(file_id)
        path = self.destination_for(file_id)
        session = await self._register_viewer(file_id)

        handle = None
        stream: Optional[RangeStream] = None
        try:
            try:
                handle = await aiofiles.open(path, mode="rb")
            except FileNotFoundError:
                raise MediaNotFoundException(file_id)
            except OSError as e:
                raise StorageFailureException(
                    "failed to open video file",
                    operation="open",
                    details={"file_id": file_id},
                    original_error=e
                )

            try:
                file_size = os.fstat(handle.fileno()).st_size
            except OSError as e:
                raise StorageFailureException(
                    "failed to get file info",
                    operation="stat",
                    details={"file_id": file_id},
                    original_error=e
                )

            byte_range = parse_range(range_header, file_size)

            if byte_range is not None:
                try:
                    await handle.seek(byte_range.start)
                except OSError as e:
                    raise StorageFailureException(
                        "failed to seek video file",
                        operation="seek",
                        details={"file_id": file_id, "offset": byte_range.start},
                        original_error=e
                    )

            stream = RangeStream(
                file_id=file_id,
                handle=handle,
                file_size=file_size,
                byte_range=byte_range,
                chunk_size=self.chunk_size,
                content_type=self.content_type,
                release=lambda: self._release_viewer(session),
            )
            logger.info(
                "Streaming %s: status=%d range=%s size=%d",
                file_id, stream.status_code,
                f"{byte_range.start}-{byte_range.end}" if byte_range else "full", file_size
            )
            return stream
        finally:
            if stream is None:
                if handle is not None:
                    try:
                        await handle.close()
                    except OSError as e:
                        logger.warning("Failed to close handle for %s: %s", file_id, e)
                # A failed request leaves no presence behind for its identifier
                await self._release_viewer(session, discard_if_unused=True)

    async def _register_viewer(self, file_id: str) -> StreamSession:
        while True:
            session = self.registry.streams.get_or_create(
                file_id, lambda: StreamSession(file_id=file_id, last_accessed=self.clock())
            )
            async with session.lock:
                if session.evicted:
                    continue
                session.viewer_count += 1
                session.last_accessed = self.clock()
                return session

    async def _release_viewer(self, session: StreamSession, discard_if_unused: bool = False) -> None:
        async with session.lock:
            if session.viewer_count > 0:
                session.viewer_count -= 1
            session.last_accessed = self.clock()
            if discard_if_unused and session.viewer_count == 0 and not session.evicted:
                session.evicted = True
                self.registry.streams.remove(session.file_id, expected=session)
