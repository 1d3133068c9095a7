"""Background reclamation of idle upload and stream sessions."""
import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from mediastream.core.decorators import async_performance_monitor
from mediastream.models.session import StreamSession, UploadSession
from mediastream.services.session_registry import SessionRegistry
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

EVICTED = "evicted"
BUSY = "busy"
KEPT = "kept"


@dataclass
class SweepReport:
    """Counters for one reclamation pass."""
    uploads_evicted: int = 0
    streams_evicted: int = 0
    skipped_busy: int = 0
    errors: int = 0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReclamationDaemon:
    """
    Periodic sweep that evicts idle sessions.

    Upload sessions idle longer than ``idle_timeout`` have their handle closed
    and are removed; the partially written file stays on storage. Stream
    sessions are removed only when idle and without viewers. The sweep keeps
    no state between passes and never raises.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        interval: float = 15 * 60,
        idle_timeout: float = 60 * 60,
        lock_timeout: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.interval = interval
        self.idle_timeout = idle_timeout
        self.lock_timeout = lock_timeout
        self.clock = clock
        self.sweeps = 0
        self.failed_sweeps = 0
        self.last_report: Optional[SweepReport] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the sweep loop on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="session-reclamation")

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run(self) -> None:
        logger.info(
            "Session reclamation task started (interval=%ss, idle_timeout=%ss)",
            self.interval, self.idle_timeout
        )
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep sweeping on the next interval
                self.failed_sweeps += 1
                logger.error(f"Session reclamation sweep error: {e}", exc_info=True)
        logger.info("Session reclamation task stopped")

    @async_performance_monitor("reclamation.sweep", slow_threshold=5.0, summarize=SweepReport.to_dict)
    async def sweep_once(self, now: Optional[float] = None) -> SweepReport:
        """Run a single pass over both namespaces."""
        started = time.perf_counter()
        if now is None:
            now = self.clock()
        report = SweepReport()

        for file_id, upload in self.registry.uploads.items():
            if upload.idle_for(now) <= self.idle_timeout:
                continue
            try:
                outcome = await self._evict_upload(file_id, upload, now)
            except Exception as e:
                report.errors += 1
                logger.error(f"Failed to reclaim upload session {file_id}: {e}", exc_info=True)
                continue
            if outcome == EVICTED:
                report.uploads_evicted += 1
            elif outcome == BUSY:
                report.skipped_busy += 1

        for file_id, stream in self.registry.streams.items():
            if stream.idle_for(now) <= self.idle_timeout or stream.viewer_count > 0:
                continue
            try:
                outcome = await self._evict_stream(file_id, stream, now)
            except Exception as e:
                report.errors += 1
                logger.error(f"Failed to reclaim stream session {file_id}: {e}", exc_info=True)
                continue
            if outcome == EVICTED:
                report.streams_evicted += 1
            elif outcome == BUSY:
                report.skipped_busy += 1

        report.duration = round(time.perf_counter() - started, 4)
        self.sweeps += 1
        self.last_report = report

        if report.uploads_evicted or report.streams_evicted or report.errors:
            logger.info("Reclamation sweep finished: %s", report.to_dict())
        else:
            logger.debug("Reclamation sweep finished: %s", report.to_dict())
        return report

    async def _try_lock(self, lock: asyncio.Lock) -> bool:
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _evict_upload(self, file_id: str, session: UploadSession, now: float) -> str:
        if not await self._try_lock(session.lock):
            logger.debug("Upload session %s busy, skipping this sweep", file_id)
            return BUSY
        try:
            if session.evicted or session.idle_for(now) <= self.idle_timeout:
                return KEPT

            handle, session.handle = session.handle, None
            if handle is not None:
                try:
                    await handle.close()
                except Exception as e:
                    # A zombie handle must not block eviction
                    logger.warning("Ignoring close failure for idle upload %s: %s", file_id, e)

            session.evicted = True
            self.registry.uploads.remove(file_id, expected=session)
            logger.info(
                "Evicted idle upload session %s after %.0fs (%d/%d bytes written)",
                file_id, session.idle_for(now), session.written_size, session.declared_size
            )
            return EVICTED
        finally:
            session.lock.release()

    async def _evict_stream(self, file_id: str, session: StreamSession, now: float) -> str:
        if not await self._try_lock(session.lock):
            return BUSY
        try:
            if session.evicted or session.viewer_count > 0 or session.idle_for(now) <= self.idle_timeout:
                return KEPT
            session.evicted = True
            self.registry.streams.remove(file_id, expected=session)
            logger.info("Evicted idle stream session %s after %.0fs", file_id, session.idle_for(now))
            return EVICTED
        finally:
            session.lock.release()
