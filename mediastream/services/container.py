"""Construction of the per-application service graph."""
import logging
import time
from dataclasses import dataclass
from typing import Callable

from mediastream.core.config import Settings
from mediastream.services.reclamation_service import ReclamationDaemon
from mediastream.services.session_registry import SessionRegistry
from mediastream.services.stream_service import StreamService
from mediastream.services.upload_service import UploadService
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass
class MediaServices:
    """Services sharing one session registry."""
    registry: SessionRegistry
    uploads: UploadService
    streams: StreamService
    reclamation: ReclamationDaemon


def build_services(settings: Settings, clock: Callable[[], float] = time.monotonic) -> MediaServices:
    """
    Create the registry and the services bound to it.

    Each call produces an independent graph, so several applications (or
    tests) can coexist in one process. Nothing touches storage here; the
    application lifespan creates the storage directory on startup.
    """
    storage = settings.get_storage_config()
    pipeline = settings.get_pipeline_config()
    reclamation = settings.get_reclamation_config()

    registry = SessionRegistry()

    services = MediaServices(
        registry=registry,
        uploads=UploadService(
            registry,
            storage_path=storage.storage_path,
            media_extension=storage.media_extension,
            chunk_size=pipeline.upload_chunk_size,
            read_timeout=pipeline.upload_read_timeout,
            clock=clock,
        ),
        streams=StreamService(
            registry,
            storage_path=storage.storage_path,
            media_extension=storage.media_extension,
            content_type=storage.media_content_type,
            chunk_size=pipeline.stream_chunk_size,
            clock=clock,
        ),
        reclamation=ReclamationDaemon(
            registry,
            interval=reclamation.sweep_interval,
            idle_timeout=reclamation.session_idle_timeout,
            lock_timeout=reclamation.sweep_lock_timeout,
            clock=clock,
        ),
    )
    logger.info("Media services ready: storage=%s", storage.storage_path)
    return services
