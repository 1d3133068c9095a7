"""Service modules for the upload pipeline, streaming and reclamation."""
from mediastream.services.container import MediaServices, build_services
from mediastream.services.reclamation_service import ReclamationDaemon, SweepReport
from mediastream.services.session_registry import SessionRegistry, SessionStore
from mediastream.services.stream_service import ByteRange, RangeStream, StreamService, parse_range
from mediastream.services.upload_service import UploadProgress, UploadResult, UploadService

__all__ = [
    "MediaServices",
    "build_services",
    "ReclamationDaemon",
    "SweepReport",
    "SessionRegistry",
    "SessionStore",
    "ByteRange",
    "RangeStream",
    "StreamService",
    "parse_range",
    "UploadProgress",
    "UploadResult",
    "UploadService",
]
