"""In-memory session models."""
from mediastream.models.session import SessionNamespace, StreamSession, UploadSession

__all__ = [
    "SessionNamespace",
    "StreamSession",
    "UploadSession",
]
