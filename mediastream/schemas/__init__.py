"""Pydantic schemas for API requests and responses."""
from mediastream.schemas.sessions import SessionStatsResponse, SweepReportResponse
from mediastream.schemas.upload import UploadResponse, UploadStatusResponse

__all__ = [
    # Upload schemas
    "UploadResponse",
    "UploadStatusResponse",
    # Session schemas
    "SessionStatsResponse",
    "SweepReportResponse",
]
