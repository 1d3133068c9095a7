"""Upload-related schemas."""
from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Schema for the result of one upload request."""
    file_id: str = Field(..., description="Media identifier")
    bytes_received: int = Field(..., ge=0, description="Bytes appended by this request")
    written_size: int = Field(..., ge=0, description="Bytes written for the upload so far")
    declared_size: int = Field(..., ge=1, description="Total size announced for the upload")
    completed: bool = Field(..., description="Whether the media file is now complete")


class UploadStatusResponse(BaseModel):
    """Schema for an in-flight upload."""
    file_id: str = Field(..., description="Media identifier")
    declared_size: int = Field(..., description="Total size announced for the upload")
    written_size: int = Field(..., description="Bytes written so far")
    completion_percentage: float = Field(..., ge=0, le=100, description="Progress in percent")
    idle_seconds: float = Field(..., ge=0, description="Seconds since the last successful write")
    handle_open: bool = Field(..., description="Whether the destination file is open")
