"""Media upload API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from starlette.requests import ClientDisconnect

from mediastream.api.dependencies import get_services
from mediastream.core.exceptions import InvalidRequestException
from mediastream.schemas.upload import UploadResponse, UploadStatusResponse
from mediastream.services import MediaServices
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

router = APIRouter()


def _declared_size(request: Request) -> Optional[int]:
    """Content-Length of the request, or None when absent or malformed."""
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@router.post("/upload", response_model=UploadResponse)
async def upload_media(
    request: Request,
    file_id: str = Query("", alias="id", description="Media identifier"),
    services: MediaServices = Depends(get_services)
):
    """
    Append the request body to the media file for ``id``.

    The request's Content-Length is taken as the total size of the upload.
    Bodies may be split across several requests; the file is complete once
    the declared size has been written.

    Returns:
        UploadResponse: Progress after this request
    """
    try:
        result = await services.uploads.append_chunk(file_id, _declared_size(request), request.stream())
    except ClientDisconnect:
        logger.warning("Client disconnected during upload of %s", file_id)
        raise InvalidRequestException("failed to read video file", details={"file_id": file_id})

    return UploadResponse(
        file_id=result.file_id,
        bytes_received=result.bytes_received,
        written_size=result.written_size,
        declared_size=result.declared_size,
        completed=result.completed
    )


@router.api_route("/upload", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def upload_method_not_allowed():
    """Uploads are POST only."""
    raise InvalidRequestException("Method not allowed")


@router.get("/upload/status", response_model=UploadStatusResponse)
async def get_upload_status(
    file_id: str = Query(..., alias="id", description="Media identifier"),
    services: MediaServices = Depends(get_services)
):
    """
    Get the progress of an in-flight upload.

    Returns:
        UploadStatusResponse: Progress information
    """
    progress = services.uploads.get_progress(file_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Upload session not found"
        )

    return UploadStatusResponse(
        file_id=progress.file_id,
        declared_size=progress.declared_size,
        written_size=progress.written_size,
        completion_percentage=progress.percentage,
        idle_seconds=max(progress.idle_seconds, 0.0),
        handle_open=progress.handle_open
    )
