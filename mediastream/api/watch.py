"""Media streaming API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from mediastream.api.dependencies import get_services
from mediastream.services import MediaServices
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

router = APIRouter()


@router.get("/watch")
async def watch_media(
    file_id: str = Query("", alias="id", description="Media identifier"),
    range_header: Optional[str] = Header(None, alias="Range"),
    services: MediaServices = Depends(get_services)
):
    """
    Stream a media file, honoring a single ``bytes=start-end`` range.

    Without a Range header (or with one that cannot be parsed) the whole file
    is returned with status 200; otherwise status 206 with Content-Range.
    """
    stream = await services.streams.serve(file_id, range_header)

    # Releases viewer presence even if the client goes away mid-body
    return StreamingResponse(
        stream,
        status_code=stream.status_code,
        headers=stream.headers,
        background=BackgroundTask(stream.aclose)
    )
