"""Session registry inspection and maintenance endpoints."""
import logging

from fastapi import APIRouter, Depends

from mediastream.api.dependencies import get_services
from mediastream.schemas.sessions import SessionStatsResponse, SweepReportResponse
from mediastream.services import MediaServices
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

router = APIRouter()


@router.get("/sessions/stats", response_model=SessionStatsResponse)
async def get_session_stats(services: MediaServices = Depends(get_services)):
    """
    Get registry statistics.

    Returns:
        SessionStatsResponse: Session counts and the last sweep report
    """
    stats = services.registry.stats()
    daemon = services.reclamation
    last = daemon.last_report

    return SessionStatsResponse(
        upload_sessions=stats["upload_sessions"],
        stream_sessions=stats["stream_sessions"],
        active_viewers=stats["active_viewers"],
        sweeps=daemon.sweeps,
        reclamation_running=daemon.running,
        last_sweep=SweepReportResponse(**last.to_dict()) if last else None
    )


@router.post("/sessions/sweep", response_model=SweepReportResponse)
async def run_sweep(services: MediaServices = Depends(get_services)):
    """
    Run one reclamation sweep immediately.

    Returns:
        SweepReportResponse: Counters for the sweep
    """
    report = await services.reclamation.sweep_once()
    logger.info("Manual reclamation sweep: %s", report.to_dict())
    return SweepReportResponse(**report.to_dict())
