"""Session registry schemas."""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class SweepReportResponse(BaseModel):
    """Counters from one reclamation sweep."""
    uploads_evicted: int = Field(0, ge=0)
    streams_evicted: int = Field(0, ge=0)
    skipped_busy: int = Field(0, ge=0)
    errors: int = Field(0, ge=0)
    duration: float = Field(0.0, ge=0, description="Sweep duration in seconds")


class SessionStatsResponse(BaseModel):
    """Registry statistics."""
    upload_sessions: int = Field(..., ge=0, description="In-flight uploads")
    stream_sessions: int = Field(..., ge=0, description="Tracked stream sessions")
    active_viewers: int = Field(..., ge=0, description="Viewers currently streaming")
    sweeps: int = Field(..., ge=0, description="Sweeps run since startup")
    reclamation_running: bool = Field(..., description="Whether the sweep loop is active")
    last_sweep: Optional[SweepReportResponse] = Field(None, description="Most recent sweep")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
