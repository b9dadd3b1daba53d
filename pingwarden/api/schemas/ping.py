"""
Ping API Schemas

Pydantic models for the ping and health endpoints.
"""

from pydantic import BaseModel, Field


class PingResponse(BaseModel):
    """Response to a successfully processed ping."""

    status: str = "ok"
    job_id: str
    job_status: str = Field(..., description="Job status after the ping")
    expected_next_ping_at: str | None = Field(
        default=None, description="Next due time, or null if the schedule is uncomputable"
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    scheduler_running: bool
    timestamp: str
