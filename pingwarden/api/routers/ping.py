"""
Ping Router

Inbound heartbeat endpoint. The request body is ignored: any request on a
known token counts as a successful run.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from pingwarden.api.schemas import PingResponse
from pingwarden.heartbeat.errors import NotFoundError

router = APIRouter(prefix="/ping")


@router.api_route("/{token}", methods=["GET", "POST"], response_model=PingResponse)
async def receive_ping(token: str, request: Request) -> PingResponse:
    """Record a ping for the job that owns ``token``."""
    monitor = request.app.state.monitor
    try:
        job = await monitor.ingestor.process_ping(token)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job not found.")

    return PingResponse(
        job_id=job.id,
        job_status=job.status.value,
        expected_next_ping_at=job.expected_next_ping_at.isoformat()
        if job.expected_next_ping_at else None,
    )
