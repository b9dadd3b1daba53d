"""System router - health checks."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from pingwarden.api.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    monitor = request.app.state.monitor
    return HealthResponse(
        status="operational",
        version=monitor.settings.version,
        scheduler_running=monitor.scheduler.is_running,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
