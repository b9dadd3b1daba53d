"""Pydantic schemas for API responses."""

from pingwarden.api.schemas.ping import HealthResponse, PingResponse

__all__ = [
    "HealthResponse",
    "PingResponse",
]
