"""pingwarden API - FastAPI Application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from pingwarden.api.routers import ping_router, system_router
from pingwarden.app import Monitor
from pingwarden.config import get_persistent_settings
from pingwarden.logging import configure_logging


def create_app(monitor: Monitor | None = None, run_scheduler: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        monitor: Pre-built composition root (a default one is built if None)
        run_scheduler: Start the recurring scan with the app
    """
    monitor = monitor or Monitor()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        if run_scheduler:
            await monitor.start()
        yield
        # Shutdown
        await monitor.stop()

    app = FastAPI(
        title=monitor.settings.title,
        description=monitor.settings.description,
        version=monitor.settings.version,
        lifespan=lifespan,
    )
    app.state.monitor = monitor

    # Include routers
    app.include_router(system_router, tags=["System"])
    app.include_router(ping_router, tags=["Ping"])

    return app


def build_default_app() -> FastAPI:
    """Factory used by uvicorn: configures logging from settings, then builds the app."""
    monitor = Monitor(settings=get_persistent_settings())
    configure_logging(monitor.settings.log_level, monitor.settings.json_logs)
    return create_app(monitor)


if __name__ == "__main__":
    import uvicorn

    from pingwarden.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "pingwarden.api.main:build_default_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
