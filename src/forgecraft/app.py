"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from forgecraft.api.routes import events, generations, queue
from forgecraft.core import timezone  # noqa: F401  # Sets TZ=UTC
from forgecraft.core.config import Settings, configure_logging
from forgecraft.core.database import create_engine, init_database, setup_db_session
from forgecraft.services.background_removal import remove_background
from forgecraft.services.broadcast import EventBroadcaster
from forgecraft.services.generation.sd_cpp import SdCppBackend
from forgecraft.services.queue_service import QueueService
from forgecraft.uow import create_uow_factory

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, create the database, recover interrupted jobs,
      start the queue processor
    - Shutdown: Stop the processor (the job in flight finishes), dispose the engine
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    engine = create_engine(settings.database_url)
    session_factory = setup_db_session(engine)

    # Recovery must run before the processor starts
    recovered = await init_database(engine, session_factory)

    uow_factory = create_uow_factory(session_factory)

    backend = SdCppBackend(settings.resolved_sd_binary_path, settings.resolved_models_dir)
    if not backend.is_installed():
        logger.warning("startup.sd_cpp_missing", binary=str(backend.binary_path))

    queue_service = QueueService(
        uow_factory,
        backend,
        EventBroadcaster(),
        poll_interval_seconds=settings.poll_interval_seconds,
        background_remover=remove_background if settings.remove_background else None,
    )

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.queue_service = queue_service

    queue_service.start()
    logger.info(
        "application.startup",
        data_dir=str(settings.data_dir),
        interrupted_jobs_recovered=recovered,
    )

    yield

    logger.info("application.shutdown")
    await queue_service.shutdown()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Forgecraft Generation API",
        description="Local generation queue and history for the Forgecraft desktop app",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(queue.router)
    app.include_router(generations.router)
    app.include_router(events.router)

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy", "queue": {...}} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            service = app.state.queue_service
            return {
                "status": "healthy",
                "queue": {"running": service.is_running(), "paused": service.is_paused()},
            }

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()


def main() -> None:
    """Serve the API for the desktop UI on the configured host and port."""
    import uvicorn

    settings = Settings()  # type: ignore[call-arg]
    uvicorn.run("forgecraft.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
