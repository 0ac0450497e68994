"""
FastAPI application entry point for the ReportsDAY service.

Wires the Runtime into the application lifespan, configures CORS and
registers the API routers.

On startup the day cache directory is created (failure aborts startup) and
the scheduler starts its jobs. On shutdown (SIGINT/SIGTERM handled by
uvicorn) the jobs stop, in-flight report runs are drained, viewers are
closed and HTTP clients released.

Run with:
    reportsday
or:
    uvicorn reportsday.main:app --port 3005
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reportsday import __version__
from reportsday.api import api_router
from reportsday.core.config import Settings, get_settings
from reportsday.core.runtime import Runtime, build_runtime

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    runtime: Optional[Runtime] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (default: environment)
        runtime: Prebuilt Runtime, e.g. with fake clients in tests
        start_scheduler: Whether the lifespan starts the recurring jobs
    """
    settings = settings or (runtime.settings if runtime is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        On startup:
            - Build the runtime and prepare the day cache
            - Start the scheduler
        On shutdown:
            - Stop jobs, drain in-flight runs, close viewers and clients
        """
        logging.getLogger().setLevel(settings.log_level.upper())
        logger.info(f"ReportsDAY {__version__} starting")

        active = runtime or build_runtime(settings)
        await active.startup(start_scheduler=start_scheduler)
        app.state.runtime = active
        logger.info(f"Report times: {', '.join(active.scheduler.scheduled_times)} ({settings.timezone})")

        yield

        logger.info("ReportsDAY shutting down")
        try:
            await active.shutdown()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        app.state.runtime = None

    app = FastAPI(
        title="ReportsDAY API",
        version=__version__,
        description=(
            "Call-center KPI reports: daily KPIs from the PBX metrics API, "
            "comparison against the recent baseline, scheduled delivery to a "
            "messaging channel and live events for dashboards."
        ),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring and load balancer probes."""
        return {"status": "ok"}

    @app.get("/")
    async def root():
        """Service information."""
        return {
            "name": "ReportsDAY API",
            "version": __version__,
            "docs": "/docs",
            "websocket": "/ws",
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "reportsday.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
