"""
FastAPI application entry point for the Incident Responder.

Receives PagerDuty webhooks, records incidents and runs the response pipeline
on an in-process work queue started with the application.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from responder import __version__
from responder.config.settings import get_settings
from responder.context import build_context
from responder.dispatcher.ingestor import WebhookIngestor
from responder.dispatcher.routes import router

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    settings = get_settings()

    context = build_context(settings)
    app.state.context = context

    await context.queue.start()
    await WebhookIngestor(context.incidents, context.services, context.queue).reconcile()

    logger.info(
        f"Incident Responder starting in {settings.environment} mode"
        f" (services registered: {len(context.services)})"
    )

    yield

    logger.info("Incident Responder shutting down")
    await context.queue.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Incident Responder",
        description=(
            "Automated incident response pipeline. Receives PagerDuty alerts, "
            "diagnoses them with a coding agent over the service repository and "
            "opens draft pull requests for human review in Slack."
        ),
        version=__version__,
        docs_url="/docs" if settings.debug or settings.environment == "development" else None,
        redoc_url="/redoc" if settings.debug or settings.environment == "development" else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app


# Create the application instance
app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "responder.dispatcher.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
