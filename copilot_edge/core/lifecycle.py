"""Lifecycle management for the application."""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from copilot_edge.core.config import settings
from copilot_edge.core.logging import get_logger
from copilot_edge.core.container import ServiceContainer, set_container

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting CopilotEdge...")

    container = ServiceContainer()

    try:
        await container.initialize(settings)

        # Set global container for module-level access
        set_container(container)

        # Store container in app state for route access
        app.state.container = container

        logger.info(f"CopilotEdge started (model={settings.model})")

    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    yield

    logger.info("Shutting down CopilotEdge...")
    await container.shutdown()
    set_container(None)

    logger.info("CopilotEdge shut down")
