"""Main FastAPI application for CopilotEdge."""

from copilot_edge.core.config import settings
from copilot_edge.core.app_factory import create_app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "copilot_edge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=settings.workers,
        log_level=settings.log_level.lower(),
    )
