from fastapi import Request, Depends
from copilot_edge.core.config import Settings
from copilot_edge.core.container import ServiceContainer, get_container
from copilot_edge.services.pipeline import CopilotEdgePipeline
from copilot_edge.services.telemetry import PerformanceMonitor

def get_service_container(request: Request) -> ServiceContainer:
    """Get the service container."""
    # Try getting from app state first (lifespan managed)
    if hasattr(request.app.state, "container"):
        return request.app.state.container
    # Fallback to global (e.g. if testing without full app)
    return get_container()

def get_pipeline(
    container: ServiceContainer = Depends(get_service_container)
) -> CopilotEdgePipeline:
    return container.pipeline

def get_performance_monitor(
    container: ServiceContainer = Depends(get_service_container)
) -> PerformanceMonitor:
    return container.performance_monitor

def get_settings(
    container: ServiceContainer = Depends(get_service_container)
) -> Settings:
    return container.settings
