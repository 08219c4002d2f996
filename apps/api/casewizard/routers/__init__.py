"""API routers."""

from casewizard.routers.workflows import router as workflows_router

__all__ = [
    "workflows_router",
]
