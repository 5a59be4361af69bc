"""
app/api/routers package marker.
"""

from app.api.routers.analytics import router as analytics_router
from app.api.routers.competitors import router as competitors_router
from app.api.routers.workflows import router as workflows_router

__all__ = [
    "analytics_router",
    "competitors_router",
    "workflows_router",
]
