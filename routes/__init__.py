"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.apps import router as apps_router

__all__ = [
    "imports_router",
    "apps_router",
]
