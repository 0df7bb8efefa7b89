"""
API package for the FloWorx rules backend.

This package aggregates the API routers included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter, Depends

from .v1.config import router as config_router
from .v1.health import router as health_router
from .v1.rules import router as rules_router
from ..core.auth import get_current_caller

api_router = APIRouter()
protected = [Depends(get_current_caller)]
api_router.include_router(rules_router, dependencies=protected)
api_router.include_router(config_router, dependencies=protected)
api_router.include_router(health_router)
