"""
API package for the Linxio automation service.

This package aggregates all API routers to be included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter
from .v1.automation import router as automation_router
from .v1.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(automation_router)
