"""API Routes module"""
from fastapi import APIRouter

from .workflows import router as workflows_router
from .templates import router as templates_router

# Main API router
api_router = APIRouter()

api_router.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(templates_router, prefix="/templates", tags=["Templates"])

__all__ = ["api_router"]
