############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# __init__.py: API endpoints package and router configuration
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""API endpoints for LinguaLink."""

from fastapi import APIRouter

from lingualink.app.api.admin_api import router as admin_router
from lingualink.app.api.health import router as health_router
from lingualink.app.api.relay_api import router as relay_router
from lingualink.app.api.translation_api import router as translation_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health_router)
api_router.include_router(admin_router, prefix="/api/admin", tags=["admin"])
api_router.include_router(translation_router, prefix="/api/translation", tags=["translation"])
api_router.include_router(relay_router, prefix="/api/relay", tags=["relay"])

__all__ = ["api_router"]
