############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# deps.py: FastAPI dependencies for application-scoped services
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Dependencies resolving the services built by the application lifespan."""

from fastapi import HTTPException, Request, status

from lingualink.app.core.balancer.manager import BackendManager
from lingualink.app.services.translation import TranslationClient


def get_manager(request: Request) -> BackendManager:
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend manager not initialized",
        )
    return manager


def get_translator(request: Request) -> TranslationClient:
    translator = getattr(request.app.state, "translator", None)
    if translator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Translation is not configured",
        )
    return translator
