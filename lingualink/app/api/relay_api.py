############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# relay_api.py: Read-only relay through the resilient executor
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Relay endpoint - forwards GET requests to the backend fleet."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from lingualink.app.api.deps import get_manager
from lingualink.app.core.balancer.manager import BackendManager
from lingualink.app.core.exceptions import BackendsExhaustedError, PreconditionError
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Hop-by-hop and framing headers that must not be copied back
_DROP_HEADERS = {"content-length", "content-encoding", "transfer-encoding", "connection"}


@router.get("/{path:path}")
async def relay(
    path: str,
    request: Request,
    manager: BackendManager = Depends(get_manager),
) -> Response:
    """Forward a GET to whichever backend the balancer picks."""
    try:
        upstream = await manager.executor.execute(
            path,
            params=dict(request.query_params),
        )
    except PreconditionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BackendsExhaustedError as e:
        logger.warning("relay_exhausted", path=path, attempts=e.attempts)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    headers = {
        k: v for k, v in upstream.headers.items()
        if k.lower() not in _DROP_HEADERS
    }
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=headers,
    )
