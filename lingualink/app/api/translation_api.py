############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# translation_api.py: Translation endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Translation API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from lingualink.app.api.deps import get_translator
from lingualink.app.services.translation import (
    SUPPORTED_LANGUAGES,
    TranslationClient,
    detect_language,
)

router = APIRouter()


class TranslateRequest(BaseModel):
    """Request to translate one message."""
    text: str
    target_lang: str = Field(..., min_length=1)
    source_lang: str = "auto"


class DetectRequest(BaseModel):
    text: str = Field(..., min_length=1)


@router.post("/translate")
async def translate(
    request: TranslateRequest,
    translator: TranslationClient = Depends(get_translator),
):
    """
    Translate text.

    Input problems answer 400; provider exhaustion answers 502 with the
    same structured failure body, so clients can degrade gracefully.
    """
    result = await translator.translate(
        request.text, request.target_lang, request.source_lang
    )
    if result.success:
        return result.to_dict()

    code = (
        status.HTTP_400_BAD_REQUEST
        if result.error_type == "precondition"
        else status.HTTP_502_BAD_GATEWAY
    )
    return JSONResponse(status_code=code, content=result.to_dict())


@router.get("/languages")
async def list_languages() -> Dict[str, Any]:
    return {"languages": SUPPORTED_LANGUAGES, "count": len(SUPPORTED_LANGUAGES)}


@router.post("/detect")
async def detect(request: DetectRequest) -> Dict[str, str]:
    return {"language": detect_language(request.text)}


@router.get("/history")
async def history(
    limit: int = Query(50, ge=1, le=500),
    translator: TranslationClient = Depends(get_translator),
) -> Dict[str, Any]:
    """Recent successful translations, newest first."""
    entries = translator.history.recent(limit)
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}


@router.get("/accounts")
async def accounts(
    translator: TranslationClient = Depends(get_translator),
) -> Dict[str, Any]:
    """Configured provider accounts (labels only)."""
    if not translator.pool.labels:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No translation accounts configured",
        )
    return {
        "accounts": translator.pool.labels,
        "next_index": translator.pool.current_index,
    }
