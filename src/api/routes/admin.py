"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- simple health check
GET /api/v1/admin/sessions -- number of live passenger sessions
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_registry
from src.api.middleware import limiter
from src.api.schemas import HealthResponse
from src.api.sessions import SessionRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get("/sessions", summary="Count live passenger sessions")
@limiter.limit("100/minute")
async def live_sessions(
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
):
    return {"sessions": len(registry)}
