"""
Health check and status API
"""
from fastapi import APIRouter, Request
from powerslides.config import settings
from powerslides.models.room import RelayStatusResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Liveness probe"""
    return {"ok": True}


@router.get("/api/status", response_model=RelayStatusResponse)
async def api_status(request: Request):
    """Aggregate relay status"""
    registry = request.app.state.registry
    return RelayStatusResponse(
        service_name=settings.SERVICE_NAME,
        version=settings.VERSION,
        rooms=registry.room_count,
        connections=registry.connection_count,
    )
