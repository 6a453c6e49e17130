from __future__ import annotations

from fastapi import APIRouter

from analysis_client.application import get_analysis_service

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
async def get_dashboard() -> dict:
    """Quota counters and recent requests of the signed-in user."""
    service = get_analysis_service()
    data = await service.dashboard()
    return data.model_dump(mode="json")
