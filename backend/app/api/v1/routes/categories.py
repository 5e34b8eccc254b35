"""Incident category endpoints."""

from fastapi import APIRouter, Depends

from app.api.deps import get_navigation_service
from app.services.navigation import NavigationService

router = APIRouter()


@router.get("")
async def list_categories(
    service: NavigationService = Depends(get_navigation_service),
):
    """Known category ids and the set enabled when a client sends no filter."""
    return service.categories()
