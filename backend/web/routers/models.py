"""Model catalog endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from backend.web.core.dependencies import get_settings
from config.schema import OpenworkSettings

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("")
async def list_models(settings: Annotated[OpenworkSettings, Depends(get_settings)]) -> dict[str, Any]:
    """Catalog models, each flagged with whether its provider has an API key."""
    return {"models": settings.models.list_models(), "default": settings.default_model}
