"""Public client configuration."""
from fastapi import APIRouter, Depends

from core.config import Settings, get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/firebase")
async def get_firebase_config(
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    """Firebase web SDK configuration. These values are public by design of Firebase."""
    return settings.public_firebase_config()
