from fastapi import APIRouter, Depends

from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine
from sleepchat.schemas.settings import AppSettings, AppSettingsUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=AppSettings, summary="Get Settings")
async def get_settings(engine: Engine = Depends(get_engine)):
    return engine.app_store.get_settings()


@router.put("", response_model=AppSettings, summary="Update Settings")
async def update_settings(body: AppSettingsUpdate, engine: Engine = Depends(get_engine)):
    """Merge the given fields into the stored settings."""
    updated = engine.app_store.update_settings(body)
    engine.settings_cache.invalidate()
    return updated
