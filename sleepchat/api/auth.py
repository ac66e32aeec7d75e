from fastapi import APIRouter, Depends

from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/status", summary="Session Status")
async def auth_status(engine: Engine = Depends(get_engine)):
    status = engine.auth.get_status()
    return {
        "authenticated": status.authenticated,
        "user_id": status.user_id,
        "display_name": status.display_name,
    }


@router.get("/user", summary="Current User")
async def current_user(engine: Engine = Depends(get_engine)):
    """Fetch the signed-in user from the platform and refresh the bound session."""
    user = await engine.api.get_current_user()
    engine.auth.bind_user(user)
    return user
