from fastapi import APIRouter, Depends

from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine
from sleepchat.schemas.notification import Friend

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("", response_model=list[Friend], summary="List Friends")
async def list_friends(engine: Engine = Depends(get_engine)):
    return await engine.api.get_friends()
