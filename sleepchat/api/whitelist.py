import logging

from fastapi import APIRouter, Depends

from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine
from sleepchat.schemas.settings import FriendSelection, WhitelistUpdate
from sleepchat.services.whitelist import merge_entries, normalize_entries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whitelist", tags=["whitelist"])


@router.get("", response_model=list[str], summary="Get Whitelist")
async def get_whitelist(engine: Engine = Depends(get_engine)):
    return engine.app_store.get_whitelist()


@router.put("", response_model=list[str], summary="Replace Whitelist")
async def set_whitelist(body: WhitelistUpdate, engine: Engine = Depends(get_engine)):
    return engine.app_store.set_whitelist(normalize_entries(body.entries))


@router.post("/friends", summary="Add Friends To Whitelist")
async def add_friends(body: FriendSelection, engine: Engine = Depends(get_engine)):
    """Add the display names of the selected friends to the whitelist."""
    friends = await engine.api.get_friends()
    selected = set(body.friend_ids)
    names = [f.display_name for f in friends if f.id in selected and f.display_name]

    merged, added = merge_entries(engine.app_store.get_whitelist(), names)
    engine.app_store.set_whitelist(merged)
    logger.info(f"Added {len(added)} friend(s) to whitelist")
    return {"whitelist": merged, "added": added}
