from typing import Annotated

from fastapi import APIRouter, Depends, Path

from sleepchat.config import SLOT_COUNT
from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine
from sleepchat.schemas.message_slot import (
    CooldownOverrideRequest,
    SlotCategory,
    SlotResult,
    SlotWriteRequest,
)

router = APIRouter(prefix="/messages", tags=["messages"])

SlotIndex = Annotated[int, Path(ge=0, lt=SLOT_COUNT)]


@router.get("/cached", summary="Cached Message Slots")
async def cached_slots(engine: Engine = Depends(get_engine)):
    return engine.slots.get_cached_slots()


@router.get("/cooldowns", summary="Message Slot Cooldowns")
async def slot_cooldowns(engine: Engine = Depends(get_engine)):
    """Unlock timestamps (epoch ms) per category and slot; 0 means unlocked."""
    return engine.slots.get_slot_cooldowns()


@router.get("/{slot_type}", response_model=list[SlotResult], summary="Fetch All Slots")
async def fetch_all_slots(slot_type: SlotCategory, engine: Engine = Depends(get_engine)):
    return await engine.slots.fetch_all_slots(slot_type)


@router.get("/{slot_type}/{slot}", response_model=SlotResult, summary="Fetch Slot")
async def fetch_slot(
    slot_type: SlotCategory,
    slot: SlotIndex,
    engine: Engine = Depends(get_engine),
):
    return await engine.slots.fetch_slot(slot_type, slot)


@router.put("/{slot_type}/{slot}", response_model=list[SlotResult], summary="Write Slot")
async def write_slot(
    body: SlotWriteRequest,
    slot_type: SlotCategory,
    slot: SlotIndex,
    engine: Engine = Depends(get_engine),
):
    return await engine.slots.write_slot(slot_type, slot, body.message)


@router.put("/{slot_type}/{slot}/cooldown", summary="Override Slot Cooldown")
async def override_cooldown(
    body: CooldownOverrideRequest,
    slot_type: SlotCategory,
    slot: SlotIndex,
    engine: Engine = Depends(get_engine),
):
    engine.slots.set_cooldown_override(slot_type, slot, body.unlock_timestamp)
    return {"ok": True}
