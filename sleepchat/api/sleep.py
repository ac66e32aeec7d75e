from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sleepchat.core.dependencies import get_engine
from sleepchat.engine import Engine
from sleepchat.workers.sleep_mode import PollState

router = APIRouter(prefix="/sleep", tags=["sleep"])


class SleepStatusResponse(BaseModel):
    running: bool
    last_poll_at: datetime | None
    last_error: str | None
    handled_notifications: int
    handled_senders: int


class EventResponse(BaseModel):
    kind: str
    message: str
    data: dict
    timestamp: datetime


def _status(engine: Engine, state: PollState) -> SleepStatusResponse:
    counts = engine.dedup.counts()
    return SleepStatusResponse(
        running=state.running,
        last_poll_at=state.last_poll_at,
        last_error=state.last_error,
        handled_notifications=counts["notifications"],
        handled_senders=counts["senders"],
    )


@router.post("/start", response_model=SleepStatusResponse, summary="Start Sleep Mode")
async def start_sleep(engine: Engine = Depends(get_engine)):
    return _status(engine, await engine.sleep_mode.start())


@router.post("/stop", response_model=SleepStatusResponse, summary="Stop Sleep Mode")
async def stop_sleep(engine: Engine = Depends(get_engine)):
    return _status(engine, await engine.sleep_mode.stop())


@router.get("/status", response_model=SleepStatusResponse, summary="Sleep Mode Status")
async def sleep_status(engine: Engine = Depends(get_engine)):
    return _status(engine, engine.sleep_mode.status())


@router.get("/events", response_model=list[EventResponse], summary="Recent Sleep Mode Events")
async def recent_events(
    limit: int = Query(50, ge=1, le=200),
    engine: Engine = Depends(get_engine),
):
    return [
        EventResponse(kind=e.kind, message=e.message, data=e.data, timestamp=e.timestamp)
        for e in engine.events.recent(limit)
    ]
