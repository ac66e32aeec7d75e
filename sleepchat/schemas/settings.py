from typing import Literal

from pydantic import BaseModel, Field

from sleepchat.config import SLOT_COUNT, STATUS_DESCRIPTION_MAX_LENGTH
from sleepchat.schemas.message_slot import SlotCategory

SleepStatus = Literal["none", "join me", "active", "ask me", "busy"]


class AppSettings(BaseModel):
    sleep_status: SleepStatus = "none"
    sleep_status_description: str = Field("", max_length=STATUS_DESCRIPTION_MAX_LENGTH)
    invite_message_slot: int = Field(0, ge=0, lt=SLOT_COUNT)
    invite_message_type: SlotCategory = SlotCategory.MESSAGE
    auto_status_enabled: bool = False
    invite_message_enabled: bool = False


class AppSettingsUpdate(BaseModel):
    sleep_status: SleepStatus | None = None
    sleep_status_description: str | None = Field(None, max_length=STATUS_DESCRIPTION_MAX_LENGTH)
    invite_message_slot: int | None = Field(None, ge=0, lt=SLOT_COUNT)
    invite_message_type: SlotCategory | None = None
    auto_status_enabled: bool | None = None
    invite_message_enabled: bool | None = None


class WhitelistUpdate(BaseModel):
    entries: list[str]


class FriendSelection(BaseModel):
    friend_ids: list[str] = Field(..., min_length=1)
