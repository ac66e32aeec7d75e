import enum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from sleepchat.config import SLOT_COUNT, SLOT_MESSAGE_MAX_LENGTH


class SlotCategory(str, enum.Enum):
    MESSAGE = "message"
    RESPONSE = "response"
    REQUEST = "request"
    REQUEST_RESPONSE = "requestResponse"


class SlotResult(BaseModel):
    index: int = Field(..., ge=0, lt=SLOT_COUNT)
    message: str = ""
    remaining_cooldown_minutes: int = 0

    # False when the response carried no cooldown figure (e.g. a bare string)
    _cooldown_reported: bool = PrivateAttr(default=False)

    @property
    def cooldown_reported(self) -> bool:
        return self._cooldown_reported

    @classmethod
    def empty(cls, index: int) -> "SlotResult":
        return cls(index=index)

    @classmethod
    def from_response(cls, raw: Any, index: int) -> "SlotResult":
        """Normalise whatever the slot endpoint returned into a SlotResult.

        The endpoint answers with a bare string, a single slot object, or the
        full list of slots for the category depending on the request.
        """
        if isinstance(raw, list):
            for item in raw:
                if isinstance(item, dict) and _as_int(item.get("slot"), -1) == index:
                    return cls.from_response(item, index)
            return cls.empty(index)

        if isinstance(raw, str):
            return cls(index=index, message=raw)

        if isinstance(raw, dict):
            message = raw.get("message")
            minutes = raw.get("remainingCooldownMinutes")
            result = cls(
                index=index,
                message=message if isinstance(message, str) else "",
                remaining_cooldown_minutes=max(_as_int(minutes, 0), 0),
            )
            result._cooldown_reported = isinstance(minutes, (int, float)) and not isinstance(minutes, bool)
            return result

        return cls.empty(index)


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return default


class SlotWriteRequest(BaseModel):
    message: str = Field(..., max_length=SLOT_MESSAGE_MAX_LENGTH)


class CooldownOverrideRequest(BaseModel):
    unlock_timestamp: int = Field(..., ge=0)
