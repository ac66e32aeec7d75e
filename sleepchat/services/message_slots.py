"""Message slot cache and cooldown tracking.

Architecture notes:
- The platform keeps 12 canned-message slots per category and rate-limits
  rewrites per slot. We keep a local copy of every slot's text plus an unlock
  timestamp (epoch ms, 0 = unlocked) so the UI can show a countdown without
  asking the server every second.
- Smart sync: the server reports whole remaining minutes, which tick over at
  its own minute boundary. Overwriting our timestamp on every fetch would make
  a running countdown jump back and forth, so a server figure is only applied
  when it disagrees with ours by more than a minute, when it reveals a lock we
  didn't know about, or when it confirms "unlocked" for a slot we have never
  recorded.
- A 429 on write usually says how long to wait ("wait N more minutes"). We
  record N + 1 minutes so sub-minute rounding can't unlock us early.
- State is replaced, never mutated in place, and readers get copies, so a
  reader never sees a half-applied update.
"""

import asyncio
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable

from sleepchat.config import SLOT_COUNT, SLOT_MESSAGE_MAX_LENGTH, settings
from sleepchat.core.auth import AuthProvider
from sleepchat.core.errors import AuthError, PlatformError, RateLimitError, ValidationError
from sleepchat.schemas.message_slot import SlotCategory, SlotResult
from sleepchat.services.platform_api import PlatformApi
from sleepchat.services.store import AppStore

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000

COOLDOWN_MESSAGE_RE = re.compile(r"wait (\d+) more minute", re.IGNORECASE)


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_wait_minutes(text: str | None) -> int | None:
    """Extract N from a "wait N more minutes" rate-limit message."""
    if not text:
        return None
    match = COOLDOWN_MESSAGE_RE.search(text)
    return int(match.group(1)) if match else None


def validate_slot(category: SlotCategory | str, index: int) -> tuple[SlotCategory, int]:
    try:
        category = SlotCategory(category)
    except ValueError as e:
        raise ValidationError(f"Unknown message slot type: {category}") from e
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < SLOT_COUNT:
        raise ValidationError(f"Slot index must be between 0 and {SLOT_COUNT - 1}, got {index!r}")
    return category, index


class MessageSlotSync:
    def __init__(
        self,
        api: PlatformApi,
        auth: AuthProvider,
        app_store: AppStore,
        *,
        batch_size: int | None = None,
        batch_delay_ms: int | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.auth = auth
        self.app_store = app_store
        self.batch_size = max(batch_size or settings.message_batch_size, 1)
        self.batch_delay_ms = settings.batch_delay_ms if batch_delay_ms is None else batch_delay_ms
        self._clock = clock
        self._sleep = sleep

        self._cache = app_store.get_slot_cache()
        self._cooldowns = app_store.get_slot_cooldowns()

    # --- Snapshots ---

    def get_cached_slots(self) -> dict[str, list[str]]:
        return {category: list(messages) for category, messages in self._cache.items()}

    def get_slot_cooldowns(self) -> dict[str, dict[int, int]]:
        return {category: dict(slots) for category, slots in self._cooldowns.items()}

    def remaining_minutes(self, category: SlotCategory | str, index: int) -> int:
        category, index = validate_slot(category, index)
        unlock = self._cooldowns[category.value].get(index, 0)
        now = self._clock()
        return math.ceil((unlock - now) / MINUTE_MS) if unlock > now else 0

    # --- State updates ---

    def _set_message(self, category: SlotCategory, index: int, message: str) -> None:
        messages = list(self._cache[category.value])
        messages[index] = message
        self._cache = {**self._cache, category.value: messages}

    def _set_unlock(self, category: SlotCategory, index: int, unlock_timestamp: int) -> None:
        slots = {**self._cooldowns[category.value], index: unlock_timestamp}
        self._cooldowns = {**self._cooldowns, category.value: slots}

    def _persist(self) -> None:
        self.app_store.save_message_slots(self._cache, self._cooldowns)

    def _sync(self, category: SlotCategory, index: int, server_minutes: int) -> bool:
        now = self._clock()
        recorded = self._cooldowns[category.value]
        unlock = recorded.get(index, 0)
        local_minutes = math.ceil((unlock - now) / MINUTE_MS) if unlock > now else 0
        server_minutes = max(int(server_minutes), 0)

        drifted = abs(local_minutes - server_minutes) > 1
        newly_locked = local_minutes == 0 and server_minutes > 0
        first_seen_unlocked = server_minutes == 0 and index not in recorded

        if not (drifted or newly_locked or first_seen_unlocked):
            return False

        new_unlock = now + server_minutes * MINUTE_MS if server_minutes > 0 else 0
        self._set_unlock(category, index, new_unlock)
        logger.debug(
            f"Cooldown {category.value}[{index}] local={local_minutes}m server={server_minutes}m -> {new_unlock}"
        )
        return True

    def sync_cooldown(self, category: SlotCategory | str, index: int, server_minutes: int) -> bool:
        """Apply a server-reported cooldown if it differs meaningfully from ours."""
        category, index = validate_slot(category, index)
        updated = self._sync(category, index, server_minutes)
        if updated:
            self._persist()
        return updated

    def set_cooldown_override(
        self, category: SlotCategory | str, index: int, unlock_timestamp: int
    ) -> None:
        category, index = validate_slot(category, index)
        self._set_unlock(category, index, max(int(unlock_timestamp), 0))
        self._persist()

    # --- Remote operations ---

    def _user_id(self) -> str:
        status = self.auth.get_status()
        if not status.authenticated or not status.user_id:
            raise AuthError("Not authenticated")
        return status.user_id

    def _apply(self, result: SlotResult, category: SlotCategory) -> None:
        self._set_message(category, result.index, result.message)
        if result.cooldown_reported:
            self._sync(category, result.index, result.remaining_cooldown_minutes)

    async def fetch_slot(self, category: SlotCategory | str, index: int) -> SlotResult:
        category, index = validate_slot(category, index)
        raw = await self.api.get_message_slot(self._user_id(), category, index)

        result = SlotResult.from_response(raw, index)
        self._apply(result, category)
        self._persist()
        return result

    async def _fetch_or_none(self, user_id: str, category: SlotCategory, index: int) -> SlotResult | None:
        try:
            raw = await self.api.get_message_slot(user_id, category, index)
        except PlatformError as e:
            logger.warning(f"Error fetching {category.value} slot {index}: {e}")
            return None
        return SlotResult.from_response(raw, index)

    async def fetch_all_slots(self, category: SlotCategory | str) -> list[SlotResult]:
        """Fetch all 12 slots of a category, a few at a time.

        A slot that fails to load comes back empty and leaves its cached text
        and cooldown untouched.
        """
        category, _ = validate_slot(category, 0)
        user_id = self._user_id()
        results: list[SlotResult] = []

        for start in range(0, SLOT_COUNT, self.batch_size):
            indices = list(range(start, min(start + self.batch_size, SLOT_COUNT)))
            batch = await asyncio.gather(
                *(self._fetch_or_none(user_id, category, index) for index in indices)
            )

            for index, result in zip(indices, batch):
                if result is None:
                    results.append(SlotResult.empty(index))
                    continue
                self._apply(result, category)
                results.append(result)

            if start + self.batch_size < SLOT_COUNT and self.batch_delay_ms > 0:
                await self._sleep(self.batch_delay_ms / 1000)

        self._persist()
        return sorted(results, key=lambda r: r.index)

    async def write_slot(self, category: SlotCategory | str, index: int, text: str) -> list[SlotResult]:
        """Rewrite one slot. Returns the category's 12 slots after the write.

        On a rate-limit failure that names the remaining wait, the slot is
        marked locked locally before the error is re-raised.
        """
        category, index = validate_slot(category, index)
        if not isinstance(text, str) or len(text) > SLOT_MESSAGE_MAX_LENGTH:
            raise ValidationError(f"Slot text must be at most {SLOT_MESSAGE_MAX_LENGTH} characters")
        user_id = self._user_id()

        try:
            # A cooldown 429 won't clear within the backoff window, so no retries
            raw = await self.api.put_message_slot(user_id, category, index, text, max_retries=1)
        except RateLimitError as e:
            minutes = parse_wait_minutes(e.message)
            if minutes is not None:
                self._set_unlock(category, index, self._clock() + (minutes + 1) * MINUTE_MS)
                self._persist()
                logger.info(
                    f"{category.value} slot {index} locked for {minutes + 1} more minutes",
                    extra={"slot_type": category.value, "slot": index},
                )
            raise

        if isinstance(raw, list):
            for item in raw:
                if not isinstance(item, dict):
                    continue
                slot = item.get("slot")
                if isinstance(slot, int) and not isinstance(slot, bool) and 0 <= slot < SLOT_COUNT:
                    self._apply(SlotResult.from_response(item, slot), category)
        else:
            self._set_message(category, index, text)

        self._persist()
        logger.info(
            f"Updated {category.value} slot {index}",
            extra={"slot_type": category.value, "slot": index},
        )

        messages = self._cache[category.value]
        return [
            SlotResult(
                index=i,
                message=messages[i],
                remaining_cooldown_minutes=self.remaining_minutes(category, i),
            )
            for i in range(SLOT_COUNT)
        ]
