"""Persistent key-value documents: whitelist, settings, message slot cache.

Two backends share one interface:
- JsonFileStore: one pretty-printed JSON file per key under the data directory,
  the layout the desktop app has always used (settings.json, whitelist.json,
  message-slots.json).
- RedisStore: JSON values under ``sleepchat:doc:<key>`` for headless installs
  that already run Redis.

AppStore layers typed accessors and defaults on top of either backend.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import redis as sync_redis
from pydantic import ValidationError as SchemaValidationError

from sleepchat.config import SLOT_COUNT, settings
from sleepchat.schemas.message_slot import SlotCategory
from sleepchat.schemas.settings import AppSettings, AppSettingsUpdate

logger = logging.getLogger(__name__)

DOC_PREFIX = "sleepchat:doc:"

SETTINGS_KEY = "settings"
WHITELIST_KEY = "whitelist"
MESSAGE_SLOTS_KEY = "message-slots"


class DocumentStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...


class JsonFileStore(DocumentStore):
    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {path}, using defaults: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, indent=2), encoding="utf-8")
        tmp.replace(path)


class RedisStore(DocumentStore):
    def __init__(self, client: sync_redis.Redis):
        self.redis = client

    @classmethod
    def from_url(cls, url: str | None = None) -> "RedisStore":
        return cls(sync_redis.from_url(url or settings.redis_url))

    def get(self, key: str, default: Any = None) -> Any:
        raw = self.redis.get(f"{DOC_PREFIX}{key}")
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupt document {key} in Redis, using defaults: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        self.redis.set(f"{DOC_PREFIX}{key}", json.dumps(value))


def create_store() -> DocumentStore:
    if settings.store_backend == "redis":
        return RedisStore.from_url()
    return JsonFileStore(settings.data_dir)


def default_slot_cache() -> dict[str, list[str]]:
    return {category.value: [""] * SLOT_COUNT for category in SlotCategory}


def default_slot_cooldowns() -> dict[str, dict[int, int]]:
    return {category.value: {} for category in SlotCategory}


class AppStore:
    """Typed access to the documents the engine reads and writes."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- Whitelist ---

    def get_whitelist(self) -> list[str]:
        data = self.store.get(WHITELIST_KEY, [])
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, str)]

    def set_whitelist(self, entries: list[str]) -> list[str]:
        self.store.set(WHITELIST_KEY, list(entries))
        return list(entries)

    # --- Settings ---

    def get_settings(self) -> AppSettings:
        data = self.store.get(SETTINGS_KEY, {})
        if not isinstance(data, dict):
            data = {}
        # Merge over defaults so fields added in newer versions are always present
        merged = {**AppSettings().model_dump(mode="json"), **data}
        try:
            return AppSettings.model_validate(merged)
        except SchemaValidationError as e:
            logger.warning(f"Stored settings are invalid, using defaults: {e}")
            return AppSettings()

    def update_settings(self, update: AppSettingsUpdate) -> AppSettings:
        current = self.get_settings()
        changes = update.model_dump(exclude_none=True)
        merged = AppSettings.model_validate({**current.model_dump(), **changes})
        self.store.set(SETTINGS_KEY, merged.model_dump(mode="json"))
        return merged

    # --- Message slots ---

    def _slot_document(self) -> dict:
        data = self.store.get(MESSAGE_SLOTS_KEY, {})
        return data if isinstance(data, dict) else {}

    def get_slot_cache(self) -> dict[str, list[str]]:
        cache = default_slot_cache()
        stored = self._slot_document().get("slots") or {}
        for category, messages in stored.items():
            if category not in cache or not isinstance(messages, list):
                continue
            for index, message in enumerate(messages[:SLOT_COUNT]):
                cache[category][index] = message if isinstance(message, str) else ""
        return cache

    def get_slot_cooldowns(self) -> dict[str, dict[int, int]]:
        cooldowns = default_slot_cooldowns()
        stored = self._slot_document().get("cooldowns") or {}
        for category, slots in stored.items():
            if category not in cooldowns or not isinstance(slots, dict):
                continue
            for index, unlock in slots.items():
                try:
                    cooldowns[category][int(index)] = int(unlock)
                except (TypeError, ValueError):
                    continue
        return cooldowns

    def save_message_slots(
        self, cache: dict[str, list[str]], cooldowns: dict[str, dict[int, int]]
    ) -> None:
        self.store.set(
            MESSAGE_SLOTS_KEY,
            {
                "slots": cache,
                "cooldowns": {
                    category: {str(index): unlock for index, unlock in slots.items()}
                    for category, slots in cooldowns.items()
                },
            },
        )


class SettingsCache:
    """Short-lived cache of AppSettings so each poll tick doesn't hit the store."""

    def __init__(self, app_store: AppStore, ttl_seconds: float | None = None, clock=time.monotonic):
        self.app_store = app_store
        self.ttl_seconds = settings.settings_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._value: AppSettings | None = None
        self._loaded_at = 0.0

    def get(self) -> AppSettings:
        now = self._clock()
        if self._value is None or now - self._loaded_at >= self.ttl_seconds:
            self._value = self.app_store.get_settings()
            self._loaded_at = now
        return self._value

    def invalidate(self) -> None:
        self._value = None
