"""Wiring of the engine components shared by the HTTP surface and sleep mode."""

import logging
from dataclasses import dataclass

import httpx

from sleepchat.core.auth import SessionAuth
from sleepchat.core.errors import PlatformError
from sleepchat.core.events import EventChannel
from sleepchat.services.api_client import RateLimitedClient
from sleepchat.services.dedup import DedupTracker
from sleepchat.services.message_slots import MessageSlotSync
from sleepchat.services.platform_api import PlatformApi
from sleepchat.services.store import AppStore, DocumentStore, SettingsCache, create_store
from sleepchat.workers.sleep_mode import SleepMode

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    auth: SessionAuth
    client: RateLimitedClient
    api: PlatformApi
    app_store: AppStore
    settings_cache: SettingsCache
    dedup: DedupTracker
    events: EventChannel
    sleep_mode: SleepMode
    slots: MessageSlotSync

    @classmethod
    def create(
        cls,
        store: DocumentStore | None = None,
        auth: SessionAuth | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "Engine":
        auth = auth or SessionAuth.from_settings()
        client = RateLimitedClient(auth, http_client=http_client)
        api = PlatformApi(client)
        app_store = AppStore(store or create_store())
        settings_cache = SettingsCache(app_store)
        dedup = DedupTracker()
        events = EventChannel()

        return cls(
            auth=auth,
            client=client,
            api=api,
            app_store=app_store,
            settings_cache=settings_cache,
            dedup=dedup,
            events=events,
            sleep_mode=SleepMode(api, app_store, settings_cache, dedup, events),
            slots=MessageSlotSync(api, auth, app_store),
        )

    async def bind_session(self) -> bool:
        """Look up the session's user so slot and status calls know who we are."""
        if not self.auth.get_auth_headers():
            logger.warning("No session configured; sign in through the desktop app first")
            return False
        try:
            user = await self.api.get_current_user()
        except PlatformError as e:
            logger.warning(f"Could not load current user: {e}")
            return False
        self.auth.bind_user(user)
        return True

    async def shutdown(self) -> None:
        await self.sleep_mode.stop()
        await self.sleep_mode.join()
        await self.client.aclose()
