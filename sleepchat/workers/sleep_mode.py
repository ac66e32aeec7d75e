"""Sleep mode: answer invite requests from whitelisted senders while the user is away.

Architecture notes:
- One asyncio task per running session. The loop is strictly sequential
  (tick, then wait), and poll_once() also refuses to start while a previous
  tick still holds the tick lock, so two ticks never touch the dedup sets or
  the poll state at the same time, even across a quick stop()/start().
- stop() only signals the loop. A tick already in flight finishes; no new
  tick starts afterwards.
- Failure isolation: an error on one notification is logged and the cycle
  moves on. Failing to list notifications, or losing the session, ends that
  cycle early and is recorded in status(); the next tick starts from scratch.
- Non-whitelisted requests are recorded as handled straight away. Requests
  that fail only because the user isn't in a world stay pending and are
  retried on later cycles, up to location_retry_limit attempts.
- Once an invite has gone out the notification and sender are recorded as
  handled even if hiding the notification fails, so we never invite twice.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from sleepchat.config import settings
from sleepchat.core.errors import AuthError, LocationUnresolved, PlatformError
from sleepchat.core.events import EventChannel
from sleepchat.logging_config import log_context
from sleepchat.schemas.notification import InviteNotification
from sleepchat.schemas.settings import AppSettings
from sleepchat.services.dedup import DedupTracker
from sleepchat.services.platform_api import PlatformApi
from sleepchat.services.store import AppStore, SettingsCache
from sleepchat.services.whitelist import is_whitelisted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollState:
    running: bool = False
    last_poll_at: datetime | None = None
    last_error: str | None = None


class SleepMode:
    def __init__(
        self,
        api: PlatformApi,
        app_store: AppStore,
        settings_cache: SettingsCache,
        dedup: DedupTracker,
        events: EventChannel,
        *,
        poll_interval_ms: int | None = None,
        min_poll_interval_ms: int | None = None,
        cleanup_interval_ms: int | None = None,
        location_retry_limit: int | None = None,
        clock=time.monotonic,
    ):
        self.api = api
        self.app_store = app_store
        self.settings_cache = settings_cache
        self.dedup = dedup
        self.events = events

        requested = poll_interval_ms or settings.poll_interval_ms
        floor = settings.min_poll_interval_ms if min_poll_interval_ms is None else min_poll_interval_ms
        self.interval_ms = max(requested, floor)
        self.cleanup_interval_ms = cleanup_interval_ms or settings.cleanup_interval_ms
        self.location_retry_limit = (
            settings.location_retry_limit if location_retry_limit is None else location_retry_limit
        )

        self._clock = clock
        self._state = PollState()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._tick_lock = asyncio.Lock()
        self._location_attempts: dict[str, int] = {}
        self._last_cleanup = clock()

    # --- Lifecycle ---

    def status(self) -> PollState:
        return self._state

    async def start(self) -> PollState:
        if self._state.running:
            logger.debug("Sleep mode already running")
            return self._state

        self._stop_event = asyncio.Event()
        self._state = replace(self._state, running=True, last_error=None)
        self._task = asyncio.create_task(self._run(self._stop_event), name="sleep-mode")

        logger.info(f"Sleep mode started (every {self.interval_ms}ms)")
        self.events.publish("sleep_started", "Sleep mode enabled", interval_ms=self.interval_ms)
        return self._state

    async def stop(self) -> PollState:
        if not self._state.running:
            return self._state

        self._state = replace(self._state, running=False)
        if self._stop_event is not None:
            self._stop_event.set()

        logger.info("Sleep mode stopped")
        self.events.publish("sleep_stopped", "Sleep mode disabled")
        return self._state

    async def join(self) -> None:
        """Wait for the loop (and any in-flight tick) to finish after stop()."""
        if self._task is not None:
            await self._task

    async def _run(self, stop_event: asyncio.Event) -> None:
        await self._apply_sleep_status()

        while not stop_event.is_set():
            try:
                await self.poll_once()
                self._maybe_cleanup()
            except Exception as e:
                logger.exception("Unexpected error in sleep mode loop")
                self._record_failure(e, "Sleep mode tick failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_ms / 1000)
            except TimeoutError:
                pass

    def _maybe_cleanup(self) -> None:
        now = self._clock()
        if (now - self._last_cleanup) * 1000 >= self.cleanup_interval_ms:
            self.dedup.cleanup()
            self._last_cleanup = now

    async def _apply_sleep_status(self) -> None:
        """Set the configured sleep status. Never fatal: polling starts regardless."""
        try:
            app_settings = self.settings_cache.get()
            if not app_settings.auto_status_enabled or app_settings.sleep_status == "none":
                return

            user = await self.api.get_current_user()
            await self.api.update_status(
                user.get("id"), app_settings.sleep_status, app_settings.sleep_status_description
            )
        except PlatformError as e:
            logger.warning(f"Failed to set sleep status: {e}")
            return
        except Exception:
            logger.exception("Unexpected error while setting sleep status")
            return

        self.events.publish(
            "status_updated",
            f"Status set to {app_settings.sleep_status}",
            status=app_settings.sleep_status,
        )

    # --- Poll cycle ---

    async def poll_once(self) -> PollState:
        """Run a single poll cycle. Skipped if a previous cycle is still running."""
        if self._tick_lock.locked():
            logger.debug("Previous poll still in flight, skipping tick")
            return self._state

        async with self._tick_lock:
            try:
                await self._poll_cycle()
            except AuthError as e:
                self._record_failure(e, "Session invalid")
            except Exception as e:
                logger.exception("Unexpected error during poll cycle")
                self._record_failure(e, "Poll cycle failed")

        return self._state

    def _record_failure(self, error: Exception, context: str) -> None:
        self._state = replace(self._state, last_error=str(error))
        logger.warning(f"{context}: {error}")
        self.events.publish("poll_failed", f"{context}: {error}")

    async def _poll_cycle(self) -> None:
        whitelist = self.app_store.get_whitelist()
        app_settings = self.settings_cache.get()

        try:
            notifications = await self.api.list_invite_notifications()
        except AuthError:
            raise
        except PlatformError as e:
            self._record_failure(e, "Failed to fetch invite requests")
            return

        invited_this_cycle: set[str] = set()
        pending = 0

        for notification in notifications:
            if notification.id in self.dedup.notifications:
                continue

            pending += 1
            name = notification.sender_display_name or notification.sender_id
            with log_context(notification_id=notification.id, sender_id=notification.sender_id):
                try:
                    await self._handle(notification, whitelist, app_settings, invited_this_cycle)
                except LocationUnresolved as e:
                    self._on_location_unresolved(notification, e)
                except AuthError:
                    raise
                except PlatformError as e:
                    logger.warning(f"Failed to handle invite request {notification.id} from {name}: {e}")
                    self._publish_invite_failed(notification, name, e)
                except Exception as e:
                    logger.exception(f"Unexpected error handling invite request {notification.id} from {name}")
                    self._publish_invite_failed(notification, name, e)

        # Forget retry counters for notifications that are gone from the server
        listed = {n.id for n in notifications}
        for notification_id in list(self._location_attempts):
            if notification_id not in listed:
                del self._location_attempts[notification_id]

        self._state = replace(self._state, last_poll_at=datetime.now(UTC), last_error=None)
        if pending:
            logger.debug(f"Poll cycle handled {pending}/{len(notifications)} invite requests")

    async def _handle(
        self,
        notification: InviteNotification,
        whitelist: list[str],
        app_settings: AppSettings,
        invited_this_cycle: set[str],
    ) -> None:
        name = notification.sender_display_name or notification.sender_id

        if not is_whitelisted(whitelist, notification.sender_id, notification.sender_display_name):
            self.dedup.notifications.add(notification.id)
            logger.info(f"Ignoring invite request from {name} (not whitelisted)")
            self.events.publish(
                "request_ignored",
                f"Ignored invite request from {name}",
                notification_id=notification.id,
                sender_id=notification.sender_id,
            )
            return

        if notification.sender_id not in invited_this_cycle:
            invite_kwargs = {}
            if app_settings.invite_message_enabled:
                invite_kwargs = {
                    "message_slot": app_settings.invite_message_slot,
                    "message_type": app_settings.invite_message_type,
                }
            await self.api.send_invite(notification.sender_id, **invite_kwargs)
            invited_this_cycle.add(notification.sender_id)
            self._location_attempts.pop(notification.id, None)
            self.events.publish(
                "invite_sent",
                f"Invited {name}",
                notification_id=notification.id,
                sender_id=notification.sender_id,
            )

        try:
            await self.api.hide_notification(notification.id)
        except PlatformError as e:
            logger.warning(f"Invite sent but failed to hide notification {notification.id}: {e}")
        finally:
            self.dedup.mark_handled(notification.id, notification.sender_id)

    def _publish_invite_failed(self, notification: InviteNotification, name: str, error: Exception) -> None:
        self.events.publish(
            "invite_failed",
            f"Failed to invite {name}: {error}",
            notification_id=notification.id,
        )

    def _on_location_unresolved(self, notification: InviteNotification, error: LocationUnresolved) -> None:
        name = notification.sender_display_name or notification.sender_id
        attempts = self._location_attempts.get(notification.id, 0) + 1

        if self.location_retry_limit and attempts >= self.location_retry_limit:
            self._location_attempts.pop(notification.id, None)
            self.dedup.notifications.add(notification.id)
            logger.warning(
                f"Giving up on invite request from {name} after {attempts} attempts: {error}"
            )
            self.events.publish(
                "invite_abandoned",
                f"Gave up inviting {name}: not in a world",
                notification_id=notification.id,
            )
            return

        self._location_attempts[notification.id] = attempts
        logger.info(f"Leaving invite request from {name} pending (attempt {attempts}): {error}")
        self.events.publish(
            "location_unresolved",
            f"Could not invite {name}: not in a world, will retry",
            notification_id=notification.id,
            attempts=attempts,
        )
