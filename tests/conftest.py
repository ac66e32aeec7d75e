"""Test fixtures for the SleepChat engine."""

from collections.abc import Callable

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from sleepchat.core.auth import SessionAuth
from sleepchat.core.events import EventChannel
from sleepchat.engine import Engine
from sleepchat.main import create_app
from sleepchat.services.api_client import RateLimitedClient
from sleepchat.services.dedup import DedupTracker
from sleepchat.services.message_slots import MessageSlotSync
from sleepchat.services.platform_api import PlatformApi
from sleepchat.services.store import AppStore, JsonFileStore, SettingsCache
from sleepchat.workers.sleep_mode import SleepMode

BASE_URL = "https://api.test/api/1"
BASE_PATH = "/api/1"
USER_ID = "usr_sleeper-0001"
NOW_MS = 1_700_000_000_000


def error_body(message: str, status: int) -> dict:
    return {"error": {"message": message, "status_code": status}}


class FakePlatform:
    """Scripted platform API served through httpx.MockTransport.

    Each route holds a queue of replies: ``(status, json)`` tuples, callables
    taking the request and returning an ``httpx.Response``, or exceptions to
    raise. The last reply repeats once the queue is down to one.
    """

    def __init__(self):
        self._routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *replies) -> None:
        self._routes[(method, path)] = list(replies)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(BASE_PATH)
        queue = self._routes.get((request.method, path))
        if not queue:
            return httpx.Response(404, json=error_body("Not found", 404))

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        status, payload = reply
        return httpx.Response(status, json=payload)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path.removeprefix(BASE_PATH) == path
        ]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def auth() -> SessionAuth:
    session = SessionAuth("test-auth-cookie", user_agent="sleepchat-tests")
    session.bind_user({"id": USER_ID, "displayName": "Sleeper"})
    return session


@pytest.fixture
async def rate_limited_client(
    auth: SessionAuth, platform: FakePlatform, sleeper: SleepRecorder
) -> RateLimitedClient:
    client = RateLimitedClient(
        auth,
        base_url=BASE_URL,
        api_key="",
        max_retries=3,
        retry_base_delay_ms=1000,
        http_client=platform.http_client(),
        sleep=sleeper,
    )
    yield client
    await client.aclose()


@pytest.fixture
def platform_api(rate_limited_client: RateLimitedClient) -> PlatformApi:
    return PlatformApi(rate_limited_client)


@pytest.fixture
def app_store(tmp_path) -> AppStore:
    return AppStore(JsonFileStore(tmp_path))


@pytest.fixture
def settings_cache(app_store: AppStore) -> SettingsCache:
    return SettingsCache(app_store, ttl_seconds=0)


@pytest.fixture
def events() -> EventChannel:
    return EventChannel()


@pytest.fixture
def dedup() -> DedupTracker:
    return DedupTracker(notification_capacity=1000, sender_capacity=500)


@pytest.fixture
def sleep_mode(
    platform_api: PlatformApi,
    app_store: AppStore,
    settings_cache: SettingsCache,
    dedup: DedupTracker,
    events: EventChannel,
) -> SleepMode:
    return SleepMode(
        platform_api,
        app_store,
        settings_cache,
        dedup,
        events,
        poll_interval_ms=60_000,
        min_poll_interval_ms=10_000,
        cleanup_interval_ms=300_000,
        location_retry_limit=3,
    )


@pytest.fixture
def clock() -> Callable[[], int]:
    return lambda: NOW_MS


@pytest.fixture
def slot_sync(
    platform_api: PlatformApi,
    auth: SessionAuth,
    app_store: AppStore,
    sleeper: SleepRecorder,
    clock,
) -> MessageSlotSync:
    return MessageSlotSync(
        platform_api,
        auth,
        app_store,
        batch_size=3,
        batch_delay_ms=200,
        clock=clock,
        sleep=sleeper,
    )


@pytest.fixture
def engine(
    auth: SessionAuth,
    rate_limited_client: RateLimitedClient,
    platform_api: PlatformApi,
    app_store: AppStore,
    settings_cache: SettingsCache,
    dedup: DedupTracker,
    events: EventChannel,
    sleep_mode: SleepMode,
    slot_sync: MessageSlotSync,
) -> Engine:
    return Engine(
        auth=auth,
        client=rate_limited_client,
        api=platform_api,
        app_store=app_store,
        settings_cache=settings_cache,
        dedup=dedup,
        events=events,
        sleep_mode=sleep_mode,
        slots=slot_sync,
    )


@pytest.fixture
async def client(engine: Engine) -> AsyncClient:
    """HTTP client for the control surface with the test engine injected."""
    app = create_app(engine)
    # ASGITransport doesn't run the lifespan, so attach the engine directly
    app.state.engine = engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await engine.sleep_mode.stop()
    await engine.sleep_mode.join()
