"""Tests for the rate-limited platform client."""

import httpx
import pytest

from sleepchat.core.auth import SessionAuth
from sleepchat.core.errors import (
    AuthError,
    NetworkError,
    PlatformError,
    RateLimitError,
    ServiceUnavailableError,
)
from sleepchat.services.api_client import RateLimitedClient
from tests.conftest import BASE_URL, error_body


class TestBuildUrl:
    def test_without_api_key(self, auth):
        client = RateLimitedClient(auth, base_url=BASE_URL, api_key="")
        assert client.build_url("/auth/user") == f"{BASE_URL}/auth/user"

    def test_api_key_with_question_mark(self, auth):
        client = RateLimitedClient(auth, base_url=BASE_URL, api_key="abc123")
        assert client.build_url("/auth/user") == f"{BASE_URL}/auth/user?apiKey=abc123"

    def test_api_key_appended_to_existing_query(self, auth):
        client = RateLimitedClient(auth, base_url=BASE_URL, api_key="abc123")
        url = client.build_url("/auth/user/notifications?n=50&offset=0")
        assert url == f"{BASE_URL}/auth/user/notifications?n=50&offset=0&apiKey=abc123"

    def test_api_key_is_url_encoded(self, auth):
        client = RateLimitedClient(auth, base_url=BASE_URL, api_key="a b/c&d")
        assert client.build_url("/x").endswith("?apiKey=a%20b%2Fc%26d")


class TestSend:
    @pytest.mark.asyncio
    async def test_returns_after_transient_rate_limits(self, rate_limited_client, sleeper):
        attempts = []

        async def request():
            attempts.append(1)
            if len(attempts) <= 2:
                raise RateLimitError("Too many requests")
            return "ok"

        result = await rate_limited_client.send(request, max_retries=3)

        assert result == "ok"
        assert len(attempts) == 3
        assert sleeper.delays == [1.0, 2.0]
        assert sum(sleeper.delays) == 3.0

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, rate_limited_client, sleeper):
        attempts = []
        errors = []

        async def request():
            attempts.append(1)
            error = RateLimitError("Too many requests")
            errors.append(error)
            raise error

        with pytest.raises(RateLimitError) as exc_info:
            await rate_limited_client.send(request, max_retries=3)

        assert len(attempts) == 3
        assert exc_info.value is errors[-1]
        assert sleeper.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_service_unavailable_is_retried(self, rate_limited_client, sleeper):
        attempts = []

        async def request():
            attempts.append(1)
            if len(attempts) == 1:
                raise ServiceUnavailableError("Maintenance")
            return {"ok": True}

        assert await rate_limited_client.send(request) == {"ok": True}
        assert sleeper.delays == [1.0]

    @pytest.mark.asyncio
    async def test_other_statuses_are_not_retried(self, rate_limited_client, sleeper):
        attempts = []
        error = PlatformError("Not found", 404)

        async def request():
            attempts.append(1)
            raise error

        with pytest.raises(PlatformError) as exc_info:
            await rate_limited_client.send(request)

        assert exc_info.value is error
        assert len(attempts) == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_errors_without_status_propagate_unchanged(self, rate_limited_client):
        async def request():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await rate_limited_client.send(request)


class TestRequestJson:
    @pytest.mark.asyncio
    async def test_sends_session_headers(self, rate_limited_client, platform):
        platform.on("GET", "/auth/user", (200, {"id": "usr_1"}))

        data = await rate_limited_client.request_json("GET", "/auth/user")

        assert data == {"id": "usr_1"}
        request = platform.requests[0]
        assert request.headers["Cookie"] == "auth=test-auth-cookie"
        assert request.headers["User-Agent"] == "sleepchat-tests"

    @pytest.mark.asyncio
    async def test_missing_session_fails_without_network(self, platform, sleeper):
        client = RateLimitedClient(
            SessionAuth(""), base_url=BASE_URL, api_key="", http_client=platform.http_client(), sleep=sleeper
        )

        with pytest.raises(AuthError):
            await client.request_json("GET", "/auth/user")

        assert platform.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unauthorized_maps_to_auth_error(self, rate_limited_client, platform):
        platform.on("GET", "/auth/user", (401, error_body("Missing Credentials", 401)))

        with pytest.raises(AuthError) as exc_info:
            await rate_limited_client.request_json("GET", "/auth/user")

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Missing Credentials"

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_succeeds(self, rate_limited_client, platform, sleeper):
        platform.on(
            "GET",
            "/auth/user",
            (429, error_body("Slow down", 429)),
            (200, {"id": "usr_1"}),
        )

        assert await rate_limited_client.request_json("GET", "/auth/user") == {"id": "usr_1"}
        assert len(platform.calls("GET", "/auth/user")) == 2
        assert sleeper.delays == [1.0]

    @pytest.mark.asyncio
    async def test_rate_limit_exhaustion_surfaces_error(self, rate_limited_client, platform):
        platform.on("GET", "/auth/user", (429, error_body("Slow down", 429)))

        with pytest.raises(RateLimitError) as exc_info:
            await rate_limited_client.request_json("GET", "/auth/user")

        assert exc_info.value.status == 429
        assert len(platform.calls("GET", "/auth/user")) == 3

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_network_error(self, rate_limited_client, platform):
        platform.on("GET", "/auth/user", httpx.ConnectError("connection refused"))

        with pytest.raises(NetworkError) as exc_info:
            await rate_limited_client.request_json("GET", "/auth/user")

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_undecodable_body_maps_to_network_error(self, rate_limited_client, platform, sleeper):
        platform.on("GET", "/auth/user", httpx.DecodingError("bad gzip"))

        with pytest.raises(NetworkError):
            await rate_limited_client.request_json("GET", "/auth/user")

        assert len(platform.calls("GET", "/auth/user")) == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_single_attempt_when_retries_disabled(self, rate_limited_client, platform, sleeper):
        platform.on("PUT", "/users/usr_1", (429, error_body("Slow down", 429)))

        with pytest.raises(RateLimitError):
            await rate_limited_client.request_json("PUT", "/users/usr_1", body={}, max_retries=1)

        assert len(platform.calls("PUT", "/users/usr_1")) == 1
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self, rate_limited_client, platform):
        platform.on("PUT", "/users/usr_1", lambda request: httpx.Response(500, text="Internal oops"))

        with pytest.raises(PlatformError) as exc_info:
            await rate_limited_client.request_json("PUT", "/users/usr_1", body={"status": "busy"})

        assert exc_info.value.status == 500
        assert exc_info.value.message == "Internal oops"

    @pytest.mark.asyncio
    async def test_empty_response_returns_none(self, rate_limited_client, platform):
        platform.on("PUT", "/auth/user/notifications/not_1/hide", lambda request: httpx.Response(200))

        assert await rate_limited_client.request_json("PUT", "/auth/user/notifications/not_1/hide") is None


class TestPaginate:
    @pytest.mark.asyncio
    async def test_stops_on_short_page(self, rate_limited_client, platform):
        pages = [
            [{"id": f"usr_{i}"} for i in range(100)],
            [{"id": f"usr_{i}"} for i in range(100, 200)],
            [{"id": f"usr_{i}"} for i in range(200, 230)],
        ]
        platform.on("GET", "/auth/user/friends", *[(200, page) for page in pages])

        items = await rate_limited_client.paginate("/auth/user/friends")

        assert len(items) == 230
        offsets = [r.url.params["offset"] for r in platform.calls("GET", "/auth/user/friends")]
        assert offsets == ["0", "100", "200"]
        assert all(r.url.params["n"] == "100" for r in platform.requests)

    @pytest.mark.asyncio
    async def test_empty_first_page(self, rate_limited_client, platform):
        platform.on("GET", "/auth/user/friends", (200, []))

        assert await rate_limited_client.paginate("/auth/user/friends") == []
        assert len(platform.requests) == 1
