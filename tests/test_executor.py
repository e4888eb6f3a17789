"""Tests for request execution and outcome classification."""

import asyncio

import pytest
from conftest import FakeTransport, SentRequest, fail, ok

from tagsync import (
    ClientError,
    EndpointRegistry,
    MemoryCredentialStore,
    NetworkError,
    RequestExecutor,
    ServerUnavailable,
    TransientError,
    TransportResponse,
    Unauthenticated,
)


@pytest.fixture
def user_info(registry: EndpointRegistry):
    return registry.resolve("userInfo")


def refresh_ok(transport: FakeTransport, token: str = "access-2") -> None:
    transport.reply("POST", "/auth/refresh-token", ok({"accessToken": token}))


class TestClassification:
    """Tests for status code classification."""

    async def test_success_returns_body_with_bearer(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        """Test that 2xx returns the raw body and the token is attached."""
        transport.reply("GET", "/user/me", ok({"name": "Rahim"}))

        body = await executor.execute(user_info, None)

        assert body["data"] == {"name": "Rahim"}
        assert transport.calls[0].headers["Authorization"] == "Bearer access-1"

    async def test_no_token_no_header(
        self, transport: FakeTransport, registry: EndpointRegistry
    ) -> None:
        """Test that requests go out unauthenticated without a credential."""
        executor = RequestExecutor(transport)
        transport.reply("POST", "/otp/send", ok())

        await executor.execute(registry.resolve("sendOtp"), {"email": "a@b.c"})

        assert "Authorization" not in transport.calls[0].headers
        assert transport.calls[0].body == {"email": "a@b.c"}

    async def test_client_error_carries_message(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        """Test that 4xx surfaces ClientError with the backend message."""
        transport.reply("GET", "/user/me", fail(404, "User not found"))

        with pytest.raises(ClientError) as exc_info:
            await executor.execute(user_info, None)

        assert exc_info.value.status == 404
        assert exc_info.value.message == "User not found"

    async def test_client_error_without_message(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        transport.reply("GET", "/user/me", TransportResponse(422, None))

        with pytest.raises(ClientError) as exc_info:
            await executor.execute(user_info, None)

        assert exc_info.value.message == "HTTP 422"

    async def test_server_error_is_transient(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        transport.reply("GET", "/user/me", fail(503))

        with pytest.raises(TransientError) as exc_info:
            await executor.execute(user_info, None)

        assert exc_info.value.status == 503

    async def test_params_are_forwarded(
        self, executor: RequestExecutor, transport: FakeTransport, registry
    ) -> None:
        transport.reply("GET", "/tour", ok([]))

        await executor.execute(registry.resolve("getAllTours"), {"division": "d1"})

        assert transport.calls[0].params == {"division": "d1"}


class TestRetry:
    """Tests for execute_with_retry."""

    async def test_transient_then_success(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        transport.reply("GET", "/user/me", fail(500), ok({"name": "Rahim"}))

        body = await executor.execute_with_retry(user_info, None)

        assert body["data"] == {"name": "Rahim"}
        assert len(transport.calls) == 2

    async def test_network_errors_are_retried(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        transport.reply("GET", "/user/me", NetworkError("refused"), ok({}))

        await executor.execute_with_retry(user_info, None)

        assert len(transport.calls) == 2

    async def test_cap_surfaces_server_unavailable(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        """Test that the attempt cap turns transient errors into ServerUnavailable."""
        transport.reply("GET", "/user/me", fail(502))

        with pytest.raises(ServerUnavailable) as exc_info:
            await executor.execute_with_retry(user_info, None)

        assert exc_info.value.attempts == 3
        assert len(transport.calls) == 3

    async def test_client_errors_are_not_retried(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        transport.reply("GET", "/user/me", fail(400))

        with pytest.raises(ClientError):
            await executor.execute_with_retry(user_info, None)

        assert len(transport.calls) == 1

    def test_max_attempts_validated(self, transport: FakeTransport) -> None:
        with pytest.raises(ValueError):
            RequestExecutor(transport, max_attempts=0)


class TestUnauthorized:
    """Tests for the 401 refresh-and-retry path."""

    async def test_refresh_then_retry_succeeds(
        self,
        executor: RequestExecutor,
        transport: FakeTransport,
        credentials: MemoryCredentialStore,
        user_info,
    ) -> None:
        """Test that one 401 triggers a silent refresh and a retry."""
        transport.reply("GET", "/user/me", fail(401), ok({"name": "Rahim"}))
        refresh_ok(transport)

        body = await executor.execute(user_info, None)

        assert body["data"] == {"name": "Rahim"}
        assert [c.path for c in transport.calls] == [
            "/user/me",
            "/auth/refresh-token",
            "/user/me",
        ]
        assert transport.calls[1].body == {"refreshToken": "refresh-1"}
        assert transport.calls[2].headers["Authorization"] == "Bearer access-2"
        assert credentials.get_token() == "access-2"

    async def test_second_401_is_unauthenticated(
        self,
        executor: RequestExecutor,
        transport: FakeTransport,
        credentials: MemoryCredentialStore,
        user_info,
    ) -> None:
        """Test that a 401 after the retry clears the credential and signals."""
        expired: list[bool] = []
        executor.on_session_expired(lambda: expired.append(True))
        transport.reply("GET", "/user/me", fail(401))
        refresh_ok(transport)

        with pytest.raises(Unauthenticated):
            await executor.execute(user_info, None)

        assert len(transport.calls_to("POST", "/auth/refresh-token")) == 1
        assert len(transport.calls_to("GET", "/user/me")) == 2
        assert credentials.get_token() is None
        assert expired == [True]

    async def test_failed_refresh_is_unauthenticated(
        self,
        executor: RequestExecutor,
        transport: FakeTransport,
        credentials: MemoryCredentialStore,
        user_info,
    ) -> None:
        transport.reply("GET", "/user/me", fail(401))
        transport.reply(
            "POST", "/auth/refresh-token", fail(403, "Refresh token expired")
        )

        with pytest.raises(Unauthenticated):
            await executor.execute(user_info, None)

        assert len(transport.calls_to("GET", "/user/me")) == 1
        assert credentials.get_token() is None

    async def test_no_refresh_credential(
        self, transport: FakeTransport, user_info
    ) -> None:
        """Test that without a refresh token no refresh is attempted."""
        from tagsync import HttpTokenRefresher

        executor = RequestExecutor(
            transport,
            credentials=MemoryCredentialStore(token="access-1"),
            refresher=HttpTokenRefresher(transport),
        )
        transport.reply("GET", "/user/me", fail(401))

        with pytest.raises(Unauthenticated):
            await executor.execute(user_info, None)

        assert transport.calls_to("POST", "/auth/refresh-token") == []

    async def test_unauthenticated_endpoint_401_is_client_error(
        self,
        executor: RequestExecutor,
        transport: FakeTransport,
        credentials: MemoryCredentialStore,
        registry: EndpointRegistry,
    ) -> None:
        """Test that login's 401 (unverified account) is not a session expiry."""
        transport.reply("POST", "/auth/login", fail(401, "User is not verified"))

        with pytest.raises(ClientError) as exc_info:
            await executor.execute(
                registry.resolve("login"), {"email": "a@b.c", "password": "x"}
            )

        assert exc_info.value.status == 401
        assert credentials.get_token() == "access-1"
        assert transport.calls_to("POST", "/auth/refresh-token") == []

    async def test_concurrent_401s_share_one_refresh(
        self,
        executor: RequestExecutor,
        transport: FakeTransport,
        user_info,
    ) -> None:
        async def by_token(call: SentRequest) -> TransportResponse:
            await asyncio.sleep(0)
            if call.headers.get("Authorization") == "Bearer access-2":
                return ok({"name": "Rahim"})
            return fail(401)

        transport.reply("GET", "/user/me", by_token)
        refresh_ok(transport)

        results = await asyncio.gather(
            executor.execute(user_info, None), executor.execute(user_info, None)
        )

        assert all(r["data"] == {"name": "Rahim"} for r in results)
        assert len(transport.calls_to("POST", "/auth/refresh-token")) == 1

    async def test_listener_can_be_removed(
        self, executor: RequestExecutor, transport: FakeTransport, user_info
    ) -> None:
        calls: list[int] = []
        remove = executor.on_session_expired(lambda: calls.append(1))
        remove()
        transport.reply("GET", "/user/me", fail(401))
        refresh_ok(transport)

        with pytest.raises(Unauthenticated):
            await executor.execute(user_info, None)

        assert calls == []
