"""Unit tests for the backend HTTP client."""
import json

import httpx
import pytest

from clydra.api import IDEMPOTENCY_HEADER, ChatBackendClient, error_from_response, is_quota_message
from clydra.chat.models import ChatRequest, ChatTurn, Role
from clydra.errors import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    RequestRejectedError,
    ServiceUnavailableError,
    ThreadNotFoundError,
)
from conftest import BASE_URL, sse


def response(status: int, body: object = None, text: str | None = None) -> httpx.Response:
    if text is not None:
        return httpx.Response(status, text=text)
    return httpx.Response(status, json=body if body is not None else {})


class TestErrorMapping:
    """Tests for status to exception translation."""

    @pytest.mark.parametrize("status,expected", [
        (401, AuthenticationError),
        (400, RequestRejectedError),
        (429, RateLimitError),
        (500, ServiceUnavailableError),
        (503, ServiceUnavailableError),
    ])
    def test_status_classes(self, status, expected):
        """Test the exception class for each status family."""
        assert type(error_from_response(response(status, {"error": "nope"}))) is expected

    def test_not_found_with_thread(self):
        """Test that a 404 on a thread route names the thread."""
        error = error_from_response(response(404, {"error": "Thread not found"}), thread_id="T1")

        assert isinstance(error, ThreadNotFoundError)
        assert error.thread_id == "T1"

    def test_not_found_without_thread(self):
        """Test a 404 outside thread routes."""
        error = error_from_response(response(404))
        assert type(error) is NotFoundError

    @pytest.mark.parametrize("status", [402, 403, 429])
    def test_quota(self, status):
        """Test that limit messages route to the upgrade error."""
        error = error_from_response(response(status, {"error": "Daily limit exceeded for free plan"}))

        assert isinstance(error, QuotaExceededError)
        assert not error.is_retryable()

    def test_retryable(self):
        """Test which errors are worth retrying."""
        assert error_from_response(response(503)).is_retryable()
        assert error_from_response(response(429, {"error": "slow down"})).is_retryable()
        assert not error_from_response(response(400)).is_retryable()

    def test_plain_text_detail(self):
        """Test that non-JSON bodies are used as the detail."""
        error = error_from_response(response(502, text="Bad gateway from upstream"))
        assert error.detail == "Bad gateway from upstream"
        assert error.status_code == 502

    def test_quota_phrases(self):
        """Test quota phrase detection."""
        assert is_quota_message("Insufficient credits")
        assert is_quota_message("Please upgrade to Pro")
        assert not is_quota_message("Internal server error")


class TestChatBackendClient:
    """Tests for ChatBackendClient against the fake backend."""

    @pytest.mark.asyncio
    async def test_thread_lifecycle(self, client, backend):
        """Test create, list and delete."""
        thread_id = await client.create_thread()
        threads = await client.list_threads()

        assert [t.id for t in threads] == [thread_id]
        assert threads[0].message_count == 0

        await client.delete_thread(thread_id)
        assert backend.threads == {}

    @pytest.mark.asyncio
    async def test_messages(self, client, backend):
        """Test create, update and fetch of messages."""
        backend.add_thread("T1")

        message_id = await client.create_message("T1", Role.USER, "Hello", idempotency_key="k1")
        await client.update_message("T1", message_id, "Hello again")
        messages = await client.get_messages("T1")

        assert [(m.id, m.content, m.durable) for m in messages] == [(message_id, "Hello again", True)]
        assert backend.calls("POST", "messages")[0].headers[IDEMPOTENCY_HEADER] == "k1"

    @pytest.mark.asyncio
    async def test_idempotent_create(self, client, backend):
        """Test that repeating a create with the same key makes one row."""
        backend.add_thread("T1")

        first = await client.create_message("T1", Role.USER, "Hello", idempotency_key="k1")
        second = await client.create_message("T1", Role.USER, "Hello", idempotency_key="k1")

        assert first == second
        assert len(backend.threads["T1"]) == 1

    @pytest.mark.asyncio
    async def test_missing_thread(self, client):
        """Test that unknown threads raise ThreadNotFoundError."""
        with pytest.raises(ThreadNotFoundError):
            await client.get_messages("T404")

    @pytest.mark.asyncio
    async def test_network_error(self, client, backend):
        """Test that transport failures become NetworkError."""
        backend.fail("POST", "threads", 0)

        with pytest.raises(NetworkError) as exc_info:
            await client.create_thread()
        assert exc_info.value.is_retryable()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,body", [
        (200, {"text": "<html>Bad gateway</html>"}),
        (201, {"json": {"ok": True}}),
        (201, {"json": ["M1"]}),
    ])
    async def test_malformed_success_body(self, status, body):
        """Test that a 2xx body without a usable id raises a client error."""
        transport = httpx.MockTransport(lambda request: httpx.Response(status, **body))

        async with ChatBackendClient(BASE_URL, transport=transport) as client:
            with pytest.raises(RequestRejectedError):
                await client.create_message("T1", Role.USER, "Hello")
            with pytest.raises(RequestRejectedError):
                await client.create_thread()

    @pytest.mark.asyncio
    async def test_auth_header(self):
        """Test that the bearer token is sent."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 1})

        async with ChatBackendClient(BASE_URL, api_token="secret", transport=httpx.MockTransport(handler)) as client:
            assert await client.create_thread() == "1"

        assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_stream_chat(self, client, backend):
        """Test that the raw stream body is yielded."""
        backend.stream_chunks = [sse({"content": "Hi"})]
        request = ChatRequest(messages=[ChatTurn(role=Role.USER, content="Hello")], model="sarvam-m")

        async with client.stream_chat(request) as chunks:
            body = b"".join([chunk async for chunk in chunks])

        assert body == sse({"content": "Hi"})
        sent = json.loads(backend.calls("POST", "chat")[0].content)
        assert sent["messages"] == [{"role": "user", "content": "Hello"}]
        assert sent["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_chat_error_status(self, client, backend):
        """Test that an error status is raised before any body is read."""
        backend.fail("POST", "chat", 429, error="Daily limit exceeded")
        request = ChatRequest(messages=[], model="sarvam-m")

        with pytest.raises(QuotaExceededError):
            async with client.stream_chat(request):
                pass
