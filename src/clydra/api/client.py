"""HTTP client for the chat backend.

Hidden design decisions:
- Endpoint paths and payload shapes
- Authentication header
- Mapping of HTTP statuses to the client's exception hierarchy
"""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from ..chat.models import ChatRequest, Message, Role, ThreadSummary
from ..config import REQUEST_TIMEOUT_SECONDS
from ..errors import (
    AuthenticationError,
    BackendError,
    NetworkError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    RequestRejectedError,
    ServiceUnavailableError,
    ThreadNotFoundError,
)

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

_QUOTA_PATTERN = re.compile(
    r"limit exceeded|quota|insufficient credits|upgrade",
    re.IGNORECASE
)


def _error_detail(response: httpx.Response) -> str:
    """Pull a human readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            if isinstance(body.get(field), str) and body[field]:
                return body[field]
    text = response.text.strip() if response.content else ""
    return text[:200] or response.reason_phrase or "Request failed"


def _json_body(response: httpx.Response) -> Any:
    """Decode a 2xx body, treating anything unparseable as a rejected request."""
    try:
        return response.json()
    except ValueError as e:
        raise RequestRejectedError(response.status_code, "Malformed response body") from e


def _id_from(response: httpx.Response) -> str:
    body = _json_body(response)
    if not isinstance(body, dict) or body.get("id") is None:
        raise RequestRejectedError(response.status_code, "Response carries no id")
    return str(body["id"])


def is_quota_message(text: str) -> bool:
    """Whether an error text describes a plan or usage limit."""
    return bool(_QUOTA_PATTERN.search(text))


def error_from_response(response: httpx.Response, thread_id: str | None = None) -> BackendError:
    """Translate a non-2xx response into the matching exception."""
    status = response.status_code
    detail = _error_detail(response)

    if status == 404:
        if thread_id is not None:
            return ThreadNotFoundError(thread_id, detail)
        return NotFoundError(status, detail)
    if status == 401:
        return AuthenticationError(status, detail)
    if status in (402, 403, 429) and is_quota_message(detail):
        return QuotaExceededError(status, detail)
    if status == 429:
        return RateLimitError(status, detail)
    if status >= 500:
        return ServiceUnavailableError(status, detail)
    return RequestRejectedError(status, detail)


class ChatBackendClient:
    """Async client for thread, message and chat proxy endpoints.

    Supports async context manager protocol for proper resource cleanup:
        async with ChatBackendClient(base_url) as client:
            thread_id = await client.create_thread()
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        **client_kwargs: Any
    ):
        """Initialize the client.

        Args:
            base_url: Backend API root, e.g. 'https://example.com/api'
            api_token: Optional bearer token
            timeout: Timeout for non-streaming requests in seconds
            **client_kwargs: Additional kwargs for httpx.AsyncClient
                (tests pass ``transport=httpx.MockTransport(...)``)
        """
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            **client_kwargs
        )

    async def _request(
        self,
        method: str,
        url: str,
        thread_id: str | None = None,
        idempotency_key: str | None = None,
        **kwargs: Any
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {url}: {e}") from e

        if response.is_error:
            raise error_from_response(response, thread_id)
        return response

    async def create_thread(self) -> str:
        """Create an empty thread and return its id."""
        response = await self._request("POST", "/threads")
        thread_id = _id_from(response)
        logger.debug("Created thread %s", thread_id)
        return thread_id

    async def list_threads(self) -> list[ThreadSummary]:
        """List the user's threads, newest first."""
        response = await self._request("GET", "/threads")
        threads = []
        for row in _json_body(response) or []:
            count = row.get("msg_count")
            # Counts may come back as [{"count": n}] from an aggregate subquery
            if isinstance(count, list) and count:
                count = count[0].get("count")
            threads.append(ThreadSummary(
                id=row["id"],
                title=row.get("title"),
                created_at=row.get("created_at"),
                message_count=count if isinstance(count, int) else None,
            ))
        return threads

    async def delete_thread(self, thread_id: str) -> None:
        await self._request("DELETE", "/threads", thread_id=thread_id, json={"threadId": thread_id})

    async def get_messages(self, thread_id: str) -> list[Message]:
        """Fetch a thread's messages in conversation order.

        Raises:
            ThreadNotFoundError: If the thread no longer exists
        """
        response = await self._request("GET", f"/messages/{thread_id}", thread_id=thread_id)
        return [Message.from_backend(row) for row in _json_body(response) or []]

    async def create_message(
        self,
        thread_id: str,
        role: Role,
        content: str,
        model: str | None = None,
        idempotency_key: str | None = None
    ) -> str:
        """Append a message to a thread and return its durable id."""
        body: dict[str, Any] = {"role": Role(role).value, "content": content}
        if model:
            body["model"] = model
        response = await self._request(
            "POST",
            f"/messages/{thread_id}",
            thread_id=thread_id,
            idempotency_key=idempotency_key,
            json=body,
        )
        return _id_from(response)

    async def update_message(
        self,
        thread_id: str,
        message_id: str,
        content: str,
        idempotency_key: str | None = None
    ) -> None:
        """Replace the content of a persisted message."""
        await self._request(
            "PUT",
            f"/messages/{thread_id}",
            thread_id=thread_id,
            idempotency_key=idempotency_key,
            json={"messageId": message_id, "content": content},
        )

    @asynccontextmanager
    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a streaming chat proxy call.

        Yields the raw response body as an async iterator of byte chunks.
        The connection is closed when the context exits.

        Raises:
            BackendError: If the proxy answers with a non-2xx status
            NetworkError: If the connection cannot be established
        """
        try:
            async with self._client.stream(
                "POST",
                "/chat/proxy",
                json=request.to_payload(),
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS, read=None),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise error_from_response(response)
                yield response.aiter_bytes()
        except httpx.TransportError as e:
            raise NetworkError(f"chat stream: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatBackendClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
