"""Pytest configuration and shared fixtures."""
import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from clydra.api import IDEMPOTENCY_HEADER, ChatBackendClient
from clydra.chat.callbacks import ChatCallbacks
from clydra.storage import create_local_store

BASE_URL = "http://backend.test/api"


def sse(*envelopes: Any, done: bool = True) -> bytes:
    """Encode envelopes as a chat proxy event stream body."""
    lines = [f"data: {json.dumps(envelope)}\n\n" for envelope in envelopes]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


async def byte_stream(*chunks: bytes, delay: float = 0.0) -> AsyncIterator[bytes]:
    for chunk in chunks:
        if delay:
            await asyncio.sleep(delay)
        yield chunk


class FakeBackend:
    """In-process chat backend served through httpx.MockTransport.

    ``fail(method, route, *statuses)`` queues error statuses for a route;
    status 0 simulates a dropped connection. Routes are 'threads',
    'messages' and 'chat'. ``headers_delay`` holds back the chat
    proxy response before any header is sent.
    """

    def __init__(self) -> None:
        self.threads: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []
        self.stream_chunks: list[bytes] = [sse({"content": "Hello"})]
        self.stream_delay = 0.0
        self.headers_delay = 0.0
        self.next_thread_ids: list[str] = []
        self.next_message_ids: list[str] = []
        self._failures: dict[tuple[str, str], list[tuple[int, str | None]]] = {}
        self._idempotent: dict[str, str] = {}
        self._counter = 0

    def fail(self, method: str, route: str, *statuses: int, error: str | None = None) -> None:
        self._failures.setdefault((method, route), []).extend((status, error) for status in statuses)

    def calls(self, method: str, route: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _route(r) == route]

    def add_thread(self, thread_id: str, *rows: dict[str, Any]) -> None:
        self.threads[thread_id] = [dict(row) for row in rows]

    def row(self, thread_id: str, message_id: str) -> dict[str, Any] | None:
        for row in self.threads.get(thread_id, []):
            if row["id"] == message_id:
                return row
        return None

    def client(self) -> ChatBackendClient:
        return ChatBackendClient(BASE_URL, transport=httpx.MockTransport(self.handler))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = _route(request)

        queued = self._failures.get((request.method, route))
        if queued:
            status, error = queued.pop(0)
            if status == 0:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(status, json={"error": error or f"Injected failure {status}"})

        if route == "threads":
            return self._threads(request)
        if route == "messages":
            return self._messages(request)
        if route == "chat":
            if self.headers_delay:
                await asyncio.sleep(self.headers_delay)
            return self._chat(request)
        return httpx.Response(404, json={"error": "No such route"})

    def _new_id(self, queue: list[str], prefix: str) -> str:
        if queue:
            return queue.pop(0)
        self._counter += 1
        return f"{prefix}{self._counter}"

    def _threads(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            thread_id = self._new_id(self.next_thread_ids, "T")
            self.threads[thread_id] = []
            return httpx.Response(201, json={"id": thread_id})
        if request.method == "GET":
            return httpx.Response(200, json=[
                {
                    "id": thread_id,
                    "title": None,
                    "created_at": "2024-05-01T12:00:00Z",
                    "msg_count": [{"count": len(rows)}],
                }
                for thread_id, rows in self.threads.items()
            ])
        thread_id = json.loads(request.content)["threadId"]
        if self.threads.pop(thread_id, None) is None:
            return httpx.Response(404, json={"error": "Thread not found"})
        return httpx.Response(200, json={"success": True})

    def _messages(self, request: httpx.Request) -> httpx.Response:
        thread_id = request.url.path.rsplit("/", 1)[-1]
        rows = self.threads.get(thread_id)
        if rows is None:
            return httpx.Response(404, json={"error": "Thread not found"})

        if request.method == "GET":
            return httpx.Response(200, json=rows)

        body = json.loads(request.content)
        if request.method == "POST":
            key = request.headers.get(IDEMPOTENCY_HEADER)
            if key in self._idempotent:
                return httpx.Response(200, json={"id": self._idempotent[key]})
            message_id = self._new_id(self.next_message_ids, "M")
            rows.append({
                "id": message_id,
                "role": body["role"],
                "content": body["content"],
                "model": body.get("model"),
            })
            if key:
                self._idempotent[key] = message_id
            return httpx.Response(201, json={"id": message_id})

        row = self.row(thread_id, body["messageId"])
        if row is None:
            return httpx.Response(404, json={"error": "Message not found"})
        row["content"] = body["content"]
        return httpx.Response(200, json=row)

    def _chat(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        thread_id = body.get("threadId")
        # The proxy creates the assistant row it announces in the stream
        for chunk in self.stream_chunks:
            for line in chunk.decode(errors="ignore").splitlines():
                if not line.startswith("data: {"):
                    continue
                envelope = json.loads(line[len("data: "):])
                message_id = envelope.get("messageId")
                if message_id and thread_id in self.threads and self.row(thread_id, message_id) is None:
                    self.threads[thread_id].append({
                        "id": message_id,
                        "role": "assistant",
                        "content": "",
                        "model": body["model"],
                    })
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=byte_stream(*self.stream_chunks, delay=self.stream_delay),
        )


def _route(request: httpx.Request) -> str:
    path = request.url.path.removeprefix("/api/")
    if path.startswith("chat/"):
        return "chat"
    return path.split("/", 1)[0]


class RecordingCallbacks(ChatCallbacks):
    """Records every notification for assertions."""

    def __init__(self, near_bottom: bool = True) -> None:
        self.events: list[tuple[str, Any]] = []
        self.errors: list[str] = []
        self.upgrades: list[str] = []
        self.scrolls = 0
        self.near_bottom = near_bottom

    def on_message_added(self, message):
        self.events.append(("added", message))

    def on_message_updated(self, message):
        self.events.append(("updated", message))

    def on_message_removed(self, message_id):
        self.events.append(("removed", message_id))

    def on_thread_changed(self, thread_id):
        self.events.append(("thread", thread_id))

    def on_model_changed(self, model):
        self.events.append(("model", model))

    def on_busy_changed(self, busy):
        self.events.append(("busy", busy))

    def is_near_bottom(self):
        return self.near_bottom

    def scroll_to_bottom(self):
        self.scrolls += 1

    def notify_error(self, message):
        self.errors.append(message)

    def on_upgrade_required(self, message):
        self.upgrades.append(message)

    def of(self, kind: str) -> list[Any]:
        return [payload for name, payload in self.events if name == kind]


@pytest.fixture
async def local_store():
    """Connected in-memory local store."""
    store = create_local_store("memory")
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def client(backend):
    client = backend.client()
    yield client
    await client.close()


@pytest.fixture
def callbacks():
    return RecordingCallbacks()
