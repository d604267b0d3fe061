"""Data models for conversations.

These models define messages and threads independent of where they are
stored (backend, local cache, backup records).
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import MAX_MESSAGE_LENGTH
from ..errors import MessageValidationError

TEMPORARY_ID_PREFIX = "tmp-"


def new_temporary_id() -> str:
    """Generate a client-side message id, replaced once the backend assigns one."""
    return f"{TEMPORARY_ID_PREFIX}{uuid4().hex}"


def is_temporary_id(message_id: str) -> bool:
    return message_id.startswith(TEMPORARY_ID_PREFIX)


def validate_message_text(text: str) -> str:
    """Return the text to send, stripped of surrounding whitespace.

    Raises:
        MessageValidationError: If the text is blank or too long
    """
    content = text.strip()
    if not content:
        raise MessageValidationError("Message is empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise MessageValidationError(f"Message is too long (limit {MAX_MESSAGE_LENGTH} characters)")
    return content


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class CompletionState(str, Enum):
    """How an assistant message's content came to be what it is."""

    STREAMING = "streaming"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Annotation(BaseModel):
    """Citation attached to an assistant message by web-search models."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str | None = None
    snippet: str | None = None
    start_index: int | None = None
    end_index: int | None = None


class Message(BaseModel):
    """One turn in a conversation.

    Records are immutable; updates produce a new record via ``model_copy``
    which replaces the old one in the owning sequence.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_temporary_id)
    role: Role
    content: str = ""
    model: str | None = Field(
        default=None,
        description="Model that produced an assistant message"
    )
    annotations: tuple[Annotation, ...] = ()
    completion: CompletionState = CompletionState.COMPLETE
    durable: bool = Field(
        default=False,
        description="Whether id was issued by the backend"
    )
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # The backend may hand out numeric ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @classmethod
    def from_backend(cls, payload: dict) -> "Message":
        """Build a persisted message from a backend row."""
        return cls(
            id=payload["id"],
            role=payload["role"],
            content=payload.get("content") or "",
            model=payload.get("model"),
            durable=True,
            created_at=payload.get("created_at"),
        )

    def to_turn(self) -> "ChatTurn":
        return ChatTurn(role=self.role, content=self.content)


class ChatTurn(BaseModel):
    """Role and content as sent to the chat proxy."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role
    content: str


class ChatRequest(BaseModel):
    """Body of a chat proxy call."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatTurn]
    model: str
    thread_id: str | None = Field(default=None, alias="threadId")
    stream: bool = True
    enable_web_search: bool = Field(default=False, alias="enableWebSearch")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ThreadSummary(BaseModel):
    """A thread as listed by the backend."""

    id: str
    title: str | None = None
    created_at: datetime | None = None
    message_count: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value
