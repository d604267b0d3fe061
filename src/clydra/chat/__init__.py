"""Conversation data and the client-side message store."""

from .callbacks import ChatCallbacks
from .models import (
    Annotation,
    ChatRequest,
    ChatTurn,
    CompletionState,
    Message,
    Role,
    ThreadSummary,
    is_temporary_id,
    new_temporary_id,
    validate_message_text,
)
from .store import MessageStore

__all__ = [
    "Annotation",
    "ChatCallbacks",
    "ChatRequest",
    "ChatTurn",
    "CompletionState",
    "Message",
    "MessageStore",
    "Role",
    "ThreadSummary",
    "is_temporary_id",
    "new_temporary_id",
    "validate_message_text",
]
