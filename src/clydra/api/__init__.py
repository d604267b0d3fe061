"""HTTP access to the chat backend."""

from .client import IDEMPOTENCY_HEADER, ChatBackendClient, error_from_response, is_quota_message

__all__ = [
    "IDEMPOTENCY_HEADER",
    "ChatBackendClient",
    "error_from_response",
    "is_quota_message",
]
