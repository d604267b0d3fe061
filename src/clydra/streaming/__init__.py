"""Chat stream decoding and reconciliation."""

from .reconciler import StreamOutcome, StreamReconciler
from .sse import SSEDecoder, StreamEvent, iter_events

__all__ = [
    "SSEDecoder",
    "StreamEvent",
    "StreamOutcome",
    "StreamReconciler",
    "iter_events",
]
