"""Thread lifecycle management."""

from .lifecycle import ThreadLifecycleManager, ThreadState

__all__ = [
    "ThreadLifecycleManager",
    "ThreadState",
]
