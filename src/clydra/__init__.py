"""
Clydra: the core of a multi-model AI chat client.

Each subpackage hides one design decision: the model catalog, the local
store, the backend wire protocol, stream decoding, persistence and the
thread lifecycle. ChatSession composes them.
"""

__version__ = "0.1.0"

from .api import ChatBackendClient
from .chat import ChatCallbacks, Message, Role
from .config import ClientSettings
from .errors import ClydraError
from .session import ChatSession, SubmitOutcome, SubmitStatus
from .storage import KeyValueStore, create_local_store

__all__ = [
    "ChatBackendClient",
    "ChatCallbacks",
    "ChatSession",
    "ClientSettings",
    "ClydraError",
    "KeyValueStore",
    "Message",
    "Role",
    "SubmitOutcome",
    "SubmitStatus",
    "create_local_store",
]
