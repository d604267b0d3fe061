"""Client configuration.

Centralizes magic numbers and environment-driven settings for the chat client.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Local storage namespace
STORAGE_PREFIX = "clydra:"
PENDING_THREAD_KEY = "pending-new-thread"  # Backup key used before a thread exists

# Thread lifecycle
THREAD_CREATE_ATTEMPTS = 3
THREAD_CREATE_BACKOFF = (1.0, 2.0)  # Seconds to wait after attempt 1 and 2

# Streaming
STREAM_TIMEOUT_SECONDS = 60.0
CHECKPOINT_INTERVAL_SECONDS = 2.0  # Minimum gap between background checkpoints

# Persistence
PERSIST_ATTEMPTS = 3
PERSIST_BACKOFF_SECONDS = 1.0  # Multiplied by the attempt number
BACKUP_SWEEP_INTERVAL_SECONDS = 30.0

# Input validation
MAX_MESSAGE_LENGTH = 10000

# HTTP
REQUEST_TIMEOUT_SECONDS = 30.0

DEFAULT_MODEL = "google/gemini-2.0-flash-001"  # Offered on every plan
DEFAULT_API_URL = "http://localhost:3000/api"

UNREACHABLE_SERVICE_MESSAGE = "Unable to reach the chat service. Please try again."


class ClientSettings(BaseModel):
    """Settings for a chat client, usually read from ``CLYDRA_*`` variables."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Base URL of the chat backend API")
    api_token: str | None = Field(default=None, description="Bearer token for the backend")
    store: str = Field(default="sqlite", description="Local store backend: 'memory' or 'sqlite'")
    store_path: str = Field(default="~/.clydra/local.db", description="SQLite file for the local store")
    plan: str = Field(default="free", description="Plan tier of the signed-in user")
    model: str = Field(default=DEFAULT_MODEL, description="Initially selected model")

    @classmethod
    def from_env(cls) -> "ClientSettings":
        """Build settings from the environment, loading ``.env`` first."""
        load_dotenv()
        values = {
            "api_url": os.getenv("CLYDRA_API_URL"),
            "api_token": os.getenv("CLYDRA_API_TOKEN"),
            "store": os.getenv("CLYDRA_STORE"),
            "store_path": os.getenv("CLYDRA_STORE_PATH"),
            "plan": os.getenv("CLYDRA_PLAN"),
            "model": os.getenv("CLYDRA_MODEL"),
        }
        return cls(**{key: value for key, value in values.items() if value})
