"""Factory functions for CLI.

Centralizes creation of the backend client, local store and session from
settings. Hides configuration details from command implementations.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from ..api import ChatBackendClient
from ..chat.callbacks import ChatCallbacks
from ..config import ClientSettings
from ..session import ChatSession
from ..storage import KeyValueStore, create_local_store

# Default console for output
_console = Console()


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route library logs through Rich.

    Args:
        verbose: Show debug output instead of warnings only
        console: Console the log lines are written to
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or _console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Request lines from httpx are noise unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_settings() -> ClientSettings:
    """Read client settings from the environment.

    Environment variables:
        CLYDRA_API_URL: Backend API root (default: http://localhost:3000/api)
        CLYDRA_API_TOKEN: Bearer token (optional)
        CLYDRA_STORE: Local store backend, memory or sqlite (default: sqlite)
        CLYDRA_STORE_PATH: SQLite file (default: ~/.clydra/local.db)
        CLYDRA_PLAN: Plan tier (default: free)
        CLYDRA_MODEL: Initially selected model (default: google/gemini-2.0-flash-001)
    """
    return ClientSettings.from_env()


def get_client(settings: ClientSettings) -> ChatBackendClient:
    return ChatBackendClient(settings.api_url, api_token=settings.api_token)


def get_local_store(settings: ClientSettings) -> KeyValueStore:
    """Create the local store (not yet connected)."""
    if settings.store == "sqlite":
        return create_local_store("sqlite", path=settings.store_path)
    return create_local_store(settings.store)


def get_session(
    settings: ClientSettings,
    client: ChatBackendClient,
    local_store: KeyValueStore,
    callbacks: ChatCallbacks | None = None,
    model: str | None = None,
    web_search: bool = False
) -> ChatSession:
    return ChatSession(
        client,
        local_store,
        callbacks=callbacks,
        plan=settings.plan,
        model=model or settings.model,
        web_search=web_search,
    )
