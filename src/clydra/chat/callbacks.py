"""Callback interface between the chat core and whatever renders it.

The session and reconciler never reach for global state to tell the UI
something; they call the ChatCallbacks object handed to them. Override the
methods a front end cares about; the defaults do nothing.
"""

from .models import Message


class ChatCallbacks:
    """No-op base for chat UI notifications."""

    def on_message_added(self, message: Message) -> None:
        """A message was appended to the visible conversation."""

    def on_message_updated(self, message: Message) -> None:
        """A visible message changed (content, id or completion state)."""

    def on_message_removed(self, message_id: str) -> None:
        """A message disappeared from the visible conversation."""

    def on_thread_changed(self, thread_id: str | None) -> None:
        """The active thread changed; front ends record it for reloads."""

    def on_model_changed(self, model: str) -> None:
        """The selected model changed, e.g. restored from a reopened thread."""

    def on_busy_changed(self, busy: bool) -> None:
        """A submission started or finished; input should be disabled while busy."""

    def is_near_bottom(self) -> bool:
        """Whether the user is looking at the end of the conversation."""
        return True

    def scroll_to_bottom(self) -> None:
        """Keep the newest content in view."""

    def notify_error(self, message: str) -> None:
        """Show a non-blocking error notification."""

    def on_upgrade_required(self, message: str) -> None:
        """The user hit a plan limit and should be offered an upgrade."""
