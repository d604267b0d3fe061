"""Terminal rendering of chat callbacks.

Streams the assistant's content deltas to the console as they arrive.
"""

from rich.console import Console
from rich.markup import escape

from ..catalog import get_model_alias
from ..chat.callbacks import ChatCallbacks
from ..chat.models import CompletionState, Message, Role


class ConsoleCallbacks(ChatCallbacks):
    """Prints the conversation to a Rich console.

    Only the streaming assistant message is written incrementally; the
    console cannot rewrite earlier output, so content updates print the
    suffix not yet shown.
    """

    def __init__(self, console: Console) -> None:
        self.console = console
        self._streaming_id: str | None = None
        self._printed = 0

    def on_message_added(self, message: Message) -> None:
        if message.role is Role.ASSISTANT and message.completion is CompletionState.STREAMING:
            self._streaming_id = message.id
            self._printed = 0
            self.console.print(f"[bold green]{escape(get_model_alias(message.model))}:[/bold green] ", end="")

    def on_message_updated(self, message: Message) -> None:
        if message.role is not Role.ASSISTANT:
            return
        if self._streaming_id is not None and message.completion is CompletionState.STREAMING:
            # The placeholder's id may have been replaced by the backend's
            self._streaming_id = message.id
            self.console.print(escape(message.content[self._printed:]), end="", highlight=False)
            self._printed = len(message.content)
        elif message.id == self._streaming_id:
            self._end_stream(message.completion)

    def on_message_removed(self, message_id: str) -> None:
        if message_id == self._streaming_id:
            self._end_stream(CompletionState.FAILED)

    def on_thread_changed(self, thread_id: str | None) -> None:
        if thread_id is not None:
            self.console.print(f"[dim]thread {thread_id}[/dim]")

    def on_model_changed(self, model: str) -> None:
        self.console.print(f"[dim]Model: {escape(get_model_alias(model))}[/dim]")

    def notify_error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/red]")

    def on_upgrade_required(self, message: str) -> None:
        self.console.print(f"[yellow]{escape(message)}[/yellow]")
        self.console.print("[dim]Upgrade your plan to use this model.[/dim]")

    def _end_stream(self, state: CompletionState) -> None:
        self._streaming_id = None
        self._printed = 0
        if state is CompletionState.CANCELLED:
            self.console.print(" [dim](stopped)[/dim]")
        else:
            self.console.print()
