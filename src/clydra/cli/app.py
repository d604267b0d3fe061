"""Main CLI application using Typer."""
import asyncio
import signal

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..catalog import (
    get_model_alias,
    get_model_info,
    get_models_by_plan,
    is_model_available,
    resolve_plan,
)
from ..chat.models import Role
from ..errors import ClydraError
from ..session import ChatSession, SubmitStatus
from .console import ConsoleCallbacks
from .providers import configure_logging, get_client, get_local_store, get_session, get_settings

# Create Typer app
app = typer.Typer(
    name="clydra",
    help="Multi-model AI chat client",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

EXIT_WORDS = ("exit", "quit", "q", "/quit")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging"
    )
):
    """Multi-model AI chat client."""
    configure_logging(verbose, console)


@app.command()
def models(
    plan: str | None = typer.Option(
        None,
        "--plan",
        "-p",
        help="Plan tier to list models for (default: CLYDRA_PLAN)"
    )
):
    """List the models offered on a plan."""
    tier = resolve_plan(plan or get_settings().plan)

    table = Table(show_header=True, header_style="bold cyan", title=f"{tier.value} plan")
    table.add_column("Model", style="cyan")
    table.add_column("Name")
    table.add_column("Plan", style="dim", width=6)
    table.add_column("Web", width=4)
    table.add_column("Vision", width=6)

    for model in get_models_by_plan(tier):
        info = get_model_info(model)
        table.add_row(
            info.id,
            info.alias,
            info.min_plan.value if info.min_plan else "-",
            "+" if info.web_search else "",
            "+" if info.vision else "",
        )

    console.print(table)


@app.command()
def chat(
    thread: str | None = typer.Option(
        None,
        "--thread",
        "-t",
        help="Continue an existing thread"
    ),
    resume: bool = typer.Option(
        False,
        "--resume",
        "-r",
        help="Continue the thread that was open last time"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to answer with (default: CLYDRA_MODEL)"
    ),
    web_search: bool = typer.Option(
        False,
        "--web-search",
        "-w",
        help="Let capable models search the web"
    )
):
    """Interactive chat. Ctrl-C stops a streaming response."""
    async def _chat():
        settings = get_settings()
        local_store = get_local_store(settings)
        callbacks = ConsoleCallbacks(console)

        try:
            async with local_store, get_client(settings) as client:
                session = get_session(settings, client, local_store, callbacks, model, web_search)
                async with session:
                    if thread:
                        if not await session.load_thread(thread):
                            raise typer.Exit(code=1)
                        _print_history(session)
                    elif resume and await session.resume():
                        _print_history(session)

                    console.print("[bold cyan]Clydra Chat[/bold cyan]")
                    console.print(f"[dim]Model: {escape(get_model_alias(session.model))}[/dim]")
                    console.print("[dim]Commands: /new, /model <id>, /web on|off, /recover. Type 'exit' to leave[/dim]\n")
                    await _chat_loop(session)

        except ClydraError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)

    asyncio.run(_chat())


async def _chat_loop(session: ChatSession) -> None:
    loop = asyncio.get_running_loop()
    session.on_input_focus()

    while True:
        try:
            user_input = await asyncio.to_thread(console.input, "[bold yellow]You:[/bold yellow] ")
        except (KeyboardInterrupt, EOFError):
            console.print("\n[dim]Goodbye![/dim]")
            return

        text = user_input.strip()
        if not text:
            continue
        if text.lower() in EXIT_WORDS:
            console.print("[dim]Goodbye![/dim]")
            return
        if text.startswith("/"):
            await _chat_command(session, text)
            session.on_input_focus()
            continue

        try:
            loop.add_signal_handler(signal.SIGINT, session.abort)
        except NotImplementedError:
            # No signal handlers on this platform; Ctrl-C ends the program
            pass
        try:
            outcome = await session.submit(text)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                pass

        if outcome.status is SubmitStatus.REJECTED and outcome.error:
            console.print(f"[dim]{escape(outcome.error)}[/dim]")
        console.print()
        session.on_input_focus()


async def _chat_command(session: ChatSession, text: str) -> None:
    command, _, argument = text.partition(" ")
    argument = argument.strip()

    if command == "/new":
        await session.new_thread()
        console.print("[dim]Started a new conversation[/dim]")
    elif command == "/model":
        if not argument:
            console.print(f"[dim]Model: {escape(session.model)}[/dim]")
        elif not is_model_available(argument, session.plan):
            console.print(f"[yellow]{escape(argument)} is not available on the {session.plan.value} plan[/yellow]")
        else:
            session.select_model(argument)
    elif command == "/web":
        enabled = argument.lower() in ("on", "true", "1")
        session.set_web_search(enabled)
        console.print(f"[dim]Web search {'on' if enabled else 'off'}[/dim]")
    elif command == "/recover":
        report = await session.recover()
        console.print(f"[dim]Replayed {report.replayed}, still failing {report.failed}[/dim]")
    else:
        console.print(f"[yellow]Unknown command: {escape(command)}[/yellow]")


def _print_history(session: ChatSession) -> None:
    for message in session.messages:
        if message.role is Role.USER:
            console.print(f"[bold yellow]You:[/bold yellow] {escape(message.content)}")
        else:
            name = escape(get_model_alias(message.model))
            console.print(f"[bold green]{name}:[/bold green] {escape(message.content)}")
    console.print()


@app.command()
def threads():
    """List your threads."""
    async def _threads():
        settings = get_settings()
        try:
            async with get_client(settings) as client:
                summaries = await client.list_threads()
        except ClydraError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)

        if not summaries:
            console.print("[yellow]No threads yet[/yellow]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Thread", style="cyan")
        table.add_column("Title")
        table.add_column("Messages", style="green", width=8)
        table.add_column("Created", style="dim")

        for summary in summaries:
            table.add_row(
                summary.id,
                summary.title or "Untitled",
                str(summary.message_count) if summary.message_count is not None else "-",
                summary.created_at.strftime("%Y-%m-%d %H:%M") if summary.created_at else "-",
            )

        console.print(table)

    asyncio.run(_threads())


@app.command()
def history(
    thread: str = typer.Argument(..., help="Thread id")
):
    """Show the messages of a thread, from the local cache if offline."""
    async def _history():
        settings = get_settings()
        local_store = get_local_store(settings)
        async with local_store, get_client(settings) as client:
            session = get_session(settings, client, local_store, ConsoleCallbacks(console))
            if not await session.load_thread(thread):
                raise typer.Exit(code=1)
            _print_history(session)

    asyncio.run(_history())


@app.command()
def delete(
    thread: str = typer.Argument(..., help="Thread id"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    )
):
    """Delete a thread and its local copies."""
    async def _delete():
        if not yes:
            confirm = typer.confirm(f"Delete thread {thread}?")
            if not confirm:
                console.print("[dim]Aborted.[/dim]")
                return

        settings = get_settings()
        local_store = get_local_store(settings)
        async with local_store, get_client(settings) as client:
            session = get_session(settings, client, local_store, ConsoleCallbacks(console))
            if not await session.delete_thread(thread):
                raise typer.Exit(code=1)

        console.print(f"[green]Deleted thread {thread}[/green]")

    asyncio.run(_delete())


@app.command()
def recover():
    """Replay messages that could not be saved earlier."""
    async def _recover():
        settings = get_settings()
        local_store = get_local_store(settings)
        async with local_store, get_client(settings) as client:
            session = get_session(settings, client, local_store)
            report = await session.recover()

        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="bold cyan", width=18)
        table.add_column("Value")
        table.add_row("Replayed", str(report.replayed))
        table.add_row("Still failing", str(report.failed))
        table.add_row("Records cleared", str(report.records_removed))
        table.add_row("Awaiting thread", str(report.records_skipped))
        console.print(table)

        if report.failed:
            raise typer.Exit(code=1)

    asyncio.run(_recover())

