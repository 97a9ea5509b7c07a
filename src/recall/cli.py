from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from recall.db import init_db
from recall.store import ReminderStore

app = typer.Typer(help="Recall: journaling with reminders")
console = Console()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Start the Recall API server."""
    import uvicorn

    configure_logging(log_level)
    uvicorn.run(
        "recall.web:create_app", host=host, port=port, reload=reload, factory=True, log_config=None
    )


@app.command()
def remind() -> None:
    """Show active reminders and when they fire next."""
    init_db()
    reminders = ReminderStore().list_active()

    if not reminders:
        console.print("[green]All clear! No active reminders.[/green]")
        return

    table = Table(title="Active Reminders")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Priority", style="magenta")
    table.add_column("Repeats", style="white")
    table.add_column("Next Trigger", style="yellow")
    for r in reminders:
        repeats = r.pattern.frequency if r.is_recurring else "once"
        table.add_row(
            str(r.id), r.title, r.priority, repeats, r.trigger_time.strftime("%Y-%m-%d %H:%M UTC")
        )
    console.print(table)


@app.command()
def sweep(log_level: str = typer.Option("INFO", help="Logging level")) -> None:
    """Fire overdue reminders once, without starting the server."""
    from recall.jobs import sweep_due_reminders
    from recall.services.reminders import build_reminder_service

    configure_logging(log_level)
    init_db()
    service = build_reminder_service()
    # No jobs outlive this process; the server picks up advanced reminders on start.
    fired = asyncio.run(sweep_due_reminders(service, reschedule=False))
    console.print(f"Fired [bold]{fired}[/bold] overdue reminder(s).")
