"""
Command-line interface for Professor Connect.

Usage:
    professor-connect init-db              Create database tables
    professor-connect serve                Run the API server
    professor-connect history USER_ID      Show a user's email history
    professor-connect check-config         Report configuration problems
"""

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import config, configure_logging

console = Console()

STATUS_STYLES = {
    "sent": "blue",
    "scheduled": "yellow",
    "delivered": "green",
    "failed": "red",
}


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this command.")
def main(log_level: str | None) -> None:
    """Professor Connect - research outreach to professors."""
    configure_logging(log_level)


@main.command("init-db")
def init_db_command() -> None:
    """Create all database tables."""
    from .database import init_db

    init_db()
    console.print(f"[green]✓ Database ready:[/green] {config.DATABASE_URL}")


@main.command()
@click.option("--host", default=config.API_HOST, help="Host to bind to.")
@click.option("--port", type=int, default=config.API_PORT, help="Port to run on.")
@click.option("--debug/--no-debug", default=config.FLASK_DEBUG, help="Run in debug mode.")
def serve(host: str, port: int, debug: bool) -> None:
    """Run the API server."""
    from api_server import run

    run(host, port, debug)


@main.command()
@click.argument("user_id")
@click.option("--limit", type=int, default=config.HISTORY_PAGE_SIZE, help="Maximum emails to show.")
def history(user_id: str, limit: int) -> None:
    """Show a user's email history, newest first."""
    from .database import get_db
    from .services.record_store import RecordStore

    with get_db() as db:
        store = RecordStore(db)
        records = store.list_for_user(user_id, limit=limit)
        stats = store.stats(user_id)

        if not records:
            console.print(f"[yellow]No emails for {user_id}[/yellow]")
            return

        table = Table(title=f"Email History ({stats['total']})")
        table.add_column("When")
        table.add_column("Professor")
        table.add_column("To")
        table.add_column("Subject")
        table.add_column("Status")

        for record in records:
            when = record.scheduled_at if record.scheduled_at else record.sent_at or record.created_at
            style = STATUS_STYLES.get(record.status.value, "white")
            table.add_row(
                when.strftime("%Y-%m-%d %H:%M") if when else "-",
                record.professor_name,
                record.recipient,
                record.subject,
                f"[{style}]{record.status.value}[/{style}]",
            )

    console.print(table)


@main.command("check-config")
def check_config() -> None:
    """Report missing or unsafe settings."""
    problems = config.validate()
    if not problems:
        console.print(Panel("[green]Configuration looks good[/green]", border_style="green"))
        return

    console.print(Panel(
        "\n".join(f"• {p}" for p in problems),
        title="⚠️  Configuration problems",
        border_style="red",
    ))
    raise click.exceptions.Exit(1)


if __name__ == "__main__":
    main()
