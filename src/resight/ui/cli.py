"""Command-line client for the ReSight service.

Usage:
    resight serve
    resight ask "find vanilla ice cream on target"
    resight trace
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
import typer
from rich.console import Console
from rich.table import Table

from resight.ui.service_client import DEFAULT_SERVICE_URL, ServiceClient

console = Console()
app = typer.Typer(help="ReSight service client")

ServiceUrl = typer.Option(DEFAULT_SERVICE_URL, "--url", envvar="RESIGHT_SERVICE_URL", help="Service URL")


def _not_running() -> typer.Exit:
    console.print("[red]Error: Service not running. Start with 'resight serve'[/red]")
    return typer.Exit(1)


def _event_time(event: dict[str, Any]) -> str:
    timestamp = event.get("timestamp")
    if not isinstance(timestamp, (int, float)):
        return ""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%H:%M:%S")


def _event_line(event: dict[str, Any]) -> str:
    agent = event.get("agent", "?")
    message = event.get("message", "")
    return f"[dim]{_event_time(event)}[/dim] [bold cyan]{agent}[/bold cyan] {message}"


@app.command()
def ask(instruction: str, url: str = ServiceUrl) -> None:
    """Send an instruction and print the result."""
    client = ServiceClient(url)
    try:
        result = asyncio.run(client.ask(instruction))
    except httpx.ConnectError:
        raise _not_running() from None
    except httpx.HTTPStatusError as e:
        console.print(f"[red]Error: {e.response.status_code} {e.response.text}[/red]")
        raise typer.Exit(1) from None

    color = "green" if result.get("success") else "red"
    console.print(f"[{color}]{result.get('message', '')}[/{color}]")
    if result.get("confirmationRequired"):
        console.print("[yellow]Confirmation required before continuing.[/yellow]")


@app.command()
def question(url: str = ServiceUrl) -> None:
    """Show the pending clarification question, if any."""
    client = ServiceClient(url)
    try:
        pending = asyncio.run(client.pending_question())
    except httpx.ConnectError:
        raise _not_running() from None
    if not pending.get("question"):
        console.print("[dim]No pending question[/dim]")
        return
    console.print(f"[bold]{pending['question']}[/bold]")
    for option in pending.get("options") or []:
        console.print(f"  - {option}")


@app.command()
def answer(text: str, url: str = ServiceUrl) -> None:
    """Answer the pending clarification question."""
    client = ServiceClient(url)
    try:
        resolved = asyncio.run(client.answer(text))
    except httpx.ConnectError:
        raise _not_running() from None
    if resolved:
        console.print("[green]Answer delivered[/green]")
    else:
        console.print("[yellow]No question was waiting[/yellow]")


@app.command()
def stop(url: str = ServiceUrl) -> None:
    """Interrupt the active task."""
    client = ServiceClient(url)
    try:
        result = asyncio.run(client.interrupt())
    except httpx.ConnectError:
        raise _not_running() from None
    console.print(f"[green]Stopped[/green] ({result.get('aborted', 0)} running calls aborted)")


@app.command()
def trace(
    url: str = ServiceUrl,
    follow: bool = typer.Option(True, "--follow/--no-follow", help="Keep streaming live events"),
) -> None:
    """Print the trace: retained history, then live events until Ctrl-C."""
    client = ServiceClient(url)

    async def _history() -> None:
        table = Table("time", "agent", "message")
        for event in await client.trace_history():
            table.add_row(_event_time(event), event.get("agent", "?"), event.get("message", ""))
        console.print(table)

    async def _follow() -> None:
        async for event in client.follow_trace():
            console.print(_event_line(event))

    try:
        asyncio.run(_follow() if follow else _history())
    except httpx.ConnectError:
        raise _not_running() from None
    except KeyboardInterrupt:
        console.print("[dim]Stopped following[/dim]")


@app.command()
def health(url: str = ServiceUrl) -> None:
    """Check service health."""
    client = ServiceClient(url)
    try:
        status = asyncio.run(client.health_check())
    except httpx.ConnectError:
        console.print("[red]Service not running[/red]")
        raise typer.Exit(1) from None
    console.print(f"[green]Status: {status['status']}[/green]")
    for component, state in status.get("components", {}).items():
        console.print(f"  {component}: {state}")


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind address (defaults to settings)"),
    port: int | None = typer.Option(None, help="Port (defaults to settings)"),
) -> None:
    """Run the HTTP service."""
    import uvicorn  # noqa: PLC0415

    from resight.config import get_settings  # noqa: PLC0415

    settings = get_settings()
    uvicorn.run(
        "resight.service.app:app",
        host=host or settings.service_host,
        port=port or settings.service_port,
        log_config=None,
    )


if __name__ == "__main__":
    app()
