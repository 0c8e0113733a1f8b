"""Delayed Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .client.endpoints import DEFAULT_API_URL, DelayedJobsAPIError, DelayedJobsClient
from .commands import jobs
from .commands.worker import worker
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="delayed-jobs",
    help="⏳ Delayed Jobs - Persistent background job CLI",
    rich_markup_mode="rich",
)

# Job commands live at the top level
app.command("queues")(jobs.queues)
app.command("enqueue")(jobs.enqueue)
app.command("show")(jobs.show)
app.command("ready")(jobs.ready)
app.command("failed")(jobs.failed)
app.command("jobs")(jobs.list_jobs)
app.command("worker")(worker)


@app.command()
def status(ctx: typer.Context):
    """📊 Check system status and connectivity"""
    base_url = ctx.obj["api_url"]
    print_info(f"Checking connection to: {base_url}")

    try:
        with DelayedJobsClient(base_url) as client:
            health = client.health_check()
    except DelayedJobsAPIError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Delayed Jobs API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can point the CLI elsewhere with:\n"
            f"[cyan]delayed-jobs --api-url <url> status[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    database = health.get("database", {})
    dispatcher = health.get("dispatcher", {})
    queue = health.get("queue") or {}
    healthy = health.get("ok", False)

    console.print(Panel(
        f"{'🚀 [green]Healthy[/green]' if healthy else '⚠️ [red]Unhealthy[/red]'}\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Database: {'[green]connected[/green]' if database.get('connected') else '[red]unreachable[/red]'}\n"
        f"• Dispatcher: {'[green]running[/green]' if dispatcher.get('running') else '[yellow]stopped[/yellow]'}\n"
        f"• Queues: {', '.join(dispatcher.get('registered_queues', [])) or '—'}\n\n"
        f"• Ready: [cyan]{queue.get('ready', 0)}[/cyan]  "
        f"Scheduled: [cyan]{queue.get('scheduled', 0)}[/cyan]  "
        f"Running: [yellow]{queue.get('locked', 0)}[/yellow]  "
        f"Failed: [red]{queue.get('failed', 0)}[/red]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green" if healthy else "red"
    ))

    if not healthy:
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    api_url: str = typer.Option(
        DEFAULT_API_URL,
        "--api-url",
        envvar="DELAYED_JOBS_API_URL",
        help="Base URL of the Delayed Jobs API",
    ),
    version: bool | None = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    ⏳ Delayed Jobs CLI

    Enqueue and inspect persistent background jobs, or run a worker.
    """
    if version:
        from . import __version__
        console.print(f"Delayed Jobs CLI v{__version__}")
        raise typer.Exit()

    ctx.obj = {"api_url": api_url}
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
