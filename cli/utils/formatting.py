"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _job_state(job: dict[str, Any]) -> str:
    if job.get("complete"):
        return "[red]failed[/red]" if job.get("completed_with_failure") else "[green]done[/green]"
    if job.get("locked"):
        return "[yellow]running[/yellow]"
    return "[cyan]queued[/cyan]"


def create_jobs_table(jobs: list[dict[str, Any]], title: str = "Jobs") -> Table:
    """Create a formatted table for a list of jobs"""
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Queue", justify="left", style="magenta")
    table.add_column("Actor", justify="left", style="white")
    table.add_column("Priority", justify="right", style="yellow")
    table.add_column("Run At", justify="left", style="green")
    table.add_column("Attempts", justify="right")
    table.add_column("State", justify="center")

    for job in jobs:
        table.add_row(
            str(job.get("id", ""))[:8],  # Short ID
            job.get("queue_name", ""),
            job.get("actor_id", ""),
            str(job.get("priority", "")),
            job.get("run_at", ""),
            str(job.get("attempts", 0)),
            _job_state(job),
        )

    return table


def create_queues_table(queues: list[dict[str, Any]]) -> Table:
    table = Table(title="Registered Queues", box=box.ROUNDED)

    table.add_column("Queue", justify="left", style="magenta")
    table.add_column("Priority", justify="right", style="yellow")
    table.add_column("Description", justify="left")

    for queue in queues:
        table.add_row(
            queue.get("queue_name", ""),
            str(queue.get("priority", "")),
            queue.get("description") or "—",
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create a detail panel for a single job"""
    lines = [
        f"• Queue: [magenta]{job.get('queue_name')}[/magenta]",
        f"• Actor: {job.get('actor_id')}",
        f"• Priority: [yellow]{job.get('priority')}[/yellow]",
        f"• Run at: [green]{job.get('run_at')}[/green]",
        f"• Attempts: {job.get('attempts')}",
        f"• State: {_job_state(job)}",
    ]
    if job.get("completed_at"):
        lines.append(f"• Completed at: {job['completed_at']}")
    if job.get("failure_reason"):
        lines.append(f"• Failure: [red]{job['failure_reason']}[/red]")

    return Panel("\n".join(lines), title=f"Job {job.get('id')}", border_style="cyan")
