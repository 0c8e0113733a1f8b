"""Job Commands - Enqueue and inspect delayed jobs"""

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import DelayedJobsAPIError, DelayedJobsClient
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_queues_table,
    print_error,
    print_info,
    print_success,
)

console = Console()


def _base_url(ctx: typer.Context) -> str:
    return ctx.obj["api_url"]


def queues(ctx: typer.Context):
    """📋 List registered queues and their priorities"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            registered = client.list_queues()
    except DelayedJobsAPIError as e:
        print_error(f"Failed to list queues: {e}")
        raise typer.Exit(1) from None

    if not registered:
        print_info("No queues registered")
        return

    console.print(create_queues_table(registered))


def enqueue(
    ctx: typer.Context,
    queue_name: str = typer.Argument(..., help="Registered queue name"),
    actor_id: str = typer.Argument(..., help="Entity the job operates on"),
    delay: float | None = typer.Option(
        None, "--delay", "-d", min=0, help="Seconds to wait before the job runs"
    ),
):
    """➕ Enqueue a job"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            job = client.enqueue(queue_name, actor_id, delay_seconds=delay)
    except DelayedJobsAPIError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Enqueued job {job['id']}")
    console.print(create_job_panel(job))


def show(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job ID to show"),
):
    """🔍 Show a single job"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            job = client.get_job(job_id)
    except DelayedJobsAPIError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))
    if job.get("last_error"):
        console.print(Panel(job["last_error"], title="Last Error", border_style="red"))


def ready(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Number of jobs to show"),
):
    """⏰ List jobs that are due to run"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            jobs = client.ready_jobs(limit=limit)
    except DelayedJobsAPIError as e:
        print_error(f"Failed to list ready jobs: {e}")
        raise typer.Exit(1) from None

    if not jobs:
        console.print(Panel(
            "🎉 [green]No jobs waiting![/green]",
            title="Ready Jobs",
            border_style="green",
        ))
        return

    console.print(create_jobs_table(jobs, title="Ready Jobs"))


def failed(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Number of jobs to show"),
):
    """💥 List jobs that completed with a failure"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            jobs = client.failed_jobs(limit=limit)
    except DelayedJobsAPIError as e:
        print_error(f"Failed to list failed jobs: {e}")
        raise typer.Exit(1) from None

    if not jobs:
        print_info("No failed jobs")
        return

    console.print(create_jobs_table(jobs, title="Failed Jobs"))
    for job in jobs:
        if job.get("failure_reason"):
            console.print(f"• [cyan]{str(job['id'])[:8]}[/cyan]: [red]{job['failure_reason']}[/red]")


def list_jobs(
    ctx: typer.Context,
    actor_id: str | None = typer.Option(None, "--actor", "-a", help="Filter by actor"),
):
    """📋 List jobs for an actor, or all incomplete jobs"""
    try:
        with DelayedJobsClient(_base_url(ctx)) as client:
            jobs = client.list_jobs(actor_id=actor_id)
    except DelayedJobsAPIError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    if not jobs:
        print_info("No jobs found")
        return

    console.print(create_jobs_table(jobs))
    console.print(f"\n📊 [yellow]{len(jobs)}[/yellow] jobs")
