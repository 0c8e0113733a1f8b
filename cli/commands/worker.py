"""Worker Command - Run the job dispatcher in this process"""

import asyncio

import typer

from delayed_jobs.config.logging import setup_logging
from delayed_jobs.config.settings import get_settings
from delayed_jobs.v1.jobs.runtime import JobRuntime, create_runtime

from ..utils.formatting import print_info, print_success


async def _run_worker(runtime: JobRuntime, once: bool) -> int:
    try:
        if once:
            return await runtime.dispatcher.run_pending()

        await runtime.start(dispatch=True)
        # Consumers and poller run as tasks until the process is interrupted
        await asyncio.Event().wait()
        return 0
    finally:
        await runtime.close()


def worker(
    once: bool = typer.Option(
        False, "--once", help="Process due jobs a single time and exit"
    ),
):
    """⚙️ Run the dispatcher against the configured database"""
    settings = get_settings()
    setup_logging(settings)
    runtime = create_runtime(settings)

    print_info(
        f"Worker started (concurrency: {settings.job_dispatch_concurrency}, "
        f"poll interval: {settings.job_poll_interval_s}s)"
    )
    try:
        processed = asyncio.run(_run_worker(runtime, once))
    except KeyboardInterrupt:
        print_info("Worker stopped")
        return

    if once:
        print_success(f"Processed {processed} due jobs")
