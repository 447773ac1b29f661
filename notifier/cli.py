"""
Notifier CLI - Command line interface for the notification pipeline.

Usage:
    notifier --help                 Show all commands
    notifier serve                  Start the API server (worker + sweeper in-process)
    notifier worker                 Run the delivery worker on its own
    notifier sweep                  Reclaim stuck jobs once
    notifier enqueue NUMBER TEXT    Queue a notification
    notifier stats                  Job counts per status
"""

import asyncio
import json
import signal

import typer

app = typer.Typer(
    name="notifier",
    help="Notifier CLI - attendance notification delivery",
    no_args_is_help=True,
)


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def worker(
    once: bool = typer.Option(False, "--once", help="Process one batch and exit"),
):
    """Run the delivery worker poll loop until interrupted."""
    from notifier.channels import build_channel
    from notifier.config import get_config
    from notifier.core.database import AsyncSessionLocal
    from notifier.core.logging import setup_logging
    from notifier.services.worker import DeliveryWorker
    from notifier.session import build_session_manager

    setup_logging()

    async def run() -> None:
        config = get_config()
        session_manager = build_session_manager(config)
        channel = build_channel(config, session_manager)
        delivery_worker = DeliveryWorker(
            channel, AsyncSessionLocal, config.worker, config.recipients
        )
        try:
            if once:
                results = await delivery_worker.run_once()
                for r in results:
                    line = f"{r.job_id}: {r.outcome}"
                    typer.echo(f"  {line} ({r.error})" if r.error else f"  {line}")
                typer.echo(f"\n{len(results)} job(s) processed")
                return

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, delivery_worker.stop)
            await delivery_worker.run()
        finally:
            await channel.aclose()
            await session_manager.close()

    asyncio.run(run())


@app.command()
def sweep():
    """Reclaim jobs stuck in processing (one sweeper pass)."""
    from notifier.core.database import AsyncSessionLocal
    from notifier.core.logging import setup_logging
    from notifier.services.sweeper import TRIGGER_MANUAL, run_sweep

    setup_logging()

    async def run() -> int:
        async with AsyncSessionLocal() as db:
            sweep_run = await run_sweep(db, TRIGGER_MANUAL)
            return sweep_run.reclaimed

    reclaimed = asyncio.run(run())
    if reclaimed:
        _print_warning(f"Reclaimed {reclaimed} stuck job(s)")
    else:
        _print_success("No stuck jobs")


@app.command()
def enqueue(
    recipient: str = typer.Argument(..., help="Phone number or group id"),
    message: str = typer.Argument(..., help="Message body (footer is appended)"),
    job_type: str = typer.Option("attendance", "--type", "-t", help="attendance or recap"),
    group: bool | None = typer.Option(
        None, "--group/--contact", help="Force group or contact addressing"
    ),
):
    """Queue a notification."""
    from notifier.core.database import AsyncSessionLocal
    from notifier.core.exceptions import StoreError
    from notifier.core.logging import setup_logging
    from notifier.services.producer import enqueue as enqueue_job

    setup_logging()

    async def run():
        async with AsyncSessionLocal() as db:
            return await enqueue_job(db, recipient, message, job_type, is_group=group)

    try:
        job = asyncio.run(run())
    except (StoreError, ValueError) as e:
        _print_error(str(e))
        raise typer.Exit(1) from e

    if job is None:
        _print_warning("Empty recipient, nothing queued")
        return
    _print_success(f"Queued {job.id} for {job.recipient}")


@app.command("retry-failed")
def retry_failed():
    """Move every failed job back to pending."""
    from notifier.core.database import AsyncSessionLocal
    from notifier.core.logging import setup_logging
    from notifier.services.admin import retry_all_failed

    setup_logging()

    async def run() -> int:
        async with AsyncSessionLocal() as db:
            return await retry_all_failed(db)

    _print_success(f"Requeued {asyncio.run(run())} failed job(s)")


@app.command("cancel-active")
def cancel_active(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every pending and processing job."""
    from notifier.core.database import AsyncSessionLocal
    from notifier.core.logging import setup_logging
    from notifier.services.admin import cancel_all_pending_and_processing

    if not yes:
        typer.confirm("Delete all pending and processing notifications?", abort=True)

    setup_logging()

    async def run() -> int:
        async with AsyncSessionLocal() as db:
            return await cancel_all_pending_and_processing(db)

    _print_success(f"Cancelled {asyncio.run(run())} job(s)")


@app.command()
def stats(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show job counts per status."""
    from notifier.core.database import AsyncSessionLocal
    from notifier.services.admin import counts

    async def run() -> dict[str, int]:
        async with AsyncSessionLocal() as db:
            return await counts(db)

    result = asyncio.run(run())
    if as_json:
        typer.echo(json.dumps(result))
        return
    for status, count in result.items():
        typer.echo(f"  {status:<11} {count}")


@app.command("init-db")
def init_db():
    """Create tables directly (SQLite deployments without Alembic)."""
    from notifier.core.database import create_tables

    asyncio.run(create_tables())
    _print_success("Tables created")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "notifier.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
