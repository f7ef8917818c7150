from __future__ import annotations

import signal
import threading

import typer

from ...infra.exceptions import JobError, NotFoundError
from ...infra.uow import session
from ...jobs.queue import JobQueue, job_to_dict
from ...jobs.worker import list_workers
from ...shared.types import JobState, SeriesDetailsMode
from ...usecases import providers as _uc_providers
from ._output import emit_json, fail, wants_json

app = typer.Typer(name="jobs", help="Background job queue operations")


@app.command("enqueue-sync")
def enqueue_sync(
    ctx: typer.Context,
    provider_id: int | None = typer.Argument(None, help="Provider id (omit with --all)"),
    all_providers: bool = typer.Option(False, "--all", help="Enqueue every active provider"),
    series_details: SeriesDetailsMode = typer.Option(
        SeriesDetailsMode.SKIP, "--series-details", help="skip, immediate or enqueue"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Mark providers pending and enqueue their sync jobs."""
    as_json = wants_json(ctx, json_output)
    if provider_id is None and not all_providers:
        fail("Provide a provider id or --all", json_output=as_json, code="validation")

    try:
        with session() as db:
            ids = _uc_providers.active_provider_ids(db) if all_providers else [provider_id]
            jobs = [_uc_providers.enqueue_sync(db, pid, series_details=series_details) for pid in ids]
    except NotFoundError as e:
        fail(str(e), json_output=as_json, code="not_found")

    if as_json:
        emit_json({"status": "ok", "jobs": jobs})
    else:
        for job in jobs:
            typer.echo(f"Job {job['id']} ({job['worker']}) {job['state']} for {job['args']}")


@app.command("enqueue")
def enqueue(
    ctx: typer.Context,
    worker: str = typer.Argument(..., help="Registered worker name"),
    provider_id: int | None = typer.Option(None, "--provider-id", help="provider_id job argument"),
    schedule_in: int | None = typer.Option(None, "--in", min=0, help="Delay in seconds"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Enqueue a job for any registered worker."""
    from ... import workers as _workers  # noqa: F401  (registers workers)

    as_json = wants_json(ctx, json_output)
    args = {"provider_id": provider_id} if provider_id is not None else {}
    try:
        with session() as db:
            job = job_to_dict(JobQueue(db).enqueue(worker, args, schedule_in=schedule_in))
    except JobError as e:
        fail(str(e), json_output=as_json, code="job")

    if as_json:
        emit_json({"status": "ok", "job": job})
    else:
        typer.echo(f"Job {job['id']} ({job['worker']}) {job['state']}")


@app.command("list")
def list_jobs(
    ctx: typer.Context,
    worker: str | None = typer.Option(None, "--worker", help="Filter by worker name"),
    state: list[JobState] | None = typer.Option(None, "--state", help="Filter by state (repeatable)"),
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum rows"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List recent jobs."""
    states = tuple(s.value for s in state) if state else None
    with session() as db:
        rows = [job_to_dict(j) for j in JobQueue(db).list_jobs(worker=worker, states=states, limit=limit)]

    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "total": len(rows), "jobs": rows})
        return
    if not rows:
        typer.echo("No jobs found")
        return
    for row in rows:
        typer.echo(
            f"{row['id']:>6}  {row['worker']:<22} {row['state']:<10} "
            f"attempt {row['attempt']}/{row['max_attempts']}  at {row['scheduled_at']}"
        )


@app.command("workers")
def workers(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List registered workers."""
    from ... import workers as _workers  # noqa: F401  (registers workers)

    names = list_workers()
    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "workers": names})
    else:
        for name in names:
            typer.echo(name)


@app.command("run")
def run(
    ctx: typer.Context,
    once: bool = typer.Option(False, "--once", help="Execute due jobs until none remain, then exit"),
    queue: list[str] | None = typer.Option(None, "--queue", help="Only run these queues (repeatable)"),
    max_workers: int | None = typer.Option(None, "--max-workers", min=1, help="Concurrent jobs"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Run the job runner (polling loop with periodic jobs)."""
    from ...jobs.runner import JobRunner

    runner = JobRunner(queues=queue or None, max_workers=max_workers)
    if once:
        executed = runner.drain()
        if wants_json(ctx, json_output):
            emit_json({"status": "ok", "executed": executed})
        else:
            typer.echo(f"Executed {executed} job(s)")
        return

    stop = threading.Event()

    def _stop(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    typer.echo("Job runner started. Press Ctrl+C to stop...")
    runner.run_forever(stop)
