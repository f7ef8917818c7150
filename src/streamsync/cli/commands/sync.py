from __future__ import annotations

import typer

from ...infra.exceptions import NotFoundError
from ...infra.settings import settings
from ...infra.uow import session
from ...pipeline.retry import SnoozeBatch
from ...shared.results import Err
from ...shared.types import SeriesDetailsMode
from ...usecases import epg_sync as _uc_epg
from ...usecases import provider_sync as _uc_provider_sync
from ...usecases import series_details as _uc_series_details
from ...usecases.providers import get_provider
from ._output import emit_json, fail, wants_json

app = typer.Typer(name="sync", help="Catalog, series details and EPG sync operations")


def _require_provider(provider_id: int, as_json: bool) -> None:
    try:
        with session() as db:
            get_provider(db, provider_id)
    except NotFoundError as e:
        fail(str(e), json_output=as_json, code="not_found")


@app.command("provider")
def sync_provider(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    series_details: SeriesDetailsMode = typer.Option(
        SeriesDetailsMode.SKIP, "--series-details", help="skip, immediate or enqueue"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Run a full provider sync inline."""
    as_json = wants_json(ctx, json_output)
    result = _uc_provider_sync.sync_provider(provider_id, series_details=series_details)
    if isinstance(result, Err):
        fail(str(result.reason), json_output=as_json, code=result.reason.kind.value)

    stats = result.value.as_dict()
    if as_json:
        emit_json({"status": "ok", "sync": stats})
        return
    typer.echo(f"Provider {provider_id} synced:")
    for key in ("live_channels_count", "movies_count", "series_count", "animes_count", "episodes_count"):
        typer.echo(f"  {key}: {stats[key]}")


@app.command("series-details")
def sync_series_details(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    enqueue: bool = typer.Option(False, "--enqueue", help="Fan out as background jobs instead of running inline"),
    batch_size: int = typer.Option(
        settings.series_details_batch_size, "--batch-size", min=1, help="Series per job"
    ),
    all_series: bool = typer.Option(False, "--all", help="Include series that already have episodes"),
    delay: int = typer.Option(
        settings.series_details_delay_between_batches, "--delay", min=0, help="Seconds between job batches"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Sync per-series seasons and episodes."""
    as_json = wants_json(ctx, json_output)
    _require_provider(provider_id, as_json)

    if enqueue:
        jobs = _uc_series_details.enqueue_all_for_provider(
            provider_id,
            batch_size=batch_size,
            only_missing=not all_series,
            delay_between_batches=delay,
        )
        if as_json:
            emit_json({"status": "ok", "enqueued_jobs": jobs})
        else:
            typer.echo(f"Enqueued {jobs} series details job(s)")
        return

    summary = _uc_series_details.sync_all_for_provider(provider_id)
    if as_json:
        emit_json({"status": "ok", "summary": summary})
    else:
        typer.echo(
            f"Series details: {summary['success_count']}/{summary['total']} ok, "
            f"{summary['failure_count']} failed, {summary['timeout_count']} timed out"
        )


@app.command("progress")
def series_progress(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show series details progress for a provider."""
    as_json = wants_json(ctx, json_output)
    _require_provider(provider_id, as_json)
    progress = _uc_series_details.sync_progress(provider_id)
    if as_json:
        emit_json({"status": "ok", "progress": progress})
    else:
        typer.echo(
            f"{progress['synced']}/{progress['total']} series synced "
            f"({progress['progress_percent']}%), {progress['pending_jobs']} job(s) outstanding"
        )


@app.command("epg")
def sync_epg(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Sync the program guide for every eligible live channel of a provider."""
    as_json = wants_json(ctx, json_output)
    result = _uc_epg.sync_provider_epg(provider_id)
    if isinstance(result, Err):
        fail(str(result.reason), json_output=as_json, code=result.reason.kind.value)
    if isinstance(result, SnoozeBatch):
        fail(
            f"EPG batch failure rate too high; retry in {result.seconds}s",
            json_output=as_json,
            code="snoozed",
        )

    stats = result.value.as_dict()
    if as_json:
        emit_json({"status": "ok", "epg": stats})
    else:
        typer.echo(
            f"EPG: {stats['synced']}/{stats['channels']} channels, "
            f"{stats['programs']} programs, {stats['failed']} failed"
        )


@app.command("epg-cleanup")
def epg_cleanup(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    hours: int = typer.Option(
        settings.epg_retention_hours, "--hours", min=0, help="Delete programs that ended this many hours ago"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Delete old program guide entries of a provider."""
    deleted = _uc_epg.cleanup_old_programs(provider_id, hours)
    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "deleted": deleted})
    else:
        typer.echo(f"Deleted {deleted} program(s)")
