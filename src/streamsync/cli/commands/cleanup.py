from __future__ import annotations

import typer

from ...usecases.cleanup_orphans import cleanup_orphaned_user_data
from ._output import emit_json, wants_json

app = typer.Typer(name="cleanup", help="Data maintenance operations")


@app.command("orphans")
def cleanup_orphans(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Delete favorites and watch history pointing at content that no longer exists."""
    counts = cleanup_orphaned_user_data()
    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "deleted": counts})
    else:
        typer.echo(
            f"Deleted {counts['favorites']} orphaned favorite(s) and "
            f"{counts['watch_history']} orphaned watch history row(s)"
        )
