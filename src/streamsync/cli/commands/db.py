from __future__ import annotations

import typer

from ...domain import entities  # noqa: F401
from ...infra.db import Base, get_engine
from ._output import emit_json, wants_json

app = typer.Typer(name="db", help="Database schema operations")


@app.command("init")
def init_db(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create missing tables (development databases; use alembic elsewhere)."""
    engine = get_engine()
    Base.metadata.create_all(engine)
    tables = sorted(Base.metadata.tables)
    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "tables": tables})
    else:
        typer.echo(f"Schema ready ({len(tables)} tables)")
