"""
Main CLI application using Typer with router-based command dispatch.

This module provides the operator command-line interface for StreamSync,
calling use cases and outputting JSON when requested.
"""

from __future__ import annotations

import typer

from ..infra.logging import configure_logging
from .commands import cleanup, db, jobs, provider, sync
from .router import get_router

app = typer.Typer(help="StreamSync catalog sync operator CLI")

router = get_router(app)

router.register(
    "provider",
    provider.app,
    help_text="Provider management operations",
    doc_path="provider.md",
)

router.register(
    "sync",
    sync.app,
    help_text="Catalog, series details and EPG sync operations",
    doc_path="sync.md",
)

router.register(
    "jobs",
    jobs.app,
    help_text="Background job queue operations",
    doc_path="jobs.md",
)

router.register(
    "cleanup",
    cleanup.app,
    help_text="Data maintenance operations",
    doc_path="cleanup.md",
)

router.register(
    "db",
    db.app,
    help_text="Database schema operations",
    doc_path="db.md",
)


@app.callback()
def main(
    ctx: typer.Context,
    json: bool = typer.Option(False, "--json", help="Output in JSON format"),
    log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """StreamSync - IPTV catalog synchronization."""
    configure_logging(level=log_level)
    ctx.ensure_object(dict)
    ctx.obj["json"] = json


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
