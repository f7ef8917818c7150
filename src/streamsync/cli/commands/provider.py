from __future__ import annotations

import typer

from ...infra.exceptions import NotFoundError, ValidationError
from ...infra.uow import session
from ...shared.types import ProviderType
from ...usecases import providers as _uc_providers
from ._output import emit_json, fail, wants_json

app = typer.Typer(name="provider", help="Provider management operations")


def _print_provider(result: dict) -> None:
    typer.echo(f"  ID: {result['id']}")
    typer.echo(f"  Name: {result['name']}")
    typer.echo(f"  Type: {result['provider_type']}")
    typer.echo(f"  URL: {result['url']}")
    typer.echo(f"  Active: {str(bool(result['is_active'])).lower()}")
    typer.echo(f"  Status: {result['sync_status']}")


@app.command("add")
def add_provider(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Provider name"),
    url: str = typer.Option(..., "--url", help="Provider base URL"),
    provider_type: ProviderType = typer.Option(ProviderType.XTREAM, "--type", help="Provider type"),
    username: str | None = typer.Option(None, "--username", help="Account username (xtream)"),
    password: str | None = typer.Option(None, "--password", help="Account password (xtream)"),
    gindex_url: str | None = typer.Option(None, "--gindex-url", help="Drive-index URL (gindex)"),
    user_id: int | None = typer.Option(None, "--user-id", help="Owning user id"),
    active: bool = typer.Option(True, "--active/--inactive", help="Initial active state"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create a provider."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            result = _uc_providers.add_provider(
                db,
                name=name,
                url=url,
                provider_type=provider_type.value,
                username=username,
                password=password,
                gindex_url=gindex_url,
                user_id=user_id,
                is_active=active,
            )
    except ValidationError as e:
        fail(str(e), json_output=as_json, code="validation")

    if as_json:
        emit_json({"status": "ok", "provider": result})
    else:
        typer.echo("Provider created:")
        _print_provider(result)


@app.command("list")
def list_providers(
    ctx: typer.Context,
    active_only: bool = typer.Option(False, "--active-only", help="Only list active providers"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List providers."""
    with session() as db:
        rows = _uc_providers.list_providers(db, active_only=active_only)

    if wants_json(ctx, json_output):
        emit_json({"status": "ok", "total": len(rows), "providers": rows})
        return
    if not rows:
        typer.echo("No providers found")
        return
    for row in rows:
        counts = row["counts"]
        typer.echo(
            f"{row['id']:>4}  {row['name']:<24} {row['provider_type']:<7} {row['sync_status']:<10} "
            f"live={counts['live_channels']} movies={counts['movies']} series={counts['series']} "
            f"animes={counts['animes']} episodes={counts['episodes']}"
        )


@app.command("show")
def show_provider(
    ctx: typer.Context,
    provider_id: int = typer.Argument(..., help="Provider id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show one provider with counts and last sync timestamps."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            result = _uc_providers.show_provider(db, provider_id)
    except NotFoundError as e:
        fail(str(e), json_output=as_json, code="not_found")

    if as_json:
        emit_json({"status": "ok", "provider": result})
        return
    _print_provider(result)
    for key, value in result["counts"].items():
        typer.echo(f"  {key}: {value}")
    for key, value in result["synced_at"].items():
        typer.echo(f"  {key} synced: {value or '-'}")


@app.command("ensure-system")
def ensure_system(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create or update the configured drive-index system provider."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            provider = _uc_providers.ensure_system_provider(db)
            result = _uc_providers.provider_to_dict(provider) if provider is not None else None
    except ValidationError as e:
        fail(str(e), json_output=as_json, code="validation")

    if as_json:
        emit_json({"status": "ok", "provider": result})
    elif result is None:
        typer.echo("System provider is disabled (GINDEX_ENABLED is not set)")
    else:
        typer.echo("System provider:")
        _print_provider(result)
