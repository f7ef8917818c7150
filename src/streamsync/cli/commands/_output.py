"""Shared output helpers for command groups."""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer


def wants_json(ctx: typer.Context | None, json_output: bool) -> bool:
    """True when either the command's or the root ``--json`` flag is set."""
    if json_output:
        return True
    obj = ctx.obj if ctx is not None else None
    return bool(isinstance(obj, dict) and obj.get("json"))


def emit_json(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def fail(message: str, *, json_output: bool, code: str = "error") -> NoReturn:
    if json_output:
        emit_json({"status": "error", "code": code, "error": message})
    else:
        typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)
