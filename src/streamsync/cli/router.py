"""
CLI Router: centralized command group registration.

Each command group is a Typer app that handles its own subcommands; the
router keeps registration explicit and records which documentation page
describes each group.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer


class CliRouter:
    """Registers command groups on a root Typer application."""

    def __init__(self, root_app: typer.Typer) -> None:
        self.root_app = root_app
        self._registered_groups: dict[str, dict[str, Any]] = {}

    def register(
        self,
        name: str,
        command_group: typer.Typer,
        *,
        help_text: str | None = None,
        doc_path: str | None = None,
    ) -> None:
        """
        Register a command group with the router.

        Args:
            name: Command group name (e.g., "provider", "sync")
            command_group: Typer app instance for this command group
            help_text: Help text for the command group
            doc_path: Path to documentation file (relative to docs/cli/)
        """
        if name in self._registered_groups:
            raise ValueError(f"Command group '{name}' is already registered")

        self.root_app.add_typer(command_group, name=name, help=help_text)
        self._registered_groups[name] = {
            "name": name,
            "help": help_text,
            "doc_path": doc_path,
            "command_group": command_group,
        }

    def get_registered_groups(self) -> dict[str, dict[str, Any]]:
        return self._registered_groups.copy()

    def list_registered_groups(self) -> list[str]:
        """Registered command group names in registration order."""
        return list(self._registered_groups.keys())

    def validate_documentation_links(self, docs_root: Path | None = None) -> dict[str, bool]:
        """
        Map each registered group to whether its documentation file exists.

        ``docs_root`` defaults to ``<project root>/docs/cli``.
        """
        if docs_root is None:
            # src/streamsync/cli/ -> project root
            docs_root = Path(__file__).resolve().parents[3] / "docs" / "cli"

        results: dict[str, bool] = {}
        for name, metadata in self._registered_groups.items():
            doc_path = metadata.get("doc_path")
            if not doc_path:
                results[name] = False
                continue
            full_path = docs_root / doc_path
            results[name] = full_path.exists() and full_path.is_file()
        return results


_router: CliRouter | None = None


def get_router(root_app: typer.Typer) -> CliRouter:
    """Get or create the global CLI router instance."""
    global _router
    if _router is None:
        _router = CliRouter(root_app)
    return _router
