"""
CLI entry point for the streamsync.cli module.

This allows running: python -m streamsync.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
