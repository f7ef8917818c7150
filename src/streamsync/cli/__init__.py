"""Command-line interface for StreamSync."""
