"""Upstream catalog adapters and their registry."""
