"""Catalog source implementations."""

from .base import CatalogSource, SourceConfigurationError, SourceNotFoundError
from .json_source import JsonCatalogSource

__all__ = ["CatalogSource", "JsonCatalogSource", "SourceConfigurationError", "SourceNotFoundError"]
