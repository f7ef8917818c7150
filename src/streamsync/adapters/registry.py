"""
Registry of catalog sources.

Maps each provider type to a factory building its catalog source. Sync code
resolves sources here instead of instantiating them, which lets tests and
deployments swap in another implementation per provider type.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from ..shared.types import ProviderType
from .sources.base import CatalogSource, SourceConfigurationError
from .sources.json_source import JsonCatalogSource

if TYPE_CHECKING:
    from ..domain.entities import Provider

SourceFactory = Callable[[], CatalogSource]

# Default source factories per provider type
SOURCES: dict[ProviderType, SourceFactory] = {
    ProviderType.XTREAM: JsonCatalogSource,
    ProviderType.GINDEX: JsonCatalogSource,
}

_overrides: dict[ProviderType, SourceFactory] = {}


class UnsupportedProviderType(SourceConfigurationError):
    """Raised when no catalog source is registered for a provider type."""

    pass


def register_source(provider_type: ProviderType | str, factory: SourceFactory) -> None:
    """Override the source factory used for ``provider_type``."""
    _overrides[ProviderType(provider_type)] = factory


def reset_sources() -> None:
    """Drop all overrides and fall back to the default factories."""
    _overrides.clear()


def get_source_for_type(provider_type: ProviderType | str) -> CatalogSource:
    try:
        kind = ProviderType(provider_type)
    except ValueError as e:
        raise UnsupportedProviderType(f"Unsupported provider type: {provider_type}") from e

    factory = _overrides.get(kind) or SOURCES.get(kind)
    if factory is None:
        raise UnsupportedProviderType(f"No catalog source registered for {kind.value}")
    return factory()


def get_source(provider: Provider) -> CatalogSource:
    return get_source_for_type(provider.provider_type)


__all__ = [
    "SOURCES",
    "UnsupportedProviderType",
    "register_source",
    "reset_sources",
    "get_source",
    "get_source_for_type",
]
