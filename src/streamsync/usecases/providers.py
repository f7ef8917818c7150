"""
Provider management use cases: add, list, show, queue a sync, and keep the
configured drive-index system provider in line with settings.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.entities import Provider
from ..infra.events import publish_provider_status
from ..infra.exceptions import NotFoundError, ValidationError
from ..infra.settings import settings
from ..shared.clock import as_utc
from ..shared.types import ProviderType, SeriesDetailsMode, SyncStatus

logger = structlog.get_logger(__name__)

SYSTEM_PROVIDER_NAME = "GIndex"


def _validate_url(url: str, field: str = "url") -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL, got '{url}'")
    return url


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def provider_to_dict(provider: Provider) -> dict[str, Any]:
    return {
        "id": provider.id,
        "name": provider.name,
        "url": provider.url,
        "provider_type": provider.provider_type,
        "is_active": provider.is_active,
        "is_system": provider.is_system,
        "user_id": provider.user_id,
        "sync_status": provider.sync_status,
        "counts": {
            "live_channels": provider.live_channels_count,
            "movies": provider.movies_count,
            "series": provider.series_count,
            "animes": provider.animes_count,
            "episodes": provider.episodes_count,
        },
        "synced_at": {
            "live": _iso(provider.live_synced_at),
            "vod": _iso(provider.vod_synced_at),
            "series": _iso(provider.series_synced_at),
            "anime": _iso(provider.anime_synced_at),
            "epg": _iso(provider.epg_synced_at),
        },
    }


def add_provider(
    db: Session,
    *,
    name: str,
    url: str,
    provider_type: str = ProviderType.XTREAM.value,
    username: str | None = None,
    password: str | None = None,
    gindex_url: str | None = None,
    user_id: int | None = None,
    is_active: bool = True,
) -> dict[str, Any]:
    """
    Create a provider.

    Tag-based providers need credentials; drive-index providers need a
    ``gindex_url`` (defaults to ``url``). Raises ``ValidationError``.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 100:
        raise ValidationError("name must be at most 100 characters")

    try:
        kind = ProviderType(provider_type)
    except ValueError:
        raise ValidationError(
            f"Invalid provider type '{provider_type}'. Valid values: {[t.value for t in ProviderType]}"
        ) from None

    url = _validate_url(url)
    if kind is ProviderType.XTREAM:
        if not username or not password:
            raise ValidationError("username and password are required for xtream providers")
    else:
        gindex_url = _validate_url(gindex_url or url, "gindex_url")

    provider = Provider(
        name=name,
        url=url,
        username=username,
        password=password,
        provider_type=kind.value,
        gindex_url=gindex_url if kind is ProviderType.GINDEX else None,
        user_id=user_id,
        is_active=is_active,
        sync_status=SyncStatus.IDLE.value,
    )
    db.add(provider)
    db.flush()
    logger.info("provider_added", provider_id=provider.id, provider_type=kind.value)
    return provider_to_dict(provider)


def get_provider(db: Session, provider_id: int) -> Provider:
    provider = db.get(Provider, provider_id)
    if provider is None:
        raise NotFoundError(f"Provider {provider_id} not found")
    return provider


def show_provider(db: Session, provider_id: int) -> dict[str, Any]:
    return provider_to_dict(get_provider(db, provider_id))


def list_providers(db: Session, *, active_only: bool = False) -> list[dict[str, Any]]:
    stmt = select(Provider).order_by(Provider.id)
    if active_only:
        stmt = stmt.where(Provider.is_active.is_(True))
    return [provider_to_dict(p) for p in db.execute(stmt).scalars()]


def active_provider_ids(db: Session) -> list[int]:
    return list(
        db.execute(
            select(Provider.id).where(Provider.is_active.is_(True)).order_by(Provider.id)
        ).scalars()
    )


def mark_pending(db: Session, provider_id: int) -> Provider:
    provider = get_provider(db, provider_id)
    provider.sync_status = SyncStatus.PENDING.value
    publish_provider_status(provider.id, SyncStatus.PENDING.value, user_id=provider.user_id)
    return provider


def enqueue_sync(
    db: Session,
    provider_id: int,
    *,
    series_details: SeriesDetailsMode | str = SeriesDetailsMode.SKIP,
) -> dict[str, Any]:
    """
    Enqueue a provider sync job, deduplicated per provider.

    The provider is marked pending only when a new job is inserted; a sync
    already queued or running keeps the status it reported.
    """
    from ..jobs.queue import JobQueue, job_to_dict
    from ..workers.sync_provider import SyncProviderWorker

    mode = SeriesDetailsMode.parse(series_details)
    job, created = JobQueue(db).enqueue_or_existing(
        SyncProviderWorker, {"provider_id": provider_id, "series_details": mode.value}
    )
    if created:
        mark_pending(db, provider_id)
    return job_to_dict(job)


# System drive-index provider


def system_provider_config() -> dict[str, Any]:
    series_paths = [p.strip() for p in settings.gindex_series_paths.split(",") if p.strip()]
    return {
        "name": SYSTEM_PROVIDER_NAME,
        "url": settings.gindex_url,
        "gindex_url": settings.gindex_url,
        "gindex_drives": {
            "movies_path": settings.gindex_movies_path,
            "series_paths": series_paths,
            "anime_path": settings.gindex_anime_path,
        },
    }


def get_system_provider(db: Session) -> Provider | None:
    return db.execute(
        select(Provider).where(
            Provider.is_system.is_(True), Provider.provider_type == ProviderType.GINDEX.value
        )
    ).scalar_one_or_none()


def ensure_system_provider(db: Session) -> Provider | None:
    """
    Create the configured drive-index system provider, or update it when its
    configuration changed. Returns ``None`` when the feature is disabled.
    """
    if not settings.gindex_enabled:
        return None

    config = system_provider_config()
    if not config["gindex_url"]:
        raise ValidationError("GINDEX_URL is required when GINDEX_ENABLED is set")

    provider = get_system_provider(db)
    if provider is None:
        provider = Provider(
            provider_type=ProviderType.GINDEX.value,
            is_system=True,
            is_active=True,
            sync_status=SyncStatus.IDLE.value,
            **config,
        )
        db.add(provider)
        db.flush()
        logger.info("system_provider_created", provider_id=provider.id)
        return provider

    changed = {k: v for k, v in config.items() if getattr(provider, k) != v}
    if changed:
        for key, value in changed.items():
            setattr(provider, key, value)
        db.flush()
        logger.info("system_provider_updated", provider_id=provider.id, fields=sorted(changed))
    return provider


__all__ = [
    "add_provider",
    "get_provider",
    "show_provider",
    "list_providers",
    "active_provider_ids",
    "mark_pending",
    "enqueue_sync",
    "provider_to_dict",
    "system_provider_config",
    "get_system_provider",
    "ensure_system_provider",
]
