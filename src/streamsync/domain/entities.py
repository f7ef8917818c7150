"""
Domain entities for StreamSync.

This module contains the persisted catalog model. Every content table carries a
surrogate integer ``id`` referenced by user data (favorites, watch history) and a
unique natural key issued by the upstream catalog; sync code upserts on the
natural key and never rewrites the surrogate.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from ..infra.db import Base
from ..shared.types import JobState, ProviderType, SyncStatus

# sqlite only autoincrements INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), "sqlite")
JsonType = sa.JSON().with_variant(PG_JSONB(), "postgresql")


def _id_column() -> Mapped[int]:
    return mapped_column(IdType, primary_key=True, autoincrement=True)


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Provider(Base):
    """An upstream content source owned by a user (or the system)."""

    __tablename__ = "providers"

    id: Mapped[int] = _id_column()
    user_id: Mapped[int | None] = mapped_column(IdType, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProviderType.XTREAM.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Drive-index configuration
    gindex_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gindex_drives: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    sync_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SyncStatus.IDLE.value
    )

    live_channels_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    movies_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    series_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    animes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    episodes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    live_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vod_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    series_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    anime_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    epg_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    epg_sync_interval_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=6)

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    movies: Mapped[list[Movie]] = relationship(
        "Movie", back_populates="provider", cascade="all, delete-orphan", passive_deletes=True
    )
    series: Mapped[list[Series]] = relationship(
        "Series", back_populates="provider", cascade="all, delete-orphan", passive_deletes=True
    )
    live_channels: Mapped[list[LiveChannel]] = relationship(
        "LiveChannel", back_populates="provider", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def kind(self) -> ProviderType:
        return ProviderType(self.provider_type)

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name={self.name}, type={self.provider_type}, status={self.sync_status})>"


class LiveChannel(Base):
    """A live stream of a tag-based provider; EPG programs hang off ``epg_channel_id``."""

    __tablename__ = "live_channels"
    __table_args__ = (UniqueConstraint("provider_id", "stream_id"),)

    id: Mapped[int] = _id_column()
    provider_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    stream_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    stream_icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    epg_channel_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tv_archive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    direct_source: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    provider: Mapped[Provider] = relationship("Provider", back_populates="live_channels")


class Movie(Base):
    """Leaf content item. Natural key: (provider_id, stream_id)."""

    __tablename__ = "movies"
    __table_args__ = (UniqueConstraint("provider_id", "stream_id"),)

    id: Mapped[int] = _id_column()
    provider_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    stream_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    container_extension: Mapped[str | None] = mapped_column(String(16), nullable=True)
    source_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    stream_icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    genre: Mapped[str | None] = mapped_column(Text, nullable=True)
    plot: Mapped[str | None] = mapped_column(Text, nullable=True)
    tmdb_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    provider: Mapped[Provider] = relationship("Provider", back_populates="movies")

    def __repr__(self) -> str:
        return f"<Movie(id={self.id}, provider_id={self.provider_id}, stream_id={self.stream_id}, name={self.name})>"


class Series(Base):
    """
    Container entity for both series and anime (``content_type`` discriminator).

    Natural key: (provider_id, series_id).
    """

    __tablename__ = "series"
    __table_args__ = (
        UniqueConstraint("provider_id", "series_id"),
        Index("ix_series_provider_content_type", "provider_id", "content_type"),
    )

    id: Mapped[int] = _id_column()
    provider_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    series_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False, default="series")
    name: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover: Mapped[str | None] = mapped_column(Text, nullable=True)
    genre: Mapped[str | None] = mapped_column(Text, nullable=True)
    plot: Mapped[str | None] = mapped_column(Text, nullable=True)
    tmdb_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    source_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    season_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    episode_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    provider: Mapped[Provider] = relationship("Provider", back_populates="series")
    seasons: Mapped[list[Season]] = relationship(
        "Season",
        back_populates="series",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Season.season_number",
    )

    def __repr__(self) -> str:
        return f"<Series(id={self.id}, provider_id={self.provider_id}, series_id={self.series_id}, type={self.content_type})>"


class Season(Base):
    """A season (or anime release). Natural key: (series_id, season_number)."""

    __tablename__ = "seasons"
    __table_args__ = (UniqueConstraint("series_id", "season_number"),)

    id: Mapped[int] = _id_column()
    series_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("series.id", ondelete="CASCADE"), nullable=False
    )
    season_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    episode_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    series: Mapped[Series] = relationship("Series", back_populates="seasons")
    episodes: Mapped[list[Episode]] = relationship(
        "Episode",
        back_populates="season",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Episode.episode_num",
    )


class Episode(Base):
    """Leaf content item. Natural key: (season_id, episode_id); also unique per (season_id, episode_num)."""

    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("season_id", "episode_id"),
        UniqueConstraint("season_id", "episode_num"),
    )

    id: Mapped[int] = _id_column()
    season_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False
    )
    episode_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    episode_num: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    container_extension: Mapped[str | None] = mapped_column(String(16), nullable=True)
    source_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_secs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    season: Mapped[Season] = relationship("Season", back_populates="episodes")


class EpgProgram(Base):
    """Program guide entry. Natural key: (provider_id, epg_channel_id, start_time)."""

    __tablename__ = "epg_programs"
    __table_args__ = (
        UniqueConstraint("provider_id", "epg_channel_id", "start_time"),
        Index("ix_epg_programs_provider_end_time", "provider_id", "end_time"),
    )

    id: Mapped[int] = _id_column()
    provider_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    epg_channel_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    lang: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Favorite(Base):
    """A user's bookmark of a content row, referenced by surrogate id."""

    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "content_type", "content_id"),)

    id: Mapped[int] = _id_column()
    user_id: Mapped[int] = mapped_column(IdType, nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()


class WatchHistory(Base):
    """Playback history entry, referenced by surrogate content id."""

    __tablename__ = "watch_history"
    __table_args__ = (Index("ix_watch_history_content", "content_type", "content_id"),)

    id: Mapped[int] = _id_column()
    user_id: Mapped[int] = mapped_column(IdType, nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    watched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    progress_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SyncJob(Base):
    """A persisted background job (worker name + JSON args) and its attempt bookkeeping."""

    __tablename__ = "sync_jobs"
    __table_args__ = (
        Index("ix_sync_jobs_fetch", "queue", "state", "scheduled_at"),
        Index("ix_sync_jobs_unique_key", "unique_key"),
    )

    id: Mapped[int] = _id_column()
    worker: Mapped[str] = mapped_column(String(128), nullable=False)
    queue: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    args: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    state: Mapped[str] = mapped_column(
        String(16), nullable=False, default=JobState.AVAILABLE.value
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, nullable=False, default=list)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, worker={self.worker}, state={self.state}, attempt={self.attempt})>"


__all__ = [
    "Provider",
    "LiveChannel",
    "Movie",
    "Series",
    "Season",
    "Episode",
    "EpgProgram",
    "Favorite",
    "WatchHistory",
    "SyncJob",
]
