"""
Pydantic schemas for upstream catalog records.

These are the structured listings a catalog source hands to the sync pipeline.
Upstream data is loosely typed (numbers as strings, empty strings for missing
values), so coercion is lenient: anything unparseable becomes ``None`` instead
of rejecting the whole record.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def parse_int(value: Any) -> int | None:
    """Parse an integer from ints, numeric strings (``"2019"``, ``"12abc"``) or floats."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        digits = ""
        for ch in value.strip():
            if ch.isdigit() or (ch == "-" and not digits):
                digits += ch
            else:
                break
        try:
            return int(digits)
        except ValueError:
            return None
    return None


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MovieRecord(_Record):
    """Upstream movie listing entry."""

    upstream_id: int = Field(validation_alias=AliasChoices("upstream_id", "stream_id"))
    name: str = "Unknown"
    title: str | None = None
    year: int | None = None
    container_extension: str | None = None
    source_path: str | None = Field(
        default=None, validation_alias=AliasChoices("source_path", "gindex_path", "direct_source")
    )
    stream_icon: str | None = None
    genre: str | None = None
    plot: str | None = None
    tmdb_id: str | None = None

    @field_validator("upstream_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        parsed = parse_int(value)
        return parsed if parsed is not None else value

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> int | None:
        return parse_int(value)

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return blank_to_none(value) or "Unknown"

    @field_validator(
        "title", "container_extension", "source_path", "stream_icon", "genre", "plot", mode="before"
    )
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return blank_to_none(value)

    @field_validator("tmdb_id", mode="before")
    @classmethod
    def _tmdb_to_str(cls, value: Any) -> str | None:
        value = blank_to_none(value)
        return None if value is None else str(value)


class EpisodeRecord(_Record):
    """Upstream episode under a season/release."""

    upstream_episode_id: int = Field(
        validation_alias=AliasChoices("upstream_episode_id", "episode_id", "id")
    )
    episode_num: int
    title: str | None = None
    name: str | None = None
    container_extension: str | None = None
    source_path: str | None = Field(
        default=None, validation_alias=AliasChoices("source_path", "gindex_path", "direct_source")
    )
    duration_secs: int | None = None

    @field_validator("upstream_episode_id", "episode_num", mode="before")
    @classmethod
    def _coerce_required_int(cls, value: Any) -> Any:
        parsed = parse_int(value)
        return parsed if parsed is not None else value

    @field_validator("duration_secs", mode="before")
    @classmethod
    def _coerce_optional_int(cls, value: Any) -> int | None:
        return parse_int(value)

    @field_validator("title", "name", "container_extension", "source_path", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return blank_to_none(value)


class SeasonRecord(_Record):
    """Upstream season (or drive-index release) with its episodes."""

    season_number: int
    name: str | None = None
    episode_count: int = 0
    source_path: str | None = Field(
        default=None, validation_alias=AliasChoices("source_path", "gindex_path")
    )
    episodes: list[EpisodeRecord] = Field(default_factory=list)

    @field_validator("season_number", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        parsed = parse_int(value)
        return parsed if parsed is not None else value

    @field_validator("episode_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return parse_int(value) or 0

    @model_validator(mode="after")
    def _count_from_episodes(self) -> SeasonRecord:
        if not self.episode_count and self.episodes:
            self.episode_count = len(self.episodes)
        return self

    @property
    def display_name(self) -> str:
        return self.name or f"Season {self.season_number}"


class ContainerRecord(_Record):
    """
    Upstream series or anime.

    ``seasons`` is ``None`` for listing-only records (tag-based catalogs list
    series without their seasons; details arrive later, one series at a time).
    """

    upstream_id: int = Field(validation_alias=AliasChoices("upstream_id", "series_id"))
    name: str = "Unknown"
    title: str | None = None
    year: int | None = None
    cover: str | None = None
    genre: str | None = None
    plot: str | None = None
    tmdb_id: str | None = None
    source_path: str | None = Field(
        default=None, validation_alias=AliasChoices("source_path", "gindex_path")
    )
    season_count: int = 0
    episode_count: int = 0
    seasons: list[SeasonRecord] | None = None

    @field_validator("upstream_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        parsed = parse_int(value)
        return parsed if parsed is not None else value

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> int | None:
        return parse_int(value)

    @field_validator("season_count", "episode_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return parse_int(value) or 0

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return blank_to_none(value) or "Unknown"

    @field_validator("title", "cover", "genre", "plot", "source_path", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return blank_to_none(value)

    @field_validator("tmdb_id", mode="before")
    @classmethod
    def _tmdb_to_str(cls, value: Any) -> str | None:
        value = blank_to_none(value)
        return None if value is None else str(value)

    @property
    def has_details(self) -> bool:
        return self.seasons is not None


class LiveChannelRecord(_Record):
    """Upstream live channel listing entry."""

    stream_id: int
    name: str = "Unknown"
    stream_icon: str | None = None
    epg_channel_id: str | None = None
    tv_archive: bool = False
    direct_source: str | None = None

    @field_validator("stream_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        parsed = parse_int(value)
        return parsed if parsed is not None else value

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return blank_to_none(value) or "Unknown"

    @field_validator("stream_icon", "epg_channel_id", "direct_source", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return blank_to_none(value)

    @field_validator("tv_archive", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip() not in ("", "0", "false", "False")
        return bool(value)


class ProgramRecord(_Record):
    """
    Upstream EPG entry.

    Title, start and end are optional at parse time: entries missing
    a title, start or end are dropped by the EPG sync rather than failing the
    whole channel.
    """

    title: str | None = None
    description: str | None = None
    start_time: datetime | None = Field(
        default=None, validation_alias=AliasChoices("start_time", "start", "start_timestamp")
    )
    end_time: datetime | None = Field(
        default=None, validation_alias=AliasChoices("end_time", "end", "stop_timestamp")
    )
    category: str | None = None
    lang: str | None = None

    @field_validator("title", "description", "category", "lang", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return blank_to_none(value)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        value = blank_to_none(value)
        if value is None:
            return None
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
            return datetime.fromtimestamp(int(value), tz=UTC)
        return value

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @property
    def is_complete(self) -> bool:
        return bool(self.title) and self.start_time is not None and self.end_time is not None


__all__ = [
    "parse_int",
    "MovieRecord",
    "EpisodeRecord",
    "SeasonRecord",
    "ContainerRecord",
    "LiveChannelRecord",
    "ProgramRecord",
]
