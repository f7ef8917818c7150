"""
Global test configuration for StreamSync.

Every test gets a fresh file-backed SQLite database wired in as the
process-wide session factory, a clean status broadcaster and the default
catalog source registry.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

# Ensure the project src directory is importable without an installed package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from streamsync.adapters import registry  # noqa: E402
from streamsync.domain.entities import Provider  # noqa: E402
from streamsync.infra import db as db_module  # noqa: E402
from streamsync.infra.events import broadcaster  # noqa: E402
from streamsync.shared.schemas import (  # noqa: E402
    ContainerRecord,
    LiveChannelRecord,
    MovieRecord,
    ProgramRecord,
)
from streamsync.shared.types import ProviderType, SyncStatus  # noqa: E402


class FakeSource:
    """In-memory catalog source; ``errors`` maps a listing name to an exception to raise."""

    name = "fake"

    def __init__(
        self,
        *,
        live=None,
        movies=None,
        series=None,
        animes=None,
        details=None,
        epg=None,
        errors=None,
    ):
        self.live = [LiveChannelRecord.model_validate(r) for r in live or []]
        self.movies = [MovieRecord.model_validate(r) for r in movies or []]
        self.series = [ContainerRecord.model_validate(r) for r in series or []]
        self.animes = [ContainerRecord.model_validate(r) for r in animes or []]
        self.details = details or {}
        self.epg = epg or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, object]] = []

    def _maybe_raise(self, key):
        exc = self.errors.get(key)
        if exc is not None:
            raise exc

    def fetch_live_channels(self, provider):
        self.calls.append(("live", provider.id))
        self._maybe_raise("live")
        return list(self.live)

    def fetch_movies(self, provider):
        self.calls.append(("movies", provider.id))
        self._maybe_raise("movies")
        return list(self.movies)

    def fetch_series(self, provider):
        self.calls.append(("series", provider.id))
        self._maybe_raise("series")
        return list(self.series)

    def fetch_animes(self, provider):
        self.calls.append(("animes", provider.id))
        self._maybe_raise("animes")
        return list(self.animes)

    async def fetch_series_info(self, provider, series_id):
        self.calls.append(("series_info", series_id))
        value = self.details.get(series_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            from streamsync.adapters.sources.base import SourceNotFoundError

            raise SourceNotFoundError(f"series {series_id}")
        return ContainerRecord.model_validate({"series_id": series_id, **value})

    async def fetch_channel_epg(self, provider, stream_id, epg_channel_id):
        self.calls.append(("epg", stream_id))
        value = self.epg.get(stream_id, [])
        if isinstance(value, Exception):
            raise value
        return [ProgramRecord.model_validate(p) for p in value]


@pytest.fixture
def engine(tmp_path):
    engine = db_module.create_db_engine(f"sqlite:///{tmp_path / 'streamsync-test.db'}")
    db_module.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    """Session factory bound to the test database and installed process-wide."""
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    monkeypatch.setattr(db_module, "_session_local", factory)
    monkeypatch.setattr(db_module, "_engine", engine)
    return factory


@pytest.fixture
def db(session_factory):
    """A plain session for arranging and asserting state."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def _clean_globals():
    broadcaster.clear()
    registry.reset_sources()
    yield
    broadcaster.clear()
    registry.reset_sources()


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def xtream_provider(session_factory):
    """A configured tag-based provider, returned as its id."""
    with session_factory() as s:
        provider = Provider(
            name="Xtream Test",
            url="http://xtream.example.test",
            username="user",
            password="secret",
            provider_type=ProviderType.XTREAM.value,
            user_id=7,
            is_active=True,
            is_system=False,
            sync_status=SyncStatus.IDLE.value,
        )
        s.add(provider)
        s.commit()
        return provider.id


@pytest.fixture
def gindex_provider(session_factory):
    with session_factory() as s:
        provider = Provider(
            name="Drive Index",
            url="http://drive.example.test",
            gindex_url="http://drive.example.test",
            provider_type=ProviderType.GINDEX.value,
            is_active=True,
            is_system=False,
            sync_status=SyncStatus.IDLE.value,
        )
        s.add(provider)
        s.commit()
        return provider.id


@pytest.fixture
def fetch(session_factory):
    """Run one read in a short-lived session so no lock outlives the query."""

    def _fetch(stmt, *, scalars=True):
        with session_factory() as s:
            result = s.execute(stmt)
            return list(result.scalars()) if scalars else list(result.all())

    return _fetch
