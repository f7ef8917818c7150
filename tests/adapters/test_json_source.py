import json

import pytest

from streamsync.adapters import registry
from streamsync.adapters.sources.base import CatalogSource, SourceNotFoundError
from streamsync.adapters.sources.json_source import JsonCatalogSource
from streamsync.domain.entities import Provider
from streamsync.infra.exceptions import SourceError


@pytest.fixture
def provider():
    return Provider(id=3, name="Files", url="http://iptv.example.test", provider_type="xtream")


@pytest.fixture
def catalog_root(tmp_path):
    root = tmp_path / "catalog"
    base = root / "3"
    (base / "series").mkdir(parents=True)
    (base / "epg").mkdir()
    (base / "movies.json").write_text(
        json.dumps([{"stream_id": "1", "name": "Heat"}, {"name": "missing id"}, {"stream_id": 2}])
    )
    (base / "live.json").write_text(json.dumps([{"stream_id": 9, "name": "News", "epg_channel_id": "news.uk"}]))
    (base / "series.json").write_text(json.dumps([{"series_id": 40, "name": "Show"}]))
    (base / "series" / "40.json").write_text(
        json.dumps({"name": "Show", "seasons": [{"season_number": 1, "episodes": [{"id": 401, "episode_num": 1}]}]})
    )
    (base / "epg" / "9.json").write_text(
        json.dumps({"epg_listings": [{"title": "News", "start_timestamp": 1700000000, "stop_timestamp": 1700003600}]})
    )
    return root


def test_satisfies_catalog_source_protocol(catalog_root):
    assert isinstance(JsonCatalogSource(catalog_root), CatalogSource)


def test_listings_skip_invalid_records(catalog_root, provider):
    source = JsonCatalogSource(catalog_root)

    movies = source.fetch_movies(provider)

    assert [m.upstream_id for m in movies] == [1, 2]
    assert movies[1].name == "Unknown"
    assert [c.epg_channel_id for c in source.fetch_live_channels(provider)] == ["news.uk"]
    assert source.fetch_series(provider)[0].seasons is None


def test_missing_anime_listing_is_empty(catalog_root, provider):
    assert JsonCatalogSource(catalog_root).fetch_animes(provider) == []


def test_missing_listing_raises(tmp_path, provider):
    with pytest.raises(SourceNotFoundError):
        JsonCatalogSource(tmp_path).fetch_movies(provider)


def test_malformed_document_raises_source_error(catalog_root, provider):
    (catalog_root / "3" / "movies.json").write_text("{not json")
    with pytest.raises(SourceError):
        JsonCatalogSource(catalog_root).fetch_movies(provider)


def test_listing_must_be_a_list(catalog_root, provider):
    (catalog_root / "3" / "movies.json").write_text(json.dumps({"stream_id": 1}))
    with pytest.raises(SourceError):
        JsonCatalogSource(catalog_root).fetch_movies(provider)


async def test_series_info_is_keyed_by_requested_id(catalog_root, provider):
    record = await JsonCatalogSource(catalog_root).fetch_series_info(provider, 40)

    assert record.upstream_id == 40
    assert record.seasons[0].episodes[0].upstream_episode_id == 401


async def test_channel_epg_accepts_wrapped_listing(catalog_root, provider):
    programs = await JsonCatalogSource(catalog_root).fetch_channel_epg(provider, 9, "news.uk")
    assert [p.title for p in programs] == ["News"]


def test_file_url_overrides_root(catalog_root):
    provider = Provider(id=99, name="Local", url=(catalog_root / "3").as_uri(), provider_type="xtream")
    assert len(JsonCatalogSource("/nonexistent").fetch_movies(provider)) == 2


class TestRegistry:
    def test_defaults_per_type(self):
        assert isinstance(registry.get_source_for_type("xtream"), JsonCatalogSource)
        assert isinstance(registry.get_source_for_type("gindex"), JsonCatalogSource)

    def test_unknown_type(self):
        with pytest.raises(registry.UnsupportedProviderType):
            registry.get_source_for_type("m3u")

    def test_override_and_reset(self, make_source):
        fake = make_source()
        registry.register_source("xtream", lambda: fake)
        assert registry.get_source_for_type("xtream") is fake

        registry.reset_sources()
        assert isinstance(registry.get_source_for_type("xtream"), JsonCatalogSource)
