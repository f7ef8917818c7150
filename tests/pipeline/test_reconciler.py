import pytest
from sqlalchemy import func, select

from streamsync.domain.entities import Episode, Season, Series
from streamsync.pipeline import reconciler
from streamsync.pipeline.reconciler import reconcile_chunk, reconcile_container
from streamsync.shared.results import Err, FailureKind, Ok
from streamsync.shared.schemas import ContainerRecord
from streamsync.shared.types import ContentKind


def _show(series_id=10, name="Show", seasons=None):
    payload = {"series_id": series_id, "name": name}
    if seasons is not None:
        payload["seasons"] = seasons
    return ContainerRecord.model_validate(payload)


def _season(number, episode_ids):
    return {
        "season_number": number,
        "episodes": [{"episode_id": eid, "episode_num": i + 1} for i, eid in enumerate(episode_ids)],
    }


def _count(db, model):
    return db.execute(select(func.count(model.id))).scalar_one()


def test_reconcile_creates_hierarchy_with_counts(db, xtream_provider):
    result = reconcile_container(
        db, xtream_provider, ContentKind.SERIES, _show(seasons=[_season(1, [101, 102]), _season(2, [201])])
    )
    db.commit()

    assert isinstance(result, Ok)
    assert result.value.seasons == 2
    assert result.value.episodes == 3
    series = db.execute(select(Series)).scalar_one()
    assert series.season_count == 2
    assert series.episode_count == 3
    assert [s.name for s in series.seasons] == ["Season 1", "Season 2"]


def test_reconcile_is_idempotent_and_keeps_ids(db, xtream_provider):
    record = _show(seasons=[_season(1, [101, 102])])
    reconcile_container(db, xtream_provider, ContentKind.SERIES, record)
    db.commit()
    ids_before = sorted(db.execute(select(Episode.id)).scalars())
    series_id_before = db.execute(select(Series.id)).scalar_one()

    reconcile_container(db, xtream_provider, ContentKind.SERIES, _show(name="Show (renamed)", seasons=[_season(1, [101, 102])]))
    db.commit()

    assert sorted(db.execute(select(Episode.id)).scalars()) == ids_before
    series = db.execute(select(Series)).scalar_one()
    assert series.id == series_id_before
    assert series.name == "Show (renamed)"
    assert _count(db, Season) == 1


def test_listing_only_record_leaves_children_alone(db, xtream_provider):
    reconcile_container(db, xtream_provider, ContentKind.SERIES, _show(seasons=[_season(1, [101, 102])]))
    db.commit()

    result = reconcile_container(db, xtream_provider, ContentKind.SERIES, _show(name="Listing"))
    db.commit()

    assert isinstance(result, Ok)
    assert result.value.episodes == 0
    series = db.execute(select(Series)).scalar_one()
    assert series.name == "Listing"
    assert series.episode_count == 2
    assert _count(db, Episode) == 2


def test_prune_removes_children_missing_upstream(db, xtream_provider):
    reconcile_container(
        db, xtream_provider, ContentKind.SERIES, _show(seasons=[_season(1, [101, 102]), _season(2, [201])])
    )
    db.commit()

    reconcile_container(
        db,
        xtream_provider,
        ContentKind.SERIES,
        _show(seasons=[_season(1, [101])]),
        prune_missing_children=True,
    )
    db.commit()

    assert list(db.execute(select(Episode.episode_id)).scalars()) == [101]
    assert list(db.execute(select(Season.season_number)).scalars()) == [1]


def test_failed_container_is_isolated_from_siblings(db, xtream_provider):
    good = _show(series_id=1, name="Good", seasons=[_season(1, [11])])
    # two episodes with the same number in one season violate (season_id, episode_num)
    bad = _show(
        series_id=2,
        name="Bad",
        seasons=[
            {
                "season_number": 1,
                "episodes": [
                    {"episode_id": 21, "episode_num": 1},
                    {"episode_id": 22, "episode_num": 1},
                ],
            }
        ],
    )
    also_good = _show(series_id=3, name="Also good", seasons=[_season(1, [31, 32])])

    result = reconcile_chunk(db, xtream_provider, ContentKind.SERIES, [good, bad, also_good])
    db.commit()

    assert result.succeeded == 2
    assert result.failed == 1
    assert result.children == 3
    assert sorted(db.execute(select(Series.series_id)).scalars()) == [1, 3]


def test_unexpected_error_in_one_container_keeps_siblings(db, xtream_provider, monkeypatch):
    real_upsert_season = reconciler.upsert_season

    def flaky_upsert_season(db, series, record, now):
        if series.series_id == 2:
            raise KeyError("season payload")
        return real_upsert_season(db, series, record, now)

    monkeypatch.setattr(reconciler, "upsert_season", flaky_upsert_season)
    shows = [
        _show(series_id=1, name="First", seasons=[_season(1, [11])]),
        _show(series_id=2, name="Broken", seasons=[_season(1, [21])]),
        _show(series_id=3, name="Third", seasons=[_season(1, [31, 32])]),
    ]

    result = reconcile_chunk(db, xtream_provider, ContentKind.SERIES, shows)
    db.commit()

    assert (result.succeeded, result.failed, result.children) == (2, 1, 3)
    assert sorted(db.execute(select(Series.series_id)).scalars()) == [1, 3]
    assert _count(db, Episode) == 3


def test_unexpected_error_is_reported_as_err(db, xtream_provider, monkeypatch):
    def broken_upsert_season(*args):
        raise RuntimeError("boom")

    monkeypatch.setattr(reconciler, "upsert_season", broken_upsert_season)

    outcome = reconcile_container(db, xtream_provider, ContentKind.SERIES, _show(seasons=[_season(1, [1])]))

    assert isinstance(outcome, Err)
    assert outcome.reason.kind is FailureKind.UNEXPECTED
    assert "boom" in outcome.reason.message


def test_anime_kind_is_recorded(db, xtream_provider):
    outcome = reconcile_container(db, xtream_provider, ContentKind.ANIME, _show(series_id=77, seasons=[]))
    db.commit()

    assert isinstance(outcome, Ok)
    assert db.execute(select(Series.content_type)).scalar_one() == "anime"


def test_movie_kind_is_not_a_container(db, xtream_provider):
    with pytest.raises(ValueError):
        reconcile_container(db, xtream_provider, ContentKind.MOVIE, _show())
