from sqlalchemy import select

from streamsync.domain.entities import EpgProgram, Movie
from streamsync.pipeline.writer import (
    EPG_PROGRAM_UPSERT,
    MOVIE_UPSERT,
    dedupe_by_key,
    movie_rows,
    program_rows,
    upsert_rows,
)
from streamsync.shared.results import Err, FailureKind, Ok
from streamsync.shared.schemas import MovieRecord, ProgramRecord


def _movies(*pairs):
    return [MovieRecord.model_validate({"stream_id": sid, "name": name}) for sid, name in pairs]


def test_upsert_updates_in_place_and_keeps_surrogate_id(db, xtream_provider):
    first = upsert_rows(db, MOVIE_UPSERT, movie_rows(xtream_provider, _movies((1, "Heat"), (2, "Ronin"))))
    assert isinstance(first, Ok)
    db.commit()
    heat_id = db.execute(select(Movie.id).where(Movie.stream_id == 1)).scalar_one()

    second = upsert_rows(
        db, MOVIE_UPSERT, movie_rows(xtream_provider, _movies((1, "Heat (1995)"), (3, "Thief")))
    )
    assert isinstance(second, Ok)
    db.commit()

    rows = {m.stream_id: m for m in db.execute(select(Movie)).scalars()}
    assert sorted(rows) == [1, 2, 3]
    assert rows[1].id == heat_id
    assert rows[1].name == "Heat (1995)"


def test_duplicate_keys_in_one_payload_last_wins(db, xtream_provider):
    rows = movie_rows(xtream_provider, _movies((5, "Old"), (5, "New")))
    assert len(dedupe_by_key(MOVIE_UPSERT, rows)) == 1

    result = upsert_rows(db, MOVIE_UPSERT, rows)
    db.commit()

    assert isinstance(result, Ok)
    assert db.execute(select(Movie.name).where(Movie.stream_id == 5)).scalar_one() == "New"


def test_empty_payload_is_a_noop(db):
    assert upsert_rows(db, MOVIE_UPSERT, []) == Ok(0)


def test_constraint_violation_returns_persistence_err(db):
    # provider 999 does not exist; the foreign key rejects the chunk
    result = upsert_rows(db, MOVIE_UPSERT, movie_rows(999, _movies((1, "Orphan"))))

    assert isinstance(result, Err)
    assert result.reason.kind is FailureKind.PERSISTENCE
    # the session is still usable after the savepoint rollback
    assert db.execute(select(Movie)).scalars().all() == []


def test_program_rows_drop_incomplete_entries(xtream_provider):
    records = [
        ProgramRecord.model_validate({"title": "News", "start": 1700000000, "end": 1700003600}),
        ProgramRecord.model_validate({"title": "", "start": 1700003600, "end": 1700007200}),
        ProgramRecord.model_validate({"title": "Late", "start": 1700007200}),
    ]
    rows = program_rows(xtream_provider, "news.uk", records)
    assert [r["title"] for r in rows] == ["News"]


def test_program_upsert_replaces_revised_entry(db, xtream_provider):
    original = ProgramRecord.model_validate({"title": "Match", "start": 1700000000, "end": 1700003600})
    revised = ProgramRecord.model_validate(
        {"title": "Match (extra time)", "start": 1700000000, "end": 1700005400}
    )
    upsert_rows(db, EPG_PROGRAM_UPSERT, program_rows(xtream_provider, "sport.1", [original]))
    upsert_rows(db, EPG_PROGRAM_UPSERT, program_rows(xtream_provider, "sport.1", [revised]))
    db.commit()

    programs = db.execute(select(EpgProgram)).scalars().all()
    assert len(programs) == 1
    assert programs[0].title == "Match (extra time)"
