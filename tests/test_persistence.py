import pytest
from sqlalchemy.exc import OperationalError

from profileharvest.persistence.db import create_db_engine
from profileharvest.persistence.errors import SinkError, StoreError
from profileharvest.persistence.models import HarvestRun
from profileharvest.persistence.repo import RunRepository


def broken_commit():
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


# =============================================================================
# Key-value store
# =============================================================================


def test_store_get_missing_key(store):
    assert store.get("SCRAPING_STATE") is None


def test_store_put_and_overwrite(store):
    store.put("SCRAPING_STATE", {"processed_ids": [1]})
    store.put("SCRAPING_STATE", {"processed_ids": [1, 2]})

    assert store.get("SCRAPING_STATE") == {"processed_ids": [1, 2]}


def test_store_delete(store):
    store.put("SEARCH_DUMP", {"items": []})

    assert store.delete("SEARCH_DUMP") is True
    assert store.delete("SEARCH_DUMP") is False
    assert store.get("SEARCH_DUMP") is None


def test_store_values_visible_to_new_session(engine, store):
    from sqlalchemy.orm import Session

    from profileharvest.persistence.store import KeyValueStore

    store.put("SCRAPING_STATE", {"total_processed": 7})

    with Session(engine) as other:
        assert KeyValueStore(other).get("SCRAPING_STATE") == {"total_processed": 7}


def test_store_write_failure_raises_store_error(store, monkeypatch):
    store.put("SCRAPING_STATE", {"total_processed": 1})
    monkeypatch.setattr(store.session, "commit", broken_commit)

    with pytest.raises(StoreError, match="SCRAPING_STATE") as excinfo:
        store.put("SCRAPING_STATE", {"total_processed": 2})

    assert isinstance(excinfo.value.cause, OperationalError)
    monkeypatch.undo()
    assert store.get("SCRAPING_STATE") == {"total_processed": 1}


# =============================================================================
# Dataset sink
# =============================================================================


def test_sink_append_and_count(sink):
    sink.append({"id": 1, "display_name": "A"}, "fp1")
    sink.append({"id": 2, "display_name": "B", "is_partial": True}, "fp1")
    sink.append({"id": 3, "display_name": "C"}, "fp2")

    assert sink.count("fp1") == {"complete": 1, "partial": 1, "total": 2}
    assert sink.count() == {"complete": 2, "partial": 1, "total": 3}


def test_sink_recorded_ids_are_strings(sink):
    sink.append({"id": 10}, "fp1")
    sink.append({"id": "abc"}, "fp1")
    sink.append({"id": 11}, "other")

    assert sink.recorded_ids("fp1") == {"10", "abc"}


def test_sink_iter_records_in_insertion_order(sink):
    for i in (5, 3, 9):
        sink.append({"id": i, "is_partial": i == 3}, "fp1")

    assert [r["id"] for r in sink.iter_records("fp1")] == [5, 3, 9]
    assert [r["id"] for r in sink.iter_records("fp1", include_partial=False)] == [5, 9]


def test_sink_failure_raises_sink_error(sink, monkeypatch):
    monkeypatch.setattr(sink.session, "commit", broken_commit)

    with pytest.raises(SinkError, match="record 4"):
        sink.append({"id": 4}, "fp1")

    monkeypatch.undo()
    assert sink.count("fp1")["total"] == 0


# =============================================================================
# Run log
# =============================================================================


def test_run_repository_lifecycle(session):
    runs = RunRepository(session)
    run = runs.create(
        query={"search_keywords": "x", "department": "", "institution": ""},
        query_fingerprint="fp1",
        max_items=25,
    )
    session.commit()

    runs.update_stats(run.id, candidates_found=25, records_complete=20, records_partial=5)
    runs.complete(run.id)
    session.commit()

    stored = session.get(HarvestRun, run.id)
    assert stored.status == "COMPLETED"
    assert stored.records_complete == 20
    assert stored.records_partial == 5
    assert stored.duration_seconds is not None


def test_run_repository_recent_order(session):
    runs = RunRepository(session)
    first = runs.create(query={}, query_fingerprint="a", max_items=1)
    second = runs.create(query={}, query_fingerprint="b", max_items=1)
    session.commit()

    assert [r.id for r in runs.get_recent()] == [second.id, first.id]
    assert [r.id for r in runs.get_recent(query_fingerprint="a")] == [first.id]


def test_file_engine_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "harvest.db"
    engine = create_db_engine(f"sqlite:///{path}")
    try:
        with engine.connect() as conn:
            mode = conn.exec_driver_sql("PRAGMA journal_mode").scalar()
        assert path.parent.is_dir()
        assert mode == "wal"
    finally:
        engine.dispose()
