import logging

import pytest

from sqljobs.errors import StorageError
from sqljobs.storage import Storage


def test_config_helpers_upsert(storage):
    assert storage.get_config("max_retries") is None
    assert storage.get_config("max_retries", "3") == "3"

    storage.set_config("max_retries", 5)
    storage.set_config("max_retries", 7)
    storage.set_config("jobs_table", "queue")

    assert storage.get_config("max_retries") == "7"
    rows = storage.list_config()
    assert [r["key"] for r in rows] == ["jobs_table", "max_retries"]
    assert all(r["updated_at"] for r in rows)


def test_sqlite_errors_are_wrapped(storage):
    with pytest.raises(StorageError) as info:
        storage.execute("SELECT * FROM no_such_table")
    assert "no_such_table" in str(info.value)

    # The connection stays usable after a failed statement
    assert storage.execute("SELECT 1 AS one")[0]["one"] == 1


def test_query_timing_hook(db_path, caplog):
    timings = []
    storage = Storage(db_path, time_queries=True, log_queries=True, on_query_finish=timings.append)
    with caplog.at_level(logging.DEBUG, logger="sqljobs.storage"):
        storage.execute("SELECT :value AS v", {"value": 42})
    storage.close()

    assert timings and all(t >= 0 for t in timings)
    assert "SELECT 42 AS v" in caplog.text
    assert "Query finished in" in caplog.text


def test_timing_hook_not_called_when_disabled(db_path):
    timings = []
    storage = Storage(db_path, on_query_finish=timings.append)
    storage.execute("SELECT 1")
    storage.close()
    assert timings == []


def test_in_memory_database():
    storage = Storage(":memory:")
    storage.set_config("process_every", "100")
    assert storage.get_config("process_every") == "100"
    storage.close()


def test_unopenable_database(tmp_path):
    with pytest.raises(StorageError):
        Storage(str(tmp_path / "missing" / "dir" / "jobs.db"))
