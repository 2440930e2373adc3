import pytest

from sqljobs.config import SchedulerConfig
from sqljobs.errors import ConfigurationError


def test_defaults():
    cfg = SchedulerConfig()
    assert cfg.database == "jobs.db"
    assert cfg.jobs_table == "jobs"
    assert cfg.max_concurrent_jobs == 10
    assert cfg.process_every == 5000
    assert cfg.max_retries == 3
    assert not cfg.time_queries
    assert not cfg.log_queries


@pytest.mark.parametrize("kwargs", [
    {"jobs_table": "jobs; DROP TABLE x"},
    {"jobs_table": "1jobs"},
    {"jobs_table": "config"},
    {"max_concurrent_jobs": 0},
    {"process_every": -5},
    {"max_retries": True},
    {"max_retries": "3"},
    {"database": ""},
])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        SchedulerConfig(**kwargs)


def test_from_env(monkeypatch):
    monkeypatch.setenv("SQLJOBS_DATABASE", " /tmp/app.db ")
    monkeypatch.setenv("SQLJOBS_JOBS_TABLE", "queue")
    monkeypatch.setenv("SQLJOBS_MAX_CONCURRENT_JOBS", "4")
    monkeypatch.setenv("SQLJOBS_PROCESS_EVERY", "250")
    monkeypatch.setenv("SQLJOBS_MAX_RETRIES", "not-a-number")
    monkeypatch.setenv("SQLJOBS_TIME_QUERIES", "yes")

    cfg = SchedulerConfig.from_env()

    assert cfg.database == "/tmp/app.db"
    assert cfg.jobs_table == "queue"
    assert cfg.max_concurrent_jobs == 4
    assert cfg.process_every == 250
    assert cfg.max_retries == 3
    assert cfg.time_queries is True
    assert cfg.log_queries is False


def test_merge_coerces_and_skips_none():
    cfg = SchedulerConfig().merge({
        "max_retries": "5",
        "process_every": 100,
        "log_queries": "on",
        "jobs_table": None,
    })
    assert cfg.max_retries == 5
    assert cfg.process_every == 100
    assert cfg.log_queries is True
    assert cfg.jobs_table == "jobs"


@pytest.mark.parametrize("values", [
    {"unknown": 1},
    {"max_retries": "three"},
    {"max_retries": "0"},
    {"time_queries": "maybe"},
])
def test_merge_rejects_bad_values(values):
    with pytest.raises(ConfigurationError):
        SchedulerConfig().merge(values)
