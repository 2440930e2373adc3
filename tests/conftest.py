"""Shared fixtures for the sqljobs test suite."""
from datetime import datetime, timedelta, timezone

import pytest

from sqljobs.config import SchedulerConfig
from sqljobs.scheduler import Scheduler
from sqljobs.storage import Storage

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "jobs.db")


@pytest.fixture
def storage(db_path):
    s = Storage(db_path)
    yield s
    s.close()


@pytest.fixture
def make_scheduler(db_path, clock):
    created = []

    def factory(**overrides):
        options = {"database": db_path, "process_every": 50}
        options.update(overrides)
        scheduler = Scheduler(SchedulerConfig(**options), clock=clock)
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        scheduler.stop(wait=True, timeout=5)
        scheduler.storage.close()


@pytest.fixture
def scheduler(make_scheduler):
    return make_scheduler()


@pytest.fixture
def run_cycle():
    def run(scheduler, timeout=5):
        """One claim cycle, then wait for every dispatched handler to finish."""
        claimed = scheduler.worker.tick()
        assert scheduler.worker.wait_for_idle(timeout)
        return claimed
    return run
