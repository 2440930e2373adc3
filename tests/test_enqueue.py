import json
import logging
from datetime import datetime, timedelta, timezone

from sqljobs.models import JobStatus
from sqljobs.triggers import next_cron_run


def noop(data):
    return None


def test_queue_inserts_pending_row_due_now(scheduler, clock):
    scheduler.register("send-email", {"priority": 4}, noop)

    job_id = scheduler.queue("send-email", {"to": "a@b.com"})

    job = scheduler.get_job(job_id)
    assert job.status == JobStatus.PENDING
    assert job.run_at <= clock()
    assert job.priority == 4
    assert job.cron is None
    assert job.attempts == 0
    assert job.payload == {"to": "a@b.com"}
    assert json.loads(job.data) == {"to": "a@b.com"}


def test_queue_without_data_stores_null(scheduler):
    scheduler.register("ping", None, noop)
    job = scheduler.get_job(scheduler.queue("ping"))
    assert job.data is None
    assert job.payload is None
    assert job.priority == 0


def test_queue_unknown_job_is_logged_and_not_inserted(scheduler, caplog):
    with caplog.at_level(logging.ERROR, logger="sqljobs.scheduler"):
        assert scheduler.queue("missing", {"a": 1}) is None
    assert "missing" in caplog.text
    assert scheduler.jobs.list() == []


def test_schedule_relative_text(scheduler, clock):
    scheduler.register("report", {"priority": 1}, noop)

    job_id = scheduler.schedule("in 10 minutes", "report", {"kind": "daily"})

    job = scheduler.get_job(job_id)
    expected = clock() + timedelta(minutes=10)
    assert abs((job.run_at - expected).total_seconds()) <= 5
    assert job.status == JobStatus.PENDING
    assert job.priority == 1


def test_schedule_accepts_datetime(scheduler):
    scheduler.register("report", None, noop)
    when = datetime(2030, 5, 1, 8, 30)

    job = scheduler.get_job(scheduler.schedule(when, "report"))

    assert job.run_at == when.replace(tzinfo=timezone.utc)


def test_schedule_unparseable_date_inserts_nothing(scheduler, caplog):
    scheduler.register("report", None, noop)
    with caplog.at_level(logging.ERROR, logger="sqljobs.scheduler"):
        assert scheduler.schedule("banana", "report") is None
        assert scheduler.schedule("", "report") is None
    assert scheduler.jobs.list() == []
    assert "banana" in caplog.text


def test_schedule_unknown_job(scheduler):
    assert scheduler.schedule("in 5 minutes", "missing") is None
    assert scheduler.jobs.list() == []


def test_every_inserts_next_occurrence(scheduler, clock):
    scheduler.register("tick", {"priority": 2}, noop)

    job_id = scheduler.every("*/15 * * * *", "tick", {"n": 1})

    job = scheduler.get_job(job_id)
    assert job.cron == "*/15 * * * *"
    assert job.run_at == next_cron_run("*/15 * * * *", clock())
    assert job.run_at == datetime(2026, 1, 1, 12, 15, tzinfo=timezone.utc)
    assert job.priority == 2
    assert job.payload == {"n": 1}


def test_every_twice_keeps_one_pending_row(scheduler):
    scheduler.register("tick", None, noop)

    first = scheduler.every("0 * * * *", "tick")
    second = scheduler.every("0 * * * *", "tick")

    assert first is not None
    assert second is None
    assert len(scheduler.jobs.pending_for("tick", "0 * * * *")) == 1


def test_every_invalid_cron_inserts_nothing(scheduler, caplog):
    scheduler.register("tick", None, noop)
    with caplog.at_level(logging.ERROR, logger="sqljobs.scheduler"):
        assert scheduler.every("every tuesday", "tick") is None
    assert scheduler.jobs.list() == []


def test_job_decorator_registers_handler(scheduler):
    @scheduler.job("decorated", priority=7)
    def handler(data):
        return data

    assert handler({"x": 1}) == {"x": 1}
    definition = scheduler.registry.lookup("decorated")
    assert definition.handler is handler
    assert definition.priority == 7
    job = scheduler.get_job(scheduler.queue("decorated"))
    assert job.priority == 7
