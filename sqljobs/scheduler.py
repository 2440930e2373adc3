# scheduler.py
import json
import logging

from sqljobs.config import SchedulerConfig
from sqljobs.errors import ParseError, SqlJobsError, UnknownJobError
from sqljobs.executor import JobExecutor
from sqljobs.jobs import JobTable
from sqljobs.models import JobOptions
from sqljobs.registry import JobRegistry
from sqljobs.storage import Storage
from sqljobs.triggers import next_cron_run, parse_when
from sqljobs.util import utcnow
from sqljobs.worker import Worker

logger = logging.getLogger(__name__)


class Scheduler:
    """Register handlers, enqueue work and run the poller.

    Usage::

        scheduler = Scheduler(SchedulerConfig(database="app.db"))
        scheduler.register("send-email", {"priority": 5}, send_email)
        scheduler.queue("send-email", {"to": "a@b.com"})
        scheduler.every("0 * * * *", "cleanup")
        scheduler.start()

    Every instance owns its registry, so several schedulers can live in one
    process (against different tables or databases).
    """

    def __init__(self, config=None, storage=None, clock=None, on_query_finish=None):
        self.config = config or SchedulerConfig()
        self.clock = clock or utcnow
        self.storage = storage or Storage(
            self.config.database,
            time_queries=self.config.time_queries,
            log_queries=self.config.log_queries,
            on_query_finish=on_query_finish,
        )
        self.registry = JobRegistry()
        self.jobs = JobTable(self.storage, self.config.jobs_table)
        self.executor = JobExecutor(
            self.jobs, self.registry, max_retries=self.config.max_retries, clock=self.clock,
        )
        self.worker = Worker(
            self.jobs,
            self.executor,
            max_concurrent_jobs=self.config.max_concurrent_jobs,
            process_every=self.config.process_every,
            clock=self.clock,
        )

    # ---------------- Lifecycle ----------------
    def start(self):
        """Create the schema if needed and start polling."""
        if self.worker.is_running:
            return
        try:
            self.jobs.ensure_schema()
        except SqlJobsError:
            # Retried lazily by the first claim
            logger.exception("Could not set up table %s", self.jobs.table)
        self.registry.freeze()
        self.worker.start()

    def stop(self, wait=False, timeout=None):
        """Stop polling. Handlers already running are left to finish."""
        self.worker.stop(wait=wait, timeout=timeout)
        self.registry.unfreeze()

    @property
    def running(self):
        return self.worker.is_running

    # ---------------- Registry ----------------
    def register(self, name, options, handler, on_failure=None):
        return self.registry.register(name, options, handler, on_failure)

    def job(self, name, priority=0, on_failure=None):
        """Decorator form of :meth:`register`."""
        def decorator(fn):
            self.register(name, JobOptions(priority=priority), fn, on_failure)
            return fn
        return decorator

    # ---------------- Enqueue ----------------
    def queue(self, name, data=None):
        """Run ``name`` as soon as a slot is free. Returns the row id or None."""
        try:
            definition = self._definition(name)
        except UnknownJobError as exc:
            logger.error("queue: %s", exc)
            return None
        now = self.clock()
        return self.jobs.insert(name, _dump(data), now, now, priority=definition.priority)

    def schedule(self, when, name, data=None):
        """Run ``name`` once at ``when`` ("in 10 minutes", "tomorrow 9am", a datetime)."""
        now = self.clock()
        try:
            definition = self._definition(name)
            run_at = parse_when(when, now)
        except (UnknownJobError, ParseError) as exc:
            logger.error("schedule: %s", exc)
            return None
        return self.jobs.insert(name, _dump(data), run_at, now, priority=definition.priority)

    def every(self, cron, name, data=None):
        """Run ``name`` on a cron schedule.

        Only the next occurrence is stored; each completion inserts the one
        after it. Registering the same (name, cron) twice before the next
        trigger is a no-op and returns None.
        """
        now = self.clock()
        try:
            definition = self._definition(name)
            run_at = next_cron_run(cron, now)
        except (UnknownJobError, ParseError) as exc:
            logger.error("every: %s", exc)
            return None
        job_id = self.jobs.insert(
            name, _dump(data), run_at, now,
            priority=definition.priority, cron=cron, ignore_conflicts=True,
        )
        if job_id is None:
            logger.info("every: %s (%s) already scheduled at %s", name, cron, run_at)
        return job_id

    # ---------------- Reads ----------------
    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def counts(self):
        return self.jobs.count_by_status()

    def _definition(self, name):
        definition = self.registry.lookup(name)
        if definition is None:
            raise UnknownJobError(name)
        return definition


def _dump(data):
    return json.dumps(data) if data is not None else None
