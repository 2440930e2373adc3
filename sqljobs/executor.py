# executor.py
import asyncio
import inspect
import logging

from sqljobs.errors import HandlerError, SqlJobsError
from sqljobs.models import JobStatus
from sqljobs.triggers import next_cron_run
from sqljobs.util import utcnow

logger = logging.getLogger(__name__)


def _log_transition(job_id, old_state, new_state, extra=""):
    logger.info("Job %s: %s → %s %s", job_id, old_state, new_state, extra)


def _log_lost_claim(job, status):
    logger.warning(
        "Job %s: claim for attempt %s is no longer current, not marking it %s",
        job.id, job.attempts, status.value,
    )


async def _resolve(awaitable):
    return await awaitable


def call_maybe_async(fn, *args):
    """Call ``fn`` and, if it hands back an awaitable, run it to completion.

    Runs on a pool thread, which has no event loop of its own.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        return asyncio.run(_resolve(result))
    return result


class JobExecutor:
    """Runs one claimed job and writes its outcome back to the table.

    ``execute`` never raises: every path ends in a status write or a log line.
    """

    def __init__(self, jobs, registry, max_retries=3, clock=None):
        self.jobs = jobs
        self.registry = registry
        self.max_retries = max_retries
        self.clock = clock or utcnow

    def execute(self, job):
        definition = self.registry.lookup(job.name)
        if definition is None:
            # No handler: the row stays running until someone rescues it.
            logger.warning(
                "Job %s: no handler registered for %r, leaving it %s",
                job.id, job.name, job.status.value,
            )
            return

        try:
            call_maybe_async(definition.handler, job.payload)
        except Exception as exc:
            self._handle_failure(job, definition, exc)
        else:
            self._handle_success(job, definition)

    def _handle_success(self, job, definition):
        now = self.clock()
        try:
            updated = self.jobs.set_status(job.id, JobStatus.COMPLETED, now, attempts=job.attempts)
        except SqlJobsError:
            logger.exception("Job %s: could not mark completed", job.id)
            return
        if not updated:
            _log_lost_claim(job, JobStatus.COMPLETED)
            return
        _log_transition(job.id, JobStatus.RUNNING.value, JobStatus.COMPLETED.value,
                        f"(attempts={job.attempts})")

        if job.is_recurring:
            self._schedule_next(job, definition, now)

    def _schedule_next(self, job, definition, now):
        try:
            run_at = next_cron_run(job.cron, now)
            new_id = self.jobs.insert(
                definition.name,
                job.data,
                run_at,
                now,
                priority=definition.priority,
                cron=job.cron,
                ignore_conflicts=True,
            )
        except SqlJobsError:
            logger.exception("Job %s: could not schedule next run of %r", job.id, job.cron)
            return
        if new_id is None:
            logger.info("Job %s: next run of %s at %s already scheduled", job.id, job.name, run_at)
        else:
            logger.info("Job %s: scheduled next run as job %s at %s", job.id, new_id, run_at)

    def _handle_failure(self, job, definition, exc):
        exhausted = job.attempts >= self.max_retries
        new_status = JobStatus.FAILED if exhausted else JobStatus.PENDING
        logger.warning("Job %s (%s) raised on attempt %s/%s: %r",
                       job.id, job.name, job.attempts, self.max_retries, exc)

        try:
            updated = self.jobs.set_status(job.id, new_status, self.clock(), attempts=job.attempts)
        except SqlJobsError:
            logger.exception("Job %s: could not mark %s", job.id, new_status.value)
            return
        if not updated:
            _log_lost_claim(job, new_status)
            return
        _log_transition(job.id, JobStatus.RUNNING.value, new_status.value,
                        f"(attempts={job.attempts}, error={exc!r})")

        if exhausted and definition.on_failure is not None:
            error = HandlerError(job, exc)
            error.__cause__ = exc
            try:
                call_maybe_async(definition.on_failure, error)
            except Exception:
                logger.exception("Job %s: on_failure callback raised", job.id)
