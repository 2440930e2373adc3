# worker.py
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

from sqljobs.errors import SqlJobsError
from sqljobs.models import JobStatus
from sqljobs.util import utcnow

logger = logging.getLogger(__name__)


class Worker:
    """Timer-driven poller that claims due jobs and hands them to a pool.

    Cycles never overlap: the next wait starts only after the claim step of
    the current cycle has returned. Handlers keep running in the pool while
    the loop sleeps.
    """

    def __init__(self, jobs, executor, max_concurrent_jobs=10, process_every=5000,
                 clock=None, worker_id=None):
        self.jobs = jobs
        self.executor = executor
        self.max_concurrent_jobs = max_concurrent_jobs
        self.process_every = process_every
        self.clock = clock or utcnow
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

        self._active = 0
        self._cond = threading.Condition()
        self._stop_event = threading.Event()
        self._thread = None
        self._pool = None

    @property
    def active_count(self):
        with self._cond:
            return self._active

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._ensure_pool()
        self._thread = threading.Thread(target=self.run, name=f"{self.worker_id}-loop", daemon=True)
        self._thread.start()
        logger.info("%s started (max_concurrent_jobs=%s, process_every=%sms)",
                    self.worker_id, self.max_concurrent_jobs, self.process_every)

    def stop(self, wait=False, timeout=None):
        """Stop scheduling cycles. In-flight handlers are not cancelled."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        if wait:
            self.wait_for_idle(timeout)
        with self._cond:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)
        logger.info("%s stopped (%s job(s) still in flight)", self.worker_id, self.active_count)

    def run(self):
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.process_every / 1000.0)

    def tick(self):
        """Run one claim cycle; return how many jobs were dispatched."""
        with self._cond:
            slots = self.max_concurrent_jobs - self._active
        if slots <= 0:
            logger.debug("%s: all %s slots busy, skipping cycle", self.worker_id, self.max_concurrent_jobs)
            return 0

        pool = self._ensure_pool()
        if pool is None:
            logger.debug("%s: stopped, skipping cycle", self.worker_id)
            return 0

        try:
            claimed = self.jobs.claim_due(self.clock(), slots)
        except SqlJobsError:
            logger.exception("%s: claim failed, retrying next cycle", self.worker_id)
            return 0

        for job in claimed:
            logger.info("Job %s: %s → %s (claimed by %s, attempt %s)",
                        job.id, JobStatus.PENDING.value, JobStatus.RUNNING.value,
                        self.worker_id, job.attempts)
            self._dispatch(pool, job)
        return len(claimed)

    def wait_for_idle(self, timeout=None):
        """Block until no handler is in flight. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._active == 0, timeout)

    def _ensure_pool(self):
        """The current pool, created on first use. None once stopped."""
        with self._cond:
            if self._pool is None and not self._stop_event.is_set():
                self._pool = ThreadPoolExecutor(
                    max_workers=self.max_concurrent_jobs,
                    thread_name_prefix=f"{self.worker_id}-job",
                )
            return self._pool

    def _dispatch(self, pool, job):
        with self._cond:
            self._active += 1
        try:
            future = pool.submit(self.executor.execute, job)
        except RuntimeError:
            # Pool already shut down: the row stays running.
            logger.exception("Job %s: could not be dispatched", job.id)
            self._release()
            return
        future.add_done_callback(self._on_done)

    def _on_done(self, future):
        try:
            exc = None if future.cancelled() else future.exception()
            if exc is not None:
                logger.error("Executor raised outside its own handling", exc_info=exc)
        finally:
            self._release()

    def _release(self):
        with self._cond:
            self._active -= 1
            if self._active == 0:
                self._cond.notify_all()
