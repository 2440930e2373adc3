# cli.py
import importlib
import json
import logging
import time
from datetime import timedelta

import click

from sqljobs.config import TUNABLE_KEYS, SchedulerConfig
from sqljobs.errors import ConfigurationError
from sqljobs.jobs import JobTable
from sqljobs.models import JobStatus
from sqljobs.scheduler import Scheduler
from sqljobs.storage import Storage
from sqljobs.util import utcnow

STATUS_CHOICE = click.Choice([s.value for s in JobStatus])


class CliState:
    """Resolves config as defaults < env < config table < command line."""

    def __init__(self, database=None, table=None):
        self.database = database
        self.table = table
        self._storage = None
        self._config = None

    @property
    def storage(self):
        if self._storage is None:
            self._storage = Storage(self._base_config().database)
        return self._storage

    @property
    def config(self):
        if self._config is None:
            persisted = {}
            for key in TUNABLE_KEYS:
                value = self.storage.get_config(key)
                if value is not None:
                    persisted[key] = value
            cfg = self._base_config().merge(persisted)
            self._config = cfg.merge({"jobs_table": self.table})
        return self._config

    def _base_config(self):
        return SchedulerConfig.from_env().merge({"database": self.database})

    def jobs(self):
        return JobTable(self.storage, self.config.jobs_table)

    def scheduler(self, **overrides):
        cfg = self.config.merge(overrides)
        return Scheduler(cfg, storage=self.storage)


def load_app(target):
    """Import ``module:function`` and return the function."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise click.BadParameter("expected MODULE:FUNCTION", param_hint="--app")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise click.BadParameter(f"cannot import {module_name}: {exc}", param_hint="--app")
    fn = getattr(module, attr, None)
    if not callable(fn):
        raise click.BadParameter(f"{target} is not callable", param_hint="--app")
    return fn


def _build_scheduler(state, app, **overrides):
    try:
        scheduler = state.scheduler(**overrides)
    except ConfigurationError as exc:
        raise click.UsageError(str(exc))
    load_app(app)(scheduler)
    return scheduler


def _fmt_job(job):
    run_at = job.run_at.strftime("%Y-%m-%d %H:%M:%S") if job.run_at else "-"
    cron = f" | cron={job.cron}" if job.cron else ""
    return (f"{job.id} | {job.name} | status={job.status.value} | attempts={job.attempts}"
            f" | priority={job.priority} | run_at={run_at}{cron}")


@click.group()
@click.option("--db", "database", default=None, help="SQLite database path (env SQLJOBS_DATABASE)")
@click.option("--table", default=None, help="Jobs table name (env SQLJOBS_JOBS_TABLE)")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx, database, table, log_level):
    """sqljobs - SQL table backed job scheduler"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CliState(database=database, table=table)


# ---------------- Setup ----------------
@cli.command()
@click.pass_obj
def init(state):
    """Create the jobs table and indexes"""
    state.jobs().ensure_schema()
    click.echo(f"✅ Table {state.config.jobs_table} ready in {state.config.database}.")


# ---------------- Enqueue ----------------
@cli.command()
@click.argument("name")
@click.option("--app", required=True, help="MODULE:FUNCTION that registers jobs on a Scheduler")
@click.option("--data", default=None, help="JSON payload passed to the handler")
@click.option("--at", "when", default=None, help="When to run, e.g. 'in 10 minutes' or an ISO date")
@click.option("--cron", default=None, help="Cron expression for a recurring job")
@click.pass_obj
def enqueue(state, name, app, data, when, cron):
    """Add a job to the queue"""
    if when and cron:
        raise click.UsageError("--at and --cron are mutually exclusive")
    payload = None
    if data is not None:
        try:
            payload = json.loads(data)
        except ValueError as exc:
            raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--data")

    scheduler = _build_scheduler(state, app)
    if cron:
        job_id = scheduler.every(cron, name, payload)
    elif when:
        job_id = scheduler.schedule(when, name, payload)
    else:
        job_id = scheduler.queue(name, payload)

    if job_id is None:
        click.echo(f"❌ Job {name} was not enqueued (see log).")
        raise SystemExit(1)
    job = scheduler.get_job(job_id)
    click.echo(f"✅ Job {job_id} enqueued: {_fmt_job(job)}")


# ---------------- List Jobs ----------------
@cli.command(name="list")
@click.option("--status", default=None, type=STATUS_CHOICE, help="Filter jobs by status")
@click.option("--name", default=None, help="Filter by job name substring")
@click.option("--limit", default=50, show_default=True, type=int)
@click.pass_obj
def list_jobs(state, status, name, limit):
    """List jobs, newest first"""
    rows = state.jobs().list(status=status, name=name, limit=limit)
    if not rows:
        click.echo("No jobs found.")
        return
    for job in rows:
        click.echo(_fmt_job(job))


# ---------------- Status ----------------
@cli.command()
@click.pass_obj
def status(state):
    """Show summary of job statuses"""
    counts = state.jobs().count_by_status()
    if not any(counts.values()):
        click.echo("No jobs in the system yet.")
        return
    click.echo("📊 Job Status Summary:")
    for key, count in counts.items():
        click.echo(f"  {key}: {count}")


@cli.command()
@click.argument("job_id", type=int)
@click.pass_obj
def show(state, job_id):
    """Show details of a single job"""
    job = state.jobs().get(job_id)
    if job is None:
        click.echo(f"❌ Job {job_id} not found.")
        raise SystemExit(1)

    click.echo(f"🔎 Job {job.id}")
    click.echo(f"  Name: {job.name}")
    click.echo(f"  Status: {job.status.value}")
    click.echo(f"  Attempts: {job.attempts}")
    click.echo(f"  Priority: {job.priority}")
    click.echo(f"  Cron: {job.cron or '-'}")
    click.echo(f"  Run at: {job.run_at}")
    click.echo(f"  Created: {job.created_at or '-'}")
    click.echo(f"  Updated: {job.updated_at or '-'}")
    click.echo("  Data:")
    click.echo(json.dumps(job.payload, indent=2) if job.payload is not None else "(none)")


# ---------------- Worker ----------------
@cli.command()
@click.option("--app", required=True, help="MODULE:FUNCTION that registers jobs on a Scheduler")
@click.option("--max-concurrent-jobs", default=None, type=int, help="Handlers running at once (uses config if unset)")
@click.option("--process-every", default=None, type=int, help="Poll interval in ms (uses config if unset)")
@click.option("--max-retries", default=None, type=int, help="Attempts before a job fails (uses config if unset)")
@click.option("--shutdown-timeout", default=30.0, show_default=True, help="Seconds to wait for running jobs on Ctrl+C")
@click.pass_obj
def worker(state, app, max_concurrent_jobs, process_every, max_retries, shutdown_timeout):
    """Poll for due jobs until interrupted"""
    scheduler = _build_scheduler(
        state, app,
        max_concurrent_jobs=max_concurrent_jobs,
        process_every=process_every,
        max_retries=max_retries,
    )
    cfg = scheduler.config
    click.echo(f"🚀 Starting worker on {cfg.database}:{cfg.jobs_table} "
               f"(jobs={', '.join(scheduler.registry.names()) or '-'}, max={cfg.max_concurrent_jobs}, "
               f"every={cfg.process_every}ms, retries={cfg.max_retries})")
    scheduler.start()
    click.echo("Press Ctrl+C to stop the worker gracefully.")

    try:
        while scheduler.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        click.echo("\n🛑 Stopping worker ...")
    scheduler.stop(wait=True, timeout=shutdown_timeout)
    if scheduler.worker.active_count:
        click.echo(f"⚠️ {scheduler.worker.active_count} job(s) still running; they stay 'running' in the table.")
    else:
        click.echo("✅ Worker stopped cleanly.")


# ---------------- Failed jobs ----------------
@cli.group()
def failed():
    """Jobs that ran out of retries"""


@failed.command("list")
@click.option("--limit", default=50, show_default=True, type=int)
@click.pass_obj
def failed_list(state, limit):
    """List failed jobs"""
    rows = state.jobs().list(status=JobStatus.FAILED, limit=limit)
    if not rows:
        click.echo("No failed jobs.")
        return
    for job in rows:
        click.echo(_fmt_job(job))


@failed.command("retry")
@click.argument("job_id", type=int)
@click.pass_obj
def failed_retry(state, job_id):
    """Enqueue a fresh copy of a failed job"""
    new_id = state.jobs().clone_as_pending(job_id, utcnow())
    if new_id is None:
        click.echo(f"❌ Job {job_id} is not a failed job.")
        raise SystemExit(1)
    click.echo(f"♻️ Job {job_id} re-enqueued as job {new_id}.")


# ---------------- Config management ----------------
@cli.group()
def config():
    """Persisted defaults for workers"""


@config.command("set")
@click.argument("key", type=click.Choice(TUNABLE_KEYS))
@click.argument("value")
@click.pass_obj
def config_set(state, key, value):
    """Set a config key to a value"""
    try:
        SchedulerConfig().merge({key: value})
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc), param_hint="value")
    state.storage.set_config(key, value)
    click.echo(f"🛠️ Config '{key}' set to '{value}'.")


@config.command("get")
@click.argument("key", type=click.Choice(TUNABLE_KEYS))
@click.pass_obj
def config_get(state, key):
    """Get a config key"""
    value = state.storage.get_config(key)
    if value is None:
        click.echo(f"{key}={getattr(state.config, key)} (default)")
        return
    click.echo(f"{key}={value}")


@config.command("list")
@click.pass_obj
def config_list(state):
    """List all persisted config keys"""
    rows = state.storage.list_config()
    if not rows:
        click.echo("No config keys set.")
        return
    for row in rows:
        click.echo(f"{row['key']}={row['value']} (updated_at={row['updated_at']})")


# ---------------- Rescue operations ----------------
@cli.group()
def rescue():
    """Recovery tools for stuck jobs"""


@rescue.command("orphans")
@click.option("--older-than-seconds", default=600, show_default=True, type=int,
              help="Only rows running without an update for this long")
@click.pass_obj
def rescue_orphans(state, older_than_seconds):
    """Return jobs stuck in 'running' to 'pending'"""
    now = utcnow()
    ids = state.jobs().release_orphans(now - timedelta(seconds=older_than_seconds), now)
    if not ids:
        click.echo("No orphaned jobs found.")
        return
    click.echo(f"🔧 Returned {len(ids)} job(s) to pending: {', '.join(map(str, ids))}")
    for job in state.jobs().get_many(ids):
        click.echo(_fmt_job(job))


# ---------------- Dashboard ----------------
@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def dashboard(state, host, port):
    """Serve the read-only web dashboard"""
    import uvicorn

    from sqljobs.dashboard import create_app

    uvicorn.run(create_app(state.config, storage=state.storage), host=host, port=port)


# ---------------- Entrypoint ----------------
if __name__ == "__main__":
    cli()
