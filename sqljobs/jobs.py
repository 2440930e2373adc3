# jobs.py
import logging

from sqljobs.errors import ConfigurationError
from sqljobs.models import Job, JobStatus
from sqljobs.util import (
    parameterize,
    query_string,
    sanitize_like,
    sanitize_sql_path,
    to_sqlite_date_string,
)

logger = logging.getLogger(__name__)

JOB_STATUSES = ", ".join(f"'{s.value}'" for s in JobStatus)


class JobTable:
    """All statements that touch the jobs table.

    The schema is created lazily: every operation makes sure it exists first,
    so a failed ``ensure_schema`` heals itself on the next call.
    """

    def __init__(self, storage, table="jobs"):
        if sanitize_sql_path(table) != table or not table:
            raise ConfigurationError(f"Invalid jobs table name: {table!r}")
        self.storage = storage
        self.table = table
        self._schema_ready = False

    # ---------------- Schema ----------------
    def ensure_schema(self):
        """Create the jobs table and its indexes if they are missing."""
        t = self.table
        self.storage.execute(query_string(
            f"CREATE TABLE IF NOT EXISTS {t} (",
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,",
            "  name TEXT NOT NULL,",
            "  data TEXT,",
            "  run_at DATETIME NOT NULL,",
            "  priority INTEGER NOT NULL DEFAULT 0,",
            "  cron TEXT,",
            "  attempts INTEGER NOT NULL DEFAULT 0,",
            f"  status TEXT NOT NULL DEFAULT '{JobStatus.PENDING.value}' CHECK (status IN ({JOB_STATUSES})),",
            "  updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,",
            "  created_at DATETIME DEFAULT CURRENT_TIMESTAMP",
            ")",
        ))
        self.storage.execute_batch([
            f"CREATE INDEX IF NOT EXISTS idx_{t}_status_run_at_priority ON {t} (status, run_at, priority DESC)",
            # One pending occurrence per cron job and trigger instant
            f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{t}_name_cron_run_at ON {t} (name, cron, run_at)",
        ])
        self._schema_ready = True

    def _ready(self):
        if not self._schema_ready:
            self.ensure_schema()

    # ---------------- Writes ----------------
    def insert(self, name, data, run_at, now, priority=0, cron=None, ignore_conflicts=False):
        """Insert a pending row and return its id.

        With ``ignore_conflicts`` a row that collides on (name, cron, run_at)
        is silently dropped and None is returned.
        """
        self._ready()
        verb = "INSERT OR IGNORE INTO" if ignore_conflicts else "INSERT INTO"
        rows = self.storage.execute(query_string(
            f"{verb} {self.table}",
            "(name, data, run_at, priority, cron, status, updated_at, created_at)",
            "VALUES (:name, :data, :run_at, :priority, :cron, :status, :now, :now)",
            "RETURNING id",
        ), {
            "name": name,
            "data": data,
            "run_at": to_sqlite_date_string(run_at),
            "priority": int(priority),
            "cron": cron,
            "status": JobStatus.PENDING.value,
            "now": to_sqlite_date_string(now),
        })
        return int(rows[0]["id"]) if rows else None

    def claim_due(self, now, limit):
        """Atomically move up to ``limit`` due pending rows to running.

        Selection, the status flip and the attempts increment happen in one
        UPDATE ... RETURNING statement, so two pollers can never both get
        the same row.
        """
        self._ready()
        if limit < 1:
            return []
        t = self.table
        rows = self.storage.execute(query_string(
            f"UPDATE {t}",
            "SET status = :running,",
            "  attempts = attempts + 1,",
            "  updated_at = :now",
            "WHERE status = :pending AND id IN (",
            "  SELECT id",
            f"  FROM {t}",
            "  WHERE status = :pending",
            "    AND run_at <= :now",
            "  ORDER BY priority DESC, run_at ASC, id ASC",
            "  LIMIT :limit",
            ")",
            "RETURNING *",
        ), {
            "running": JobStatus.RUNNING.value,
            "pending": JobStatus.PENDING.value,
            "now": to_sqlite_date_string(now),
            "limit": int(limit),
        })
        # RETURNING gives no ordering guarantee
        jobs = [Job.from_row(r) for r in rows]
        jobs.sort(key=lambda j: (-j.priority, j.run_at, j.id))
        return jobs

    def set_status(self, job_id, status, now, attempts=None):
        """Write a job outcome. Returns False when nothing was updated.

        With ``attempts`` the write only applies while the row is still the
        same claim (running, same attempt), so a claimant whose row was
        rescued and re-claimed cannot overwrite the newer claim.
        """
        self._ready()
        params = {"id": job_id, "status": JobStatus(status).value, "now": to_sqlite_date_string(now)}
        where = "WHERE id = :id"
        if attempts is not None:
            where += " AND status = :running AND attempts = :attempts"
            params.update(running=JobStatus.RUNNING.value, attempts=int(attempts))
        rows = self.storage.execute(query_string(
            f"UPDATE {self.table}",
            "SET status = :status, updated_at = :now",
            where,
            "RETURNING id",
        ), params)
        return bool(rows)

    def release_orphans(self, older_than, now):
        """Return running rows not touched since ``older_than`` to pending."""
        self._ready()
        rows = self.storage.execute(query_string(
            f"UPDATE {self.table}",
            "SET status = :pending, updated_at = :now",
            "WHERE status = :running AND updated_at <= :cutoff",
            "RETURNING id",
        ), {
            "pending": JobStatus.PENDING.value,
            "running": JobStatus.RUNNING.value,
            "cutoff": to_sqlite_date_string(older_than),
            "now": to_sqlite_date_string(now),
        })
        return sorted(int(r["id"]) for r in rows)

    def clone_as_pending(self, job_id, now):
        """Enqueue a fresh copy of a failed row, due immediately."""
        job = self.get(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return None
        return self.insert(
            job.name, job.data, now, now,
            priority=job.priority, cron=job.cron, ignore_conflicts=True,
        )

    # ---------------- Reads ----------------
    def get(self, job_id):
        self._ready()
        rows = self.storage.execute(
            f"SELECT * FROM {self.table} WHERE id = :id", {"id": job_id}
        )
        return Job.from_row(rows[0]) if rows else None

    def get_many(self, job_ids):
        self._ready()
        if not job_ids:
            return []
        args, placeholders = parameterize("id", list(job_ids))
        rows = self.storage.execute(
            f"SELECT * FROM {self.table} WHERE id IN ({placeholders}) ORDER BY id", args
        )
        return [Job.from_row(r) for r in rows]

    def list(self, status=None, name=None, limit=50):
        """Newest first, optionally filtered by status and name substring."""
        self._ready()
        where = []
        params = {"limit": int(limit)}
        if status:
            where.append("status = :status")
            params["status"] = JobStatus(status).value
        if name:
            where.append("name LIKE :name ESCAPE '\\'")
            params["name"] = f"%{sanitize_like(name)}%"
        rows = self.storage.execute(query_string(
            f"SELECT * FROM {self.table}",
            ("WHERE " + " AND ".join(where)) if where else "",
            "ORDER BY created_at DESC, id DESC",
            "LIMIT :limit",
        ), params)
        return [Job.from_row(r) for r in rows]

    def count_by_status(self):
        self._ready()
        rows = self.storage.execute(
            f"SELECT status, COUNT(*) AS count FROM {self.table} GROUP BY status"
        )
        counts = {s.value: 0 for s in JobStatus}
        for r in rows:
            counts[r["status"]] = int(r["count"])
        return counts

    def pending_for(self, name, cron):
        self._ready()
        rows = self.storage.execute(query_string(
            f"SELECT * FROM {self.table}",
            "WHERE name = :name AND cron = :cron AND status = :pending",
            "ORDER BY run_at",
        ), {"name": name, "cron": cron, "pending": JobStatus.PENDING.value})
        return [Job.from_row(r) for r in rows]
