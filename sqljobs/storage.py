# storage.py
import logging
import sqlite3
import threading
import time

from sqljobs.errors import StorageError
from sqljobs.util import get_full_query_string, to_sqlite_date_string, utcnow

logger = logging.getLogger(__name__)


class Storage:
    """Runs parameterized statements against one SQLite database.

    A single connection is shared by the dispatcher thread and the handler
    pool, so every statement runs under a lock and commits before the lock
    is released.
    """

    def __init__(self, db_path="jobs.db", time_queries=False, log_queries=False,
                 on_query_finish=None, busy_timeout=30.0):
        self.db_path = db_path
        self.time_queries = time_queries
        self.log_queries = log_queries
        self.on_query_finish = on_query_finish
        self._lock = threading.RLock()

        try:
            self.conn = sqlite3.connect(db_path, timeout=busy_timeout, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database {db_path!r}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row

        # Better concurrency for multiple pollers
        if db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")

        self._init_schema()

    def _init_schema(self):
        self.execute("""
        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)

    def close(self):
        with self._lock:
            self.conn.close()

    # ---------------- Statements ----------------
    def execute(self, sql, params=None):
        """Run one statement and return its rows (``RETURNING`` included)."""
        params = params if params is not None else {}
        if self.log_queries:
            logger.debug("Query:\n%s", get_full_query_string(sql, params))

        started = time.perf_counter()
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                rows = cur.fetchall()
                self.conn.commit()
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageError(str(exc)) from exc
        self._finish(started)
        return rows

    def execute_batch(self, statements):
        """Run statements in order; not atomic, stops at the first failure."""
        for sql in statements:
            self.execute(sql)

    def _rollback(self):
        try:
            self.conn.rollback()
        except sqlite3.Error:
            logger.debug("Rollback failed", exc_info=True)

    def _finish(self, started):
        if not self.time_queries:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.debug("Query finished in %.3f ms", elapsed_ms)
        if self.on_query_finish is not None:
            self.on_query_finish(elapsed_ms)

    # ---------------- Config helpers ----------------
    def get_config(self, key, default=None):
        rows = self.execute("SELECT value FROM config WHERE key = :key", {"key": key})
        return rows[0]["value"] if rows else default

    def set_config(self, key, value):
        now = to_sqlite_date_string(utcnow())
        self.execute("""
            INSERT INTO config (key, value, updated_at)
            VALUES (:key, :value, :now)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """, {"key": key, "value": str(value), "now": now})

    def list_config(self):
        rows = self.execute("SELECT key, value, updated_at FROM config ORDER BY key")
        return [dict(r) for r in rows]
