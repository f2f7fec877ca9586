"""
Durable storage for reconciliation jobs, timelines and configuration.

SQLiteReconciliationStore keeps one row per job, one row per timeline and a
single configuration row in a WAL-mode SQLite database. Every call opens its
own connection, so a reader never waits on a writer and writers on different
jobs only contend for SQLite's short write lock.

Records are stored as JSON produced by the models' to_dict(); the indexed
columns (district, month, status, created time) are copies used for listing
and cleanup.

Errors from sqlite3 and the filesystem propagate unchanged; retry policy
belongs to the caller.
"""

import json
import os
import sqlite3
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from reconciliation.models import JobStatus, ReconciliationJob, ReconciliationTimeline
from shared.log import create_logger
from validation.config import ReconciliationConfig

log_trace, log_debug, log_info, log_warn, _ = create_logger("Store")

SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    district_id TEXT NOT NULL,
    target_month TEXT NOT NULL,
    status TEXT NOT NULL,
    created_ts REAL NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_jobs_district ON jobs (district_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs (status);
CREATE TABLE IF NOT EXISTS timelines (
    job_id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
"""

_CONFIG_KEY = 'reconciliation'


class ReconciliationStore(Protocol):
    """Interface for job/timeline/config persistence."""

    def get_job(self, job_id: str) -> Optional[ReconciliationJob]: ...
    def save_job(self, job: ReconciliationJob) -> None: ...
    def get_all_jobs(self) -> list[ReconciliationJob]: ...
    def get_jobs_by_district(self, district_id: str) -> list[ReconciliationJob]: ...
    def delete_job(self, job_id: str) -> bool: ...
    def cleanup_old_jobs(self, max_age_days: int = 90, now: Optional[datetime] = None) -> int: ...
    def get_timeline(self, job_id: str) -> Optional[ReconciliationTimeline]: ...
    def save_timeline(self, timeline: ReconciliationTimeline) -> None: ...
    def save_job_and_timeline(self, job: ReconciliationJob, timeline: ReconciliationTimeline) -> None: ...
    def get_config(self) -> Optional[ReconciliationConfig]: ...
    def save_config(self, config: ReconciliationConfig) -> None: ...


class SQLiteReconciliationStore:
    """
    SQLite-backed ReconciliationStore.

    Args:
        data_dir: Directory for reconciliation.db (created if missing)
        timeout: Seconds a writer waits for the database lock (default: 30.0)

    Usage:
        store = SQLiteReconciliationStore('/var/lib/district-recon')
        store.save_job(job)
        store.get_jobs_by_district('42')
    """

    DB_FILE = 'reconciliation.db'

    def __init__(self, data_dir: str, timeout: float = 30.0):
        self.data_dir = data_dir
        self.db_path = os.path.join(data_dir, self.DB_FILE)
        self._timeout = timeout
        os.makedirs(data_dir, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=self._timeout)

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version == 0:
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
                log_info(f"Reconciliation storage initialized at {self.db_path} (schema v{SCHEMA_VERSION})")
            elif version != SCHEMA_VERSION:
                log_warn(f"Schema version mismatch: found v{version}, expected v{SCHEMA_VERSION}")
            conn.commit()
        finally:
            conn.close()

    # =========================================================================
    # Jobs
    # =========================================================================

    def _write_job(self, conn: sqlite3.Connection, job: ReconciliationJob) -> None:
        conn.execute(
            """
            INSERT INTO jobs (id, district_id, target_month, status, created_ts, data)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                district_id = excluded.district_id,
                target_month = excluded.target_month,
                status = excluded.status,
                data = excluded.data
            """,
            (job.id, job.district_id, job.target_month, job.status.value,
             job.metadata.created_at.timestamp(), json.dumps(job.to_dict())),
        )

    def save_job(self, job: ReconciliationJob) -> None:
        conn = self._connect()
        try:
            with conn:
                self._write_job(conn, job)
        finally:
            conn.close()
        log_trace(f"Saved job {job.id} ({job.status.value})")

    def save_job_and_timeline(self, job: ReconciliationJob, timeline: ReconciliationTimeline) -> None:
        """Write a job and its timeline in one transaction; both or neither land."""
        conn = self._connect()
        try:
            with conn:
                self._write_job(conn, job)
                self._write_timeline(conn, timeline)
        finally:
            conn.close()
        log_trace(f"Saved job {job.id} ({job.status.value}) with "
                  f"{len(timeline.entries)} timeline entries")

    def get_job(self, job_id: str) -> Optional[ReconciliationJob]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT data FROM jobs WHERE id = ?", (job_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            log_debug(f"Reconciliation job not found: {job_id}")
            return None
        return ReconciliationJob.from_dict(json.loads(row[0]))

    def get_jobs(
        self,
        district_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None,
    ) -> list[ReconciliationJob]:
        """List jobs, newest first, optionally filtered by district and status."""
        clauses = []
        params: list = []
        if district_id is not None:
            clauses.append("district_id = ?")
            params.append(district_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(JobStatus(status).value)
        query = "SELECT data FROM jobs"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_ts DESC"
        if limit is not None and limit > 0:
            query += " LIMIT ?"
            params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [ReconciliationJob.from_dict(json.loads(row[0])) for row in rows]

    def get_all_jobs(self) -> list[ReconciliationJob]:
        return self.get_jobs()

    def get_jobs_by_district(self, district_id: str) -> list[ReconciliationJob]:
        return self.get_jobs(district_id=district_id)

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and its timeline together. Returns False if absent."""
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM timelines WHERE job_id = ?", (job_id,))
                deleted = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,)).rowcount
        finally:
            conn.close()
        if deleted:
            log_info(f"Reconciliation job deleted: {job_id}")
        return bool(deleted)

    def cleanup_old_jobs(self, max_age_days: int = 90, now: Optional[datetime] = None) -> int:
        """
        Delete finished jobs created more than ``max_age_days`` ago.

        Each job is removed together with its timeline in a single
        transaction. Active jobs are never removed.

        Args:
            max_age_days: Age cutoff in days
            now: Reference time (default: current time)

        Returns:
            Number of jobs deleted
        """
        reference = now or datetime.now(timezone.utc)
        cutoff = (reference - timedelta(days=max_age_days)).timestamp()

        conn = self._connect()
        try:
            with conn:
                rows = conn.execute(
                    "SELECT id FROM jobs WHERE created_ts < ? AND status != ?",
                    (cutoff, JobStatus.ACTIVE.value),
                ).fetchall()
                job_ids = [row[0] for row in rows]
                conn.executemany("DELETE FROM timelines WHERE job_id = ?", [(j,) for j in job_ids])
                conn.executemany("DELETE FROM jobs WHERE id = ?", [(j,) for j in job_ids])
        finally:
            conn.close()

        if job_ids:
            log_info(f"Cleaned up {len(job_ids)} reconciliation jobs older than {max_age_days} days")
        return len(job_ids)

    # =========================================================================
    # Timelines
    # =========================================================================

    def _write_timeline(self, conn: sqlite3.Connection, timeline: ReconciliationTimeline) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO timelines (job_id, data) VALUES (?, ?)",
            (timeline.job_id, json.dumps(timeline.to_dict())),
        )

    def save_timeline(self, timeline: ReconciliationTimeline) -> None:
        conn = self._connect()
        try:
            with conn:
                self._write_timeline(conn, timeline)
        finally:
            conn.close()
        log_trace(f"Saved timeline {timeline.job_id} ({len(timeline.entries)} entries)")

    def get_timeline(self, job_id: str) -> Optional[ReconciliationTimeline]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT data FROM timelines WHERE job_id = ?", (job_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            log_debug(f"Reconciliation timeline not found: {job_id}")
            return None
        return ReconciliationTimeline.from_dict(json.loads(row[0]))

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_config(self) -> Optional[ReconciliationConfig]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT data FROM config WHERE key = ?", (_CONFIG_KEY,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return ReconciliationConfig(**json.loads(row[0]))

    def save_config(self, config: ReconciliationConfig) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO config (key, data) VALUES (?, ?)",
                    (_CONFIG_KEY, json.dumps(config.model_dump())),
                )
        finally:
            conn.close()
        log_debug("Reconciliation configuration saved")

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_storage_stats(self) -> dict:
        """
        Get storage statistics.

        Returns:
            Dict with keys:
            - total_jobs: Number of stored jobs
            - jobs_by_status: {status: count}
            - jobs_by_district: {district_id: count}
            - storage_size: Database size in bytes (including WAL)
            - checked_at: time.time() of the query
        """
        conn = self._connect()
        try:
            by_status = dict(conn.execute(
                "SELECT status, COUNT(*) FROM jobs GROUP BY status"
            ).fetchall())
            by_district = dict(conn.execute(
                "SELECT district_id, COUNT(*) FROM jobs GROUP BY district_id"
            ).fetchall())
        finally:
            conn.close()

        storage_size = 0
        for suffix in ('', '-wal'):
            path = self.db_path + suffix
            if os.path.exists(path):
                storage_size += os.path.getsize(path)

        return {
            'total_jobs': sum(by_status.values()),
            'jobs_by_status': by_status,
            'jobs_by_district': by_district,
            'storage_size': storage_size,
            'checked_at': time.time(),
        }

    def __repr__(self) -> str:
        return f"SQLiteReconciliationStore(db_path={self.db_path!r})"


__all__ = ['ReconciliationStore', 'SQLiteReconciliationStore', 'SCHEMA_VERSION']
