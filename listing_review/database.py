"""SQLite job queue for background policy section summarization."""

import hashlib
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import DB_PATH
from .models import PolicySection

logger = logging.getLogger(__name__)

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
JOB_STATUSES = (PENDING, RUNNING, COMPLETED, FAILED)

_CREATE_SQL = """
CREATE TABLE IF NOT EXISTS section_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    category TEXT DEFAULT '',
    content_hash TEXT NOT NULL UNIQUE,
    status TEXT DEFAULT 'pending',
    attempts INTEGER DEFAULT 0,
    error TEXT DEFAULT '',
    result_json TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_section_jobs_status ON section_jobs(status, id);
"""

SectionProcessor = Callable[[str, str, str], PolicySection]


def get_db(db_path: Optional[Path] = None) -> sqlite3.Connection:
    db = sqlite3.connect(str(db_path or DB_PATH))
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA journal_mode=WAL")
    db.executescript(_CREATE_SQL)
    return db


def content_hash(title: str, content: str) -> str:
    return hashlib.sha256(f"{title.strip()}\n{content.strip()}".encode("utf-8")).hexdigest()


def enqueue_sections(sections: Iterable[dict], db_path: Optional[Path] = None) -> int:
    """Queue raw sections (title, content, category). Returns how many were new."""
    db = get_db(db_path)
    now = datetime.now().isoformat()
    added = 0
    for section in sections:
        title = str(section.get("title") or "").strip()
        content = str(section.get("content") or "").strip()
        if not title or not content:
            logger.warning("Skipping raw section without title or content: %r", title or content[:40])
            continue
        cursor = db.execute(
            """INSERT OR IGNORE INTO section_jobs
               (title, content, category, content_hash, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (title, content, str(section.get("category") or ""),
             content_hash(title, content), PENDING, now, now),
        )
        added += cursor.rowcount
    db.commit()
    db.close()
    return added


def claim_next_job(db_path: Optional[Path] = None) -> Optional[dict]:
    """Move the oldest pending job to running and return it, or None."""
    db = get_db(db_path)
    try:
        while True:
            row = db.execute(
                "SELECT * FROM section_jobs WHERE status = ? ORDER BY id LIMIT 1", (PENDING,)
            ).fetchone()
            if row is None:
                return None
            cursor = db.execute(
                "UPDATE section_jobs SET status=?, attempts=attempts+1, updated_at=? "
                "WHERE id=? AND status=?",
                (RUNNING, datetime.now().isoformat(), row["id"], PENDING),
            )
            db.commit()
            # Another worker got there first.
            if cursor.rowcount == 1:
                job = dict(row)
                job["status"] = RUNNING
                job["attempts"] = row["attempts"] + 1
                return job
    finally:
        db.close()


def complete_job(job_id: int, section: PolicySection, db_path: Optional[Path] = None) -> None:
    db = get_db(db_path)
    db.execute(
        "UPDATE section_jobs SET status=?, result_json=?, error='', updated_at=? WHERE id=?",
        (COMPLETED, json.dumps(section.to_payload()), datetime.now().isoformat(), job_id),
    )
    db.commit()
    db.close()


def fail_job(job_id: int, error: str, db_path: Optional[Path] = None) -> None:
    db = get_db(db_path)
    db.execute(
        "UPDATE section_jobs SET status=?, error=?, updated_at=? WHERE id=?",
        (FAILED, error, datetime.now().isoformat(), job_id),
    )
    db.commit()
    db.close()


def retry_failed_jobs(db_path: Optional[Path] = None) -> int:
    """Put failed jobs back in the queue."""
    db = get_db(db_path)
    cursor = db.execute(
        "UPDATE section_jobs SET status=?, updated_at=? WHERE status=?",
        (PENDING, datetime.now().isoformat(), FAILED),
    )
    db.commit()
    db.close()
    return cursor.rowcount


def job_progress(db_path: Optional[Path] = None) -> dict:
    db = get_db(db_path)
    rows = db.execute(
        "SELECT status, COUNT(*) AS n FROM section_jobs GROUP BY status"
    ).fetchall()
    db.close()
    counts = {status: 0 for status in JOB_STATUSES}
    for row in rows:
        counts[row["status"]] = row["n"]
    counts["total"] = sum(counts[s] for s in JOB_STATUSES)
    return counts


def list_jobs(status: Optional[str] = None, db_path: Optional[Path] = None) -> list[dict]:
    db = get_db(db_path)
    if status:
        rows = db.execute(
            "SELECT id, title, category, status, attempts, error, updated_at FROM section_jobs "
            "WHERE status = ? ORDER BY id", (status,)
        ).fetchall()
    else:
        rows = db.execute(
            "SELECT id, title, category, status, attempts, error, updated_at FROM section_jobs ORDER BY id"
        ).fetchall()
    db.close()
    return [dict(r) for r in rows]


def run_worker(
    processor: Optional[SectionProcessor] = None,
    max_jobs: Optional[int] = None,
    db_path: Optional[Path] = None,
) -> dict:
    """Process pending jobs one at a time until the queue is empty or max_jobs is hit.

    A job whose processor raises is marked failed with the error text and
    the worker moves on to the next one.
    """
    if processor is None:
        from .analysis import summarize_section
        processor = summarize_section

    stats = {"completed": 0, "failed": 0}
    while max_jobs is None or stats["completed"] + stats["failed"] < max_jobs:
        job = claim_next_job(db_path)
        if job is None:
            break
        try:
            section = processor(job["title"], job["content"], job["category"])
        except Exception as e:
            logger.warning("Section job %d (%s) failed: %s", job["id"], job["title"], e)
            fail_job(job["id"], str(e), db_path)
            stats["failed"] += 1
            continue
        complete_job(job["id"], section, db_path)
        stats["completed"] += 1
        logger.info("Summarized section %r (job %d)", job["title"], job["id"])
    return stats


class DatabaseStore:
    """Serves rules from a wrapped store and policy sections from completed jobs.

    Falls back to the wrapped store's sections while nothing has completed.
    """

    def __init__(self, rule_store, db_path: Optional[Path] = None):
        self.rule_store = rule_store
        self.db_path = db_path

    def fetch_rules(self):
        return self.rule_store.fetch_rules()

    def fetch_policy_sections(self) -> list[PolicySection]:
        db = get_db(self.db_path)
        rows = db.execute(
            "SELECT result_json FROM section_jobs WHERE status = ? ORDER BY id", (COMPLETED,)
        ).fetchall()
        db.close()
        sections = []
        for row in rows:
            try:
                section = PolicySection.from_record(json.loads(row["result_json"] or "null"))
            except json.JSONDecodeError:
                section = None
            if section is None:
                logger.warning("Skipping unreadable completed section job result")
                continue
            sections.append(section)
        if not sections:
            return self.rule_store.fetch_policy_sections()
        return sections
