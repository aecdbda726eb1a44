"""
Translation job queue.

Durable state machine for translation jobs stored in DuckDB:

    pending -> processing -> completed | failed
    processing -> pending   (staleness reset)
    failed -> pending       (retry)

Every transition is a conditional UPDATE on the current status, so two
workers can never claim the same job.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from translate_mirror.database import load_json, utcnow

if TYPE_CHECKING:
    from translate_mirror.content.base import ContentStore
    from translate_mirror.database import Database

logger = logging.getLogger(__name__)

STALENESS_MINUTES = 5
DEFAULT_PER_PAGE = 50


class JobStatus(str, Enum):
    """Job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Why a job was created."""

    NEW = "NEW"
    EDIT = "EDIT"
    OLD = "OLD"


class JobNotFoundError(LookupError):
    """Raised when a job id does not exist."""


class InvalidTransitionError(ValueError):
    """Raised when a job is not in a state that allows the requested transition."""


@dataclass
class QueueJob:
    """Translation job record."""

    id: int
    parent_entity_id: int
    language: str
    status: JobStatus = JobStatus.PENDING
    type: JobType = JobType.NEW
    translated_entity_id: int | None = None
    edited_fields: list[str] = field(default_factory=list)
    error_message: str | None = None
    created_at: datetime | None = None
    claimed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class JobFilter:
    """Listing filter; unset fields do not filter."""

    status: JobStatus | None = None
    types: list[JobType] = field(default_factory=list)
    language: str | None = None
    search: str | None = None


@dataclass
class JobPage:
    """One page of a job listing."""

    jobs: list[QueueJob]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1


_JOB_COLUMNS = (
    "id, parent_entity_id, language, status, type, translated_entity_id, "
    "edited_fields, error_message, created_at, claimed_at, updated_at"
)


class TranslationQueue:
    """Queue operations over the translation_queue table."""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = utcnow,
        staleness: timedelta = timedelta(minutes=STALENESS_MINUTES),
        processing_delay: timedelta = timedelta(0),
    ):
        """
        Initialize the queue.

        Args:
            db: Database instance.
            clock: Source of the current (naive UTC) time.
            staleness: Age after which a processing job may be reset.
            processing_delay: Minimum age of a NEW job before it can be claimed.
        """
        self.db = db
        self.clock = clock
        self.staleness = staleness
        self.processing_delay = processing_delay

    # ==================== Creation ====================

    def enqueue(
        self,
        parent_entity_id: int,
        language: str,
        job_type: JobType = JobType.NEW,
        edited_fields: Sequence[str] | None = None,
    ) -> QueueJob:
        """Insert a pending job. Dedupe rules live with the triggers."""
        now = self.clock()
        fields_json = json.dumps(list(edited_fields)) if edited_fields else None
        row = self.db.conn.execute(
            f"""
            INSERT INTO translation_queue
            (id, parent_entity_id, language, status, type, edited_fields, created_at, updated_at)
            VALUES (nextval('translation_queue_id_seq'), ?, ?, ?, ?, ?, ?, ?)
            RETURNING {_JOB_COLUMNS}
            """,
            [
                parent_entity_id,
                language,
                JobStatus.PENDING.value,
                job_type.value,
                fields_json,
                now,
                now,
            ],
        ).fetchone()
        job = self._row_to_job(row)
        logger.info(
            "Queued %s job %s for entity %s (%s)", job.type.value, job.id, parent_entity_id, language
        )
        return job

    def has_job(
        self,
        parent_entity_id: int,
        language: str,
        *,
        job_type: JobType | None = None,
        status: JobStatus | None = None,
    ) -> bool:
        """Whether a job exists for the pair, optionally of a type/status."""
        conditions = ["parent_entity_id = ?", "language = ?"]
        params: list[Any] = [parent_entity_id, language]
        if job_type is not None:
            conditions.append("type = ?")
            params.append(job_type.value)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)

        row = self.db.conn.execute(
            f"SELECT 1 FROM translation_queue WHERE {' AND '.join(conditions)} LIMIT 1",
            params,
        ).fetchone()
        return row is not None

    def existing_pairs(self, parent_entity_ids: Iterable[int]) -> set[tuple[int, str]]:
        """(parent, language) pairs that already have a job of any type or status."""
        ids = list(parent_entity_ids)
        if not ids:
            return set()
        placeholders = ", ".join("?" for _ in ids)
        rows = self.db.conn.execute(
            f"""
            SELECT DISTINCT parent_entity_id, language FROM translation_queue
            WHERE parent_entity_id IN ({placeholders})
            """,
            ids,
        ).fetchall()
        return {(row[0], row[1]) for row in rows}

    def pending_edit(self, parent_entity_id: int, language: str) -> QueueJob | None:
        """The pending EDIT job for the pair, if any."""
        row = self.db.conn.execute(
            f"""
            SELECT {_JOB_COLUMNS} FROM translation_queue
            WHERE parent_entity_id = ? AND language = ? AND type = ? AND status = ?
            ORDER BY id LIMIT 1
            """,
            [parent_entity_id, language, JobType.EDIT.value, JobStatus.PENDING.value],
        ).fetchone()
        return self._row_to_job(row) if row else None

    def merge_edited_fields(self, job_id: int, edited_fields: Sequence[str]) -> QueueJob | None:
        """
        Add field names to a still-pending job.

        Returns None when the job was claimed in the meantime.
        """
        job = self.get(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return None
        merged = list(dict.fromkeys([*job.edited_fields, *edited_fields]))
        if merged == job.edited_fields:
            return job
        row = self.db.conn.execute(
            f"""
            UPDATE translation_queue SET edited_fields = ?, updated_at = ?
            WHERE id = ? AND status = ?
            RETURNING {_JOB_COLUMNS}
            """,
            [json.dumps(merged), self.clock(), job_id, JobStatus.PENDING.value],
        ).fetchone()
        return self._row_to_job(row) if row else None

    # ==================== Transitions ====================

    def claim_next(self, job_type: JobType | None = None) -> QueueJob | None:
        """
        Atomically claim the oldest claimable pending job.

        NEW jobs become claimable once they are older than the processing
        delay. A claim lost to another worker moves on to the next candidate.
        """
        now = self.clock()
        conditions = ["status = ?"]
        params: list[Any] = [JobStatus.PENDING.value]
        if job_type is not None:
            conditions.append("type = ?")
            params.append(job_type.value)
        if self.processing_delay > timedelta(0):
            conditions.append("(type <> ? OR created_at <= ?)")
            params.extend([JobType.NEW.value, now - self.processing_delay])

        candidates = self.db.conn.execute(
            f"SELECT id FROM translation_queue WHERE {' AND '.join(conditions)} ORDER BY id",
            params,
        ).fetchall()

        for (job_id,) in candidates:
            job = self._transition(job_id, JobStatus.PENDING, JobStatus.PROCESSING, claimed=True)
            if job is not None:
                return job
            logger.debug("Job %s was claimed by another worker", job_id)
        return None

    def claim(self, job_id: int) -> QueueJob:
        """Claim a specific pending job."""
        return self._require_transition(job_id, JobStatus.PENDING, JobStatus.PROCESSING, claimed=True)

    def complete(self, job_id: int, translated_entity_id: int | None = None) -> QueueJob:
        """Mark a processing job completed."""
        return self._require_transition(
            job_id,
            JobStatus.PROCESSING,
            JobStatus.COMPLETED,
            translated_entity_id=translated_entity_id,
        )

    def fail(self, job_id: int, error_message: str) -> QueueJob:
        """Mark a processing job failed, recording why."""
        job = self._require_transition(
            job_id,
            JobStatus.PROCESSING,
            JobStatus.FAILED,
            error_message=error_message or "Unknown error",
        )
        logger.warning("Job %s failed: %s", job_id, job.error_message)
        return job

    def record_draft(self, job_id: int, translated_entity_id: int) -> None:
        """
        Remember the unlinked draft produced for a job, whatever its status.

        A run that dies before linking leaves the draft on the job so the next
        run updates it instead of creating another copy.
        """
        self.db.conn.execute(
            "UPDATE translation_queue SET translated_entity_id = ?, updated_at = ? WHERE id = ?",
            [translated_entity_id, self.clock(), job_id],
        )

    def retry(self, job_id: int) -> QueueJob:
        """Resubmit a failed job."""
        return self._require_transition(job_id, JobStatus.FAILED, JobStatus.PENDING)

    def stale_jobs(self) -> list[QueueJob]:
        """Processing jobs older than the staleness threshold."""
        rows = self.db.conn.execute(
            f"""
            SELECT {_JOB_COLUMNS} FROM translation_queue
            WHERE status = ? AND COALESCE(claimed_at, created_at) < ?
            ORDER BY id
            """,
            [JobStatus.PROCESSING.value, self.clock() - self.staleness],
        ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def reset_stale(self) -> int:
        """Reset every stale processing job to pending. Returns the count."""
        rows = self.db.conn.execute(
            """
            UPDATE translation_queue
            SET status = ?, claimed_at = NULL, updated_at = ?
            WHERE status = ? AND COALESCE(claimed_at, created_at) < ?
            RETURNING id
            """,
            [
                JobStatus.PENDING.value,
                self.clock(),
                JobStatus.PROCESSING.value,
                self.clock() - self.staleness,
            ],
        ).fetchall()
        if rows:
            logger.info("Reset %d stale job(s) to pending", len(rows))
        return len(rows)

    def reset_all_failed(self) -> int:
        """Resubmit every failed job. Returns the count."""
        rows = self.db.conn.execute(
            """
            UPDATE translation_queue
            SET status = ?, error_message = NULL, claimed_at = NULL, updated_at = ?
            WHERE status = ?
            RETURNING id
            """,
            [JobStatus.PENDING.value, self.clock(), JobStatus.FAILED.value],
        ).fetchall()
        if rows:
            logger.info("Reset %d failed job(s) to pending", len(rows))
        return len(rows)

    # ==================== Queries ====================

    def get(self, job_id: int) -> QueueJob | None:
        row = self.db.conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM translation_queue WHERE id = ?", [job_id]
        ).fetchone()
        return self._row_to_job(row) if row else None

    def require(self, job_id: int) -> QueueJob:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def jobs_for(self, parent_entity_id: int) -> list[QueueJob]:
        rows = self.db.conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM translation_queue WHERE parent_entity_id = ? ORDER BY id",
            [parent_entity_id],
        ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def list_jobs(
        self,
        job_filter: JobFilter | None = None,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        store: ContentStore | None = None,
    ) -> JobPage:
        """
        List jobs newest first, one page at a time.

        ``job_filter.search`` matches parent entity titles and needs ``store``.
        """
        job_filter = job_filter or JobFilter()
        page = max(1, page)
        per_page = max(1, per_page)

        conditions = []
        params: list[Any] = []
        if job_filter.status is not None:
            conditions.append("status = ?")
            params.append(job_filter.status.value)
        if job_filter.types:
            conditions.append(f"type IN ({', '.join('?' for _ in job_filter.types)})")
            params.extend(t.value for t in job_filter.types)
        if job_filter.language:
            conditions.append("language = ?")
            params.append(job_filter.language)
        if job_filter.search:
            if store is None:
                raise ValueError("Searching jobs by title needs a content store")
            parent_ids = store.search_titles(job_filter.search)
            if not parent_ids:
                return JobPage(jobs=[], total=0, page=page, per_page=per_page)
            conditions.append(f"parent_entity_id IN ({', '.join('?' for _ in parent_ids)})")
            params.extend(parent_ids)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        total = self.db.conn.execute(
            f"SELECT COUNT(*) FROM translation_queue {where_clause}", params
        ).fetchone()[0]
        rows = self.db.conn.execute(
            f"""
            SELECT {_JOB_COLUMNS} FROM translation_queue
            {where_clause}
            ORDER BY id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, per_page, (page - 1) * per_page],
        ).fetchall()
        return JobPage(
            jobs=[self._row_to_job(row) for row in rows],
            total=total or 0,
            page=page,
            per_page=per_page,
        )

    def statistics(self) -> dict:
        """Job counts by status and by type."""
        by_status = {
            row[0]: row[1]
            for row in self.db.conn.execute(
                "SELECT status, COUNT(*) FROM translation_queue GROUP BY status"
            ).fetchall()
        }
        by_type = {
            row[0]: row[1]
            for row in self.db.conn.execute(
                "SELECT type, COUNT(*) FROM translation_queue GROUP BY type"
            ).fetchall()
        }
        return {
            "total": sum(by_status.values()),
            "by_status": {s.value: by_status.get(s.value, 0) for s in JobStatus},
            "by_type": {t.value: by_type.get(t.value, 0) for t in JobType},
            "stale": len(self.stale_jobs()),
        }

    # ==================== Helpers ====================

    def _transition(
        self,
        job_id: int,
        source: JobStatus,
        target: JobStatus,
        *,
        claimed: bool = False,
        translated_entity_id: int | None = None,
        error_message: str | None = None,
    ) -> QueueJob | None:
        """Conditional status update; None if the job was not in ``source``."""
        now = self.clock()
        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [target.value, now]

        if claimed:
            assignments.append("claimed_at = ?")
            params.append(now)
        elif target == JobStatus.PENDING:
            assignments.append("claimed_at = NULL")
        if translated_entity_id is not None:
            assignments.append("translated_entity_id = ?")
            params.append(translated_entity_id)
        if target == JobStatus.FAILED:
            assignments.append("error_message = ?")
            params.append(error_message)
        elif target in (JobStatus.PENDING, JobStatus.COMPLETED):
            assignments.append("error_message = NULL")

        row = self.db.conn.execute(
            f"""
            UPDATE translation_queue
            SET {', '.join(assignments)}
            WHERE id = ? AND status = ?
            RETURNING {_JOB_COLUMNS}
            """,
            [*params, job_id, source.value],
        ).fetchone()
        return self._row_to_job(row) if row else None

    def _require_transition(
        self, job_id: int, source: JobStatus, target: JobStatus, **kwargs: Any
    ) -> QueueJob:
        job = self._transition(job_id, source, target, **kwargs)
        if job is not None:
            return job
        current = self.require(job_id)
        raise InvalidTransitionError(
            f"Job {job_id} is {current.status.value}; "
            f"cannot move from {source.value} to {target.value}"
        )

    def _row_to_job(self, row: tuple) -> QueueJob:
        """Convert database row to QueueJob."""
        return QueueJob(
            id=row[0],
            parent_entity_id=row[1],
            language=row[2],
            status=JobStatus(row[3]),
            type=JobType(row[4]),
            translated_entity_id=row[5],
            edited_fields=load_json(row[6]) or [],
            error_message=row[7],
            created_at=row[8],
            claimed_at=row[9],
            updated_at=row[10],
        )
