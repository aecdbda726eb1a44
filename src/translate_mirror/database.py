"""
DuckDB database operations for translate-mirror.

Owns the connection, schema, transactions and the processing audit log. The
translation queue, content store, language registry and delay queue keep their
own SQL and run it through ``Database.conn``.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import duckdb

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (DuckDB TIMESTAMP)."""
    return datetime.now(UTC).replace(tzinfo=None)


class Database:
    """DuckDB database wrapper for translate-mirror."""

    # SQL for creating tables
    _SCHEMA = """
    -- Configured languages, in display order
    CREATE TABLE IF NOT EXISTS languages (
        position INTEGER NOT NULL,
        prefix VARCHAR NOT NULL,
        name VARCHAR NOT NULL,
        path VARCHAR DEFAULT '',
        description TEXT DEFAULT ''
    );

    -- Reference content store: entities
    CREATE TABLE IF NOT EXISTS entities (
        id INTEGER PRIMARY KEY,
        kind VARCHAR NOT NULL DEFAULT 'post',
        slug VARCHAR DEFAULT '',
        title VARCHAR DEFAULT '',
        status VARCHAR NOT NULL DEFAULT 'draft',
        fields JSON,
        published_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS entities_id_seq START 1;

    -- Reference content store: per-entity attributes (language relations, snapshots)
    CREATE TABLE IF NOT EXISTS entity_meta (
        entity_id INTEGER NOT NULL,
        key VARCHAR NOT NULL,
        value VARCHAR
    );

    -- Translation job queue
    CREATE TABLE IF NOT EXISTS translation_queue (
        id INTEGER PRIMARY KEY,
        parent_entity_id INTEGER NOT NULL,
        translated_entity_id INTEGER,
        language VARCHAR NOT NULL,
        status VARCHAR NOT NULL DEFAULT 'pending',
        type VARCHAR NOT NULL DEFAULT 'NEW',
        edited_fields JSON,
        error_message TEXT,
        created_at TIMESTAMP NOT NULL,
        claimed_at TIMESTAMP,
        updated_at TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS translation_queue_id_seq START 1;

    -- Fire-once delayed events keyed by (entity, reason)
    CREATE TABLE IF NOT EXISTS scheduled_events (
        key VARCHAR PRIMARY KEY,
        entity_id INTEGER NOT NULL,
        reason VARCHAR NOT NULL,
        due_at TIMESTAMP NOT NULL
    );

    -- Processing log for audit trail
    CREATE TABLE IF NOT EXISTS processing_log (
        id INTEGER PRIMARY KEY,
        run_id VARCHAR NOT NULL,
        job_id INTEGER,
        entity_id INTEGER,
        stage VARCHAR NOT NULL,
        level VARCHAR NOT NULL,
        message TEXT NOT NULL,
        context JSON,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS processing_log_id_seq START 1;

    -- Create indexes for efficient queries
    CREATE INDEX IF NOT EXISTS idx_meta_entity ON entity_meta(entity_id);
    CREATE INDEX IF NOT EXISTS idx_queue_pair ON translation_queue(parent_entity_id, language);
    CREATE INDEX IF NOT EXISTS idx_log_lookup ON processing_log(run_id, stage, level);
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        if str(db_path) == MEMORY_PATH:
            self.db_path: Path | None = None
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._run_id = str(uuid.uuid4())
        self._tx_depth = 0

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._conn is None:
            target = str(self.db_path) if self.db_path is not None else MEMORY_PATH
            self._conn = duckdb.connect(target)
            self._init_schema()
        return self._conn

    @property
    def run_id(self) -> str:
        """Get current run ID."""
        return self._run_id

    def new_run(self) -> str:
        """Start a new run and return its ID."""
        self._run_id = str(uuid.uuid4())
        return self._run_id

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.execute(self._SCHEMA)

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction opened by ``transaction()`` is active."""
        return self._tx_depth > 0

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Context manager for transactions.

        Nested use joins the outer transaction; only the outermost block
        commits or rolls back.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self.conn
            finally:
                self._tx_depth -= 1
            return

        self.conn.begin()
        self._tx_depth = 1
        try:
            yield self.conn
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            self._tx_depth = 0

    # ==================== Logging ====================

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        job_id: int | None = None,
        entity_id: int | None = None,
        context: dict | None = None,
    ) -> None:
        """Insert a log entry and mirror it to the Python logger."""
        level = level.upper()
        logger.log(getattr(logging, level, logging.INFO), message)

        context_json = json.dumps(context) if context else None
        self.conn.execute(
            """
            INSERT INTO processing_log
            (id, run_id, job_id, entity_id, stage, level, message, context, created_at)
            VALUES (nextval('processing_log_id_seq'), ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [self._run_id, job_id, entity_id, stage, level, message, context_json, utcnow()],
        )

    def get_logs(
        self,
        run_id: str | None = None,
        level: str | None = None,
        stage: str | None = None,
        job_id: int | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get log entries, newest first."""
        conditions = []
        params: list[Any] = []

        if run_id:
            conditions.append("run_id = ?")
            params.append(run_id)
        if level:
            conditions.append("level = ?")
            params.append(level.upper())
        if stage:
            conditions.append("stage = ?")
            params.append(stage)
        if job_id is not None:
            conditions.append("job_id = ?")
            params.append(job_id)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT run_id, job_id, entity_id, stage, level, message, context, created_at
            FROM processing_log
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()

        return [
            {
                "run_id": row[0],
                "job_id": row[1],
                "entity_id": row[2],
                "stage": row[3],
                "level": row[4],
                "message": row[5],
                "context": json.loads(row[6]) if row[6] else None,
                "created_at": row[7],
            }
            for row in rows
        ]


def load_json(value: Any) -> Any:
    """Decode a JSON column that DuckDB may return as text."""
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return value
