"""
Delay queue for debounced work.

Events are keyed by (entity, reason) and fire once: scheduling an event that
is already waiting keeps the existing due time.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from translate_mirror.database import utcnow

if TYPE_CHECKING:
    from translate_mirror.database import Database


@dataclass
class ScheduledEvent:
    """A delayed event."""

    entity_id: int
    reason: str
    due_at: datetime

    @property
    def key(self) -> str:
        return event_key(self.entity_id, self.reason)


def event_key(entity_id: int, reason: str) -> str:
    return f"{reason}:{entity_id}"


class DelayQueue:
    """Fire-once delayed events stored in the scheduled_events table."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def schedule(self, entity_id: int, reason: str, delay: timedelta = timedelta(0)) -> bool:
        """
        Schedule an event unless one is already waiting for the same key.

        Returns True if a new event was scheduled.
        """
        key = event_key(entity_id, reason)
        with self.db.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM scheduled_events WHERE key = ?", [key]
            ).fetchone()
            if exists:
                return False
            conn.execute(
                "INSERT INTO scheduled_events (key, entity_id, reason, due_at) VALUES (?, ?, ?, ?)",
                [key, entity_id, reason, self.clock() + delay],
            )
        return True

    def pop_due(self, now: datetime | None = None) -> list[ScheduledEvent]:
        """Remove and return every event due at ``now``, oldest first."""
        now = now or self.clock()
        rows = self.db.conn.execute(
            """
            DELETE FROM scheduled_events WHERE due_at <= ?
            RETURNING entity_id, reason, due_at
            """,
            [now],
        ).fetchall()
        events = [ScheduledEvent(entity_id=row[0], reason=row[1], due_at=row[2]) for row in rows]
        return sorted(events, key=lambda e: (e.due_at, e.entity_id))

    def pending(self) -> list[ScheduledEvent]:
        rows = self.db.conn.execute(
            "SELECT entity_id, reason, due_at FROM scheduled_events ORDER BY due_at, entity_id"
        ).fetchall()
        return [ScheduledEvent(entity_id=row[0], reason=row[1], due_at=row[2]) for row in rows]

    def cancel(self, entity_id: int, reason: str) -> bool:
        rows = self.db.conn.execute(
            "DELETE FROM scheduled_events WHERE key = ? RETURNING key",
            [event_key(entity_id, reason)],
        ).fetchall()
        return bool(rows)
