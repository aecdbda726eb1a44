"""
Job creation triggers for content-change events.

NEW jobs are created when an original is first published, EDIT jobs when a
published original's watched fields drift from their snapshots. Edit checks
can be debounced through the delay queue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from translate_mirror.content.base import PUBLISHED, UNTRANSLATABLE_KINDS, ContentEntity
from translate_mirror.pipeline.queue import JobType, QueueJob

if TYPE_CHECKING:
    from translate_mirror.content.base import ContentStore
    from translate_mirror.languages import LanguageRegistry
    from translate_mirror.pipeline.queue import TranslationQueue
    from translate_mirror.pipeline.scheduler import DelayQueue
    from translate_mirror.pipeline.snapshots import FieldSnapshotStore

logger = logging.getLogger(__name__)

EDIT_CHECK = "edit_check"


class JobTriggers:
    """Turns content events into queue jobs."""

    def __init__(
        self,
        store: ContentStore,
        queue: TranslationQueue,
        registry: LanguageRegistry,
        snapshots: FieldSnapshotStore,
        scheduler: DelayQueue | None = None,
        edit_debounce: timedelta = timedelta(seconds=1),
    ):
        self.store = store
        self.queue = queue
        self.registry = registry
        self.snapshots = snapshots
        self.scheduler = scheduler
        self.edit_debounce = edit_debounce

    # ==================== NEW ====================

    def on_status_change(self, entity_id: int, old_status: str | None, new_status: str) -> list[QueueJob]:
        """Create NEW jobs when an entity transitions into the published state."""
        if new_status != PUBLISHED or old_status == PUBLISHED:
            return []
        return self.enqueue_new(entity_id)

    def enqueue_new(self, entity_id: int) -> list[QueueJob]:
        """
        One NEW job per configured language for a published original.

        Pairs that already have a job of any type or status are skipped.
        """
        entity = self._translatable(entity_id)
        if entity is None:
            return []

        jobs = []
        for language in self.registry:
            if self.queue.has_job(entity_id, language.prefix):
                logger.debug("Job already exists for %s/%s", entity_id, language.prefix)
                continue
            jobs.append(self.queue.enqueue(entity_id, language.prefix, JobType.NEW))
        return jobs

    # ==================== EDIT ====================

    def on_edit(self, entity_id: int) -> list[QueueJob]:
        """
        Create EDIT jobs for the languages that already have a translation.

        A pending EDIT job for the same pair absorbs the new changes instead of
        a second job being created.
        """
        entity = self._translatable(entity_id)
        if entity is None:
            return []

        changed = self.snapshots.detect_changes(entity)
        if not changed:
            return []

        jobs = []
        for language in self.registry:
            if not self._has_translation(entity, language.prefix):
                continue
            pending = self.queue.pending_edit(entity_id, language.prefix)
            if pending is not None:
                self.queue.merge_edited_fields(pending.id, changed)
                continue
            jobs.append(
                self.queue.enqueue(entity_id, language.prefix, JobType.EDIT, edited_fields=changed)
            )
        if jobs:
            logger.info("Entity %s changed (%s): %d EDIT job(s)", entity_id, ", ".join(changed), len(jobs))
        return jobs

    def schedule_edit_check(self, entity_id: int) -> bool:
        """Debounce an edit check; repeated saves inside the window share one check."""
        if self.scheduler is None:
            self.on_edit(entity_id)
            return True
        return self.scheduler.schedule(entity_id, EDIT_CHECK, self.edit_debounce)

    def run_due_checks(self, now: datetime | None = None) -> list[QueueJob]:
        """Run every debounced edit check that is due."""
        if self.scheduler is None:
            return []
        jobs = []
        for event in self.scheduler.pop_due(now):
            if event.reason == EDIT_CHECK:
                jobs.extend(self.on_edit(event.entity_id))
        return jobs

    # ==================== Helpers ====================

    def _translatable(self, entity_id: int) -> ContentEntity | None:
        entity = self.store.get(entity_id)
        if entity is None:
            return None
        if not entity.is_original or not entity.is_published:
            return None
        if entity.kind in UNTRANSLATABLE_KINDS:
            return None
        return entity

    def _has_translation(self, entity: ContentEntity, prefix: str) -> bool:
        """Whether a completed translation exists for ``prefix``."""
        target_id = entity.translation_pointer(prefix)
        return target_id is not None and self.store.get(target_id) is not None
