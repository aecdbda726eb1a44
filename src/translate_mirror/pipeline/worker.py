"""
Queue worker.

Claims jobs, runs the executor, and on success publishes a new draft and writes
the translation pointer, the language tag and the completed status in one
transaction. Any failure is recorded on the job; nothing is retried
automatically.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from translate_mirror.pipeline.queue import InvalidTransitionError, JobType, QueueJob

if TYPE_CHECKING:
    from translate_mirror.content.base import ContentStore
    from translate_mirror.database import Database
    from translate_mirror.executors import TranslationExecutor
    from translate_mirror.languages import LanguageRegistry
    from translate_mirror.pipeline.queue import TranslationQueue

logger = logging.getLogger(__name__)

STAGE = "process"


class QueueWorker:
    """Processes translation jobs one at a time."""

    def __init__(
        self,
        db: Database,
        queue: TranslationQueue,
        store: ContentStore,
        registry: LanguageRegistry,
        executor: TranslationExecutor,
    ):
        self.db = db
        self.queue = queue
        self.store = store
        self.registry = registry
        self.executor = executor

    async def process_next(self, job_type: JobType | None = None) -> QueueJob | None:
        """Claim and process the next job; None when nothing is claimable."""
        job = self.queue.claim_next(job_type)
        if job is None:
            return None
        return await self._process(job)

    async def process_job(self, job_id: int) -> QueueJob:
        """
        Process a specific pending job right away.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is not pending.
        """
        job = self.queue.claim(job_id)
        return await self._process(job)

    async def run(self, limit: int | None = None, job_type: JobType | None = None) -> list[QueueJob]:
        """Process jobs until the queue is drained or ``limit`` jobs were handled."""
        processed: list[QueueJob] = []
        while limit is None or len(processed) < limit:
            job = await self.process_next(job_type)
            if job is None:
                break
            processed.append(job)
        return processed

    async def _process(self, job: QueueJob) -> QueueJob:
        self.db.log(
            "INFO",
            STAGE,
            f"Processing {job.type.value} job {job.id} ({job.language})",
            job_id=job.id,
            entity_id=job.parent_entity_id,
        )

        original = self.store.get(job.parent_entity_id)
        if original is None:
            return self._fail(job, f"Original entity {job.parent_entity_id} not found")
        language = self.registry.get(job.language)
        if language is None:
            return self._fail(job, f"Language {job.language!r} is not configured")

        try:
            result = await self.executor.execute(job, original, language)
        except Exception as e:
            logger.exception("Executor raised for job %s", job.id)
            return self._fail(job, f"{type(e).__name__}: {e}")

        if not result.success or result.translated_entity_id is None:
            return self._fail(job, result.error or "Executor reported failure without details")

        if result.draft:
            self.queue.record_draft(job.id, result.translated_entity_id)

        try:
            with self.db.transaction():
                self.store.link_translation(original.id, result.translated_entity_id, language.prefix)
                if result.draft:
                    self.store.set_status(result.translated_entity_id, original.status, original.published_at)
                completed = self.queue.complete(job.id, result.translated_entity_id)
        except Exception as e:
            logger.exception("Could not record translation for job %s", job.id)
            return self._fail(job, f"Could not link translation: {e}")

        self.db.log(
            "INFO",
            STAGE,
            f"Job {job.id} completed: entity {original.id} -> {result.translated_entity_id} ({language.prefix})",
            job_id=job.id,
            entity_id=original.id,
        )
        return completed

    def _fail(self, job: QueueJob, message: str) -> QueueJob:
        try:
            failed = self.queue.fail(job.id, message)
        except InvalidTransitionError:
            # Reset as stale while running; the job will be picked up again
            logger.warning("Job %s left processing before it could fail: %s", job.id, message)
            return self.queue.require(job.id)
        self.db.log(
            "ERROR",
            STAGE,
            f"Job {job.id} failed: {message}",
            job_id=job.id,
            entity_id=job.parent_entity_id,
            context={"type": job.type.value, "language": job.language},
        )
        return failed
