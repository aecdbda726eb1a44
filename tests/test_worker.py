"""Tests for the queue worker."""

import asyncio

import pytest

from translate_mirror.content import LANGUAGE, ORIGINAL_ID, pointer_key
from translate_mirror.content.base import DRAFT
from translate_mirror.executors import DuplicateExecutor, ExecutionResult, TranslationExecutor
from translate_mirror.pipeline import InvalidTransitionError, JobStatus, JobType, QueueWorker, TranslationQueue
from translate_mirror.resolution import CollectionFilter


class RaisingExecutor(TranslationExecutor):
    async def execute(self, job, original, language):
        raise RuntimeError("provider unavailable")


class FixedResultExecutor(TranslationExecutor):
    def __init__(self, result):
        self.result = result

    async def execute(self, job, original, language):
        return self.result


class StallingExecutor(DuplicateExecutor):
    """Lets the job go stale and get reset while it is being executed."""

    def __init__(self, store, queue, clock):
        super().__init__(store)
        self.queue = queue
        self.clock = clock

    async def execute(self, job, original, language):
        result = await super().execute(job, original, language)
        self.clock.advance(minutes=10)
        self.queue.reset_stale()
        return result


@pytest.fixture
def queue(db, clock):
    return TranslationQueue(db, clock=clock)


@pytest.fixture
def make_worker(db, queue, store, registry):
    def _make(executor=None):
        return QueueWorker(db, queue, store, registry, executor or DuplicateExecutor(store))

    return _make


class TestSuccess:
    def test_new_job_creates_and_links_translation(self, make_worker, queue, store, db, make_entity):
        original = make_entity(title="Hello", fields={"body": "Text"})
        job = queue.enqueue(original, "fr")

        done = asyncio.run(make_worker().process_next())

        assert done.id == job.id
        assert done.status == JobStatus.COMPLETED
        translated = store.get(done.translated_entity_id)
        assert translated.language == "fr"
        assert translated.original_id == original
        assert translated.is_published
        assert store.get_attribute(original, pointer_key("fr")) == str(translated.id)
        assert db.get_logs(job_id=job.id, level="INFO")

    def test_reprocessing_reuses_the_translation(self, make_worker, queue, make_entity):
        original = make_entity()
        queue.enqueue(original, "fr")
        worker = make_worker()
        first = asyncio.run(worker.process_next())

        queue.enqueue(original, "fr", JobType.OLD)
        second = asyncio.run(worker.process_next())
        assert second.translated_entity_id == first.translated_entity_id

    def test_run_drains_up_to_limit(self, make_worker, queue, make_entity):
        for _ in range(3):
            queue.enqueue(make_entity(), "es")
        worker = make_worker()

        assert len(asyncio.run(worker.run(limit=2))) == 2
        assert len(asyncio.run(worker.run())) == 1
        assert asyncio.run(worker.process_next()) is None

    def test_process_job_requires_pending(self, make_worker, queue, make_entity):
        job = queue.enqueue(make_entity(), "fr")
        worker = make_worker()
        assert asyncio.run(worker.process_job(job.id)).status == JobStatus.COMPLETED
        with pytest.raises(InvalidTransitionError):
            asyncio.run(worker.process_job(job.id))


class TestFailure:
    def test_executor_exception_fails_job(self, make_worker, queue, store, db, make_entity):
        original = make_entity()
        job = queue.enqueue(original, "fr")

        failed = asyncio.run(make_worker(RaisingExecutor()).process_next())

        assert failed.status == JobStatus.FAILED
        assert failed.error_message == "RuntimeError: provider unavailable"
        assert store.get_attribute(original, pointer_key("fr")) is None
        (entry,) = db.get_logs(job_id=job.id, level="ERROR")
        assert entry["context"] == {"type": "NEW", "language": "fr"}

    def test_unsuccessful_result_fails_job(self, make_worker, queue, make_entity):
        queue.enqueue(make_entity(), "fr")
        worker = make_worker(FixedResultExecutor(ExecutionResult(success=False, error="Quota exceeded")))
        assert asyncio.run(worker.process_next()).error_message == "Quota exceeded"

    def test_missing_original_or_language(self, make_worker, queue, make_entity):
        queue.enqueue(999, "fr")
        queue.enqueue(make_entity(), "de")
        worker = make_worker()
        missing_original, missing_language = asyncio.run(worker.run())
        assert "not found" in missing_original.error_message
        assert "not configured" in missing_language.error_message

    def test_link_failure_writes_nothing(self, make_worker, queue, store, make_entity):
        original = make_entity()
        job = queue.enqueue(original, "fr")
        # Linking an entity to itself is rejected
        worker = make_worker(FixedResultExecutor(ExecutionResult(success=True, translated_entity_id=original)))

        failed = asyncio.run(worker.process_next())

        assert failed.status == JobStatus.FAILED
        assert failed.error_message.startswith("Could not link translation")
        entity = store.get(original)
        assert entity.attributes.get(LANGUAGE) is None
        assert entity.attributes.get(ORIGINAL_ID) is None
        assert queue.get(job.id).translated_entity_id is None

    def test_failed_job_can_be_retried(self, make_worker, queue, make_entity):
        job = queue.enqueue(make_entity(), "fr")
        asyncio.run(make_worker(RaisingExecutor()).process_next())

        queue.retry(job.id)
        assert asyncio.run(make_worker().process_job(job.id)).status == JobStatus.COMPLETED


def test_reset_while_running_rolls_back_the_link(db, queue, store, registry, clock, make_entity):
    original = make_entity()
    job = queue.enqueue(original, "fr")
    worker = QueueWorker(db, queue, store, registry, StallingExecutor(store, queue, clock))

    result = asyncio.run(worker.process_next())

    assert result.status == JobStatus.PENDING
    assert store.get_attribute(original, pointer_key("fr")) is None
    assert queue.get(job.id).status == JobStatus.PENDING


def test_interrupted_run_leaves_a_hidden_draft_that_is_reused(
    db, queue, store, registry, clock, make_entity, make_worker
):
    original = make_entity()
    job = queue.enqueue(original, "fr")
    asyncio.run(QueueWorker(db, queue, store, registry, StallingExecutor(store, queue, clock)).process_next())

    draft_id = queue.get(job.id).translated_entity_id
    assert store.get(draft_id).status == DRAFT
    published = [entity.id for entity in store.list_recent()]
    assert CollectionFilter(store).filter_listing(published, None) == [original]
    assert store.list_originals(["post"]) == [original]

    done = asyncio.run(make_worker().process_job(job.id))

    assert done.status == JobStatus.COMPLETED
    assert done.translated_entity_id == draft_id
    assert store.get(draft_id).is_published
    assert len(store.list_recent(status=None)) == 2
    assert store.list_originals(["post"]) == [original]
    assert CollectionFilter(store).filter_listing(None, "fr") == [draft_id]
