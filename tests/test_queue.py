"""Tests for the translation job queue state machine."""

from datetime import timedelta

import pytest

from translate_mirror.pipeline import (
    InvalidTransitionError,
    JobFilter,
    JobNotFoundError,
    JobStatus,
    JobType,
    TranslationQueue,
)


@pytest.fixture
def queue(db, clock):
    return TranslationQueue(db, clock=clock)


class TestEnqueue:
    def test_new_job_is_pending(self, queue, clock):
        job = queue.enqueue(1, "fr")
        assert job.status == JobStatus.PENDING
        assert job.type == JobType.NEW
        assert job.created_at == clock.now
        assert job.edited_fields == []
        assert job.translated_entity_id is None

    def test_edit_job_carries_fields(self, queue):
        job = queue.enqueue(1, "fr", JobType.EDIT, edited_fields=["title", "body"])
        assert queue.get(job.id).edited_fields == ["title", "body"]

    def test_has_job_and_existing_pairs(self, queue):
        queue.enqueue(1, "fr")
        queue.enqueue(2, "es", JobType.OLD)
        assert queue.has_job(1, "fr")
        assert not queue.has_job(1, "es")
        assert queue.has_job(2, "es", job_type=JobType.OLD, status=JobStatus.PENDING)
        assert not queue.has_job(2, "es", job_type=JobType.NEW)
        assert queue.existing_pairs([1, 2, 3]) == {(1, "fr"), (2, "es")}
        assert queue.existing_pairs([]) == set()

    def test_merge_edited_fields(self, queue):
        job = queue.enqueue(1, "fr", JobType.EDIT, edited_fields=["title"])
        merged = queue.merge_edited_fields(job.id, ["body", "title"])
        assert merged.edited_fields == ["title", "body"]
        assert queue.pending_edit(1, "fr").id == job.id

    def test_merge_into_claimed_job_is_refused(self, queue):
        job = queue.enqueue(1, "fr", JobType.EDIT, edited_fields=["title"])
        queue.claim(job.id)
        assert queue.merge_edited_fields(job.id, ["body"]) is None
        assert queue.pending_edit(1, "fr") is None


class TestClaim:
    def test_claims_oldest_first(self, queue, clock):
        first = queue.enqueue(1, "fr")
        queue.enqueue(2, "fr")
        claimed = queue.claim_next()
        assert claimed.id == first.id
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.claimed_at == clock.now

    def test_claim_is_exclusive(self, queue):
        job = queue.enqueue(1, "fr")
        queue.claim(job.id)
        with pytest.raises(InvalidTransitionError):
            queue.claim(job.id)
        assert queue.claim_next() is None

    def test_claim_by_type(self, queue):
        queue.enqueue(1, "fr", JobType.OLD)
        edit = queue.enqueue(1, "es", JobType.EDIT, edited_fields=["title"])
        assert queue.claim_next(JobType.EDIT).id == edit.id
        assert queue.claim_next(JobType.NEW) is None

    def test_processing_delay_holds_new_jobs_only(self, db, clock):
        queue = TranslationQueue(db, clock=clock, processing_delay=timedelta(minutes=2))
        new = queue.enqueue(1, "fr")
        old = queue.enqueue(2, "fr", JobType.OLD)

        assert queue.claim_next().id == old.id
        assert queue.claim_next() is None
        clock.advance(minutes=2)
        assert queue.claim_next().id == new.id

    def test_unknown_job(self, queue):
        with pytest.raises(JobNotFoundError):
            queue.claim(404)


class TestTransitions:
    def test_complete(self, queue):
        job = queue.enqueue(1, "fr")
        queue.claim(job.id)
        done = queue.complete(job.id, 10)
        assert done.status == JobStatus.COMPLETED
        assert done.translated_entity_id == 10

    def test_complete_requires_processing(self, queue):
        job = queue.enqueue(1, "fr")
        with pytest.raises(InvalidTransitionError):
            queue.complete(job.id, 10)

    def test_fail_records_message_and_retry_clears_it(self, queue):
        job = queue.enqueue(1, "fr")
        queue.claim(job.id)
        failed = queue.fail(job.id, "Provider timed out")
        assert failed.status == JobStatus.FAILED
        assert failed.error_message == "Provider timed out"

        retried = queue.retry(job.id)
        assert retried.status == JobStatus.PENDING
        assert retried.error_message is None
        assert retried.claimed_at is None

    def test_retry_only_from_failed(self, queue):
        job = queue.enqueue(1, "fr")
        with pytest.raises(InvalidTransitionError):
            queue.retry(job.id)

    def test_reset_all_failed(self, queue):
        for parent in (1, 2):
            job = queue.enqueue(parent, "fr")
            queue.claim(job.id)
            queue.fail(job.id, "boom")
        assert queue.reset_all_failed() == 2
        assert queue.statistics()["by_status"]["pending"] == 2


class TestStaleness:
    def test_only_jobs_past_the_threshold_reset(self, queue, clock):
        stale = queue.enqueue(1, "fr")
        queue.claim(stale.id)
        clock.advance(minutes=4)
        fresh = queue.enqueue(2, "fr")
        queue.claim(fresh.id)
        clock.advance(minutes=1, seconds=1)

        assert [job.id for job in queue.stale_jobs()] == [stale.id]
        assert queue.reset_stale() == 1
        assert queue.get(stale.id).status == JobStatus.PENDING
        assert queue.get(stale.id).claimed_at is None
        assert queue.get(fresh.id).status == JobStatus.PROCESSING

    def test_stale_job_cannot_complete_after_reset(self, queue, clock):
        job = queue.enqueue(1, "fr")
        queue.claim(job.id)
        clock.advance(minutes=10)
        queue.reset_stale()
        with pytest.raises(InvalidTransitionError):
            queue.complete(job.id, 5)


class TestListing:
    def test_filters_and_paging(self, queue):
        for parent in range(1, 6):
            queue.enqueue(parent, "fr")
        queue.enqueue(1, "es", JobType.OLD)

        page = queue.list_jobs(JobFilter(language="fr"), page=1, per_page=2)
        assert page.total == 5
        assert page.pages == 3
        assert [job.parent_entity_id for job in page.jobs] == [5, 4]

        old_only = queue.list_jobs(JobFilter(types=[JobType.OLD]))
        assert [job.language for job in old_only.jobs] == ["es"]

        none = queue.list_jobs(JobFilter(status=JobStatus.FAILED))
        assert none.jobs == [] and none.pages == 1

    def test_search_by_parent_title(self, queue, store, make_entity):
        hello = make_entity(title="Hello World")
        other = make_entity(title="Other")
        queue.enqueue(hello, "fr")
        queue.enqueue(other, "fr")

        result = queue.list_jobs(JobFilter(search="hello"), store=store)
        assert [job.parent_entity_id for job in result.jobs] == [hello]
        with pytest.raises(ValueError):
            queue.list_jobs(JobFilter(search="hello"))

    def test_statistics(self, queue, clock):
        queue.enqueue(1, "fr")
        job = queue.enqueue(2, "fr", JobType.EDIT, edited_fields=["body"])
        queue.claim(job.id)
        clock.advance(minutes=6)

        stats = queue.statistics()
        assert stats["total"] == 2
        assert stats["by_status"] == {"pending": 1, "processing": 1, "completed": 0, "failed": 0}
        assert stats["by_type"] == {"NEW": 1, "EDIT": 1, "OLD": 0}
        assert stats["stale"] == 1
