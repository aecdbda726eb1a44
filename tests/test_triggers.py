"""Tests for NEW and EDIT job triggers."""

import pytest

from translate_mirror.content import PUBLISHED
from translate_mirror.content.base import DRAFT
from translate_mirror.pipeline import (
    DelayQueue,
    FieldSnapshotStore,
    JobStatus,
    JobTriggers,
    JobType,
    TranslationQueue,
)


@pytest.fixture
def queue(db, clock):
    return TranslationQueue(db, clock=clock)


@pytest.fixture
def triggers(db, store, queue, registry, clock):
    return JobTriggers(
        store,
        queue,
        registry,
        FieldSnapshotStore(store, ["title", "body"], watch_custom_fields=False),
        scheduler=DelayQueue(db, clock=clock),
    )


class TestNewJobs:
    def test_first_publish_creates_one_job_per_language(self, triggers, queue, store, make_entity):
        entity_id = make_entity(status=DRAFT)
        store.set_status(entity_id, PUBLISHED)

        jobs = triggers.on_status_change(entity_id, DRAFT, PUBLISHED)
        assert sorted(job.language for job in jobs) == ["es", "fr"]
        assert all(job.type == JobType.NEW for job in jobs)

    def test_idempotent(self, triggers, queue, make_entity):
        entity_id = make_entity()
        triggers.on_status_change(entity_id, DRAFT, PUBLISHED)
        assert triggers.on_status_change(entity_id, DRAFT, PUBLISHED) == []
        assert len(queue.jobs_for(entity_id)) == 2

    def test_existing_job_of_any_status_blocks(self, triggers, queue, make_entity):
        entity_id = make_entity()
        job = queue.enqueue(entity_id, "fr", JobType.OLD)
        queue.claim(job.id)
        queue.fail(job.id, "boom")

        jobs = triggers.enqueue_new(entity_id)
        assert [job.language for job in jobs] == ["es"]

    def test_only_transitions_into_publish(self, triggers, make_entity):
        entity_id = make_entity()
        assert triggers.on_status_change(entity_id, PUBLISHED, PUBLISHED) == []
        assert triggers.on_status_change(entity_id, PUBLISHED, DRAFT) == []

    def test_skips_translations_drafts_and_attachments(self, triggers, make_entity, make_translation):
        original = make_entity()
        fr = make_translation(original, "fr")
        assert triggers.enqueue_new(fr) == []
        assert triggers.enqueue_new(make_entity(status=DRAFT)) == []
        assert triggers.enqueue_new(make_entity(kind="attachment")) == []
        assert triggers.enqueue_new(999) == []


class TestEditJobs:
    @pytest.fixture
    def translated(self, triggers, make_entity, make_translation):
        """A published original with a French translation and baseline snapshots."""
        original = make_entity(title="Hello", fields={"body": "Text"})
        make_translation(original, "fr")
        assert triggers.on_edit(original) == []
        return original

    def test_only_languages_with_a_translation(self, triggers, store, translated):
        store.update_fields(translated, fields={"body": "Changed"})
        jobs = triggers.on_edit(translated)
        assert [(job.language, job.type, job.edited_fields) for job in jobs] == [
            ("fr", JobType.EDIT, ["body"])
        ]

    def test_pending_edit_absorbs_further_edits(self, triggers, queue, store, translated):
        store.update_fields(translated, fields={"body": "Changed"})
        (job,) = triggers.on_edit(translated)

        store.update_fields(translated, title="Hello again")
        assert triggers.on_edit(translated) == []
        assert queue.get(job.id).edited_fields == ["body", "title"]
        assert len(queue.jobs_for(translated)) == 1

    def test_claimed_edit_does_not_absorb(self, triggers, queue, store, translated):
        store.update_fields(translated, fields={"body": "Changed"})
        (first,) = triggers.on_edit(translated)
        queue.claim(first.id)

        store.update_fields(translated, fields={"body": "Changed twice"})
        (second,) = triggers.on_edit(translated)
        assert second.id != first.id
        assert second.status == JobStatus.PENDING

    def test_no_change_no_job(self, triggers, translated):
        assert triggers.on_edit(translated) == []

    def test_untranslated_original_gets_no_edit_job(self, triggers, store, make_entity):
        original = make_entity(title="Alone")
        triggers.on_edit(original)
        store.update_fields(original, title="Still alone")
        assert triggers.on_edit(original) == []


class TestDebounce:
    def test_repeated_saves_share_one_check(self, triggers, store, clock, translated_original):
        store.update_fields(translated_original, fields={"body": "v2"})
        assert triggers.schedule_edit_check(translated_original)
        store.update_fields(translated_original, fields={"body": "v3"})
        assert not triggers.schedule_edit_check(translated_original)

        assert triggers.run_due_checks() == []
        clock.advance(seconds=1)
        (job,) = triggers.run_due_checks()
        assert job.edited_fields == ["body"]
        assert triggers.run_due_checks() == []

    def test_without_scheduler_checks_immediately(self, store, queue, registry, translated_original):
        triggers = JobTriggers(store, queue, registry, FieldSnapshotStore(store, ["title", "body"]))
        store.update_fields(translated_original, title="Now")
        assert triggers.schedule_edit_check(translated_original)
        assert [job.edited_fields for job in queue.jobs_for(translated_original)] == [["title"]]


@pytest.fixture
def translated_original(triggers, make_entity, make_translation):
    original = make_entity(title="Hello", fields={"body": "v1"})
    make_translation(original, "fr")
    triggers.on_edit(original)
    return original
