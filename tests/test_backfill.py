"""Tests for backlog analysis (OLD jobs)."""

from datetime import datetime

import pytest

from translate_mirror.languages import LanguageConfigError, LanguageRegistry
from translate_mirror.pipeline import BacklogAnalyzer, JobType, TranslationQueue


@pytest.fixture
def queue(db, clock):
    return TranslationQueue(db, clock=clock)


@pytest.fixture
def analyzer(store, queue, registry):
    return BacklogAnalyzer(store, queue, registry, batch_size=2)


def test_queues_missing_pairs(analyzer, queue, make_entity, make_translation):
    untouched = make_entity()
    half_done = make_entity()
    make_translation(half_done, "fr")
    queued = make_entity()
    queue.enqueue(queued, "es", JobType.NEW)

    result = analyzer.analyze()

    # The translation itself is not an original and is not scanned
    assert result.scanned == 3
    assert result.added == 4
    assert result.skipped_translated == 1
    assert result.skipped_existing_job == 1
    jobs = [queue.get(job_id) for job_id in result.job_ids]
    assert {(job.parent_entity_id, job.language) for job in jobs} == {
        (untouched, "fr"),
        (untouched, "es"),
        (half_done, "es"),
        (queued, "fr"),
    }
    assert all(job.type == JobType.OLD for job in jobs)


def test_repeat_scan_adds_nothing(analyzer, make_entity):
    make_entity()
    make_entity()
    assert analyzer.analyze().added == 4
    second = analyzer.analyze()
    assert second.added == 0
    assert second.skipped_existing_job == 4


def test_batches_cover_every_original(analyzer, make_entity):
    ids = [make_entity(title=f"Post {i}") for i in range(5)]
    result = analyzer.analyze()
    assert result.scanned == len(ids)
    assert result.added == 10


def test_kinds_and_date_range(analyzer, queue, make_entity):
    make_entity(kind="page", published_at=datetime(2024, 1, 5))
    in_range = make_entity(published_at=datetime(2024, 1, 10))
    make_entity(published_at=datetime(2023, 12, 31))

    result = analyzer.analyze(["post"], start=datetime(2024, 1, 1), end=datetime(2024, 1, 31))
    assert result.kinds == ["post"]
    assert {queue.get(i).parent_entity_id for i in result.job_ids} == {in_range}


def test_attachments_never_scanned(analyzer):
    with pytest.raises(ValueError):
        analyzer.analyze(["attachment"])


def test_invalid_range(analyzer):
    with pytest.raises(ValueError):
        analyzer.analyze(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))


def test_requires_languages(store, queue):
    analyzer = BacklogAnalyzer(store, queue, LanguageRegistry())
    with pytest.raises(LanguageConfigError):
        analyzer.analyze()


def test_logs_the_run(analyzer, db, make_entity):
    make_entity()
    result = analyzer.analyze()
    (entry,) = db.get_logs(stage="analyze")
    assert entry["context"]["analysis_id"] == result.analysis_id
