"""Translation job pipeline: queue, triggers, backfill and worker."""

from translate_mirror.pipeline.backfill import AnalysisResult, BacklogAnalyzer
from translate_mirror.pipeline.queue import (
    InvalidTransitionError,
    JobFilter,
    JobNotFoundError,
    JobPage,
    JobStatus,
    JobType,
    QueueJob,
    TranslationQueue,
)
from translate_mirror.pipeline.scheduler import DelayQueue, ScheduledEvent
from translate_mirror.pipeline.snapshots import FieldSnapshotStore, normalize_value
from translate_mirror.pipeline.triggers import JobTriggers
from translate_mirror.pipeline.worker import QueueWorker

__all__ = [
    "AnalysisResult",
    "BacklogAnalyzer",
    "DelayQueue",
    "FieldSnapshotStore",
    "InvalidTransitionError",
    "JobFilter",
    "JobNotFoundError",
    "JobPage",
    "JobStatus",
    "JobTriggers",
    "JobType",
    "QueueJob",
    "QueueWorker",
    "ScheduledEvent",
    "TranslationQueue",
    "normalize_value",
]
