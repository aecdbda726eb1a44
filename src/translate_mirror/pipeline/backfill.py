"""
Backlog analysis (OLD jobs).

Scans published originals of selected kinds, optionally within a publication
date range, and queues one OLD job per (original, language) pair that has
neither a job nor a translation yet. Safe to run repeatedly.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from translate_mirror.content.base import UNTRANSLATABLE_KINDS, pointer_key
from translate_mirror.languages import LanguageConfigError
from translate_mirror.pipeline.queue import JobType

if TYPE_CHECKING:
    from translate_mirror.content.base import ContentStore
    from translate_mirror.languages import LanguageRegistry
    from translate_mirror.pipeline.queue import TranslationQueue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass
class AnalysisResult:
    """Summary of one backlog analysis run."""

    analysis_id: str
    kinds: list[str]
    scanned: int = 0
    added: int = 0
    skipped_existing_job: int = 0
    skipped_translated: int = 0
    job_ids: list[int] = field(default_factory=list)


class BacklogAnalyzer:
    """Queues OLD jobs for content published before translation was enabled."""

    def __init__(
        self,
        store: ContentStore,
        queue: TranslationQueue,
        registry: LanguageRegistry,
        batch_size: int = DEFAULT_BATCH_SIZE,
        default_kinds: Sequence[str] = ("post",),
    ):
        self.store = store
        self.queue = queue
        self.registry = registry
        self.batch_size = batch_size
        self.default_kinds = list(default_kinds)

    def analyze(
        self,
        kinds: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AnalysisResult:
        """
        Scan originals and queue missing translations.

        Args:
            kinds: Entity kinds to scan; attachments are never scanned.
            start: Inclusive lower bound on publication date.
            end: Inclusive upper bound on publication date.

        Returns:
            AnalysisResult with counts and the created job ids.

        Raises:
            LanguageConfigError: If no language is configured.
            ValueError: If start is after end or no scannable kind remains.
        """
        if not len(self.registry):
            raise LanguageConfigError("No languages configured; add a language before analyzing")
        if start is not None and end is not None and start > end:
            raise ValueError("Start date must be before or equal to end date")

        selected = [k for k in (kinds or self.default_kinds) if k not in UNTRANSLATABLE_KINDS]
        if not selected:
            raise ValueError("No translatable content kinds selected")

        result = AnalysisResult(analysis_id=str(uuid.uuid4()), kinds=selected)
        prefixes = self.registry.prefixes()
        pointer_keys = [pointer_key(prefix) for prefix in prefixes]

        offset = 0
        while True:
            batch = self.store.list_originals(
                selected, start=start, end=end, offset=offset, limit=self.batch_size
            )
            if not batch:
                break
            offset += len(batch)
            result.scanned += len(batch)

            existing = self.queue.existing_pairs(batch)
            pointers = self.store.get_attributes_bulk(batch, pointer_keys)

            for entity_id in batch:
                for prefix in prefixes:
                    if (entity_id, prefix) in existing:
                        result.skipped_existing_job += 1
                        continue
                    if pointers.get((entity_id, pointer_key(prefix))):
                        result.skipped_translated += 1
                        continue
                    job = self.queue.enqueue(entity_id, prefix, JobType.OLD)
                    result.added += 1
                    result.job_ids.append(job.id)

            if len(batch) < self.batch_size:
                break

        self.queue.db.log(
            "INFO",
            "analyze",
            f"Backlog analysis scanned {result.scanned} item(s), queued {result.added} job(s)",
            context={
                "analysis_id": result.analysis_id,
                "kinds": selected,
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            },
        )
        return result
