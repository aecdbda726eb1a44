"""
Translation executors.

An executor performs the actual work of a job: it produces the translated
entity (creating it, or updating the fields named by an EDIT job) and returns
its id. New copies are created as drafts; the worker publishes them and writes
the pointer and language tag in the same transaction that completes the job,
so an unlinked copy is never visible as an original.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from translate_mirror.content.base import DRAFT
from translate_mirror.pipeline.queue import JobType, QueueJob
from translate_mirror.resolution.relations import RelationRemapper
from translate_mirror.resolution.translation_map import EntityTranslationMap

if TYPE_CHECKING:
    from translate_mirror.config import TranslationConfig
    from translate_mirror.content.base import ContentEntity, ContentStore
    from translate_mirror.languages import Language
    from translate_mirror.llm.base import LLMProvider

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of executing a job."""

    success: bool
    translated_entity_id: int | None = None
    error: str | None = None
    # The translated entity is an unlinked draft the worker publishes on linking
    draft: bool = False


class TranslationExecutor(ABC):
    """Abstract base class for job executors."""

    @abstractmethod
    async def execute(self, job: QueueJob, original: ContentEntity, language: Language) -> ExecutionResult:
        """
        Produce or update the translation of ``original`` for ``job``.

        Must be safe to run again for the same job after a reset.
        """
        ...


class ContentExecutor(TranslationExecutor):
    """
    Executor that writes translated field values to the content store.

    Subclasses decide how field values are translated. Existing translations
    are updated in place, and a draft left behind by an interrupted run of the
    same job is reused, so re-running a job never duplicates content.
    Relation fields (parents, menus, link targets) are remapped instead of
    translated.
    """

    def __init__(self, store: ContentStore, remapper: RelationRemapper | None = None):
        self.store = store
        self.remapper = remapper or RelationRemapper(EntityTranslationMap(store))

    @abstractmethod
    async def translate_fields(
        self, values: dict[str, str], original: ContentEntity, language: Language
    ) -> dict[str, str]:
        ...

    async def execute(self, job: QueueJob, original: ContentEntity, language: Language) -> ExecutionResult:
        existing_id = original.translation_pointer(language.prefix)
        if existing_id is not None and self.store.get(existing_id) is None:
            existing_id = None
        if job.type == JobType.EDIT and existing_id is None:
            return ExecutionResult(
                success=False,
                error=f"No {language.prefix} translation of entity {original.id} to update",
            )

        names = self._field_names(job, original)
        relations = self.remapper.remap(original, language.prefix, names)
        values = self._translatable_values(original, [n for n in names if n not in relations])
        translated = await self.translate_fields(values, original, language) if values else {}

        title = translated.pop("title", None)
        if existing_id is not None:
            self.store.update_fields(existing_id, title=title, fields={**translated, **relations})
            logger.info("Updated translation %s of %s (%s)", existing_id, original.id, language.prefix)
            return ExecutionResult(success=True, translated_entity_id=existing_id)

        title = title if title is not None else original.title
        fields = {**original.fields, **translated, **relations}
        draft_id = self._unlinked_draft(job, original)
        if draft_id is not None:
            self.store.update_fields(draft_id, title=title, fields=fields)
            logger.info("Reused draft %s for %s (%s)", draft_id, original.id, language.prefix)
            return ExecutionResult(success=True, translated_entity_id=draft_id, draft=True)

        translated_id = self.store.create(
            kind=original.kind,
            title=title,
            slug=original.slug,
            status=DRAFT,
            fields=fields,
        )
        logger.info("Created draft translation %s of %s (%s)", translated_id, original.id, language.prefix)
        return ExecutionResult(success=True, translated_entity_id=translated_id, draft=True)

    def _field_names(self, job: QueueJob, original: ContentEntity) -> list[str]:
        if job.type == JobType.EDIT and job.edited_fields:
            return list(job.edited_fields)
        return ["title", *original.fields]

    def _translatable_values(self, original: ContentEntity, names: list[str]) -> dict[str, str]:
        """String values worth translating; other values are copied as they are."""
        values = {}
        for name, value in original.watched_values(names).items():
            if isinstance(value, str) and value.strip():
                values[name] = value
        return values

    def _unlinked_draft(self, job: QueueJob, original: ContentEntity) -> int | None:
        """The draft an earlier run of ``job`` created but never linked."""
        if job.translated_entity_id is None or job.translated_entity_id == original.id:
            return None
        draft = self.store.get(job.translated_entity_id)
        if draft is None or draft.is_translation or draft.status != DRAFT or draft.kind != original.kind:
            return None
        return draft.id


class DuplicateExecutor(ContentExecutor):
    """Copies field values unchanged. Used for dry runs and tests."""

    async def translate_fields(
        self, values: dict[str, str], original: ContentEntity, language: Language
    ) -> dict[str, str]:
        return dict(values)


class LLMExecutor(ContentExecutor):
    """Translates field values with an LLM provider in a single JSON round trip."""

    def __init__(
        self,
        store: ContentStore,
        provider: LLMProvider,
        config: TranslationConfig,
        remapper: RelationRemapper | None = None,
    ):
        super().__init__(store, remapper)
        self.provider = provider
        self.config = config

    async def translate_fields(
        self, values: dict[str, str], original: ContentEntity, language: Language
    ) -> dict[str, str]:
        completion = await self.provider.translate_fields(
            self._system_prompt(language),
            values,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens_per_request,
        )
        logger.debug(
            "Translated %d field(s) of %s into %s with %s (%d/%d tokens, %d attempt(s))",
            len(values),
            original.id,
            language.prefix,
            completion.model,
            completion.prompt_tokens,
            completion.completion_tokens,
            completion.attempts,
        )
        if completion.truncated:
            raise ValueError(
                f"Translation response was cut off at {self.config.max_tokens_per_request} tokens"
            )
        return parse_translation_response(completion.content, values)

    def _system_prompt(self, language: Language) -> str:
        lines = [
            f"You are a professional translator. Translate website content from "
            f"{self.config.source_language} into {language.name}.",
            "",
            "The user message is a JSON object mapping field names to text.",
            "Reply with a JSON object with exactly the same keys and the translated text as values.",
            "Keep HTML tags, shortcodes, URLs and placeholders unchanged.",
            "Do not add commentary or wrap the JSON in code fences.",
        ]
        if language.description:
            lines.append(f"Target audience notes: {language.description}")
        if self.config.brand_tone:
            lines.append(f"Tone of voice: {self.config.brand_tone}")
        if self.config.glossary_terms:
            lines.append("Never translate these terms: " + ", ".join(self.config.glossary_terms))
        return "\n".join(lines)


def parse_translation_response(content: str, expected: dict[str, Any]) -> dict[str, str]:
    """
    Extract the translated fields from an LLM reply.

    Raises:
        ValueError: If the reply holds no JSON object or misses a field.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        # Models sometimes wrap the JSON in prose or code fences
        json_match = re.search(r"\{.*\}", content, re.DOTALL)
        if not json_match:
            raise ValueError("Translation response is not JSON") from None
        data = json.loads(json_match.group())

    if not isinstance(data, dict):
        raise ValueError("Translation response is not a JSON object")
    missing = [key for key in expected if not isinstance(data.get(key), str)]
    if missing:
        raise ValueError(f"Translation response is missing fields: {', '.join(missing)}")
    return {key: data[key] for key in expected}
