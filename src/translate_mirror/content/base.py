"""
Base classes for content stores.

Defines the entity model and the abstract interface the resolution engine and
the job pipeline use to talk to the CMS's content storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Attribute keys used for language relations
ORIGINAL_ID = "original_id"
LANGUAGE = "language"
TRANSLATED_PREFIX = "translated_"
SNAPSHOT_PREFIX = "snapshot_"

PUBLISHED = "publish"
DRAFT = "draft"

# Entity kinds that never take part in translation
UNTRANSLATABLE_KINDS = frozenset({"attachment", "revision"})


def pointer_key(prefix: str) -> str:
    """Attribute key of the translation pointer for a language prefix."""
    return f"{TRANSLATED_PREFIX}{prefix}"


def snapshot_key(field_name: str) -> str:
    """Attribute key of the FieldSnapshot for a watched field."""
    return f"{SNAPSHOT_PREFIX}{field_name}"


@dataclass
class ContentEntity:
    """A content item (post, page, term, menu...) and its language attributes."""

    id: int
    kind: str = "post"
    title: str = ""
    slug: str = ""
    status: str = DRAFT
    fields: dict[str, Any] = field(default_factory=dict)
    attributes: dict[str, str] = field(default_factory=dict)
    published_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def language(self) -> str | None:
        return self.attributes.get(LANGUAGE) or None

    @property
    def original_id(self) -> int | None:
        """Id of the original this entity translates; None for originals."""
        raw = self.attributes.get(ORIGINAL_ID)
        if raw in (None, ""):
            return None
        value = int(raw)
        # A self-reference marks an original
        return None if value == self.id else value

    @property
    def is_translation(self) -> bool:
        return self.language is not None or self.original_id is not None

    @property
    def is_original(self) -> bool:
        return not self.is_translation

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED

    def translation_pointer(self, prefix: str) -> int | None:
        raw = self.attributes.get(pointer_key(prefix))
        if raw in (None, ""):
            return None
        return int(raw)

    def watched_values(self, names: Iterable[str]) -> dict[str, Any]:
        """Current values of the named fields; title lives on the entity itself."""
        values: dict[str, Any] = {}
        for name in names:
            values[name] = self.title if name == "title" else self.fields.get(name)
        return values


class ContentStore(ABC):
    """
    Abstract base class for content stores.

    The core only needs get-by-id, attribute get/set, query-by-attribute and a
    recency-ordered listing; the remaining methods serve the executors, the
    backfill scan and the admin surface.
    """

    @abstractmethod
    def get(self, entity_id: int) -> ContentEntity | None:
        """Get an entity with its attributes, or None if it does not exist."""
        ...

    @abstractmethod
    def get_attribute(self, entity_id: int, key: str) -> str | None:
        ...

    @abstractmethod
    def set_attribute(self, entity_id: int, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete_attribute(self, entity_id: int, key: str) -> None:
        ...

    @abstractmethod
    def query_by_attribute(
        self,
        key: str,
        value: str,
        *,
        kind: str | None = None,
        status: str | None = None,
    ) -> list[int]:
        """Ids of entities whose attribute ``key`` equals ``value``."""
        ...

    @abstractmethod
    def list_recent(
        self,
        ids: Sequence[int] | None = None,
        *,
        kind: str | None = None,
        status: str | None = PUBLISHED,
    ) -> list[ContentEntity]:
        """Entities ordered by recency (published_at, then id), newest first."""
        ...

    @abstractmethod
    def get_attributes_bulk(self, entity_ids: Sequence[int], keys: Sequence[str]) -> dict[tuple[int, str], str]:
        """Map of (entity_id, key) to value for every stored pair."""
        ...

    @abstractmethod
    def create(
        self,
        *,
        kind: str,
        title: str = "",
        slug: str = "",
        status: str = DRAFT,
        fields: Mapping[str, Any] | None = None,
        published_at: datetime | None = None,
    ) -> int:
        ...

    @abstractmethod
    def update_fields(
        self,
        entity_id: int,
        *,
        title: str | None = None,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        """Update the title and merge ``fields`` into the stored fields."""
        ...

    @abstractmethod
    def set_status(self, entity_id: int, status: str, published_at: datetime | None = None) -> None:
        ...

    @abstractmethod
    def link_translation(self, original_id: int, translated_id: int, prefix: str) -> None:
        """
        Write the pointer on the original and the tag on the translation.

        Both writes land together or not at all.
        """
        ...

    @abstractmethod
    def list_originals(
        self,
        kinds: Sequence[str],
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[int]:
        """Published originals of the given kinds, ordered by id."""
        ...

    @abstractmethod
    def find_by_slug(self, slug: str, language: str | None = None, *, suffixed: bool = False) -> list[int]:
        """
        Published entities with ``slug``.

        With ``language``, only translations tagged with it; without, only
        originals. ``suffixed`` also matches de-duplicated slugs such as
        "hello-2", exact matches first.
        """
        ...

    @abstractmethod
    def search_titles(self, text: str) -> list[int]:
        """Ids of entities whose title contains ``text`` (case-insensitive)."""
        ...

    def get_many(self, entity_ids: Iterable[int]) -> dict[int, ContentEntity]:
        """Fetch several entities; missing ids are left out."""
        found: dict[int, ContentEntity] = {}
        for entity_id in entity_ids:
            entity = self.get(entity_id)
            if entity is not None:
                found[entity_id] = entity
        return found
