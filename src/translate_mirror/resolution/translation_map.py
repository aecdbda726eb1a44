"""
Entity translation map.

Resolves an original entity to its translation in a given language, walking
the prefix fallback chain over stored pointers before falling back to a live
attribute lookup.
"""

from __future__ import annotations

import logging

from translate_mirror.content.base import LANGUAGE, ORIGINAL_ID, ContentEntity, ContentStore
from translate_mirror.languages import normalize

logger = logging.getLogger(__name__)


def candidate_prefixes(prefix: str) -> list[str]:
    """
    Deduplicated lookup keys for a language prefix.

    Order: the raw prefix, its normalized form, then the base locale before
    the first hyphen ("fr-CA" -> "fr-CA", "frca", "fr").
    """
    candidates: list[str] = []
    for candidate in (prefix, normalize(prefix), prefix.split("-", 1)[0]):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


class EntityTranslationMap:
    """Original <-> translation lookups over a content store."""

    def __init__(self, store: ContentStore):
        self.store = store

    def resolve(self, original_id: int, prefix: str) -> int | None:
        """
        Id of the published translation of ``original_id`` in ``prefix``.

        Returns None when no candidate key leads to a published entity.
        """
        entity = self.resolve_entity(original_id, prefix)
        return entity.id if entity is not None else None

    def resolve_entity(self, original_id: int, prefix: str) -> ContentEntity | None:
        """Same as resolve(), returning the hydrated translation."""
        if not prefix:
            return None
        candidates = candidate_prefixes(prefix)

        original = self.store.get(original_id)
        if original is not None:
            for candidate in candidates:
                target_id = original.translation_pointer(candidate)
                if target_id is None:
                    continue
                target = self._published(target_id)
                if target is not None:
                    return target

        # Translations created before pointers were written
        for candidate in candidates:
            for entity_id in self.store.query_by_attribute(LANGUAGE, candidate):
                if self.store.get_attribute(entity_id, ORIGINAL_ID) != str(original_id):
                    continue
                target = self._published(entity_id)
                if target is not None:
                    logger.debug(
                        "Live lookup resolved %s/%s to %s", original_id, candidate, entity_id
                    )
                    return target
        return None

    def resolve_slug(self, prefix: str, slug: str) -> int | None:
        """
        Id of the published translation in ``prefix`` whose slug is ``slug``.

        Used for requests routed as /<segment>/<slug>/. Exact slugs win over
        de-duplicated ones ("hello-2") for every candidate prefix.
        """
        if not prefix or not slug:
            return None
        candidates = candidate_prefixes(prefix)
        for suffixed in (False, True):
            for candidate in candidates:
                found = self.store.find_by_slug(slug, candidate, suffixed=suffixed)
                if found:
                    return found[0]
        return None

    def resolve_original(self, entity_id: int) -> int:
        """The entity itself if untagged, else the original it points to."""
        entity = self.store.get(entity_id)
        if entity is None:
            return entity_id
        return entity.original_id or entity.id

    def _published(self, entity_id: int) -> ContentEntity | None:
        entity = self.store.get(entity_id)
        if entity is None or not entity.is_published:
            return None
        return entity
