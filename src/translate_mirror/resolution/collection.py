"""
Collection filter for listing queries (archives, home feeds).

Rewrites a candidate set of entity ids to what the active language may show:
originals only for the default language, the language's translations otherwise.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from translate_mirror.content.base import LANGUAGE, ORIGINAL_ID, PUBLISHED, ContentStore
from translate_mirror.resolution.translation_map import EntityTranslationMap, candidate_prefixes


class CollectionFilter:
    """Language-aware filtering of listing candidates."""

    def __init__(self, store: ContentStore, translation_map: EntityTranslationMap | None = None):
        self.store = store
        self.translation_map = translation_map or EntityTranslationMap(store)

    def filter_listing(
        self,
        candidate_ids: Sequence[int] | None,
        language: str | None,
        exclude_ids: Iterable[int] = (),
        kind: str | None = None,
    ) -> list[int]:
        """
        Ids the listing should show, in display order.

        Args:
            candidate_ids: Ids produced by the listing query. None means every
                published translation in ``language`` (of ``kind``, if given).
            language: Active language prefix; None for the default language.
            exclude_ids: Ids already shown elsewhere on the page.
            kind: Optional entity kind restriction.

        Returns:
            For the default language, the originals among the candidates in
            their given order. Otherwise the language's published translations,
            newest first. An empty list is a valid answer and is never replaced
            by originals.
        """
        excluded = set(exclude_ids)
        if not language:
            return self._originals_only(candidate_ids or [], excluded)

        if candidate_ids is None:
            representatives = self._tagged_translations(language, kind)
        else:
            representatives = self._representatives(candidate_ids, language)

        entities = self.store.list_recent(
            list(dict.fromkeys(representatives)), kind=kind, status=PUBLISHED
        )
        result = []
        for entity in entities:
            original_id = entity.original_id
            if original_id is None or not self._is_published(original_id):
                continue
            if entity.id in excluded or original_id in excluded:
                continue
            result.append(entity.id)
        return result

    def _originals_only(self, candidate_ids: Sequence[int], excluded: set[int]) -> list[int]:
        attributes = self.store.get_attributes_bulk(candidate_ids, [ORIGINAL_ID, LANGUAGE])
        result = []
        seen: set[int] = set()
        for entity_id in candidate_ids:
            if entity_id in excluded or entity_id in seen:
                continue
            seen.add(entity_id)
            if attributes.get((entity_id, LANGUAGE)):
                continue
            original = attributes.get((entity_id, ORIGINAL_ID))
            if original and original != str(entity_id):
                continue
            result.append(entity_id)
        return result

    def _tagged_translations(self, language: str, kind: str | None) -> list[int]:
        """
        One published translation per original, walking the prefix chain.

        "fr-CA" lists entities tagged "fr-CA", then "frca", then "fr" for
        originals that have no closer translation.
        """
        chosen: dict[int, int] = {}
        for candidate in candidate_prefixes(language):
            tagged = self.store.query_by_attribute(LANGUAGE, candidate, kind=kind, status=PUBLISHED)
            originals = self.store.get_attributes_bulk(tagged, [ORIGINAL_ID])
            for entity_id in tagged:
                raw = originals.get((entity_id, ORIGINAL_ID), "")
                if not raw.isdigit() or int(raw) == entity_id:
                    continue
                chosen.setdefault(int(raw), entity_id)
        return list(chosen.values())

    def _representatives(self, candidate_ids: Sequence[int], language: str) -> list[int]:
        """Map each candidate to its translation in ``language``; misses are dropped."""
        representatives = []
        for entity in self.store.get_many(candidate_ids).values():
            if entity.language == language:
                representatives.append(entity.id)
                continue
            original_id = entity.original_id if entity.is_translation else entity.id
            if original_id is None:
                continue
            target = self.translation_map.resolve(original_id, language)
            if target is not None:
                representatives.append(target)
        return representatives

    def _is_published(self, entity_id: int) -> bool:
        entity = self.store.get(entity_id)
        return entity is not None and entity.is_published
