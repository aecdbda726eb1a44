"""
Nested reference translation for rich field values.

Field values are modelled as a closed set of variants (Scalar, ListValue,
MapValue, EntityRef). The translator walks them recursively and rewrites every
embedded entity reference to its counterpart in the target language.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from translate_mirror.content.base import ContentEntity, ContentStore
from translate_mirror.resolution.translation_map import EntityTranslationMap, candidate_prefixes

logger = logging.getLogger(__name__)

REF_KEY = "$ref"
DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class Scalar:
    """Opaque leaf value (string, number, bool, None...)."""

    value: Any = None


@dataclass(frozen=True)
class ListValue:
    items: tuple[NestedValue, ...] = ()


@dataclass(frozen=True)
class MapValue:
    entries: dict[str, NestedValue] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityRef:
    """Reference to an entity; ``entity`` is set when the reference is hydrated."""

    entity_id: int
    entity: ContentEntity | None = field(default=None, compare=False)

    @property
    def hydrated(self) -> bool:
        return self.entity is not None

    def as_id(self) -> EntityRef:
        return self if self.entity is None else EntityRef(self.entity_id)


NestedValue = Scalar | ListValue | MapValue | EntityRef


def decode(raw: Any) -> NestedValue:
    """
    Convert JSON-shaped data into nested value variants.

    A mapping holding only ``"$ref"`` marks an entity reference; a
    ContentEntity becomes a hydrated reference.
    """
    if isinstance(raw, ContentEntity):
        return EntityRef(raw.id, raw)
    if isinstance(raw, Mapping):
        if set(raw) == {REF_KEY}:
            return EntityRef(int(raw[REF_KEY]))
        return MapValue({str(key): decode(value) for key, value in raw.items()})
    if isinstance(raw, (list, tuple)):
        return ListValue(tuple(decode(item) for item in raw))
    return Scalar(raw)


def encode(value: NestedValue | None) -> Any:
    """Convert nested value variants back to JSON-shaped data."""
    if value is None:
        return None
    if isinstance(value, Scalar):
        return value.value
    if isinstance(value, ListValue):
        return [encode(item) for item in value.items]
    if isinstance(value, MapValue):
        return {key: encode(item) for key, item in value.entries.items()}
    if isinstance(value, EntityRef):
        return {REF_KEY: value.entity_id}
    raise TypeError(f"Unsupported nested value: {value!r}")


def _without_refs(value: NestedValue) -> NestedValue | None:
    """Copy of ``value`` with every entity reference removed."""
    if isinstance(value, EntityRef):
        return None
    if isinstance(value, ListValue):
        items = (_without_refs(item) for item in value.items)
        return ListValue(tuple(item for item in items if item is not None))
    if isinstance(value, MapValue):
        entries = {key: _without_refs(item) for key, item in value.entries.items()}
        return MapValue({key: item for key, item in entries.items() if item is not None})
    return value


class NestedReferenceTranslator:
    """
    Rewrites entity references inside nested values.

    Strict mode drops references with no translation (relational widgets must
    never show the wrong language); lenient mode keeps the original reference.
    """

    def __init__(
        self,
        store: ContentStore,
        translation_map: EntityTranslationMap | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.store = store
        self.translation_map = translation_map or EntityTranslationMap(store)
        self.max_depth = max_depth

    def translate(
        self,
        value: NestedValue,
        language: str | None,
        depth: int = 0,
        strict: bool = False,
    ) -> NestedValue | None:
        """
        Translate ``value`` into ``language``.

        Returns None only when ``value`` itself is a reference dropped under
        strict mode. Containers keep their shape even when all of their
        contents were dropped. Past ``max_depth`` nothing is resolved any
        more: lenient mode returns the value as it is, strict mode drops
        every reference it still holds.
        """
        if not language:
            return value
        if depth > self.max_depth:
            return _without_refs(value) if strict else value

        if isinstance(value, ListValue):
            translated = (self.translate(item, language, depth + 1, strict) for item in value.items)
            return ListValue(tuple(item for item in translated if item is not None))
        if isinstance(value, MapValue):
            entries: dict[str, NestedValue] = {}
            for key, item in value.entries.items():
                child = self.translate(item, language, depth + 1, strict)
                if child is not None:
                    entries[key] = child
            return MapValue(entries)
        if isinstance(value, EntityRef):
            return self._translate_ref(value, language, depth, strict)
        return value

    def _translate_ref(
        self, ref: EntityRef, language: str, depth: int, strict: bool
    ) -> EntityRef | None:
        entity = ref.entity if ref.entity is not None else self.store.get(ref.entity_id)
        if entity is None:
            return self._miss(ref, depth, strict)

        if entity.language and entity.language in candidate_prefixes(language):
            return ref.as_id() if depth > 0 else ref

        # Translations in another language resolve through their original
        original_id = entity.original_id if entity.is_translation else entity.id
        if original_id is None:
            return self._miss(ref, depth, strict)

        target = self.translation_map.resolve_entity(original_id, language)
        if target is None:
            return self._miss(ref, depth, strict)
        if ref.hydrated and depth == 0:
            return EntityRef(target.id, target)
        return EntityRef(target.id)

    def _miss(self, ref: EntityRef, depth: int, strict: bool) -> EntityRef | None:
        if strict:
            logger.debug("Dropping untranslated reference %s", ref.entity_id)
            return None
        return ref.as_id() if depth > 0 else ref
