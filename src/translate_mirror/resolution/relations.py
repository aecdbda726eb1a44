"""
Relation remapping for translated copies.

Hierarchical terms, pages and menu items point at other entities through
their fields. A translated copy must point at the translated counterparts:

- ``parent`` and ``menu`` move to their translation, or are detached when the
  parent has not been translated yet.
- ``object_id`` (the entity a menu item links to) moves to its translation
  when one exists and keeps the original target otherwise.
- ``url`` on custom menu links is rewritten to the translated slug and
  prefixed with the language segment.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit, urlunsplit

if TYPE_CHECKING:
    from translate_mirror.content.base import ContentEntity
    from translate_mirror.resolution.context import LanguageContextResolver
    from translate_mirror.resolution.translation_map import EntityTranslationMap

logger = logging.getLogger(__name__)

PARENT_FIELDS = ("parent", "menu")
TARGET_FIELD = "object_id"
URL_FIELD = "url"

# Kinds whose url field is a navigation link rather than content
LINK_KINDS = frozenset({"menu_item"})


def _as_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value) or None
    return None


class RelationRemapper:
    """Points the relation fields of a translated copy at translated entities."""

    def __init__(
        self,
        translation_map: EntityTranslationMap,
        context_resolver: LanguageContextResolver | None = None,
    ):
        """
        Initialize the remapper.

        Args:
            translation_map: Lookup of translated counterparts.
            context_resolver: Used to localize custom link URLs. Without it,
                link URLs are copied unchanged.
        """
        self.translation_map = translation_map
        self.context_resolver = context_resolver

    def relation_fields(self, entity: ContentEntity) -> list[str]:
        """Fields of ``entity`` that hold relations rather than translatable text."""
        names = [name for name in (*PARENT_FIELDS, TARGET_FIELD) if name in entity.fields]
        if entity.kind in LINK_KINDS and URL_FIELD in entity.fields:
            names.append(URL_FIELD)
        return names

    def remap(
        self, entity: ContentEntity, prefix: str, names: Iterable[str] | None = None
    ) -> dict[str, Any]:
        """
        Relation field values for the ``prefix`` copy of ``entity``.

        Only fields listed in ``names`` are returned when it is given.
        """
        wanted = set(names) if names is not None else None
        remapped: dict[str, Any] = {}
        for name in self.relation_fields(entity):
            if wanted is not None and name not in wanted:
                continue
            value = entity.fields[name]
            if name == URL_FIELD:
                remapped[name] = self.localize_link(value, prefix) if isinstance(value, str) else value
            elif name == TARGET_FIELD:
                target = self._translated(value, prefix)
                remapped[name] = target if target is not None else value
            else:
                remapped[name] = self._translated(value, prefix)
                if remapped[name] is None and _as_id(value) is not None:
                    logger.debug("%s %s of %s has no %s translation yet", name, value, entity.id, prefix)
        return remapped

    def localize_link(self, url: str, prefix: str) -> str:
        """
        Rewrite a site-relative link for ``prefix``.

        The last path segment is swapped for the translated slug when it names
        a translated original; the language segment is then inserted. Links
        carrying a scheme or host are left alone.
        """
        if self.context_resolver is None:
            return url
        parts = urlsplit(url)
        if parts.scheme or parts.netloc or not parts.path.strip("/"):
            return url

        segments = parts.path.strip("/").split("/")
        store = self.translation_map.store
        for original_id in store.find_by_slug(segments[-1])[:1]:
            target = self.translation_map.resolve_entity(original_id, prefix)
            if target is not None and target.slug:
                segments[-1] = target.slug

        trailing = "/" if parts.path.endswith("/") else ""
        path = "/" + "/".join(segments) + trailing
        rewritten = urlunsplit(("", "", path, parts.query, parts.fragment))
        return self.context_resolver.localize_url(rewritten, prefix)

    def _translated(self, value: Any, prefix: str) -> int | None:
        entity_id = _as_id(value)
        if entity_id is None:
            return None
        return self.translation_map.resolve(entity_id, prefix)
