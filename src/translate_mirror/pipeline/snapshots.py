"""
Field snapshots for edit detection.

The last-seen normalized value of every watched field is stored as an
attribute of the original entity. The first observation of a field only
records a baseline and never reports a change.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from translate_mirror.content.base import ContentEntity, ContentStore, snapshot_key

logger = logging.getLogger(__name__)


def normalize_value(value: Any) -> str:
    """
    Canonical string form of a field value for comparison.

    None and False become "", containers become JSON with sorted keys,
    strings are trimmed with line endings unified.
    """
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    text = str(value)
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


class FieldSnapshotStore:
    """Detects watched-field drift against stored snapshots."""

    def __init__(
        self,
        store: ContentStore,
        watched_fields: Sequence[str] = ("title", "body", "excerpt"),
        watch_custom_fields: bool = True,
    ):
        self.store = store
        self.watched_fields = list(watched_fields)
        self.watch_custom_fields = watch_custom_fields

    def fields_for(self, entity: ContentEntity) -> list[str]:
        """Watched field names for an entity, custom fields included when enabled."""
        names = list(self.watched_fields)
        if self.watch_custom_fields:
            # Underscore-prefixed fields are internal
            names.extend(
                name for name in entity.fields if name not in names and not name.startswith("_")
            )
        return names

    def detect_changes(self, entity: ContentEntity) -> list[str]:
        """
        Compare current values with the snapshots and update them.

        Returns the names of fields whose value changed. Fields seen for the
        first time are recorded as a baseline and not reported.
        """
        changed: list[str] = []
        for name, value in entity.watched_values(self.fields_for(entity)).items():
            key = snapshot_key(name)
            current = normalize_value(value)
            previous = entity.attributes.get(key)
            if previous is None:
                previous = self.store.get_attribute(entity.id, key)

            if previous is None:
                logger.debug("Baseline snapshot for %s.%s", entity.id, name)
                self.store.set_attribute(entity.id, key, current)
                entity.attributes[key] = current
                continue
            if previous != current:
                changed.append(name)
                self.store.set_attribute(entity.id, key, current)
                entity.attributes[key] = current
        return changed
