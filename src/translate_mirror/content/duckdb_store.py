"""
DuckDB-backed content store.

A reference implementation of the ContentStore interface. Entities live in the
``entities`` table and their language relations and snapshots in
``entity_meta``, mirroring how a CMS keeps post meta next to posts.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from translate_mirror.content.base import (
    LANGUAGE,
    ORIGINAL_ID,
    PUBLISHED,
    UNTRANSLATABLE_KINDS,
    ContentEntity,
    ContentStore,
    pointer_key,
)
from translate_mirror.database import load_json, utcnow

if TYPE_CHECKING:
    from translate_mirror.database import Database

_ENTITY_COLUMNS = "id, kind, slug, title, status, fields, published_at, created_at"


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class DuckDBContentStore(ContentStore):
    """Content store persisted in the translate-mirror DuckDB database."""

    def __init__(self, db: Database):
        """
        Initialize the store.

        Args:
            db: Database instance holding the entities and entity_meta tables.
        """
        self.db = db

    # ==================== Entities ====================

    def get(self, entity_id: int) -> ContentEntity | None:
        row = self.db.conn.execute(
            f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE id = ?", [entity_id]
        ).fetchone()
        if not row:
            return None
        entity = self._row_to_entity(row)
        entity.attributes = self._attributes_for([entity.id]).get(entity.id, {})
        return entity

    def list_recent(
        self,
        ids: Sequence[int] | None = None,
        *,
        kind: str | None = None,
        status: str | None = PUBLISHED,
    ) -> list[ContentEntity]:
        conditions = []
        params: list[Any] = []

        if ids is not None:
            if not ids:
                return []
            conditions.append(f"id IN ({_placeholders(ids)})")
            params.extend(ids)
        if kind:
            conditions.append("kind = ?")
            params.append(kind)
        if status:
            conditions.append("status = ?")
            params.append(status)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.db.conn.execute(
            f"""
            SELECT {_ENTITY_COLUMNS}
            FROM entities
            {where_clause}
            ORDER BY published_at DESC NULLS LAST, id DESC
            """,
            params,
        ).fetchall()

        entities = [self._row_to_entity(row) for row in rows]
        attributes = self._attributes_for([e.id for e in entities])
        for entity in entities:
            entity.attributes = attributes.get(entity.id, {})
        return entities

    def create(
        self,
        *,
        kind: str,
        title: str = "",
        slug: str = "",
        status: str = "draft",
        fields: Mapping[str, Any] | None = None,
        published_at: datetime | None = None,
    ) -> int:
        now = utcnow()
        if status == PUBLISHED and published_at is None:
            published_at = now
        result = self.db.conn.execute(
            """
            INSERT INTO entities (id, kind, slug, title, status, fields, published_at, created_at, updated_at)
            VALUES (nextval('entities_id_seq'), ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [kind, slug, title, status, json.dumps(dict(fields or {})), published_at, now, now],
        ).fetchone()
        return result[0] if result else 0

    def update_fields(
        self,
        entity_id: int,
        *,
        title: str | None = None,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        entity = self.get(entity_id)
        if entity is None:
            raise LookupError(f"Entity {entity_id} not found")

        merged = dict(entity.fields)
        merged.update(fields or {})
        self.db.conn.execute(
            "UPDATE entities SET title = ?, fields = ?, updated_at = ? WHERE id = ?",
            [entity.title if title is None else title, json.dumps(merged), utcnow(), entity_id],
        )

    def set_status(self, entity_id: int, status: str, published_at: datetime | None = None) -> None:
        if status == PUBLISHED and published_at is None:
            # Keep the first publication date on re-publish
            self.db.conn.execute(
                """
                UPDATE entities
                SET status = ?, published_at = COALESCE(published_at, ?), updated_at = ?
                WHERE id = ?
                """,
                [status, utcnow(), utcnow(), entity_id],
            )
            return
        self.db.conn.execute(
            """
            UPDATE entities
            SET status = ?, published_at = COALESCE(?, published_at), updated_at = ?
            WHERE id = ?
            """,
            [status, published_at, utcnow(), entity_id],
        )

    def list_originals(
        self,
        kinds: Sequence[str],
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[int]:
        kinds = [k for k in kinds if k not in UNTRANSLATABLE_KINDS]
        if not kinds:
            return []

        conditions = [f"e.kind IN ({_placeholders(kinds)})", "e.status = ?"]
        params: list[Any] = [*kinds, PUBLISHED]
        if start is not None:
            conditions.append("e.published_at >= ?")
            params.append(start)
        if end is not None:
            conditions.append("e.published_at <= ?")
            params.append(end)

        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        elif offset:
            limit_sql = "OFFSET ?"
            params.append(offset)

        rows = self.db.conn.execute(
            f"""
            SELECT e.id FROM entities e
            WHERE {" AND ".join(conditions)}
            AND NOT EXISTS (
                SELECT 1 FROM entity_meta m
                WHERE m.entity_id = e.id
                AND COALESCE(m.value, '') <> ''
                AND (
                    m.key = '{LANGUAGE}'
                    OR (m.key = '{ORIGINAL_ID}' AND m.value <> CAST(e.id AS VARCHAR))
                )
            )
            ORDER BY e.id
            {limit_sql}
            """,
            params,
        ).fetchall()
        return [row[0] for row in rows]

    def find_by_slug(self, slug: str, language: str | None = None, *, suffixed: bool = False) -> list[int]:
        if not slug:
            return []
        skipped_kinds = sorted(UNTRANSLATABLE_KINDS)
        conditions = [f"e.kind NOT IN ({_placeholders(skipped_kinds)})", "e.status = ?"]
        params: list[Any] = [*skipped_kinds, PUBLISHED]
        if suffixed:
            escaped = slug.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            conditions.append("(e.slug = ? OR e.slug LIKE ? ESCAPE '\\')")
            params.extend([slug, f"{escaped}-%"])
        else:
            conditions.append("e.slug = ?")
            params.append(slug)

        tagged = f"""
            SELECT 1 FROM entity_meta m
            WHERE m.entity_id = e.id AND m.key = '{LANGUAGE}' AND m.value = ?
        """
        linked = f"""
            SELECT 1 FROM entity_meta m
            WHERE m.entity_id = e.id AND m.key = '{ORIGINAL_ID}'
            AND COALESCE(m.value, '') NOT IN ('', CAST(e.id AS VARCHAR))
        """
        if language:
            conditions.append(f"EXISTS ({tagged})")
            params.append(language)
            conditions.append(f"EXISTS ({linked})")
        else:
            conditions.append(
                f"NOT EXISTS (SELECT 1 FROM entity_meta m WHERE m.entity_id = e.id "
                f"AND m.key = '{LANGUAGE}' AND COALESCE(m.value, '') <> '')"
            )
            conditions.append(f"NOT EXISTS ({linked})")

        rows = self.db.conn.execute(
            f"""
            SELECT e.id FROM entities e
            WHERE {" AND ".join(conditions)}
            ORDER BY CASE WHEN e.slug = ? THEN 0 ELSE 1 END, e.slug, e.id
            """,
            [*params, slug],
        ).fetchall()
        return [row[0] for row in rows]

    def search_titles(self, text: str) -> list[int]:
        rows = self.db.conn.execute(
            "SELECT id FROM entities WHERE title ILIKE ? ORDER BY id",
            [f"%{text}%"],
        ).fetchall()
        return [row[0] for row in rows]

    # ==================== Attributes ====================

    def get_attribute(self, entity_id: int, key: str) -> str | None:
        row = self.db.conn.execute(
            "SELECT value FROM entity_meta WHERE entity_id = ? AND key = ? LIMIT 1",
            [entity_id, key],
        ).fetchone()
        return row[0] if row else None

    def set_attribute(self, entity_id: int, key: str, value: str) -> None:
        with self.db.transaction() as conn:
            updated = conn.execute(
                "UPDATE entity_meta SET value = ? WHERE entity_id = ? AND key = ? RETURNING entity_id",
                [value, entity_id, key],
            ).fetchall()
            if not updated:
                conn.execute(
                    "INSERT INTO entity_meta (entity_id, key, value) VALUES (?, ?, ?)",
                    [entity_id, key, value],
                )

    def delete_attribute(self, entity_id: int, key: str) -> None:
        self.db.conn.execute(
            "DELETE FROM entity_meta WHERE entity_id = ? AND key = ?", [entity_id, key]
        )

    def query_by_attribute(
        self,
        key: str,
        value: str,
        *,
        kind: str | None = None,
        status: str | None = None,
    ) -> list[int]:
        conditions = ["m.key = ?", "m.value = ?"]
        params: list[Any] = [key, value]
        if kind:
            conditions.append("e.kind = ?")
            params.append(kind)
        if status:
            conditions.append("e.status = ?")
            params.append(status)

        rows = self.db.conn.execute(
            f"""
            SELECT DISTINCT m.entity_id
            FROM entity_meta m
            JOIN entities e ON e.id = m.entity_id
            WHERE {" AND ".join(conditions)}
            ORDER BY m.entity_id
            """,
            params,
        ).fetchall()
        return [row[0] for row in rows]

    def get_attributes_bulk(
        self, entity_ids: Sequence[int], keys: Sequence[str]
    ) -> dict[tuple[int, str], str]:
        if not entity_ids or not keys:
            return {}
        rows = self.db.conn.execute(
            f"""
            SELECT entity_id, key, value FROM entity_meta
            WHERE entity_id IN ({_placeholders(entity_ids)})
            AND key IN ({_placeholders(keys)})
            """,
            [*entity_ids, *keys],
        ).fetchall()
        return {(row[0], row[1]): row[2] for row in rows}

    def link_translation(self, original_id: int, translated_id: int, prefix: str) -> None:
        if original_id == translated_id:
            raise ValueError("An entity cannot be its own translation")
        original = self.get(original_id)
        translated = self.get(translated_id)
        if original is None or translated is None:
            missing = original_id if original is None else translated_id
            raise LookupError(f"Entity {missing} not found")
        if original.is_translation:
            raise ValueError(f"Entity {original_id} is itself a translation")

        with self.db.transaction():
            self.set_attribute(translated_id, ORIGINAL_ID, str(original_id))
            self.set_attribute(translated_id, LANGUAGE, prefix)
            self.set_attribute(original_id, pointer_key(prefix), str(translated_id))

    # ==================== Helpers ====================

    def _attributes_for(self, entity_ids: Sequence[int]) -> dict[int, dict[str, str]]:
        if not entity_ids:
            return {}
        rows = self.db.conn.execute(
            f"""
            SELECT entity_id, key, value FROM entity_meta
            WHERE entity_id IN ({_placeholders(entity_ids)})
            """,
            list(entity_ids),
        ).fetchall()
        attributes: dict[int, dict[str, str]] = {}
        for entity_id, key, value in rows:
            attributes.setdefault(entity_id, {})[key] = value
        return attributes

    def _row_to_entity(self, row: tuple) -> ContentEntity:
        """Convert database row to ContentEntity."""
        return ContentEntity(
            id=row[0],
            kind=row[1],
            slug=row[2] or "",
            title=row[3] or "",
            status=row[4],
            fields=load_json(row[5]) or {},
            published_at=row[6],
            created_at=row[7],
        )
