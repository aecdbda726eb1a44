"""
Language registry for translate-mirror.

Keeps the ordered list of configured languages and enforces the two
uniqueness rules: prefixes must differ exactly, URL paths must differ after
normalization.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from translate_mirror.config import LanguageConfig
    from translate_mirror.database import Database

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class LanguageConfigError(ValueError):
    """Raised when a language would collide with or corrupt the registry."""


def normalize(prefix: str) -> str:
    """Strip everything but ASCII letters and digits, then lowercase."""
    return _NON_ALNUM.sub("", prefix or "").lower()


@dataclass(frozen=True)
class Language:
    """A configured target language."""

    prefix: str
    name: str
    path: str = ""
    description: str = ""

    @property
    def url_segment(self) -> str:
        return url_segment(self)


def url_segment(language: Language) -> str:
    """
    URL segment for a language.

    The explicit path wins; otherwise the raw prefix is used with surrounding
    hyphens and slashes trimmed. Case is left alone.
    """
    path = (language.path or "").strip().strip("/")
    if path:
        return path
    return language.prefix.strip().strip("-/")


def _effective_path(language: Language) -> str:
    return language.path or language.prefix


class LanguageRegistry:
    """Ordered, validated collection of languages."""

    def __init__(self, languages: Iterable[Language] = ()):
        self._languages: list[Language] = []
        for language in languages:
            self.add(language)

    def __iter__(self) -> Iterator[Language]:
        return iter(list(self._languages))

    def __len__(self) -> int:
        return len(self._languages)

    def __contains__(self, prefix: object) -> bool:
        return any(lang.prefix == prefix for lang in self._languages)

    @property
    def languages(self) -> list[Language]:
        return list(self._languages)

    def prefixes(self) -> list[str]:
        return [lang.prefix for lang in self._languages]

    def get(self, prefix: str) -> Language | None:
        """Get a language by its exact prefix."""
        for lang in self._languages:
            if lang.prefix == prefix:
                return lang
        return None

    def resolve_by_url_segment(self, segment: str) -> Language | None:
        """
        Find the language whose URL segment matches ``segment``.

        Exact matches win over normalized ones; normalized paths are unique,
        so the fallback is never ambiguous.
        """
        segment = (segment or "").strip("/")
        if not segment:
            return None
        for lang in self._languages:
            if url_segment(lang) == segment:
                return lang
        wanted = normalize(segment)
        if not wanted:
            return None
        for lang in self._languages:
            if normalize(url_segment(lang)) == wanted:
                return lang
        return None

    # ==================== Validation ====================

    def prefix_exists(self, prefix: str, exclude_index: int | None = None) -> bool:
        """Exact, case-sensitive prefix check."""
        return any(
            lang.prefix == prefix
            for index, lang in enumerate(self._languages)
            if index != exclude_index
        )

    def path_exists(self, path: str, exclude_index: int | None = None) -> bool:
        """Normalized path check; an empty normalized path never collides."""
        wanted = normalize(path)
        if not wanted:
            return False
        return any(
            normalize(_effective_path(lang)) == wanted
            for index, lang in enumerate(self._languages)
            if index != exclude_index
        )

    def _index_of(self, prefix: str) -> int:
        for index, lang in enumerate(self._languages):
            if lang.prefix == prefix:
                return index
        raise LanguageConfigError(f"Unknown language prefix: {prefix!r}")

    def _validated(self, language: Language, exclude_index: int | None = None) -> Language:
        prefix = language.prefix.strip()
        if not prefix:
            raise LanguageConfigError("Language prefix cannot be empty")
        if not language.name.strip():
            raise LanguageConfigError("Language name cannot be empty")
        if self.prefix_exists(prefix, exclude_index):
            raise LanguageConfigError(f"Prefix {prefix!r} is already used by another language")

        path = language.path.strip().strip("/")
        effective = path or prefix
        if self.path_exists(effective, exclude_index):
            raise LanguageConfigError(
                f"Path {effective!r} collides with an existing language path "
                f"(normalized: {normalize(effective)!r})"
            )
        return replace(language, prefix=prefix, name=language.name.strip(), path=path)

    # ==================== Mutation ====================

    def add(self, language: Language) -> Language:
        """Append a language; raises LanguageConfigError on any collision."""
        validated = self._validated(language)
        self._languages.append(validated)
        return validated

    def update(
        self,
        prefix: str,
        *,
        name: str | None = None,
        new_prefix: str | None = None,
        path: str | None = None,
        description: str | None = None,
    ) -> Language:
        """
        Edit the language currently stored under ``prefix``.

        Omitted or empty path/description keep their existing values.
        """
        index = self._index_of(prefix)
        existing = self._languages[index]
        candidate = Language(
            prefix=new_prefix if new_prefix else existing.prefix,
            name=name if name else existing.name,
            path=path if path else existing.path,
            description=description if description else existing.description,
        )
        validated = self._validated(candidate, exclude_index=index)
        self._languages[index] = validated
        return validated

    def remove(self, prefix: str) -> Language:
        index = self._index_of(prefix)
        return self._languages.pop(index)

    # ==================== Persistence ====================

    @classmethod
    def from_config(cls, entries: Iterable[LanguageConfig]) -> LanguageRegistry:
        return cls(
            Language(
                prefix=entry.prefix,
                name=entry.name,
                path=entry.path,
                description=entry.description,
            )
            for entry in entries
        )

    @classmethod
    def load(cls, db: Database) -> LanguageRegistry:
        """Load the registry from the languages table."""
        rows = db.conn.execute(
            "SELECT prefix, name, path, description FROM languages ORDER BY position"
        ).fetchall()
        registry = cls()
        # Stored rows were validated on save; keep them as-is
        registry._languages = [
            Language(prefix=row[0], name=row[1], path=row[2] or "", description=row[3] or "")
            for row in rows
        ]
        return registry

    def save(self, db: Database) -> None:
        """Replace the stored languages with this registry's contents."""
        with db.transaction() as conn:
            conn.execute("DELETE FROM languages")
            for position, lang in enumerate(self._languages):
                conn.execute(
                    """
                    INSERT INTO languages (position, prefix, name, path, description)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [position, lang.prefix, lang.name, lang.path, lang.description],
                )
