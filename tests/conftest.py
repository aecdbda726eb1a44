"""Shared fixtures: an in-memory database, the DuckDB content store and a small registry."""

from datetime import datetime, timedelta

import pytest

from translate_mirror.content import PUBLISHED, DuckDBContentStore
from translate_mirror.database import Database
from translate_mirror.languages import Language, LanguageRegistry


class FakeClock:
    """Controllable clock for queue and scheduler tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def store(db):
    return DuckDBContentStore(db)


@pytest.fixture
def registry():
    return LanguageRegistry(
        [
            Language(prefix="fr", name="French"),
            Language(prefix="es", name="Spanish", path="es"),
        ]
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 12, 0, 0))


@pytest.fixture
def make_entity(store):
    """Create an entity; published by default."""

    def _make(title="Hello", kind="post", status=PUBLISHED, fields=None, published_at=None, slug=""):
        return store.create(
            kind=kind,
            title=title,
            slug=slug or title.lower().replace(" ", "-"),
            status=status,
            fields=fields or {},
            published_at=published_at,
        )

    return _make


@pytest.fixture
def make_translation(store, make_entity):
    """Create a translation of an original and link it."""

    def _make(original_id, prefix, title=None, status=PUBLISHED, link=True):
        translated_id = make_entity(title=title or f"{prefix} {original_id}", status=status)
        if link:
            store.link_translation(original_id, translated_id, prefix)
        return translated_id

    return _make
