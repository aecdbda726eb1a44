"""
Content store abstraction.

The CMS's own storage is an external collaborator; the DuckDB store is a
reference implementation used by the CLI and the tests.
"""

from translate_mirror.content.base import (
    LANGUAGE,
    ORIGINAL_ID,
    PUBLISHED,
    ContentEntity,
    ContentStore,
    pointer_key,
    snapshot_key,
)
from translate_mirror.content.duckdb_store import DuckDBContentStore

__all__ = [
    "ContentEntity",
    "ContentStore",
    "DuckDBContentStore",
    "LANGUAGE",
    "ORIGINAL_ID",
    "PUBLISHED",
    "pointer_key",
    "snapshot_key",
]
