"""
translate-mirror: multilingual mirrors for site content.

This package provides tools for:
- A language registry with collision-checked prefixes and URL segments
- A DuckDB-backed translation job queue with NEW, EDIT and OLD jobs
- Language-aware resolution of requests, listings and nested references
- LLM translation of content through OpenRouter
"""

__version__ = "0.1.0"

from translate_mirror.config import Settings, load_config
from translate_mirror.content import ContentEntity, ContentStore, DuckDBContentStore
from translate_mirror.database import Database
from translate_mirror.languages import Language, LanguageConfigError, LanguageRegistry
from translate_mirror.pipeline import (
    BacklogAnalyzer,
    JobStatus,
    JobTriggers,
    JobType,
    QueueJob,
    QueueWorker,
    TranslationQueue,
)
from translate_mirror.resolution import (
    CollectionFilter,
    EntityTranslationMap,
    LanguageContextResolver,
    NestedReferenceTranslator,
    RequestContext,
)

__all__ = [
    # Config
    "Settings",
    "load_config",
    # Storage
    "Database",
    "ContentEntity",
    "ContentStore",
    "DuckDBContentStore",
    # Languages
    "Language",
    "LanguageConfigError",
    "LanguageRegistry",
    # Pipeline
    "BacklogAnalyzer",
    "JobStatus",
    "JobTriggers",
    "JobType",
    "QueueJob",
    "QueueWorker",
    "TranslationQueue",
    # Resolution
    "CollectionFilter",
    "EntityTranslationMap",
    "LanguageContextResolver",
    "NestedReferenceTranslator",
    "RequestContext",
]
