"""Language-aware resolution of entities, listings and nested references."""

from translate_mirror.resolution.collection import CollectionFilter
from translate_mirror.resolution.context import LanguageContextResolver, RequestContext, RouteMatch
from translate_mirror.resolution.nested import (
    EntityRef,
    ListValue,
    MapValue,
    NestedReferenceTranslator,
    Scalar,
    decode,
    encode,
)
from translate_mirror.resolution.relations import RelationRemapper
from translate_mirror.resolution.translation_map import EntityTranslationMap, candidate_prefixes

__all__ = [
    "CollectionFilter",
    "EntityRef",
    "EntityTranslationMap",
    "LanguageContextResolver",
    "ListValue",
    "MapValue",
    "NestedReferenceTranslator",
    "RelationRemapper",
    "RequestContext",
    "RouteMatch",
    "Scalar",
    "candidate_prefixes",
    "decode",
    "encode",
]
