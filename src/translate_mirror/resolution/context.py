"""
Language context resolution for inbound requests.

Determines the active language of a request from an explicit RequestContext,
and provides the routing helpers (route pattern, route matching, URL
localization, canonical-redirect suppression) the routing layer builds on.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from translate_mirror.languages import Language, LanguageRegistry, url_segment
from translate_mirror.resolution.translation_map import EntityTranslationMap

if TYPE_CHECKING:
    from translate_mirror.config import RoutingConfig
    from translate_mirror.content.base import ContentStore

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """
    Request-scoped state passed explicitly to the resolver.

    ``routing_token`` is the language token the routing layer parsed for
    this request; ``entity_id`` is the entity already bound to it, if any.
    """

    path: str
    routing_token: str | None = None
    entity_id: int | None = None

    @property
    def language_bound(self) -> bool:
        return bool(self.routing_token)

    def bind_language(self, prefix: str) -> None:
        """Bind a language to the request; the request is canonical from now on."""
        self.routing_token = prefix


@dataclass
class RouteMatch:
    """Result of matching a request path against the language route pattern."""

    prefix: str
    slug: str
    page: int | None = None


def _split_path(path: str) -> str:
    """Path component of a URI without query/fragment or surrounding slashes."""
    return urlsplit(path).path.strip("/")


class LanguageContextResolver:
    """Resolves the active language of a request."""

    def __init__(
        self,
        registry: LanguageRegistry,
        store: ContentStore | None = None,
        routing: RoutingConfig | None = None,
        document_root: Path | str | None = None,
    ):
        """
        Initialize the resolver.

        Args:
            registry: Configured languages.
            store: Content store, used to read the language tag of a bound entity.
            routing: Ignored-path settings; defaults apply when omitted.
            document_root: Directory served as static files, if any.
        """
        if routing is None:
            from translate_mirror.config import RoutingConfig

            routing = RoutingConfig()

        self.registry = registry
        self.store = store
        self.routing = routing
        self.document_root = Path(document_root) if document_root else None

        extensions = "|".join(re.escape(ext.lstrip(".")) for ext in routing.asset_extensions)
        self._asset_re = re.compile(rf"\.({extensions})$", re.IGNORECASE) if extensions else None
        self._system = {p.strip("/") for p in routing.system_prefixes if p.strip("/")}
        self._feeds = {f.strip("/") for f in routing.feed_segments if f.strip("/")}
        self._excludes = [e.strip("/") for e in routing.exclude_paths if e.strip("/")]

    # ==================== Detection ====================

    def resolve_for_request(self, ctx: RequestContext) -> str | None:
        """
        Language prefix for the request, or None for the default language.

        Precedence: routing token bound to the request, then the language tag
        of the entity bound to it, then the longest URL-segment prefix of the
        path. Ignored paths always resolve to None.
        """
        detected = self._match_segment(_split_path(ctx.path))
        if self.is_ignored(ctx.path, detected):
            return None

        if ctx.routing_token:
            language = self._language_for_token(ctx.routing_token)
            if language is not None:
                return language.prefix
            logger.debug("Unknown routing token %r for %s", ctx.routing_token, ctx.path)

        if ctx.entity_id is not None and self.store is not None:
            entity = self.store.get(ctx.entity_id)
            if entity is not None and entity.language:
                return entity.language

        return detected.prefix if detected is not None else None

    def is_ignored(self, path: str, language: Language | None = None) -> bool:
        """
        Whether a path never carries language semantics.

        Covers files on disk (checked with and without the language segment),
        asset extensions, system prefixes, feed endpoints and excluded paths.
        """
        relative = _split_path(path)
        if language is None:
            language = self._match_segment(relative)
        stripped = self._strip_segment(relative, language)

        if self._is_file(relative) or (stripped != relative and self._is_file(stripped)):
            return True

        segments = [s for s in stripped.split("/") if s]
        if segments and self._asset_re is not None and self._asset_re.search(segments[-1]):
            return True
        if segments and segments[0] in self._system:
            return True
        if any(segment in self._feeds for segment in segments):
            return True
        for excluded in self._excludes:
            if stripped == excluded or stripped.startswith(excluded + "/"):
                return True
        return False

    def should_redirect_canonical(self, ctx: RequestContext, canonical_url: str) -> bool:
        """
        Whether the routing layer may redirect ``ctx`` to ``canonical_url``.

        A request with a bound or detected language is already canonical, so
        its language segment is never stripped by a redirect.
        """
        if ctx.language_bound:
            return False
        if self.resolve_for_request(ctx) is not None:
            return False
        return _split_path(canonical_url) != _split_path(ctx.path)

    # ==================== Routing helpers ====================

    def route_pattern(self) -> re.Pattern[str] | None:
        """
        Compiled pattern for language-prefixed single-entity routes.

        Matches ``/<segment>/<slug>/`` with an optional ``/page/<n>`` suffix.
        Returns None when no language is configured.
        """
        segments = sorted({url_segment(lang) for lang in self.registry}, key=len, reverse=True)
        segments = [s for s in segments if s]
        if not segments:
            return None
        alternation = "|".join(re.escape(s) for s in segments)
        return re.compile(rf"^/({alternation})/([^/]+)(?:/page/([0-9]+))?/?$")

    def match_route(self, path: str) -> RouteMatch | None:
        """Parse a request path into a language route, producing the routing token."""
        pattern = self.route_pattern()
        if pattern is None:
            return None
        match = pattern.match(urlsplit(path).path)
        if match is None:
            return None

        segment, slug, page = match.groups()
        if self._asset_re is not None and self._asset_re.search(slug):
            return None
        language = self.registry.resolve_by_url_segment(segment)
        if language is None:
            return None
        return RouteMatch(prefix=language.prefix, slug=slug, page=int(page) if page else None)

    def resolve_route_entity(self, path: str) -> int | None:
        """
        Translated entity a language-prefixed single-entity route points at.

        Ignored paths and paths outside the route pattern give None, as does
        a slug with no published translation in the route's language.
        """
        if self.store is None or self.is_ignored(path):
            return None
        route = self.match_route(path)
        if route is None:
            return None
        return EntityTranslationMap(self.store).resolve_slug(route.prefix, route.slug)

    def localize_url(self, url: str, prefix: str) -> str:
        """
        Insert the language segment for ``prefix`` into ``url``'s path.

        Scheme, host, port, query and fragment are preserved. URLs already
        carrying the segment, and ignored paths, are returned unchanged.
        """
        language = self.registry.get(prefix)
        if language is None:
            return url
        segment = url_segment(language)
        if not segment:
            return url

        parts = urlsplit(url)
        path = parts.path.lstrip("/")
        if path == segment or path.startswith(segment + "/"):
            return url
        if self.is_ignored(parts.path or "/", language):
            return url

        new_path = f"/{segment}/{path}"
        return urlunsplit((parts.scheme, parts.netloc, new_path, parts.query, parts.fragment))

    # ==================== Helpers ====================

    def _language_for_token(self, token: str) -> Language | None:
        return self.registry.get(token) or self.registry.resolve_by_url_segment(token)

    def _match_segment(self, relative: str) -> Language | None:
        """Language whose URL segment is the longest prefix of the path."""
        best: Language | None = None
        best_length = 0
        for language in self.registry:
            segment = url_segment(language)
            if not segment or len(segment) <= best_length:
                continue
            if relative == segment or relative.startswith(segment + "/"):
                best = language
                best_length = len(segment)
        if best is not None:
            return best

        first = relative.split("/", 1)[0]
        return self.registry.resolve_by_url_segment(first) if first else None

    def _strip_segment(self, relative: str, language: Language | None) -> str:
        if language is None:
            return relative
        segment = url_segment(language)
        if relative == segment:
            return ""
        if relative.startswith(segment + "/"):
            return relative[len(segment) + 1 :]
        first, _, rest = relative.partition("/")
        if self.registry.resolve_by_url_segment(first) == language:
            return rest
        return relative

    def _is_file(self, relative: str) -> bool:
        if self.document_root is None or not relative:
            return False
        return (self.document_root / relative).is_file()
