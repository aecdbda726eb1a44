"""Tests for request language detection and routing helpers."""

import pytest

from translate_mirror.config import RoutingConfig
from translate_mirror.languages import Language, LanguageRegistry
from translate_mirror.resolution import LanguageContextResolver, RequestContext


@pytest.fixture
def resolver(registry, store, tmp_path):
    (tmp_path / "robots.txt").write_text("User-agent: *\n", encoding="utf-8")
    routing = RoutingConfig(exclude_paths=["shop/cart"])
    return LanguageContextResolver(registry, store, routing, document_root=tmp_path)


class TestResolveForRequest:
    def test_longest_segment_match(self, store):
        registry = LanguageRegistry(
            [
                Language(prefix="pt", name="Portuguese"),
                Language(prefix="pt-BR", name="Brazilian Portuguese", path="pt/br"),
            ]
        )
        resolver = LanguageContextResolver(registry, store)
        assert resolver.resolve_for_request(RequestContext("/pt/br/ola/")) == "pt-BR"
        assert resolver.resolve_for_request(RequestContext("/pt/ola/")) == "pt"

    def test_default_language(self, resolver):
        assert resolver.resolve_for_request(RequestContext("/hello-world/")) is None
        assert resolver.resolve_for_request(RequestContext("/")) is None

    def test_segment_must_be_whole(self, resolver):
        assert resolver.resolve_for_request(RequestContext("/french-fries/")) is None

    def test_routing_token_wins(self, resolver):
        ctx = RequestContext("/fr/bonjour/", routing_token="es")
        assert resolver.resolve_for_request(ctx) == "es"

    def test_entity_tag_before_path(self, resolver, store, make_entity, make_translation):
        original = make_entity()
        spanish = make_translation(original, "es")
        ctx = RequestContext("/fr/hola/", entity_id=spanish)
        assert resolver.resolve_for_request(ctx) == "es"

    def test_query_string_ignored(self, resolver):
        assert resolver.resolve_for_request(RequestContext("/fr/?page=2")) == "fr"


class TestIgnoredPaths:
    @pytest.mark.parametrize(
        "path",
        [
            "/robots.txt",
            "/fr/robots.txt",
            "/admin/settings",
            "/fr/admin/",
            "/static/app.css",
            "/fr/logo.png",
            "/feed/",
            "/fr/news/rss2/",
            "/shop/cart",
            "/fr/shop/cart/items",
        ],
    )
    def test_ignored(self, resolver, path):
        assert resolver.is_ignored(path)
        assert resolver.resolve_for_request(RequestContext(path)) is None

    def test_ignored_even_with_token(self, resolver):
        assert resolver.resolve_for_request(RequestContext("/fr/feed/", routing_token="fr")) is None

    @pytest.mark.parametrize("path", ["/fr/hello/", "/administrators/", "/shop/cartography"])
    def test_not_ignored(self, resolver, path):
        assert not resolver.is_ignored(path)


class TestCanonicalRedirect:
    def test_bound_language_is_canonical(self, resolver):
        ctx = RequestContext("/fr/bonjour/")
        ctx.bind_language("fr")
        assert resolver.should_redirect_canonical(ctx, "https://example.com/bonjour/") is False

    def test_detected_language_is_canonical(self, resolver):
        ctx = RequestContext("/fr/bonjour/")
        assert resolver.should_redirect_canonical(ctx, "/bonjour/") is False

    def test_default_language_redirects_when_paths_differ(self, resolver):
        assert resolver.should_redirect_canonical(RequestContext("/old-slug/"), "/new-slug/") is True
        assert resolver.should_redirect_canonical(RequestContext("/same/"), "https://example.com/same") is False


class TestRouting:
    def test_route_pattern(self, resolver):
        pattern = resolver.route_pattern()
        assert pattern.match("/fr/hello/")
        assert pattern.match("/es/hello/page/2/")
        assert not pattern.match("/de/hello/")
        assert not pattern.match("/fr/a/b/")

    def test_no_languages_no_pattern(self, store):
        assert LanguageContextResolver(LanguageRegistry(), store).route_pattern() is None

    def test_match_route(self, resolver):
        match = resolver.match_route("/es/hola/page/3/")
        assert (match.prefix, match.slug, match.page) == ("es", "hola", 3)
        assert resolver.match_route("/fr/bonjour").page is None
        assert resolver.match_route("/fr/style.css") is None
        assert resolver.match_route("/hello/") is None

    def test_localize_url(self, resolver):
        assert resolver.localize_url("https://example.com/hello/?a=1#top", "fr") == (
            "https://example.com/fr/hello/?a=1#top"
        )
        assert resolver.localize_url("/", "es") == "/es/"
        # Already localized, ignored or unknown language: unchanged
        assert resolver.localize_url("/fr/hello/", "fr") == "/fr/hello/"
        assert resolver.localize_url("/admin/", "fr") == "/admin/"
        assert resolver.localize_url("/hello/", "de") == "/hello/"

    def test_resolve_route_entity(self, resolver, make_entity, make_translation):
        original = make_entity(title="Hello")
        fr = make_translation(original, "fr", title="Bonjour")

        assert resolver.resolve_route_entity("/fr/bonjour/") == fr
        assert resolver.resolve_route_entity("/fr/bonjour/page/2/?utm=x") == fr
        assert resolver.resolve_route_entity("/fr/hello/") is None
        assert resolver.resolve_route_entity("/fr/feed/") is None
        assert resolver.resolve_route_entity("/bonjour/") is None
