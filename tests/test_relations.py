"""Tests for relation remapping of translated copies."""

import pytest

from translate_mirror.resolution import EntityTranslationMap, LanguageContextResolver
from translate_mirror.resolution.relations import RelationRemapper


@pytest.fixture
def remapper(store, registry):
    return RelationRemapper(EntityTranslationMap(store), LanguageContextResolver(registry, store))


class TestRelationFields:
    def test_url_is_a_relation_only_on_menu_items(self, store, make_entity, remapper):
        item = make_entity(kind="menu_item", fields={"url": "/a/", "menu": 1, "label": "x"})
        post = make_entity(fields={"url": "/a/", "parent": 2})

        assert remapper.relation_fields(store.get(item)) == ["menu", "url"]
        assert remapper.relation_fields(store.get(post)) == ["parent"]

    def test_remap_limited_to_names(self, store, make_entity, make_translation, remapper):
        parent = make_entity(kind="page")
        parent_fr = make_translation(parent, "fr")
        page = make_entity(kind="page", fields={"parent": parent, "body": "x"})

        assert remapper.remap(store.get(page), "fr") == {"parent": parent_fr}
        assert remapper.remap(store.get(page), "fr", names=["body"]) == {}

    def test_empty_parent_stays_empty(self, store, make_entity, remapper):
        page = make_entity(kind="page", fields={"parent": 0})
        assert remapper.remap(store.get(page), "fr") == {"parent": None}


class TestLocalizeLink:
    def test_translated_slug_and_segment(self, make_entity, make_translation, remapper):
        original = make_entity(title="Contact")
        make_translation(original, "es", title="Contacto")
        assert remapper.localize_link("/contact/", "es") == "/es/contacto/"

    def test_untranslated_target_only_gets_the_segment(self, remapper):
        assert remapper.localize_link("/shop/offers", "fr") == "/fr/shop/offers"

    def test_left_alone(self, store, remapper):
        assert remapper.localize_link("https://example.org/contact/", "fr") == "https://example.org/contact/"
        assert remapper.localize_link("mailto:team@example.org", "fr") == "mailto:team@example.org"
        assert remapper.localize_link("/", "fr") == "/"
        assert remapper.localize_link("/fr/contact/", "fr") == "/fr/contact/"
        assert remapper.localize_link("/admin/", "fr") == "/admin/"
        assert RelationRemapper(EntityTranslationMap(store)).localize_link("/contact/", "fr") == "/contact/"
