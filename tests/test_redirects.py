#! /usr/bin/env python3

import pytest

from wikicore.redirects import MAX_REDIRECT_HOPS


class test_redirects:
    def test_redirect_to_article(self, wiki):
        target = wiki.create_article("Target", "Some content.", "alice")
        redirect = wiki.create_article("Source", "{{redirect|Target}}", "alice")
        assert redirect.is_redirect
        assert (redirect.redirect_namespace, redirect.redirect_title) == ("Wiki", "Target")
        assert not redirect.is_broken_redirect
        assert not redirect.is_double_redirect

        resolution = wiki.resolve("Source")
        assert resolution.page.id == target.id
        assert resolution.hops == 1
        assert not resolution.is_cycle
        assert wiki.get_page("Source", no_redirect=True).id == redirect.id

    def test_broken_redirect(self, wiki):
        redirect = wiki.create_article("Source", "{{redirect|Nowhere}}", "alice")
        assert redirect.is_broken_redirect
        assert not redirect.is_double_redirect
        # broken redirects are not followed
        resolution = wiki.resolve("Source")
        assert resolution.page.id == redirect.id
        assert resolution.hops == 0
        # the missing target is tracked anyway
        with wiki.db.engine.connect() as conn:
            assert wiki.redirects.get(conn, "Nowhere", "Wiki") == {redirect.id}

    def test_broken_redirect_is_fixed(self, wiki):
        redirect = wiki.create_article("Source", "{{redirect|Target}}", "alice")
        target = wiki.create_article("Target", "Some content.", "alice")
        redirect = wiki.get_page_by_id(redirect.id)
        assert not redirect.is_broken_redirect
        assert wiki.resolve("Source").page.id == target.id

    def test_redirect_broken_by_deletion(self, wiki):
        target = wiki.create_article("Target", "Some content.", "alice")
        redirect = wiki.create_article("Source", "{{redirect|Target}}", "alice")
        wiki.delete(target.id, "alice")
        assert wiki.get_page_by_id(redirect.id).is_broken_redirect

    def test_double_redirect(self, wiki):
        wiki.create_article("C", "Content.", "alice")
        a = wiki.create_article("A", "{{redirect|B}}", "alice")
        assert a.is_broken_redirect
        b = wiki.create_article("B", "{{redirect|C}}", "alice")
        assert not b.is_double_redirect

        a = wiki.get_page_by_id(a.id)
        assert a.is_double_redirect
        assert not a.is_broken_redirect
        resolution = wiki.resolve("A")
        assert resolution.page.title == "C"
        assert resolution.hops == 2

    def test_double_redirect_is_fixed(self, wiki):
        wiki.create_article("C", "Content.", "alice")
        b = wiki.create_article("B", "{{redirect|C}}", "alice")
        a = wiki.create_article("A", "{{redirect|B}}", "alice")
        assert a.is_double_redirect
        wiki.revise(b.id, "alice", markdown="No longer a redirect.")
        assert not wiki.get_page_by_id(a.id).is_double_redirect

    def test_cycle(self, wiki):
        a = wiki.create_article("A", "{{redirect|B}}", "alice")
        b = wiki.create_article("B", "{{redirect|A}}", "alice")
        assert b.is_double_redirect
        assert wiki.get_page_by_id(a.id).is_double_redirect

        resolution = wiki.resolve("A")
        assert resolution.is_cycle
        assert resolution.page.id == a.id

    def test_self_redirect(self, wiki):
        wiki.create_article("A", "{{redirect|A}}", "alice")
        assert wiki.resolve("A").is_cycle

    @pytest.mark.parametrize("target", ["Category:Things", "File:Image.png"])
    def test_category_and_file_targets(self, wiki, target):
        redirect = wiki.create_article("Source", "{{redirect|" + target + "}}", "alice")
        assert redirect.is_broken_redirect
        with wiki.db.engine.connect() as conn:
            assert wiki.redirects.targets(conn) == []

    def test_case_variant_target(self, wiki):
        target = wiki.create_article("Foo", "Some content.", "alice")
        redirect = wiki.create_article("Source", "{{redirect|FOO}}", "alice")
        assert not redirect.is_broken_redirect
        assert wiki.resolve("Source").page.id == target.id
        with wiki.db.engine.connect() as conn:
            assert wiki.redirects.get(conn, "FOO", "Wiki") == {redirect.id}

    def test_case_variant_target_created_later(self, wiki):
        redirect = wiki.create_article("Source", "{{redirect|FOO}}", "alice")
        assert redirect.is_broken_redirect
        target = wiki.create_article("Foo", "Some content.", "alice")
        assert not wiki.get_page_by_id(redirect.id).is_broken_redirect
        assert wiki.resolve("Source").page.id == target.id
        wiki.delete(target.id, "alice")
        assert wiki.get_page_by_id(redirect.id).is_broken_redirect

    def test_retarget(self, wiki):
        wiki.create_article("One", "Content.", "alice")
        wiki.create_article("Two", "Content.", "alice")
        redirect = wiki.create_article("Source", "{{redirect|One}}", "alice")
        wiki.revise(redirect.id, "alice", markdown="{{redirect|Two}}")
        with wiki.db.engine.connect() as conn:
            assert wiki.redirects.get(conn, "One", "Wiki") is None
            assert wiki.redirects.get(conn, "Two", "Wiki") == {redirect.id}
        assert wiki.resolve("Source").page.title == "Two"

    def test_redirect_rendering(self, wiki):
        wiki.create_article("Target", "Some content.", "alice")
        redirect = wiki.create_article("Source", "{{redirect|Target}}", "alice")
        assert 'href="/wiki/Target"' in redirect.html
        assert "Redirect to" in redirect.html


class test_hop_limit:
    def test_long_chain(self, wiki):
        count = MAX_REDIRECT_HOPS + 5
        wiki.create_article(f"R{count}", "The end.", "alice")
        for i in reversed(range(count)):
            wiki.create_article(f"R{i}", f"{{{{redirect|R{i + 1}}}}}", "alice")
        resolution = wiki.resolve("R0")
        assert resolution.hop_limit_reached
        assert resolution.hops == MAX_REDIRECT_HOPS
        assert not resolution.is_cycle

    def test_short_chain(self, wiki):
        wiki.create_article("R5", "The end.", "alice")
        for i in reversed(range(5)):
            wiki.create_article(f"R{i}", f"{{{{redirect|R{i + 1}}}}}", "alice")
        resolution = wiki.resolve("R0")
        assert resolution.page.title == "R5"
        assert resolution.hops == 5
