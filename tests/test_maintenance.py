#! /usr/bin/env python3

import pytest

from wikicore.maintenance import Discrepancy, check, rebuild
from wikicore.special import SpecialListType


@pytest.fixture
def edited(wiki):
    """
    A wiki after a series of edits touching all indices.
    """
    pages = {}
    pages["x"] = wiki.create_article("X", "Included text. [[Category:Included]]", "alice", namespace="Transclusion")
    pages["target"] = wiki.create_article("Target", "Before {{X}} after. [[Missing]] [[Category:Things]]", "alice")
    pages["linker"] = wiki.create_article("Linker", "See [[Target]] and [[Later]].", "alice")
    pages["redirect"] = wiki.create_article("Alias", "{{redirect|Target}}", "alice")
    pages["double"] = wiki.create_article("Double", "{{redirect|Alias}}", "alice")
    pages["broken"] = wiki.create_article("Broken", "{{redirect|Nowhere}}", "alice")
    pages["file"] = wiki.create_file("Image.png", "/files/image.png", 10, "image/png", "alice",
                                     markdown="[[Category:Things]]")
    wiki.create_article("Later", "Created later.", "bob")
    wiki.revise(pages["x"].id, "bob", markdown="Changed text.")
    wiki.rename(pages["linker"].id, "bob", "Renamed linker")
    wiki.delete(pages["broken"].id, "bob")
    return pages


class test_check:
    def test_empty_wiki(self, wiki):
        assert check(wiki) == []

    def test_consistent_after_edits(self, wiki, edited):
        assert check(wiki) == []

    def test_missing_reference(self, wiki, edited):
        links = wiki.db.links
        with wiki.db.engine.begin() as conn:
            conn.execute(links.delete().where(links.c.ln_title == "Target"))
        discrepancies = check(wiki)
        assert Discrepancy("links", "Wiki", "Target", edited["linker"].id, "missing") in discrepancies

    def test_extra_reference(self, wiki, edited):
        with wiki.db.engine.begin() as conn:
            wiki.transclusions.add_reference(conn, "Bogus", "Wiki", edited["target"].id)
        assert check(wiki) == [Discrepancy("transclusions", "Wiki", "Bogus", edited["target"].id, "extra")]

    def test_missing_title(self, wiki, edited):
        t = wiki.db.title
        with wiki.db.engine.begin() as conn:
            conn.execute(t.delete().where(t.c.title_title == "Later"))
        discrepancies = check(wiki)
        assert [d.index for d in discrepancies] == ["title"]
        assert discrepancies[0].problem == "missing"

    def test_redirect_flags(self, wiki, edited):
        page = wiki.db.page
        with wiki.db.engine.begin() as conn:
            conn.execute(page.update().where(page.c.page_id == edited["double"].id)
                                      .values(page_is_double_redirect=False))
        assert check(wiki) == [Discrepancy("page", "Wiki", "Double", edited["double"].id, "flags")]

    def test_category_membership(self, wiki, edited):
        cm = wiki.db.category_member
        with wiki.db.engine.begin() as conn:
            conn.execute(cm.delete().where(cm.c.cm_member == edited["file"].id))
        discrepancies = check(wiki)
        assert [(d.index, d.title, d.page_id, d.problem) for d in discrepancies] == \
               [("category_member", "Things", edited["file"].id, "missing")]


class test_rebuild:
    def test_rebuild_restores_indices(self, wiki, edited):
        with wiki.db.engine.begin() as conn:
            for name in ("links", "redirects", "transclusions", "missing_pages", "category_member"):
                conn.execute(getattr(wiki.db, name).delete())
            wiki.links.add_reference(conn, "Bogus", "Wiki", "nonexistent")
            page = wiki.db.page
            conn.execute(page.update().values(page_is_double_redirect=False, page_is_broken_redirect=False))
        assert check(wiki) != []

        assert rebuild(wiki) == 10
        assert check(wiki) == []

        assert wiki.resolve("Alias").page.id == edited["target"].id
        assert wiki.get_page_by_id(edited["double"].id).is_double_redirect
        missing = wiki.special_list(SpecialListType.MISSING_PAGES)
        assert [m.title for m in missing.items] == ["Missing"]
        with wiki.db.engine.connect() as conn:
            assert wiki.links.get(conn, "Bogus", "Wiki") is None

    def test_rebuild_keeps_content(self, wiki, edited):
        before = {p.id: (p.markdown, p.html, p.categories) for p in self.all_pages(wiki)}
        rebuild(wiki)
        after = {p.id: (p.markdown, p.html, p.categories) for p in self.all_pages(wiki)}
        assert before == after

    def test_rebuild_empty_wiki(self, wiki):
        assert rebuild(wiki) == 0
        assert check(wiki) == []

    @staticmethod
    def all_pages(wiki):
        with wiki.db.engine.connect() as conn:
            return wiki.pages.select(conn)
