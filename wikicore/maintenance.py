#! /usr/bin/env python3

"""
Reconciliation of the denormalized indices with the current content of the
pages.

The indices are a cache derived from the content, :py:func:`check` reports
where they disagree and :py:func:`rebuild` recomputes all of them from
scratch.
"""

import logging
from typing import NamedTuple

import sqlalchemy as sa

from .db.schema import REFERENCE_TABLES

logger = logging.getLogger(__name__)

__all__ = ["Discrepancy", "check", "rebuild"]


class Discrepancy(NamedTuple):
    # name of the index table
    index: str
    namespace: str
    title: str
    page_id: str | None
    # "missing" if the row is expected but not present, "extra" for the opposite,
    # "flags" for redirect flags which do not match the current state
    problem: str


def _expected_references(wiki, pages):
    expected = {name: set() for name in REFERENCE_TABLES}
    for page in pages:
        if page.is_deleted:
            continue
        if page.is_redirect:
            if not (wiki.config.is_category_namespace(page.redirect_namespace)
                    or wiki.config.is_file_namespace(page.redirect_namespace)):
                expected["redirects"].add((page.redirect_namespace, page.redirect_title, page.id))
        for t in page.transclusions:
            expected["transclusions"].add((t.namespace, t.title, page.id))
        for link in page.wikilinks:
            if link.is_category:
                continue
            expected["links"].add((link.namespace, link.title, page.id))
            if link.missing:
                expected["missing_pages"].add((link.namespace, link.title, page.id))
    return expected

def _compare(name, expected, actual):
    result = []
    for namespace, title, page_id in sorted(expected - actual):
        result.append(Discrepancy(name, namespace, title, page_id, "missing"))
    for namespace, title, page_id in sorted(actual - expected):
        result.append(Discrepancy(name, namespace, title, page_id, "extra"))
    return result

def check(wiki):
    """
    Compare every index with the stored content of the pages.

    :param wikicore.wiki.Wiki wiki: the wiki
    :returns: a list of :py:class:`Discrepancy` tuples, empty if all indices
        are consistent
    """
    discrepancies = []
    with wiki.db.engine.connect() as conn:
        pages = wiki.pages.select(conn)
        by_title = {(p.namespace, p.title): p for p in pages}

        # titles
        t = wiki.db.title
        actual = {tuple(row) for row in conn.execute(sa.select(t.c.title_namespace, t.c.title_title, t.c.title_page))}
        expected = {(p.namespace, p.title, p.id) for p in pages}
        discrepancies += _compare("title", expected, actual)

        # references
        expected = _expected_references(wiki, pages)
        for name, prefix in REFERENCE_TABLES.items():
            table = getattr(wiki.db, name)
            columns = [table.c[f"{prefix}_{col}"] for col in ("namespace", "title", "from")]
            actual = {tuple(row) for row in conn.execute(sa.select(*columns))}
            discrepancies += _compare(name, expected[name], actual)

        # categories
        cm = wiki.db.category_member
        actual = {tuple(row) for row in conn.execute(sa.select(cm.c.cm_category, cm.c.cm_member))}
        expected = set()
        for page in pages:
            for title in page.categories:
                category = by_title.get((wiki.config.category_namespace, title))
                if category is None:
                    discrepancies.append(Discrepancy("category_member", wiki.config.category_namespace,
                                                     title, page.id, "missing"))
                else:
                    expected.add((category.id, page.id))
        ids = {p.id: p for p in pages}
        for category_id, member_id in sorted(expected ^ actual):
            category = ids.get(category_id)
            problem = "missing" if (category_id, member_id) in expected else "extra"
            discrepancies.append(Discrepancy("category_member",
                                             category.namespace if category else None,
                                             category.title if category else None,
                                             member_id, problem))

        # redirect flags
        for page in pages:
            if page.is_deleted or not page.is_redirect:
                continue
            status = wiki.resolver.classify_target(conn, page.redirect_title, page.redirect_namespace)
            if (status.is_broken, status.is_double) != (page.is_broken_redirect, page.is_double_redirect):
                discrepancies.append(Discrepancy("page", page.namespace, page.title, page.id, "flags"))

    for d in discrepancies:
        logger.warning("{}: {} entry [[{}:{}]] for page '{}'".format(d.index, d.problem, d.namespace, d.title, d.page_id))
    logger.info("Found {} discrepancies in {} pages".format(len(discrepancies), len(pages)))
    return discrepancies

def rebuild(wiki):
    """
    Recompute the title index, the reference indices, the category membership
    and the redirect flags from the current content of all pages.

    :param wikicore.wiki.Wiki wiki: the wiki
    :returns: the number of processed pages
    """
    with wiki.db.engine.begin() as conn:
        for table in (wiki.db.title, wiki.db.title_normalized, wiki.db.category_member):
            conn.execute(table.delete())
        for name in REFERENCE_TABLES:
            conn.execute(getattr(wiki.db, name).delete())

        pages = wiki.pages.select(conn)
        for page in pages:
            wiki.titles.create(conn, page.id, page.title, page.namespace)

        live = [page for page in pages if not page.is_deleted]
        # the derived state is recomputed from scratch
        for page in live:
            page.clear_redirect()
            page.wikilinks = []
            page.transclusions = []
            page.categories = []
        # the double redirect flag depends on the redirect state of the target
        for page in live:
            wiki.update_redirect(conn, page)
            wiki.pages.store(conn, page)
        for page in live:
            wiki.resolver.reclassify(conn, page)
            wiki.refresh(conn, page)
            logger.debug("Rebuilt indices of page [[{}]]".format(page.full_title(wiki.config)))

    logger.info("Rebuilt the indices of {} pages".format(len(pages)))
    return len(pages)
