#! /usr/bin/env python3

"""
Special lists of pages computed from the page table and the indices.
"""

import enum
import logging
import math
from typing import NamedTuple

import sqlalchemy as sa

from .pages import PageKind

logger = logging.getLogger(__name__)

__all__ = ["SpecialListType", "SpecialList", "MissingPage", "PageReference", "SpecialLists"]


class SpecialListType(enum.Enum):
    ALL_CATEGORIES = "all-categories"
    ALL_FILES = "all-files"
    ALL_ARTICLES = "all-articles"
    ALL_REDIRECTS = "all-redirects"
    BROKEN_REDIRECTS = "broken-redirects"
    DOUBLE_REDIRECTS = "double-redirects"
    MISSING_PAGES = "missing-pages"
    UNCATEGORIZED_ARTICLES = "uncategorized-articles"
    UNCATEGORIZED_CATEGORIES = "uncategorized-categories"
    UNCATEGORIZED_FILES = "uncategorized-files"
    UNUSED_CATEGORIES = "unused-categories"
    WHAT_LINKS_HERE = "what-links-here"


class SpecialList(NamedTuple):
    items: list
    page: int
    page_size: int
    total: int

    @property
    def page_count(self):
        return math.ceil(self.total / self.page_size)


class MissingPage(NamedTuple):
    """A title which is linked but does not exist."""
    namespace: str
    title: str
    referrers: int


class PageReference(NamedTuple):
    """A page referencing the queried title, tagged by the kind of reference."""
    page: object
    is_link: bool = False
    is_transclusion: bool = False
    is_redirect: bool = False


class SpecialLists:
    """
    :param wikicore.wiki.Wiki wiki: the wiki
    """

    def __init__(self, wiki):
        self.wiki = wiki
        self.db = wiki.db

    @staticmethod
    def _check_paging(page, page_size):
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

    def _pages(self, conn, conditions, page, page_size):
        p = self.db.page
        conditions = [p.c.page_is_deleted == False, *conditions]
        total = self.wiki.pages.count(conn, *conditions)
        items = self.wiki.pages.select(conn, *conditions,
                                       order_by=(p.c.page_title, p.c.page_namespace),
                                       limit=page_size, offset=(page - 1) * page_size)
        return SpecialList(items, page, page_size, total)

    def _conditions(self, list_type):
        p = self.db.page
        cm = self.db.category_member
        is_redirect = p.c.page_redirect_title != None
        has_category = sa.exists().where(cm.c.cm_member == p.c.page_id)
        has_members = sa.exists().where(cm.c.cm_category == p.c.page_id)

        if list_type is SpecialListType.ALL_CATEGORIES:
            return [p.c.page_kind == PageKind.CATEGORY.value]
        if list_type is SpecialListType.ALL_FILES:
            return [p.c.page_kind == PageKind.FILE.value]
        if list_type is SpecialListType.ALL_ARTICLES:
            return [p.c.page_kind == PageKind.ARTICLE.value, ~is_redirect]
        if list_type is SpecialListType.ALL_REDIRECTS:
            return [is_redirect]
        if list_type is SpecialListType.BROKEN_REDIRECTS:
            return [is_redirect, p.c.page_is_broken_redirect == True]
        if list_type is SpecialListType.DOUBLE_REDIRECTS:
            return [is_redirect, p.c.page_is_double_redirect == True]
        if list_type is SpecialListType.UNCATEGORIZED_ARTICLES:
            return [p.c.page_kind == PageKind.ARTICLE.value, ~is_redirect, ~has_category]
        if list_type is SpecialListType.UNCATEGORIZED_CATEGORIES:
            return [p.c.page_kind == PageKind.CATEGORY.value, ~has_category]
        if list_type is SpecialListType.UNCATEGORIZED_FILES:
            return [p.c.page_kind == PageKind.FILE.value, ~has_category]
        if list_type is SpecialListType.UNUSED_CATEGORIES:
            return [p.c.page_kind == PageKind.CATEGORY.value, ~has_members]
        raise ValueError(f"Not a page list: {list_type}")

    def missing_pages(self, conn, page=1, page_size=50):
        """
        :returns: a :py:class:`SpecialList` of :py:class:`MissingPage` items
            ordered by title
        """
        self._check_paging(page, page_size)
        targets = sorted(self.wiki.missing_pages.targets(conn), key=lambda t: (t[1], t[0]))
        start = (page - 1) * page_size
        items = [MissingPage(*t) for t in targets[start:start + page_size]]
        return SpecialList(items, page, page_size, len(targets))

    def what_links_here(self, conn, title, namespace, page=1, page_size=50):
        """
        :returns: a :py:class:`SpecialList` of :py:class:`PageReference`
            items ordered by title
        """
        self._check_paging(page, page_size)
        links = self.wiki.links.get(conn, title, namespace) or set()
        transclusions = self.wiki.transclusions.get(conn, title, namespace) or set()
        redirects = self.wiki.redirects.get(conn, title, namespace) or set()
        ids = links | transclusions | redirects
        if not ids:
            return SpecialList([], page, page_size, 0)
        p = self.db.page
        pages = self.wiki.pages.select(conn, p.c.page_id.in_(ids), order_by=(p.c.page_title, p.c.page_namespace))
        total = len(pages)
        start = (page - 1) * page_size
        items = [PageReference(pg, pg.id in links, pg.id in transclusions, pg.id in redirects)
                 for pg in pages[start:start + page_size]]
        return SpecialList(items, page, page_size, total)

    def get(self, conn, list_type, page=1, page_size=50, title=None, namespace=None):
        """
        Compute a page of the special list.

        :param SpecialListType list_type: the list
        :param int page: 1-based page number
        :param int page_size: number of items per page
        :param str title: the queried title, only for ``WHAT_LINKS_HERE``
        :param str namespace: the queried namespace, only for ``WHAT_LINKS_HERE``
        :returns: a :py:class:`SpecialList`
        """
        if list_type is SpecialListType.MISSING_PAGES:
            return self.missing_pages(conn, page, page_size)
        if list_type is SpecialListType.WHAT_LINKS_HERE:
            if not title:
                raise ValueError("WHAT_LINKS_HERE requires a title")
            return self.what_links_here(conn, title, namespace, page, page_size)
        self._check_paging(page, page_size)
        return self._pages(conn, self._conditions(list_type), page, page_size)
