#! /usr/bin/env python3

"""
Denormalized secondary indices derived from the current content of pages.

All mutations are idempotent and individually safe, they are executed on the
connection passed by the caller. The indices hold no history: they are
recomputed from the current content whenever a page changes and can be
rebuilt from scratch (see :py:mod:`wikicore.maintenance`).
"""

import logging

import sqlalchemy as sa

from .db.schema import REFERENCE_TABLES
from .exceptions import TitleInUseError

logger = logging.getLogger(__name__)

__all__ = ["ReferenceIndex", "TitleIndex", "CategoryIndex"]


class ReferenceIndex:
    """
    A mapping of ``(namespace, title)`` targets to the set of identifiers of
    the pages referencing them.

    :param wikicore.db.database.Database db: the database
    :param str name: name of the reference table, one of ``links``,
        ``redirects``, ``transclusions`` and ``missing_pages``
    """

    def __init__(self, db, name):
        if name not in REFERENCE_TABLES:
            raise ValueError(f"Unknown reference index: {name}")
        self.db = db
        self.name = name
        self.table = getattr(db, name)
        prefix = REFERENCE_TABLES[name]
        self.c_namespace = self.table.c[f"{prefix}_namespace"]
        self.c_title = self.table.c[f"{prefix}_title"]
        self.c_from = self.table.c[f"{prefix}_from"]

    def _target(self, title, namespace):
        return sa.and_(self.c_namespace == namespace, self.c_title == title)

    def add_reference(self, conn, title, namespace, referrer_id):
        """
        Add a referrer to the entry of the target. No-op if it is already present.
        """
        ins = self.db.insert_ignore(self.table)
        conn.execute(ins, {self.c_namespace.name: namespace, self.c_title.name: title, self.c_from.name: referrer_id})
        logger.debug("{}: [[{}:{}]] <- {}".format(self.name, namespace, title, referrer_id))

    def remove_reference(self, conn, title, namespace, referrer_id):
        """
        Remove a referrer from the entry of the target. The entry ceases to
        exist with its last referrer. No-op if the referrer is not present.
        """
        conn.execute(self.table.delete().where(self._target(title, namespace), self.c_from == referrer_id))
        logger.debug("{}: [[{}:{}]] -/- {}".format(self.name, namespace, title, referrer_id))

    def get(self, conn, title, namespace, ignore_case=False):
        """
        :param bool ignore_case:
            include the referrers of all targets differing only in case, which
            may resolve to the same page through the case-insensitive fallback
        :returns: the set of referrers, or ``None`` if there is no entry for
            the target
        """
        if ignore_case:
            where = sa.and_(sa.func.lower(self.c_namespace) == namespace.lower(),
                            sa.func.lower(self.c_title) == title.lower())
        else:
            where = self._target(title, namespace)
        referrers = set(conn.execute(sa.select(self.c_from).where(where)).scalars())
        return referrers or None

    def delete(self, conn, title, namespace):
        """Delete the whole entry of the target."""
        conn.execute(self.table.delete().where(self._target(title, namespace)))
        logger.debug("{}: deleted entry [[{}:{}]]".format(self.name, namespace, title))

    def referenced_by(self, conn, referrer_id):
        """
        :returns: the set of ``(namespace, title)`` targets referenced by the page
        """
        s = sa.select(self.c_namespace, self.c_title).where(self.c_from == referrer_id)
        return {(row[0], row[1]) for row in conn.execute(s)}

    def remove_referrer(self, conn, referrer_id):
        """Remove the page from all entries."""
        conn.execute(self.table.delete().where(self.c_from == referrer_id))

    def targets(self, conn):
        """
        :returns: a list of ``(namespace, title, number of referrers)`` tuples
            ordered by namespace and title
        """
        s = sa.select(self.c_namespace, self.c_title, sa.func.count(self.c_from)) \
              .group_by(self.c_namespace, self.c_title) \
              .order_by(self.c_namespace, self.c_title)
        return [tuple(row) for row in conn.execute(s)]

    def clear(self, conn):
        conn.execute(self.table.delete())


class TitleIndex:
    """
    The mapping of ``(namespace, title)`` pairs to page identifiers.

    A secondary index keyed by the lowercased pair allows case-insensitive
    lookup, which succeeds only if the key is unambiguous.

    :param wikicore.db.database.Database db: the database
    :param ReferenceIndex links: the ``links`` index
    :param ReferenceIndex missing_pages: the ``missing_pages`` index
    """

    def __init__(self, db, links, missing_pages):
        self.db = db
        self.links = links
        self.missing_pages = missing_pages

    def lookup(self, conn, title, namespace):
        """Exact lookup, returns the page identifier or ``None``."""
        t = self.db.title
        s = sa.select(t.c.title_page).where(t.c.title_namespace == namespace, t.c.title_title == title)
        return conn.execute(s).scalar()

    def resolve(self, conn, title, namespace, allow_case_fallback=True):
        """
        Find the page assigned to the title.

        :param bool allow_case_fallback:
            if there is no exact match, try the case-insensitive index, which
            succeeds only if exactly one page matches
        :returns: the page identifier or ``None``
        """
        page_id = self.lookup(conn, title, namespace)
        if page_id is not None or not allow_case_fallback:
            return page_id
        tn = self.db.title_normalized
        s = sa.select(tn.c.tn_page).where(tn.c.tn_namespace == namespace.lower(), tn.c.tn_title == title.lower())
        candidates = list(conn.execute(s).scalars())
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            logger.debug("Ambiguous title [[{}:{}]] matches {} pages".format(namespace, title, len(candidates)))
        return None

    def check(self, conn, page_id, title, namespace):
        """
        :raises TitleInUseError: if the title is assigned to a different page
        """
        existing = self.lookup(conn, title, namespace)
        if existing is not None and existing != page_id:
            raise TitleInUseError(title, namespace, existing)

    def create(self, conn, page_id, title, namespace):
        """
        Assign the title to the page. Assigning the title to the same page
        again is a no-op. Any entry of the title in the ``missing_pages``
        index is deleted.

        :raises TitleInUseError: if the title is assigned to a different page
        """
        self.check(conn, page_id, title, namespace)
        conn.execute(self.db.insert_ignore(self.db.title),
                     {"title_namespace": namespace, "title_title": title, "title_page": page_id})
        conn.execute(self.db.insert_ignore(self.db.title_normalized),
                     {"tn_namespace": namespace.lower(), "tn_title": title.lower(), "tn_page": page_id})
        self.missing_pages.delete(conn, title, namespace)
        logger.debug("title: [[{}:{}]] -> {}".format(namespace, title, page_id))

    def remove(self, conn, title, namespace):
        """
        Release the title. If there are pages linking to it and the title does
        not resolve to any page anymore (not even through the case-insensitive
        fallback), they are recorded in the ``missing_pages`` index.
        """
        page_id = self.lookup(conn, title, namespace)
        if page_id is None:
            return
        t = self.db.title
        tn = self.db.title_normalized
        conn.execute(t.delete().where(t.c.title_namespace == namespace, t.c.title_title == title))
        # a case-only rename assigns the new title before releasing the old one
        s = sa.select(t.c.title_namespace, t.c.title_title).where(t.c.title_page == page_id)
        remaining = {(row[0].lower(), row[1].lower()) for row in conn.execute(s)}
        if (namespace.lower(), title.lower()) not in remaining:
            conn.execute(tn.delete().where(tn.c.tn_namespace == namespace.lower(),
                                           tn.c.tn_title == title.lower(),
                                           tn.c.tn_page == page_id))
        logger.debug("title: [[{}:{}]] released by {}".format(namespace, title, page_id))

        if self.resolve(conn, title, namespace) is not None:
            return
        referrers = self.links.get(conn, title, namespace)
        for referrer in sorted(referrers or ()):
            self.missing_pages.add_reference(conn, title, namespace, referrer)


class CategoryIndex:
    """
    Membership of pages in categories. Changes of membership are not
    revisions of the category page.

    :param wikicore.db.database.Database db: the database
    """

    def __init__(self, db):
        self.db = db

    def add_member(self, conn, category_id, member_id):
        cm = self.db.category_member
        conn.execute(self.db.insert_ignore(cm), {"cm_category": category_id, "cm_member": member_id})
        logger.debug("category {}: added member {}".format(category_id, member_id))

    def remove_member(self, conn, category_id, member_id):
        cm = self.db.category_member
        conn.execute(cm.delete().where(cm.c.cm_category == category_id, cm.c.cm_member == member_id))
        logger.debug("category {}: removed member {}".format(category_id, member_id))

    def members(self, conn, category_id):
        cm = self.db.category_member
        s = sa.select(cm.c.cm_member).where(cm.c.cm_category == category_id)
        return set(conn.execute(s).scalars())

    def categories_of(self, conn, member_id):
        cm = self.db.category_member
        s = sa.select(cm.c.cm_category).where(cm.c.cm_member == member_id)
        return set(conn.execute(s).scalars())

    def remove_from_all(self, conn, member_id):
        cm = self.db.category_member
        conn.execute(cm.delete().where(cm.c.cm_member == member_id))
