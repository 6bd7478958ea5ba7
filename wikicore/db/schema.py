#! /usr/bin/env python3

"""
Database schema of the wiki engine.

Notes:

- Page identifiers are opaque strings (UUID hex) assigned on creation. They
  are never reused, so the revision table keeps referencing them even after
  the page is deleted.
- The reference tables (``links``, ``redirects``, ``transclusions`` and
  ``missing_pages``) have one row per (target, referrer) pair. An index entry
  exists if and only if at least one row for the target exists, so empty
  entries cannot be represented at all.
- The referrer columns of the reference tables are not foreign keys. The
  reference tables are a cache of the current page content and stale
  referrers are tolerated by the propagation.
- Titles and namespaces are stored as text, there is no namespace table.
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Enum, ForeignKey, Index, Integer,
    PrimaryKeyConstraint, Table, UnicodeText,
)

from .sql_types import JSONEncodedList, UTCDateTime

__all__ = ["REFERENCE_TABLES", "create_tables"]

# name and column prefix of the reference tables
REFERENCE_TABLES = {
    "links": "ln",
    "redirects": "rd",
    "transclusions": "tc",
    "missing_pages": "mp",
}


def create_pages_tables(metadata):
    page = Table("page", metadata,
        Column("page_id", UnicodeText, primary_key=True, nullable=False),
        Column("page_kind", Enum("article", "category", "file", name="page_kind"), nullable=False),
        Column("page_namespace", UnicodeText, nullable=False),
        Column("page_title", UnicodeText, nullable=False),
        Column("page_markdown", UnicodeText, nullable=False, server_default=""),
        Column("page_html", UnicodeText, nullable=False, server_default=""),
        # the current parse of the content (lists of WikiLink and Transclusion records)
        Column("page_wikilinks", JSONEncodedList, nullable=False),
        Column("page_transclusions", JSONEncodedList, nullable=False),
        # titles of the categories the page is a member of
        Column("page_categories", JSONEncodedList, nullable=False),
        Column("page_redirect_namespace", UnicodeText),
        Column("page_redirect_title", UnicodeText),
        Column("page_is_broken_redirect", Boolean, nullable=False, server_default="0"),
        Column("page_is_double_redirect", Boolean, nullable=False, server_default="0"),
        Column("page_is_deleted", Boolean, nullable=False, server_default="0"),
        # timestamp of the latest revision
        Column("page_timestamp", UTCDateTime, nullable=False),
        Column("page_owner", UnicodeText),
        # only for files
        Column("page_file_path", UnicodeText),
        Column("page_file_size", Integer),
        Column("page_file_type", UnicodeText),
        CheckConstraint("(page_redirect_title IS NULL) = (page_redirect_namespace IS NULL)", name="check_redirect_target"),
    )
    Index("page_namespace_title", page.c.page_namespace, page.c.page_title)

    # exact title -> page
    Table("title", metadata,
        Column("title_namespace", UnicodeText, nullable=False),
        Column("title_title", UnicodeText, nullable=False),
        Column("title_page", UnicodeText, ForeignKey("page.page_id", ondelete="CASCADE"), nullable=False),
        PrimaryKeyConstraint("title_namespace", "title_title"),
    )

    # lowercased title -> set of pages
    Table("title_normalized", metadata,
        Column("tn_namespace", UnicodeText, nullable=False),
        Column("tn_title", UnicodeText, nullable=False),
        Column("tn_page", UnicodeText, ForeignKey("page.page_id", ondelete="CASCADE"), nullable=False),
        PrimaryKeyConstraint("tn_namespace", "tn_title", "tn_page"),
    )

    # category -> member pages (articles, files and subcategories)
    category_member = Table("category_member", metadata,
        Column("cm_category", UnicodeText, ForeignKey("page.page_id", ondelete="CASCADE"), nullable=False),
        Column("cm_member", UnicodeText, nullable=False),
        PrimaryKeyConstraint("cm_category", "cm_member"),
    )
    Index("cm_member", category_member.c.cm_member)


def create_revisions_tables(metadata):
    revision = Table("revision", metadata,
        # surrogate key, orders revisions with equal timestamps
        Column("rev_id", Integer, primary_key=True, nullable=False, autoincrement=True),
        Column("rev_page", UnicodeText, nullable=False),
        Column("rev_editor", UnicodeText, nullable=False),
        Column("rev_title", UnicodeText, nullable=False),
        Column("rev_namespace", UnicodeText, nullable=False),
        Column("rev_timestamp", UTCDateTime, nullable=False),
        Column("rev_comment", UnicodeText),
        Column("rev_kind", Enum("milestone", "delta", "deletion", name="rev_kind"), nullable=False),
        # full text of milestones, encoded delta of deltas, empty for deletions
        Column("rev_payload", UnicodeText, nullable=False, server_default=""),
        CheckConstraint("rev_kind != 'deletion' OR rev_payload = ''", name="check_deletion_payload"),
    )
    Index("rev_page_timestamp", revision.c.rev_page, revision.c.rev_timestamp, revision.c.rev_id)


def create_reference_tables(metadata):
    for name, prefix in REFERENCE_TABLES.items():
        table = Table(name, metadata,
            Column(f"{prefix}_namespace", UnicodeText, nullable=False),
            Column(f"{prefix}_title", UnicodeText, nullable=False),
            Column(f"{prefix}_from", UnicodeText, nullable=False),
            PrimaryKeyConstraint(f"{prefix}_namespace", f"{prefix}_title", f"{prefix}_from"),
        )
        # for removing all references of a page
        Index(f"{prefix}_from", table.c[f"{prefix}_from"])


def create_tables(metadata):
    create_pages_tables(metadata)
    create_revisions_tables(metadata)
    create_reference_tables(metadata)
