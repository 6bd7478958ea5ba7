#! /usr/bin/env python3

import datetime
import enum
import logging
import uuid
from dataclasses import dataclass, field

import sqlalchemy as sa

from .parser_helpers.title import full_title
from .parser_helpers.transclusions import Transclusion
from .parser_helpers.wikilinks import WikiLink

logger = logging.getLogger(__name__)

__all__ = ["PageKind", "FileInfo", "Page", "PageStore", "new_page_id"]


class PageKind(enum.Enum):
    ARTICLE = "article"
    CATEGORY = "category"
    FILE = "file"

    @property
    def allows_recursion(self):
        """
        Whether the dependents of the page are expanded recursively during
        propagation. Categories and files cannot transclude other pages.
        """
        return self is PageKind.ARTICLE


@dataclass(frozen=True)
class FileInfo:
    path: str
    size: int
    mime_type: str


@dataclass
class Page:
    """
    The current state of a page. Articles, categories and files share all
    fields, files additionally carry a :py:class:`FileInfo`. Members of a
    category are kept in :py:class:`wikicore.indices.CategoryIndex`.
    """
    id: str
    kind: PageKind
    title: str
    namespace: str
    timestamp: datetime.datetime
    markdown: str = ""
    html: str = ""
    wikilinks: list[WikiLink] = field(default_factory=list)
    transclusions: list[Transclusion] = field(default_factory=list)
    # titles of the categories
    categories: list[str] = field(default_factory=list)
    redirect_namespace: str | None = None
    redirect_title: str | None = None
    is_broken_redirect: bool = False
    is_double_redirect: bool = False
    is_deleted: bool = False
    owner: str | None = None
    file: FileInfo | None = None

    @property
    def is_redirect(self):
        return self.redirect_title is not None

    def full_title(self, config):
        return full_title(self.title, self.namespace, config)

    def clear_redirect(self):
        self.redirect_namespace = None
        self.redirect_title = None
        self.is_broken_redirect = False
        self.is_double_redirect = False


def new_page_id():
    return uuid.uuid4().hex


class PageStore:
    """
    Loads and stores :py:class:`Page` objects.

    :param wikicore.db.database.Database db: the database
    """

    def __init__(self, db):
        self.db = db

    @staticmethod
    def _from_row(row):
        file = None
        if row.page_file_path is not None:
            file = FileInfo(row.page_file_path, row.page_file_size, row.page_file_type)
        return Page(
            id=row.page_id,
            kind=PageKind(row.page_kind),
            title=row.page_title,
            namespace=row.page_namespace,
            timestamp=row.page_timestamp,
            markdown=row.page_markdown,
            html=row.page_html,
            wikilinks=[WikiLink.from_dict(d) for d in row.page_wikilinks],
            transclusions=[Transclusion.from_dict(d) for d in row.page_transclusions],
            categories=list(row.page_categories),
            redirect_namespace=row.page_redirect_namespace,
            redirect_title=row.page_redirect_title,
            is_broken_redirect=row.page_is_broken_redirect,
            is_double_redirect=row.page_is_double_redirect,
            is_deleted=row.page_is_deleted,
            owner=row.page_owner,
            file=file,
        )

    @staticmethod
    def _to_row(page):
        return {
            "page_id": page.id,
            "page_kind": page.kind.value,
            "page_namespace": page.namespace,
            "page_title": page.title,
            "page_markdown": page.markdown,
            "page_html": page.html,
            "page_wikilinks": [link.to_dict() for link in page.wikilinks],
            "page_transclusions": [t.to_dict() for t in page.transclusions],
            "page_categories": list(page.categories),
            "page_redirect_namespace": page.redirect_namespace,
            "page_redirect_title": page.redirect_title,
            "page_is_broken_redirect": page.is_broken_redirect,
            "page_is_double_redirect": page.is_double_redirect,
            "page_is_deleted": page.is_deleted,
            "page_timestamp": page.timestamp,
            "page_owner": page.owner,
            "page_file_path": page.file.path if page.file else None,
            "page_file_size": page.file.size if page.file else None,
            "page_file_type": page.file.mime_type if page.file else None,
        }

    def get(self, conn, page_id):
        """
        :returns: the :py:class:`Page` or ``None`` if it does not exist
        """
        s = sa.select(self.db.page).where(self.db.page.c.page_id == page_id)
        row = conn.execute(s).first()
        return None if row is None else self._from_row(row)

    def store(self, conn, page):
        """Insert or update the page."""
        row = self._to_row(page)
        ins = self.db.upsert(self.db.page, [key for key in row if key != "page_id"])
        conn.execute(ins, row)

    def select(self, conn, *conditions, order_by=None, limit=None, offset=None):
        """
        Query pages matching all the given conditions.

        :param conditions: SQL expressions on the columns of the ``page`` table
        :returns: a list of :py:class:`Page` objects
        """
        page = self.db.page
        s = sa.select(page).where(*conditions)
        if order_by is None:
            order_by = (page.c.page_namespace, page.c.page_title)
        s = s.order_by(*order_by)
        if limit is not None:
            s = s.limit(limit)
        if offset:
            s = s.offset(offset)
        return [self._from_row(row) for row in conn.execute(s)]

    def count(self, conn, *conditions):
        s = sa.select(sa.func.count()).select_from(self.db.page).where(*conditions)
        return conn.execute(s).scalar_one()
