#! /usr/bin/env python3

"""
Append-only storage of the edit history of pages.

Every revision is either a *milestone* holding the full text of the page, a
*delta* holding a word diff against the text reconstructed from all
revisions since the previous milestone, or a *deletion* with an empty
payload. Large rewrites are stored as new milestones, which bounds the number
of deltas that have to be replayed when reconstructing any point of history.
"""

import datetime
import enum
import logging
import math
from dataclasses import dataclass
from typing import NamedTuple

import sqlalchemy as sa

from .diff import Diff, apply_delta
from .exceptions import MalformedHistoryError

logger = logging.getLogger(__name__)

__all__ = ["RevisionKind", "Revision", "HistoryPage", "classify", "get_text", "RevisionStore"]

# a diff deleting at least this fraction of the previous text is a candidate for a milestone
MILESTONE_DELETION_RATIO = 0.75
# ... and it becomes a milestone if the insertions are this many times longer than the retained text
MILESTONE_INSERTION_FACTOR = 3


class RevisionKind(enum.Enum):
    MILESTONE = "milestone"
    DELTA = "delta"
    DELETION = "deletion"


@dataclass(frozen=True)
class Revision:
    page_id: str
    editor: str
    title: str
    namespace: str
    timestamp: datetime.datetime
    kind: RevisionKind
    payload: str = ""
    comment: str | None = None
    # assigned by the database
    id: int | None = None

    @property
    def is_milestone(self):
        return self.kind == RevisionKind.MILESTONE

    @property
    def is_deletion(self):
        return self.kind == RevisionKind.DELETION


class HistoryPage(NamedTuple):
    revisions: list[Revision]
    page: int
    page_size: int
    total: int

    @property
    def page_count(self):
        return max(1, math.ceil(self.total / self.page_size))


def classify(previous_text: str | None, new_text: str | None) -> tuple[RevisionKind, str]:
    """
    Decide how a change of text is stored.

    :returns: a tuple of the :py:class:`RevisionKind` and the payload
    """
    if not new_text:
        return RevisionKind.DELETION, ""
    if not previous_text:
        return RevisionKind.MILESTONE, new_text

    diff = Diff.compute(previous_text, new_text)
    if not diff.has_deletions:
        return RevisionKind.DELTA, diff.to_delta()
    deletion_length = diff.deletion_length
    if deletion_length < MILESTONE_DELETION_RATIO * len(previous_text):
        return RevisionKind.DELTA, diff.to_delta()
    retained_length = len(previous_text) - deletion_length
    if diff.insertion_length >= MILESTONE_INSERTION_FACTOR * retained_length:
        logger.debug("classify: deleted {}, inserted {}, retained {} -> milestone"
                     .format(deletion_length, diff.insertion_length, retained_length))
        return RevisionKind.MILESTONE, new_text
    return RevisionKind.DELTA, diff.to_delta()

def get_text(revisions):
    """
    Reconstruct the text after the given sequence of revisions.

    The sequence is expected to start with a milestone and to be ordered by
    time, as returned by :py:meth:`RevisionStore.revisions_until`.

    :raises MalformedHistoryError:
        if a delta cannot be parsed or applied, or a non-milestone revision
        has an empty payload although the accumulated text is not empty
    """
    text = ""
    for revision in revisions:
        if revision.kind == RevisionKind.DELETION:
            text = ""
        elif revision.kind == RevisionKind.MILESTONE:
            text = revision.payload
        elif not revision.payload:
            if text:
                raise MalformedHistoryError(f"Revision {revision.id} of page '{revision.page_id}' has an empty delta.")
        else:
            try:
                text = apply_delta(text, revision.payload)
            except ValueError as e:
                raise MalformedHistoryError(f"Revision {revision.id} of page '{revision.page_id}' is malformed: {e}") from e
    return text


class RevisionStore:
    """
    :param wikicore.db.database.Database db: the database
    """

    def __init__(self, db):
        self.db = db

    @staticmethod
    def _from_row(row):
        return Revision(
            page_id=row.rev_page,
            editor=row.rev_editor,
            title=row.rev_title,
            namespace=row.rev_namespace,
            timestamp=row.rev_timestamp,
            kind=RevisionKind(row.rev_kind),
            payload=row.rev_payload,
            comment=row.rev_comment,
            id=row.rev_id,
        )

    def record(self, conn, page_id, editor, title, namespace, previous_text, new_text, comment=None, timestamp=None):
        """
        Store a new revision of the page.

        :param conn: a connection with an established transaction
        :param str previous_text: the text before the change (``None`` or empty for new pages)
        :param str new_text: the text after the change (``None`` or empty for deletions)
        :param datetime.datetime timestamp: defaults to the current time
        :returns: the stored :py:class:`Revision`
        """
        if timestamp is None:
            timestamp = datetime.datetime.now(datetime.UTC)
        kind, payload = classify(previous_text, new_text)
        result = conn.execute(self.db.revision.insert().values(
            rev_page=page_id,
            rev_editor=editor,
            rev_title=title,
            rev_namespace=namespace,
            rev_timestamp=timestamp,
            rev_comment=comment,
            rev_kind=kind.value,
            rev_payload=payload,
        ))
        rev_id = result.inserted_primary_key[0]
        logger.debug("Recorded {} revision {} of page '{}'".format(kind.value, rev_id, page_id))
        return Revision(page_id, editor, title, namespace, timestamp, kind, payload, comment, rev_id)

    def _until(self, page_id, timestamp, rev_id=None):
        rev = self.db.revision
        if rev_id is None:
            bound = rev.c.rev_timestamp <= timestamp
        else:
            bound = sa.or_(
                rev.c.rev_timestamp < timestamp,
                sa.and_(rev.c.rev_timestamp == timestamp, rev.c.rev_id <= rev_id),
            )
        return sa.and_(rev.c.rev_page == page_id, bound)

    def revisions_until(self, conn, page_id, time=None, *, rev_id=None):
        """
        Return the revisions needed to reconstruct the text of the page at the
        given time: the latest milestone not newer than ``time`` and all later
        revisions up to ``time``, in chronological order.

        :param datetime.datetime time: the cutoff, defaults to the current time
        :param int rev_id: restrict the cutoff to revisions up to this id among
            those with timestamp equal to ``time``
        """
        if time is None:
            time = datetime.datetime.now(datetime.UTC)
        rev = self.db.revision
        until = self._until(page_id, time, rev_id)
        s = sa.select(rev).where(until, rev.c.rev_kind == RevisionKind.MILESTONE.value) \
              .order_by(rev.c.rev_timestamp.desc(), rev.c.rev_id.desc()).limit(1)
        milestone = conn.execute(s).first()
        if milestone is None:
            return []
        s = sa.select(rev).where(
                until,
                sa.or_(
                    rev.c.rev_timestamp > milestone.rev_timestamp,
                    sa.and_(rev.c.rev_timestamp == milestone.rev_timestamp, rev.c.rev_id >= milestone.rev_id),
                )) \
              .order_by(rev.c.rev_timestamp.asc(), rev.c.rev_id.asc())
        return [self._from_row(row) for row in conn.execute(s)]

    def text_at(self, conn, page_id, time=None):
        """
        Reconstruct the text of the page at the given time (the current text
        by default). The text before the first revision is empty.

        :raises MalformedHistoryError: see :py:func:`get_text`
        """
        return get_text(self.revisions_until(conn, page_id, time))

    def text_of(self, conn, revision):
        """Reconstruct the text of the page right after the given revision."""
        return get_text(self.revisions_until(conn, revision.page_id, revision.timestamp, rev_id=revision.id))

    def latest(self, conn, page_id, time=None):
        """
        Return the latest revision of the page not newer than ``time``.
        """
        rev = self.db.revision
        s = sa.select(rev).where(rev.c.rev_page == page_id)
        if time is not None:
            s = s.where(rev.c.rev_timestamp <= time)
        s = s.order_by(rev.c.rev_timestamp.desc(), rev.c.rev_id.desc()).limit(1)
        row = conn.execute(s).first()
        return None if row is None else self._from_row(row)

    def previous(self, conn, revision):
        """Return the revision preceding the given one, or ``None``."""
        rev = self.db.revision
        s = sa.select(rev).where(
                rev.c.rev_page == revision.page_id,
                sa.or_(
                    rev.c.rev_timestamp < revision.timestamp,
                    sa.and_(rev.c.rev_timestamp == revision.timestamp, rev.c.rev_id < revision.id),
                )) \
              .order_by(rev.c.rev_timestamp.desc(), rev.c.rev_id.desc()).limit(1)
        row = conn.execute(s).first()
        return None if row is None else self._from_row(row)

    def diff_at(self, conn, page_id, time, format="md"):
        """
        Render the changes made by the latest revision not newer than ``time``
        against the text before it.
        """
        revision = self.latest(conn, page_id, time)
        if revision is None:
            return ""
        new = self.text_of(conn, revision)
        previous = self.previous(conn, revision)
        old = "" if previous is None else self.text_of(conn, previous)
        return Diff.compute(old, new).format(format)

    def diff_with_current(self, conn, page_id, time, format="md"):
        """
        Render the differences between the text at ``time`` and the current text.
        """
        old = self.text_at(conn, page_id, time)
        new = self.text_at(conn, page_id)
        return Diff.compute(old, new).format(format)

    def diff_with_other(self, conn, page_id, other_page_id, time=None, other_time=None, format="md"):
        """
        Render the differences between the text of this page and another page,
        each at the given time (the current text by default).
        """
        old = self.text_at(conn, page_id, time)
        new = self.text_at(conn, other_page_id, other_time)
        return Diff.compute(old, new).format(format)

    def history(self, conn, page_id, *, editor=None, start=None, end=None, page=1, page_size=50):
        """
        Return a page of the revision history, newest first.

        :param str editor: only revisions by this editor
        :param datetime.datetime start: only revisions at or after this time
        :param datetime.datetime end: only revisions at or before this time
        :param int page: 1-based page number
        :param int page_size: number of revisions per page
        :returns: a :py:class:`HistoryPage`
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        rev = self.db.revision
        conditions = [rev.c.rev_page == page_id]
        if editor is not None:
            conditions.append(rev.c.rev_editor == editor)
        if start is not None:
            conditions.append(rev.c.rev_timestamp >= start)
        if end is not None:
            conditions.append(rev.c.rev_timestamp <= end)

        total = conn.execute(sa.select(sa.func.count()).select_from(rev).where(*conditions)).scalar_one()
        s = sa.select(rev).where(*conditions) \
              .order_by(rev.c.rev_timestamp.desc(), rev.c.rev_id.desc()) \
              .limit(page_size).offset((page - 1) * page_size)
        revisions = [self._from_row(row) for row in conn.execute(s)]
        return HistoryPage(revisions, page, page_size, total)
