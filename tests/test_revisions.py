#! /usr/bin/env python3

import datetime

import pytest

from wikicore.exceptions import MalformedHistoryError
from wikicore.revisions import *

BASE = datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.UTC)

def t(minutes):
    return BASE + datetime.timedelta(minutes=minutes)

def record_all(store, conn, texts, page_id="page", editor="alice"):
    """Record the texts as consecutive edits, one minute apart."""
    revisions = []
    previous = None
    for i, text in enumerate(texts):
        revisions.append(store.record(conn, page_id, editor, "Foo", "Wiki", previous, text, timestamp=t(i)))
        previous = text
    return revisions

@pytest.fixture
def store(db):
    return RevisionStore(db)


class test_classify:
    def test_new_text_is_milestone(self):
        assert classify(None, "text") == (RevisionKind.MILESTONE, "text")
        assert classify("", "text") == (RevisionKind.MILESTONE, "text")

    @pytest.mark.parametrize("previous", [None, "", "old text"])
    @pytest.mark.parametrize("new", [None, ""])
    def test_empty_text_is_deletion(self, previous, new):
        assert classify(previous, new) == (RevisionKind.DELETION, "")

    def test_insertion_only_is_delta(self):
        kind, payload = classify("abc", "abc def")
        assert kind == RevisionKind.DELTA
        assert payload == "=3\t+ def"

    def test_small_deletion_is_delta(self):
        kind, _ = classify("one two three four", "one two three")
        assert kind == RevisionKind.DELTA

    def test_milestone_boundary(self):
        previous = "K" * 19 + " " + "D" * 80
        assert len(previous) == 100
        # deleted 80, retained 20, inserted 70 >= 3 * 20
        kind, payload = classify(previous, "K" * 19 + " " + "I" * 70)
        assert kind == RevisionKind.MILESTONE
        assert payload == "K" * 19 + " " + "I" * 70
        # deleted 80, retained 20, inserted 50 < 3 * 20
        kind, _ = classify(previous, "K" * 19 + " " + "I" * 50)
        assert kind == RevisionKind.DELTA

    def test_large_deletion_small_insertion_is_delta(self):
        kind, _ = classify("keep " + "x" * 100, "keep")
        assert kind == RevisionKind.DELTA


class test_get_text:
    def rev(self, kind, payload, i=0):
        return Revision("page", "alice", "Foo", "Wiki", t(i), kind, payload, id=i)

    def test_empty(self):
        assert get_text([]) == ""

    def test_deltas(self):
        revisions = [
            self.rev(RevisionKind.MILESTONE, "the quick fox", 1),
            self.rev(RevisionKind.DELTA, "=4\t-5\t+slow\t=4", 2),
        ]
        assert get_text(revisions) == "the slow fox"

    def test_deletion_resets(self):
        revisions = [
            self.rev(RevisionKind.MILESTONE, "text", 1),
            self.rev(RevisionKind.DELETION, "", 2),
        ]
        assert get_text(revisions) == ""

    def test_delta_after_deletion(self):
        revisions = [
            self.rev(RevisionKind.MILESTONE, "text", 1),
            self.rev(RevisionKind.DELETION, "", 2),
            self.rev(RevisionKind.DELTA, "=4", 3),
        ]
        with pytest.raises(MalformedHistoryError):
            get_text(revisions)

    def test_unparsable_delta(self):
        revisions = [
            self.rev(RevisionKind.MILESTONE, "text", 1),
            self.rev(RevisionKind.DELTA, "garbage", 2),
        ]
        with pytest.raises(MalformedHistoryError) as excinfo:
            get_text(revisions)
        assert "is malformed" in str(excinfo.value)

    def test_empty_delta_after_text(self):
        revisions = [
            self.rev(RevisionKind.MILESTONE, "text", 1),
            self.rev(RevisionKind.DELTA, "", 2),
        ]
        with pytest.raises(MalformedHistoryError) as excinfo:
            get_text(revisions)
        assert "empty delta" in str(excinfo.value)


class test_revision_store:
    texts = [
        "The first version of the page.",
        "The first version of the page. With an appendix.",
        "The second version of the page. With an appendix.",
        "Completely rewritten content which has nothing in common with the old one at all.",
        "Completely rewritten content, slightly edited.",
    ]

    def test_first_revision_is_milestone(self, db, store):
        with db.engine.begin() as conn:
            revision = store.record(conn, "page", "alice", "Foo", "Wiki", None, "text")
            assert revision.is_milestone
            assert revision.id is not None

    def test_roundtrip(self, db, store):
        with db.engine.begin() as conn:
            revisions = record_all(store, conn, self.texts)
        assert revisions[0].is_milestone
        assert revisions[1].kind == RevisionKind.DELTA
        with db.engine.connect() as conn:
            assert store.text_at(conn, "page") == self.texts[-1]
            for i, text in enumerate(self.texts):
                assert store.text_at(conn, "page", t(i)) == text
                assert store.text_at(conn, "page", t(i) + datetime.timedelta(seconds=30)) == text

    def test_before_first_revision(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, self.texts)
        with db.engine.connect() as conn:
            assert store.text_at(conn, "page", t(-1)) == ""
            assert store.text_at(conn, "nonexistent") == ""

    def test_deletion_and_restore(self, db, store):
        texts = ["some text", "", "restored text", "restored text, edited"]
        with db.engine.begin() as conn:
            revisions = record_all(store, conn, texts)
        assert [r.kind for r in revisions] == [RevisionKind.MILESTONE, RevisionKind.DELETION,
                                               RevisionKind.MILESTONE, RevisionKind.DELTA]
        with db.engine.connect() as conn:
            assert store.text_at(conn, "page", t(1)) == ""
            assert store.text_at(conn, "page") == "restored text, edited"

    def test_equal_timestamps(self, db, store):
        with db.engine.begin() as conn:
            store.record(conn, "page", "alice", "Foo", "Wiki", None, "one", timestamp=t(0))
            store.record(conn, "page", "alice", "Foo", "Wiki", "one", "one two", timestamp=t(0))
        with db.engine.connect() as conn:
            assert store.text_at(conn, "page", t(0)) == "one two"

    def test_malformed_history(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, ["some text"])
            conn.execute(db.revision.insert().values(
                rev_page="page", rev_editor="mallory", rev_title="Foo", rev_namespace="Wiki",
                rev_timestamp=t(1), rev_kind="delta", rev_payload="=999"))
        with db.engine.connect() as conn:
            assert store.text_at(conn, "page", t(0)) == "some text"
            with pytest.raises(MalformedHistoryError):
                store.text_at(conn, "page")

    def test_latest_and_previous(self, db, store):
        with db.engine.begin() as conn:
            revisions = record_all(store, conn, self.texts)
        with db.engine.connect() as conn:
            latest = store.latest(conn, "page")
            assert latest.id == revisions[-1].id
            assert latest.timestamp == t(len(self.texts) - 1)
            assert store.latest(conn, "page", t(1)).id == revisions[1].id
            assert store.previous(conn, latest).id == revisions[-2].id
            assert store.previous(conn, revisions[0]) is None
            assert store.text_of(conn, revisions[2]) == self.texts[2]

    def test_diff_at(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, ["the quick fox", "the slow fox"])
        with db.engine.connect() as conn:
            assert store.diff_at(conn, "page", t(1)) == "the ~~quick~~++slow++ fox"
            assert store.diff_at(conn, "page", t(0)) == "++the quick fox++"
            assert store.diff_at(conn, "page", t(-1)) == ""
            assert store.diff_at(conn, "page", t(1), format="delta") == "=4\t-5\t+slow\t=4"

    def test_diff_with_current(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, ["the quick fox", "the quick brown fox", "the slow brown fox"])
        with db.engine.connect() as conn:
            assert store.diff_with_current(conn, "page", t(0)) == "the ~~quick~~++slow brown++ fox"

    def test_diff_with_other(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, ["the quick fox"], page_id="a")
            record_all(store, conn, ["the slow fox"], page_id="b")
        with db.engine.connect() as conn:
            assert store.diff_with_other(conn, "a", "b", format="gnu") == "the \n- quick\n+ slow\n fox"

    def test_history(self, db, store):
        with db.engine.begin() as conn:
            record_all(store, conn, self.texts[:3], editor="alice")
            store.record(conn, "page", "bob", "Foo", "Wiki", self.texts[2], self.texts[3], timestamp=t(3))
            store.record(conn, "page", "bob", "Foo", "Wiki", self.texts[3], self.texts[4], timestamp=t(4))
        with db.engine.connect() as conn:
            history = store.history(conn, "page", page_size=2)
            assert history.total == 5
            assert history.page_count == 3
            assert [r.timestamp for r in history.revisions] == [t(4), t(3)]

            history = store.history(conn, "page", page=3, page_size=2)
            assert [r.timestamp for r in history.revisions] == [t(0)]

            history = store.history(conn, "page", editor="bob")
            assert history.total == 2
            assert {r.editor for r in history.revisions} == {"bob"}

            history = store.history(conn, "page", start=t(1), end=t(3))
            assert [r.timestamp for r in history.revisions] == [t(3), t(2), t(1)]

    def test_history_empty(self, db, store):
        with db.engine.connect() as conn:
            history = store.history(conn, "page")
            assert history.revisions == []
            assert history.total == 0
            assert history.page_count == 1

    @pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (-1, -1)])
    def test_history_invalid_paging(self, db, store, page, page_size):
        with db.engine.connect() as conn:
            with pytest.raises(ValueError):
                store.history(conn, "page", page=page, page_size=page_size)
