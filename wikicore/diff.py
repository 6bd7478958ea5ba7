#! /usr/bin/env python3

"""
Word-granularity diff of two texts.

A :py:class:`Diff` is computed once and can be rendered in four formats:

``delta``
    the compact delta encoding of :py:mod:`diff_match_patch`: ``=N`` for ``N``
    unchanged characters, ``-N`` for ``N`` deleted characters and ``+text``
    for an insertion (the text is percent-encoded, spaces are kept).
    Operations are separated by tab characters. This is the storage format of
    revisions.
``gnu``
    one operation per line, deletions prefixed with ``"- "`` and insertions
    with ``"+ "``
``md``
    deletions surrounded by ``~~`` and insertions by ``++``, concatenated
``html``
    deletions and insertions wrapped in ``<span class="diff-deleted">`` and
    ``<span class="diff-inserted">``, concatenated
"""

import enum
import html
import re
from dataclasses import dataclass

from diff_match_patch import diff_match_patch

__all__ = ["DiffOperation", "DiffSpan", "Diff", "DIFF_FORMATS", "diff", "apply_delta"]

DIFF_FORMATS = ("delta", "gnu", "md", "html")

# words, runs of whitespace and single punctuation characters
TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]")


class DiffOperation(enum.Enum):
    UNCHANGED = "="
    INSERTED = "+"
    DELETED = "-"

    @classmethod
    def from_dmp(klass, op):
        if op == diff_match_patch.DIFF_INSERT:
            return klass.INSERTED
        elif op == diff_match_patch.DIFF_DELETE:
            return klass.DELETED
        return klass.UNCHANGED

    def to_dmp(self):
        if self is DiffOperation.INSERTED:
            return diff_match_patch.DIFF_INSERT
        elif self is DiffOperation.DELETED:
            return diff_match_patch.DIFF_DELETE
        return diff_match_patch.DIFF_EQUAL


@dataclass(frozen=True)
class DiffSpan:
    operation: DiffOperation
    text: str


def tokenize(text):
    return TOKEN_RE.findall(text)

def _words_to_chars(a, b):
    """
    Encode each distinct token of both texts as a single character, so that
    the character diff of the encoded texts is a word diff of the originals.
    Index 0 of the token array is reserved, as in
    :py:meth:`diff_match_patch.diff_linesToChars`.
    """
    token_array = [""]
    token_hash = {}

    def encode(text):
        chars = []
        for token in tokenize(text):
            if token not in token_hash:
                token_hash[token] = len(token_array)
                token_array.append(token)
            chars.append(chr(token_hash[token]))
        return "".join(chars)

    return encode(a), encode(b), token_array

def normalize_format(format):
    """
    Return the canonical name of a diff format. Empty strings select the
    ``delta`` format, names are case-insensitive.

    :raises ValueError: for unknown formats
    """
    if format is None or not format.strip():
        return "delta"
    format = format.strip().lower()
    if format not in DIFF_FORMATS:
        raise ValueError(f"Unknown diff format: '{format}'")
    return format


class Diff:
    """
    An ordered list of :py:class:`DiffSpan` objects transforming one text into
    another. Adjacent spans always have different operations.
    """

    def __init__(self, spans):
        self.spans = []
        for span in spans:
            if not span.text:
                continue
            if self.spans and self.spans[-1].operation == span.operation:
                last = self.spans.pop()
                span = DiffSpan(span.operation, last.text + span.text)
            self.spans.append(span)

    @classmethod
    def compute(klass, old, new):
        """
        Compute the word diff between ``old`` and ``new``.
        """
        dmp = diff_match_patch()
        chars_old, chars_new, token_array = _words_to_chars(old or "", new or "")
        diffs = dmp.diff_main(chars_old, chars_new, False)
        dmp.diff_charsToLines(diffs, token_array)
        return klass.from_dmp(diffs)

    @classmethod
    def from_dmp(klass, diffs):
        """
        Create the diff from a list of ``(op, text)`` tuples as produced by
        :py:mod:`diff_match_patch`.
        """
        return klass(DiffSpan(DiffOperation.from_dmp(op), text) for op, text in diffs)

    def to_dmp(self):
        return [(span.operation.to_dmp(), span.text) for span in self.spans]

    def _length(self, operation):
        return sum(len(span.text) for span in self.spans if span.operation == operation)

    @property
    def has_deletions(self):
        return any(span.operation == DiffOperation.DELETED for span in self.spans)

    @property
    def deletion_length(self):
        return self._length(DiffOperation.DELETED)

    @property
    def insertion_length(self):
        return self._length(DiffOperation.INSERTED)

    @property
    def old_text(self):
        return diff_match_patch().diff_text1(self.to_dmp())

    @property
    def new_text(self):
        return diff_match_patch().diff_text2(self.to_dmp())

    def to_delta(self):
        return diff_match_patch().diff_toDelta(self.to_dmp())

    def to_gnu(self):
        lines = []
        for span in self.spans:
            if span.operation == DiffOperation.DELETED:
                lines.append("- " + span.text)
            elif span.operation == DiffOperation.INSERTED:
                lines.append("+ " + span.text)
            else:
                lines.append(span.text)
        return "\n".join(lines)

    def to_markdown(self):
        out = []
        for span in self.spans:
            if span.operation == DiffOperation.DELETED:
                out.append(f"~~{span.text}~~")
            elif span.operation == DiffOperation.INSERTED:
                out.append(f"++{span.text}++")
            else:
                out.append(span.text)
        return "".join(out)

    def to_html(self):
        out = []
        for span in self.spans:
            text = html.escape(span.text)
            if span.operation == DiffOperation.DELETED:
                out.append(f'<span class="diff-deleted">{text}</span>')
            elif span.operation == DiffOperation.INSERTED:
                out.append(f'<span class="diff-inserted">{text}</span>')
            else:
                out.append(text)
        return "".join(out)

    def format(self, format="delta"):
        """
        Render the diff in one of the :py:data:`DIFF_FORMATS`.
        """
        format = normalize_format(format)
        if format == "gnu":
            return self.to_gnu()
        elif format == "md":
            return self.to_markdown()
        elif format == "html":
            return self.to_html()
        return self.to_delta()

    def __str__(self):
        return self.to_delta()

    def __repr__(self):
        return f"Diff({self.spans!r})"


def diff(old, new, format="delta"):
    """
    Compute the word diff of two texts and render it in the given format.
    """
    return Diff.compute(old, new).format(format)

def apply_delta(text, delta):
    """
    Apply a delta produced by :py:meth:`Diff.to_delta` to the text it was
    computed from.

    :raises ValueError:
        if the delta cannot be parsed or does not describe the given text
    """
    dmp = diff_match_patch()
    diffs = dmp.diff_fromDelta(text, delta or "")
    return dmp.diff_text2(diffs)
