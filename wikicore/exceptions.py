#! /usr/bin/env python3

__all__ = [
    "WikiError",
    "ValidationError",
    "TitleInUseError",
    "NonEmptyCategoryError",
    "MalformedHistoryError",
    "PageNotFoundError",
]


class WikiError(Exception):
    """Base class for all errors raised by :py:mod:`wikicore`."""


class ValidationError(WikiError, ValueError):
    """
    Raised when the input of a mutating operation is invalid (empty title,
    reserved namespace, etc.). Nothing is written to the database before the
    error is raised.
    """


class TitleInUseError(ValidationError):
    """
    Raised when a title is already assigned to a different page.
    """

    def __init__(self, title, namespace, page_id):
        self.title = title
        self.namespace = namespace
        self.page_id = page_id
        super().__init__(f"The title '{namespace}:{title}' is already in use by page '{page_id}'.")


class NonEmptyCategoryError(WikiError):
    """Raised on an attempt to delete a category which still has members."""

    def __init__(self, title):
        self.title = title
        super().__init__(f"Non-empty categories cannot be deleted: '{title}'")


class MalformedHistoryError(WikiError):
    """
    Raised when the text of a page cannot be reconstructed from its stored
    revisions. This indicates data corruption, not a missing page.
    """


class PageNotFoundError(WikiError, LookupError):
    """Raised by id-based accessors when the page does not exist."""

    def __init__(self, page_id):
        self.page_id = page_id
        super().__init__(f"Page '{page_id}' does not exist.")
