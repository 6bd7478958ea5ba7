#! /usr/bin/env python3

import logging
from typing import NamedTuple

from .parser_helpers.redirect import parse_redirect

logger = logging.getLogger(__name__)

__all__ = ["MAX_REDIRECT_HOPS", "RedirectStatus", "Resolution", "RedirectResolver"]

MAX_REDIRECT_HOPS = 100


class RedirectStatus(NamedTuple):
    """The result of the redirect classification of a page."""
    namespace: str | None
    title: str | None
    is_broken: bool = False
    is_double: bool = False
    # the target may be registered in the redirects index
    is_valid: bool = False

    @property
    def is_redirect(self):
        return self.title is not None


NOT_A_REDIRECT = RedirectStatus(None, None)


class Resolution(NamedTuple):
    """The result of :py:meth:`RedirectResolver.resolve`."""
    page: object
    # the chain of redirects led back to an already visited page
    is_cycle: bool = False
    # the number of redirects followed
    hops: int = 0
    # the resolution was aborted after MAX_REDIRECT_HOPS
    hop_limit_reached: bool = False


class RedirectResolver:
    """
    Classifies redirect pages and follows redirect chains.

    :param wikicore.config.WikiConfig config: the wiki configuration
    :param wikicore.indices.TitleIndex titles: the title index
    :param wikicore.pages.PageStore pages: the page store
    """

    def __init__(self, config, titles, pages):
        self.config = config
        self.titles = titles
        self.pages = pages

    def classify_target(self, conn, title, namespace):
        """
        Classify a redirect to the given target. This is the only place where
        the broken and double redirect flags are computed.

        Redirects to categories and files are never valid, they are always
        broken and they are not tracked in the redirects index. A redirect is
        broken if its target does not exist (or is deleted) and double if the
        target is itself a redirect. The target is resolved like links are,
        including the unambiguous case-insensitive fallback. The redirect is
        tracked under the title written in its directive.
        """
        if self.config.is_category_namespace(namespace) or self.config.is_file_namespace(namespace):
            return RedirectStatus(namespace, title, is_broken=True)
        target_id = self.titles.resolve(conn, title, namespace)
        target = None if target_id is None else self.pages.get(conn, target_id)
        if target is None or target.is_deleted:
            return RedirectStatus(namespace, title, is_broken=True, is_valid=True)
        return RedirectStatus(namespace, title, is_double=target.is_redirect, is_valid=True)

    def classify(self, conn, markdown):
        """
        Parse the redirect directive of the markdown and classify its target.

        :returns: a :py:class:`RedirectStatus`
        """
        parts = parse_redirect(markdown, self.config)
        if parts is None:
            return NOT_A_REDIRECT
        return self.classify_target(conn, parts.title, parts.namespace)

    def reclassify(self, conn, page):
        """
        Recompute the broken and double redirect flags of an existing redirect
        page in place.

        :returns: ``True`` if any flag changed
        """
        if not page.is_redirect:
            return False
        status = self.classify_target(conn, page.redirect_title, page.redirect_namespace)
        changed = (page.is_broken_redirect, page.is_double_redirect) != (status.is_broken, status.is_double)
        page.is_broken_redirect = status.is_broken
        page.is_double_redirect = status.is_double
        return changed

    def _lookup(self, conn, title, namespace):
        page_id = self.titles.resolve(conn, title, namespace)
        return None if page_id is None else self.pages.get(conn, page_id)

    def resolve(self, conn, title, namespace, follow_redirects=True):
        """
        Find the page with the given title and follow its redirects.

        Broken redirects are not followed. If the chain of redirects returns to
        an already visited page, or if it is longer than
        :py:data:`MAX_REDIRECT_HOPS`, the resolution stops at the last page
        found.

        :returns: a :py:class:`Resolution`; its ``page`` is ``None`` only if
            the title itself does not resolve
        """
        page = self._lookup(conn, title, namespace)
        if page is None or not follow_redirects:
            return Resolution(page)

        visited = set()
        hops = 0
        while page.is_redirect and not page.is_broken_redirect:
            if page.id in visited:
                logger.warning("Redirect cycle detected at page [[{}]]".format(page.full_title(self.config)))
                return Resolution(page, is_cycle=True, hops=hops)
            if hops >= MAX_REDIRECT_HOPS:
                logger.warning("Resolution of [[{}]] aborted after {} redirects".format(title, hops))
                return Resolution(page, hops=hops, hop_limit_reached=True)
            visited.add(page.id)
            target = self._lookup(conn, page.redirect_title, page.redirect_namespace)
            if target is None:
                # stale flags, the target vanished
                return Resolution(page, hops=hops)
            page = target
            hops += 1
        return Resolution(page, hops=hops)
