#! /usr/bin/env python3

"""
Propagation of changes to the pages depending on the changed page.

Dependents are found via the reference indices, including the references to
titles differing only in case (they may resolve to the changed page through
the case-insensitive fallback):

- pages *transcluding* the changed page embed its content, they have to be
  re-rendered and their own dependents have to be processed as well
- pages *redirecting* to the changed page mirror its state, their broken and
  double redirect flags are recomputed, they are re-rendered and their own
  dependents are processed as well
- pages *linking* to the changed page only style the link according to the
  existence of the target, they are re-rendered once but their dependents
  are not processed, because their existence does not change

The traversal is an explicit worklist with sets of processed pages, each page
is re-rendered at most once and expanded at most once per propagation.
"""

import collections
import logging
from typing import NamedTuple

logger = logging.getLogger(__name__)

__all__ = ["Frontier", "PropagationResult", "PropagationEngine"]


class Frontier(NamedTuple):
    # pages to re-render
    to_update: set[str]
    # pages whose dependents have to be processed too
    to_update_recursively: set[str]
    # redirect pages whose flags have to be recomputed
    redirects_to_update: set[str]


class PropagationResult(NamedTuple):
    # pages which were re-rendered
    updated: set[str]
    # pages whose dependents were processed
    expanded: set[str]
    # redirect pages whose broken or double flags changed
    reflagged: set[str]
    # referrers which do not exist anymore
    stale: set[str]


class PropagationEngine:
    """
    :param wikicore.pages.PageStore pages: the page store
    :param links: the ``links`` :py:class:`wikicore.indices.ReferenceIndex`
    :param redirects: the ``redirects`` :py:class:`wikicore.indices.ReferenceIndex`
    :param transclusions: the ``transclusions`` :py:class:`wikicore.indices.ReferenceIndex`
    :param wikicore.redirects.RedirectResolver resolver: the redirect resolver
    :param refresh_func:
        called as ``refresh_func(conn, page)`` to re-render a page and persist
        it together with the indices derived from its content
    """

    def __init__(self, pages, links, redirects, transclusions, resolver, refresh_func):
        self.pages = pages
        self.links = links
        self.redirects = redirects
        self.transclusions = transclusions
        self.resolver = resolver
        self.refresh_func = refresh_func

    def frontier(self, conn, title, namespace, *, same_title=True, previous_title=None,
                 previous_namespace=None, include_redirects=True, include_links=True):
        """
        Compute the direct dependents of a page.

        :param bool same_title: ``False`` if the page was renamed from
            ``previous_title`` and ``previous_namespace``
        :param bool include_redirects: whether redirects to the page are included
        :param bool include_links: whether pages linking to the page are included
        :returns: a :py:class:`Frontier`
        """
        targets = [(title, namespace)]
        if not same_title and previous_title is not None:
            targets.insert(0, (previous_title, previous_namespace or namespace))

        result = Frontier(set(), set(), set())
        for t, ns in targets:
            if include_redirects:
                referrers = self.redirects.get(conn, t, ns, ignore_case=True) or set()
                result.to_update.update(referrers)
                result.to_update_recursively.update(referrers)
                result.redirects_to_update.update(referrers)
            referrers = self.transclusions.get(conn, t, ns, ignore_case=True) or set()
            result.to_update.update(referrers)
            result.to_update_recursively.update(referrers)
            if include_links:
                result.to_update.update(self.links.get(conn, t, ns, ignore_case=True) or set())
        return result

    def propagate(self, conn, title, namespace, was_deleted, same_title, previous_title=None,
                  previous_namespace=None, include_redirects=True, is_redirect=False, origin_id=None):
        """
        Re-render and re-flag all pages depending on the changed page.

        :param str title: the current title of the changed page
        :param str namespace: the current namespace of the changed page
        :param bool was_deleted: the changed page is deleted now
        :param bool same_title: the page was not renamed
        :param str previous_title: the title before a rename
        :param str previous_namespace: the namespace before a rename
        :param bool include_redirects: process redirects to the changed page
        :param bool is_redirect: the changed page is a redirect now
        :param str origin_id: identifier of the changed page, it is not
            processed again
        :returns: a :py:class:`PropagationResult`
        """
        logger.debug("Propagating change of [[{}:{}]] (deleted: {}, redirect: {}, renamed: {})"
                     .format(namespace, title, was_deleted, is_redirect, not same_title))
        seed = self.frontier(conn, title, namespace, same_title=same_title, previous_title=previous_title,
                             previous_namespace=previous_namespace, include_redirects=include_redirects)

        to_update_recursively = set(seed.to_update_recursively)
        redirects_to_update = set(seed.redirects_to_update)
        queue = collections.deque(sorted(seed.to_update))
        updated = set()
        expanded = set()
        reflagged = set()
        stale = set()
        if origin_id is not None:
            updated.add(origin_id)
            expanded.add(origin_id)

        while queue:
            page_id = queue.popleft()
            needs_update = page_id not in updated
            needs_expansion = page_id in to_update_recursively and page_id not in expanded
            if not needs_update and not needs_expansion:
                continue

            page = self.pages.get(conn, page_id)
            if page is None:
                logger.warning("Skipping stale reference to page '{}'".format(page_id))
                stale.add(page_id)
                updated.add(page_id)
                expanded.add(page_id)
                continue

            if needs_update:
                updated.add(page_id)
                if not page.is_deleted:
                    if page_id in redirects_to_update and self.resolver.reclassify(conn, page):
                        reflagged.add(page_id)
                        logger.info("Redirect [[{}]] is now broken: {}, double: {}".format(
                            page.full_title(self.resolver.config), page.is_broken_redirect, page.is_double_redirect))
                    logger.debug("Re-rendering page '{}'".format(page_id))
                    self.refresh_func(conn, page)

            if needs_expansion:
                expanded.add(page_id)
                if page.is_deleted or not page.kind.allows_recursion:
                    continue
                # the existence of the page did not change, plain links to it are up to date
                child = self.frontier(conn, page.title, page.namespace, include_links=False)
                for child_id in sorted(child.to_update):
                    recursive = child_id in child.to_update_recursively
                    if recursive:
                        to_update_recursively.add(child_id)
                    if child_id in child.redirects_to_update:
                        redirects_to_update.add(child_id)
                    if child_id not in updated or (recursive and child_id not in expanded):
                        queue.append(child_id)

        updated.discard(origin_id)
        expanded.discard(origin_id)
        return PropagationResult(updated, expanded, reflagged, stale)
