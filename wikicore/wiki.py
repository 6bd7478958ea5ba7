#! /usr/bin/env python3

"""
The page entity operations of the wiki engine.

An edit enters through :py:meth:`Wiki.revise` (or one of the ``create_*``
methods) and proceeds as follows:

1. the input is validated, nothing is written before the validation passes
2. the title index is updated on renames
3. the redirect directive is classified, the content is expanded and parsed
   and the reference indices and category memberships are updated from the
   difference between the previous and the current parse
4. the revision is recorded and the page is stored
5. all dependent pages are re-rendered by the
   :py:class:`wikicore.propagation.PropagationEngine`

Each operation runs in a single database transaction.
"""

import datetime
import logging

from .exceptions import NonEmptyCategoryError, PageNotFoundError, ValidationError
from .indices import CategoryIndex, ReferenceIndex, TitleIndex
from .pages import FileInfo, Page, PageKind, PageStore, new_page_id
from .parser_helpers.title import canonicalize, get_title_parts, validate_title
from .parser_helpers.transclusions import TransclusionExpander
from .parser_helpers.wikilinks import extract_wikilinks
from .propagation import PropagationEngine
from .redirects import RedirectResolver
from .render import render_markdown, render_wikilinks
from .revisions import RevisionStore
from .special import SpecialLists

logger = logging.getLogger(__name__)

__all__ = ["Wiki"]


def _now():
    return datetime.datetime.now(datetime.UTC)

def _link_targets(wikilinks):
    return {(link.title, link.namespace) for link in wikilinks if not link.is_category}

def _missing_targets(wikilinks):
    return {(link.title, link.namespace) for link in wikilinks if not link.is_category and link.missing}


class Wiki:
    """
    :param wikicore.db.database.Database db: the database
    :param wikicore.config.WikiConfig config: the wiki configuration
    """

    def __init__(self, db, config):
        self.db = db
        self.config = config
        self.pages = PageStore(db)
        self.revisions = RevisionStore(db)
        self.links = ReferenceIndex(db, "links")
        self.redirects = ReferenceIndex(db, "redirects")
        self.transclusions = ReferenceIndex(db, "transclusions")
        self.missing_pages = ReferenceIndex(db, "missing_pages")
        self.titles = TitleIndex(db, self.links, self.missing_pages)
        self.categories = CategoryIndex(db)
        self.resolver = RedirectResolver(config, self.titles, self.pages)
        self.propagation = PropagationEngine(self.pages, self.links, self.redirects, self.transclusions,
                                             self.resolver, self.refresh)
        self.special = SpecialLists(self)

    # -------------------------------------------------------------------------
    # content processing
    # -------------------------------------------------------------------------

    def _is_missing(self, conn, title, namespace):
        page_id = self.titles.resolve(conn, title, namespace)
        if page_id is None:
            return True
        page = self.pages.get(conn, page_id)
        return page is not None and page.is_deleted

    def _get_content(self, conn, title, namespace):
        page = self.resolver.resolve(conn, title, namespace).page
        if page is None or page.is_deleted or page.is_redirect:
            raise ValueError(f"page [[{namespace}:{title}]] does not exist")
        return page.markdown

    def _expander(self, conn):
        if self.config.expander is not None:
            return self.config.expander
        return TransclusionExpander(self.config, lambda title, namespace: self._get_content(conn, title, namespace))

    def _renderer(self):
        return self.config.renderer or render_markdown

    def parse(self, conn, page):
        """
        Expand and parse the current markdown of the page.

        :returns: a tuple of the expanded markdown, the list of transclusions,
            the list of wiki links and the rendered HTML
        """
        def is_missing(title, namespace):
            return self._is_missing(conn, title, namespace)

        if page.is_redirect:
            target = "[[:{}:{}]]".format(page.redirect_namespace, page.redirect_title)
            markdown = "Redirect to " + target
            html = self._renderer()(render_wikilinks(markdown, self.config, is_missing))
            return markdown, [], [], html

        expanded, transclusions = self._expander(conn)(page.markdown, page.title, page.namespace)
        wikilinks = extract_wikilinks(expanded, self.config, is_missing)
        html = self._renderer()(render_wikilinks(expanded, self.config, is_missing))
        return expanded, list(transclusions), wikilinks, html

    def update_redirect(self, conn, page):
        """Classify the redirect directive and keep the redirects index in sync."""
        status = self.resolver.classify(conn, page.markdown)
        old = None
        if page.is_redirect and self.resolver.classify_target(conn, page.redirect_title, page.redirect_namespace).is_valid:
            old = (page.redirect_title, page.redirect_namespace)
        new = (status.title, status.namespace) if status.is_redirect and status.is_valid else None
        if old is not None and old != new:
            self.redirects.remove_reference(conn, old[0], old[1], page.id)
        if new is not None:
            self.redirects.add_reference(conn, new[0], new[1], page.id)
        page.redirect_namespace = status.namespace
        page.redirect_title = status.title
        page.is_broken_redirect = status.is_broken
        page.is_double_redirect = status.is_double

    def _update_categories(self, conn, page, wikilinks, editor):
        new = []
        for link in wikilinks:
            if link.is_category_membership and link.title not in new:
                new.append(link.title)
        for title in set(page.categories) - set(new):
            category_id = self.titles.lookup(conn, title, self.config.category_namespace)
            if category_id is not None:
                self.categories.remove_member(conn, category_id, page.id)
        for title in new:
            category_id = self.titles.lookup(conn, title, self.config.category_namespace)
            if category_id is None:
                category_id = self._create_category(conn, title, editor or page.owner or "")
            else:
                self._restore_category(conn, category_id)
            self.categories.add_member(conn, category_id, page.id)
        page.categories = new

    def _create_category(self, conn, title, editor):
        # membership is not a revision, the category page starts without content
        category = Page(new_page_id(), PageKind.CATEGORY, title, self.config.category_namespace,
                        timestamp=_now(), owner=editor)
        self.pages.store(conn, category)
        self.titles.create(conn, category.id, category.title, category.namespace)
        logger.info("Created category [[{}]]".format(category.full_title(self.config)))
        return category.id

    def _restore_category(self, conn, category_id):
        # a deleted category cannot have members, it is restored as an empty category
        category = self.pages.get(conn, category_id)
        if category is None or not category.is_deleted:
            return
        category.is_deleted = False
        self.pages.store(conn, category)
        logger.info("Restored category [[{}]]".format(category.full_title(self.config)))

    def refresh(self, conn, page, editor=None):
        """
        Re-parse and re-render the page, update the indices derived from its
        content and store it.
        """
        old_transclusions = {(t.title, t.namespace) for t in page.transclusions}
        old_links = _link_targets(page.wikilinks)
        old_missing = _missing_targets(page.wikilinks)

        _, transclusions, wikilinks, html = self.parse(conn, page)

        new_transclusions = {(t.title, t.namespace) for t in transclusions}
        for title, namespace in old_transclusions - new_transclusions:
            self.transclusions.remove_reference(conn, title, namespace, page.id)
        for title, namespace in new_transclusions - old_transclusions:
            self.transclusions.add_reference(conn, title, namespace, page.id)

        new_links = _link_targets(wikilinks)
        new_missing = _missing_targets(wikilinks)
        for title, namespace in old_links - new_links:
            self.links.remove_reference(conn, title, namespace, page.id)
        for title, namespace in old_missing - new_missing:
            self.missing_pages.remove_reference(conn, title, namespace, page.id)
        for title, namespace in new_links - old_links:
            self.links.add_reference(conn, title, namespace, page.id)
        for title, namespace in new_missing - old_missing:
            self.missing_pages.add_reference(conn, title, namespace, page.id)

        self._update_categories(conn, page, wikilinks, editor)
        page.transclusions = transclusions
        page.wikilinks = wikilinks
        page.html = html
        self.pages.store(conn, page)

    def _clear_content(self, conn, page):
        """Remove everything derived from the content of a page being deleted."""
        if page.is_redirect and self.resolver.classify_target(conn, page.redirect_title, page.redirect_namespace).is_valid:
            self.redirects.remove_reference(conn, page.redirect_title, page.redirect_namespace, page.id)
        for t in page.transclusions:
            self.transclusions.remove_reference(conn, t.title, t.namespace, page.id)
        for title, namespace in _link_targets(page.wikilinks):
            self.links.remove_reference(conn, title, namespace, page.id)
            self.missing_pages.remove_reference(conn, title, namespace, page.id)
        for title in page.categories:
            category_id = self.titles.lookup(conn, title, self.config.category_namespace)
            if category_id is not None:
                self.categories.remove_member(conn, category_id, page.id)
        page.markdown = ""
        page.html = ""
        page.transclusions = []
        page.wikilinks = []
        page.categories = []
        page.clear_redirect()
        page.is_deleted = True

    # -------------------------------------------------------------------------
    # validation
    # -------------------------------------------------------------------------

    def _namespace_for(self, kind, namespace):
        if kind is PageKind.CATEGORY:
            return self.config.category_namespace
        if kind is PageKind.FILE:
            return self.config.file_namespace
        namespace = canonicalize(namespace) if namespace and namespace.strip() else self.config.default_namespace
        if self.config.is_reserved(namespace):
            raise ValidationError(f"Articles cannot be created in the reserved namespace '{namespace}'.")
        return namespace

    def _check_timestamp(self, conn, page_id, timestamp):
        if timestamp is None:
            return _now()
        if timestamp.tzinfo is None:
            raise ValidationError("The timestamp must be timezone-aware.")
        latest = self.revisions.latest(conn, page_id)
        if latest is not None and timestamp < latest.timestamp:
            raise ValidationError("The timestamp is older than the latest revision of the page.")
        return timestamp

    # -------------------------------------------------------------------------
    # public operations
    # -------------------------------------------------------------------------

    def _create(self, kind, title, namespace, markdown, editor, comment=None, owner=None,
                file=None, page_id=None, timestamp=None):
        title = validate_title(title)
        namespace = self._namespace_for(kind, namespace)
        markdown = markdown or ""
        if kind is PageKind.ARTICLE and not markdown.strip():
            raise ValidationError("The content of a new article cannot be empty.")
        if not editor:
            raise ValidationError("The editor cannot be empty.")

        if page_id is not None:
            with self.db.engine.connect() as conn:
                existing = self.titles.lookup(conn, title, namespace)
            if existing == page_id:
                # the page already exists under this title
                return self.revise(page_id, editor, title=title, namespace=namespace, markdown=markdown,
                                   comment=comment, owner=owner, timestamp=timestamp)

        with self.db.engine.begin() as conn:
            page_id = page_id or new_page_id()
            self.titles.check(conn, page_id, title, namespace)
            if self.pages.get(conn, page_id) is not None:
                raise ValidationError(f"Page identifier '{page_id}' is already in use.")
            timestamp = self._check_timestamp(conn, page_id, timestamp)

            page = Page(page_id, kind, title, namespace, timestamp=timestamp, owner=owner or editor, file=file)
            self.pages.store(conn, page)
            self.titles.create(conn, page.id, title, namespace)

            if markdown.strip():
                page.markdown = markdown
                self.update_redirect(conn, page)
                self.revisions.record(conn, page.id, editor, title, namespace, None, markdown, comment, timestamp)
            self.refresh(conn, page, editor)
            logger.info("Created {} [[{}]]".format(kind.value, page.full_title(self.config)))

            self.propagation.propagate(conn, title, namespace, False, True, include_redirects=True,
                                       is_redirect=page.is_redirect, origin_id=page.id)
            return page

    def create_article(self, title, markdown, editor, namespace=None, comment=None, owner=None,
                       page_id=None, timestamp=None):
        """
        Create a new article.

        :param str title: the title of the article
        :param str markdown: the content, cannot be empty
        :param str editor: identifier of the editor
        :param str namespace: the namespace, defaults to the default namespace;
            reserved namespaces are not allowed
        :param str comment: the revision comment
        :param str owner: the owner of the page, defaults to the editor
        :param str page_id: explicit identifier of the page; if the title is
            already assigned to this identifier, the call is a revision
        :param datetime.datetime timestamp: time of the revision, defaults to now
        :raises ValidationError: on invalid input
        :raises TitleInUseError: if the title belongs to another page
        :returns: the created :py:class:`wikicore.pages.Page`
        """
        return self._create(PageKind.ARTICLE, title, namespace, markdown, editor, comment, owner,
                            page_id=page_id, timestamp=timestamp)

    def create_category(self, title, editor, markdown="", comment=None, owner=None, timestamp=None):
        """
        Create a category page. Its namespace is always the category namespace.
        """
        return self._create(PageKind.CATEGORY, title, None, markdown, editor, comment, owner, timestamp=timestamp)

    def create_file(self, title, path, size, mime_type, editor, markdown="", comment=None, owner=None, timestamp=None):
        """
        Create a file page. Its namespace is always the file namespace.

        :param str path: location of the file in the storage of the hosting application
        :param int size: size of the file in bytes
        :param str mime_type: MIME type of the file
        """
        if size is None or size < 0:
            raise ValidationError("The file size must be a non-negative integer.")
        if not path:
            raise ValidationError("The file path cannot be empty.")
        file = FileInfo(path, size, mime_type or "application/octet-stream")
        return self._create(PageKind.FILE, title, None, markdown, editor, comment, owner, file=file, timestamp=timestamp)

    def revise(self, page_id, editor, title=None, markdown=None, comment=None, namespace=None,
               is_deleted=False, owner=None, file=None, timestamp=None):
        """
        Record a new revision of a page.

        :param str page_id: identifier of the page
        :param str editor: identifier of the editor
        :param str title: the new title, ``None`` keeps the current title
        :param str markdown: the new content, ``None`` keeps the current
            content; an empty or whitespace-only content deletes the page
        :param str comment: the revision comment
        :param str namespace: the new namespace (articles only)
        :param bool is_deleted: delete the page
        :param str owner: the new owner, ``None`` keeps the current owner
        :param FileInfo file: new file metadata (files only)
        :param datetime.datetime timestamp: time of the revision, defaults to now
        :raises PageNotFoundError: if the page does not exist
        :raises ValidationError: on invalid input
        :raises TitleInUseError: if the new title belongs to another page
        :raises NonEmptyCategoryError: when deleting a category with members
        :returns: the revised :py:class:`wikicore.pages.Page`
        """
        if not editor:
            raise ValidationError("The editor cannot be empty.")

        with self.db.engine.begin() as conn:
            page = self.pages.get(conn, page_id)
            if page is None:
                raise PageNotFoundError(page_id)

            new_title = validate_title(title) if title is not None else page.title
            if namespace is not None and canonicalize(namespace) != page.namespace:
                if page.kind is not PageKind.ARTICLE:
                    raise ValidationError(f"The namespace of a {page.kind.value} cannot be changed.")
                new_namespace = self._namespace_for(page.kind, namespace)
            else:
                new_namespace = page.namespace
            if file is not None and page.kind is not PageKind.FILE:
                raise ValidationError("Only files have file metadata.")
            if markdown is None:
                markdown = page.markdown
            same_title = new_title == page.title and new_namespace == page.namespace
            if not same_title:
                self.titles.check(conn, page.id, new_title, new_namespace)

            # categories and files may be empty, articles cannot
            deleting = is_deleted or (page.kind is PageKind.ARTICLE and not markdown.strip())
            if deleting and page.kind is PageKind.CATEGORY and not page.is_deleted \
                    and self.categories.members(conn, page.id):
                raise NonEmptyCategoryError(page.full_title(self.config))
            timestamp = self._check_timestamp(conn, page.id, timestamp)

            previous_title = page.title
            previous_namespace = page.namespace
            previous_markdown = page.markdown
            was_deleted = page.is_deleted

            page.title = new_title
            page.namespace = new_namespace
            if deleting:
                if not page.is_deleted:
                    self._clear_content(conn, page)
            else:
                page.is_deleted = False

            if not same_title:
                # assigned first, links to the old title may still resolve to the page
                self.titles.create(conn, page.id, new_title, new_namespace)
                self.titles.remove(conn, previous_title, previous_namespace)

            changed = was_deleted != page.is_deleted or previous_markdown != markdown
            if not page.is_deleted and (changed or not same_title):
                page.markdown = markdown
                self.update_redirect(conn, page)
                self.refresh(conn, page, editor)

            if previous_markdown or page.markdown or self.revisions.latest(conn, page.id) is not None:
                self.revisions.record(conn, page.id, editor, new_title, new_namespace,
                                      previous_markdown, page.markdown, comment, timestamp)
            page.timestamp = timestamp
            if owner is not None:
                page.owner = owner
            if file is not None:
                page.file = file
            self.pages.store(conn, page)

            if page.is_deleted and not was_deleted:
                logger.info("Deleted [[{}]]".format(page.full_title(self.config)))
            elif not same_title:
                logger.info("Renamed [[{}:{}]] to [[{}]]".format(previous_namespace, previous_title,
                                                                 page.full_title(self.config)))
            else:
                logger.info("Revised [[{}]]".format(page.full_title(self.config)))

            self.propagation.propagate(conn, new_title, new_namespace, page.is_deleted, same_title,
                                       previous_title, previous_namespace, include_redirects=True,
                                       is_redirect=page.is_redirect, origin_id=page.id)
            return page

    def delete(self, page_id, editor, comment=None, timestamp=None):
        """
        Delete a page. The history is kept, a deletion revision is appended.

        :raises NonEmptyCategoryError: when deleting a category with members
        """
        return self.revise(page_id, editor, markdown="", comment=comment, is_deleted=True, timestamp=timestamp)

    def rename(self, page_id, editor, title, namespace=None, comment=None, timestamp=None):
        """Change the title (and namespace) of a page, keeping its content."""
        return self.revise(page_id, editor, title=title, namespace=namespace, comment=comment, timestamp=timestamp)

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    def _title_parts(self, title, namespace):
        if namespace is None:
            parts = get_title_parts(title, self.config)
            return parts.title, parts.namespace
        return canonicalize(title), canonicalize(namespace)

    def resolve(self, title, namespace=None, follow_redirects=True):
        """
        Resolve a title to a page following redirects.

        :param str title: the title, or the full title if ``namespace`` is ``None``
        :returns: a :py:class:`wikicore.redirects.Resolution`
        """
        title, namespace = self._title_parts(title, namespace)
        with self.db.engine.connect() as conn:
            return self.resolver.resolve(conn, title, namespace, follow_redirects)

    def get_page(self, title, namespace=None, no_redirect=False):
        """
        :returns: the :py:class:`wikicore.pages.Page` with the given title
            (after following redirects unless ``no_redirect`` is set), or
            ``None``
        """
        if title is None or not title.strip():
            return None
        return self.resolve(title, namespace, follow_redirects=not no_redirect).page

    def get_page_by_id(self, page_id):
        """
        :raises PageNotFoundError: if the page does not exist
        """
        with self.db.engine.connect() as conn:
            page = self.pages.get(conn, page_id)
        if page is None:
            raise PageNotFoundError(page_id)
        return page

    def category_members(self, category_id):
        """
        :returns: a dict mapping :py:class:`wikicore.pages.PageKind` to the
            list of member pages ordered by title
        """
        with self.db.engine.connect() as conn:
            ids = self.categories.members(conn, category_id)
            members = self.pages.select(conn, self.db.page.c.page_id.in_(ids)) if ids else []
        result = {kind: [] for kind in PageKind}
        for page in members:
            result[page.kind].append(page)
        return result

    def get_text_at(self, page_id, time=None):
        """
        Reconstruct the markdown of the page at the given time.

        :raises MalformedHistoryError: if the history cannot be reconstructed
        """
        with self.db.engine.connect() as conn:
            return self.revisions.text_at(conn, page_id, time)

    def get_html_at(self, page_id, time=None):
        """Render the markdown of the page as it was at the given time."""
        with self.db.engine.connect() as conn:
            page = self.pages.get(conn, page_id)
            if page is None:
                raise PageNotFoundError(page_id)
            text = self.revisions.text_at(conn, page_id, time)
            if not text:
                return ""
            expanded, _ = self._expander(conn)(text, page.title, page.namespace)
            return self._renderer()(render_wikilinks(expanded, self.config,
                                                     lambda t, ns: self._is_missing(conn, t, ns)))

    def get_diff(self, page_id, time=None, format="md"):
        """
        Render the changes made by the latest revision at or before ``time``.
        """
        with self.db.engine.connect() as conn:
            return self.revisions.diff_at(conn, page_id, time or _now(), format)

    def get_diff_with_current(self, page_id, time, format="md"):
        with self.db.engine.connect() as conn:
            return self.revisions.diff_with_current(conn, page_id, time, format)

    def get_diff_with_other(self, page_id, other_id, time=None, other_time=None, format="md"):
        with self.db.engine.connect() as conn:
            return self.revisions.diff_with_other(conn, page_id, other_id, time, other_time, format)

    def history(self, page_id, editor=None, start=None, end=None, page=1, page_size=50):
        """
        Return a page of the revision history, newest first. See
        :py:meth:`wikicore.revisions.RevisionStore.history`.
        """
        with self.db.engine.connect() as conn:
            return self.revisions.history(conn, page_id, editor=editor, start=start, end=end,
                                          page=page, page_size=page_size)

    def what_links_here(self, title, namespace=None, page=1, page_size=50):
        """
        List the pages linking to, transcluding or redirecting to the title.

        :returns: a :py:class:`wikicore.special.SpecialList` of
            :py:class:`wikicore.special.PageReference` items
        """
        title, namespace = self._title_parts(title, namespace)
        with self.db.engine.connect() as conn:
            return self.special.what_links_here(conn, title, namespace, page, page_size)

    def special_list(self, list_type, page=1, page_size=50, title=None, namespace=None):
        """
        Compute a page of a special list, see :py:class:`wikicore.special.SpecialListType`.
        """
        if title is not None:
            title, namespace = self._title_parts(title, namespace)
        with self.db.engine.connect() as conn:
            return self.special.get(conn, list_type, page, page_size, title, namespace)
