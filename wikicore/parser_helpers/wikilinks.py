#! /usr/bin/env python3

import re
from dataclasses import asdict, dataclass, field

import mwparserfromhell

from .title import full_title, get_title_parts

__all__ = ["WikiLink", "parse_wikilink", "extract_wikilinks", "replace_wikilinks"]

# interwiki prefixes which are rendered but never indexed
EXTERNAL_PREFIXES = ("w:", "cc:")


@dataclass(frozen=True)
class WikiLink:
    """
    A wiki link found in the content of a page.

    Links compare by value. The ``missing`` flag reflects the state of the
    target at the time of the parse, it is not history.
    """
    title: str
    namespace: str
    is_category: bool = False
    is_talk: bool = False
    is_namespace_escaped: bool = False
    missing: bool = False
    # presentation only
    display: str | None = field(default=None, compare=False)
    anchor: str | None = field(default=None, compare=False)

    @property
    def is_category_membership(self):
        """Whether the link puts the page into a category."""
        return self.is_category and not self.is_namespace_escaped

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(klass, d):
        return klass(**d)


def _pipe_trick(target):
    # [[Namespace:Foo (bar)|]] is displayed as "Foo"
    text = target.lstrip(":")
    text = text.rsplit(":", maxsplit=1)[-1]
    text = text.split("#", maxsplit=1)[0]
    return re.sub(r"\s*\([^)]*\)\s*$", "", text).strip()

def parse_wikilink(wikilink, config, is_missing=None):
    """
    Classify a wiki link node.

    :param wikilink: a :py:class:`mwparserfromhell.nodes.wikilink.Wikilink` node
    :param wikicore.config.WikiConfig config: the wiki configuration
    :param is_missing:
        callback ``is_missing(title, namespace) -> bool`` deciding whether the
        target currently resolves; ``None`` means that no link is missing
    :returns: a :py:class:`WikiLink` or ``None`` for links which are not
        indexed (interwiki and same-page anchors)
    """
    target = str(wikilink.title).strip()
    if target.lower().startswith(EXTERNAL_PREFIXES):
        return None
    main, _, anchor = target.partition("#")
    if not main.strip(":").strip():
        return None

    if wikilink.text is None:
        display = target.lstrip(":")
    elif not str(wikilink.text).strip():
        display = _pipe_trick(target)
    else:
        display = str(wikilink.text)

    is_escaped = target.startswith(":")
    parts = get_title_parts(main, config)
    namespace = parts.namespace
    is_category = config.is_category_namespace(namespace)
    if is_category:
        namespace = config.category_namespace
        missing = False
    else:
        missing = bool(is_missing(parts.title, namespace)) if is_missing is not None else False
    return WikiLink(
        title=parts.title,
        namespace=namespace,
        is_category=is_category,
        is_talk=parts.is_talk,
        is_namespace_escaped=is_category and is_escaped,
        missing=missing,
        display=display.strip(),
        anchor=anchor.strip() or None,
    )

def extract_wikilinks(markdown, config, is_missing=None):
    """
    Return the list of distinct wiki links in the markdown, in order of their
    first occurrence. Links nested in other markup (e.g. in tags or in the
    arguments of transclusions) are included.
    """
    links = []
    seen = set()
    wikicode = mwparserfromhell.parse(markdown or "")
    for wl in wikicode.ifilter_wikilinks(recursive=True):
        link = parse_wikilink(wl, config, is_missing)
        if link is None or link in seen:
            continue
        seen.add(link)
        links.append(link)
    return links

def replace_wikilinks(markdown, config, replacement_func, is_missing=None):
    """
    Substitute every wiki link in the markdown.

    :param replacement_func:
        called as ``replacement_func(link)`` for each parsed link, returns the
        replacement text
    """
    wikicode = mwparserfromhell.parse(markdown or "")
    for wl in wikicode.filter_wikilinks(recursive=True):
        link = parse_wikilink(wl, config, is_missing)
        if link is None:
            # leave interwiki links as plain text
            replacement = str(wl.text) if wl.text else str(wl.title)
        else:
            replacement = replacement_func(link)
        try:
            wikicode.replace(wl, replacement)
        except ValueError:
            # links nested in the text of a previously replaced link
            pass
    return str(wikicode)

def link_target(link, config):
    """Return the full title of the link target, including the talk prefix."""
    title = full_title(link.title, link.namespace, config)
    if link.is_talk:
        title = f"{config.talk_namespace}:{title}"
    return title
