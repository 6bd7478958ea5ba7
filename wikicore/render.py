#! /usr/bin/env python3

"""
Default rendering of page content to HTML.

The HTML is not sanitized, a hosting application which accepts content from
untrusted editors must sanitize it on output.
"""

import html

import mistune

from .parser_helpers.encodings import urlencode
from .parser_helpers.wikilinks import link_target, replace_wikilinks

__all__ = ["render_markdown", "render_wikilinks"]

_markdown = mistune.create_markdown(
    renderer=mistune.HTMLRenderer(escape=False),
    plugins=["table", "strikethrough", "url"],
)

def render_markdown(markdown):
    """
    Render markdown to HTML with tables, strikethrough and bare URLs enabled.
    """
    return _markdown(markdown or "")

def render_wikilinks(markdown, config, is_missing=None):
    """
    Replace wiki links in the markdown with HTML anchors.

    Category links which put the page into a category are removed from the
    text, missing targets get the ``wiki-link-missing`` class.
    """
    def to_anchor(link):
        if link.is_category_membership:
            return ""
        href = "/{}/{}".format(config.wiki_link_prefix, urlencode(link_target(link, config)))
        if link.anchor:
            href += "#" + urlencode(link.anchor)
        classes = "wiki-link"
        if link.missing:
            classes += " wiki-link-missing"
        return '<a href="{}" class="{}">{}</a>'.format(html.escape(href), classes, html.escape(link.display or link.title))
    return replace_wikilinks(markdown, config, to_anchor, is_missing)
