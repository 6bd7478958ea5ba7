#! /usr/bin/env python3

import mwparserfromhell
from mwparserfromhell.nodes.template import Template

from .title import get_title_parts

__all__ = ["is_redirect", "parse_redirect"]

def get_redirect_directive(markdown):
    """
    Return the ``{{redirect|Target}}`` template node if the markdown starts
    with it (the name is case-insensitive), otherwise ``None``.
    """
    if not markdown:
        return None
    wikicode = mwparserfromhell.parse(markdown)
    if not wikicode.nodes:
        return None
    node = wikicode.nodes[0]
    if not isinstance(node, Template) or node.name.strip().lower() != "redirect":
        return None
    if not node.has(1) or not node.get(1).value.strip():
        return None
    return node

def is_redirect(markdown):
    """
    Checks if the markdown represents a redirect page, i.e. it starts with
    the ``{{redirect|Target}}`` directive.
    """
    return get_redirect_directive(markdown) is not None

def parse_redirect(markdown, config):
    """
    Parse the target of the redirect directive.

    :returns: a :py:class:`wikicore.parser_helpers.title.TitleParts` tuple or
        ``None`` if the markdown is not a redirect
    """
    directive = get_redirect_directive(markdown)
    if directive is None:
        return None
    return get_title_parts(str(directive.get(1).value), config)
