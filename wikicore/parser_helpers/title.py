#! /usr/bin/env python3

import re
from typing import NamedTuple

from ..exceptions import ValidationError

__all__ = [
    "TitleParts", "canonicalize", "to_wiki_title_case", "get_title_parts",
    "full_title", "validate_title",
]

# characters which cannot appear in a page title
ILLEGAL_TITLE_CHARS = "|[]{}<>#:"


class TitleParts(NamedTuple):
    namespace: str
    title: str
    # the text was prefixed with the talk namespace, e.g. "Talk:Foo"
    is_talk: bool
    # the namespace was not given explicitly in the text
    is_default_namespace: bool


def to_wiki_title_case(text):
    """
    Uppercase the first character of the text, leave the rest untouched.
    """
    if not text:
        return text
    return text[0].upper() + text[1:]

def canonicalize(title):
    """
    Return a canonical form of the title: underscores are replaced with spaces,
    leading and trailing whitespace is stripped, consecutive spaces are
    squashed and the first letter is capitalized.

    :param str title: text to be canonicalized
    :returns: canonicalized title (instance of :py:class:`str`)
    """
    title = title.replace("_", " ").strip()
    title = re.sub("( )+", r"\1", title)
    return to_wiki_title_case(title)

def get_title_parts(text, config):
    """
    Split a full title like ``Namespace:Title`` or ``Talk:Namespace:Title``
    into its parts.

    The first colon separates the namespace, a leading ``Talk:`` prefix is
    recorded in the ``is_talk`` flag. Texts without any colon are placed in the
    default namespace and an empty text refers to the main page.

    :param str text: the full title
    :param wikicore.config.WikiConfig config: the wiki configuration
    :returns: a :py:class:`TitleParts` tuple
    """
    is_talk = False
    is_default = False
    if text is None or not text.strip():
        return TitleParts(config.default_namespace, config.main_page_title, False, False)

    parts = [canonicalize(part) for part in text.split(":")]
    parts = [part for part in parts if part]
    if len(parts) > 2 and parts[0] == config.talk_namespace:
        is_talk = True
        namespace = parts[1]
        title = ":".join(parts[2:])
    elif len(parts) >= 2:
        namespace = parts[0]
        title = ":".join(parts[1:])
    else:
        namespace = config.default_namespace
        is_default = True
        title = parts[0] if parts else ""

    if not is_talk and namespace == config.talk_namespace:
        is_talk = True
        namespace = config.default_namespace
        is_default = True

    if not title:
        is_default = namespace != config.default_namespace
        namespace = config.default_namespace
        title = config.main_page_title
    elif not namespace:
        namespace = config.default_namespace
        is_default = True
    return TitleParts(namespace, title, is_talk, is_default)

def full_title(title, namespace, config):
    """
    Format the title for display, omitting the default namespace.
    """
    if namespace is None or namespace == config.default_namespace:
        return title
    return f"{namespace}:{title}"

def validate_title(title):
    """
    Canonicalize a title given to a mutating operation.

    :raises ValidationError: if the title is empty or contains illegal characters
    """
    title = canonicalize(title) if title is not None else ""
    if not title:
        raise ValidationError("The title cannot be empty.")
    for char in ILLEGAL_TITLE_CHARS:
        if char in title:
            raise ValidationError(f"The title '{title}' contains an illegal character: '{char}'")
    return title
