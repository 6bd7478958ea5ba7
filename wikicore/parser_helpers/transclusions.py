#! /usr/bin/env python3

import itertools
import logging
from dataclasses import asdict, dataclass

import mwparserfromhell
from mwparserfromhell.nodes.template import Template

from .title import full_title, get_title_parts

logger = logging.getLogger(__name__)

__all__ = [
    "Transclusion", "MagicWords", "get_argument", "prepare_content_for_rendering",
    "prepare_content_for_transclusion", "TransclusionExpander",
]

# maximum nesting of transcluded pages
MAX_DEPTH = 40


@dataclass(frozen=True)
class Transclusion:
    """A page embedded in another page, compared by value."""
    title: str
    namespace: str

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(klass, d):
        return klass(**d)


class MagicWords:
    """
    Variables describing the page being rendered, e.g. ``{{PAGENAME}}``.
    """
    VARIABLES = {"PAGENAME", "NAMESPACE", "FULLPAGENAME", "SITENAME"}

    def __init__(self, title, namespace, config):
        self.title = title
        self.namespace = namespace
        self.config = config

    @classmethod
    def is_magic_word(klass, name):
        return name in klass.VARIABLES

    def get_replacement(self, name):
        if name == "PAGENAME":
            return self.title
        elif name == "NAMESPACE":
            return self.namespace
        elif name == "FULLPAGENAME":
            return full_title(self.title, self.namespace, self.config)
        elif name == "SITENAME":
            return self.config.site_name


def parented_templates(wikicode):
    """
    Iterate over ``(parent, template)`` pairs of the templates in the
    wikicode, not descending into the templates themselves. ``parent`` is the
    wikicode directly holding the template, so that the template can be
    replaced without searching the whole tree.
    """
    def getter(node):
        for parent, child in wikicode._get_children(node, contexts=True, restrict=Template, parent=wikicode):
            if isinstance(child, Template):
                yield parent, child
    return itertools.chain(*(getter(n) for n in wikicode.nodes))

def get_argument(template, name):
    """
    Return the value of the argument ``name`` of the template as a string, or
    ``None`` if the argument is not given. Values of named arguments are
    stripped, values of positional arguments are not.
    """
    if not template.has(name):
        return None
    param = template.get(name)
    if param.showkey:
        return param.value.strip()
    return str(param.value)

def prepare_content_for_rendering(wikicode):
    """
    Handle the partial transclusion tags for displaying the page itself:
    ``<includeonly>`` sections are dropped, ``<noinclude>`` and
    ``<onlyinclude>`` tags are removed but their content is kept.

    :param wikicode: a :py:class:`mwparserfromhell.wikicode.Wikicode` object
    :returns: ``None``, the wikicode is modified in place.
    """
    for tag in wikicode.filter_tags(recursive=True):
        name = str(tag.tag).strip().lower()
        try:
            if name == "includeonly":
                wikicode.remove(tag)
            elif name in {"noinclude", "onlyinclude"}:
                wikicode.replace(tag, tag.contents)
        except ValueError:
            # nested in a tag which was already removed
            pass

def prepare_content_for_transclusion(wikicode, template):
    """
    Prepare the content of a transcluded page:

    - if there is an ``<onlyinclude>`` section anywhere, only the content of
      such sections is kept
    - ``<noinclude>`` sections are dropped, ``<includeonly>`` tags are removed
    - parameters (``{{{1}}}``, ``{{{name|default}}}``) are substituted with
      the arguments of the template; parameters without an argument and a
      default are left verbatim

    :param wikicode: the content of the transcluded page as a
        :py:class:`mwparserfromhell.wikicode.Wikicode` object
    :param template: the :py:class:`mwparserfromhell.nodes.template.Template`
        node holding the arguments
    :returns: ``None``, the wikicode is modified in place.
    """
    only = [tag for tag in wikicode.filter_tags(recursive=True)
            if str(tag.tag).strip().lower() == "onlyinclude"]
    if only:
        wikicode.nodes = [node for tag in only for node in tag.contents.nodes]

    for tag in wikicode.filter_tags(recursive=True):
        name = str(tag.tag).strip().lower()
        try:
            if name == "noinclude":
                wikicode.remove(tag)
            elif name == "includeonly":
                wikicode.replace(tag, tag.contents)
        except ValueError:
            # nested in a tag which was already removed
            pass

    def substitute(wikicode, substituted_args):
        for arg in wikicode.filter_arguments(recursive=wikicode.RECURSE_OTHERS):
            # nested names like {{{ {{{1}}} |foo }}}
            substitute(arg.name, substituted_args)
            value = get_argument(template, str(arg.name).strip())
            if value is None and arg.default is not None:
                # nested defaults like {{{a| {{{b| {{{c|}}} }}} }}}
                key = str(arg)
                if key not in substituted_args:
                    substituted_args.add(key)
                    substitute(arg.default, substituted_args)
                    substituted_args.remove(key)
                value = arg.default
            if value is not None:
                wikicode.replace(arg, value)

    substitute(wikicode, set())


class TransclusionExpander:
    """
    Recursively expands all ``{{transclusions}}`` in the markdown of a page.

    A bare title refers to the transclusion namespace, ``{{:Title}}`` or
    ``{{Namespace:Title}}`` address the page explicitly. A missing page is
    replaced with a wiki link to it, a transclusion loop with an error
    message. The ``{{redirect|...}}`` directive is left untouched.

    :param wikicore.config.WikiConfig config: the wiki configuration
    :param content_getter_func:
        A callback function which should return the markdown of a transcluded
        page. It is called as ``content_getter_func(title, namespace)`` and
        should raise :py:exc:`ValueError` if the requested page does not exist.
    """

    def __init__(self, config, content_getter_func):
        self.config = config
        self.content_getter_func = content_getter_func

    def get_target(self, name):
        parts = get_title_parts(name, self.config)
        if parts.is_default_namespace and not name.lstrip().startswith(":"):
            return parts.title, self.config.transclusion_namespace
        return parts.title, parts.namespace

    def __call__(self, markdown, title, namespace):
        """
        :param str markdown: the content of the page
        :param str title: the title of the page (for loop detection and magic words)
        :param str namespace: the namespace of the page
        :returns: a tuple of the expanded markdown and the list of
            :py:class:`Transclusion` records found directly in the content
        """
        transclusions = []
        wikicode = mwparserfromhell.parse(markdown or "")
        prepare_content_for_rendering(wikicode)
        self._expand(wikicode, title, namespace, [(namespace, title)], transclusions)
        return str(wikicode), transclusions

    def _expand(self, wikicode, title, namespace, stack, transclusions):
        magic = MagicWords(title, namespace, self.config)

        for parent, template in parented_templates(wikicode):
            # {{ {{foo}} }}: the name has to be expanded first
            self._expand(template.name, title, namespace, stack, transclusions)
            name = template.name.strip()
            if name.lower() == "redirect":
                continue
            # arguments are expanded in the context of the calling page
            for param in template.params:
                self._expand(param.value, title, namespace, stack, transclusions)

            if MagicWords.is_magic_word(name):
                parent.replace(template, magic.get_replacement(name), recursive=False)
                continue

            target_title, target_namespace = self.get_target(name)
            if len(stack) == 1:
                record = Transclusion(target_title, target_namespace)
                if record not in transclusions:
                    transclusions.append(record)

            target_full = full_title(target_title, target_namespace, self.config)
            if (target_namespace, target_title) in stack:
                logger.debug("Transclusion loop detected on page [[{}]]: {}".format(title, target_full))
                content = "<span class=\"error\">Transclusion loop detected: [[{}]]</span>".format(target_full)
            elif len(stack) > MAX_DEPTH:
                logger.warning("Transclusion depth limit reached on page [[{}]]".format(title))
                content = "<span class=\"error\">Transclusion depth limit reached: [[{}]]</span>".format(target_full)
            else:
                try:
                    text = self.content_getter_func(target_title, target_namespace)
                except ValueError:
                    # missing pages are rendered as a link to the page
                    parent.replace(template, "[[{}]]".format(target_full), recursive=False)
                    continue
                content = mwparserfromhell.parse(text)
                prepare_content_for_transclusion(content, template)
                self._expand(content, title, namespace, stack + [(target_namespace, target_title)], transclusions)

            parent.replace(template, content, recursive=False)
