import argparse
import configparser
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Self, TypeVar

import wikicore.logging

logger = logging.getLogger(__name__)

__all__ = [
    "ConfigurableObject",
    "ConfigParser",
    "WikiConfig",
    "argtype_config",
    "getArgParser",
    "parse_args",
    "object_from_argparser",
]

PROJECT_NAME = "wiki-core"
CONFIG_DIR = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config/"))
CONFIG_DIR = os.path.join(CONFIG_DIR, PROJECT_NAME)
DEFAULT_CONF = "default"


class ConfigurableObject(ABC):
    @classmethod
    @abstractmethod
    def set_argparser(cls: type[Self], argparser: argparse.ArgumentParser) -> None:
        """
        Abstract method to add arguments for constructing an instance to an
        :py:class:`argparse.ArgumentParser`.
        """
        ...

    @classmethod
    @abstractmethod
    def from_argparser(cls: type[Self], args: argparse.Namespace) -> Self:
        """
        Abstract factory method to create an instance from
        :py:class:`argparse.Namespace`.
        """
        ...


T = TypeVar("T", bound=ConfigurableObject)


@dataclass
class WikiConfig(ConfigurableObject):
    """
    Wiki-wide settings threaded explicitly into every component of the engine.

    Two collaborators can be injected:

    - ``renderer``: ``render(markdown) -> html``. When ``None``, the default
      :py:func:`wikicore.render.render_markdown` is used.
    - ``expander``: ``expand(markdown, title, namespace) -> (markdown, transclusions)``.
      When ``None``, :py:class:`wikicore.parser_helpers.transclusions.TransclusionExpander`
      bound to the database is used.
    """

    site_name: str = "A Wiki"
    main_page_title: str = "Main"
    default_namespace: str = "Wiki"
    category_namespace: str = "Category"
    file_namespace: str = "File"
    talk_namespace: str = "Talk"
    transclusion_namespace: str = "Transclusion"
    script_namespace: str = "Script"
    # link target of rendered wiki links: /{prefix}/{full title}
    wiki_link_prefix: str = "wiki"
    reserved_namespaces: list[str] | None = None
    renderer: Callable[[str], str] | None = field(default=None, repr=False, compare=False)
    expander: Callable[[str, str, str], tuple[str, list]] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.default_namespace.strip():
            raise ValueError("the default namespace cannot be empty")
        if self.reserved_namespaces is None:
            self.reserved_namespaces = ["Special", "System"]

    def is_reserved(self, namespace: str) -> bool:
        """
        Articles cannot be created in reserved namespaces. The category, file
        and talk namespaces are always reserved.
        """
        reserved = [self.category_namespace, self.file_namespace, self.talk_namespace, *(self.reserved_namespaces or [])]
        return namespace.lower() in {ns.lower() for ns in reserved}

    def is_category_namespace(self, namespace: str | None) -> bool:
        return namespace is not None and namespace.lower() == self.category_namespace.lower()

    def is_file_namespace(self, namespace: str | None) -> bool:
        return namespace is not None and namespace.lower() == self.file_namespace.lower()

    @classmethod
    def set_argparser(cls, argparser: argparse.ArgumentParser) -> None:
        group = argparser.add_argument_group(title="Wiki parameters")
        group.add_argument("--wiki-site-name", metavar="NAME", default=cls.site_name,
                help="name of the wiki (default: %(default)s)")
        group.add_argument("--wiki-main-page", metavar="TITLE", default=cls.main_page_title,
                help="title of the main page (default: %(default)s)")
        group.add_argument("--wiki-default-namespace", metavar="NS", default=cls.default_namespace,
                help="namespace of pages without a namespace prefix (default: %(default)s)")
        group.add_argument("--wiki-category-namespace", metavar="NS", default=cls.category_namespace,
                help="namespace of category pages (default: %(default)s)")
        group.add_argument("--wiki-file-namespace", metavar="NS", default=cls.file_namespace,
                help="namespace of file pages (default: %(default)s)")
        group.add_argument("--wiki-talk-namespace", metavar="NS", default=cls.talk_namespace,
                help="prefix of discussion links (default: %(default)s)")
        group.add_argument("--wiki-transclusion-namespace", metavar="NS", default=cls.transclusion_namespace,
                help="namespace of bare {{transclusions}} (default: %(default)s)")
        group.add_argument("--wiki-script-namespace", metavar="NS", default=cls.script_namespace,
                help="namespace of script pages (default: %(default)s)")
        group.add_argument("--wiki-reserved-namespaces", metavar="NS", nargs="+",
                help="additional namespaces in which articles cannot be created (default: Special System)")
        group.add_argument("--wiki-link-prefix", metavar="PREFIX", default=cls.wiki_link_prefix,
                help="URL path prefix of rendered wiki links (default: %(default)s)")

    @classmethod
    def from_argparser(cls, args: argparse.Namespace) -> "WikiConfig":
        return cls(
            site_name=args.wiki_site_name,
            main_page_title=args.wiki_main_page,
            default_namespace=args.wiki_default_namespace,
            category_namespace=args.wiki_category_namespace,
            file_namespace=args.wiki_file_namespace,
            talk_namespace=args.wiki_talk_namespace,
            transclusion_namespace=args.wiki_transclusion_namespace,
            script_namespace=args.wiki_script_namespace,
            reserved_namespaces=args.wiki_reserved_namespaces,
            wiki_link_prefix=args.wiki_link_prefix,
        )


class ConfigParser(configparser.ConfigParser):
    """
    Reader of the INI-style config files. Values starting with ``[`` are parsed
    as JSON lists, everything else is passed to :py:mod:`argparse` verbatim.
    """

    def __init__(self, configfile: str | Path, **kwargs: Any):
        kwargs.setdefault("interpolation", configparser.ExtendedInterpolation())
        super().__init__(**kwargs)
        assert configfile is not None
        self.configfile = configfile

    def fetch_section(
        self, section: str | None = None, to_list: bool = True
    ) -> dict[str, str | list[str]] | list[str]:
        """
        Fetches a specific section from the config file.

        :param str section: section name, defaults to the name of the running script
        :param bool to_list: return command-line style arguments instead of a dict
        """
        with open(self.configfile) as f:
            self.read_file(f)

        if section is None:
            section, _ = os.path.splitext(os.path.basename(sys.argv[0]))
        if not self.has_section(section):
            section = configparser.DEFAULTSECT

        option_dict: dict[str, str | list[str]] = {}
        for key, value_str in self.items(section):
            if len(key) == 1:
                raise argparse.ArgumentTypeError(f"short options are not allowed in a config file: '{key}'")
            value_str = value_str.strip()
            if value_str.startswith("["):
                option_dict[key] = [str(item) for item in json.loads(value_str)]
            else:
                option_dict[key] = value_str

        if to_list is False:
            return option_dict
        option_list = []
        for key, value in option_dict.items():
            option_list.append("--" + key)
            if isinstance(value, list):
                option_list.extend(value)
            else:
                option_list.append(value)
        return option_list

    @staticmethod
    def set_argparser(argparser: argparse.ArgumentParser) -> None:
        group = argparser.add_mutually_exclusive_group()
        group.add_argument("-c", "--config", type=argtype_config, metavar="PATH_OR_NAME", default=DEFAULT_CONF,
                help=f"path to the config file, or a base file name for config files looked up as {CONFIG_DIR}/<name>.conf (default: %(default)s)")
        group.add_argument("--no-config", dest="config", const=None, action="store_const",
                help="do not read any config file")


def argtype_config(string: str | Path) -> str | None:
    """
    Compute config filepath and check its existence.
    """
    dirname = os.path.dirname(string)
    _, ext = os.path.splitext(os.path.basename(string))

    # configuration name was specified
    if not dirname and ext != ".conf":
        path = os.path.join(CONFIG_DIR, str(string) + ".conf")
    elif ext != ".conf":
        raise argparse.ArgumentTypeError(f"config filename must end with '.conf' suffix: '{string}'")
    else:
        path = os.path.abspath(os.path.expanduser(string))

    if not os.path.exists(path):
        if string == DEFAULT_CONF:
            return None
        raise argparse.ArgumentTypeError(f"file does not exist: '{path}'")
    return path


def getArgParser(**kwargs: Any) -> argparse.ArgumentParser:
    """
    Create an instance of :py:class:`argparse.ArgumentParser` with the global
    arguments (config file and logging) already set.

    :param kwargs: passed to :py:class:`argparse.ArgumentParser()` constructor.
    """
    kwargs.setdefault("formatter_class", argparse.RawDescriptionHelpFormatter)
    kwargs.setdefault("allow_abbrev", False)
    msg = (
        "\n\nArgs that start with '--' can also be set in a config file (specified via -c)."
        " Command-line values override config file values which override defaults."
    )
    kwargs["description"] = kwargs.get("description", "") + msg

    ap = argparse.ArgumentParser(**kwargs)
    ConfigParser.set_argparser(ap)
    wikicore.logging.set_argparser(ap)
    return ap


def parse_args(
    argparser: argparse.ArgumentParser,
    section: str | None = None,
    argv: list[str] | None = None,
) -> argparse.Namespace:
    """
    Parses arguments given on the command line as well as in the config file
    and initializes logging with :py:func:`wikicore.logging.init`.

    :param argparser: a parser created by :py:func:`getArgParser`
    :param str section: the section of the config file to read
    :param argv: the command-line arguments (defaults to ``sys.argv[1:]``)
    """
    conf_ap = argparse.ArgumentParser(add_help=False)
    ConfigParser.set_argparser(conf_ap)

    cli_args = sys.argv[1:] if argv is None else argv
    config_args: list[str] = []
    args = argparse.Namespace()

    conf_ap.parse_known_args(cli_args, namespace=args)

    if args.config is not None:
        cfp = ConfigParser(args.config)
        config_args += cfp.fetch_section(section)

    # config file values go first so that the command line overrides them
    _, remainder = argparser.parse_known_args(config_args + cli_args, namespace=args)
    unrecognized = [item for item in remainder if item.startswith("-") and item in cli_args]
    if unrecognized:
        argparser.error(f"unrecognized arguments: {' '.join(unrecognized)}")

    wikicore.logging.init(args)
    logger.debug(f"Parsed arguments:\n{args}")

    return args


def object_from_argparser(cls: type[T], section: str | None = None, argv: list[str] | None = None, **kwargs: Any) -> T:
    """
    Create an instance of ``cls`` using its :py:meth:`cls.from_argparser()`
    factory.

    :param cls: the class to instantiate
    :param str section: passed to :py:func:`parse_args`
    :param argv: passed to :py:func:`parse_args`
    :param kwargs: passed to :py:func:`getArgParser`
    """
    ap = getArgParser(**kwargs)
    cls.set_argparser(ap)
    args = parse_args(ap, section, argv)
    return cls.from_argparser(args)
