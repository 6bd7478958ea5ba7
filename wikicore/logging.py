#! /usr/bin/env python3

"""
Terminal logging for the :py:mod:`wikicore` modules.

All modules create their loggers with ``logging.getLogger(__name__)``, so the
verbosity of the whole package can be tuned via the ``wikicore`` logger. The
engine logs page creation, revisions and renames at the ``info`` level, index
mutations and propagation steps at the ``debug`` level and recoverable
inconsistencies (redirect cycles, stale references) at the ``warning`` level.
"""

import collections
import logging

import colorlog

__all__ = ["setTerminalLogging", "set_argparser", "init"]

LOG_LEVELS = collections.OrderedDict((
    ("debug", logging.DEBUG),
    ("info", logging.INFO),
    ("warning", logging.WARNING),
    ("error", logging.ERROR),
    ("critical", logging.CRITICAL),
))

LOG_COLORS = {
    "DEBUG":    "cyan",
    "INFO":     "green",
    "WARNING":  "yellow",
    "ERROR":    "bold_red",
    "CRITICAL": "bold_red",
}

def setTerminalLogging(stream=None):
    """
    Attach a colored console handler to the root logger.

    :param stream: passed to :py:class:`logging.StreamHandler` (defaults to
        ``sys.stderr``)
    :returns: the root logger
    """
    handler = logging.StreamHandler(stream)

    formatter = colorlog.ColoredFormatter(
        "{log_color}{levelname:8}{reset} {message_log_color}{message}",
        datefmt=None,
        reset=True,
        log_colors=LOG_COLORS,
        secondary_log_colors={
            "message": {
                "ERROR":    "bold_white",
                "CRITICAL": "bold_white",
            },
        },
        style="{",
    )
    handler.setFormatter(formatter)

    logger = logging.getLogger()
    # avoid duplicate output when init() is called repeatedly
    for h in list(logger.handlers):
        if isinstance(h.formatter, colorlog.ColoredFormatter):
            logger.removeHandler(h)
    logger.addHandler(handler)

    return logger

def set_argparser(argparser):
    """
    Add arguments for configuring global logging values to an instance of
    :py:class:`argparse.ArgumentParser`.

    This function is called internally from the :py:mod:`wikicore.config` module.

    :param argparser: an instance of :py:class:`argparse.ArgumentParser`
    """
    argparser.add_argument("--log-level", action="store", choices=LOG_LEVELS.keys(), default="info",
            help="the verbosity level for terminal logging (default: %(default)s)")
    argparser.add_argument("-d", "--debug", action="store_const", const="debug", dest="log_level",
            help="shortcut for '--log-level debug'")
    argparser.add_argument("-q", "--quiet", action="store_const", const="warning", dest="log_level",
            help="shortcut for '--log-level warning'")

def init(args):
    """
    Initialize the :py:mod:`logging` module with the arguments parsed by
    :py:class:`argparse.ArgumentParser`.

    :param args:
        an instance of :py:class:`argparse.Namespace`. It is expected that
        :py:func:`set_argparser()` was called prior to parsing the arguments.
    """
    logger = logging.getLogger()
    logger.setLevel(LOG_LEVELS[args.log_level])

    # SQL echo is too noisy even for --debug
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    setTerminalLogging()
