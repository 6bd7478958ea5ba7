#! /usr/bin/env python3

import logging
import sys

import wikicore.config
from wikicore.config import WikiConfig
from wikicore.db.database import Database
from wikicore.maintenance import check, rebuild
from wikicore.wiki import Wiki

logger = logging.getLogger(__name__)


def main(argv=None):
    argparser = wikicore.config.getArgParser(prog="python -m wikicore",
                                             description="Maintenance of the wiki database")
    Database.set_argparser(argparser)
    WikiConfig.set_argparser(argparser)
    argparser.add_argument("action", choices=["check", "rebuild"],
            help="'check' reports indices which disagree with the content of the pages, "
                 "'rebuild' recomputes all indices from the content")

    args = wikicore.config.parse_args(argparser, section="maintenance", argv=argv)

    db = Database.from_argparser(args)
    wiki = Wiki(db, WikiConfig.from_argparser(args))

    if args.action == "check":
        discrepancies = check(wiki)
        for d in discrepancies:
            print("{}\t{}\t{}:{}\t{}".format(d.problem, d.index, d.namespace, d.title, d.page_id))
        return 1 if discrepancies else 0
    rebuild(wiki)
    return 0


if __name__ == "__main__":
    sys.exit(main())
