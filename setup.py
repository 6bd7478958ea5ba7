#! /usr/bin/env python3

from setuptools import setup, find_packages

import wikicore

setup(
    name = "wiki-core",
    version = wikicore.__version__,
    packages = find_packages(exclude=["tests", "tests.*"]),
    python_requires = ">=3.11",
    install_requires = [
        "sqlalchemy>=2.0",
        "colorlog",
        "mistune>=3.0",
        "mwparserfromhell",
        "diff-match-patch",
    ],
    extras_require = {
        "postgresql": ["psycopg"],
        "test": ["pytest"],
    },
)
