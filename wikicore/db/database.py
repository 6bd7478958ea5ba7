#! /usr/bin/env python3

"""
Prerequisites:

1. Either a pre-configured PostgreSQL database with a separate database and
   user account, or an SQLite database file (``sqlite:///path/to/wiki.db``).
   In-memory SQLite databases are suitable for tests.
2. For PostgreSQL, one of the drivers supported by sqlalchemy, e.g. psycopg.
"""

import logging

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite

from . import schema

logger = logging.getLogger(__name__)

__all__ = ["Database"]


class Database:
    """
    :param engine_or_url:
        either an existing :py:class:`sqlalchemy.engine.Engine` instance or a
        :py:class:`str` or :py:class:`sqlalchemy.engine.URL` for
        :py:func:`sqlalchemy.create_engine`
    """

    supported_dialects = {"postgresql", "sqlite"}

    def __init__(self, engine_or_url):
        if isinstance(engine_or_url, sa.engine.Engine):
            self.engine = engine_or_url
        else:
            self.engine = sa.create_engine(engine_or_url, echo=False)

        if self.engine.dialect.name not in self.supported_dialects:
            raise ValueError(f"Unsupported database dialect: {self.engine.dialect.name}")

        self.metadata = sa.MetaData()
        schema.create_tables(self.metadata)
        self.metadata.create_all(self.engine)

    @staticmethod
    def set_argparser(argparser):
        """
        Add arguments for constructing a :py:class:`Database` object to an
        instance of :py:class:`argparse.ArgumentParser`.

        See also the :py:mod:`wikicore.config` module.

        :param argparser: an instance of :py:class:`argparse.ArgumentParser`
        """
        group = argparser.add_argument_group(title="Database parameters")
        group.add_argument("--db-dialect", metavar="DIALECT", choices=sorted(Database.supported_dialects), default="postgresql",
                help="an SQL dialect (default: %(default)s)")
        group.add_argument("--db-driver", metavar="DRIVER",
                help="a driver for given SQL dialect supported by sqlalchemy (default: %(default)s)")
        group.add_argument("--db-user", metavar="USER",
                help="username for database connection (default: %(default)s)")
        group.add_argument("--db-password", metavar="PASSWORD",
                help="password for database connection (default: %(default)s)")
        group.add_argument("--db-host", metavar="HOST",
                help="hostname of the database server (default: %(default)s)")
        group.add_argument("--db-port", metavar="PORT", type=int,
                help="port on which the database server listens (default: %(default)s)")
        group.add_argument("--db-name", metavar="DATABASE",
                help="name of the database, or path to the database file for SQLite (default: %(default)s)")

    @classmethod
    def from_argparser(klass, args):
        """
        Construct a :py:class:`Database` object from arguments parsed by
        :py:class:`argparse.ArgumentParser`.

        :param args:
            an instance of :py:class:`argparse.Namespace`. It is assumed that it
            contains the arguments set by :py:meth:`Database.set_argparser`.
        :returns: an instance of :py:class:`Database`
        """
        # PostgreSQL defaults to dbname equal to the username, which may not be intended
        if args.db_name is None:
            raise ValueError("Cannot create database connection: db_name cannot be None")

        drivername = args.db_dialect
        if args.db_driver:
            drivername += "+" + args.db_driver
        url = sa.URL.create(drivername,
                            username=args.db_user,
                            password=args.db_password,
                            host=args.db_host,
                            port=args.db_port,
                            database=args.db_name)
        return klass(url)

    def __getattr__(self, table_name):
        """
        Access an existing table in the database.

        :param str table_name: a (lowercase) name of the table
        :returns: a :py:class:`sqlalchemy.schema.Table` instance
        """
        # avoid infinite recursion before self.metadata is set
        if table_name == "metadata":
            raise AttributeError(table_name)
        if table_name not in self.metadata.tables:
            raise AttributeError("Table '{}' does not exist in the database.".format(table_name))
        return self.metadata.tables[table_name]

    def insert_ignore(self, table):
        """
        Return an ``INSERT`` statement for the table which silently skips rows
        conflicting with the primary key.
        """
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(table).on_conflict_do_nothing()
        return sqlite.insert(table).on_conflict_do_nothing()

    def upsert(self, table, update_columns):
        """
        Return an ``INSERT`` statement for the table which updates the given
        columns of rows conflicting with the primary key.

        :param table: a :py:class:`sqlalchemy.schema.Table` instance
        :param update_columns: names of the columns to be updated on conflict
        """
        if self.engine.dialect.name == "postgresql":
            ins = postgresql.insert(table)
        else:
            ins = sqlite.insert(table)
        index_elements = [c.name for c in table.primary_key.columns]
        return ins.on_conflict_do_update(
            index_elements=index_elements,
            set_={name: ins.excluded[name] for name in update_columns},
        )
