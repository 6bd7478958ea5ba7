#! /usr/bin/env python3

"""
Custom types with automatic convertors.

Timestamps are stored as ``TIMESTAMP`` without time zone in UTC, because
SQLite does not support time zones at all. On the Python side, all values are
aware :py:class:`datetime.datetime` objects in UTC.
"""

import datetime
import json

import sqlalchemy.types as types


class UTCDateTime(types.TypeDecorator):
    """
    Convertor for timestamps in UTC.
    """

    impl = types.DateTime(timezone=False)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        """
        python -> db
        """
        if value is None:
            return value
        assert isinstance(value, datetime.datetime), value
        if value.tzinfo is None:
            raise ValueError("naive datetime objects cannot be stored, use an aware datetime")
        return value.astimezone(datetime.UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        """
        db -> python
        """
        if value is None:
            return value
        assert isinstance(value, datetime.datetime)
        return value.replace(tzinfo=datetime.UTC)


class JSONEncodedList(types.TypeDecorator):
    """
    Represents an immutable list of records as a JSON-encoded string.

    The records are plain dicts on both sides, conversion to the record
    classes (e.g. :py:class:`wikicore.parser_helpers.wikilinks.WikiLink`) is
    left to the caller.
    """

    impl = types.UnicodeText

    cache_ok = True

    def process_bind_param(self, value, dialect):
        """
        python -> db
        """
        if value is None:
            value = []
        return json.dumps(list(value), sort_keys=True)

    def process_result_value(self, value, dialect):
        """
        db -> python
        """
        if value is None:
            return []
        return json.loads(value)
