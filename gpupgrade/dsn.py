"""Helpers for building and parsing libpq-style connection strings."""

from __future__ import annotations

import re
import shlex

from .errors import ConnectionOpenError
from .models import ClusterEndpoint

URI_PREFIXES = ("postgres://", "postgresql://")

_NEEDS_QUOTING = re.compile(r"[\s'\\]")


def quote_value(value: str) -> str:
    """Quote ``value`` the way libpq expects, leaving plain values untouched."""

    if value and not _NEEDS_QUOTING.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_dsn(endpoint: ClusterEndpoint, user: str) -> str:
    """Return the key/value DSN used to reach the master node.

    Keys always appear in the order host, port, user, dbname, sslmode so the
    output is stable across runs.
    """

    return (
        f"host={quote_value(endpoint.host)} port={endpoint.port} user={quote_value(user)} "
        f"dbname={quote_value(endpoint.database_name)} sslmode=disable"
    )


def is_uri(dsn: str) -> bool:
    return dsn.startswith(URI_PREFIXES)


def parse_dsn(dsn: str) -> dict[str, str]:
    """Split a ``key=value`` DSN into a mapping.

    Values may be single-quoted; backslash escapes ``'`` and ``\\`` both inside
    and outside quotes, as in libpq.
    """

    lexer = shlex.shlex(dsn, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    lexer.quotes = "'"
    lexer.escapedquotes = "'"
    lexer.escape = "\\"
    try:
        tokens = list(lexer)
    except ValueError as exc:
        raise ConnectionOpenError(f"Malformed connection string: {exc}") from exc
    params: dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ConnectionOpenError(f"Malformed connection string: expected key=value, got {token!r}")
        params[key] = value
    return params


__all__ = ["build_dsn", "is_uri", "parse_dsn", "quote_value"]
