"""Workflow Archiver - Shared utilities."""

import re

_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Validate and double-quote a single PostgreSQL identifier.

    Table, index and column names come from configuration and are
    interpolated into SQL, so anything other than letters, digits and
    underscores is rejected.

    Raises:
        ValueError: If the identifier contains invalid characters
    """
    if not _IDENTIFIER.match(name):
        raise ValueError(
            f"Invalid SQL identifier: {name!r}. "
            "Only letters, digits, and underscores are allowed."
        )
    return f'"{name}"'


def qualified_name(schema: str, name: str) -> str:
    """Return a quoted ``schema.name`` reference, e.g. '"public"."workflow"'."""
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def affected_rows(status: str) -> int:
    """Extract the row count from an asyncpg command status such as 'INSERT 0 3'.

    Returns 0 for statuses that carry no count.
    """
    tail = status.rsplit(" ", 1)[-1] if status else ""
    return int(tail) if tail.isdigit() else 0
