"""
Utility functions for the dictionary sync.

Identifier validation for configurable table/column names and a helper for
keeping error text in log lines to a readable size.
"""

import re

_IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

# PostgreSQL truncates identifiers longer than this
MAX_IDENTIFIER_LENGTH = 63


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate a table or column name taken from configuration.

    Names are still composed with psycopg2.sql.Identifier() when building
    queries; this check rejects obviously wrong configuration early, before
    a connection is opened.

    Args:
        identifier: The name to validate
        identifier_type: Description used in the error message (e.g. "source table")

    Returns:
        The identifier, unchanged

    Raises:
        ValueError: If the identifier is empty, too long or has unsafe characters

    Examples:
        >>> validate_sql_identifier("dictionary_v2")
        'dictionary_v2'
        >>> validate_sql_identifier("dictionary; DROP TABLE x")  # doctest: +SKIP
        ValueError: Invalid identifier 'dictionary; DROP TABLE x': ...
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of {MAX_IDENTIFIER_LENGTH} "
            f"characters (got {len(identifier)} characters)"
        )

    if not _IDENTIFIER_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must start with letter or underscore "
            "and contain only alphanumeric characters and underscores"
        )

    return identifier


def truncate_string(s: str, max_length: int = 500, suffix: str = "...") -> str:
    """
    Shorten error text before it goes into a log line.

    Examples:
        >>> truncate_string("connection refused")
        'connection refused'
        >>> truncate_string("x" * 30, max_length=10)
        'xxxxxxx...'
    """
    if len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
