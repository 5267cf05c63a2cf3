"""
Source Reader Module

Reads a table in bounded pages using keyset pagination:

    SELECT ... FROM table WHERE key > %s ORDER BY key LIMIT %s

Every call is independent and fully determined by (after, limit); no
server-side cursor survives between pages.

Ordering: cursors are compared as plain strings by the engine, so the query
must order keys the same way.

- uuid keys (the default) are compared natively, which keeps the primary key
  index usable. PostgreSQL compares uuids byte by byte, which is the same
  order as their canonical lowercase hex text, i.e. the cursor_of() form.
- any other key type is compared as text under the "C" collation (byte-wise
  string order). Without an expression index on (key::text COLLATE "C") each
  page scans the table.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence
from psycopg2 import sql
import logging
import re

from dictionary_sync.utils import validate_sql_identifier

logger = logging.getLogger(__name__)

UUID_CURSOR_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


@dataclass(frozen=True)
class SourceRow:
    """One dictionary entry as read from a paged table."""

    id: str
    word: str
    meaning: Optional[str] = None
    relations: Optional[Any] = None


class KeysetSourceReader:
    """
    Produces successive pages of rows ordered by a monotonic key.

    The selected columns map onto SourceRow fields by name; columns other
    than the key and the natural key are optional (missing ones stay None).
    """

    def __init__(
        self,
        connection,
        table: str,
        columns: Sequence[str] = ('id', 'word', 'meaning', 'relations'),
        key_column: str = 'id',
        natural_key_column: str = 'word',
        key_type: Optional[str] = 'uuid',
    ):
        """
        Initialize the reader.

        Args:
            connection: Open DB-API (psycopg2) connection
            table: Table to page through
            columns: Columns to select; must include key_column and natural_key_column
            key_column: Cursor column (surrogate identity)
            natural_key_column: Business key column
            key_type: 'uuid' for native uuid comparison, None to compare keys as text
        """
        self.connection = connection
        self.table = validate_sql_identifier(table, "table")
        self.columns = [validate_sql_identifier(c, "column") for c in columns]
        self.key_column = validate_sql_identifier(key_column, "key column")
        self.natural_key_column = validate_sql_identifier(natural_key_column, "natural key column")
        if key_type not in ('uuid', None):
            raise ValueError(f"Unsupported key type '{key_type}': expected 'uuid' or None")
        self.key_type = key_type

        for required in (self.key_column, self.natural_key_column):
            if required not in self.columns:
                raise ValueError(f"Column '{required}' must be selected by the reader")

        unknown = set(self.columns) - set(SourceRow.__dataclass_fields__) - {
            self.key_column, self.natural_key_column
        }
        if unknown:
            raise ValueError(f"Unsupported columns for reader: {', '.join(sorted(unknown))}")

    def _build_query(self, has_cursor: bool) -> sql.Composed:
        select_list = sql.SQL(', ').join(sql.Identifier(c) for c in self.columns)
        if self.key_type == 'uuid':
            ordered_key = sql.Identifier(self.key_column)
            bound_cursor = sql.SQL("%s::uuid")
        else:
            ordered_key = sql.SQL('{}::text COLLATE "C"').format(sql.Identifier(self.key_column))
            bound_cursor = sql.SQL("%s")

        if has_cursor:
            return sql.SQL("""
                SELECT {columns}
                FROM {table}
                WHERE {key} > {cursor}
                ORDER BY {key}
                LIMIT %s
            """).format(
                columns=select_list,
                table=sql.Identifier(self.table),
                key=ordered_key,
                cursor=bound_cursor,
            )

        return sql.SQL("""
            SELECT {columns}
            FROM {table}
            ORDER BY {key}
            LIMIT %s
        """).format(columns=select_list, table=sql.Identifier(self.table), key=ordered_key)

    def _to_row(self, record: Sequence[Any]) -> SourceRow:
        values = dict(zip(self.columns, record))
        return SourceRow(
            id=str(values.pop(self.key_column)),
            word=values.pop(self.natural_key_column),
            **values,
        )

    def next_page(self, after: Optional[str], limit: int) -> List[SourceRow]:
        """
        Fetch the next page of rows.

        Args:
            after: Cursor of the last row already handled (None for the first page)
            limit: Maximum rows to return

        Returns:
            Up to `limit` rows with key strictly greater than `after`, ascending.
            An empty list means the table is exhausted.
        """
        if limit <= 0:
            raise ValueError(f"Page limit must be positive (got {limit})")

        query = self._build_query(after is not None)
        params = (after, limit) if after is not None else (limit,)

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, params)
                records = cursor.fetchall()
        except Exception as e:
            logger.error(f"Error reading page from {self.table} after key {after}: {e}")
            raise

        return [self._to_row(record) for record in records]

    def cursor_of(self, row: SourceRow) -> str:
        """Cursor value of a row, in the reader's ordering."""
        if self.key_type == 'uuid':
            return str(row.id).lower()
        return str(row.id)

    def is_valid_cursor(self, cursor: str) -> bool:
        """Whether a stored cursor could have come from cursor_of()."""
        if self.key_type == 'uuid':
            return bool(UUID_CURSOR_PATTERN.match(cursor))
        return True
