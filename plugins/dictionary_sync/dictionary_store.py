"""
Dictionary Store Module

Query surface of the canonical dictionary table, as used by the row handlers:

- set-based lookup by natural key (word)
- insert with a generated identity and provenance
- update by natural key
- a batched, correlated relations backfill from the scraped table

All statements run on the single connection shared by a sync run. Nothing is
committed here implicitly; handlers call commit() once per page.
"""

from typing import Any, Iterable, List, Optional, Set
from psycopg2 import sql
from psycopg2.extras import Json
import logging

from dictionary_sync.utils import validate_sql_identifier

logger = logging.getLogger(__name__)


def _adapt_relations(relations: Optional[Any]) -> Optional[Any]:
    """Wrap any non-NULL jsonb value (object, array or scalar) for writing back."""
    if relations is None:
        return None
    return Json(relations)


class DictionaryStore:
    """Reads and writes the destination dictionary table."""

    def __init__(
        self,
        connection,
        target_table: str,
        source_table: str,
        id_type: str = "uuid",
    ):
        """
        Initialize the store.

        Args:
            connection: Open psycopg2 connection owned by the caller
            target_table: Canonical dictionary table
            source_table: Scraped entries table used for correlated lookups
            id_type: SQL type of the id column; id lists are cast to it so
                the primary key index stays usable
        """
        self.connection = connection
        self.target_table = validate_sql_identifier(target_table, "target table")
        self.source_table = validate_sql_identifier(source_table, "source table")
        self.id_type = validate_sql_identifier(id_type, "id type")

    def _id_array(self) -> sql.Composed:
        return sql.SQL("%s::{}[]").format(sql.SQL(self.id_type))

    def find_existing_words(self, words: Iterable[str]) -> Set[str]:
        """
        Find which words already exist in the dictionary.

        One query per page instead of one round trip per row.

        Args:
            words: Natural keys to check

        Returns:
            Subset of `words` present in the target table
        """
        unique_words = list(dict.fromkeys(words))
        if not unique_words:
            return set()

        query = sql.SQL("SELECT DISTINCT word FROM {} WHERE word = ANY(%s)").format(
            sql.Identifier(self.target_table)
        )
        with self.connection.cursor() as cursor:
            cursor.execute(query, (unique_words,))
            return {row[0] for row in cursor.fetchall()}

    def insert_entry(
        self,
        word: str,
        meaning: Optional[str],
        relations: Optional[Any],
        source: str,
        language: str,
    ) -> None:
        """Insert a new entry with a generated id and creation timestamp."""
        query = sql.SQL("""
            INSERT INTO {} (id, word, meaning, created_at, source, language, relations)
            VALUES (gen_random_uuid(), %s, %s, NOW(), %s, %s, %s)
        """).format(sql.Identifier(self.target_table))
        with self.connection.cursor() as cursor:
            cursor.execute(query, (word, meaning, source, language, _adapt_relations(relations)))

    def update_entry(self, word: str, meaning: Optional[str], relations: Optional[Any]) -> int:
        """
        Overwrite meaning and relations for every row with this word.

        Returns:
            Number of rows updated
        """
        query = sql.SQL("""
            UPDATE {}
            SET meaning = %s, relations = %s
            WHERE word = %s
        """).format(sql.Identifier(self.target_table))
        with self.connection.cursor() as cursor:
            cursor.execute(query, (meaning, _adapt_relations(relations), word))
            return cursor.rowcount

    def select_missing_relations(self, ids: Iterable[str]) -> List[str]:
        """
        Select the ids whose relations column is still unset.

        Args:
            ids: Identity keys of one page

        Returns:
            Ids (as text) with relations IS NULL
        """
        id_list = list(ids)
        if not id_list:
            return []

        query = sql.SQL("""
            SELECT id::text FROM {table}
            WHERE id = ANY({ids}) AND relations IS NULL
        """).format(table=sql.Identifier(self.target_table), ids=self._id_array())
        with self.connection.cursor() as cursor:
            cursor.execute(query, (id_list,))
            return [row[0] for row in cursor.fetchall()]

    def backfill_relations(self, ids: Iterable[str]) -> int:
        """
        Fill relations from the scraped table for the given ids, in one statement.

        Only rows that still have relations unset and whose word has a
        scraped entry with relations are touched, so re-running is harmless.
        When several scraped entries share a word, the one with the lowest
        id wins, which keeps repeated runs deterministic.

        Args:
            ids: Identity keys selected for backfill

        Returns:
            Number of rows actually changed
        """
        id_list = list(ids)
        if not id_list:
            return 0

        query = sql.SQL("""
            UPDATE {target} AS d
            SET relations = src.relations
            FROM (
                SELECT DISTINCT ON (s.word) s.word, s.relations
                FROM {source} AS s
                WHERE s.relations IS NOT NULL
                  AND s.word IN (SELECT word FROM {target} WHERE id = ANY({ids}))
                ORDER BY s.word, s.id::text COLLATE "C"
            ) AS src
            WHERE d.id = ANY({ids})
              AND d.relations IS NULL
              AND src.word = d.word
        """).format(
            target=sql.Identifier(self.target_table),
            source=sql.Identifier(self.source_table),
            ids=self._id_array(),
        )
        with self.connection.cursor() as cursor:
            cursor.execute(query, (id_list, id_list))
            return cursor.rowcount

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()
