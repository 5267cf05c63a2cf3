"""
Row Handler Module

Reconciliation rules applied to one page of rows at a time:

- UpsertHandler: update meaning/relations when the word exists, insert a new
  entry otherwise (last write wins).
- BackfillHandler: fill the relations column of destination rows that are
  still missing it, with one correlated update per page.

Both rules are safe to re-apply to a page that was already (partly) applied,
which is what makes resuming from a checkpoint correct. Each handler commits
once per page; an error rolls the page back and propagates.
"""

from dataclasses import dataclass
from typing import Sequence
import logging

from dictionary_sync.dictionary_store import DictionaryStore
from dictionary_sync.source_reader import SourceRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOutcome:
    """Per-page row counts."""

    updated: int = 0
    inserted: int = 0

    @property
    def processed(self) -> int:
        return self.updated + self.inserted

    def __add__(self, other: "BatchOutcome") -> "BatchOutcome":
        return BatchOutcome(
            updated=self.updated + other.updated,
            inserted=self.inserted + other.inserted,
        )


class RowHandler:
    """Base class for reconciliation rules."""

    name = "handler"

    def __init__(self, store: DictionaryStore):
        self.store = store

    def apply(self, rows: Sequence[SourceRow]) -> BatchOutcome:
        """
        Reconcile one page against the destination and commit it.

        Args:
            rows: The page, in cursor order

        Returns:
            Counts of rows changed in this page
        """
        try:
            outcome = self._apply(rows)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        return outcome

    def _apply(self, rows: Sequence[SourceRow]) -> BatchOutcome:
        raise NotImplementedError


class UpsertHandler(RowHandler):
    """Insert-or-update by natural key."""

    name = "upsert"

    def __init__(self, store: DictionaryStore, entry_source: str = "wiktionary", entry_language: str = "english"):
        """
        Args:
            store: Destination store
            entry_source: Provenance 'source' written on inserted rows
            entry_language: Provenance 'language' written on inserted rows
        """
        super().__init__(store)
        self.entry_source = entry_source
        self.entry_language = entry_language

    def _apply(self, rows: Sequence[SourceRow]) -> BatchOutcome:
        # One existence query for the page; words inserted below join the set
        # so a word repeated later in the same page is updated, not duplicated.
        known_words = self.store.find_existing_words(row.word for row in rows)

        updated = 0
        inserted = 0
        for row in rows:
            if row.word in known_words:
                self.store.update_entry(row.word, row.meaning, row.relations)
                updated += 1
            else:
                self.store.insert_entry(
                    row.word,
                    row.meaning,
                    row.relations,
                    source=self.entry_source,
                    language=self.entry_language,
                )
                known_words.add(row.word)
                inserted += 1

        return BatchOutcome(updated=updated, inserted=inserted)


class BackfillHandler(RowHandler):
    """Fill unset relations from the scraped table, one statement per page."""

    name = "backfill"

    def _apply(self, rows: Sequence[SourceRow]) -> BatchOutcome:
        missing_ids = self.store.select_missing_relations(row.id for row in rows)
        if not missing_ids:
            logger.debug(f"No rows missing relations among {len(rows)} rows")
            return BatchOutcome()

        updated = self.store.backfill_relations(missing_ids)
        if updated < len(missing_ids):
            logger.debug(
                f"{len(missing_ids) - updated} of {len(missing_ids)} selected rows "
                "had no scraped relations or were filled concurrently"
            )
        return BatchOutcome(updated=updated)
