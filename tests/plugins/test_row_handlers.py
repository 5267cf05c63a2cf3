"""
Tests for Row Handler Module

These tests validate the upsert and backfill reconciliation rules against an
in-memory dictionary, including re-applying a page (resume after a crash).
"""

import pytest
from unittest.mock import MagicMock

from dictionary_sync.row_handlers import BackfillHandler, BatchOutcome, UpsertHandler
from dictionary_sync.source_reader import SourceRow

from .fakes import FakeDictionaryDB, make_id


class TestBatchOutcome:
    """Test outcome arithmetic."""

    def test_addition(self):
        total = BatchOutcome(updated=2, inserted=1) + BatchOutcome(updated=3)
        assert total == BatchOutcome(updated=5, inserted=1)
        assert total.processed == 6

    def test_default_is_zero(self):
        assert BatchOutcome().processed == 0


class TestUpsertHandler:
    """Test insert-or-update by word."""

    @pytest.fixture
    def db(self):
        db = FakeDictionaryDB()
        db.add('apple', meaning='old meaning', relations=None, source='seed')
        return db

    def test_new_word_is_inserted_with_provenance(self, db):
        handler = UpsertHandler(db, entry_source='wiktionary', entry_language='english')

        outcome = handler.apply([SourceRow(make_id(1), 'pear', 'a fruit', {'synonyms': ['poire']})])

        assert outcome == BatchOutcome(updated=0, inserted=1)
        rows = db.rows_for('pear')
        assert len(rows) == 1
        assert rows[0]['meaning'] == 'a fruit'
        assert rows[0]['relations'] == {'synonyms': ['poire']}
        assert rows[0]['source'] == 'wiktionary'
        assert rows[0]['language'] == 'english'
        assert rows[0]['created_at'] is not None

    def test_existing_word_is_overwritten(self, db):
        handler = UpsertHandler(db)

        outcome = handler.apply([SourceRow(make_id(1), 'apple', 'new meaning', ['pome'])])

        assert outcome == BatchOutcome(updated=1, inserted=0)
        rows = db.rows_for('apple')
        assert len(rows) == 1
        assert rows[0]['meaning'] == 'new meaning'
        assert rows[0]['relations'] == ['pome']
        assert rows[0]['source'] == 'seed'

    def test_missing_relations_overwrite_with_null(self, db):
        db.update_entry('apple', 'old meaning', ['stale'])
        UpsertHandler(db).apply([SourceRow(make_id(1), 'apple', 'new meaning')])
        assert db.rows_for('apple')[0]['relations'] is None

    def test_mixed_page(self, db):
        rows = [
            SourceRow(make_id(1), 'apple', 'm1'),
            SourceRow(make_id(2), 'pear', 'm2'),
            SourceRow(make_id(3), 'plum', 'm3'),
        ]
        outcome = UpsertHandler(db).apply(rows)
        assert outcome == BatchOutcome(updated=1, inserted=2)
        assert len(db.rows) == 3

    def test_word_repeated_in_page_is_inserted_once(self, db):
        rows = [
            SourceRow(make_id(1), 'kiwi', 'first'),
            SourceRow(make_id(2), 'kiwi', 'second'),
        ]
        outcome = UpsertHandler(db).apply(rows)

        assert outcome == BatchOutcome(updated=1, inserted=1)
        kiwis = db.rows_for('kiwi')
        assert len(kiwis) == 1
        assert kiwis[0]['meaning'] == 'second'

    def test_reapplying_a_page_is_idempotent(self, db):
        rows = [
            SourceRow(make_id(1), 'apple', 'm1', ['a']),
            SourceRow(make_id(2), 'pear', 'm2', None),
        ]
        handler = UpsertHandler(db)

        handler.apply(rows)
        after_first = db.snapshot()
        second = handler.apply(rows)

        assert db.snapshot() == after_first
        assert second == BatchOutcome(updated=2, inserted=0)

    def test_commits_once_per_page(self, db):
        UpsertHandler(db).apply([SourceRow(make_id(i), f'w{i}', 'm') for i in range(5)])
        assert db.commits == 1

    def test_row_error_rolls_back_and_propagates(self):
        store = MagicMock()
        store.find_existing_words.return_value = set()
        store.insert_entry.side_effect = [None, RuntimeError("duplicate key value violates unique constraint")]

        with pytest.raises(RuntimeError):
            UpsertHandler(store).apply([SourceRow(make_id(1), 'a'), SourceRow(make_id(2), 'b')])

        store.rollback.assert_called_once()
        store.commit.assert_not_called()

    def test_single_existence_query_per_page(self):
        store = MagicMock()
        store.find_existing_words.return_value = {'a'}

        UpsertHandler(store).apply([SourceRow(make_id(1), 'a'), SourceRow(make_id(2), 'b')])

        store.find_existing_words.assert_called_once()


class TestBackfillHandler:
    """Test the batched relations backfill."""

    @pytest.fixture
    def db(self):
        source = [
            SourceRow(make_id(101), 'apple', relations={'synonyms': ['pome']}),
            SourceRow(make_id(102), 'pear', relations=None),
            SourceRow(make_id(103), 'plum', relations=['prune']),
        ]
        db = FakeDictionaryDB(source_rows=source)
        db.add('apple', row_id=make_id(1))
        db.add('pear', row_id=make_id(2))
        db.add('fig', row_id=make_id(3))
        db.add('plum', relations=['already set'], row_id=make_id(4))
        return db

    def test_fills_only_rows_with_matching_source(self, db):
        outcome = BackfillHandler(db).apply(db.as_source_rows())

        assert outcome == BatchOutcome(updated=1)
        assert db.rows[make_id(1)]['relations'] == {'synonyms': ['pome']}
        assert db.rows[make_id(2)]['relations'] is None  # source relations NULL
        assert db.rows[make_id(3)]['relations'] is None  # no source word
        assert db.rows[make_id(4)]['relations'] == ['already set']

    def test_one_batched_update_per_page(self, db):
        BackfillHandler(db).apply(db.as_source_rows())
        assert db.backfill_calls == 1
        assert db.commits == 1

    def test_nothing_missing_is_noop(self, db):
        handler = BackfillHandler(db)
        page = [SourceRow(make_id(4), 'plum', relations=['already set'])]

        outcome = handler.apply(page)

        assert outcome == BatchOutcome(updated=0)
        assert db.backfill_calls == 0

    def test_reapplying_a_page_is_idempotent(self, db):
        handler = BackfillHandler(db)
        page = db.as_source_rows()

        handler.apply(page)
        after_first = db.snapshot()
        second = handler.apply(page)

        assert db.snapshot() == after_first
        assert second == BatchOutcome(updated=0)

    def test_updated_count_comes_from_store(self):
        """Rows filled by someone else between select and update are not counted."""
        store = MagicMock()
        store.select_missing_relations.return_value = ['id-1', 'id-2', 'id-3']
        store.backfill_relations.return_value = 2

        outcome = BackfillHandler(store).apply([SourceRow('id-1', 'a'), SourceRow('id-2', 'b'), SourceRow('id-3', 'c')])

        assert outcome.updated == 2
        store.backfill_relations.assert_called_once_with(['id-1', 'id-2', 'id-3'])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
