"""
Dictionary Sync Utilities

This package provides a resumable, idempotent batch sync from the scraped
dictionary table into the canonical dictionary table in PostgreSQL.

Modules:
- config: Environment-driven run configuration
- checkpoint: File-backed cursor checkpoint for resumability
- source_reader: Keyset-paginated page reader
- dictionary_store: Destination query surface
- row_handlers: Upsert and backfill reconciliation rules
- reporting: Timestamped migration log with console fallback
- engine: Batch loop, checkpointing and failure/resume contract
- pipelines: Wiring for the named pipelines (upsert, backfill)

Tuning Options:
- DICTIONARY_SYNC_BATCH_SIZE=N: Rows per page (default 1000)
- DICTIONARY_SYNC_PAUSE_MS=N: Pause between batches (default 100)
"""

__version__ = "1.0.0"

from dictionary_sync import config
from dictionary_sync import checkpoint
from dictionary_sync import source_reader
from dictionary_sync import dictionary_store
from dictionary_sync import row_handlers
from dictionary_sync import reporting
from dictionary_sync import engine
from dictionary_sync import pipelines

__all__ = [
    "config",
    "checkpoint",
    "source_reader",
    "dictionary_store",
    "row_handlers",
    "reporting",
    "engine",
    "pipelines",
]
