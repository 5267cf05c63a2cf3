"""
Pipelines Module

Wires the named dictionary sync pipelines:

- upsert: pages the scraped table (dictionary_v2) and inserts or updates
  entries in the dictionary by word.
- backfill: pages the dictionary itself and fills missing relations from
  the scraped table.

One database connection is opened per run and released on every exit path.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional
import logging
import time

import psycopg2

from dictionary_sync.checkpoint import CheckpointStore
from dictionary_sync.config import PIPELINES, SyncConfig
from dictionary_sync.dictionary_store import DictionaryStore
from dictionary_sync.engine import MigrationEngine, RunSummary
from dictionary_sync.reporting import ProgressReporter, open_line_sink
from dictionary_sync.row_handlers import BackfillHandler, RowHandler, UpsertHandler
from dictionary_sync.source_reader import KeysetSourceReader

logger = logging.getLogger(__name__)


def airflow_connection_factory(postgres_conn_id: str) -> Callable[[], Any]:
    """Connection factory backed by an Airflow Postgres connection."""
    def connect():
        from airflow.providers.postgres.hooks.postgres import PostgresHook
        return PostgresHook(postgres_conn_id=postgres_conn_id).get_conn()
    return connect


def dsn_connection_factory(dsn: str = "") -> Callable[[], Any]:
    """Connection factory for standalone runs (empty DSN uses PG* variables)."""
    def connect():
        return psycopg2.connect(dsn)
    return connect


@contextmanager
def scoped_connection(connect: Callable[[], Any], reporter: Optional[ProgressReporter] = None):
    """
    Open the run's connection and guarantee it is closed.

    Uncommitted work (a page that failed mid-way) is rolled back first.
    """
    conn = connect()
    if reporter:
        reporter.log("Connected to database")
    try:
        yield conn
    finally:
        if getattr(conn, "autocommit", False) is False:
            try:
                conn.rollback()
            except Exception:
                logger.exception("Exception occurred during PostgreSQL connection rollback")
        try:
            conn.close()
        except Exception:
            logger.exception("Exception occurred while closing PostgreSQL connection")
        if reporter:
            reporter.log("Database connection closed")


def build_reader(pipeline: str, conn, config: SyncConfig) -> KeysetSourceReader:
    """The upsert pipeline pages the scraped table; backfill pages the dictionary."""
    if pipeline == "upsert":
        return KeysetSourceReader(
            conn, config.source_table, columns=('id', 'word', 'meaning', 'relations')
        )
    if pipeline == "backfill":
        return KeysetSourceReader(
            conn, config.target_table, columns=('id', 'word', 'relations')
        )
    raise ValueError(f"Unknown pipeline '{pipeline}': expected one of {', '.join(PIPELINES)}")


def build_handler(pipeline: str, conn, config: SyncConfig) -> RowHandler:
    store = DictionaryStore(conn, target_table=config.target_table, source_table=config.source_table)
    if pipeline == "upsert":
        return UpsertHandler(
            store,
            entry_source=config.entry_source,
            entry_language=config.entry_language,
        )
    if pipeline == "backfill":
        return BackfillHandler(store)
    raise ValueError(f"Unknown pipeline '{pipeline}': expected one of {', '.join(PIPELINES)}")


def run_pipeline(
    pipeline: str,
    config: SyncConfig,
    connect: Callable[[], Any],
    reporter: Optional[ProgressReporter] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunSummary:
    """
    Run one pipeline to completion.

    Args:
        pipeline: "upsert" or "backfill"
        config: Run configuration
        connect: Zero-argument callable returning a DB-API connection
        reporter: Progress reporter (defaults to the configured log file)
        sleep: Pause function between batches

    Returns:
        RunSummary of the completed run

    Raises:
        MigrationError: If the run stopped on an error (checkpoint left in place)
        ValueError: If the pipeline name is unknown
    """
    checkpoint_path = config.checkpoint_path(pipeline)
    owns_reporter = reporter is None
    if owns_reporter:
        reporter = ProgressReporter(open_line_sink(config.log_path))

    source = config.source_table if pipeline == "upsert" else config.target_table
    reporter.started(pipeline, source, config.target_table)
    try:
        with scoped_connection(connect, reporter) as conn:
            engine = MigrationEngine(
                reader=build_reader(pipeline, conn, config),
                handler=build_handler(pipeline, conn, config),
                checkpoint=CheckpointStore(checkpoint_path),
                reporter=reporter,
                batch_size=config.batch_size,
                pause_seconds=config.pause_seconds,
                sleep=sleep,
            )
            return engine.run()
    finally:
        if owns_reporter:
            reporter.close()


def run_pipeline_from_params(pipeline: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Airflow entry point: build config from env + params and run.

    Returns:
        RunSummary as a dict (XCom friendly)
    """
    config = SyncConfig.from_env(overrides={
        'postgres_conn_id': params.get('postgres_conn_id'),
        'batch_size': params.get('batch_size'),
        'pause_ms': params.get('pause_ms'),
    })
    summary = run_pipeline(pipeline, config, airflow_connection_factory(config.postgres_conn_id))
    return summary.to_dict()
