#!/usr/bin/env python3
"""
Standalone dictionary sync runner.

Runs one pipeline outside Airflow using a direct psycopg2 connection.
Settings come from DICTIONARY_SYNC_* environment variables (a .env file is
loaded if present); the connection uses DICTIONARY_SYNC_DSN or the standard
PG* variables.

Usage:
    python run_dictionary_sync.py upsert
    python run_dictionary_sync.py backfill --batch-size 500

Exit status is 0 when the run completes and 1 when it stops on an error.
A failed run keeps its checkpoint, so running the same command again
resumes where it stopped.
"""

import argparse
import logging
import os
import sys

import psycopg2
from dotenv import load_dotenv

# Make the plugins package importable when run from a checkout
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), 'plugins'))

from dictionary_sync.config import PIPELINES, SyncConfig  # noqa: E402
from dictionary_sync.engine import MigrationError  # noqa: E402
from dictionary_sync.pipelines import dsn_connection_factory, run_pipeline  # noqa: E402

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Resumable dictionary sync")
    parser.add_argument("pipeline", choices=PIPELINES)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--pause-ms", type=int, default=None)
    parser.add_argument("--checkpoint-dir", default=None)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run the requested pipeline and map the outcome to an exit status."""
    load_dotenv()
    args = parse_args(argv)

    try:
        config = SyncConfig.from_env(overrides={
            'batch_size': args.batch_size,
            'pause_ms': args.pause_ms,
            'checkpoint_dir': args.checkpoint_dir,
        })
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    try:
        summary = run_pipeline(args.pipeline, config, dsn_connection_factory(config.dsn))
    except MigrationError as e:
        logger.error(f"Sync failed: {e}")
        if e.resume_cursor:
            logger.error(f"Re-run to resume after id {e.resume_cursor}")
        return 1
    except psycopg2.Error as e:
        logger.error(f"Could not connect to the database: {e}")
        return 1

    logger.info(
        f"Sync complete: {summary.totals.updated:,} updated, {summary.totals.inserted:,} inserted, "
        f"{summary.batches} batches"
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
