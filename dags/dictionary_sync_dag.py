"""
Dictionary Sync DAG

Synchronizes freshly scraped dictionary entries into the canonical
dictionary table in resumable batches.

Pipelines (param `pipeline`):
- upsert: walk dictionary_v2 by id; update meaning/relations of words that
  already exist in dictionary, insert the rest (source='wiktionary',
  language='english').
- backfill: walk dictionary by id; fill relations that are still NULL from
  dictionary_v2, matched by word.

Progress is checkpointed to a cursor file after every batch. If the task
fails, the checkpoint is kept and the Airflow retry (or a manual re-run)
resumes from the last applied batch. The checkpoint is removed once a run
completes.
"""

from airflow.decorators import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
from typing import Any, Dict
import logging
import os

from dictionary_sync.config import DEFAULT_BATCH_SIZE, DEFAULT_PAUSE_MS, PIPELINES
from dictionary_sync.pipelines import run_pipeline_from_params

logger = logging.getLogger(__name__)

DEFAULT_CONN_ID = os.environ.get('DICTIONARY_SYNC_POSTGRES_CONN_ID', 'postgres_dictionary')


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually after a scrape
    catchup=False,
    max_active_runs=1,  # One writer per checkpoint file
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 3,
        "retry_delay": timedelta(seconds=30),
        "retry_exponential_backoff": False,
    },
    params={
        "pipeline": Param(
            default="upsert",
            type="string",
            enum=list(PIPELINES),
            description="Which sync to run: upsert (dictionary_v2 -> dictionary) or backfill (relations)"
        ),
        "postgres_conn_id": Param(
            default=DEFAULT_CONN_ID,
            type="string",
            description="PostgreSQL connection ID holding both tables"
        ),
        "batch_size": Param(
            default=DEFAULT_BATCH_SIZE,
            type="integer",
            minimum=1,
            maximum=100000,
            description="Rows per batch"
        ),
        "pause_ms": Param(
            default=DEFAULT_PAUSE_MS,
            type="integer",
            minimum=0,
            maximum=60000,
            description="Pause between batches in milliseconds"
        ),
    },
    tags=["dictionary", "postgres", "sync", "resumable"],
)
def dictionary_sync():
    """
    Resumable dictionary sync.
    """

    @task
    def sync_dictionary(**context) -> Dict[str, Any]:
        """
        Run the selected pipeline until the source is exhausted.

        Raises MigrationError on failure so the task fails and retries resume
        from the checkpoint.

        Returns:
            Run summary dict
        """
        params = context["params"]
        pipeline = params["pipeline"]
        logger.info(f"Starting dictionary sync pipeline '{pipeline}'")

        summary = run_pipeline_from_params(pipeline, params)

        logger.info(
            f"Dictionary sync '{pipeline}' finished: {summary['rows_updated']:,} updated, "
            f"{summary['rows_inserted']:,} inserted in {summary['batches']} batches"
        )
        return summary

    sync_dictionary()


# Instantiate the DAG
dictionary_sync()
