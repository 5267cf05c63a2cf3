"""
Migration Engine Module

Runs the resumable batch loop shared by all dictionary sync pipelines:

    load checkpoint -> fetch page -> apply handler -> save checkpoint
                    -> report -> pause -> ... until an empty page

State machine: INIT -> RUNNING -> DONE | FAILED.

Failure contract: an error from the reader or the handler is not retried
here. The engine reports the error together with the last cursor that was
successfully saved, leaves the checkpoint file untouched and raises
MigrationError. Re-running resumes from that checkpoint and re-applies the
page that was in flight, which both handlers tolerate.

Checkpoint invariant: the checkpoint only ever moves to the max key of a
page whose handler call returned (i.e. committed). The cursor advances even
if the page changed nothing in the destination.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
import logging
import time

from dictionary_sync.checkpoint import CheckpointStore
from dictionary_sync.reporting import ProgressReporter
from dictionary_sync.row_handlers import BatchOutcome, RowHandler

logger = logging.getLogger(__name__)


class EngineState(Enum):
    INIT = "init"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Totals for one engine run."""

    totals: BatchOutcome = field(default_factory=BatchOutcome)
    batches: int = 0
    resumed_from: Optional[str] = None
    last_cursor: Optional[str] = None
    saved_cursor: Optional[str] = None
    state: EngineState = EngineState.INIT
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is EngineState.DONE

    def to_dict(self):
        return {
            'state': self.state.value,
            'rows_updated': self.totals.updated,
            'rows_inserted': self.totals.inserted,
            'rows_processed': self.totals.processed,
            'batches': self.batches,
            'resumed_from': self.resumed_from,
            'last_cursor': self.last_cursor,
            'elapsed_seconds': self.elapsed_seconds,
            'success': self.success,
        }


class MigrationError(Exception):
    """A sync run stopped on an unrecovered error."""

    def __init__(self, message: str, resume_cursor: Optional[str], summary: RunSummary):
        super().__init__(message)
        self.resume_cursor = resume_cursor
        self.summary = summary


class MigrationEngine:
    """
    Drives a reader and a row handler through the checkpointed batch loop.

    The reader must provide next_page(after, limit) and cursor_of(row) using
    one consistent ordering, and is_valid_cursor(cursor) to vet a loaded
    checkpoint (a malformed one is ignored and the run starts over).
    """

    def __init__(
        self,
        reader,
        handler: RowHandler,
        checkpoint: CheckpointStore,
        reporter: Optional[ProgressReporter] = None,
        batch_size: int = 1000,
        pause_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the engine.

        Args:
            reader: Page source (e.g. KeysetSourceReader)
            handler: Reconciliation rule applied to each page
            checkpoint: Store for the resume cursor
            reporter: Progress reporter (defaults to console output)
            batch_size: Rows per page, constant for the run
            pause_seconds: Pause after every applied page
            sleep: Sleep function (injectable for tests)
        """
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive (got {batch_size})")
        if pause_seconds < 0:
            raise ValueError(f"Pause must not be negative (got {pause_seconds})")

        self.reader = reader
        self.handler = handler
        self.checkpoint = checkpoint
        self.reporter = reporter or ProgressReporter()
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self._sleep = sleep
        self.state = EngineState.INIT

    def run(self) -> RunSummary:
        """
        Run the loop until the reader is exhausted.

        Returns:
            RunSummary of the completed run

        Raises:
            MigrationError: If reading or applying a page failed
        """
        start_time = time.time()
        self.state = EngineState.INIT
        summary = RunSummary(state=self.state)

        cursor = self.checkpoint.load()
        if cursor is not None and not self.reader.is_valid_cursor(cursor):
            logger.warning(f"Ignoring malformed checkpoint {cursor!r} in {self.checkpoint.path}")
            self.reporter.warning(f"Ignoring malformed lastId {cursor!r}; starting from the first row")
            cursor = None
        summary.resumed_from = cursor
        summary.last_cursor = cursor
        summary.saved_cursor = cursor
        if cursor:
            self.reporter.resumed(cursor)
            logger.info(f"Resuming {self.handler.name} sync after cursor {cursor}")

        self.state = summary.state = EngineState.RUNNING

        try:
            while True:
                rows = self.reader.next_page(cursor, self.batch_size)
                if not rows:
                    break

                batch_number = summary.batches + 1
                self.reporter.batch_started(batch_number, len(rows))

                outcome = self.handler.apply(rows)
                summary.totals = summary.totals + outcome
                summary.batches = batch_number

                new_cursor = max(self.reader.cursor_of(row) for row in rows)
                if cursor is not None and new_cursor <= cursor:
                    raise RuntimeError(
                        f"Cursor did not advance (page max {new_cursor} <= {cursor}); "
                        "reader ordering is inconsistent"
                    )
                cursor = new_cursor
                summary.last_cursor = cursor

                saved = self.checkpoint.save(cursor)
                if saved:
                    summary.saved_cursor = cursor
                self.reporter.batch_completed(outcome, summary.totals, cursor, saved)

                if self.pause_seconds:
                    self._sleep(self.pause_seconds)

        except Exception as e:
            self.state = summary.state = EngineState.FAILED
            summary.elapsed_seconds = time.time() - start_time
            logger.error(
                f"{self.handler.name} sync failed after {summary.batches} batches: {e}. "
                f"Resume cursor: {summary.saved_cursor}"
            )
            self.reporter.failed(e, summary.saved_cursor)
            raise MigrationError(
                f"{self.handler.name} sync failed: {e}",
                resume_cursor=summary.saved_cursor,
                summary=summary,
            ) from e

        self.state = summary.state = EngineState.DONE
        summary.elapsed_seconds = time.time() - start_time
        self.reporter.completed(summary)
        self.reporter.checkpoint_cleared(self.checkpoint.clear())

        logger.info(
            f"{self.handler.name} sync complete: {summary.totals.updated:,} updated, "
            f"{summary.totals.inserted:,} inserted in {summary.batches} batches "
            f"({summary.elapsed_seconds:.2f}s)"
        )
        return summary
