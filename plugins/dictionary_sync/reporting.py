"""
Progress Reporting Module

Writes the human-readable migration log: one timestamped line per
significant event (start, resume, per-batch counts and cursor, completion
summary, errors).

Lines go to a sink chosen once at startup: the log file when it can be
opened, the console otherwise. If a write to the file fails later, that line
is sent to the console instead. Reporting never raises into the sync loop.
Every line is also passed to the standard logger, so Airflow task logs show
the same events.
"""

from datetime import datetime, timezone
from typing import Optional, TextIO
import logging
import sys

from dictionary_sync.utils import truncate_string

logger = logging.getLogger(__name__)


class ConsoleLineSink:
    """Writes lines to stdout."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def close(self) -> None:
        pass


class FileLineSink:
    """Appends lines to a log file, flushing after each one."""

    def __init__(self, path: str):
        self.path = path
        self._file = open(path, 'a', encoding='utf-8')

    def write(self, line: str) -> None:
        self._file.write(line + "\n")
        self._file.flush()

    def close(self) -> None:
        self._file.close()


def open_line_sink(path: Optional[str]):
    """
    Open the migration log, falling back to the console.

    Args:
        path: Log file path (None selects the console directly)

    Returns:
        A FileLineSink, or a ConsoleLineSink if the file cannot be opened
    """
    if not path:
        return ConsoleLineSink()
    try:
        return FileLineSink(path)
    except OSError as e:
        logger.warning(f"Failed to open migration log {path}, using console: {e}")
        return ConsoleLineSink()


class ProgressReporter:
    """Formats sync events as timestamped log lines."""

    def __init__(self, sink=None, fallback=None):
        """
        Args:
            sink: Primary line sink (defaults to the console)
            fallback: Sink used when a write to the primary fails
        """
        self.sink = sink or ConsoleLineSink()
        self.fallback = fallback or ConsoleLineSink()

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat(timespec='milliseconds')

    def log(self, message: str) -> None:
        """Write one timestamped line."""
        line = f"[{self._timestamp()}] {message}"
        logger.info(message)
        try:
            self.sink.write(line)
        except Exception as e:
            logger.warning(f"Migration log write failed, using console: {e}")
            try:
                self.fallback.write(line)
            except Exception as fallback_error:
                logger.error(f"Console log write failed: {fallback_error}")

    def error(self, message: str, error: Optional[BaseException] = None) -> None:
        if error is not None:
            message = f"{message}: {truncate_string(str(error) or type(error).__name__)}"
        self.log(f"ERROR: {message}")

    def warning(self, message: str) -> None:
        self.log(f"WARNING: {message}")

    def started(self, pipeline: str, source_table: str, target_table: str) -> None:
        self.log(f"=== Migration started ({pipeline}: {source_table} -> {target_table}) ===")

    def resumed(self, cursor: str) -> None:
        self.log(f"Resuming from lastId: {cursor}")

    def batch_started(self, batch_number: int, row_count: int) -> None:
        self.log(f"Batch {batch_number}: Processing {row_count} rows...")

    def batch_completed(self, outcome, totals, cursor: str, saved: bool) -> None:
        """
        Report one applied page.

        Args:
            outcome: BatchOutcome for the page
            totals: Running BatchOutcome totals
            cursor: New cursor after the page
            saved: Whether the checkpoint was persisted
        """
        self.log(f"  Updated {outcome.updated} rows in this batch")
        self.log(f"  Inserted {outcome.inserted} rows in this batch")
        self.log(f"  Total updated so far: {totals.updated}")
        self.log(f"  Total inserted so far: {totals.inserted}")
        if saved:
            self.log(f"  LastId saved: {cursor}")
        else:
            self.warning(f"Could not save lastId {cursor}; a restart may reprocess this batch")

    def completed(self, summary) -> None:
        self.log("No more rows to process. Process complete!")
        self.log("=== Final Summary ===")
        self.log(f"Total rows updated: {summary.totals.updated}")
        self.log(f"Total rows inserted: {summary.totals.inserted}")
        self.log(f"Total rows processed: {summary.totals.processed}")
        self.log(f"Total batches processed: {summary.batches}")
        self.log(f"Elapsed: {summary.elapsed_seconds:.2f}s")

    def checkpoint_cleared(self, cleared: bool) -> None:
        if cleared:
            self.log("LastId file cleared (process complete)")
        else:
            self.warning("LastId file could not be removed; the next run will resume past the end")

    def failed(self, error: BaseException, resume_cursor: Optional[str]) -> None:
        self.error("Error occurred", error)
        if resume_cursor:
            self.log(f"Progress saved. Resume from lastId: {resume_cursor}")
        else:
            self.log("No checkpoint saved yet. A restart will begin from the first row")

    def close(self) -> None:
        """Write the end banner and close the sink."""
        self.log("=== Migration ended ===")
        try:
            self.sink.close()
        except Exception as e:
            logger.warning(f"Error closing migration log: {e}")
