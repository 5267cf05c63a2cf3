"""
Checkpoint Module

Persists the last fully applied cursor so an interrupted sync resumes where
it left off. The checkpoint is a single text file holding the cursor value
and nothing else. A missing or empty file means "start from the beginning".

None of the methods raise: read problems degrade to "no checkpoint" and
write problems are logged as warnings, so checkpoint I/O can never abort a
sync. A failed save means a later restart may reprocess one or more pages,
which both reconciliation rules tolerate.
"""

from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)


class CheckpointStore:
    """File-backed store for a single cursor value."""

    def __init__(self, path: str):
        """
        Initialize the checkpoint store.

        Args:
            path: Location of the checkpoint file
        """
        self.path = path

    @property
    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Optional[str]:
        """
        Read the persisted cursor.

        Returns:
            The cursor string, or None if the file is missing, empty or unreadable
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                cursor = f.read().strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read checkpoint {self.path}, starting from scratch: {e}")
            return None

        return cursor or None

    def save(self, cursor: str) -> bool:
        """
        Overwrite the checkpoint with a new cursor.

        The value is written to a temporary sibling file and moved into place,
        so a crash mid-write leaves the previous checkpoint intact.

        Args:
            cursor: Cursor of the last row of the page just applied

        Returns:
            True if the cursor was persisted, False otherwise
        """
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(cursor)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            return True
        except OSError as e:
            logger.warning(f"Could not save checkpoint to {self.path}: {e}")
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            return False

    def clear(self) -> bool:
        """
        Remove the checkpoint after a completed run.

        Returns:
            True if no checkpoint remains, False if removal failed
        """
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Could not clear checkpoint {self.path}: {e}")
            return False
        return True
