"""
Run Configuration Module

Collects the dictionary sync settings from environment variables into a
single immutable SyncConfig. Values passed as overrides (Airflow params,
command-line options) win over the environment.

Environment variables:
- DICTIONARY_SYNC_POSTGRES_CONN_ID: Airflow connection ID (default postgres_dictionary)
- DICTIONARY_SYNC_DSN: libpq DSN for standalone runs (default: PG* variables)
- DICTIONARY_SYNC_SOURCE_TABLE: scraped entries table (default dictionary_v2)
- DICTIONARY_SYNC_TARGET_TABLE: canonical dictionary table (default dictionary)
- DICTIONARY_SYNC_BATCH_SIZE: rows per page (default 1000)
- DICTIONARY_SYNC_PAUSE_MS: pause between batches in milliseconds (default 100)
- DICTIONARY_SYNC_CHECKPOINT_DIR: directory holding checkpoint files (default cwd)
- DICTIONARY_SYNC_LOG_FILE: migration log file (default <checkpoint dir>/dictionary_sync.log)
- DICTIONARY_SYNC_ENTRY_SOURCE: provenance 'source' for inserted rows (default wiktionary)
- DICTIONARY_SYNC_ENTRY_LANGUAGE: provenance 'language' for inserted rows (default english)
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional
import logging
import os

from dictionary_sync.utils import validate_sql_identifier

logger = logging.getLogger(__name__)

ENV_PREFIX = "DICTIONARY_SYNC_"

DEFAULT_BATCH_SIZE = 1000
DEFAULT_PAUSE_MS = 100

PIPELINES = ("upsert", "backfill")


def _env(name: str, default: str, environ: Mapping[str, str]) -> str:
    value = environ.get(ENV_PREFIX + name, '')
    return value.strip() if value.strip() else default


def _to_int(name: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name}: expected an integer, got {raw!r}")


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one dictionary sync run."""

    postgres_conn_id: str = "postgres_dictionary"
    dsn: str = ""
    source_table: str = "dictionary_v2"
    target_table: str = "dictionary"
    batch_size: int = DEFAULT_BATCH_SIZE
    pause_ms: int = DEFAULT_PAUSE_MS
    checkpoint_dir: str = "."
    log_file: Optional[str] = None
    entry_source: str = "wiktionary"
    entry_language: str = "english"

    def __post_init__(self):
        validate_sql_identifier(self.source_table, "source table")
        validate_sql_identifier(self.target_table, "target table")
        if self.source_table == self.target_table:
            raise ValueError("Source and target tables must differ")
        if self.batch_size <= 0:
            raise ValueError(f"Invalid batch size: must be positive (got {self.batch_size})")
        if self.pause_ms < 0:
            raise ValueError(f"Invalid pause: must not be negative (got {self.pause_ms}ms)")

    @property
    def pause_seconds(self) -> float:
        return self.pause_ms / 1000.0

    @property
    def log_path(self) -> str:
        if self.log_file:
            return self.log_file
        return os.path.join(self.checkpoint_dir, "dictionary_sync.log")

    def checkpoint_path(self, pipeline: str) -> str:
        """Each pipeline keeps its own cursor file."""
        if pipeline not in PIPELINES:
            raise ValueError(f"Unknown pipeline '{pipeline}': expected one of {', '.join(PIPELINES)}")
        return os.path.join(self.checkpoint_dir, f"{pipeline}_last_id.txt")

    def with_overrides(self, **overrides: Any) -> "SyncConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        for key in ("batch_size", "pause_ms"):
            if key in changes:
                changes[key] = _to_int(key, changes[key])
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SyncConfig":
        """
        Build the configuration from environment variables.

        Args:
            overrides: Values taking precedence over the environment (None values ignored)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated SyncConfig

        Raises:
            ValueError: If a value is malformed
        """
        environ = os.environ if environ is None else environ
        checkpoint_dir = _env("CHECKPOINT_DIR", ".", environ)

        config = cls(
            postgres_conn_id=_env("POSTGRES_CONN_ID", "postgres_dictionary", environ),
            dsn=_env("DSN", "", environ),
            source_table=_env("SOURCE_TABLE", "dictionary_v2", environ),
            target_table=_env("TARGET_TABLE", "dictionary", environ),
            batch_size=_to_int("DICTIONARY_SYNC_BATCH_SIZE", _env("BATCH_SIZE", str(DEFAULT_BATCH_SIZE), environ)),
            pause_ms=_to_int("DICTIONARY_SYNC_PAUSE_MS", _env("PAUSE_MS", str(DEFAULT_PAUSE_MS), environ)),
            checkpoint_dir=checkpoint_dir,
            log_file=_env("LOG_FILE", "", environ) or None,
            entry_source=_env("ENTRY_SOURCE", "wiktionary", environ),
            entry_language=_env("ENTRY_LANGUAGE", "english", environ),
        )

        if overrides:
            config = config.with_overrides(**overrides)

        logger.debug(
            f"Loaded config: {config.source_table} -> {config.target_table}, "
            f"batch_size={config.batch_size}, pause={config.pause_ms}ms"
        )
        return config
