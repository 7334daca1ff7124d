from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "DBCLONE_REPAIR_LOG_DIR",
        Path.home() / ".local" / "state" / "dbclone-repair" / "logs",
    )
)


def _should_log_command_output(record) -> bool:
    """Filter raw subprocess output - only show in TRACE mode."""
    message = record["message"].lower()
    tags = record["extra"].get("tags", [])

    # Always log errors
    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "command" in tags:
        if message.startswith("stdout:") or message.startswith("stderr:"):
            return record["level"].no <= logger.level("TRACE").no

    return True


def _should_log_sql_text(record) -> bool:
    """Filter SQL statement echo logs - these are noisy and not useful."""
    message = record["message"].lower()
    tags = record["extra"].get("tags", [])

    if "sql" in tags and message.startswith("executing"):
        return record["level"].no <= logger.level("TRACE").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_command_output(record) and _should_log_sql_text(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Run aborted, invalid invocation
    - SUCCESS/INFO: Per-clone outcomes, host progress
    - DEBUG: Probe results, discovered files, command execution
    - TRACE: Ultra-verbose (raw command output, SQL text)

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - trace.log: TRACE+ events when --trace is enabled (1 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/dbclone-repair/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - User-facing, filtered
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<blue>{extra[job_id]: <15}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <15} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Trace Log - Ultra-verbose (TRACE only, when trace=True)
    if trace:
        logger.add(
            log_dir / "trace.log",
            level="TRACE",
            rotation="50 MB",
            retention="1 day",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <15} | "
                "{message}"
            ),
        )

    # SINK 5: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["repair", "mount"])
        source: Source component (e.g., "repair", "store", "sql")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a whole run with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "repair")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("repair", hosts=["sql01"]) as log:
            log.debug("Fetching clone plans")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source, tags, and context for the domain.
    """

    @staticmethod
    def for_repair(job_id: str | None = None, **details) -> Logger:
        """Logger for repair runs."""
        if job_id is None:
            job_id = f"repair-{uuid.uuid4().hex[:8]}"
        return logger.bind(
            job_id=job_id, source="repair", tags=["repair", "clone"], **details
        )

    @staticmethod
    def for_store() -> Logger:
        """Logger for the clone metadata store."""
        return logger.bind(source="store", tags=["store", "metadata"])

    @staticmethod
    def for_mount() -> Logger:
        """Logger for virtual disk mounting."""
        return logger.bind(source="mount", tags=["mount", "command"])

    @staticmethod
    def for_sql(sql_instance: str | None = None) -> Logger:
        """Logger for database server probing and attach."""
        return logger.bind(
            source="sql", tags=["sql"], sql_instance=sql_instance or "-"
        )

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config)."""
        return logger.bind(source="system", tags=["system"])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging repair events with consistent structure
    and fields. Event fields are bound, never passed as format arguments.
    """

    @staticmethod
    def log_clone_outcome(log: Logger, outcome, **extra) -> None:
        """Log the terminal outcome of one clone repair."""
        level = "WARNING" if outcome.is_failure else "INFO"
        message = f"{outcome.host_name}: {outcome.label()} -> {outcome.status.value}"
        if outcome.message:
            message += f" ({outcome.message})"
        log.bind(
            event_type="clone_repair_outcome",
            host_name=outcome.host_name,
            clone_location=outcome.clone_location,
            sql_instance=outcome.sql_instance,
            database_name=outcome.database_name,
            status=outcome.status.value,
            **extra,
        ).log(level, message)

    @staticmethod
    def log_host_fetch_failed(log: Logger, host_name: str, error: str, **extra) -> None:
        """Log a host whose clone plans could not be fetched."""
        log.bind(
            event_type="host_fetch_failed", host_name=host_name, error=error, **extra
        ).error(f"Could not retrieve clones for host {host_name}: {error}")

    @staticmethod
    def log_run_summary(log: Logger, report, **extra) -> None:
        """Log the aggregate counts for a finished run."""
        log.bind(
            event_type="repair_summary",
            counts=report.counts(),
            failed_hosts=report.failed_hosts(),
            **extra,
        ).info(report.summary_line())
