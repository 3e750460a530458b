"""
Structured logging configuration for cargo-prefetch.

Emits machine-readable JSON events describing what was extracted, dropped,
collected and written, so CI logs show exactly which crates a prefetch
project declares.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for prefetch events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"cargo_prefetch.{name}")
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False
            self.logger.setLevel(logging.WARNING)

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        output_dir: Optional[str] = None,
        manifest_count: Optional[int] = None,
    ) -> None:
        """Set run context attached to every event."""
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if output_dir:
            self.run_context["output_dir"] = output_dir
        if manifest_count is not None:
            self.run_context["manifest_count"] = manifest_count

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


# Global logger instances
_extractor_logger = EventLogger("extractor")
_aggregate_logger = EventLogger("aggregate")
_materializer_logger = EventLogger("materializer")

_ALL_LOGGERS = (_extractor_logger, _aggregate_logger, _materializer_logger)


def get_extractor_logger() -> EventLogger:
    return _extractor_logger


def get_aggregate_logger() -> EventLogger:
    return _aggregate_logger


def get_materializer_logger() -> EventLogger:
    return _materializer_logger


def log_manifest_extracted(
    file_path: str, dependency_count: int, dev_dependency_count: int
) -> None:
    """Log a successful manifest extraction."""
    get_extractor_logger().info(
        "manifest_extracted",
        file_path=file_path,
        dependency_count=dependency_count,
        dev_dependency_count=dev_dependency_count,
    )


def log_dependency_dropped(
    file_path: str, package_name: str, version: Any, reason: str
) -> None:
    """Log a dependency entry filtered out of the extraction result."""
    get_extractor_logger().debug(
        "dependency_dropped",
        file_path=file_path,
        package_name=package_name,
        version=version,
        reason=reason,
    )


def log_crates_collected(manifest_count: int, crate_count: int) -> None:
    get_aggregate_logger().info(
        "crates_collected", manifest_count=manifest_count, crate_count=crate_count
    )


def log_project_written(output_dir: str, crate_count: int, atomic: bool) -> None:
    get_materializer_logger().info(
        "project_written", output_dir=output_dir, crate_count=crate_count, atomic=atomic
    )


def log_run_summary(error_stats: Dict[str, int]) -> None:
    """Log the error handler counts of a finished run."""
    get_aggregate_logger().info("run_summary", error_counts=error_stats)


def set_run_context(
    run_id: Optional[str] = None,
    output_dir: Optional[str] = None,
    manifest_count: Optional[int] = None,
) -> None:
    """Set global run context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, output_dir, manifest_count)


def clear_run_context() -> None:
    """Clear global run context."""
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING") -> None:
    """Set the level of every event logger."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
