"""Logging and export progress tracking utilities."""
from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

ROOT_LOGGER_NAME = "gaussian_capture"


class JsonFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record, for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": record.name,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            log_entry.update(context)

        return json.dumps(log_entry)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        if self.use_color:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:8s}{self.RESET}"
        else:
            level = f"{record.levelname:8s}"

        msg = f"[{timestamp}] {level} {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class _ContextFilter(logging.Filter):
    """Attach a fixed context dict to every record passing through a handler."""

    def __init__(self, context: Dict[str, Any]):
        super().__init__()
        self.context = context

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = self.context
        return True


def setup_logging(
    level: int = logging.INFO,
    run_name: Optional[str] = None,
    json_logs: bool = False,
    stream=None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Logging level.
        run_name: Optional run name added to structured records.
        json_logs: Emit JSON lines instead of coloured console output.
        stream: Output stream (defaults to stderr).

    Returns:
        The configured ``gaussian_capture`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    output = stream if stream is not None else sys.stderr
    handler = logging.StreamHandler(output)
    handler.setLevel(level)

    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_color=output.isatty()))

    if run_name:
        handler.addFilter(_ContextFilter({"run_name": run_name}))

    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (will be prefixed with 'gaussian_capture.').

    Returns:
        Logger instance.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


@dataclass
class StageMetrics:
    """Metrics for a single export stage."""
    stage_name: str
    start_time: float
    end_time: Optional[float] = None
    items_total: int = 0
    items_processed: int = 0
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def progress_percent(self) -> float:
        if self.items_total == 0:
            return 0.0
        return (self.items_processed / self.items_total) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_name": self.stage_name,
            "duration_seconds": self.duration_seconds,
            "items_total": self.items_total,
            "items_processed": self.items_processed,
            "progress_percent": self.progress_percent,
            "errors": self.errors,
            "metadata": self.metadata,
        }


class ProgressTracker:
    """Track progress across the stages of a dataset export.

    Stages are opened with :meth:`stage`; records written inside a stage are
    counted with :meth:`update`. The tracker never swallows exceptions, it
    records them on the stage and re-raises.
    """

    def __init__(self, run_name: str, logger: Optional[logging.Logger] = None):
        self.run_name = run_name
        self.logger = logger or get_logger("progress")

        self.stages: List[StageMetrics] = []
        self.current_stage: Optional[StageMetrics] = None
        self.start_time = time.time()
        self.metadata: Dict[str, Any] = {}

    @contextmanager
    def stage(self, name: str, total_items: int = 0) -> Iterator[StageMetrics]:
        """Context manager for tracking one stage.

        Args:
            name: Stage name for logging.
            total_items: Expected number of items to process.

        Yields:
            StageMetrics object for the stage.
        """
        stage_metrics = StageMetrics(
            stage_name=name,
            start_time=time.time(),
            items_total=total_items,
        )
        self.current_stage = stage_metrics

        self.logger.debug(f"Starting stage: {name}")

        try:
            yield stage_metrics
        except Exception as e:
            stage_metrics.errors.append(str(e))
            self.logger.error(f"Stage {name} failed: {e}")
            raise
        finally:
            stage_metrics.end_time = time.time()
            self.logger.info(
                f"Completed stage: {name} ({stage_metrics.items_processed} items in "
                f"{stage_metrics.duration_seconds:.2f}s)"
            )
            self.stages.append(stage_metrics)
            self.current_stage = None

    def update(self, items_processed: int = 1, **metadata) -> None:
        """Count processed items on the current stage."""
        if self.current_stage is None:
            return

        self.current_stage.items_processed += items_processed
        self.current_stage.metadata.update(metadata)

        total = self.current_stage.items_total
        if total > 0 and self.current_stage.items_processed % max(1, total // 10) == 0:
            self.logger.debug(
                f"  Progress: {self.current_stage.items_processed}/{total} "
                f"({self.current_stage.progress_percent:.1f}%)"
            )

    def log_metric(self, name: str, value: Any) -> None:
        """Record a named metric on the current stage, or the run if none is open."""
        if self.current_stage is not None:
            self.current_stage.metadata[name] = value
        else:
            self.metadata[name] = value

        self.logger.info(f"Metric: {name} = {value}")

    def log_error(self, message: str, exception: Optional[Exception] = None) -> None:
        full_message = message
        if exception:
            full_message = f"{message}: {exception}"

        if self.current_stage is not None:
            self.current_stage.errors.append(full_message)

        self.logger.error(full_message)

    def generate_report(self) -> Dict[str, Any]:
        """Summarize the run.

        Returns:
            Dictionary containing run metrics and stage summaries.
        """
        return {
            "run_name": self.run_name,
            "total_duration_seconds": time.time() - self.start_time,
            "stages": [s.to_dict() for s in self.stages],
            "metadata": self.metadata,
            "success": all(len(s.errors) == 0 for s in self.stages),
            "total_errors": sum(len(s.errors) for s in self.stages),
        }

    def save_report(self, path: Path) -> Path:
        report = self.generate_report()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(report, f, indent=2)
        self.logger.info(f"Saved progress report to: {path}")
        return path
