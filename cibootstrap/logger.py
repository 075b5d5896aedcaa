"""
Structured logging system for cibootstrap.

Provides centralized logging with console and optional file output,
plus metrics tracking for the provisioning steps of a batch.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json
import copy


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks per-stage metrics for provisioning runs.
    """

    def __init__(
        self,
        name: str = "cibootstrap",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()

        self.metrics = {
            "api_calls": 0,
            "steps_attempted": 0,
            "steps_successful": 0,
            "steps_failed": 0,
            "errors_by_type": {},
            "stage_success_rate": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            self.add_file_handler(log_dir or Path("logs"))

    def add_file_handler(self, log_dir: Path):
        """Also write everything (DEBUG and up) to a dated file in log_dir."""
        log_dir.mkdir(parents=True, exist_ok=True)

        log_file = log_dir / f"cibootstrap_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Change the threshold of the logger and its console handlers."""
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
        self.logger.setLevel(numeric)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment the outbound HTTP request counter."""
        self.metrics["api_calls"] += 1

    def record_step_attempt(self, stage: str):
        """Record that a provisioning stage was started."""
        self.metrics["steps_attempted"] += 1
        if stage not in self.metrics["stage_success_rate"]:
            self.metrics["stage_success_rate"][stage] = {
                "attempts": 0,
                "successes": 0
            }
        self.metrics["stage_success_rate"][stage]["attempts"] += 1

    def record_step_success(self, stage: str):
        self.metrics["steps_successful"] += 1
        if stage in self.metrics["stage_success_rate"]:
            self.metrics["stage_success_rate"][stage]["successes"] += 1

    def record_step_failure(self, stage: str, error_type: str):
        self.metrics["steps_failed"] += 1

        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics with success rates filled in."""
        metrics_copy = copy.deepcopy(self.metrics)
        for stage, stats in metrics_copy["stage_success_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["steps_attempted"]
        total_successes = metrics["steps_successful"]
        overall_rate = 0
        if total_attempts > 0:
            overall_rate = round(total_successes / total_attempts * 100, 1)

        self.info("=== Provisioning Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(f"Steps: {total_successes}/{total_attempts} ({overall_rate}% success)")

        if metrics["stage_success_rate"]:
            self.info("Stage Success Rates:")
            for stage, stats in metrics["stage_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {stage}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "cibootstrap",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
