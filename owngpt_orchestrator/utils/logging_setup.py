"""
Logging setup for the OwnGPT Orchestrator.

Configures UTC ISO timestamps, a console handler and an optional rotating
log file, and quiets uvicorn's access log for health checks.

Usage:
    from owngpt_orchestrator.utils import setup_logging

    setup_logging(log_dir="/var/log/owngpt", level=logging.INFO)
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from datetime import datetime, timezone
from typing import List, Optional


class UTCFormatter(logging.Formatter):
    """Formatter that uses UTC timestamps in ISO format."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat()


class HealthCheckFilter(logging.Filter):
    """
    Drops uvicorn access-log records for health endpoints.

    The frontend polls /health continuously while a model is being built,
    which would otherwise drown the lifecycle messages.
    """

    def __init__(self, endpoints: Optional[List[str]] = None):
        super().__init__()
        self.endpoints = endpoints or ["/health"]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for endpoint in self.endpoints:
            # Uvicorn access log format: '127.0.0.1:port - "GET /health HTTP/1.1" 200 OK'
            if f'"GET {endpoint} ' in message or f'GET {endpoint} ' in message:
                return False
        return True


def install_health_check_filter(endpoints: Optional[List[str]] = None) -> None:
    """Install the health check filter on uvicorn's access logger."""
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter(endpoints))


def setup_logging(
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    service_name: str = "owngpt-orchestrator",
    max_log_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Configure root logging.

    Args:
        log_dir: Directory for the rotating log file. Console only if None.
        level: Logging level (default: INFO)
        service_name: Used in the format string and the log file name
        max_log_bytes: Max size of the log file before rotation
        backup_count: Number of rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(level)

    formatter = UTCFormatter(f"%(asctime)s [{service_name}] %(levelname)s:%(name)s:%(message)s")

    # Remove existing handlers to avoid double-logging
    for h in list(root.handlers):
        root.removeHandler(h)

    stream_h = logging.StreamHandler()
    stream_h.setFormatter(formatter)
    stream_h.setLevel(level)
    root.addHandler(stream_h)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_h = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{service_name}.log"),
            maxBytes=max_log_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_h.setFormatter(formatter)
        file_h.setLevel(level)
        root.addHandler(file_h)


__all__ = [
    "setup_logging",
    "UTCFormatter",
    "HealthCheckFilter",
    "install_health_check_filter",
]
