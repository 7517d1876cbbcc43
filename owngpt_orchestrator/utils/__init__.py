"""Shared helpers for the orchestrator."""

from .logging_setup import (
    HealthCheckFilter,
    UTCFormatter,
    install_health_check_filter,
    setup_logging,
)

__all__ = [
    "HealthCheckFilter",
    "UTCFormatter",
    "install_health_check_filter",
    "setup_logging",
]
