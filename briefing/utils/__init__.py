"""Utility modules for the brief engine."""

from briefing.utils.logging import (
    get_logger,
    get_log_buffer,
    LogLevel,
    LogEntry,
    LogBuffer,
    AppLogger,
    configure_logging,
    scrub_metadata,
    pipeline_logger,
    agent_logger,
    scoring_logger,
    refinement_logger,
    credit_logger,
    api_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "LogLevel",
    "LogEntry",
    "LogBuffer",
    "AppLogger",
    "configure_logging",
    "scrub_metadata",
    "pipeline_logger",
    "agent_logger",
    "scoring_logger",
    "refinement_logger",
    "credit_logger",
    "api_logger",
]
