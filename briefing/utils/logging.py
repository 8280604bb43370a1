"""
Logging for the brief engine.

Every AppLogger writes through the standard ``logging`` module and also keeps
a copy in a bounded in-memory ring, which the API exposes at ``/api/logs``.
Entries remember the investigation they belong to (taken from the
``investigation_id`` metadata key) so one run's trail can be pulled out of
the interleaved stream of concurrent generations.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Deque, Dict, List, Optional


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def stdlib_level(self) -> int:
        return logging.getLevelName(self.value.upper())

    @property
    def is_problem(self) -> bool:
        return self in (LogLevel.WARNING, LogLevel.ERROR, LogLevel.CRITICAL)


# Metadata keys whose values are never stored or printed.
_SECRET_MARKERS = ("key", "token", "secret", "password", "authorization")
_MAX_VALUE_CHARS = 300


def scrub_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential-like keys and clip long string values."""
    cleaned: Dict[str, Any] = {}
    for name, value in metadata.items():
        lowered = name.lower()
        if any(marker in lowered for marker in _SECRET_MARKERS) and lowered != "investigation_id":
            cleaned[name] = "***"
        elif isinstance(value, str) and len(value) > _MAX_VALUE_CHARS:
            cleaned[name] = value[:_MAX_VALUE_CHARS] + "..."
        else:
            cleaned[name] = value
    return cleaned


@dataclass
class LogEntry:
    level: LogLevel
    message: str
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def investigation_id(self) -> Optional[str]:
        value = self.metadata.get("investigation_id")
        return str(value) if value is not None else None

    def matches(
        self,
        level: Optional[LogLevel],
        source: Optional[str],
        investigation_id: Optional[str],
    ) -> bool:
        if level is not None and self.level != level:
            return False
        if source is not None and self.source != source:
            return False
        if investigation_id is not None and self.investigation_id != investigation_id:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "source": self.source,
            "message": self.message,
            "investigation_id": self.investigation_id,
            "metadata": self.metadata,
        }


class LogBuffer:
    """
    Bounded ring of recent entries shared by every logger in the process.

    Lifetime totals survive eviction, so ``get_stats`` still reports how many
    problems happened after the ring has wrapped.
    """

    def __init__(self, max_size: int = 1000):
        self.capacity = max_size
        self._entries: Deque[LogEntry] = deque(maxlen=max_size)
        self._lock = Lock()
        self._lifetime: Counter = Counter()

    def add(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            self._lifetime[entry.level.value] += 1

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        investigation_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Newest-first entries matching every given filter."""
        with self._lock:
            snapshot = list(self._entries)

        selected: List[Dict[str, Any]] = []
        for entry in reversed(snapshot):
            if len(selected) >= limit:
                break
            if entry.matches(level, source, investigation_id):
                selected.append(entry.to_dict())
        return selected

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            held = Counter(entry.level.value for entry in self._entries)
            sources = Counter(entry.source for entry in self._entries)
            lifetime = dict(self._lifetime)
            size = len(self._entries)

        return {
            "total": size,
            "capacity": self.capacity,
            "by_level": dict(held),
            "by_source": dict(sources),
            "error_count": lifetime.get("error", 0) + lifetime.get("critical", 0),
            "warning_count": lifetime.get("warning", 0),
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._lifetime.clear()


_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    return _log_buffer


class AppLogger:
    """
    Logger bound to one source name (``pipeline``, ``credits``...).

    Keyword arguments become entry metadata. Pass exception class names, not
    exception text: provider errors can echo request headers.
    """

    def __init__(self, source: str, buffer: Optional[LogBuffer] = None):
        self.source = source
        self._buffer = buffer
        self._logger = logging.getLogger(f"briefing.{source}")

    @property
    def buffer(self) -> LogBuffer:
        return self._buffer if self._buffer is not None else _log_buffer

    def log(self, level: LogLevel, message: str, **metadata: Any) -> None:
        cleaned = scrub_metadata(metadata) if metadata else {}
        self.buffer.add(LogEntry(level, message, self.source, cleaned))

        if cleaned:
            details = " ".join(f"{name}={value}" for name, value in cleaned.items())
            self._logger.log(level.stdlib_level, "%s [%s]", message, details)
        else:
            self._logger.log(level.stdlib_level, "%s", message)

    def debug(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.DEBUG, message, **metadata)

    def info(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.INFO, message, **metadata)

    def warning(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.WARNING, message, **metadata)

    def error(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.ERROR, message, **metadata)

    def critical(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.CRITICAL, message, **metadata)


def get_logger(source: str) -> AppLogger:
    return AppLogger(source)


def configure_logging(level: str = "INFO") -> None:
    """Route ``briefing.*`` records to stderr at the configured level."""
    root = logging.getLogger("briefing")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)


pipeline_logger = AppLogger("pipeline")
agent_logger = AppLogger("agents")
scoring_logger = AppLogger("scoring")
refinement_logger = AppLogger("refinement")
credit_logger = AppLogger("credits")
api_logger = AppLogger("api")
