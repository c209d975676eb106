# demoq/models/progress.py
import itertools
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator

from ..parsers.ndjson import ErrorEvent, LogEvent, ParserEvent, ProgressEvent, ReadyEvent

DEFAULT_STAGE = "parsing"

# Shared across buffers so ids stay monotonic when a new session replaces an old one.
_log_ids = itertools.count(1)


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    PROGRESS = "progress"

    @classmethod
    def coerce(cls, value: str | None) -> "LogLevel":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.INFO


@dataclass(frozen=True)
class ProgressSnapshot:
    stage: str = DEFAULT_STAGE
    tick: int = 0
    round: int = 0
    fraction: float = 0.0

    @property
    def percent(self) -> float:
        return display_percent(self.fraction)


@dataclass(frozen=True)
class LogEntry:
    level: LogLevel
    message: str
    id: int = field(default_factory=lambda: next(_log_ids))
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {self.level.value.upper()}: {self.message}"


def _clamp01(v: float) -> float:
    if not math.isfinite(v):
        return 0.0
    if v < 0:
        return 0.0
    if v > 1:
        return 1.0
    return v


def display_percent(fraction: float | None) -> float:
    """Percent for display, always within [0, 100], one decimal."""
    return round(_clamp01(fraction or 0.0) * 100, 1)


def format_logs(entries: Iterable[LogEntry]) -> str:
    return "\n".join(e.format() for e in entries)


class LogBuffer:
    """Fixed-capacity log history; the oldest entries fall off the front."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"log capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    def append(self, level: LogLevel | str, message: str) -> LogEntry:
        entry = LogEntry(level=LogLevel.coerce(level), message=message)
        self._entries.append(entry)
        return entry

    def clear(self):
        self._entries.clear()

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))


class ProgressAggregator:
    """
    Folds decoded parser events into the state a job session shows: the latest
    progress snapshot, a bounded log, whether the parser reported an error,
    and the port of the query side-channel if one was announced.
    """

    def __init__(self, log_capacity: int = 100):
        self.logs = LogBuffer(log_capacity)
        self.snapshot: ProgressSnapshot | None = None
        self.failed = False
        self.error: str | None = None
        self.api_port: int | None = None

    @property
    def percent(self) -> float:
        return self.snapshot.percent if self.snapshot else 0.0

    def log(self, level: LogLevel | str, message: str) -> LogEntry:
        return self.logs.append(level, message)

    def apply(self, event: ParserEvent) -> LogEntry | None:
        if isinstance(event, ProgressEvent):
            self.snapshot = ProgressSnapshot(
                stage=event.stage or DEFAULT_STAGE,
                tick=event.tick or 0,
                round=event.round or 0,
                fraction=_clamp01(event.fraction or 0.0),
            )
            s = self.snapshot
            return self.log(LogLevel.PROGRESS, f"Progress: {s.stage} - Round {s.round}, Tick {s.tick}")

        if isinstance(event, LogEvent):
            return self.log(LogLevel.coerce(event.level), event.message or "")

        if isinstance(event, ErrorEvent):
            msg = event.message or "Unknown error"
            self.failed, self.error = True, msg
            return self.log(LogLevel.ERROR, msg)

        if isinstance(event, ReadyEvent):
            self.api_port = event.port
            return self.log(LogLevel.INFO, f"API server ready on port {event.port}")

        return None
