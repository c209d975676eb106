# demoq/workers/session.py
from PySide6.QtCore import QObject, Signal

from ..models.job import Job
from ..models.progress import LogEntry, LogLevel, ProgressAggregator
from ..parsers.ndjson import ProgressEvent, ReadyEvent


class ParseSession(QObject):
    """
    Event channel for one job.

    While bound, it listens to the supervisor for its own job only, folds the
    events into a ProgressAggregator and re-emits the result for the UI.
    `close()` drops the supervisor connections; a new job always gets a new
    session, so nothing from a previous demo leaks into the next one.
    """

    progress_changed = Signal(object)  # ProgressSnapshot
    log_appended = Signal(object)      # LogEntry
    api_ready = Signal(int)

    def __init__(self, job: Job, log_capacity: int = 100, parent=None):
        super().__init__(parent)
        self.job = job
        self.aggregator = ProgressAggregator(log_capacity)
        self._connections: list = []

    @property
    def failed(self) -> bool:
        return self.aggregator.failed

    @property
    def is_bound(self) -> bool:
        return bool(self._connections)

    def bind(self, supervisor) -> "ParseSession":
        if self._connections:
            return self
        self._connections = [
            (supervisor.event_decoded, self._on_event),
            (supervisor.stderr_line, self._on_stderr),
        ]
        for sig, slot in self._connections:
            sig.connect(slot)
        return self

    def close(self):
        for sig, slot in self._connections:
            sig.disconnect(slot)
        self._connections = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def log(self, level: LogLevel | str, message: str) -> LogEntry:
        entry = self.aggregator.log(level, message)
        self.log_appended.emit(entry)
        return entry

    def logs(self) -> list[LogEntry]:
        return self.aggregator.logs.entries()

    def _on_event(self, job: Job, event):
        if job is not self.job:
            return
        entry = self.aggregator.apply(event)
        if isinstance(event, ProgressEvent):
            self.progress_changed.emit(self.aggregator.snapshot)
        elif isinstance(event, ReadyEvent) and event.port is not None:
            self.api_ready.emit(event.port)
        if entry is not None:
            self.log_appended.emit(entry)

    def _on_stderr(self, job: Job, line: str):
        if job is self.job:
            self.log(LogLevel.INFO, line)
