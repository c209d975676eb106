# demoq/workers/job_queue.py
import logging
from collections import deque
from enum import Enum
from typing import Iterable

from PySide6.QtCore import QObject, QTimer, Signal

from ..models.job import ExitKind, ExitResult, Job, JobStatus
from ..models.progress import LogLevel
from .parser_process import ParserError, ParserSupervisor, StartResult
from .session import ParseSession

logger = logging.getLogger(__name__)


class QueueState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    HALTED = "halted"
    COMPLETE = "complete"
    ABORTED = "aborted"


class QueueBusyError(RuntimeError):
    pass


class JobQueue(QObject):
    """
    Runs the demos of one parsing session strictly in submission order.

    The next demo only starts after the current one succeeded. Any other end
    state halts the queue and leaves the session open until the user retries
    or dismisses it. A single demo is simply a queue of length one.
    """

    session_started = Signal(object)   # ParseSession
    job_started = Signal(object, object)
    job_finished = Signal(object, object)
    halted = Signal(object, str)       # job, message ("" when nothing to report)
    completed = Signal()
    closed = Signal()
    state_changed = Signal(str)

    def __init__(self, supervisor: ParserSupervisor, settings: dict, parent=None):
        super().__init__(parent)
        self.supervisor = supervisor
        self.settings = settings
        self._jobs: list[Job] = []
        self._pending: deque[Job] = deque()
        self._current: Job | None = None
        self._session: ParseSession | None = None
        self._state = QueueState.IDLE

        self._advance_timer = QTimer(self)
        self._advance_timer.setSingleShot(True)
        self._advance_timer.timeout.connect(self._start_next)

        supervisor.job_started.connect(self._on_job_started)
        supervisor.job_exited.connect(self._on_job_exited)

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs)

    @property
    def pending(self) -> list[Job]:
        return list(self._pending)

    @property
    def current(self) -> Job | None:
        return self._current

    @property
    def session(self) -> ParseSession | None:
        return self._session

    @property
    def total(self) -> int:
        return len(self._jobs)

    @property
    def done(self) -> int:
        return sum(1 for j in self._jobs if j.status == JobStatus.SUCCEEDED)

    def running_job(self) -> Job | None:
        if self._current is not None and self._current.status == JobStatus.RUNNING:
            return self._current
        return None

    def submit(self, paths: Iterable) -> list[Job]:
        if self._state == QueueState.RUNNING:
            raise QueueBusyError("A parsing session is already running")
        self._drop_session()
        self._jobs = [Job(file_path=str(p), index=i) for i, p in enumerate(paths)]
        self._pending = deque(self._jobs)
        self._current = None
        self._set_state(QueueState.IDLE)
        return list(self._jobs)

    def start(self) -> None:
        if self._state == QueueState.RUNNING:
            raise QueueBusyError("A parsing session is already running")
        if not self._pending:
            raise ValueError("No demos queued")
        self._set_state(QueueState.RUNNING)
        self._start_next()

    def retry(self) -> bool:
        """Run the halted demo again; the rest of the queue follows if it succeeds."""
        if self._state != QueueState.HALTED or self._current is None:
            return False
        job = self._current
        job.reset()
        self._pending.appendleft(job)
        self._set_state(QueueState.RUNNING)
        self._start_next()
        return True

    def abort(self) -> None:
        """Stop advancing; demos that never started end as aborted."""
        self._advance_timer.stop()
        for job in self._pending:
            job.status = JobStatus.ABORTED
        self._pending.clear()
        self._set_state(QueueState.ABORTED)

    def close(self) -> None:
        if self.running_job() is not None:
            raise QueueBusyError("Stop the parser before closing the session")
        self._advance_timer.stop()
        self._drop_session()
        self._jobs, self._pending, self._current = [], deque(), None
        self._set_state(QueueState.IDLE)
        self.closed.emit()

    # --- internals --------------------------------------------------------

    def _set_state(self, state: QueueState):
        if state != self._state:
            logger.debug("Queue state %s -> %s", self._state.value, state.value)
            self._state = state
            self.state_changed.emit(state.value)

    def _drop_session(self):
        if self._session is not None:
            self._session.close()
            self._session.deleteLater()
            self._session = None

    def _open_session(self, job: Job) -> ParseSession:
        self._drop_session()
        self._session = ParseSession(job, int(self.settings.get("log_capacity", 100)), self)
        self._session.bind(self.supervisor)
        self.session_started.emit(self._session)
        return self._session

    def _start_next(self):
        if self._state != QueueState.RUNNING or not self._pending:
            return
        job = self._pending.popleft()
        self._current = job
        session = self._open_session(job)

        if self.total > 1:
            session.log(LogLevel.INFO, f"Starting parse {job.index + 1} of {self.total}: {job.name}")
        else:
            session.log(LogLevel.INFO, f"Starting parse: {job.file_path}")

        try:
            self.supervisor.start(job)
        except (ParserError, OSError) as e:
            job.status = JobStatus.FAILED
            message = f"Failed to start parser: {e}"
            logger.error(message)
            session.log(LogLevel.ERROR, message)
            session.close()
            self._halt(job, message)

    def _schedule_advance(self):
        delay = int(self.settings.get("advance_delay_ms", 500))
        if delay <= 0:
            self._start_next()
        else:
            self._advance_timer.start(delay)

    def _halt(self, job: Job, message: str):
        self._set_state(QueueState.HALTED)
        self.halted.emit(job, message)

    def _on_job_started(self, job: Job, result: StartResult):
        if job is not self._current:
            return
        if self._session is not None:
            self._session.log(LogLevel.INFO, f"Match ID: {result.match_id}, DB: {result.db_path}")
        self.job_started.emit(job, result)

    def _on_job_exited(self, job: Job, result: ExitResult):
        if job is not self._current:
            logger.debug("Ignoring exit of %s, not the current job", job.name)
            return

        if self._session is not None:
            self._session.log(LogLevel.ERROR if result.kind.is_error else LogLevel.INFO, result.message)
            self._session.close()
        self.job_finished.emit(job, result)

        if self._state == QueueState.ABORTED:
            return
        if result.kind is ExitKind.ABORTED:
            self.abort()
        elif result.kind is ExitKind.SUCCEEDED:
            if self._pending:
                self._schedule_advance()
            else:
                self._set_state(QueueState.COMPLETE)
                self.completed.emit()
        elif result.kind is ExitKind.STALE:
            self._halt(job, "")
        else:
            self._halt(job, result.message)
