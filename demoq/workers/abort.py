# demoq/workers/abort.py
import logging
from enum import Enum

from PySide6.QtCore import QObject, Signal

from ..models.job import ExitResult, Job
from ..models.progress import LogLevel
from ..utils.artifacts import MatchArtifactStore
from ..utils.paths import match_id_from_path
from .job_queue import JobQueue, QueueState
from .parser_process import ParserSupervisor

logger = logging.getLogger(__name__)


class AbortState(str, Enum):
    IDLE = "idle"
    CONFIRM_PENDING = "confirm_pending"
    ABORTING = "aborting"


class AbortCoordinator(QObject):
    """
    User-initiated cancellation of a running parse session.

    Aborting throws away work, so a stop request only asks for confirmation
    (`confirm_requested`); `confirm()` does the actual work: stop the parser,
    wait for it to exit, then delete the partial match database it was
    writing. A failed delete is reported but never keeps the session open.
    """

    confirm_requested = Signal(object)  # job being parsed, or None between demos
    state_changed = Signal(str)
    artifact_deleted = Signal(str)      # match id
    session_closed = Signal()

    def __init__(self, queue: JobQueue, supervisor: ParserSupervisor, store: MatchArtifactStore, parent=None):
        super().__init__(parent)
        self.queue = queue
        self.supervisor = supervisor
        self.store = store
        self._state = AbortState.IDLE
        self._job: Job | None = None
        self._target: str | None = None
        self._waiting = False

    @property
    def state(self) -> AbortState:
        return self._state

    @property
    def target_match_id(self) -> str | None:
        return self._target

    def _set_state(self, state: AbortState):
        if state != self._state:
            self._state = state
            self.state_changed.emit(state.value)

    def request_stop(self) -> bool:
        if self._state != AbortState.IDLE or self.queue.state != QueueState.RUNNING:
            return False
        self._set_state(AbortState.CONFIRM_PENDING)
        self.confirm_requested.emit(self.queue.running_job())
        return True

    def cancel(self) -> None:
        if self._state == AbortState.CONFIRM_PENDING:
            self._set_state(AbortState.IDLE)

    def confirm(self) -> None:
        if self._state != AbortState.CONFIRM_PENDING:
            return
        self._set_state(AbortState.ABORTING)

        job = self.queue.running_job()
        self._job = job
        # Before the parser reported its match id, use the one it derives from the file name.
        self._target = (job.match_id or match_id_from_path(job.file_path)) if job else None
        self.queue.abort()

        if job is not None and self.supervisor.active_job is job:
            job.stop_requested = True
            self._waiting = True
            self.supervisor.job_exited.connect(self._on_job_exited)
            self.supervisor.stop()
        else:
            self._compensate()

    def _on_job_exited(self, job: Job, result: ExitResult):
        if job is not self._job or not self._waiting:
            return
        self._waiting = False
        self.supervisor.job_exited.disconnect(self._on_job_exited)
        self._compensate()

    def _compensate(self):
        session = self.queue.session
        if self._target:
            try:
                if self.store.delete(self._target):
                    self.artifact_deleted.emit(self._target)
                    if session is not None:
                        session.log(LogLevel.INFO, "Deleted incomplete match database")
            except (OSError, ValueError) as e:
                logger.warning("Failed to delete match %s: %s", self._target, e)
                if session is not None:
                    session.log(LogLevel.ERROR, f"Failed to delete database: {e}")

        self.queue.close()
        self._job = None
        self._set_state(AbortState.IDLE)
        self.session_closed.emit()
