# demoq/workers/parser_process.py
import logging
import signal
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from PySide6.QtCore import QObject, QProcess, QTimer, Signal

from ..models.job import ExitKind, ExitOutcome, ExitResult, Job, JobStatus, classify_exit
from ..parsers.ndjson import ErrorEvent, decode_line
from ..utils.artifacts import MatchArtifactStore
from ..utils.paths import match_id_from_path, resolve_parser_path

logger = logging.getLogger(__name__)


class ParserError(RuntimeError):
    pass


class ParserBusyError(ParserError):
    """Another parser process is still alive."""


class ParserNotFoundError(ParserError):
    pass


@dataclass(frozen=True)
class StartResult:
    match_id: str
    db_path: Path


def _signal_name(num: int) -> str | None:
    try:
        return signal.Signals(num).name
    except ValueError:
        return None


def _split_lines(buf: bytes) -> tuple[list[bytes], bytes]:
    *lines, rest = buf.split(b"\n")
    return lines, rest


class ParserSupervisor(QObject):
    """
    Owns the one parser process that may exist at a time.

    Everything is driven by QProcess notifications on the Qt event loop:
    stdout lines are decoded into events as they arrive, and the exit is
    classified once the finished (or failed-to-start) notification comes in.
    The handle is only released at that point, so a stop request does not
    free the slot for a new job until the old process is really gone.
    """

    job_started = Signal(object, object)    # job, StartResult
    event_decoded = Signal(object, object)  # job, ParserEvent
    stderr_line = Signal(object, str)       # job, line
    job_exited = Signal(object, object)     # job, ExitResult

    def __init__(self, settings: dict, parent=None):
        super().__init__(parent)
        self.settings = settings
        self._process: QProcess | None = None
        self._job: Job | None = None
        self._pending: StartResult | None = None
        self._out_buf = b""
        self._err_buf = b""

        self._kill_timer = QTimer(self)
        self._kill_timer.setSingleShot(True)
        self._kill_timer.timeout.connect(self._force_kill)

    @property
    def active_job(self) -> Job | None:
        return self._job

    def is_running(self) -> bool:
        return self._process is not None

    def _make_process(self) -> QProcess:
        return QProcess(self)

    def build_arguments(self, job: Job, result: StartResult) -> list[str]:
        return [
            "--demo", job.file_path,
            "--out", str(result.db_path),
            "--match-id", result.match_id,
            "--position-interval", str(int(self.settings.get("position_interval", 4))),
        ]

    def start(self, job: Job) -> StartResult:
        if self._process is not None:
            raise ParserBusyError(
                f"Parser is already running for {self._job.name if self._job else 'another demo'}; stop it first"
            )

        parser = resolve_parser_path(self.settings)
        if not parser.exists():
            raise ParserNotFoundError(f"Parser not found at: {parser}")

        match_id = match_id_from_path(job.file_path)
        try:
            db_path = MatchArtifactStore(Path(self.settings["matches_dir"])).prepare(match_id)
        except ValueError as e:
            raise ParserError(f"Cannot derive a match id from {job.name}: {e}") from e
        result = StartResult(match_id=match_id, db_path=db_path)

        job.reset()
        job.status = JobStatus.RUNNING

        proc = self._make_process()
        proc.setProgram(str(parser))
        proc.setArguments(self.build_arguments(job, result))
        proc.started.connect(partial(self._on_started, proc))
        proc.readyReadStandardOutput.connect(partial(self._on_stdout, proc))
        proc.readyReadStandardError.connect(partial(self._on_stderr, proc))
        proc.finished.connect(partial(self._on_finished, proc))
        proc.errorOccurred.connect(partial(self._on_error, proc))

        self._process, self._job, self._pending = proc, job, result
        self._out_buf = self._err_buf = b""

        logger.info("Starting parser for %s (match %s)", job.file_path, match_id)
        proc.start()
        return result

    def stop(self) -> None:
        if self._process is None or self._job is None:
            return
        if self._job.stop_requested and self._kill_timer.isActive():
            return

        # Intent first: the exit notification arrives later and is classified by it.
        self._job.stop_requested = True
        logger.info("Stopping parser for %s", self._job.name)
        self._process.terminate()
        self._kill_timer.start(int(self.settings.get("stop_grace_ms", 2000)))

    def shutdown(self, timeout_ms: int = 1000) -> None:
        """Kill whatever is running; used when the application exits."""
        if (proc := self._process) is None:
            return
        logger.info("Killing parser on shutdown")
        proc.kill()
        proc.waitForFinished(timeout_ms)

    def _force_kill(self):
        if self._process is not None and self._process.state() != QProcess.ProcessState.NotRunning:
            logger.warning("Parser did not exit after SIGTERM, killing it")
            self._process.kill()

    # --- QProcess notifications -------------------------------------------

    def _on_started(self, proc: QProcess):
        if proc is not self._process or self._job is None:
            return
        job, result = self._job, self._pending
        job.match_id, job.db_path = result.match_id, result.db_path
        self.job_started.emit(job, result)

    def _on_stdout(self, proc: QProcess):
        if proc is not self._process:
            return
        lines, self._out_buf = _split_lines(self._out_buf + proc.readAllStandardOutput().data())
        for raw in lines:
            self._handle_stdout_line(raw)

    def _on_stderr(self, proc: QProcess):
        if proc is not self._process:
            return
        lines, self._err_buf = _split_lines(self._err_buf + proc.readAllStandardError().data())
        for raw in lines:
            self._handle_stderr_line(raw)

    def _handle_stdout_line(self, raw: bytes):
        if (event := decode_line(raw)) is None:
            return
        job = self._job
        job.has_output = True
        if isinstance(event, ErrorEvent):
            job.error = event.message or "Unknown error"
        self.event_decoded.emit(job, event)

    def _handle_stderr_line(self, raw: bytes):
        if line := raw.decode("utf-8", errors="replace").strip():
            self.stderr_line.emit(self._job, line)

    def _flush(self, proc: QProcess):
        self._on_stdout(proc)
        self._on_stderr(proc)
        tail_out, tail_err = self._out_buf, self._err_buf
        self._out_buf = self._err_buf = b""
        if tail_out:
            self._handle_stdout_line(tail_out)
        if tail_err:
            self._handle_stderr_line(tail_err)

    def _on_finished(self, proc: QProcess, exit_code: int, exit_status):
        if proc is not self._process:
            return
        self._flush(proc)
        if exit_status == QProcess.ExitStatus.CrashExit:
            name = _signal_name(exit_code)
            outcome = ExitOutcome(code=None if name else exit_code, signal=name)
        else:
            outcome = ExitOutcome(code=exit_code)
        self._finish(classify_exit(outcome, self._job))

    def _on_error(self, proc: QProcess, error):
        if proc is not self._process:
            return
        if error != QProcess.ProcessError.FailedToStart:
            # Crashes are reported again through finished(); nothing to do here.
            logger.debug("Parser process error: %s", error)
            return
        reason = proc.errorString()
        logger.error("Parser failed to start: %s", reason)
        if self._job.stop_requested:
            result = ExitResult(ExitKind.ABORTED, "Parser stopped by user")
        else:
            result = ExitResult(ExitKind.FAILED, f"Parser error: {reason}")
        self._finish(result)

    def _finish(self, result: ExitResult):
        job, proc = self._job, self._process
        self._kill_timer.stop()
        self._process = self._job = self._pending = None

        if result.kind is ExitKind.ABORTED:
            job.stop_requested = False
        job.status = result.kind.status

        log = logger.error if result.kind.is_error else logger.info
        log("Parser for %s finished: %s", job.name, result.message)
        self.job_exited.emit(job, result)
        # Only processes we parent are ours to delete.
        if proc.parent() is self:
            proc.deleteLater()
