# demoq/models/job.py
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PureWindowsPath

FORCE_KILL_SIGNAL = "SIGKILL"


class JobStatus(str, Enum):
    QUEUED = "Queued"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ABORTED = "Aborted"


TERMINAL_STATUSES = {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ABORTED}


@dataclass
class Job:
    file_path: str
    index: int = 0
    status: JobStatus = JobStatus.QUEUED
    match_id: str | None = None        # set once the parser launched and reported it
    db_path: Path | None = None
    stop_requested: bool = False       # user asked for termination before exit
    has_output: bool = False           # at least one decoded event was observed
    error: str | None = None           # last `type=error` message

    @property
    def name(self) -> str:
        return PureWindowsPath(self.file_path).name

    def reset(self):
        """Put the job back in the queue for another attempt."""
        self.status = JobStatus.QUEUED
        self.match_id = None
        self.db_path = None
        self.stop_requested = False
        self.has_output = False
        self.error = None


@dataclass(frozen=True)
class ExitOutcome:
    code: int | None
    signal: str | None = None

    @property
    def is_clean(self) -> bool:
        return self.code == 0 and self.signal is None

    def describe(self) -> str:
        text = f"Parser exited with code {self.code}"
        if self.signal:
            text += f" (signal: {self.signal})"
        return text


class ExitKind(str, Enum):
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    STALE = "stale"
    FAILED = "failed"

    @property
    def status(self) -> JobStatus:
        return {
            ExitKind.SUCCEEDED: JobStatus.SUCCEEDED,
            ExitKind.ABORTED: JobStatus.ABORTED,
            ExitKind.STALE: JobStatus.QUEUED,
            ExitKind.FAILED: JobStatus.FAILED,
        }[self]

    @property
    def is_error(self) -> bool:
        return self is ExitKind.FAILED


@dataclass(frozen=True)
class ExitResult:
    kind: ExitKind
    message: str
    outcome: ExitOutcome | None = None


def classify_exit(outcome: ExitOutcome, job: Job) -> ExitResult:
    """
    Decide what a parser exit means for `job`.

    Termination is asynchronous, so a kill we asked for and a crash look the
    same from the exit status alone. The job's `stop_requested` and
    `has_output` flags carry the missing context. A requested stop wins over
    any exit code, including a clean one. The caller is responsible for
    clearing `stop_requested` after an aborted result.
    """
    if job.stop_requested:
        return ExitResult(ExitKind.ABORTED, "Parser stopped by user", outcome)
    if outcome.is_clean:
        if job.error:
            return ExitResult(ExitKind.FAILED, f"Parser reported an error: {job.error}", outcome)
        return ExitResult(ExitKind.SUCCEEDED, "Parsing completed successfully", outcome)
    if outcome.signal == FORCE_KILL_SIGNAL and not job.has_output:
        return ExitResult(ExitKind.STALE, "Previous parser process cleaned up", outcome)
    return ExitResult(ExitKind.FAILED, outcome.describe(), outcome)
