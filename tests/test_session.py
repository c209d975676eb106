from demoq.models.job import Job
from demoq.models.progress import LogLevel
from demoq.parsers.ndjson import LogEvent, ProgressEvent, ReadyEvent
from demoq.workers.session import ParseSession


def test_session_ignores_other_jobs(supervisor):
    mine, other = Job(file_path="/d/a.dem"), Job(file_path="/d/b.dem")
    session = ParseSession(mine).bind(supervisor)
    supervisor.event_decoded.emit(other, LogEvent("info", "not mine"))
    supervisor.stderr_line.emit(other, "nor this")
    supervisor.event_decoded.emit(mine, LogEvent("warn", "mine"))
    assert [(e.level, e.message) for e in session.logs()] == [(LogLevel.WARN, "mine")]


def test_session_signals(supervisor):
    job = Job(file_path="/d/a.dem")
    session = ParseSession(job).bind(supervisor)
    progress, logs, ports = [], [], []
    session.progress_changed.connect(progress.append)
    session.log_appended.connect(logs.append)
    session.api_ready.connect(ports.append)

    supervisor.event_decoded.emit(job, ProgressEvent(tick=3, round=1, fraction=0.5))
    supervisor.event_decoded.emit(job, ReadyEvent(9000))
    supervisor.stderr_line.emit(job, "diagnostic")

    assert progress[0].percent == 50.0
    assert ports == [9000]
    assert [e.message for e in logs] == [
        "Progress: parsing - Round 1, Tick 3",
        "API server ready on port 9000",
        "diagnostic",
    ]


def test_closed_session_hears_nothing(supervisor):
    job = Job(file_path="/d/a.dem")
    with ParseSession(job, log_capacity=10).bind(supervisor) as session:
        assert session.is_bound
    assert not session.is_bound
    supervisor.event_decoded.emit(job, LogEvent("info", "late"))
    assert session.logs() == []
