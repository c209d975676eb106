import signal

import pytest

from demoq.models.job import JobStatus
from demoq.workers.job_queue import JobQueue, QueueBusyError, QueueState
from demoq.workers.parser_process import ParserSupervisor

from conftest import wait_for


def _capture(sig):
    got = []
    sig.connect(lambda *args: got.append(args))
    return got


@pytest.fixture
def queue(supervisor, settings):
    return JobQueue(supervisor, settings)


def _run_ok(proc):
    proc.launch()
    proc.write_stdout(b'{"type":"progress","stage":"parsing","tick":10,"round":1,"pct":1.0}\n')
    proc.exit(0)


def test_runs_in_order_and_halts_on_failure(queue, supervisor, demo_files):
    halted = _capture(queue.halted)
    queue.submit(demo_files)
    queue.start()

    _run_ok(supervisor.processes[0])
    _run_ok(supervisor.processes[1])
    third = supervisor.processes[2]
    third.launch()
    third.exit(1)

    assert [p.arguments[1] for p in supervisor.processes] == [str(p) for p in demo_files]
    assert [j.status for j in queue.jobs] == [JobStatus.SUCCEEDED, JobStatus.SUCCEEDED, JobStatus.FAILED]
    assert queue.state is QueueState.HALTED
    assert halted[0][0] is queue.jobs[2]
    assert halted[0][1] == "Parser exited with code 1"
    assert supervisor.max_alive == 1
    assert queue.done == 2


def test_failure_leaves_later_demos_queued_and_retry_continues(queue, supervisor, demo_files):
    completed = _capture(queue.completed)
    queue.submit(demo_files)
    queue.start()
    _run_ok(supervisor.processes[0])
    supervisor.processes[1].exit(2)

    assert queue.state is QueueState.HALTED
    assert queue.jobs[2].status is JobStatus.QUEUED
    assert len(supervisor.processes) == 2

    assert queue.retry()
    assert queue.jobs[1].status is JobStatus.RUNNING
    _run_ok(supervisor.processes[2])
    _run_ok(supervisor.processes[3])

    assert queue.state is QueueState.COMPLETE
    assert completed == [()]
    assert all(j.status is JobStatus.SUCCEEDED for j in queue.jobs)
    assert supervisor.max_alive == 1


def test_reported_error_halts_even_on_clean_exit(queue, supervisor, demo_files):
    halted = _capture(queue.halted)
    queue.submit(demo_files[:2])
    queue.start()
    proc = supervisor.last
    proc.launch()
    proc.write_stdout(b'{"type":"error","msg":"unsupported demo version"}\n')
    proc.exit(0)

    assert queue.state is QueueState.HALTED
    assert "unsupported demo version" in halted[0][1]
    assert queue.session.failed
    assert len(supervisor.processes) == 1


def test_stale_exit_halts_quietly(queue, supervisor, demo_files):
    halted = _capture(queue.halted)
    queue.submit(demo_files[:1])
    queue.start()
    supervisor.last.crash(int(signal.SIGKILL))

    assert queue.state is QueueState.HALTED
    assert halted[0][1] == ""
    assert queue.jobs[0].status is JobStatus.QUEUED
    assert queue.retry()


def test_missing_parser_halts_with_message(settings, demo_files, tmp_path):
    sup = ParserSupervisor({**settings, "parser_path": str(tmp_path / "missing")})
    q = JobQueue(sup, settings)
    halted = _capture(q.halted)
    q.submit(demo_files[:1])
    q.start()

    assert q.state is QueueState.HALTED
    assert halted[0][1].startswith("Failed to start parser: Parser not found at:")
    assert q.jobs[0].status is JobStatus.FAILED
    assert q.session.logs()[-1].message == halted[0][1]
    assert not sup.is_running()


def test_each_job_gets_a_fresh_session(queue, supervisor, demo_files):
    sessions = _capture(queue.session_started)
    queue.submit(demo_files[:2])
    queue.start()
    supervisor.last.launch()
    first = sessions[0][0]
    assert [e.message for e in first.logs()][:2] == [
        "Starting parse 1 of 2: first.dem",
        f"Match ID: first, DB: {queue.jobs[0].db_path}",
    ]
    supervisor.last.exit(0)

    second = sessions[1][0]
    assert not first.is_bound
    assert second.is_bound
    assert second.logs()[0].message == "Starting parse 2 of 2: second.dem"
    assert second.aggregator.snapshot is None


def test_single_demo_log_uses_full_path(queue, supervisor, demo_files):
    queue.submit(demo_files[:1])
    queue.start()
    assert queue.session.logs()[0].message == f"Starting parse: {demo_files[0]}"
    _run_ok(supervisor.last)
    assert queue.state is QueueState.COMPLETE
    assert queue.session.logs()[-1].message == "Parsing completed successfully"


def test_session_tracks_progress(queue, supervisor, demo_files):
    queue.submit(demo_files[:1])
    queue.start()
    snapshots = _capture(queue.session.progress_changed)
    proc = supervisor.last
    proc.launch()
    proc.write_stdout(b'{"type":"progress","tick":64,"round":2,"pct":0.437}\n{"type":"ready","port":8123}\n')
    assert snapshots[-1][0].percent == 43.7
    assert queue.session.aggregator.api_port == 8123


def test_busy_queue_rejects_submit_and_start(queue, demo_files):
    queue.submit(demo_files)
    queue.start()
    with pytest.raises(QueueBusyError):
        queue.submit(demo_files)
    with pytest.raises(QueueBusyError):
        queue.start()


def test_start_with_nothing_queued(queue):
    with pytest.raises(ValueError):
        queue.start()


def test_close_rejected_while_parsing(queue, supervisor, demo_files):
    closed = _capture(queue.closed)
    queue.submit(demo_files[:1])
    queue.start()
    with pytest.raises(QueueBusyError):
        queue.close()
    _run_ok(supervisor.last)
    queue.close()
    assert closed == [()]
    assert queue.state is QueueState.IDLE
    assert queue.jobs == []
    assert queue.session is None


def test_retry_only_when_halted(queue, demo_files):
    queue.submit(demo_files)
    assert not queue.retry()


def test_advance_waits_for_delay(supervisor, settings, demo_files):
    q = JobQueue(supervisor, {**settings, "advance_delay_ms": 20})
    q.submit(demo_files[:2])
    q.start()
    _run_ok(supervisor.last)
    assert len(supervisor.processes) == 1
    assert q.state is QueueState.RUNNING

    assert wait_for(q.session_started, 2000) is not None
    assert len(supervisor.processes) == 2
    assert q.jobs[1].status is JobStatus.RUNNING


def test_unusable_demo_name_halts_instead_of_hanging(queue, supervisor, tmp_path):
    halted = _capture(queue.halted)
    odd = tmp_path / "..dem"
    odd.write_bytes(b"HL2DEMO")
    queue.submit([odd])
    queue.start()

    assert queue.state is QueueState.HALTED
    assert halted[0][1].startswith("Failed to start parser: Cannot derive a match id")
    assert queue.jobs[0].status is JobStatus.FAILED
    assert supervisor.processes == []
