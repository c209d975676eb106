import os
import stat

import pytest
from PySide6.QtCore import QByteArray, QEventLoop, QObject, QProcess, QTimer, Signal
from PySide6.QtWidgets import QApplication

from demoq.utils.settings import DEFAULT_SETTINGS
from demoq.workers.parser_process import ParserSupervisor


@pytest.fixture(scope="session", autouse=True)
def qapp():
    # widgets are built in a few tests; no display is needed
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance() or QApplication([])
    yield app


class FakeProcess(QObject):
    """Stands in for QProcess; tests drive its notifications by hand."""

    started = Signal()
    finished = Signal(int, object)
    errorOccurred = Signal(object)
    readyReadStandardOutput = Signal()
    readyReadStandardError = Signal()

    def __init__(self, owner, parent=None):
        super().__init__(parent)
        self.owner = owner
        self.program = None
        self.arguments: list[str] = []
        self.running = False
        self.terminated = 0
        self.killed = 0
        self._out = b""
        self._err = b""
        self._error = ""

    # QProcess API used by the supervisor
    def setProgram(self, program):
        self.program = program

    def setArguments(self, args):
        self.arguments = list(args)

    def start(self):
        self.running = True
        alive = sum(1 for p in self.owner.processes if p.running)
        self.owner.max_alive = max(self.owner.max_alive, alive)

    def state(self):
        return QProcess.ProcessState.Running if self.running else QProcess.ProcessState.NotRunning

    def terminate(self):
        self.terminated += 1

    def kill(self):
        self.killed += 1

    def waitForFinished(self, msecs=30000):
        return not self.running

    def errorString(self):
        return self._error

    def readAllStandardOutput(self):
        data, self._out = self._out, b""
        return QByteArray(data)

    def readAllStandardError(self):
        data, self._err = self._err, b""
        return QByteArray(data)

    # test drivers
    def launch(self):
        self.started.emit()

    def write_stdout(self, data: bytes):
        self._out += data
        self.readyReadStandardOutput.emit()

    def write_stderr(self, data: bytes):
        self._err += data
        self.readyReadStandardError.emit()

    def exit(self, code: int):
        self.running = False
        self.finished.emit(code, QProcess.ExitStatus.NormalExit)

    def crash(self, signum: int):
        self.running = False
        self.finished.emit(signum, QProcess.ExitStatus.CrashExit)

    def fail_to_start(self, reason: str):
        self.running = False
        self._error = reason
        self.errorOccurred.emit(QProcess.ProcessError.FailedToStart)


class FakeSupervisor(ParserSupervisor):
    def __init__(self, settings, parent=None):
        super().__init__(settings, parent)
        self.processes: list[FakeProcess] = []
        self.max_alive = 0

    def _make_process(self):
        proc = FakeProcess(self)
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def parser_exe(tmp_path):
    exe = tmp_path / "bin" / "parser"
    exe.parent.mkdir(parents=True)
    exe.write_text("#!/bin/sh\nexit 0\n")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR)
    return exe


@pytest.fixture
def settings(tmp_path, parser_exe):
    return {
        **DEFAULT_SETTINGS,
        "parser_path": str(parser_exe),
        "matches_dir": str(tmp_path / "matches"),
        "advance_delay_ms": 0,
        "auto_close_delay_ms": 0,
        "stop_grace_ms": 50,
    }


@pytest.fixture
def supervisor(settings):
    return FakeSupervisor(settings)


@pytest.fixture
def demo_files(tmp_path):
    demos = tmp_path / "demos"
    demos.mkdir()
    paths = []
    for name in ("first.dem", "second.dem", "third.dem"):
        p = demos / name
        p.write_bytes(b"HL2DEMO")
        paths.append(p)
    return paths


def wait_for(signal, timeout_ms: int = 15000):
    """Spin a local event loop until `signal` fires; returns its args or None."""
    loop = QEventLoop()
    received = []

    def _quit(*args):
        received.append(args)
        loop.quit()

    timer = QTimer()
    timer.setSingleShot(True)
    timer.timeout.connect(loop.quit)
    signal.connect(_quit)
    timer.start(timeout_ms)
    loop.exec()
    timer.stop()
    signal.disconnect(_quit)
    return received[0] if received else None


def spin(msecs: int = 20):
    """Run the event loop briefly so posted events, deferred deletes included, are handled."""
    timer = QTimer()
    timer.setSingleShot(True)
    timer.start(msecs)
    wait_for(timer.timeout, msecs + 1000)
