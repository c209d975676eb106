# demoq/main_window.py
import logging
from pathlib import Path

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QAction, QGuiApplication
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QLabel, QHBoxLayout, QPushButton, QSplitter,
    QTextEdit, QTreeWidgetItem, QProgressBar, QFileDialog, QHeaderView, QDialog, QMessageBox
)

from .utils.settings import load_settings, save_settings
from .utils.paths import find_demos
from .utils.artifacts import MatchArtifactStore
from .models.job import ExitResult, Job, JobStatus
from .models.progress import LogBuffer, LogEntry, LogLevel, ProgressSnapshot, format_logs
from .workers.parser_process import ParserSupervisor, StartResult
from .workers.job_queue import JobQueue, QueueBusyError, QueueState
from .workers.abort import AbortCoordinator
from .workers.session import ParseSession
from .widgets.queue_tree import DropTree
from .widgets.details_panel import DetailsPanel
from .dialogs.prefs import PrefsDialog

logger = logging.getLogger(__name__)

COL_DEMO, COL_STATUS, COL_PROGRESS = range(3)


class MainWindow(QMainWindow):
    def __init__(self, settings: dict | None = None):
        super().__init__()
        self.setWindowTitle("Demo Parse Queue")
        self.resize(1100, 760)
        self.settings = settings if settings is not None else load_settings()
        Path(self.settings["matches_dir"]).expanduser().mkdir(parents=True, exist_ok=True)

        self.queue_label = QLabel("Queue: 0 demos loaded")
        self.queue_label.setStyleSheet("font-weight:600;")

        self.tree = DropTree()
        self.tree.setColumnCount(3)
        self.tree.setHeaderLabels(["Demo", "Status", "Progress"])
        self.tree.pathsDropped.connect(self._add_paths)
        self.tree.itemsReordered.connect(self._on_rows_reordered)
        self.tree.currentItemChanged.connect(self._on_current_item_changed)
        hdr = self.tree.header()
        hdr.setStretchLastSection(False)
        hdr.setSectionResizeMode(COL_DEMO, QHeaderView.Stretch)
        hdr.setSectionResizeMode(COL_STATUS, QHeaderView.ResizeToContents)
        hdr.setSectionResizeMode(COL_PROGRESS, QHeaderView.ResizeToContents)

        self.details = DetailsPanel()

        self.center_split = QSplitter(Qt.Horizontal)
        self.center_split.addWidget(self.tree)
        self.center_split.addWidget(self.details)
        self.center_split.setSizes([760, 340])

        self.console = QTextEdit(); self.console.setReadOnly(True)
        self.console.setPlaceholderText("No logs yet…")
        self.console_logs = LogBuffer(int(self.settings.get("console_log_capacity", 500)))

        self.v_split = QSplitter(Qt.Vertical)
        self.v_split.addWidget(self.center_split)
        self.v_split.addWidget(self.console)
        self.v_split.setSizes([480, 280])

        self.btn_add = QPushButton("Add Demo(s)…"); self.btn_add.clicked.connect(self.add_demos)
        self.btn_add_folder = QPushButton("Add Folder…"); self.btn_add_folder.clicked.connect(self.add_folder)
        self.btn_remove = QPushButton("Remove Selected"); self.btn_remove.clicked.connect(self.remove_selected)
        self.btn_clear = QPushButton("Clear"); self.btn_clear.clicked.connect(self.clear_all)
        self.btn_start = QPushButton("Parse"); self.btn_start.clicked.connect(self.start_queue)
        self.btn_stop = QPushButton("Stop"); self.btn_stop.clicked.connect(self.stop_queue)
        self.btn_retry = QPushButton("Retry"); self.btn_retry.clicked.connect(self.retry_job)
        self.btn_dismiss = QPushButton("Dismiss"); self.btn_dismiss.clicked.connect(self.dismiss_session)
        self.btn_copy = QPushButton("Copy Logs"); self.btn_copy.clicked.connect(self.copy_logs)

        top = QHBoxLayout()
        for b in (self.btn_add, self.btn_add_folder, self.btn_remove, self.btn_clear,
                  self.btn_start, self.btn_stop, self.btn_retry, self.btn_dismiss):
            top.addWidget(b)
        top.addStretch(); top.addWidget(self.btn_copy)

        central = QWidget(); v = QVBoxLayout(central)
        v.addWidget(self.queue_label); v.addLayout(top); v.addWidget(self.v_split)
        self.setCentralWidget(central)

        m = self.menuBar().addMenu("&Options")
        act_prefs = QAction("Preferences…", self); act_prefs.triggered.connect(self.open_prefs); m.addAction(act_prefs)

        self.paths: list[str] = []

        self.supervisor = ParserSupervisor(self.settings, self)
        self.queue = JobQueue(self.supervisor, self.settings, self)
        self.abort = AbortCoordinator(
            self.queue, self.supervisor, MatchArtifactStore(Path(self.settings["matches_dir"])), self
        )

        self.queue.session_started.connect(self._on_session_started)
        self.queue.job_started.connect(self._on_job_started)
        self.queue.job_finished.connect(self._on_job_finished)
        self.queue.halted.connect(self._on_halted)
        self.queue.completed.connect(self._on_completed)
        self.queue.closed.connect(self._on_session_closed)
        self.queue.state_changed.connect(lambda _s: self._refresh_controls())
        self.abort.confirm_requested.connect(self._confirm_abort)

        self._restore_layout()
        self._refresh_controls()

    def _restore_layout(self):
        if cw := self.settings.get("col_widths"):
            if len(cw) == self.tree.columnCount():
                for i, w in enumerate(cw): self.tree.setColumnWidth(i, int(w))
        if cs := self.settings.get("center_split_sizes"): self.center_split.setSizes([int(x) for x in cs])
        if vs := self.settings.get("v_split_sizes"): self.v_split.setSizes([int(x) for x in vs])

    def _save_layout(self):
        self.settings["col_widths"] = [self.tree.columnWidth(i) for i in range(self.tree.columnCount())]
        self.settings["center_split_sizes"] = self.center_split.sizes()
        self.settings["v_split_sizes"] = self.v_split.sizes()
        save_settings(self.settings)

    def closeEvent(self, e):
        self.supervisor.shutdown()
        self._save_layout()
        super().closeEvent(e)

    # --- queue building ---------------------------------------------------

    def add_demos(self):
        files, _ = QFileDialog.getOpenFileNames(self, "Select demo files", str(Path.home()), "CS2 Demo Files (*.dem);;All files (*)")
        if files: self._add_paths(files)

    def add_folder(self):
        d = QFileDialog.getExistingDirectory(self, "Choose folder with demos", str(Path.home()))
        if d: self._add_paths([d])

    def _add_paths(self, paths):
        if self.queue.state != QueueState.IDLE or self.queue.total:
            self._log(LogLevel.WARN, "Cannot change demo files while a session is open")
            return
        added = 0
        for p_str in paths:
            for demo in find_demos(Path(p_str)):
                if str(demo) in self.paths:
                    continue
                self.paths.append(str(demo))
                self._add_row(str(demo))
                added += 1
        if not added:
            self._log(LogLevel.WARN, "No .dem files found in the dropped paths")
        self._refresh_controls()

    def _add_row(self, path: str):
        item = QTreeWidgetItem([Path(path).name, "Queued", ""])
        item.setData(COL_DEMO, Qt.UserRole, path)
        item.setToolTip(COL_DEMO, path)
        self.tree.addTopLevelItem(item)

        bar = QProgressBar()
        bar.setRange(0, 1000)
        bar.setValue(0)
        bar.setFixedHeight(12)
        bar.setTextVisible(False)
        self.tree.setItemWidget(item, COL_PROGRESS, bar)

    def _tree_paths(self) -> list[str]:
        return [self.tree.topLevelItem(i).data(COL_DEMO, Qt.UserRole) for i in range(self.tree.topLevelItemCount())]

    def _on_rows_reordered(self):
        self.paths = self._tree_paths()
        self._log(LogLevel.INFO, "Queue order changed.")

    def remove_selected(self):
        if self.queue.total or not (item := self.tree.currentItem()):
            return
        if (row := self.tree.indexOfTopLevelItem(item)) >= 0:
            self.tree.takeTopLevelItem(row)
            self.paths = self._tree_paths()
            self.details.show_job(None)
            self._refresh_controls()

    def clear_all(self):
        if self.queue.total:
            return
        self.tree.clear(); self.paths.clear(); self.details.show_job(None)
        self.console.clear(); self.console_logs.clear()
        self._refresh_controls()

    # --- session control --------------------------------------------------

    def start_queue(self):
        if self.queue.state == QueueState.RUNNING:
            return
        paths = self._tree_paths()
        if not paths:
            self._log(LogLevel.WARN, "No demos selected to parse")
            return
        self.console.clear(); self.console_logs.clear()
        for i in range(self.tree.topLevelItemCount()):
            self._set_row(i, "Queued", 0.0)
        try:
            self.queue.submit(paths)
            self.queue.start()
        except (QueueBusyError, ValueError) as e:
            self._log(LogLevel.ERROR, str(e))
        self._refresh_controls()

    def stop_queue(self):
        self.abort.request_stop()

    def _confirm_abort(self, job: Job | None):
        name = job.name if job else "the queue"
        answer = QMessageBox.question(
            self, "Abort Parsing?",
            f"Are you sure you want to abort parsing {name}?\n\n"
            "The incomplete match database will be deleted.",
            QMessageBox.Yes | QMessageBox.No, QMessageBox.No,
        )
        if answer == QMessageBox.Yes:
            self.abort.confirm()
        else:
            self.abort.cancel()

    def retry_job(self):
        self.queue.retry()

    def dismiss_session(self):
        try:
            self.queue.close()
        except QueueBusyError as e:
            self._log(LogLevel.WARN, str(e))

    def copy_logs(self):
        QGuiApplication.clipboard().setText(format_logs(self.console_logs))

    # --- queue notifications ----------------------------------------------

    def _on_session_started(self, session: ParseSession):
        session.log_appended.connect(self._on_log_entry)
        session.progress_changed.connect(self._on_progress)
        session.api_ready.connect(self.details.show_api_port)
        self.details.show_job(session.job)
        self._set_row(session.job.index, "Starting…")
        self._refresh_controls()

    def _on_job_started(self, job: Job, result: StartResult):
        self._set_row(job.index, "Parsing")
        self.details.show_job(job)

    def _on_job_finished(self, job: Job, result: ExitResult):
        self._set_row(job.index, job.status.value, 1.0 if job.status == JobStatus.SUCCEEDED else None)
        for pending in self.queue.pending:
            self._set_row(pending.index, pending.status.value)
        self.details.show_job(job)
        self._refresh_controls()

    def _on_halted(self, job: Job, message: str):
        # Stays open on failure so the logs can be copied; the user dismisses it.
        self._set_row(job.index, "Failed" if message else job.status.value)
        self._refresh_controls()

    def _on_completed(self):
        self._log(LogLevel.INFO, "All demos parsed successfully")
        QTimer.singleShot(int(self.settings.get("auto_close_delay_ms", 1000)), self._auto_close)

    def _auto_close(self):
        if self.queue.state == QueueState.COMPLETE:
            self.queue.close()

    def _on_session_closed(self):
        self._refresh_controls()

    def _on_progress(self, snapshot: ProgressSnapshot):
        if (job := self.queue.current) is not None:
            self._set_row(job.index, f"{snapshot.stage} • {snapshot.percent:.1f}%", snapshot.fraction)
        self.details.show_progress(snapshot)

    def _on_log_entry(self, entry: LogEntry):
        self.console_logs.append(entry.level, entry.message)
        self.console.append(entry.format())

    def _log(self, level: LogLevel, message: str):
        self._on_log_entry(LogEntry(level=level, message=message))

    def _set_row(self, row: int, status: str, fraction: float | None = None):
        if not (item := self.tree.topLevelItem(row)):
            return
        item.setText(COL_STATUS, status)
        if fraction is not None and (bar := self.tree.itemWidget(item, COL_PROGRESS)):
            bar.setValue(int(max(0.0, min(1.0, fraction)) * 1000))

    def _on_current_item_changed(self, cur, prev):
        if cur is None:
            return
        path = cur.data(COL_DEMO, Qt.UserRole)
        job = next((j for j in self.queue.jobs if j.file_path == path), None)
        self.details.show_job(job or Job(file_path=path))

    def _refresh_controls(self):
        state = self.queue.state
        open_session = bool(self.queue.total)
        running = state == QueueState.RUNNING

        self.tree.locked = open_session
        for b in (self.btn_add, self.btn_add_folder, self.btn_remove, self.btn_clear):
            b.setEnabled(not open_session)
        self.btn_start.setEnabled(not open_session and bool(self.paths))
        self.btn_start.setText("Parsing..." if running else "Parse")
        self.btn_stop.setEnabled(running)
        self.btn_retry.setEnabled(state == QueueState.HALTED)
        self.btn_dismiss.setEnabled(state in (QueueState.HALTED, QueueState.COMPLETE, QueueState.ABORTED))

        if open_session:
            left = len(self.queue.pending)
            text = f"Queue: {self.queue.done}/{self.queue.total} done • {left} left"
            if (job := self.queue.current) is not None and running:
                text += f" • Working on: {job.name}"
            elif state == QueueState.HALTED:
                text += " • Halted"
        else:
            text = f"Queue: {len(self.paths)} demos loaded"
        self.queue_label.setText(text)

    def open_prefs(self):
        dlg = PrefsDialog(self.settings, self)
        if dlg.exec() == QDialog.Accepted:
            self.settings.update(dlg.get_values())
            save_settings(self.settings)
            self.abort.store = MatchArtifactStore(Path(self.settings["matches_dir"]))
            logging.getLogger().setLevel(self.settings["log_level"])
            self._log(LogLevel.INFO, "Saved preferences.")
