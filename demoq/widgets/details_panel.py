# demoq/widgets/details_panel.py
from PySide6.QtWidgets import QTreeWidget, QTreeWidgetItem, QHeaderView

from ..models.job import Job
from ..models.progress import ProgressSnapshot


class DetailsPanel(QTreeWidget):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setHeaderLabels(["Property", "Value"])
        self.setUniformRowHeights(True)
        self.setRootIsDecorated(True)
        hdr = self.header()
        hdr.setSectionResizeMode(0, QHeaderView.ResizeToContents)
        hdr.setSectionResizeMode(1, QHeaderView.Stretch)
        self._job: Job | None = None
        self._snapshot: ProgressSnapshot | None = None
        self._api_port: int | None = None

    def show_job(self, job: Job | None):
        self._job, self._snapshot, self._api_port = job, None, None
        self._render()

    def show_progress(self, snapshot: ProgressSnapshot):
        self._snapshot = snapshot
        self._render()

    def show_api_port(self, port: int):
        self._api_port = port
        self._render()

    def _render(self):
        self.clear()
        if not (job := self._job):
            return

        demo = QTreeWidgetItem(["Demo", job.name])
        self.addTopLevelItem(demo)
        QTreeWidgetItem(demo, ["Path", job.file_path])
        QTreeWidgetItem(demo, ["Status", job.status.value])
        if job.match_id:
            QTreeWidgetItem(demo, ["Match ID", job.match_id])
        if job.db_path:
            QTreeWidgetItem(demo, ["Database", str(job.db_path)])
        if job.error:
            QTreeWidgetItem(demo, ["Reported Error", job.error])

        if s := self._snapshot:
            prog = QTreeWidgetItem(["Progress", f"{s.percent:.1f}%"])
            self.addTopLevelItem(prog)
            QTreeWidgetItem(prog, ["Stage", s.stage])
            QTreeWidgetItem(prog, ["Round", str(s.round)])
            QTreeWidgetItem(prog, ["Tick", str(s.tick)])

        if self._api_port:
            self.addTopLevelItem(QTreeWidgetItem(["API", f"localhost:{self._api_port}"]))

        self.expandAll()
