# demoq/widgets/queue_tree.py
from pathlib import Path
from PySide6.QtCore import Signal
from PySide6.QtWidgets import QAbstractItemView, QTreeWidget

class DropTree(QTreeWidget):
    pathsDropped = Signal(list)  # list[str]
    itemsReordered = Signal()    # Emitted after an internal drag-drop reorder

    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.setAcceptDrops(True)
        self.setDragEnabled(True)
        self.setDragDropMode(QAbstractItemView.InternalMove)

        self.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.setUniformRowHeights(True)
        self.setRootIsDecorated(False)
        self.locked = False  # no reordering or drops while a session runs

    def dragEnterEvent(self, event):
        if self.locked:
            event.ignore()
        elif event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragEnterEvent(event)

    def dragMoveEvent(self, event):
        if self.locked:
            event.ignore()
        elif event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragMoveEvent(event)

    def dropEvent(self, event):
        """Handle both external file drops and internal reordering."""
        if self.locked:
            event.ignore()
            return
        if event.mimeData().hasUrls():
            paths = [
                url.toLocalFile() for url in event.mimeData().urls()
                if url.isLocalFile() and Path(url.toLocalFile()).exists()
            ]
            if paths:
                self.pathsDropped.emit(paths)
                event.acceptProposedAction()
                return

        # Not an external drop: internal move for reordering.
        super().dropEvent(event)
        self.itemsReordered.emit()
