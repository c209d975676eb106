# demoq/dialogs/prefs.py
from PySide6.QtWidgets import (
    QDialog, QDialogButtonBox, QFormLayout, QHBoxLayout, QLabel,
    QLineEdit, QPushButton, QSpinBox, QComboBox, QFileDialog, QVBoxLayout
)

from ..utils.paths import resolve_parser_path

class PrefsDialog(QDialog):
    def __init__(self, settings: dict, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Preferences")
        self.settings = settings
        self.setMinimumWidth(640)

        self.parser_edit = QLineEdit(self.settings.get("parser_path", ""))
        self.parser_edit.setPlaceholderText(str(resolve_parser_path({})))
        btn_browse_parser = QPushButton("Browse…"); btn_browse_parser.clicked.connect(self._browse_parser)
        parser_hint = QLabel("(Leave blank to use $PARSER_PATH or the bundled parser)")

        self.matches_edit = QLineEdit(self.settings["matches_dir"])
        btn_browse_matches = QPushButton("Browse…"); btn_browse_matches.clicked.connect(self._browse_matches)

        self.interval_spin = QSpinBox(); self.interval_spin.setRange(1, 64)
        self.interval_spin.setValue(int(self.settings.get("position_interval", 4)))
        self.interval_spin.setSuffix(" (1 = every position)")

        self.log_spin = QSpinBox(); self.log_spin.setRange(10, 100000)
        self.log_spin.setValue(int(self.settings.get("log_capacity", 100))); self.log_spin.setSuffix(" entries per demo")

        self.console_spin = QSpinBox(); self.console_spin.setRange(10, 100000)
        self.console_spin.setValue(int(self.settings.get("console_log_capacity", 500))); self.console_spin.setSuffix(" entries")

        self.grace_spin = QSpinBox(); self.grace_spin.setRange(0, 60000); self.grace_spin.setSingleStep(500)
        self.grace_spin.setValue(int(self.settings.get("stop_grace_ms", 2000))); self.grace_spin.setSuffix(" ms before force kill")

        self.advance_spin = QSpinBox(); self.advance_spin.setRange(0, 60000); self.advance_spin.setSingleStep(100)
        self.advance_spin.setValue(int(self.settings.get("advance_delay_ms", 500))); self.advance_spin.setSuffix(" ms between demos")

        self.auto_close_spin = QSpinBox(); self.auto_close_spin.setRange(0, 60000); self.auto_close_spin.setSingleStep(500)
        self.auto_close_spin.setValue(int(self.settings.get("auto_close_delay_ms", 1000))); self.auto_close_spin.setSuffix(" ms after all succeed")

        self.level_combo = QComboBox(); self.level_combo.addItems(["DEBUG", "INFO", "WARNING", "ERROR"])
        self.level_combo.setCurrentText(str(self.settings.get("log_level", "INFO")).upper())

        form = QFormLayout()
        row_parser = QHBoxLayout(); row_parser.addWidget(self.parser_edit); row_parser.addWidget(btn_browse_parser)
        form.addRow("Parser executable:", row_parser); form.addRow("", parser_hint)
        row_matches = QHBoxLayout(); row_matches.addWidget(self.matches_edit); row_matches.addWidget(btn_browse_matches)
        form.addRow("Matches folder:", row_matches)
        form.addRow("Position interval:", self.interval_spin)
        form.addRow("Session log size:", self.log_spin)
        form.addRow("Console log size:", self.console_spin)
        form.addRow("Stop grace period:", self.grace_spin)
        form.addRow("Next demo delay:", self.advance_spin)
        form.addRow("Auto-close delay:", self.auto_close_spin)
        form.addRow("Diagnostics level:", self.level_combo)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept); buttons.rejected.connect(self.reject)

        layout = QVBoxLayout(self); layout.addLayout(form); layout.addWidget(buttons)

    def _browse_parser(self):
        f, _ = QFileDialog.getOpenFileName(self, "Locate parser", self.parser_edit.text() or "", "All (*)")
        if f: self.parser_edit.setText(f)

    def _browse_matches(self):
        d = QFileDialog.getExistingDirectory(self, "Choose matches folder", self.matches_edit.text())
        if d: self.matches_edit.setText(d)

    def get_values(self) -> dict:
        return {
            "parser_path": self.parser_edit.text().strip(),
            "matches_dir": self.matches_edit.text().strip() or self.settings["matches_dir"],
            "position_interval": int(self.interval_spin.value()),
            "log_capacity": int(self.log_spin.value()),
            "console_log_capacity": int(self.console_spin.value()),
            "stop_grace_ms": int(self.grace_spin.value()),
            "advance_delay_ms": int(self.advance_spin.value()),
            "auto_close_delay_ms": int(self.auto_close_spin.value()),
            "log_level": self.level_combo.currentText(),
        }
