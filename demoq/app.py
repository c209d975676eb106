# demoq/app.py
import logging
import sys

from PySide6.QtWidgets import QApplication

from .utils.settings import load_settings


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv if argv is None else argv
    settings = load_settings()
    setup_logging(settings.get("log_level", "INFO"))

    app = QApplication(argv)
    app.setApplicationName("demoq")

    from .main_window import MainWindow

    win = MainWindow(settings)
    if demos := [a for a in argv[1:] if not a.startswith("-")]:
        win._add_paths(demos)
    win.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
