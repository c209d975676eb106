# demoq/utils/settings.py
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


# Top directory = folder that contains the `demoq/` package
def _top_dir() -> Path:
    # This file is demoq/utils/settings.py → parents[2] is the folder above demoq/
    return Path(__file__).resolve().parents[2]

APP_SETTINGS_FILE = _top_dir() / "demoq_settings.json"

DEFAULT_SETTINGS = {
    "parser_path": "",                 # blank → $PARSER_PATH or bundled bin/parser-*
    "matches_dir": str(Path.home() / ".demoq" / "matches"),
    "position_interval": 4,            # 1=all positions, 2=half, 4=quarter

    # Logging
    "log_capacity": 100,               # per-job session log
    "console_log_capacity": 500,       # window console
    "log_level": "INFO",

    # Process / queue timing
    "stop_grace_ms": 2000,             # SIGTERM → SIGKILL escalation
    "advance_delay_ms": 500,           # pause before the next queued demo
    "auto_close_delay_ms": 1000,       # close the session after full success
    # layout persistence:
    # "col_widths": [...],
    # "v_split_sizes": [...],
}

def load_settings(path: Path | None = None) -> dict:
    p = path or APP_SETTINGS_FILE
    if p.exists():
        try:
            data = json.loads(p.read_text())
            return {**DEFAULT_SETTINGS, **data}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", p, e)
    # First run or broken file → write defaults so the file exists
    try:
        p.write_text(json.dumps(DEFAULT_SETTINGS, indent=2))
    except OSError:
        # As a last resort, write into CWD so you still get a file
        Path("demoq_settings.json").write_text(json.dumps(DEFAULT_SETTINGS, indent=2))
    return DEFAULT_SETTINGS.copy()

def save_settings(data: dict, path: Path | None = None) -> None:
    p = path or APP_SETTINGS_FILE
    try:
        p.write_text(json.dumps(data, indent=2))
    except OSError:
        # Last resort fallback to CWD
        Path("demoq_settings.json").write_text(json.dumps(data, indent=2))
