# demoq/utils/paths.py
import os
import sys
from pathlib import Path, PureWindowsPath

DEMO_SUFFIXES = {".dem"}


def _top_dir() -> Path:
    # parents[2] is the folder above demoq/
    return Path(__file__).resolve().parents[2]


def match_id_from_path(file_path: str | os.PathLike) -> str:
    """
    Match id the parser assigns to a demo: its file name without the last
    extension. PureWindowsPath splits on both separators.
    """
    return PureWindowsPath(str(file_path)).stem


def is_demo(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in DEMO_SUFFIXES


def find_demos(path: Path, max_depth: int = 5) -> list[Path]:
    """
    Expand a dropped path into demo files.

    A demo file is returned as-is; a directory is searched recursively (up to
    `max_depth` levels) and its demos returned in sorted order.
    """
    if is_demo(path):
        return [path]

    demos: list[Path] = []

    def _walk(current: Path, depth: int = 0) -> None:
        if depth > max_depth or not current.is_dir():
            return
        try:
            entries = sorted(current.iterdir())
        except (PermissionError, OSError):
            # Skip directories we can't access
            return
        for item in entries:
            if is_demo(item):
                demos.append(item)
            elif item.is_dir():
                _walk(item, depth + 1)

    _walk(path)
    return demos


def parser_binary_name(platform: str | None = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "parser.exe"
    if platform == "darwin":
        return "parser-mac"
    if platform.startswith("linux"):
        return "parser-linux"
    return "parser"


def resolve_parser_path(settings: dict) -> Path:
    """Explicit setting, then $PARSER_PATH, then the bundled bin/ binary."""
    if configured := str(settings.get("parser_path", "") or "").strip():
        return Path(configured).expanduser()
    if env := os.environ.get("PARSER_PATH", "").strip():
        return Path(env).expanduser()
    return _top_dir() / "bin" / parser_binary_name()
