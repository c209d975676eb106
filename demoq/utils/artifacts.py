# demoq/utils/artifacts.py
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DB_SUFFIX = ".sqlite"
# SQLite side files left next to a database that was written when the parser died
_SIDE_SUFFIXES = ("-wal", "-shm", "-journal")


class MatchArtifactStore:
    """Per-match parser output: one SQLite database per match id."""

    def __init__(self, matches_dir: Path):
        self.matches_dir = Path(matches_dir).expanduser()

    def path_for(self, match_id: str) -> Path:
        return self.matches_dir / f"{self._check(match_id)}{DB_SUFFIX}"

    def prepare(self, match_id: str) -> Path:
        self.matches_dir.mkdir(parents=True, exist_ok=True)
        return self.path_for(match_id)

    def delete(self, match_id: str) -> bool:
        """
        Remove a match database and its side files.

        Returns False when there was nothing to delete. OSError from unlink
        propagates so callers can report it.
        """
        db_path = self.path_for(match_id)
        deleted = False
        for p in [db_path, *(db_path.with_name(db_path.name + s) for s in _SIDE_SUFFIXES)]:
            if p.exists():
                p.unlink()
                deleted = True
        if deleted:
            logger.info("Deleted match artifact %s", db_path)
        return deleted

    @staticmethod
    def _check(match_id: str) -> str:
        if not match_id or not match_id.strip():
            raise ValueError("match id must not be empty")
        if any(sep in match_id for sep in ("/", "\\")) or match_id in {".", ".."}:
            raise ValueError(f"invalid match id: {match_id!r}")
        return match_id
