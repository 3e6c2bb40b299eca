"""
Session cleanup — removes stale collector session files.

The collector keeps one small file per visitor session to decide whether a
request is a new visitor / unique pageview. The aggregator fires this once
after every successful non-empty commit.
"""

import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class SessionCleaner:
    """Deletes files in ``session_dir`` not modified for ``max_age_hours``."""

    def __init__(self, session_dir: Path | str, max_age_hours: int = 6):
        self.session_dir = Path(session_dir)
        self.max_age_s = max_age_hours * 3600

    def __call__(self) -> int:
        if not self.session_dir.is_dir():
            return 0

        cutoff = time.time() - self.max_age_s
        removed = 0
        for path in self.session_dir.iterdir():
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue  # collector or a concurrent sweep got there first

        if removed:
            logger.info("🧹 Removed %d stale session files from %s", removed, self.session_dir)
        return removed
