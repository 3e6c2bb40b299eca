"""
Buffer Rotator — hands a closed snapshot of a domain's event buffer to one run.

The collector appends one record per request to ``<var_dir>/buffer-<name>``.
``rotate()`` renames that file out of the way and immediately puts an empty
one in its place, so every record written from that instant on lands in the
fresh buffer and never in the snapshot being aggregated. ``os.rename`` is
atomic on POSIX filesystems.

At most one run per domain may rotate at a time — see
``aggregator.services.queue.AggregationQueue``.
"""

import logging
import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from aggregator.errors import BufferReadError, BufferRotationError

logger = logging.getLogger(__name__)


class BufferStore:
    """Locates, rotates and releases per-domain buffer files."""

    def __init__(self, var_dir: Path | str):
        self.var_dir = Path(var_dir)

    def path_for(self, domain) -> Path:
        return self.var_dir / f"buffer-{domain.name}"

    def is_known(self, domain) -> bool:
        """A domain is accepted by the collector once its buffer file exists."""
        return self.path_for(domain).is_file()

    def ensure(self, domain) -> Path:
        path = self.path_for(domain)
        self.var_dir.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)
        return path

    def rotate(self, domain) -> Optional[Path]:
        """Detach the current buffer. Returns the snapshot path, or None if there was no buffer."""
        path = self.path_for(domain)
        if not path.is_file():
            # no new data since last run; create it so the collector accepts the domain
            self.ensure(domain)
            logger.debug("No buffer for %s — created empty one", domain.name)
            return None

        snapshot = path.with_name(f"{path.name}-{int(time.time())}-{uuid.uuid4().hex[:8]}")
        try:
            os.rename(path, snapshot)
        except OSError as e:
            raise BufferRotationError(f"Error renaming buffer file {path}: {e}") from e

        try:
            path.touch(exist_ok=True)
        except OSError as e:
            raise BufferRotationError(f"Error creating replacement buffer {path}: {e}") from e

        logger.debug("Rotated %s → %s", path.name, snapshot.name)
        return snapshot

    @contextmanager
    def open_snapshot(self, snapshot: Path) -> Iterator[Iterator[bytes]]:
        """Yield the snapshot's raw lines; the file is closed and deleted on every exit path.

        Lines are bytes: text decoding happens per record in ``decode_line``.
        """
        try:
            fh = open(snapshot, "rb")
        except OSError as e:
            raise BufferReadError(f"Error opening buffer file {snapshot} for reading: {e}") from e

        try:
            yield iter(fh)
        finally:
            fh.close()
            self._remove(snapshot)

    @staticmethod
    def _remove(snapshot: Path) -> None:
        try:
            snapshot.unlink()
        except FileNotFoundError:
            pass
