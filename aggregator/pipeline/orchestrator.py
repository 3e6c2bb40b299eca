"""
Aggregation Orchestrator — drains one domain's buffer into its statistics tables.

    rotate → decode → filter → accumulate → commit → reset → session cleanup

A run either completes or raises; a malformed record aborts the whole run
(nothing is committed) unless ``skip_malformed_lines`` is set.
"""

import asyncio
import logging
import traceback
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from aggregator.errors import DecodeError
from aggregator.models.stats import domain_tables
from aggregator.schemas import AggregationResult
from aggregator.services.accumulator import RunTotals
from aggregator.services.blocklist import Blocklist
from aggregator.services.buffer import BufferStore
from aggregator.services.committer import REALTIME_WINDOW, StatsCommitter
from aggregator.services.decoder import decode_line
from aggregator.services.upsert import AdditiveUpsert, upsert_for_dialect

logger = logging.getLogger(__name__)


class Aggregator:
    """Runs the aggregation pipeline for one domain at a time.

    The in-run totals live on the instance and are reset after every
    commit attempt, so calling ``run()`` twice never commits the same
    records twice. Callers must not run the same domain concurrently
    (see ``AggregationQueue``).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        buffers: BufferStore,
        blocklist: Blocklist,
        session_cleaner: Optional[Callable[[], object]] = None,
        *,
        upsert: Optional[AdditiveUpsert] = None,
        table_prefix: Optional[str] = None,
        skip_malformed_lines: bool = False,
        batch_size: int = 500,
        realtime_window: timedelta = REALTIME_WINDOW,
        tz: str = "UTC",
        atomic_commit: bool = False,
    ):
        self.engine = engine
        self.buffers = buffers
        self.blocklist = blocklist
        self.session_cleaner = session_cleaner
        self.upsert = upsert or upsert_for_dialect(engine.dialect.name)
        self.table_prefix = table_prefix
        self.skip_malformed_lines = skip_malformed_lines
        self.batch_size = batch_size
        self.realtime_window = realtime_window
        self.tz = tz
        self.atomic_commit = atomic_commit
        self.totals = RunTotals()

    # ── Public API ──────────────────────────────────────

    async def run(self, domain, now: Optional[datetime] = None) -> AggregationResult:
        """Aggregate everything buffered for ``domain`` since the last run."""
        snapshot = self.buffers.rotate(domain)
        if snapshot is None:
            return AggregationResult(domain=domain.name)

        loop = asyncio.get_event_loop()
        try:
            # blocking file I/O runs in the default executor
            await loop.run_in_executor(None, self._read_snapshot, snapshot)
            committed = await self._committer(domain).commit(self.totals, now)
        except Exception:
            self.totals.reset()
            logger.error("Aggregation for %s aborted:\n%s", domain.name, traceback.format_exc())
            raise

        result = AggregationResult(
            domain=domain.name,
            snapshot=True,
            committed=committed,
            pageviews=self.totals.site.pageviews,
            visitors=self.totals.site.visitors,
            pages=len(self.totals.pages),
            referrers=len(self.totals.referrers),
            blocked=self.totals.blocked,
            skipped=self.totals.skipped,
        )
        self.totals.reset()

        if committed:
            logger.info(
                "📊 %s: %d pageviews, %d visitors, %d pages, %d referrers (%d blocked)",
                domain.name, result.pageviews, result.visitors,
                result.pages, result.referrers, result.blocked,
            )
            await self._cleanup_sessions()
        return result

    # ── Internals ───────────────────────────────────────

    def _read_snapshot(self, snapshot: Path) -> None:
        with self.buffers.open_snapshot(snapshot) as lines:
            for line_number, line in enumerate(lines, start=1):
                self._add_line(line, line_number)

    def _add_line(self, line: bytes, line_number: int) -> None:
        try:
            event = decode_line(line, line_number)
        except DecodeError as e:
            if not self.skip_malformed_lines:
                raise
            self.totals.skipped += 1
            logger.warning("⏭️  %s", e)
            return

        if event is None:
            return

        # blocked referrer drops the whole record, site totals included
        if self.blocklist.is_blocked(event.referrer_url):
            self.totals.blocked += 1
            return

        self.totals.add(event)

    def _committer(self, domain) -> StatsCommitter:
        return StatsCommitter(
            self.engine,
            domain_tables(domain.id, self.table_prefix),
            self.upsert,
            batch_size=self.batch_size,
            realtime_window=self.realtime_window,
            tz=self.tz,
            atomic=self.atomic_commit,
        )

    async def _cleanup_sessions(self) -> None:
        if self.session_cleaner is None:
            return
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self.session_cleaner)
        except Exception as e:
            logger.warning("Session cleanup failed: %s", e)
