"""
Stats Committer — writes one run's totals into a domain's statistics tables.

Order of writes:

1. site stats       — one merge-add upsert keyed by date
2. page stats       — resolve page ids, then merge-add upserts keyed by (date, page_id)
3. referrer stats   — same as pages, keyed by (date, referrer_id)
4. realtime count   — append (now, pageviews), delete samples older than the window

By default each step is committed on its own, so a crash between steps
leaves the earlier steps applied. ``atomic=True`` holds everything in one
transaction with a single commit at the end.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import Table, delete, insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from aggregator.models.stats import DomainTables
from aggregator.services.accumulator import RunTotals, Totals
from aggregator.services.dimensions import resolve_dimension_ids
from aggregator.services.upsert import AdditiveUpsert, upsert_for_dialect

logger = logging.getLogger(__name__)

REALTIME_WINDOW = timedelta(hours=3)


def _chunks(rows: Sequence[dict], size: int) -> Iterator[Sequence[dict]]:
    size = max(1, int(size))
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class StatsCommitter:
    """Additive batch commit of ``RunTotals`` for one domain."""

    def __init__(
        self,
        engine: AsyncEngine,
        tables: DomainTables,
        upsert: Optional[AdditiveUpsert] = None,
        *,
        batch_size: int = 500,
        realtime_window: timedelta = REALTIME_WINDOW,
        tz: str = "UTC",
        atomic: bool = False,
    ):
        self.engine = engine
        self.tables = tables
        self.upsert = upsert or upsert_for_dialect(engine.dialect.name)
        self.batch_size = batch_size
        self.realtime_window = realtime_window
        self.tz = ZoneInfo(tz)
        self.atomic = atomic

    # ── Public API ──────────────────────────────────────

    async def commit(self, totals: RunTotals, now: Optional[datetime] = None) -> bool:
        """Write ``totals``. Returns False (and touches nothing) when the run saw no pageviews."""
        if totals.site.pageviews == 0:
            return False

        now = now or datetime.now(timezone.utc)
        day = now.astimezone(self.tz).date()

        async with self.engine.connect() as conn:
            await self._commit_site_stats(conn, day, totals.site)
            await self._checkpoint(conn)

            await self._commit_dimension_stats(
                conn, day, totals.pages, self.tables.page_urls, self.tables.page_stats, "page_id",
            )
            await self._checkpoint(conn)

            await self._commit_dimension_stats(
                conn, day, totals.referrers,
                self.tables.referrer_urls, self.tables.referrer_stats, "referrer_id",
            )
            await self._checkpoint(conn)

            await self._commit_realtime_count(conn, now, totals.site.pageviews)
            await conn.commit()

        logger.debug(
            "Committed %s: %d pageviews, %d pages, %d referrers",
            day, totals.site.pageviews, len(totals.pages), len(totals.referrers),
        )
        return True

    # ── Individual steps ────────────────────────────────

    async def _checkpoint(self, conn: AsyncConnection) -> None:
        if not self.atomic:
            await conn.commit()

    async def _commit_site_stats(self, conn: AsyncConnection, day: date, site: Totals) -> None:
        row = {"date": day, "visitors": site.visitors, "pageviews": site.pageviews}
        await conn.execute(self.upsert.merge_add(self.tables.site_stats, [row]))

    async def _commit_dimension_stats(
        self,
        conn: AsyncConnection,
        day: date,
        stats: dict[str, Totals],
        url_table: Table,
        stats_table: Table,
        key: str,
    ) -> None:
        if not stats:
            return

        ids = await resolve_dimension_ids(conn, self.upsert, url_table, stats.keys())
        rows = [
            {"date": day, key: ids[url], "visitors": t.visitors, "pageviews": t.pageviews}
            for url, t in stats.items()
        ]
        for batch in _chunks(rows, self.batch_size):
            await conn.execute(self.upsert.merge_add(stats_table, batch))

    async def _commit_realtime_count(self, conn: AsyncConnection, now: datetime, pageviews: int) -> None:
        timestamp = now.astimezone(timezone.utc).replace(tzinfo=None, microsecond=0)
        table = self.tables.realtime_count
        await conn.execute(insert(table).values(timestamp=timestamp, count=pageviews))
        await conn.execute(delete(table).where(table.c.timestamp < timestamp - self.realtime_window))
