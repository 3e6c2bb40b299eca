"""
Tests for the stats committer — merge-add commits, realtime window,
empty-run short circuit, transactional mode.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import event, insert

from aggregator.models.stats import domain_tables
from aggregator.services.accumulator import RunTotals, Totals
from aggregator.services.committer import StatsCommitter
from aggregator.services.decoder import Event
from tests.conftest import fetch_all

NOW = datetime(2026, 3, 14, 12, 30, tzinfo=timezone.utc)


def _totals(*events) -> RunTotals:
    totals = RunTotals()
    for e in events:
        totals.add(Event(*e))
    return totals


@pytest.fixture
def write_log(db_engine):
    seen: list[str] = []

    def _before(conn, cursor, statement, parameters, context, executemany):
        seen.append(statement)

    event.listen(db_engine.sync_engine, "before_cursor_execute", _before)
    yield seen
    event.remove(db_engine.sync_engine, "before_cursor_execute", _before)


class TestCommit:
    async def test_empty_run_touches_nothing(self, db_engine, domain, write_log):
        committer = StatsCommitter(db_engine, domain_tables(domain.id))

        assert await committer.commit(RunTotals(), NOW) is False
        assert write_log == []

    async def test_writes_all_tables(self, db_engine, domain):
        tables = domain_tables(domain.id)
        committer = StatsCommitter(db_engine, tables)

        ok = await committer.commit(_totals(
            ("/a", True, True, "https://r.example/"),
            ("/a", False, False, ""),
            ("/b", False, True, "https://r.example/"),
        ), NOW)

        assert ok is True
        assert await fetch_all(db_engine, tables.site_stats) == [
            {"date": date(2026, 3, 14), "visitors": 1, "pageviews": 3}
        ]

        page_ids = {r["url"]: r["id"] for r in await fetch_all(db_engine, tables.page_urls)}
        page_stats = {r["page_id"]: r for r in await fetch_all(db_engine, tables.page_stats)}
        assert page_stats[page_ids["/a"]]["pageviews"] == 2
        assert page_stats[page_ids["/a"]]["visitors"] == 1
        assert page_stats[page_ids["/b"]]["pageviews"] == 1

        ref_ids = {r["url"]: r["id"] for r in await fetch_all(db_engine, tables.referrer_urls)}
        ref_stats = await fetch_all(db_engine, tables.referrer_stats)
        assert ref_stats == [{
            "date": date(2026, 3, 14),
            "referrer_id": ref_ids["https://r.example/"],
            "visitors": 2,
            "pageviews": 2,
        }]

        realtime = await fetch_all(db_engine, tables.realtime_count)
        assert realtime == [{"timestamp": datetime(2026, 3, 14, 12, 30), "count": 3}]

    async def test_merge_add_across_commits(self, db_engine, domain):
        tables = domain_tables(domain.id)
        committer = StatsCommitter(db_engine, tables)

        await committer.commit(_totals(("/a", True, True, ""), ("/a", True, False, "")), NOW)
        await committer.commit(_totals(("/a", False, True, ""),), NOW + timedelta(minutes=5))

        site = await fetch_all(db_engine, tables.site_stats)
        assert site == [{"date": date(2026, 3, 14), "visitors": 2, "pageviews": 3}]

        pages = await fetch_all(db_engine, tables.page_stats)
        assert len(pages) == 1
        assert pages[0]["pageviews"] == 3
        assert pages[0]["visitors"] == 2
        assert len(await fetch_all(db_engine, tables.page_urls)) == 1

    async def test_referrer_steps_skipped_when_empty(self, db_engine, domain, write_log):
        tables = domain_tables(domain.id)
        await StatsCommitter(db_engine, tables).commit(_totals(("/a", True, True, ""),), NOW)

        assert await fetch_all(db_engine, tables.referrer_urls) == []
        assert await fetch_all(db_engine, tables.referrer_stats) == []
        assert not any(tables.referrer_urls.name in s for s in write_log)

    async def test_realtime_window_pruned(self, db_engine, domain):
        tables = domain_tables(domain.id)
        async with db_engine.begin() as conn:
            await conn.execute(insert(tables.realtime_count), [
                {"timestamp": datetime(2026, 3, 14, 9, 0), "count": 7},    # 3h30 old
                {"timestamp": datetime(2026, 3, 14, 9, 30), "count": 4},   # exactly 3h
                {"timestamp": datetime(2026, 3, 14, 11, 0), "count": 2},
            ])

        await StatsCommitter(db_engine, tables).commit(_totals(("/a", True, True, ""),), NOW)

        rows = await fetch_all(db_engine, tables.realtime_count)
        cutoff = datetime(2026, 3, 14, 9, 30)
        assert all(r["timestamp"] >= cutoff for r in rows)
        assert sorted(r["count"] for r in rows) == [1, 2, 4]

    async def test_custom_realtime_window(self, db_engine, domain):
        tables = domain_tables(domain.id)
        async with db_engine.begin() as conn:
            await conn.execute(insert(tables.realtime_count).values(
                timestamp=datetime(2026, 3, 14, 12, 0), count=5
            ))

        committer = StatsCommitter(db_engine, tables, realtime_window=timedelta(minutes=10))
        await committer.commit(_totals(("/a", True, True, ""),), NOW)

        assert [r["count"] for r in await fetch_all(db_engine, tables.realtime_count)] == [1]

    async def test_date_follows_timezone(self, db_engine, domain):
        tables = domain_tables(domain.id)
        late_utc = datetime(2026, 3, 14, 23, 30, tzinfo=timezone.utc)

        await StatsCommitter(db_engine, tables, tz="Asia/Tokyo").commit(
            _totals(("/a", True, True, ""),), late_utc
        )

        site = await fetch_all(db_engine, tables.site_stats)
        assert site[0]["date"] == date(2026, 3, 15)
        # realtime samples stay in UTC
        realtime = await fetch_all(db_engine, tables.realtime_count)
        assert realtime[0]["timestamp"] == datetime(2026, 3, 14, 23, 30)

    async def test_batches_large_maps(self, db_engine, domain, write_log):
        tables = domain_tables(domain.id)
        totals = _totals(*[(f"/p{i}", True, True, "") for i in range(25)])

        await StatsCommitter(db_engine, tables, batch_size=10).commit(totals, NOW)

        page_stat_inserts = [
            s for s in write_log
            if s.lstrip().upper().startswith("INSERT") and tables.page_stats.name in s
        ]
        assert len(page_stat_inserts) == 3
        assert len(await fetch_all(db_engine, tables.page_stats)) == 25


class TestAtomicity:
    def _fail_realtime(self, committer):
        async def _boom(*args, **kwargs):
            raise RuntimeError("connection lost")

        committer._commit_realtime_count = _boom

    async def test_independent_statements_keep_earlier_steps(self, db_engine, domain):
        tables = domain_tables(domain.id)
        committer = StatsCommitter(db_engine, tables, atomic=False)
        self._fail_realtime(committer)

        with pytest.raises(RuntimeError):
            await committer.commit(_totals(("/a", True, True, ""),), NOW)

        assert len(await fetch_all(db_engine, tables.site_stats)) == 1
        assert len(await fetch_all(db_engine, tables.page_stats)) == 1

    async def test_atomic_commit_rolls_back_everything(self, db_engine, domain):
        tables = domain_tables(domain.id)
        committer = StatsCommitter(db_engine, tables, atomic=True)
        self._fail_realtime(committer)

        with pytest.raises(RuntimeError):
            await committer.commit(_totals(("/a", True, True, "https://r.example/"),), NOW)

        for table in tables:
            assert await fetch_all(db_engine, table) == []
