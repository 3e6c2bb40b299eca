"""
Pageview Aggregator — per-domain run serialization.

Two runs for the same domain must never overlap: both would rotate the
buffer and race on the commit. The queue holds one lock and one
``Aggregator`` per domain id (the aggregator keeps its in-run totals on the
instance); runs for different domains may proceed concurrently.

The locks are process-local. Deploy a single aggregator process per
database (the periodic loop in main.py, or one cron job) to keep runs
serialized across processes.
"""

import asyncio
import logging
from typing import Callable, Iterable, Optional

from aggregator.pipeline.orchestrator import Aggregator
from aggregator.schemas import AggregationResult

logger = logging.getLogger(__name__)


class AggregationQueue:
    """Runs a domain's aggregator while holding that domain's lock."""

    def __init__(self, factory: Optional[Callable[[], Aggregator]] = None):
        self._factory = factory
        self._locks: dict[int, asyncio.Lock] = {}
        self._aggregators: dict[int, Aggregator] = {}
        self._runs = 0
        self._failures = 0

    def set_factory(self, factory: Callable[[], Aggregator]) -> None:
        """Set the callable that builds an ``Aggregator``. Drops previously built ones."""
        self._factory = factory
        self._aggregators.clear()

    def aggregator_for(self, domain_id: int) -> Aggregator:
        aggregator = self._aggregators.get(domain_id)
        if aggregator is None:
            if self._factory is None:
                raise RuntimeError("AggregationQueue has no aggregator factory configured")
            aggregator = self._aggregators[domain_id] = self._factory()
        return aggregator

    def _lock_for(self, domain_id: int) -> asyncio.Lock:
        lock = self._locks.get(domain_id)
        if lock is None:
            lock = self._locks[domain_id] = asyncio.Lock()
        return lock

    def is_running(self, domain_id: int) -> bool:
        """Whether a run for this domain currently holds its lock."""
        lock = self._locks.get(domain_id)
        return bool(lock and lock.locked())

    async def run(self, domain) -> AggregationResult:
        """Aggregate one domain; errors propagate to the caller."""
        async with self._lock_for(domain.id):
            self._runs += 1
            try:
                return await self.aggregator_for(domain.id).run(domain)
            except Exception:
                self._failures += 1
                raise

    async def run_all(self, domains: Iterable) -> list[AggregationResult]:
        """Aggregate every domain in turn; a failing domain is logged and skipped."""
        results: list[AggregationResult] = []
        for domain in domains:
            try:
                results.append(await self.run(domain))
            except Exception as e:
                logger.error("Aggregation for %s failed: %s", domain.name, e)
        return results

    @property
    def stats(self) -> dict:
        return {"runs": self._runs, "failures": self._failures}


# Process-wide queue — wired to an aggregator factory in main.py lifespan
aggregation_queue = AggregationQueue()
