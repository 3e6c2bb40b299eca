"""
FastAPI Application — entry point.

Besides the operations API, the lifespan starts a periodic sweep that
aggregates every domain once per ``aggregation_interval`` seconds.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy import select

from aggregator.config import settings
from aggregator.database import async_session, close_db, engine, init_db
from aggregator.migrations import run_migrations
from aggregator.models.domain import Domain
from aggregator.pipeline.orchestrator import Aggregator
from aggregator.routes import VERSION, router
from aggregator.services.blocklist import Blocklist
from aggregator.services.buffer import BufferStore
from aggregator.services.queue import aggregation_queue
from aggregator.services.session_cleaner import SessionCleaner

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


def build_aggregator_factory(blocklist: Blocklist):
    """Return a factory of aggregators sharing one blocklist, buffer store and cleaner."""
    buffers = BufferStore(settings.var_dir)
    cleaner = SessionCleaner(settings.session_path, settings.session_max_age_hours)

    def _factory() -> Aggregator:
        return Aggregator(
            engine,
            buffers,
            blocklist,
            cleaner,
            table_prefix=settings.table_prefix,
            skip_malformed_lines=settings.skip_malformed_lines,
            batch_size=settings.upsert_batch_size,
            realtime_window=timedelta(hours=settings.realtime_window_hours),
            tz=settings.timezone,
            atomic_commit=settings.atomic_commit,
        )

    return _factory


async def aggregate_all_domains() -> int:
    """Run one aggregation sweep over every domain. Returns number of committed runs."""
    async with async_session() as session:
        domains = (await session.execute(select(Domain).order_by(Domain.id))).scalars().all()

    results = await aggregation_queue.run_all(domains)
    committed = sum(1 for r in results if r.committed)
    if committed:
        logger.info("📡 Sweep committed %d of %d domains", committed, len(domains))
    return committed


async def periodic_aggregation(interval: int = 60) -> None:
    """Aggregate all domains every ``interval`` seconds."""
    while True:
        try:
            await asyncio.sleep(interval)
            # new domains may have been provisioned since the last sweep
            await run_migrations(engine)
            await aggregate_all_domains()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Aggregation sweep error: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting Pageview Aggregator v%s", VERSION)
    await init_db()
    await run_migrations(engine)
    logger.info("✅ Database ready")

    blocklist = Blocklist.from_file(settings.blocklist_file)
    aggregation_queue.set_factory(build_aggregator_factory(blocklist))

    sweeper_task = asyncio.create_task(
        periodic_aggregation(interval=settings.aggregation_interval)
    )

    yield

    # Shutdown
    sweeper_task.cancel()
    try:
        await sweeper_task
    except asyncio.CancelledError:
        pass
    await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Pageview Aggregator",
    description=(
        "Drains per-domain pageview buffers into daily site, page and "
        "referrer statistics."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Pageview Aggregator",
        "version": VERSION,
        "docs": "/docs",
    }
