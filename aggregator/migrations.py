"""
Database Migrations — per-domain statistics tables.

``init_db()`` only creates the shared ``domains`` table. Each provisioned
domain needs its own set of statistics tables; this module creates them
idempotently (``CREATE TABLE IF NOT EXISTS`` semantics via ``checkfirst``).

Called from main.py lifespan AFTER init_db(), and from tests.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from aggregator.models.domain import Domain
from aggregator.models.stats import domain_metadata, domain_tables

logger = logging.getLogger("aggregator.migrations")


async def create_domain_tables(engine: AsyncEngine, domain_id: int) -> None:
    """Create the six statistics tables for one domain if missing."""
    tables = list(domain_tables(domain_id))
    async with engine.begin() as conn:
        await conn.run_sync(domain_metadata.create_all, tables=tables, checkfirst=True)
    logger.debug("Statistics tables ready for domain %d", domain_id)


async def run_migrations(engine: AsyncEngine) -> int:
    """Ensure statistics tables exist for every known domain. Returns domain count."""
    async with engine.connect() as conn:
        domain_ids = (await conn.execute(select(Domain.id))).scalars().all()
    for domain_id in domain_ids:
        await create_domain_tables(engine, domain_id)
    logger.info("Migrations complete: statistics tables checked for %d domains", len(domain_ids))
    return len(domain_ids)
