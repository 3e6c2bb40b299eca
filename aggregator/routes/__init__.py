"""
API Routes — health, manual aggregation trigger, domain status, realtime count.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aggregator.config import settings
from aggregator.database import get_db
from aggregator.models.domain import Domain
from aggregator.models.stats import domain_tables
from aggregator.schemas import (
    AggregationResult,
    DomainKnownResponse,
    HealthResponse,
    RealtimeResponse,
)
from aggregator.services.buffer import BufferStore
from aggregator.services.queue import AggregationQueue, aggregation_queue

logger = logging.getLogger(__name__)

router = APIRouter()

VERSION = "1.0.0"


def get_queue() -> AggregationQueue:
    return aggregation_queue


def get_buffers() -> BufferStore:
    return BufferStore(settings.var_dir)


async def _get_domain(name: str, session: AsyncSession) -> Domain:
    result = await session.execute(select(Domain).where(Domain.name == name))
    domain = result.scalar_one_or_none()
    if not domain:
        raise HTTPException(status_code=404, detail=f"Unknown domain: {name}")
    return domain


# ── Health ──────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health():
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=VERSION,
    )


# ── Aggregation ─────────────────────────────────────────

@router.post("/domains/{name}/aggregate", response_model=AggregationResult, tags=["aggregation"])
async def aggregate_domain(
    name: str,
    session: AsyncSession = Depends(get_db),
    queue: AggregationQueue = Depends(get_queue),
):
    domain = await _get_domain(name, session)
    try:
        return await queue.run(domain)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Aggregation failed: {e}")


# ── Domain status ───────────────────────────────────────

@router.get("/domains/{name}/known", response_model=DomainKnownResponse, tags=["domains"])
async def domain_known(name: str, buffers: BufferStore = Depends(get_buffers)):
    # the buffer file name is derived from ``name``; refuse anything path-like
    if not name or "/" in name or "\\" in name or name.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid domain name")
    return DomainKnownResponse(domain=name, known=buffers.is_known(Domain(name=name)))


@router.get("/domains/{name}/realtime", response_model=RealtimeResponse, tags=["domains"])
async def realtime_pageviews(name: str, session: AsyncSession = Depends(get_db)):
    domain = await _get_domain(name, session)
    table = domain_tables(domain.id).realtime_count
    since = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0) - timedelta(
        hours=settings.realtime_window_hours
    )
    total = (
        await session.execute(
            select(func.coalesce(func.sum(table.c["count"]), 0)).where(table.c.timestamp >= since)
        )
    ).scalar_one()
    return RealtimeResponse(domain=domain.name, pageviews=int(total), since=since)
