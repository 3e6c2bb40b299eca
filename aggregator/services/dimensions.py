"""
Dimension Resolver — URL → stable integer id.

Fact tables store a small integer instead of the full URL. Resolution costs
exactly two round-trips however many distinct URLs a run produced:

1. one multi-row insert-if-absent of every URL (``url`` is UNIQUE),
2. one ``SELECT url, id … WHERE url IN (…)``.
"""

import logging
from typing import Iterable

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncConnection

from aggregator.errors import DimensionResolutionError
from aggregator.services.upsert import AdditiveUpsert

logger = logging.getLogger(__name__)


async def resolve_dimension_ids(
    conn: AsyncConnection,
    upsert: AdditiveUpsert,
    table: Table,
    urls: Iterable[str],
) -> dict[str, int]:
    """Map every URL to its id in ``table``, creating missing rows."""
    values = list(dict.fromkeys(urls))
    if not values:
        return {}

    await conn.execute(upsert.insert_ignore(table, [{"url": url} for url in values]))

    result = await conn.execute(
        select(table.c.url, table.c.id).where(table.c.url.in_(values))
    )
    ids = {url: id_ for url, id_ in result.all()}

    missing = [url for url in values if url not in ids]
    if missing:
        raise DimensionResolutionError(
            f"{len(missing)} url(s) have no id in {table.name} after insert, e.g. {missing[0]!r}"
        )

    logger.debug("Resolved %d urls in %s", len(ids), table.name)
    return ids
