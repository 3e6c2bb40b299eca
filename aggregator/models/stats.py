"""
Pageview Aggregator — per-domain statistics tables.

Every domain owns six tables, namespaced by its id::

    <prefix>site_stats_<id>       date PK, visitors, pageviews
    <prefix>page_urls_<id>        id PK, url UNIQUE
    <prefix>page_stats_<id>       (date, page_id) PK, visitors, pageviews
    <prefix>referrer_urls_<id>    id PK, url UNIQUE
    <prefix>referrer_stats_<id>   (date, referrer_id) PK, visitors, pageviews
    <prefix>realtime_count_<id>   timestamp, count

The tables live on their own ``MetaData`` so ``init_db()`` never creates
them; see ``aggregator.migrations.create_domain_tables``.
"""

from functools import lru_cache
from typing import NamedTuple

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.dialects import mysql

from aggregator.config import settings

domain_metadata = MetaData()


class DomainTables(NamedTuple):
    site_stats: Table
    page_urls: Table
    page_stats: Table
    referrer_urls: Table
    referrer_stats: Table
    realtime_count: Table


def _counters() -> list[Column]:
    return [
        Column("visitors", Integer, nullable=False, default=0),
        Column("pageviews", Integer, nullable=False, default=0),
    ]


# url matches byte-exact; MySQL/MariaDB default collations fold case
URL_TYPE = String(255).with_variant(
    mysql.VARCHAR(255, charset="utf8mb4", collation="utf8mb4_bin"), "mysql", "mariadb"
)


def _url_table(name: str) -> Table:
    return Table(
        name,
        domain_metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("url", URL_TYPE, nullable=False, unique=True),
    )


def _dimension_stats_table(name: str, key: str) -> Table:
    return Table(
        name,
        domain_metadata,
        Column("date", Date, primary_key=True),
        Column(key, Integer, primary_key=True, autoincrement=False),
        *_counters(),
    )


@lru_cache(maxsize=None)
def _build_tables(domain_id: int, prefix: str) -> DomainTables:
    return DomainTables(
        site_stats=Table(
            f"{prefix}site_stats_{domain_id}",
            domain_metadata,
            Column("date", Date, primary_key=True),
            *_counters(),
        ),
        page_urls=_url_table(f"{prefix}page_urls_{domain_id}"),
        page_stats=_dimension_stats_table(f"{prefix}page_stats_{domain_id}", "page_id"),
        referrer_urls=_url_table(f"{prefix}referrer_urls_{domain_id}"),
        referrer_stats=_dimension_stats_table(
            f"{prefix}referrer_stats_{domain_id}", "referrer_id"
        ),
        realtime_count=Table(
            f"{prefix}realtime_count_{domain_id}",
            domain_metadata,
            Column("timestamp", DateTime, nullable=False, index=True),
            Column("count", Integer, nullable=False),
        ),
    )


def domain_tables(domain_id: int, prefix: str | None = None) -> DomainTables:
    """Return the (cached) table set for one domain."""
    return _build_tables(int(domain_id), settings.table_prefix if prefix is None else prefix)
