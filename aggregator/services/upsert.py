"""
Additive upsert — one capability, two dialect variants.

Statistics rows are never overwritten: on a key conflict the new counters
are *added* to the stored ones. SQLite and PostgreSQL express that with an
``ON CONFLICT … DO UPDATE`` clause, MySQL/MariaDB with ``ON DUPLICATE KEY
UPDATE``. Callers only see ``AdditiveUpsert``.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.sql.dml import Insert

COUNTERS = ("visitors", "pageviews")


class AdditiveUpsert(ABC):
    """Builds insert-if-absent and merge-add statements for one SQL dialect."""

    dialect_name: str = ""

    @abstractmethod
    def insert_ignore(self, table: Table, rows: Sequence[dict]) -> Insert:
        """Multi-row insert that silently skips rows violating a unique key."""

    @abstractmethod
    def merge_add(self, table: Table, rows: Sequence[dict], counters: Sequence[str] = COUNTERS) -> Insert:
        """Multi-row insert that adds ``counters`` to the existing row on key conflict."""

    def __repr__(self):
        return f"<{type(self).__name__} {self.dialect_name}>"


class ConflictClauseUpsert(AdditiveUpsert):
    """``INSERT … ON CONFLICT`` (SQLite ≥ 3.24, PostgreSQL ≥ 9.5)."""

    _INSERTS = {
        "sqlite": sqlite.insert,
        "postgresql": postgresql.insert,
    }

    def __init__(self, dialect_name: str = "sqlite"):
        if dialect_name not in self._INSERTS:
            raise ValueError(f"ON CONFLICT upsert not available for dialect {dialect_name!r}")
        self.dialect_name = dialect_name
        self._insert = self._INSERTS[dialect_name]

    def insert_ignore(self, table, rows):
        return self._insert(table).values(list(rows)).on_conflict_do_nothing()

    def merge_add(self, table, rows, counters=COUNTERS):
        stmt = self._insert(table).values(list(rows))
        return stmt.on_conflict_do_update(
            index_elements=[c.name for c in table.primary_key.columns],
            set_={name: table.c[name] + stmt.excluded[name] for name in counters},
        )


class DuplicateKeyUpsert(AdditiveUpsert):
    """``INSERT IGNORE`` / ``INSERT … ON DUPLICATE KEY UPDATE`` (MySQL, MariaDB)."""

    dialect_name = "mysql"

    def insert_ignore(self, table, rows):
        return mysql.insert(table).values(list(rows)).prefix_with("IGNORE")

    def merge_add(self, table, rows, counters=COUNTERS):
        stmt = mysql.insert(table).values(list(rows))
        return stmt.on_duplicate_key_update(
            {name: table.c[name] + stmt.inserted[name] for name in counters}
        )


def upsert_for_dialect(dialect_name: str) -> AdditiveUpsert:
    """Pick the variant for an engine's ``dialect.name``."""
    if dialect_name in ConflictClauseUpsert._INSERTS:
        return ConflictClauseUpsert(dialect_name)
    if dialect_name in ("mysql", "mariadb"):
        return DuplicateKeyUpsert()
    raise ValueError(f"No additive upsert for database dialect {dialect_name!r}")
