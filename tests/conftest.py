"""
Shared test fixtures — SQLite database, domains with statistics tables,
buffer directory, FastAPI test client.
"""

import json
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select

from aggregator.database import get_db, init_db, make_engine, make_session_factory
from aggregator.migrations import create_domain_tables
from aggregator.models.domain import Domain
from aggregator.services.blocklist import Blocklist
from aggregator.services.buffer import BufferStore


# ── Test Database (SQLite file per test) ────────────────

@pytest_asyncio.fixture()
async def db_engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return make_session_factory(db_engine)


async def make_domain(engine, session_factory, name: str) -> Domain:
    async with session_factory() as session:
        domain = Domain(name=name)
        session.add(domain)
        await session.commit()
        await session.refresh(domain)
    await create_domain_tables(engine, domain.id)
    return domain


@pytest_asyncio.fixture()
async def domain(db_engine, session_factory):
    return await make_domain(db_engine, session_factory, "example.com")


@pytest_asyncio.fixture()
async def other_domain(db_engine, session_factory):
    return await make_domain(db_engine, session_factory, "other.example")


async def fetch_all(engine, table) -> list[dict]:
    async with engine.connect() as conn:
        result = await conn.execute(select(table))
        return [dict(row._mapping) for row in result]


# ── Buffers ─────────────────────────────────────────────

@pytest.fixture
def var_dir(tmp_path) -> Path:
    d = tmp_path / "var"
    d.mkdir()
    return d


@pytest.fixture
def buffers(var_dir) -> BufferStore:
    return BufferStore(var_dir)


def write_buffer(var_dir: Path, name: str, records: list, extra_lines: list[str] = ()) -> Path:
    """Append JSON records (plus raw lines) to a domain's buffer file."""
    path = var_dir / f"buffer-{name}"
    with path.open("a", encoding="utf-8") as fh:
        for record in records:
            fh.write(json.dumps(record) + "\n")
        for line in extra_lines:
            fh.write(line + "\n")
    return path


@pytest.fixture
def blocklist() -> Blocklist:
    return Blocklist(["spam.test"])


# ── API client ──────────────────────────────────────────

@pytest_asyncio.fixture()
async def client(session_factory):
    """FastAPI test client with test DB injected."""
    from aggregator.main import app

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
