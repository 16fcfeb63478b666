"""SQLite backend for running the ledger without PostgreSQL.

Used by local development (``API_DATABASE_URL=sqlite+aiosqlite:///...``)
and by the test suites, on the same table definitions as production.
Invoice numbering relies on two things SQLite only does once configured:

* ``SAVEPOINT`` around the counter upsert.  pysqlite's own transaction
  handling is switched off and ``BEGIN`` is issued explicitly so that
  ``session.begin_nested()`` works.
* Row locks.  SQLite has none; ``FOR UPDATE`` is dropped by the dialect
  and the single database writer lock serialises allocations instead.

``:memory:`` databases live on one shared connection (``StaticPool``);
a second connection would open a second, empty database.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"
_PRAGMAS = ("journal_mode=WAL", "foreign_keys=ON", "synchronous=NORMAL")


def _install_transaction_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _record) -> None:  # noqa: ANN001
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        for pragma in _PRAGMAS:
            cursor.execute(f"PRAGMA {pragma}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


def get_local_engine(db_path: Path | str = ".cargo/ledger.db") -> AsyncEngine:
    """Return an aiosqlite engine for *db_path*, or an in-memory one for ``":memory:"``.

    Parent directories of a file path are created.
    """
    if str(db_path) == _MEMORY:
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(f"sqlite+aiosqlite:///{path}", connect_args={"check_same_thread": False})

    _install_transaction_hooks(engine)
    logger.info("SQLite ledger store at %s", engine.url.database)
    return engine


async def create_local_tables(engine: AsyncEngine) -> None:
    """``CREATE TABLE IF NOT EXISTS`` for every ledger table; safe to repeat."""
    from cargo_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
