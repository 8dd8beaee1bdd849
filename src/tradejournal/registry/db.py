from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

import psycopg
from psycopg.rows import dict_row

try:
    from psycopg_pool import ConnectionPool

    HAS_POOL = True
except ImportError:
    HAS_POOL = False

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS _migrations (
        filename TEXT PRIMARY KEY,
        applied_at TIMESTAMPTZ DEFAULT NOW()
    )
"""


class Transaction:
    """Statements issued on one borrowed connection, committed together.

    Has the same ``execute``/``execute_many`` surface as ``Database`` so the
    query layer runs unchanged inside or outside a transaction.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        with self._conn.cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_many(self, query: str, params_seq: list[tuple]) -> int:
        affected = 0
        with self._conn.cursor() as cur:
            for params in params_seq:
                cur.execute(query, params)
                if cur.rowcount > 0:
                    affected += cur.rowcount
        return affected


class Database:
    """Journal storage handle over psycopg3.

    Uses a ``psycopg_pool`` pool when the package is installed, otherwise a
    single shared connection. Every statement runs inside ``transaction()``;
    the plain ``execute`` helpers are one-statement transactions.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: ConnectionPool | None = None
        self._conn: psycopg.Connection | None = None

    def connect(self) -> None:
        if HAS_POOL:
            self._pool = ConnectionPool(self._dsn, kwargs={"row_factory": dict_row})
            self._pool.wait()
            logger.info("Journal database pool ready")
            return
        self._conn = psycopg.connect(self._dsn, row_factory=dict_row)
        logger.info("Journal database connected without pooling")

    def close(self) -> None:
        pool, conn = self._pool, self._conn
        self._pool = self._conn = None
        if pool is not None:
            pool.close()
        if conn is not None:
            conn.close()

    @contextmanager
    def _borrow(self) -> Iterator[psycopg.Connection]:
        if self._pool is not None:
            conn = self._pool.getconn()
            try:
                yield conn
            finally:
                self._pool.putconn(conn)
        elif self._conn is not None:
            yield self._conn
        else:
            raise RuntimeError("Database not connected. Call connect() first.")

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Commit the block's statements on success, roll them all back on error."""
        with self._borrow() as conn:
            try:
                yield Transaction(conn)
            except BaseException:
                conn.rollback()
                logger.warning("Transaction rolled back", exc_info=True)
                raise
            conn.commit()

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_many(self, query: str, params_seq: list[tuple]) -> int:
        with self.transaction() as tx:
            return tx.execute_many(query, params_seq)

    def run_migrations(self, migrations_dir: str) -> None:
        """Apply pending ``*.sql`` files in name order, one transaction per file."""
        self.execute(MIGRATIONS_TABLE)
        applied = {row["filename"] for row in self.execute("SELECT filename FROM _migrations ORDER BY filename")}

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            if sql_file.name in applied:
                logger.debug("Migration %s already applied", sql_file.name)
                continue
            logger.info("Applying migration %s", sql_file.name)
            with self.transaction() as tx:
                tx.execute(sql_file.read_text())
                tx.execute("INSERT INTO _migrations (filename) VALUES (%s)", (sql_file.name,))

    def health_check(self) -> bool:
        try:
            rows = self.execute("SELECT 1 AS ok")
        except Exception:
            logger.exception("Journal database health check failed")
            return False
        return bool(rows) and rows[0].get("ok") == 1

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
