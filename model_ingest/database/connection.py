from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg_pool import ConnectionPool

from model_ingest.config.settings import Settings

# Status readers and repository lookups outside a finalization.
_SPARE_CONNECTIONS = 2

_pool: ConnectionPool | None = None


def pool_size(settings: Settings) -> int:
    """Connections needed so every finalization thread can hold its transaction open."""
    return max(4, settings.finalization_workers + _SPARE_CONNECTIONS)


def conninfo(settings: Settings) -> str:
    return make_conninfo(
        "",
        host=settings.db_host,
        port=settings.db_port,
        dbname=settings.db_database,
        user=settings.db_username,
        password=settings.db_password,
        application_name="model-ingest-worker",
    )


def init_pool(settings: Settings) -> None:
    """Open the pool shared by the finalization engine and the repositories."""
    global _pool  # noqa: PLW0603
    _pool = ConnectionPool(
        conninfo(settings),
        min_size=1,
        max_size=pool_size(settings),
        name="model-ingest",
        open=True,
    )


def close_pool() -> None:
    global _pool  # noqa: PLW0603
    if _pool is not None:
        _pool.close()
        _pool = None


@contextmanager
def get_connection() -> Generator[psycopg.Connection[Any], None, None]:
    """Yield a pooled connection. Finalization wraps it in ``conn.transaction()``."""
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    with _pool.connection() as conn:
        yield conn
