import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from model_ingest.config.settings import Settings
from model_ingest.database.connection import close_pool, get_connection, init_pool

_REQUIRED_TABLES = ("projects", "project_members", "models", "panels")


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "model_ingest_test")
    return Settings()


def _probe(settings: Settings) -> None:
    """Fail fast when the test database or its tables are missing."""
    with psycopg.connect(
        host=settings.db_host,
        port=settings.db_port,
        dbname=settings.db_database,
        user=settings.db_username,
        password=settings.db_password,
        connect_timeout=3,
    ) as conn:
        for table in _REQUIRED_TABLES:
            row = conn.execute("SELECT to_regclass(%s)", (table,)).fetchone()
            if row is None or row[0] is None:
                raise RuntimeError(f"table '{table}' does not exist")


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        _probe(test_settings)
        init_pool(test_settings)
    except Exception as e:
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run integration tests")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def organization_id() -> str:
    """Fresh organization so display numbers start from a known state."""
    return f"org-test-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def integration_cleanup(
    integration_pool: None, organization_id: str
) -> Generator[None, None, None]:
    yield
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id FROM projects WHERE organization_id = %s", (organization_id,)
            )
            project_ids = [row[0] for row in cur.fetchall()]
            for project_id in project_ids:
                cur.execute("DELETE FROM panels WHERE project_id = %s", (project_id,))
                cur.execute(
                    "UPDATE projects SET current_model_id = NULL WHERE id = %s", (project_id,)
                )
                cur.execute("DELETE FROM models WHERE project_id = %s", (project_id,))
                cur.execute("DELETE FROM project_members WHERE project_id = %s", (project_id,))
                cur.execute("DELETE FROM projects WHERE id = %s", (project_id,))
        conn.commit()
