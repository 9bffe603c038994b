from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from psycopg.types.json import Jsonb

from model_ingest.database.models import PanelRecord, ProjectRecord
from model_ingest.database.repositories.model_repository import (
    PROVISIONAL_STORAGE_KEY,
    ModelRepository,
)
from model_ingest.database.repositories.panel_repository import PanelRepository
from model_ingest.database.repositories.project_repository import ProjectRepository

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _mock_conn() -> tuple[MagicMock, MagicMock]:
    """Return (mock_conn, mock_cursor) with cursor() usable as a context manager."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


def _wire_get_connection(mock_get_conn: MagicMock, mock_conn: MagicMock) -> None:
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)


def _project_row(**overrides: object) -> dict:
    row = {
        "id": 5,
        "name": "Tower",
        "description": None,
        "status": "ACTIVE",
        "organization_id": "org-1",
        "display_number": 3,
        "created_by": "user-1",
        "metadata": {"model_first": True},
        "current_model_id": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


class TestProjectRepository:
    def test_lock_organization_uses_advisory_lock(self) -> None:
        conn, _cursor = _mock_conn()
        ProjectRepository().lock_organization(conn, "org-1")
        sql, params = conn.execute.call_args.args
        assert "pg_advisory_xact_lock" in sql
        assert params == ("projects.display_number:org-1",)

    def test_next_display_number_increments_max(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = (7,)
        assert ProjectRepository().next_display_number(conn, "org-1") == 8
        assert cursor.execute.call_args.args[1] == ("org-1",)

    def test_next_display_number_starts_at_one(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = (0,)
        assert ProjectRepository().next_display_number(conn, "org-1") == 1

    def test_create_returns_record(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = _project_row()

        project = ProjectRepository().create(
            conn,
            name="Tower",
            description=None,
            status="ACTIVE",
            organization_id="org-1",
            display_number=3,
            created_by="user-1",
            metadata={"model_first": True},
        )

        assert isinstance(project, ProjectRecord)
        assert project.id == 5
        assert project.display_number == 3
        params = cursor.execute.call_args.args[1]
        assert params[:6] == ("Tower", None, "ACTIVE", "org-1", 3, "user-1")
        assert isinstance(params[6], Jsonb)

    def test_create_without_row_raises(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = None
        with pytest.raises(RuntimeError, match="returned no row"):
            ProjectRepository().create(
                conn,
                name="Tower",
                description=None,
                status="ACTIVE",
                organization_id="org-1",
                display_number=1,
                created_by="user-1",
                metadata={},
            )

    def test_add_member(self) -> None:
        conn, _cursor = _mock_conn()
        member = ProjectRepository().add_member(conn, 5, "user-1")
        params = conn.execute.call_args.args[1]
        assert params[1:] == (5, "user-1", "OWNER")
        assert member.id == params[0]
        assert member.role == "OWNER"

    def test_set_current_model(self) -> None:
        conn, _cursor = _mock_conn()
        ProjectRepository().set_current_model(conn, 5, "abc")
        assert conn.execute.call_args.args[1] == ("abc", 5)

    @patch("model_ingest.database.repositories.project_repository.get_connection")
    def test_find_by_id(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        _wire_get_connection(mock_get_conn, conn)
        cursor.fetchone.return_value = _project_row(metadata=None, current_model_id="abc")

        project = ProjectRepository().find_by_id(5)

        assert project is not None
        assert project.metadata == {}
        assert project.current_model_id == "abc"

    @patch("model_ingest.database.repositories.project_repository.get_connection")
    def test_find_by_id_missing(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        _wire_get_connection(mock_get_conn, conn)
        cursor.fetchone.return_value = None
        assert ProjectRepository().find_by_id(99) is None


class TestModelRepository:
    def test_create_inserts_ready_model(self) -> None:
        conn, _cursor = _mock_conn()
        model = ModelRepository().create(
            conn,
            project_id=5,
            original_filename="tower.frag",
            category="OTHER",
            display_name=None,
            is_multi_file=False,
            spatial_structure=[{"id": "5_storey_0"}],
        )
        sql, params = conn.execute.call_args.args
        assert "'FRAG'" in sql and "'READY'" in sql
        assert params[0] == model.id
        assert params[1:7] == (5, "tower.frag", PROVISIONAL_STORAGE_KEY, "OTHER", None, False)
        assert isinstance(params[7], Jsonb)
        assert model.storage_key == PROVISIONAL_STORAGE_KEY

    def test_create_without_spatial_structure(self) -> None:
        conn, _cursor = _mock_conn()
        ModelRepository().create(
            conn,
            project_id=5,
            original_filename="a.frag",
            category="MEP",
            display_name="Mep",
            is_multi_file=True,
        )
        assert conn.execute.call_args.args[1][7] is None

    def test_update_storage(self) -> None:
        conn, _cursor = _mock_conn()
        ModelRepository().update_storage(conn, "abc", "models/5/abc/1.frag", 42)
        assert conn.execute.call_args.args[1] == ("models/5/abc/1.frag", 42, "abc")

    def test_update_element_count(self) -> None:
        conn, _cursor = _mock_conn()
        ModelRepository().update_element_count(conn, "abc", 9)
        assert conn.execute.call_args.args[1] == (9, "abc")

    @patch("model_ingest.database.repositories.model_repository.get_connection")
    def test_find_by_project(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        _wire_get_connection(mock_get_conn, conn)
        cursor.fetchall.return_value = [
            {
                "id": "abc",
                "project_id": 5,
                "original_filename": "a.frag",
                "storage_key": "models/5/abc/1.frag",
                "size_bytes": 42,
                "category": "STRUCTURE",
                "display_name": "Structure",
                "is_multi_file": True,
                "element_count": None,
                "status": "READY",
            }
        ]
        models = ModelRepository().find_by_project(5)
        assert len(models) == 1
        assert models[0].size_bytes == 42
        assert models[0].element_count == 0


class TestPanelRepository:
    def test_empty_list_skips_query(self) -> None:
        conn, cursor = _mock_conn()
        assert PanelRepository().bulk_insert(conn, []) == 0
        cursor.executemany.assert_not_called()

    def test_bulk_insert(self) -> None:
        conn, cursor = _mock_conn()
        panels = [
            PanelRecord(5, "abc", "Wall A", "Wall A", "IfcWall", "Level 1", "Concrete"),
            PanelRecord(5, "abc", "Beam", "Beam", "IfcBeam", "Level 1", None),
        ]
        assert PanelRepository().bulk_insert(conn, panels) == 2
        sql, rows = cursor.executemany.call_args.args
        assert "ON CONFLICT DO NOTHING" in sql
        assert [row[1:8] for row in rows] == [
            (5, "abc", "Wall A", "Wall A", "IfcWall", "Level 1", "Concrete"),
            (5, "abc", "Beam", "Beam", "IfcBeam", "Level 1", None),
        ]
