import uuid
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from model_ingest.database.connection import get_connection
from model_ingest.database.models import MembershipRecord, ProjectRecord

_PROJECT_COLUMNS = """
    id, name, description, status, organization_id, display_number,
    created_by, metadata, current_model_id, created_at, updated_at
"""


class ProjectRepository:
    """Database operations for the projects and project_members tables.

    Write methods take an open connection so the caller can group them into
    one transaction.
    """

    def lock_organization(self, conn: psycopg.Connection[Any], organization_id: str) -> None:
        """Serialize display-number allocation for one organization.

        The lock is transaction-scoped and released on commit or rollback.
        """
        conn.execute(
            "SELECT pg_advisory_xact_lock(hashtext(%s))",
            (f"projects.display_number:{organization_id}",),
        )

    def next_display_number(self, conn: psycopg.Connection[Any], organization_id: str) -> int:
        """Return max(display_number) + 1 for the organization."""
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT COALESCE(MAX(display_number), 0)
                FROM projects
                WHERE organization_id = %s
                """,
                (organization_id,),
            )
            row = cur.fetchone()
        current = row[0] if row is not None and row[0] is not None else 0
        return int(current) + 1

    def create(
        self,
        conn: psycopg.Connection[Any],
        *,
        name: str,
        description: str | None,
        status: str,
        organization_id: str,
        display_number: int,
        created_by: str,
        metadata: dict[str, Any],
    ) -> ProjectRecord:
        """Insert a project row and return it with its generated id."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                INSERT INTO projects
                (name, description, status, organization_id, display_number,
                 created_by, metadata, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                RETURNING {_PROJECT_COLUMNS}
                """,
                (
                    name,
                    description,
                    status,
                    organization_id,
                    display_number,
                    created_by,
                    Jsonb(metadata),
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("INSERT INTO projects returned no row")
        return _row_to_project(row)

    def add_member(
        self,
        conn: psycopg.Connection[Any],
        project_id: int,
        user_id: str,
        role: str = "OWNER",
    ) -> MembershipRecord:
        """Create a membership row for a user on a project."""
        member_id = uuid.uuid4().hex
        conn.execute(
            """
            INSERT INTO project_members (id, project_id, user_id, role, created_at)
            VALUES (%s, %s, %s, %s, NOW())
            """,
            (member_id, project_id, user_id, role),
        )
        return MembershipRecord(id=member_id, project_id=project_id, user_id=user_id, role=role)

    def set_current_model(
        self, conn: psycopg.Connection[Any], project_id: int, model_id: str
    ) -> None:
        conn.execute(
            """
            UPDATE projects
            SET current_model_id = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (model_id, project_id),
        )

    def find_by_id(self, project_id: int) -> ProjectRecord | None:
        """Find a project by ID. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = %s",
                    (project_id,),
                )
                row = cur.fetchone()
        return _row_to_project(row) if row is not None else None


def _row_to_project(row: dict[str, Any]) -> ProjectRecord:
    return ProjectRecord(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        organization_id=row["organization_id"],
        display_number=row["display_number"],
        created_by=row["created_by"],
        metadata=row["metadata"] or {},
        current_model_id=row["current_model_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
