import uuid
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from model_ingest.database.connection import get_connection
from model_ingest.database.models import ModelRecord

PROVISIONAL_STORAGE_KEY = "temp_key"


class ModelRepository:
    """Database operations for the models table."""

    def create(
        self,
        conn: psycopg.Connection[Any],
        *,
        project_id: int,
        original_filename: str,
        category: str,
        display_name: str | None,
        is_multi_file: bool,
        spatial_structure: list[dict[str, Any]] | None = None,
    ) -> ModelRecord:
        """Insert a READY model row with a provisional storage key."""
        model_id = uuid.uuid4().hex
        conn.execute(
            """
            INSERT INTO models
            (id, project_id, type, original_filename, storage_key, size_bytes,
             status, processing_progress, version, is_active, category,
             display_name, is_multi_file, spatial_structure, created_at, updated_at)
            VALUES (%s, %s, 'FRAG', %s, %s, 0, 'READY', 100, 1, TRUE, %s, %s, %s, %s,
                    NOW(), NOW())
            """,
            (
                model_id,
                project_id,
                original_filename,
                PROVISIONAL_STORAGE_KEY,
                category,
                display_name,
                is_multi_file,
                Jsonb(spatial_structure) if spatial_structure is not None else None,
            ),
        )
        return ModelRecord(
            id=model_id,
            project_id=project_id,
            original_filename=original_filename,
            storage_key=PROVISIONAL_STORAGE_KEY,
            category=category,
            display_name=display_name,
            is_multi_file=is_multi_file,
        )

    def update_storage(
        self,
        conn: psycopg.Connection[Any],
        model_id: str,
        storage_key: str,
        size_bytes: int,
    ) -> None:
        conn.execute(
            """
            UPDATE models
            SET storage_key = %s, size_bytes = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (storage_key, size_bytes, model_id),
        )

    def update_element_count(
        self, conn: psycopg.Connection[Any], model_id: str, element_count: int
    ) -> None:
        conn.execute(
            """
            UPDATE models
            SET element_count = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (element_count, model_id),
        )

    def find_by_project(self, project_id: int) -> list[ModelRecord]:
        """List models of a project in creation order. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, project_id, original_filename, storage_key, size_bytes,
                           category, display_name, is_multi_file, element_count, status
                    FROM models
                    WHERE project_id = %s
                    ORDER BY created_at, id
                    """,
                    (project_id,),
                )
                rows = cur.fetchall()
        return [
            ModelRecord(
                id=row["id"],
                project_id=row["project_id"],
                original_filename=row["original_filename"],
                storage_key=row["storage_key"],
                size_bytes=int(row["size_bytes"] or 0),
                category=row["category"],
                display_name=row["display_name"],
                is_multi_file=row["is_multi_file"],
                element_count=row["element_count"] or 0,
                status=row["status"],
            )
            for row in rows
        ]
