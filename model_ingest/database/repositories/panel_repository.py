import uuid
from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from model_ingest.database.models import PanelRecord


class PanelRepository:
    """Database operations for the panels table."""

    def bulk_insert(self, conn: psycopg.Connection[Any], panels: list[PanelRecord]) -> int:
        """Insert panel rows, skipping duplicates. Returns the number submitted."""
        if not panels:
            return 0
        with conn.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO panels
                (id, project_id, model_id, name, tag, object_type, location,
                 material, metadata, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                ON CONFLICT DO NOTHING
                """,
                [
                    (
                        uuid.uuid4().hex,
                        panel.project_id,
                        panel.model_id,
                        panel.name,
                        panel.tag,
                        panel.object_type,
                        panel.location,
                        panel.material,
                        Jsonb(panel.metadata),
                    )
                    for panel in panels
                ],
            )
        return len(panels)
