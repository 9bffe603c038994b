from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import psycopg

from model_ingest.conversion.artifact import content_type_for
from model_ingest.conversion.models import ModelMetadata
from model_ingest.database.connection import get_connection
from model_ingest.database.models import ModelRecord, ProjectRecord
from model_ingest.database.repositories.model_repository import ModelRepository
from model_ingest.database.repositories.panel_repository import PanelRepository
from model_ingest.database.repositories.project_repository import ProjectRepository
from model_ingest.finalization.exceptions import FinalizationError
from model_ingest.finalization.panels import PanelExtractor
from model_ingest.jobs.coordinator import remove_artifacts
from model_ingest.jobs.models import ProjectBase
from model_ingest.jobs.naming import category_enum
from model_ingest.logging.logger import Log
from model_ingest.storage.base import BaseObjectStore
from model_ingest.storage.exceptions import StorageError

ConnectionFactory = Callable[[], AbstractContextManager[psycopg.Connection[Any]]]


@dataclass(frozen=True)
class FinalizationFile:
    """A converted file waiting to become a model of the new project."""

    artifact_path: str
    artifact_name: str
    category: str  # structure | mep | electrical | other
    metadata: ModelMetadata = field(default_factory=ModelMetadata)
    display_name: str | None = None
    is_multi_file: bool = False
    detected_kind: str = "frag"  # ifc files arrive as converted containers


@dataclass
class FinalizedProject:
    project: ProjectRecord
    models: list[ModelRecord]


class FinalizationEngine:
    """Turns converted artifacts into a committed project with models and panels.

    Sequence, inside one transaction:
    lock org -> project (next display number) -> OWNER membership ->
    per file: model row, upload, storage key, panels, element count ->
    current model. Uploaded objects are deleted if the transaction fails.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        project_repo: ProjectRepository,
        model_repo: ModelRepository,
        panel_repo: PanelRepository,
        panel_extractor: PanelExtractor,
        connection_factory: ConnectionFactory = get_connection,
    ) -> None:
        self._store = store
        self._project_repo = project_repo
        self._model_repo = model_repo
        self._panel_repo = panel_repo
        self._panel_extractor = panel_extractor
        self._connection_factory = connection_factory

    def finalize(
        self,
        project_base: ProjectBase,
        files: list[FinalizationFile],
        project_metadata: dict[str, Any],
    ) -> FinalizedProject:
        """Persist the project. Raises FinalizationError after rolling back."""
        if not files:
            raise FinalizationError("No converted files to finalize")

        uploaded_keys: list[str] = []
        artifact_paths = [f.artifact_path for f in files]
        try:
            with self._connection_factory() as conn:
                with conn.transaction():
                    project = self._create_project(conn, project_base, project_metadata)
                    models = [
                        self._attach_model(conn, project, file, uploaded_keys) for file in files
                    ]
                    self._project_repo.set_current_model(conn, project.id, models[0].id)
                    project.current_model_id = models[0].id
        except Exception as exc:
            Log.error(f"Finalization of project '{project_base.name}' failed: {exc}")
            self._discard_uploads(uploaded_keys)
            remove_artifacts(artifact_paths)
            if isinstance(exc, FinalizationError):
                raise
            raise FinalizationError(str(exc) or exc.__class__.__name__) from exc

        remove_artifacts(artifact_paths)
        Log.info(
            f"Project {project.id} '{project.name}' created with {len(models)} models "
            f"(display number {project.display_number})"
        )
        return FinalizedProject(project=project, models=models)

    def _create_project(
        self,
        conn: psycopg.Connection[Any],
        project_base: ProjectBase,
        project_metadata: dict[str, Any],
    ) -> ProjectRecord:
        self._project_repo.lock_organization(conn, project_base.organization_id)
        display_number = self._project_repo.next_display_number(conn, project_base.organization_id)
        project = self._project_repo.create(
            conn,
            name=project_base.name,
            description=project_base.description,
            status=project_base.status,
            organization_id=project_base.organization_id,
            display_number=display_number,
            created_by=project_base.created_by,
            metadata=project_metadata,
        )
        self._project_repo.add_member(conn, project.id, project_base.created_by, "OWNER")
        return project

    def _attach_model(
        self,
        conn: psycopg.Connection[Any],
        project: ProjectRecord,
        file: FinalizationFile,
        uploaded_keys: list[str],
    ) -> ModelRecord:
        model = self._model_repo.create(
            conn,
            project_id=project.id,
            original_filename=file.artifact_name,
            category=category_enum(file.category),
            display_name=file.display_name,
            is_multi_file=file.is_multi_file,
            spatial_structure=self._panel_extractor.spatial_structure(project.id, file.metadata),
        )

        storage_key = self._store.generate_key(project.id, model.id, file.artifact_name)
        try:
            data = Path(file.artifact_path).read_bytes()
        except OSError as exc:
            raise FinalizationError(
                f"Missing temp artifact for {file.artifact_name}: {exc}"
            ) from exc
        self._store.upload(storage_key, data, content_type_for(file.detected_kind))
        uploaded_keys.append(storage_key)
        self._model_repo.update_storage(conn, model.id, storage_key, len(data))

        panels = self._panel_extractor.extract(project.id, model.id, file.metadata)
        self._panel_repo.bulk_insert(conn, panels)
        self._model_repo.update_element_count(conn, model.id, len(panels))
        if panels:
            Log.info(f"Created {len(panels)} panels for model {model.id}")

        model.storage_key = storage_key
        model.size_bytes = len(data)
        model.element_count = len(panels)
        return model

    def _discard_uploads(self, keys: list[str]) -> None:
        for key in keys:
            try:
                self._store.delete(key)
            except StorageError as exc:
                Log.warning(f"Failed to delete orphaned object {key}: {exc}")
