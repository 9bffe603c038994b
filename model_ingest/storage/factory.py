from pathlib import Path

from model_ingest.config.settings import Settings
from model_ingest.storage.base import BaseObjectStore
from model_ingest.storage.local_store import LocalObjectStore
from model_ingest.storage.s3_store import S3ObjectStore


class ObjectStoreFactory:
    """Creates the configured object store backend."""

    BACKENDS: tuple[str, ...] = ("s3", "local")

    @classmethod
    def create(cls, settings: Settings) -> BaseObjectStore:
        backend = settings.storage_backend.lower()
        if backend == "s3":
            return S3ObjectStore.from_settings(settings)
        if backend == "local":
            return LocalObjectStore(Path(settings.local_storage_root))
        raise ValueError(
            f"Unknown storage backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
