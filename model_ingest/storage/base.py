import time
from abc import ABC, abstractmethod


class BaseObjectStore(ABC):
    """Contract for durable object storage backends."""

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str) -> None:
        """Store bytes under a key, replacing any existing object.

        Raises:
            StorageError: if the object could not be written.
        """

    @abstractmethod
    def download(self, key: str) -> bytes:
        """Return the bytes stored under a key.

        Raises:
            StorageError: if the object is missing or unreadable.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object stored under a key.

        Raises:
            StorageError: if the delete request fails.
        """

    def generate_key(self, project_id: int | str, model_id: str, filename: str) -> str:
        """Build a unique key: models/<project>/<model>/<timestamp-ms>.<ext>."""
        timestamp_ms = int(time.time() * 1000)
        extension = filename.rsplit(".", 1)[-1]
        return f"models/{project_id}/{model_id}/{timestamp_ms}.{extension}"
