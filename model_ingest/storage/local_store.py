from pathlib import Path

from model_ingest.storage.base import BaseObjectStore
from model_ingest.storage.exceptions import StorageError


class LocalObjectStore(BaseObjectStore):
    """Stores objects as files below a root directory.

    Intended for development and tests where no S3 endpoint is available.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        _ = content_type
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to upload file: {exc}") from exc

    def download(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to download file '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete file '{key}': {exc}") from exc
