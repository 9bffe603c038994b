from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from model_ingest.config.settings import Settings
from model_ingest.logging.logger import Log
from model_ingest.storage.base import BaseObjectStore
from model_ingest.storage.exceptions import StorageError


class S3ObjectStore(BaseObjectStore):
    """Stores objects in an S3-compatible bucket (AWS S3, MinIO)."""

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        client_kwargs: dict[str, Any] = {
            "region_name": settings.storage_region,
            "config": Config(
                s3={"addressing_style": "path" if settings.storage_force_path_style else "auto"}
            ),
        }
        if settings.storage_endpoint:
            client_kwargs["endpoint_url"] = settings.storage_endpoint
        if settings.storage_access_key:
            client_kwargs["aws_access_key_id"] = settings.storage_access_key
            client_kwargs["aws_secret_access_key"] = settings.storage_secret_key
        client = boto3.client("s3", **client_kwargs)
        Log.info(
            f"Storage initialized: {settings.storage_endpoint or 'AWS S3'} "
            f"(bucket '{settings.storage_bucket}')"
        )
        return cls(client, settings.storage_bucket)

    def ensure_bucket(self) -> None:
        """Create the bucket when it does not exist yet."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise StorageError(f"Failed to check bucket '{self._bucket}': {exc}") from exc
        try:
            self._client.create_bucket(Bucket=self._bucket)
            Log.info(f"Created bucket '{self._bucket}'")
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to create bucket '{self._bucket}': {exc}") from exc

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload file: {exc}") from exc
        Log.info(f"File uploaded successfully: {key}")

    def download(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download file '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete file '{key}': {exc}") from exc
        Log.info(f"File deleted successfully: {key}")
