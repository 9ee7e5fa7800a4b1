"""
Storage abstraction for S3, local disk under ``uploads/`` and in-memory testing.

Paths handed to these clients are always ``bucket/fileName`` strings; URLs
are derived from them at read time.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from admin_backend.errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    """Defines the operations the services need from object storage."""

    def put(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def copy(self, src_path: str, dest_path: str) -> None:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def file_url(self, path: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def put(self, path: str, data: bytes, content_type: str) -> None:
        self.stored_objects[path] = (bytes(data), content_type)

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored[0]

    def delete(self, path: str) -> None:
        self.stored_objects.pop(path, None)

    def exists(self, path: str) -> bool:
        return path in self.stored_objects

    def copy(self, src_path: str, dest_path: str) -> None:
        if src_path not in self.stored_objects:
            raise FileNotFoundError(src_path)
        self.stored_objects[dest_path] = self.stored_objects[src_path]

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def file_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"


@dataclass
class LocalStorageClient:
    """
    Files on local disk under an uploads root, served at ``{api_url}/uploads/``.
    """

    root: str = "uploads"
    api_url: str = "http://localhost:3000"

    def __post_init__(self):
        self._root = Path(self.root).resolve()

    def _full_path(self, path: str) -> Path:
        full = (self._root / path).resolve()
        if self._root not in full.parents:
            raise ValidationError(f"Invalid file path: {path}")
        return full

    def put(self, path: str, data: bytes, content_type: str) -> None:
        full = self._full_path(path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise DependencyError("Failed to upload file locally") from exc
        logger.info("File uploaded locally: %s", path)

    def get_bytes(self, path: str) -> bytes:
        return self._full_path(path).read_bytes()

    def delete(self, path: str) -> None:
        full = self._full_path(path)
        try:
            if full.exists():
                full.unlink()
        except OSError as exc:
            logger.error("Failed to delete %s: %s", path, exc)
            raise DependencyError("Failed to delete file locally") from exc
        logger.info("File deleted locally: %s", path)

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def copy(self, src_path: str, dest_path: str) -> None:
        dest = self._full_path(dest_path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self._full_path(src_path), dest)
        except OSError as exc:
            logger.error("Failed to copy %s to %s: %s", src_path, dest_path, exc)
            raise DependencyError("Failed to copy file locally") from exc

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        # Local files are public; nothing to sign.
        return self.file_url(path)

    def file_url(self, path: str) -> str:
        return f"{self.api_url.rstrip('/')}/uploads/{path}"


@dataclass
class S3StorageClient:
    """
    S3 storage client. Every logical bucket is a key prefix inside one
    physical bucket.
    """

    bucket: str
    region: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint: Optional[str] = None
    cdn_url: Optional[str] = None

    def __post_init__(self):
        config = Config(signature_version="s3v4", retries={"max_attempts": 3})
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _call(self, action: str, path: str, fn, **kwargs):
        try:
            return fn(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 %s failed for %s: %s", action, path, exc)
            raise DependencyError(f"Failed to {action} file in S3") from exc

    def put(self, path: str, data: bytes, content_type: str) -> None:
        self._call(
            "upload",
            path,
            self._client.put_object,
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            ContentDisposition="inline",
        )
        logger.info("File uploaded to S3: %s", path)

    def get_bytes(self, path: str) -> bytes:
        response = self._call(
            "read", path, self._client.get_object, Bucket=self.bucket, Key=path
        )
        return response["Body"].read()

    def delete(self, path: str) -> None:
        self._call(
            "delete", path, self._client.delete_object, Bucket=self.bucket, Key=path
        )
        logger.info("File deleted from S3: %s", path)

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise DependencyError("Failed to check file in S3") from exc
        except BotoCoreError as exc:
            raise DependencyError("Failed to check file in S3") from exc
        return True

    def copy(self, src_path: str, dest_path: str) -> None:
        self._call(
            "copy",
            dest_path,
            self._client.copy_object,
            Bucket=self.bucket,
            Key=dest_path,
            CopySource={"Bucket": self.bucket, "Key": src_path},
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._call(
            "sign",
            path,
            self._client.generate_presigned_url,
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def file_url(self, path: str) -> str:
        if self.cdn_url:
            return f"{self.cdn_url.rstrip('/')}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"

