"""
File naming, validation and async access to the configured storage client.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import secrets
import string
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from admin_backend.errors import ValidationError
from admin_backend.intake import UploadedFile
from admin_backend.storage import StorageClient

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    file_path: str
    original_name: str
    size: int
    mimetype: str
    url: str

    def as_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "original_name": self.original_name,
            "size": self.size,
            "mimetype": self.mimetype,
            "url": self.url,
        }


def file_extension(original_name: str, mimetype: str = "") -> str:
    """Extension including the dot, falling back to one guessed from the MIME type."""
    ext = os.path.splitext(original_name or "")[1].lower()
    if ext:
        return ext
    return mimetypes.guess_extension(mimetype or "") or ""


def generate_file_name(original_name: str, prefix: str = "", mimetype: str = "") -> str:
    alphabet = string.ascii_lowercase + string.digits
    random_part = "".join(secrets.choice(alphabet) for _ in range(13))
    ext = file_extension(original_name, mimetype)
    return f"{prefix}{int(time.time() * 1000)}_{random_part}{ext}"


def language_file_name(
    prefix: str, unique_code: int, folder: str, original_name: str, mimetype: str = ""
) -> str:
    """``slider-1234567890_en.png`` style name for one language's copy of a file."""
    return f"{prefix}-{unique_code}_{folder}{file_extension(original_name, mimetype)}"


def validate_file(
    uploaded: Optional[UploadedFile],
    allowed_mime_types: Optional[Sequence[str]] = None,
    max_size: Optional[int] = None,
) -> UploadedFile:
    if uploaded is None:
        raise ValidationError("No file provided")
    if not uploaded.buffer:
        raise ValidationError("File is empty")
    if allowed_mime_types and uploaded.mimetype not in allowed_mime_types:
        raise ValidationError(
            f"File type not allowed. Allowed types: {', '.join(allowed_mime_types)}"
        )
    if max_size and uploaded.size > max_size:
        raise ValidationError(
            f"File size exceeds {max_size // (1024 * 1024)}MB limit"
        )
    return uploaded


class FileManager:
    """Async facade over a blocking :class:`StorageClient`."""

    def __init__(self, storage: StorageClient, signed_url_ttl: int = 3600):
        self.storage = storage
        self.signed_url_ttl = signed_url_ttl

    def file_url(self, file_path: str) -> str:
        return self.storage.file_url(file_path) if file_path else ""

    async def signed_url(self, file_path: str) -> str:
        return await asyncio.to_thread(
            self.storage.presign_get, file_path, self.signed_url_ttl
        )

    async def store(self, uploaded: UploadedFile, file_path: str) -> StoredFile:
        await asyncio.to_thread(
            self.storage.put, file_path, uploaded.buffer, uploaded.mimetype
        )
        return StoredFile(
            file_path=file_path,
            original_name=uploaded.original_name,
            size=uploaded.size,
            mimetype=uploaded.mimetype,
            url=self.file_url(file_path),
        )

    async def upload(
        self,
        uploaded: UploadedFile,
        *,
        bucket: str,
        prefix: str = "",
        allowed_mime_types: Optional[Sequence[str]] = None,
        max_size: Optional[int] = None,
    ) -> StoredFile:
        validate_file(uploaded, allowed_mime_types, max_size)
        file_name = generate_file_name(uploaded.original_name, prefix, uploaded.mimetype)
        return await self.store(uploaded, f"{bucket}/{file_name}")

    async def exists(self, file_path: str) -> bool:
        return await asyncio.to_thread(self.storage.exists, file_path)

    async def delete(self, file_path: str) -> None:
        await asyncio.to_thread(self.storage.delete, file_path)

    async def delete_quietly(self, file_path: str) -> bool:
        """Delete a file, logging instead of raising on failure."""
        if not file_path:
            return False
        try:
            await self.delete(file_path)
        except Exception as exc:
            logger.warning("Failed to delete file %s: %s", file_path, exc)
            return False
        return True

    async def delete_many_quietly(self, file_paths: Iterable[str]) -> List[str]:
        """Delete distinct paths concurrently; returns the ones removed."""
        paths = sorted({path for path in file_paths if path})
        results = await asyncio.gather(*(self.delete_quietly(path) for path in paths))
        return [path for path, removed in zip(paths, results) if removed]
