"""
Promotional sliders: localized banners, each language with its own image.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from admin_backend.errors import NotFoundError, ValidationError
from admin_backend.files import validate_file
from admin_backend.intake import UploadedFile
from admin_backend.languages import LanguageDirectory
from admin_backend.persistence.port import (
    PaginatedResult,
    PaginationOptions,
    QueryOptions,
    Repository,
)
from admin_backend.persistence.records import Slider
from admin_backend.replication import ReplicaSetDeletion, ReplicationEngine

logger = logging.getLogger(__name__)

COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
COLOR_FIELDS = (
    "title_color",
    "description_color",
    "button_title_color",
    "button_background",
    "description_two_color",
    "button_two_color",
    "button_background_two",
)
LINK_FIELDS = ("button_link", "button_link_two")
IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/svg+xml")
IMAGE_MAX_SIZE = 5 * 1024 * 1024
MAX_PAGE_SIZE = 100

EDITABLE_FIELDS = frozenset(Slider.column_fields()) - {
    "id",
    "public_id",
    "unique_code",
    "slider_image",
    "language_id",
    "created_at",
    "updated_at",
}


def validate_color(value: str, field_name: str) -> None:
    if not COLOR_RE.match(value):
        raise ValidationError(
            f"Invalid color code for {field_name}: {value}. Expected #RRGGBB"
        )


def validate_link(value: str) -> None:
    if value.startswith("/"):
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid URL: {value}")


def clean_slider_data(data: dict) -> dict:
    unknown = set(data) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown slider field(s): {', '.join(sorted(unknown))}")
    cleaned = {k: v for k, v in data.items() if v is not None}
    for name in COLOR_FIELDS:
        if cleaned.get(name):
            validate_color(cleaned[name], name)
    for name in LINK_FIELDS:
        if cleaned.get(name):
            validate_link(cleaned[name])
    return cleaned


class SliderService:
    def __init__(
        self,
        repository: Repository[Slider],
        languages: LanguageDirectory,
        engine: ReplicationEngine[Slider],
    ):
        self.repository = repository
        self.languages = languages
        self.engine = engine

    async def create(
        self,
        data: dict,
        image: Optional[UploadedFile],
        *,
        language: Optional[str] = None,
    ) -> Slider:
        """
        Create the slider in every active language, storing one copy of the
        image per language, and return the requested language's replica.
        """
        if image is None:
            raise ValidationError("Slider image is required")
        validate_file(image, IMAGE_MIME_TYPES, IMAGE_MAX_SIZE)
        values = clean_slider_data(data)
        if not (values.get("title") or "").strip():
            raise ValidationError("Slider title is required")
        requested = await self.languages.resolve(language)

        replicas = await self.engine.create_replica_set(values, file=image)
        chosen = next(
            (r for r in replicas if r.language_id == requested.id), replicas[0]
        )
        return await self.engine.get_replica(chosen.public_id)

    async def list_active(self, language: Optional[str] = None) -> List[Slider]:
        requested = await self.languages.resolve(language)
        sliders = await self.repository.get_all(
            {"language_id": requested.id, "status": True},
            QueryOptions(sort={"created_at": -1}, populate=["language"]),
        )
        if not sliders:
            raise NotFoundError(f"No active sliders found for language {requested.folder}")
        return sliders

    async def list_admin(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        include_inactive: bool = True,
        language: Optional[str] = None,
        title: Optional[str] = None,
        unique_code: Optional[int] = None,
    ) -> PaginatedResult[Slider]:
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError("Invalid pagination parameters")
        requested = await self.languages.resolve(language)
        filter = {"language_id": requested.id}
        if not include_inactive:
            filter["status"] = True
        if title:
            filter["title"] = {"$contains": title}
        if unique_code is not None:
            filter["unique_code"] = unique_code
        return await self.repository.find_with_pagination(
            filter,
            PaginationOptions(
                page=page, limit=limit, sort={"created_at": -1}, populate=["language"]
            ),
        )

    async def get(self, public_id: str) -> Slider:
        return await self.engine.get_replica(public_id)

    async def update(
        self, public_id: str, data: dict, image: Optional[UploadedFile] = None
    ) -> Slider:
        values = clean_slider_data(data)
        if image is not None:
            validate_file(image, IMAGE_MIME_TYPES, IMAGE_MAX_SIZE)
        if not values and image is None:
            return await self.engine.get_replica(public_id)
        updated = await self.engine.update_replica(public_id, values, image)
        logger.info("Updated slider %s", public_id)
        return updated

    async def delete(self, public_id: str) -> ReplicaSetDeletion[Slider]:
        """Remove the whole replica set the slider belongs to."""
        slider = await self.engine.get_replica(public_id)
        return await self.engine.delete_replica_set(slider.unique_code)

    async def bulk_update_status(self, public_ids: Sequence[str], status: bool) -> int:
        public_ids = list(dict.fromkeys(public_ids or []))
        if not public_ids:
            raise ValidationError("No slider IDs provided")
        records = await self.repository.get_all({"public_id": {"$in": public_ids}})
        missing = set(public_ids) - {r.public_id for r in records}
        if missing:
            raise NotFoundError(f"Slider(s) not found: {', '.join(sorted(missing))}")
        result = await self.repository.update_many(
            {"id": {"$in": [r.id for r in records]}}, {"status": status}
        )
        return result.count

    async def bulk_delete(self, public_ids: Sequence[str]) -> int:
        """Delete every replica set touched by ``public_ids``; unknown ids are skipped."""
        records = await self.repository.get_all(
            {"public_id": {"$in": list(public_ids or [])}}
        )
        total = 0
        for unique_code in sorted({r.unique_code for r in records}):
            total += (await self.engine.delete_replica_set(unique_code)).count
        logger.info("Bulk deleted %d slider record(s)", total)
        return total
