"""
Dropdown options: localized choice lists grouped by dropdown type.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from admin_backend.errors import ConflictError, NotFoundError, ValidationError
from admin_backend.languages import LanguageDirectory
from admin_backend.persistence.port import (
    PaginatedResult,
    PaginationOptions,
    QueryOptions,
    Repository,
)
from admin_backend.persistence.records import DropdownOption
from admin_backend.replication import ReplicaSetDeletion, ReplicationEngine

logger = logging.getLogger(__name__)

DROPDOWN_TYPE_RE = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")
BULK_ACTIONS = ("activate", "deactivate", "delete")
MAX_PAGE_SIZE = 100


def normalize_dropdown_type(dropdown_type: str) -> str:
    normalized = (dropdown_type or "").strip().lower()
    if not DROPDOWN_TYPE_RE.match(normalized):
        raise ValidationError(f"Invalid dropdown type: {dropdown_type}")
    return normalized


class DropdownService:
    def __init__(
        self,
        repository: Repository[DropdownOption],
        languages: LanguageDirectory,
        engine: ReplicationEngine[DropdownOption],
    ):
        self.repository = repository
        self.languages = languages
        self.engine = engine

    async def create(
        self,
        dropdown_type: str,
        name: str,
        *,
        language: Optional[str] = None,
        status: bool = True,
    ) -> DropdownOption:
        """
        Create an option in every active language and return the replica for
        ``language`` (or the default language).

        Names are unique per type regardless of case; a duplicate is refused
        before anything is written.
        """
        dropdown_type = normalize_dropdown_type(dropdown_type)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Dropdown name is required")
        requested = await self.languages.resolve(language)

        if await self.repository.exists(
            {"dropdown_type": dropdown_type, "name": {"$ieq": name}}
        ):
            raise ConflictError(
                f"Dropdown option with name '{name}' already exists for type "
                f"'{dropdown_type}'"
            )

        replicas = await self.engine.create_replica_set(
            {"name": name, "dropdown_type": dropdown_type, "status": status}
        )
        chosen = next(
            (r for r in replicas if r.language_id == requested.id), replicas[0]
        )
        logger.info(
            "Created dropdown %s/%s with unique code %s",
            dropdown_type,
            name,
            chosen.unique_code,
        )
        return await self.engine.get_replica(chosen.public_id)

    async def list_public(
        self, dropdown_type: str, language: Optional[str] = None
    ) -> List[DropdownOption]:
        dropdown_type = normalize_dropdown_type(dropdown_type)
        requested = await self.languages.resolve(language)
        return await self.repository.get_all(
            {
                "dropdown_type": dropdown_type,
                "language_id": requested.id,
                "status": True,
            },
            QueryOptions(sort={"name": 1}, populate=["language"]),
        )

    async def list_admin(
        self,
        dropdown_type: str,
        *,
        page: int = 1,
        limit: int = 10,
        include_inactive: bool = True,
        language: Optional[str] = None,
    ) -> PaginatedResult[DropdownOption]:
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError("Invalid pagination parameters")
        dropdown_type = normalize_dropdown_type(dropdown_type)
        filter = {"dropdown_type": dropdown_type}
        if not include_inactive:
            filter["status"] = True
        if language:
            filter["language_id"] = (await self.languages.resolve(language)).id
        return await self.repository.find_with_pagination(
            filter,
            PaginationOptions(
                page=page,
                limit=limit,
                sort={"created_at": -1},
                populate=["language"],
            ),
        )

    async def get(self, dropdown_type: str, public_id: str) -> DropdownOption:
        dropdown_type = normalize_dropdown_type(dropdown_type)
        record = await self.engine.get_replica(public_id)
        if record.dropdown_type != dropdown_type:
            raise NotFoundError(
                f"Dropdown with public ID '{public_id}' not found for type "
                f"'{dropdown_type}'"
            )
        return record

    async def update(
        self,
        dropdown_type: str,
        public_id: str,
        *,
        name: Optional[str] = None,
        status: Optional[bool] = None,
    ) -> DropdownOption:
        """Rename or toggle one language's option; siblings are untouched."""
        existing = await self.get(dropdown_type, public_id)
        data = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Dropdown name cannot be empty")
            if name != existing.name:
                clash = await self.repository.exists(
                    {
                        "dropdown_type": existing.dropdown_type,
                        "language_id": existing.language_id,
                        "name": {"$ieq": name},
                        "id": {"$ne": existing.id},
                    }
                )
                if clash:
                    raise ConflictError(
                        f"Dropdown option with name '{name}' already exists for "
                        "this type and language"
                    )
                data["name"] = name
        if status is not None:
            data["status"] = status
        if not data:
            return existing
        updated = await self.engine.update_replica(public_id, data)
        logger.info("Updated dropdown %s in type %s", public_id, existing.dropdown_type)
        return updated

    async def delete_by_unique_code(
        self, dropdown_type: str, unique_code: int
    ) -> ReplicaSetDeletion[DropdownOption]:
        dropdown_type = normalize_dropdown_type(dropdown_type)
        members = await self.engine.find_replica_set(unique_code)
        if not members:
            raise NotFoundError(f"No dropdown found with unique code: {unique_code}")
        if any(m.dropdown_type != dropdown_type for m in members):
            raise ValidationError(
                f"Dropdown with unique code {unique_code} does not belong to type "
                f"'{dropdown_type}'"
            )
        return await self.engine.delete_replica_set(unique_code)

    async def bulk_operation(
        self, dropdown_type: str, action: str, public_ids: Sequence[str]
    ) -> int:
        """Activate, deactivate or soft-delete a batch of options of one type."""
        dropdown_type = normalize_dropdown_type(dropdown_type)
        if action not in BULK_ACTIONS:
            raise ValidationError(
                f"Unknown bulk action {action!r}; expected one of {', '.join(BULK_ACTIONS)}"
            )
        public_ids = list(dict.fromkeys(public_ids or []))
        if not public_ids:
            raise ValidationError("No dropdown IDs provided")

        records = await self.repository.get_all({"public_id": {"$in": public_ids}})
        missing = set(public_ids) - {r.public_id for r in records}
        if missing:
            raise NotFoundError(
                f"Dropdown(s) not found: {', '.join(sorted(missing))}"
            )
        if any(r.dropdown_type != dropdown_type for r in records):
            raise ValidationError(
                f"Some dropdowns do not belong to type '{dropdown_type}'"
            )

        result = await self.repository.update_many(
            {"id": {"$in": [r.id for r in records]}},
            {"status": action == "activate"},
        )
        logger.info(
            "Bulk %s affected %d dropdown(s) in type %s",
            action,
            result.count,
            dropdown_type,
        )
        return result.count

    async def increment_use_count(self, public_id: str, amount: int = 1) -> DropdownOption:
        record = await self.engine.get_replica(public_id)
        updated = await self.repository.increment(record.id, "use_count", amount)
        if updated is None:
            raise NotFoundError(f"Dropdown with public ID '{public_id}' not found")
        logger.debug("Use count for dropdown %s is now %d", public_id, updated.use_count)
        return updated
