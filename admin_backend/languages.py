"""
Read-only lookups over the language table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from admin_backend.errors import ValidationError
from admin_backend.persistence.port import QueryOptions, Repository
from admin_backend.persistence.records import Language

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanguageRef:
    id: str
    folder: str


class LanguageDirectory:
    def __init__(self, repository: Repository[Language]):
        self.repository = repository

    async def get_default_language_id(self) -> str:
        language = await self.repository.get_detail({"is_default": True, "status": True})
        if language is None:
            language = await self.repository.get_detail(
                {"status": True}, QueryOptions(sort={"created_at": 1})
            )
        if language is None:
            raise ValidationError("No active default language configured")
        return language.id

    async def get_all_active_languages(self) -> List[Language]:
        return await self.repository.get_all(
            {"status": True}, QueryOptions(sort={"created_at": 1})
        )

    async def get_all_active_language_ids(self) -> List[str]:
        return [language.id for language in await self.get_all_active_languages()]

    async def get_all_active_language_codes_with_ids(self) -> List[LanguageRef]:
        return [
            LanguageRef(id=language.id, folder=language.folder)
            for language in await self.get_all_active_languages()
        ]

    async def find_by_folder(self, folder: str) -> Language:
        language = await self.repository.get_detail({"folder": {"$ieq": folder.strip()}})
        return self._require_active(language, folder)

    async def find_by_public_id(self, public_id: str) -> Language:
        language = await self.repository.get_detail({"public_id": public_id})
        return self._require_active(language, public_id)

    async def find_by_id(self, language_id: str) -> Language:
        language = await self.repository.get_detail_by_id(language_id)
        return self._require_active(language, language_id)

    async def resolve(self, identifier: Optional[str] = None) -> Language:
        """Accept a folder code, public id or primary key; ``None`` means default."""
        if not identifier:
            return await self.find_by_id(await self.get_default_language_id())
        identifier = identifier.strip()
        language = await self.repository.get_detail({"public_id": identifier})
        if language is None:
            language = await self.repository.get_detail_by_id(identifier)
        if language is None:
            language = await self.repository.get_detail({"folder": {"$ieq": identifier}})
        return self._require_active(language, identifier)

    async def resolve_many(self, language_ids: List[str]) -> List[Language]:
        languages = []
        for language_id in dict.fromkeys(language_ids):
            languages.append(await self.find_by_id(language_id))
        return languages

    @staticmethod
    def _require_active(language: Optional[Language], identifier: str) -> Language:
        if language is None:
            raise ValidationError(f"Language {identifier!r} not found")
        if not language.status:
            raise ValidationError(f"Language {identifier!r} is not active")
        return language
