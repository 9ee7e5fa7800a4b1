"""
Seed the language table with the locales the admin panel ships with.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from admin_backend.persistence.port import Repository
from admin_backend.persistence.records import Language

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = (
    {"name": "English", "folder": "en", "iso2": "EN", "iso3": "ENG", "is_default": True},
    {"name": "Español", "folder": "es", "iso2": "ES", "iso3": "SPA"},
    {"name": "Français", "folder": "fr", "iso2": "FR", "iso3": "FRA"},
    {"name": "العربية", "folder": "ar", "iso2": "AR", "iso3": "ARA", "direction": "rtl"},
)


async def seed_languages(
    repository: Repository[Language], languages: Iterable[dict] = DEFAULT_LANGUAGES
) -> List[Language]:
    """Insert languages whose folder code is missing; existing rows are left alone."""
    created = []
    for language in languages:
        if await repository.exists({"folder": language["folder"]}):
            continue
        created.append(await repository.insert(dict(language)))
    if created:
        logger.info(
            "Seeded %d language(s): %s",
            len(created),
            ", ".join(language.folder for language in created),
        )
    return created
