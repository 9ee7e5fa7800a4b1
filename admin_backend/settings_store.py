"""
Keyed settings: ``(group_type, key) -> typed value`` with a read-through cache.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from admin_backend.cache import SettingsCache
from admin_backend.errors import NotFoundError, ValidationError
from admin_backend.files import FileManager
from admin_backend.intake import UploadedFile
from admin_backend.persistence.port import QueryOptions, Repository
from admin_backend.persistence.records import RecordType, Setting

logger = logging.getLogger(__name__)

GROUP_TYPE_RE = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


def normalize_group_type(group_type: str) -> str:
    group_type = (group_type or "").strip()
    if not GROUP_TYPE_RE.match(group_type):
        raise ValidationError(
            "Group type must be 1-100 characters of letters, numbers, "
            "underscores or hyphens"
        )
    return group_type.lower()


def normalize_key(key: str) -> str:
    key = (key or "").strip()
    if not key:
        raise ValidationError("Setting key is required")
    return key


def cache_key(group_type: str, key: Optional[str] = None, public: bool = False) -> str:
    visibility = "public" if public else "admin"
    return f"settings:{visibility}:{group_type}:{key or 'all'}"


def _dump(setting: Setting) -> dict:
    return {name: getattr(setting, name) for name in Setting.column_fields()}


class SettingsStore:
    def __init__(
        self,
        repository: Repository[Setting],
        cache: SettingsCache,
        files: FileManager,
        *,
        bucket: str,
        max_file_size: Optional[int] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.files = files
        self.bucket = bucket
        self.max_file_size = max_file_size
        # Bumped on every invalidation; a read only fills the cache when the
        # generation it started under is still current.
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    # Reads -------------------------------------------------------------------

    async def get(
        self,
        group_type: str,
        key: Optional[str] = None,
        *,
        public: bool = False,
        use_cache: bool = True,
    ) -> Union[Optional[Setting], List[Setting]]:
        """One setting when ``key`` is given, otherwise the whole group."""
        group_type = normalize_group_type(group_type)
        key = normalize_key(key) if key is not None else None
        entry_key = cache_key(group_type, key, public)

        if use_cache:
            cached = self.cache.get(entry_key)
            if cached is not None:
                logger.debug("Cache HIT %s", entry_key)
                if key is None:
                    return [Setting.from_mapping(item) for item in cached]
                return Setting.from_mapping(cached)
            logger.debug("Cache MISS %s", entry_key)
        generation = self._generation(group_type)

        if key is not None:
            setting = await self.repository.get_detail(
                {"group_type": group_type, "key": key}
            )
            if use_cache and setting is not None and self._current(group_type, generation):
                self.cache.set(entry_key, _dump(setting))
            return setting

        settings = await self.repository.get_all(
            {"group_type": group_type}, QueryOptions(sort={"key": 1})
        )
        if use_cache and settings and self._current(group_type, generation):
            self.cache.set(entry_key, [_dump(setting) for setting in settings])
        return settings

    # Writes ------------------------------------------------------------------

    async def upsert(
        self,
        group_type: str,
        key: str,
        value: Any,
        record_type: Optional[Union[RecordType, str]] = None,
    ) -> Setting:
        if isinstance(value, UploadedFile):
            return (await self.save_fields(group_type, {key: value}))[0]
        group_type = normalize_group_type(group_type)
        key = normalize_key(key)
        try:
            return await self._write_value(group_type, key, value, record_type)
        finally:
            self.invalidate(group_type, key)

    async def save_fields(
        self, group_type: str, fields: Mapping[str, Any]
    ) -> List[Setting]:
        """
        Save a submitted form: plain values first, then uploaded files.

        For a file field the new file is stored and the record updated before
        any previously stored file for that key is deleted.
        """
        group_type = normalize_group_type(group_type)
        text_fields = []
        file_fields = []
        for raw_key, value in fields.items():
            key = normalize_key(raw_key)
            if isinstance(value, UploadedFile):
                file_fields.append((key, value))
            else:
                text_fields.append((key, value))

        results: List[Setting] = []
        touched: List[str] = []
        try:
            for key, value in text_fields:
                touched.append(key)
                results.append(await self._write_value(group_type, key, value, None))
            for key, uploaded in file_fields:
                touched.append(key)
                results.append(await self._write_file(group_type, key, uploaded))
        finally:
            for key in touched:
                self.invalidate(group_type, key)
        logger.info("Saved %d setting(s) for group %s", len(results), group_type)
        return results

    async def _write_value(
        self,
        group_type: str,
        key: str,
        value: Any,
        record_type: Optional[Union[RecordType, str]],
    ) -> Setting:
        try:
            kind = RecordType(record_type) if record_type else RecordType.infer(value)
        except ValueError as exc:
            raise ValidationError(f"Unknown record type {record_type!r}") from exc
        if kind is RecordType.FILE and not isinstance(value, str):
            raise ValidationError("FILE settings take an uploaded file or a stored path")
        existing = await self.repository.get_detail(
            {"group_type": group_type, "key": key}
        )
        setting = await self.repository.upsert(
            {"group_type": group_type, "key": key},
            {"value": kind.serialize(value), "record_type": kind.value},
        )
        if existing is not None and existing.is_file and existing.value != setting.value:
            await self.files.delete_quietly(existing.value)
        return setting

    async def _write_file(
        self, group_type: str, key: str, uploaded: UploadedFile
    ) -> Setting:
        existing = await self.repository.get_detail(
            {"group_type": group_type, "key": key}
        )
        old_path = existing.value if existing is not None and existing.is_file else None

        stored = await self.files.upload(
            uploaded,
            bucket=self.bucket,
            prefix="settings-",
            max_size=self.max_file_size,
        )
        try:
            setting = await self.repository.upsert(
                {"group_type": group_type, "key": key},
                {"value": stored.file_path, "record_type": RecordType.FILE.value},
            )
        except BaseException:
            await self.files.delete_quietly(stored.file_path)
            raise
        if old_path and old_path != stored.file_path:
            await self.files.delete_quietly(old_path)
        return setting

    async def delete_key(self, group_type: str, key: str) -> bool:
        group_type = normalize_group_type(group_type)
        key = normalize_key(key)
        setting = await self.repository.get_detail({"group_type": group_type, "key": key})
        if setting is None:
            raise NotFoundError(f"Setting {group_type}/{key} not found")
        try:
            deleted = await self.repository.delete_by_id(setting.id)
        finally:
            self.invalidate(group_type, key)
        if deleted and setting.is_file:
            await self.files.delete_quietly(setting.value)
        return deleted

    async def delete_group(self, group_type: str) -> int:
        group_type = normalize_group_type(group_type)
        try:
            result = await self.repository.delete_many({"group_type": group_type})
        finally:
            self.invalidate_group(group_type)
        await self.files.delete_many_quietly(
            setting.value for setting in result.deleted if setting.is_file
        )
        logger.info("Deleted %d setting(s) in group %s", result.count, group_type)
        return result.count

    # Cache management --------------------------------------------------------

    def _generation(self, group_type: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(group_type, 0)

    def _current(self, group_type: str, generation: Tuple[int, int]) -> bool:
        return self._generation(group_type) == generation

    def _bump(self, group_type: str) -> None:
        self._generations[group_type] = self._generations.get(group_type, 0) + 1

    def invalidate(self, group_type: str, key: str) -> None:
        self._bump(group_type)
        self.cache.delete(
            cache_key(group_type, key, public=True),
            cache_key(group_type, key, public=False),
            cache_key(group_type, None, public=True),
            cache_key(group_type, None, public=False),
        )
        logger.debug("Invalidated settings cache for %s/%s", group_type, key)

    def invalidate_group(self, group_type: str) -> None:
        self._bump(group_type)
        for visibility in ("public", "admin"):
            self.cache.delete_matching(f"settings:{visibility}:{group_type}:")

    def cache_stats(self) -> dict:
        return self.cache.stats()

    def clear_cache(self, group_type: Optional[str] = None) -> None:
        if group_type:
            self.invalidate_group(normalize_group_type(group_type))
            return
        self._epoch += 1
        self.cache.clear()
        logger.info("Settings cache cleared")
