"""
Per-language replication of reference data.

A replica set is one record per active language, all sharing a generated
``unique_code``. Files attached at creation are stored once per language
under a language-specific name so each language can later replace its own
copy independently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Generic, List, Optional, Sequence

from admin_backend.errors import ConflictError, InUseError, NotFoundError, ValidationError
from admin_backend.files import FileManager, language_file_name
from admin_backend.intake import UploadedFile
from admin_backend.languages import LanguageDirectory
from admin_backend.persistence.port import QueryOptions, Repository, T
from admin_backend.persistence.records import Language
from admin_backend.unique_codes import UniqueCodeGenerator

logger = logging.getLogger(__name__)

# Fields that tie a replica to its set; never changed after creation.
_SET_FIELDS = ("unique_code", "language_id")


@dataclass
class ReplicaSetDeletion(Generic[T]):
    unique_code: int
    count: int
    records: List[T] = field(default_factory=list)
    deleted_files: List[str] = field(default_factory=list)


class ReplicationEngine(Generic[T]):
    def __init__(
        self,
        repository: Repository[T],
        languages: LanguageDirectory,
        codes: UniqueCodeGenerator,
        files: FileManager,
        *,
        bucket: str,
        file_prefix: str,
        file_field: Optional[str] = None,
        max_fanout_attempts: int = 3,
    ):
        self.repository = repository
        self.languages = languages
        self.codes = codes
        self.files = files
        self.bucket = bucket
        self.file_prefix = file_prefix
        self.file_field = file_field
        self.max_fanout_attempts = max_fanout_attempts
        self.entity = repository.record_type.__name__

    async def create_replica_set(
        self,
        data: dict,
        language_ids: Optional[Sequence[str]] = None,
        file: Optional[UploadedFile] = None,
    ) -> List[T]:
        """
        Create one record per target language and return all of them.

        Targets are ``language_ids`` (each must be active) or every active
        language. If any language fails, the records and files created by
        that attempt are removed before the error propagates; a uniqueness
        conflict is retried with a fresh code.
        """
        if file is not None and not self.file_field:
            raise ValueError(f"{self.entity} replicas do not carry files")
        for name in _SET_FIELDS:
            if name in data:
                raise ValidationError(f"{name} is assigned during replication")

        if language_ids:
            targets = await self.languages.resolve_many(list(language_ids))
        else:
            targets = await self.languages.get_all_active_languages()
        if not targets:
            raise ValidationError("No active languages available")

        for attempt in range(1, self.max_fanout_attempts + 1):
            code = await self.codes.generate()
            try:
                replicas = await self._fan_out(code, data, targets, file)
            except ConflictError:
                if attempt == self.max_fanout_attempts:
                    raise
                logger.warning(
                    "Conflict replicating %s with code %s (attempt %d); retrying",
                    self.entity,
                    code,
                    attempt,
                )
                continue
            logger.info(
                "Created %s replica set %s across %d language(s)",
                self.entity,
                code,
                len(replicas),
            )
            return replicas
        raise ConflictError(f"Could not create {self.entity} replica set")

    async def _fan_out(
        self,
        code: int,
        data: dict,
        targets: List[Language],
        file: Optional[UploadedFile],
    ) -> List[T]:
        results = await asyncio.gather(
            *(self._create_replica(code, data, language, file) for language in targets),
            return_exceptions=True,
        )
        created = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return created
        await self._compensate(code, created)
        raise next(
            (f for f in failures if not isinstance(f, ConflictError)), failures[0]
        )

    async def _create_replica(
        self,
        code: int,
        data: dict,
        language: Language,
        file: Optional[UploadedFile],
    ) -> T:
        values = dict(data)
        values["unique_code"] = code
        values["language_id"] = language.id
        file_path = None
        if file is not None:
            name = language_file_name(
                self.file_prefix, code, language.folder, file.original_name, file.mimetype
            )
            stored = await self.files.store(file, f"{self.bucket}/{name}")
            file_path = stored.file_path
            values[self.file_field] = file_path
        try:
            return await self.repository.insert(values)
        except BaseException:
            if file_path:
                await self.files.delete_quietly(file_path)
            raise

    async def _compensate(self, code: int, created: List[T]) -> None:
        if not created:
            return
        ids = [record.id for record in created]
        logger.warning(
            "Rolling back %d %s replica(s) of code %s after a failed fan-out",
            len(ids),
            self.entity,
            code,
        )
        try:
            await self.repository.delete_many({"id": {"$in": ids}})
        except Exception:
            logger.exception(
                "Rollback of %s replica set %s failed; partial set %s left in place",
                self.entity,
                code,
                ids,
            )
        await self.files.delete_many_quietly(self._file_paths(created))

    def _file_paths(self, records: List[T]) -> List[str]:
        if not self.file_field:
            return []
        return [getattr(record, self.file_field) for record in records]

    async def find_replica_set(self, unique_code: int) -> List[T]:
        return await self.repository.get_all(
            {"unique_code": unique_code},
            QueryOptions(populate=["language"], sort={"created_at": 1}),
        )

    async def get_replica(self, public_id: str) -> T:
        record = await self.repository.get_detail(
            {"public_id": public_id}, QueryOptions(populate=["language"])
        )
        if record is None:
            raise NotFoundError(f"{self.entity} {public_id} not found")
        return record

    async def update_replica(
        self, public_id: str, data: dict, file: Optional[UploadedFile] = None
    ) -> T:
        """
        Update a single language's record. Sibling replicas are untouched.

        A new file is stored before the record changes; the superseded file
        is removed only once the record points at the new one.
        """
        if file is not None and not self.file_field:
            raise ValueError(f"{self.entity} replicas do not carry files")
        for name in _SET_FIELDS:
            if name in data:
                raise ValidationError(f"{name} cannot be changed")
        record = await self.get_replica(public_id)
        values = dict(data)

        old_path = getattr(record, self.file_field) if self.file_field else ""
        new_path = None
        if file is not None:
            folder = record.language.folder if record.language else "default"
            name = language_file_name(
                self.file_prefix,
                record.unique_code,
                folder,
                file.original_name,
                file.mimetype,
            )
            stored = await self.files.store(file, f"{self.bucket}/{name}")
            new_path = stored.file_path
            values[self.file_field] = new_path

        try:
            await self.repository.update_by_id(record.id, values)
        except BaseException:
            if new_path and new_path != old_path:
                await self.files.delete_quietly(new_path)
            raise
        if new_path and old_path and old_path != new_path:
            await self.files.delete_quietly(old_path)
        return await self.get_replica(public_id)

    async def delete_replica_set(self, unique_code: int) -> ReplicaSetDeletion[T]:
        """
        Delete every member of a replica set and every file they reference.

        Refused with :class:`InUseError` while any member's ``use_count`` is
        positive. File deletion failures are logged and do not undo the
        record deletion.
        """
        members = await self.repository.get_all({"unique_code": unique_code})
        if not members:
            raise NotFoundError(f"{self.entity} with unique code {unique_code} not found")
        in_use = max((getattr(m, "use_count", 0) for m in members), default=0)
        if in_use > 0:
            raise InUseError(
                f"{self.entity} {unique_code} is in use and cannot be deleted",
                details={"unique_code": unique_code, "use_count": in_use},
            )

        result = await self.repository.delete_many({"unique_code": unique_code})
        removed = await self.files.delete_many_quietly(self._file_paths(result.deleted))
        logger.info(
            "Deleted %s replica set %s: %d record(s), %d file(s)",
            self.entity,
            unique_code,
            result.count,
            len(removed),
        )
        return ReplicaSetDeletion(
            unique_code=unique_code,
            count=result.count,
            records=result.deleted,
            deleted_files=removed,
        )
