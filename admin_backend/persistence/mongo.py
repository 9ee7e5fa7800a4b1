"""
Document backend built on motor (asyncio MongoDB driver).
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Type

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from admin_backend.errors import ConflictError, DependencyError, NotFoundError
from admin_backend.persistence.port import (
    BaseRepository,
    DeleteResult,
    Filter,
    QueryOptions,
    T,
    UpdateResult,
)
from admin_backend.persistence.records import DropdownOption, Language, Setting, Slider

logger = logging.getLogger(__name__)

# Matches nothing; used for ids that cannot be ObjectIds.
_NO_MATCH = {"$in": []}


def _object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


@contextmanager
def translate_errors(entity: str) -> Iterator[None]:
    """Surface driver errors as domain errors."""
    try:
        yield
    except DuplicateKeyError as exc:
        logger.info("Uniqueness violation on %s: %s", entity, exc.details)
        raise ConflictError(f"{entity} already exists") from exc
    except ConnectionFailure as exc:
        logger.error("MongoDB unavailable while accessing %s: %s", entity, exc)
        raise DependencyError("Database is unavailable") from exc


class MongoRepository(BaseRepository[T]):
    """Generic repository over one collection. ``id`` maps to ``_id``."""

    def __init__(self, collection: AsyncIOMotorCollection, record_type: Type[T]):
        super().__init__(record_type)
        self.collection = collection
        self.entity = record_type.__name__

    def _id_condition(self, condition: Any) -> Any:
        if not isinstance(condition, dict):
            oid = _object_id(condition)
            return oid if oid is not None else _NO_MATCH
        translated = {}
        for op, operand in condition.items():
            if op == "$in":
                translated["$in"] = [
                    oid for oid in (_object_id(v) for v in operand) if oid is not None
                ]
            elif op == "$ne":
                oid = _object_id(operand)
                if oid is not None:
                    translated["$ne"] = oid
            else:
                translated[op] = _object_id(operand) or operand
        return translated

    def _query(self, filter: Optional[Filter]) -> dict:
        query = {}
        for name, condition in self.check_filter(filter).items():
            if name == "id":
                id_condition = self._id_condition(condition)
                # "$ne" against a value that is not an ObjectId excludes nothing
                if id_condition != {}:
                    query["_id"] = id_condition
                continue
            if not isinstance(condition, dict):
                query[name] = condition
                continue
            translated = {}
            for op, operand in condition.items():
                if op == "$contains":
                    translated["$regex"] = re.escape(str(operand))
                    translated["$options"] = "i"
                elif op == "$ieq":
                    translated["$regex"] = f"^{re.escape(str(operand))}$"
                    translated["$options"] = "i"
                elif op == "$in":
                    translated["$in"] = list(operand)
                else:
                    translated[op] = operand
            query[name] = translated
        return query

    def _projection(self, options: QueryOptions) -> Optional[dict]:
        if not options.select:
            return None
        projection = {
            name: 1 for name in self.selected_fields(options) if name != "id"
        }
        return projection or {"_id": 1}

    def _sort(self, options: QueryOptions) -> list:
        return [
            ("_id" if name == "id" else name, ASCENDING if direction == 1 else DESCENDING)
            for name, direction in options.sort.items()
        ]

    def _to_record(self, document: dict) -> T:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return self.to_record(data)

    async def get_all(
        self, filter: Optional[Filter] = None, options: Optional[QueryOptions] = None
    ) -> List[T]:
        options = self.check_options(options)
        cursor = self.collection.find(self._query(filter), self._projection(options))
        sort = self._sort(options)
        if sort:
            cursor = cursor.sort(sort)
        if options.skip:
            cursor = cursor.skip(options.skip)
        if options.limit is not None:
            cursor = cursor.limit(options.limit)
        with translate_errors(self.entity):
            documents = await cursor.to_list(length=None)
        records = [self._to_record(doc) for doc in documents]
        if options.populate and records:
            await self.populate(records, options.populate)
        return records

    async def get_detail(
        self, filter: Filter, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        options = self.check_options(options)
        with translate_errors(self.entity):
            document = await self.collection.find_one(
                self._query(filter),
                self._projection(options),
                sort=self._sort(options) or None,
            )
        if document is None:
            return None
        record = self._to_record(document)
        if options.populate:
            await self.populate([record], options.populate)
        return record

    async def get_detail_by_id(
        self, id: str, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        if _object_id(id) is None:
            return None
        return await self.get_detail({"id": id}, options)

    async def insert(self, data: dict) -> T:
        document = self.prepare_insert(data)
        with translate_errors(self.entity):
            result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        return self._to_record(document)

    async def update_by_id(self, id: str, data: dict) -> T:
        values = self.prepare_update(data)
        oid = _object_id(id)
        document = None
        if oid is not None:
            with translate_errors(self.entity):
                document = await self.collection.find_one_and_update(
                    {"_id": oid},
                    {"$set": values},
                    return_document=ReturnDocument.AFTER,
                )
        if document is None:
            raise NotFoundError(f"{self.entity} {id} not found")
        return self._to_record(document)

    async def update_many(self, filter: Filter, data: dict) -> UpdateResult[T]:
        values = self.prepare_update(data)
        matched = await self.get_all(filter, QueryOptions(select=["id"]))
        ids = [ObjectId(record.id) for record in matched]
        if not ids:
            return UpdateResult(count=0)
        with translate_errors(self.entity):
            await self.collection.update_many({"_id": {"$in": ids}}, {"$set": values})
        updated = await self.get_all({"id": {"$in": [str(oid) for oid in ids]}})
        return UpdateResult(count=len(updated), updated=updated)

    async def delete_by_id(self, id: str) -> bool:
        oid = _object_id(id)
        if oid is None:
            return False
        with translate_errors(self.entity):
            result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def delete_many(self, filter: Filter) -> DeleteResult[T]:
        matched = await self.get_all(filter)
        if not matched:
            return DeleteResult(count=0)
        ids = [ObjectId(record.id) for record in matched]
        with translate_errors(self.entity):
            result = await self.collection.delete_many({"_id": {"$in": ids}})
        return DeleteResult(count=result.deleted_count, deleted=matched)

    async def count(self, filter: Optional[Filter] = None) -> int:
        with translate_errors(self.entity):
            return await self.collection.count_documents(self._query(filter))

    async def upsert(self, filter: Filter, data: dict) -> T:
        values = self.prepare_update(data)
        on_insert = self.prepare_insert({**filter, **data})
        for name in list(values) + list(filter):
            on_insert.pop(name, None)
        with translate_errors(self.entity):
            document = await self.collection.find_one_and_update(
                self._query(filter),
                {"$set": values, "$setOnInsert": on_insert},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return self._to_record(document)

    async def increment(self, id: str, field_name: str, amount: int = 1) -> Optional[T]:
        self.check_field(field_name)
        oid = _object_id(id)
        if oid is None:
            return None
        values = self.prepare_update({})
        with translate_errors(self.entity):
            document = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$inc": {field_name: amount}, "$set": values},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_record(document) if document else None


class MongoBackend:
    """Document persistence backend."""

    def __init__(self, uri: str, database: str, client: Any = None):
        if client is None:
            if not uri:
                raise ValueError("MONGODB_URI is required for MongoBackend")
            client = AsyncIOMotorClient(uri, tz_aware=True)
        self.client = client
        self.db = self.client[database]

        self.languages = MongoRepository(self.db["languages"], Language)
        self.dropdowns = MongoRepository(self.db["manage_dropdowns"], DropdownOption)
        self.sliders = MongoRepository(self.db["sliders"], Slider)
        self.settings = MongoRepository(self.db["settings"], Setting)
        self.dropdowns.bind_relation("language", self.languages)
        self.sliders.bind_relation("language", self.languages)

    async def init_schema(self) -> None:
        with translate_errors("schema"):
            await self.db["languages"].create_index("public_id", unique=True)
            await self.db["languages"].create_index("folder")
            for name in ("manage_dropdowns", "sliders"):
                collection = self.db[name]
                await collection.create_index("public_id", unique=True)
                await collection.create_index(
                    [("unique_code", ASCENDING), ("language_id", ASCENDING)],
                    unique=True,
                )
            await self.db["manage_dropdowns"].create_index("dropdown_type")
            await self.db["settings"].create_index(
                [("group_type", ASCENDING), ("key", ASCENDING)], unique=True
            )

    async def close(self) -> None:
        self.client.close()
