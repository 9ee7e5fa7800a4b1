"""
Storage-agnostic repository contract.

Every entity repository implements :class:`Repository`; the relational and
document adapters share the backend-independent parts through
:class:`BaseRepository`.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Protocol, Type, TypeVar

from admin_backend.errors import ValidationError
from admin_backend.persistence.records import (
    DropdownOption,
    Language,
    Record,
    Setting,
    Slider,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)

Filter = Dict[str, Any]

OPERATORS = frozenset({"$in", "$ne", "$gt", "$gte", "$lt", "$lte", "$contains", "$ieq"})


@dataclass
class QueryOptions:
    select: Optional[List[str]] = None
    populate: List[str] = field(default_factory=list)
    skip: int = 0
    limit: Optional[int] = None
    sort: Dict[str, int] = field(default_factory=dict)


@dataclass
class PaginationOptions:
    page: int = 1
    limit: int = 10
    sort: Dict[str, int] = field(default_factory=dict)
    select: Optional[List[str]] = None
    populate: List[str] = field(default_factory=list)


@dataclass
class Pagination:
    current_page: int
    total_pages: int
    total_count: int
    limit: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total_count: int) -> "Pagination":
        total_pages = math.ceil(total_count / limit)
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_count=total_count,
            limit=limit,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    def as_dict(self) -> dict:
        return {
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "total_count": self.total_count,
            "limit": self.limit,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


@dataclass
class PaginatedResult(Generic[T]):
    items: List[T]
    pagination: Pagination


@dataclass
class UpdateResult(Generic[T]):
    count: int
    updated: List[T] = field(default_factory=list)


@dataclass
class DeleteResult(Generic[T]):
    count: int
    deleted: List[T] = field(default_factory=list)


class Repository(Protocol[T]):
    """Operations every backend exposes for one entity type."""

    record_type: Type[T]

    async def get_all(
        self, filter: Optional[Filter] = None, options: Optional[QueryOptions] = None
    ) -> List[T]:
        ...

    async def get_detail_by_id(
        self, id: str, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        ...

    async def get_detail(
        self, filter: Filter, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        ...

    async def insert(self, data: dict) -> T:
        ...

    async def update_by_id(self, id: str, data: dict) -> T:
        ...

    async def update_many(self, filter: Filter, data: dict) -> UpdateResult[T]:
        ...

    async def delete_by_id(self, id: str) -> bool:
        ...

    async def delete_many(self, filter: Filter) -> DeleteResult[T]:
        ...

    async def count(self, filter: Optional[Filter] = None) -> int:
        ...

    async def exists(self, filter: Filter) -> bool:
        ...

    async def find_with_pagination(
        self, filter: Optional[Filter], options: PaginationOptions
    ) -> PaginatedResult[T]:
        ...

    async def upsert(self, filter: Filter, data: dict) -> T:
        ...

    async def increment(self, id: str, field_name: str, amount: int = 1) -> Optional[T]:
        ...


class Backend(Protocol):
    """One persistence engine with a repository per entity type."""

    languages: Repository[Language]
    dropdowns: Repository[DropdownOption]
    sliders: Repository[Slider]
    settings: Repository[Setting]

    async def init_schema(self) -> None:
        ...

    async def close(self) -> None:
        ...


class BaseRepository(Generic[T]):
    """Backend-independent validation, defaults, pagination and population."""

    def __init__(self, record_type: Type[T]):
        self.record_type = record_type
        self._relations: Dict[str, "BaseRepository"] = {}

    def bind_relation(self, name: str, repository: "BaseRepository") -> None:
        if name not in self.record_type.relation_fields():
            raise ValueError(f"{self.record_type.__name__} has no relation {name!r}")
        self._relations[name] = repository

    # Validation -----------------------------------------------------------------

    def check_field(self, name: str) -> None:
        if not self.record_type.has_field(name):
            raise ValidationError(
                f"Unknown field {name!r} for {self.record_type.__name__}"
            )

    def check_filter(self, filter: Optional[Filter]) -> Filter:
        filter = dict(filter or {})
        for name, condition in filter.items():
            self.check_field(name)
            if isinstance(condition, dict):
                unknown = set(condition) - OPERATORS
                if unknown:
                    raise ValidationError(
                        f"Unsupported filter operator(s): {', '.join(sorted(unknown))}"
                    )
                if "$in" in condition and not isinstance(
                    condition["$in"], (list, tuple, set)
                ):
                    raise ValidationError("$in expects a list of values")
        return filter

    def check_options(self, options: Optional[QueryOptions]) -> QueryOptions:
        options = options or QueryOptions()
        for name in options.select or []:
            self.check_field(name)
        for name, direction in options.sort.items():
            self.check_field(name)
            if direction not in (1, -1):
                raise ValidationError("Sort direction must be 1 or -1")
        relations = self.record_type.relation_fields()
        for name in options.populate:
            if name not in relations:
                raise ValidationError(f"Cannot populate {name!r}")
        return options

    def selected_fields(self, options: QueryOptions) -> List[str]:
        if not options.select:
            return self.record_type.column_fields()
        fields = ["id"] + [name for name in options.select if name != "id"]
        # Foreign keys are needed to populate relations.
        for relation in options.populate:
            foreign_key = self.record_type.relation_fields()[relation]
            if foreign_key not in fields:
                fields.append(foreign_key)
        return fields

    # Write preparation -------------------------------------------------------

    def prepare_insert(self, data: dict) -> dict:
        for name in data:
            self.check_field(name)
        now = time.time()
        values = self.record_type.defaults()
        values.update({k: v for k, v in data.items() if v is not None})
        values.pop("id", None)
        if "public_id" in values and not values["public_id"]:
            values["public_id"] = str(uuid.uuid4())
        values["created_at"] = now
        values["updated_at"] = now
        return values

    def prepare_update(self, data: dict) -> dict:
        values = {}
        for name, value in data.items():
            self.check_field(name)
            if name in self.record_type.immutable_fields:
                raise ValidationError(f"Field {name!r} cannot be changed")
            values[name] = (
                self.record_type.field_default(name) if value is None else value
            )
        values["updated_at"] = time.time()
        return values

    def to_record(self, data: dict) -> T:
        return self.record_type.from_mapping(data)

    # Shared operations ---------------------------------------------------------

    async def exists(self, filter: Filter) -> bool:
        found = await self.get_detail(filter, QueryOptions(select=["id"]))
        return found is not None

    async def find_with_pagination(
        self, filter: Optional[Filter], options: PaginationOptions
    ) -> PaginatedResult[T]:
        if options.page < 1:
            raise ValidationError("Page must be greater than or equal to 1")
        if options.limit < 1:
            raise ValidationError("Limit must be greater than or equal to 1")
        total = await self.count(filter)
        items = await self.get_all(
            filter,
            QueryOptions(
                select=options.select,
                populate=options.populate,
                skip=(options.page - 1) * options.limit,
                limit=options.limit,
                sort=options.sort,
            ),
        )
        return PaginatedResult(
            items=items,
            pagination=Pagination.build(options.page, options.limit, total),
        )

    async def populate(self, records: List[T], relations: List[str]) -> List[T]:
        for relation in relations:
            repository = self._relations.get(relation)
            if repository is None:
                logger.warning(
                    "No repository bound for relation %s on %s",
                    relation,
                    self.record_type.__name__,
                )
                continue
            foreign_key = self.record_type.relation_fields()[relation]
            ids = sorted({getattr(r, foreign_key) for r in records if getattr(r, foreign_key)})
            if not ids:
                continue
            related = await repository.get_all({"id": {"$in": ids}})
            by_id = {item.id: item for item in related}
            for record in records:
                setattr(record, relation, by_id.get(getattr(record, foreign_key)))
        return records
