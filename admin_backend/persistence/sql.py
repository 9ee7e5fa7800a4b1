"""
Relational backend built on SQLAlchemy's asyncio extension.

Accepts any async SQLAlchemy URL (``postgresql+asyncpg://`` in production,
``sqlite+aiosqlite://`` for tests and local runs).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Iterator, List, Optional, Type

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

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

Base = declarative_base()


class LanguageRow(Base):
    __tablename__ = "languages"

    id = Column(String, primary_key=True)
    public_id = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    folder = Column(String, nullable=False, index=True)
    iso2 = Column(String, nullable=False, default="")
    iso3 = Column(String, nullable=False, default="")
    flag_image = Column(String, nullable=False, default="")
    direction = Column(String, nullable=False, default="ltr")
    status = Column(Boolean, nullable=False, default=True, index=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class DropdownOptionRow(Base):
    __tablename__ = "manage_dropdowns"
    __table_args__ = (UniqueConstraint("unique_code", "language_id"),)

    id = Column(String, primary_key=True)
    public_id = Column(String, nullable=False, unique=True)
    unique_code = Column(BigInteger, nullable=False, index=True)
    name = Column(String, nullable=False)
    dropdown_type = Column(String(50), nullable=False, index=True)
    language_id = Column(String, ForeignKey("languages.id"), nullable=False, index=True)
    status = Column(Boolean, nullable=False, default=True)
    use_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SliderRow(Base):
    __tablename__ = "sliders"
    __table_args__ = (UniqueConstraint("unique_code", "language_id"),)

    id = Column(String, primary_key=True)
    public_id = Column(String, nullable=False, unique=True)
    unique_code = Column(BigInteger, nullable=False, index=True)
    slider_image = Column(String, nullable=False, default="")
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    button_title = Column(String, nullable=False, default="")
    button_link = Column(String, nullable=False, default="")
    custom_color = Column(Boolean, nullable=False, default=False)
    title_color = Column(String(7), nullable=False, default="#000000")
    description_color = Column(String(7), nullable=False, default="#000000")
    button_title_color = Column(String(7), nullable=False, default="#FFFFFF")
    button_background = Column(String(7), nullable=False, default="#007BFF")
    description_two = Column(Text, nullable=False, default="")
    button_title_two = Column(String, nullable=False, default="")
    button_link_two = Column(String, nullable=False, default="")
    description_two_color = Column(String(7), nullable=False, default="#666666")
    button_two_color = Column(String(7), nullable=False, default="#FFFFFF")
    button_background_two = Column(String(7), nullable=False, default="#28A745")
    status = Column(Boolean, nullable=False, default=True)
    language_id = Column(String, ForeignKey("languages.id"), nullable=False, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SettingRow(Base):
    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("group_type", "key"),)

    id = Column(String, primary_key=True)
    group_type = Column(String(100), nullable=False, index=True)
    key = Column(String, nullable=False)
    value = Column(Text, nullable=False, default="")
    record_type = Column(String, nullable=False, default="STRING")
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


@contextmanager
def translate_errors(entity: str) -> Iterator[None]:
    """Surface engine errors as domain errors."""
    try:
        yield
    except IntegrityError as exc:
        logger.info("Uniqueness violation on %s: %s", entity, exc.orig)
        raise ConflictError(f"{entity} already exists") from exc
    except (OperationalError, InterfaceError, OSError) as exc:
        logger.error("Database unavailable while accessing %s: %s", entity, exc)
        raise DependencyError("Database is unavailable") from exc


class SqlRepository(BaseRepository[T]):
    """Generic repository over one declarative table."""

    def __init__(
        self,
        sessions: async_sessionmaker,
        record_type: Type[T],
        row_type: Any,
        lock: Optional[asyncio.Lock] = None,
    ):
        super().__init__(record_type)
        self.sessions = sessions
        self.lock = lock
        self.row_type = row_type
        self.table = row_type.__table__
        self.entity = record_type.__name__

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self.lock is None:
            async with self.sessions() as session:
                yield session
            return
        # Single shared connection: one session at a time.
        async with self.lock:
            async with self.sessions() as session:
                yield session

    def _column(self, name: str):
        self.check_field(name)
        return self.table.c[name]

    def _conditions(self, filter: Optional[Filter]) -> list:
        conditions = []
        for name, condition in self.check_filter(filter).items():
            column = self._column(name)
            if not isinstance(condition, dict):
                conditions.append(
                    column.is_(None) if condition is None else column == condition
                )
                continue
            for op, operand in condition.items():
                if op == "$in":
                    conditions.append(column.in_(list(operand)))
                elif op == "$ne":
                    conditions.append(
                        column.is_not(None) if operand is None else column != operand
                    )
                elif op == "$gt":
                    conditions.append(column > operand)
                elif op == "$gte":
                    conditions.append(column >= operand)
                elif op == "$lt":
                    conditions.append(column < operand)
                elif op == "$lte":
                    conditions.append(column <= operand)
                elif op == "$contains":
                    conditions.append(
                        func.lower(column).contains(str(operand).lower(), autoescape=True)
                    )
                elif op == "$ieq":
                    conditions.append(func.lower(column) == str(operand).lower())
        return conditions

    def _select(self, filter: Optional[Filter], options: QueryOptions):
        columns = [self._column(name) for name in self.selected_fields(options)]
        stmt = select(*columns).where(*self._conditions(filter))
        for name, direction in options.sort.items():
            column = self._column(name)
            stmt = stmt.order_by(column.asc() if direction == 1 else column.desc())
        if options.skip:
            stmt = stmt.offset(options.skip)
        if options.limit is not None:
            stmt = stmt.limit(options.limit)
        return stmt

    async def _fetch(self, filter: Optional[Filter], options: QueryOptions) -> List[T]:
        with translate_errors(self.entity):
            async with self._session() as session:
                result = await session.execute(self._select(filter, options))
                rows = result.all()
        records = [self.to_record(dict(row._mapping)) for row in rows]
        if options.populate and records:
            await self.populate(records, options.populate)
        return records

    async def get_all(
        self, filter: Optional[Filter] = None, options: Optional[QueryOptions] = None
    ) -> List[T]:
        return await self._fetch(filter, self.check_options(options))

    async def get_detail(
        self, filter: Filter, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        options = self.check_options(options)
        options = QueryOptions(
            select=options.select,
            populate=options.populate,
            skip=options.skip,
            limit=1,
            sort=options.sort,
        )
        records = await self._fetch(filter, options)
        return records[0] if records else None

    async def get_detail_by_id(
        self, id: str, options: Optional[QueryOptions] = None
    ) -> Optional[T]:
        if not id:
            return None
        return await self.get_detail({"id": id}, options)

    async def insert(self, data: dict) -> T:
        values = self.prepare_insert(data)
        values["id"] = uuid.uuid4().hex
        with translate_errors(self.entity):
            async with self._session() as session:
                session.add(self.row_type(**values))
                await session.commit()
        return self.to_record(values)

    async def update_by_id(self, id: str, data: dict) -> T:
        values = self.prepare_update(data)
        with translate_errors(self.entity):
            async with self._session() as session:
                result = await session.execute(
                    update(self.table).where(self.table.c.id == id).values(**values)
                )
                await session.commit()
                changed = result.rowcount
        if not changed:
            raise NotFoundError(f"{self.entity} {id} not found")
        return await self.get_detail_by_id(id)

    async def update_many(self, filter: Filter, data: dict) -> UpdateResult[T]:
        values = self.prepare_update(data)
        matched = await self.get_all(filter, QueryOptions(select=["id"]))
        ids = [record.id for record in matched]
        if not ids:
            return UpdateResult(count=0)
        with translate_errors(self.entity):
            async with self._session() as session:
                await session.execute(
                    update(self.table).where(self.table.c.id.in_(ids)).values(**values)
                )
                await session.commit()
        updated = await self.get_all({"id": {"$in": ids}})
        return UpdateResult(count=len(updated), updated=updated)

    async def delete_by_id(self, id: str) -> bool:
        with translate_errors(self.entity):
            async with self._session() as session:
                result = await session.execute(
                    delete(self.table).where(self.table.c.id == id)
                )
                await session.commit()
                removed = result.rowcount
        return bool(removed)

    async def delete_many(self, filter: Filter) -> DeleteResult[T]:
        matched = await self.get_all(filter)
        if not matched:
            return DeleteResult(count=0)
        ids = [record.id for record in matched]
        with translate_errors(self.entity):
            async with self._session() as session:
                result = await session.execute(
                    delete(self.table).where(self.table.c.id.in_(ids))
                )
                await session.commit()
                removed = result.rowcount or 0
        return DeleteResult(count=removed, deleted=matched)

    async def count(self, filter: Optional[Filter] = None) -> int:
        stmt = (
            select(func.count())
            .select_from(self.table)
            .where(*self._conditions(filter))
        )
        with translate_errors(self.entity):
            async with self._session() as session:
                return (await session.execute(stmt)).scalar_one()

    async def upsert(self, filter: Filter, data: dict) -> T:
        existing = await self.get_detail(filter, QueryOptions(select=["id"]))
        if existing:
            return await self.update_by_id(existing.id, data)
        try:
            return await self.insert({**filter, **data})
        except ConflictError:
            # Lost a race against a concurrent insert of the same key.
            existing = await self.get_detail(filter, QueryOptions(select=["id"]))
            if existing is None:
                raise
            return await self.update_by_id(existing.id, data)

    async def increment(self, id: str, field_name: str, amount: int = 1) -> Optional[T]:
        column = self._column(field_name)
        values = self.prepare_update({})
        with translate_errors(self.entity):
            async with self._session() as session:
                result = await session.execute(
                    update(self.table)
                    .where(self.table.c.id == id)
                    .values(
                        **{field_name: column + amount, "updated_at": values["updated_at"]}
                    )
                )
                await session.commit()
                changed = result.rowcount
        if not changed:
            return None
        return await self.get_detail_by_id(id)


class SqlBackend:
    """Relational persistence backend. Accepts any async SQLAlchemy URL."""

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlBackend")
        engine_kwargs: dict = {"pool_pre_ping": True}
        lock = None
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.endswith("://"):
                engine_kwargs["poolclass"] = StaticPool
                lock = asyncio.Lock()
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.sessions = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

        self.languages = SqlRepository(self.sessions, Language, LanguageRow, lock)
        self.dropdowns = SqlRepository(
            self.sessions, DropdownOption, DropdownOptionRow, lock
        )
        self.sliders = SqlRepository(self.sessions, Slider, SliderRow, lock)
        self.settings = SqlRepository(self.sessions, Setting, SettingRow, lock)
        self.dropdowns.bind_relation("language", self.languages)
        self.sliders.bind_relation("language", self.languages)

    async def init_schema(self) -> None:
        with translate_errors("schema"):
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()
