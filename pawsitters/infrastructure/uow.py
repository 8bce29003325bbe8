"""
Unit of Work + Entity Repository - Infrastructure Layer
=======================================================
One UnitOfWork is one request's transaction: read existing state, validate,
write. The store's constraints are the final arbiter; IntegrityErrors raised
at flush time are translated into the domain error taxonomy here.
"""
import re
from typing import Any, Generic, Iterable, Mapping, TypeVar

from sqlalchemy import exists, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from pawsitters.exceptions import ConflictError, InvalidDataError
from pawsitters.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class UnitOfWork:
    """
    Thin Unit of Work for transaction management.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            pets = uow.repository(Pet)
            pet = await pets.get(pet_id, relations=["breed.species"])
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._repositories: dict[type, "EntityRepository"] = {}

    async def __aenter__(self) -> "UnitOfWork":
        """Open the session; the transaction begins on first use"""
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or rollback + close the session"""
        try:
            if exc_type is None:
                if self._session:
                    await self._session.commit()
            else:
                if self._session:
                    await self._session.rollback()
        finally:
            if self._session:
                await self._session.close()
                self._session = None
            self._repositories.clear()

    @property
    def session(self) -> AsyncSession:
        """Current session"""
        if self._session is None:
            raise RuntimeError(
                "Session not available. Use 'async with UnitOfWork() as uow:' pattern."
            )
        return self._session

    def savepoint(self):
        """
        SAVEPOINT scope for one write. An error raised inside rolls back only
        what was written inside it; the request's transaction stays usable
        and still commits on exit.

        Open it before touching ORM state: entering flushes whatever is
        already pending, and that flush is not covered by the savepoint.

        Usage:
            async with uow.savepoint():
                await uow.repository(Pet).create(pet)
        """
        return self.session.begin_nested()

    def repository(self, model: type[T]) -> "EntityRepository[T]":
        if model not in self._repositories:
            self._repositories[model] = EntityRepository(self.session, model)
        return self._repositories[model]


# SQLite: "UNIQUE constraint failed: users.email"
SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.]+(?:, [\w.]+)*)")
# PostgreSQL detail: "Key (email)=(ada@example.com) already exists."
PG_KEY_RE = re.compile(r"Key \(([^)]+)\)=")


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = error.orig
    if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
        return True
    text = str(orig).lower()
    return "unique" in text or "duplicate key" in text


def conflicting_columns(error: IntegrityError) -> list[str]:
    """Column names named by a unique violation, [] when the driver doesn't say"""
    orig = error.orig
    # asyncpg keeps the detail line on the original exception
    detail = getattr(orig.__cause__, "detail", None) or ""
    match = SQLITE_UNIQUE_RE.search(str(orig))
    if match:
        return [name.strip().split(".")[-1] for name in match.group(1).split(",")]
    match = PG_KEY_RE.search(f"{orig} {detail}")
    if match:
        return [name.strip() for name in match.group(1).split(",")]
    return []


class EntityRepository(Generic[T]):
    """Store-of-record access for one entity type - CRUD only, no business rules"""

    def __init__(self, session: AsyncSession, model: type[T]):
        self.session = session
        self.model = model
        self._mapper = inspect(model)

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    # -------------------------------------------------------------------------
    # Eager loading
    # -------------------------------------------------------------------------

    def load_options(self, relations: Iterable[str] | None) -> list:
        """
        Dotted relation paths ("pets.breed.species") -> selectinload chains.

        Raises:
            InvalidDataError: listing every path that names an unknown relation
        """
        options, invalid = [], []
        for path in relations or ():
            option = self._load_option(path)
            if option is None:
                invalid.append(path)
            else:
                options.append(option)
        if invalid:
            raise InvalidDataError(
                f"Invalid relations for {self.entity_name}: {', '.join(invalid)}",
                {"invalid_relations": invalid}
            )
        return options

    def _load_option(self, path: str):
        mapper, option = self._mapper, None
        for name in path.split("."):
            if name not in mapper.relationships:
                return None
            attr = getattr(mapper.class_, name)
            option = selectinload(attr) if option is None else option.selectinload(attr)
            mapper = mapper.relationships[name].mapper
        return option

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _where(self, filters: Mapping[str, Any] | None) -> list:
        return [getattr(self.model, key) == value for key, value in (filters or {}).items()]

    async def get(self, entity_id, relations: Iterable[str] | None = None, for_update: bool = False) -> T | None:
        """Entity by id with eager-loaded relations (None when absent)"""
        stmt = (
            select(self.model)
            .where(self.model.id == entity_id)
            .options(*self.load_options(relations))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, entity_id, relations: Iterable[str] | None = None) -> T | None:
        """Entity with a pessimistic lock (SELECT ... FOR UPDATE)"""
        return await self.get(entity_id, relations, for_update=True)

    async def find_where(self, *criteria, relations: Iterable[str] | None = None, order_by=None) -> list[T]:
        stmt = select(self.model).where(*criteria).options(*self.load_options(relations))
        stmt = stmt.order_by(order_by if order_by is not None else self.model.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def find_by(self, filters: Mapping[str, Any] | None = None, relations: Iterable[str] | None = None) -> list[T]:
        return await self.find_where(*self._where(filters), relations=relations)

    async def find_one_where(self, *criteria, relations: Iterable[str] | None = None) -> T | None:
        found = await self.find_where(*criteria, relations=relations)
        return found[0] if found else None

    async def exists_by(self, filters: Mapping[str, Any]) -> bool:
        return await self.exists_where(*self._where(filters))

    async def exists_where(self, *criteria) -> bool:
        result = await self.session.execute(select(exists().where(*criteria)))
        return bool(result.scalar())

    async def count_by(self, filters: Mapping[str, Any] | None = None) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._where(filters))
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    async def value_taken(self, column: str, value: Any, exclude_id: str | None = None) -> bool:
        """Another row already holds value in column"""
        criteria = [getattr(self.model, column) == value]
        if exclude_id is not None:
            criteria.append(self.model.id != exclude_id)
        return await self.exists_where(*criteria)

    # -------------------------------------------------------------------------
    # Writes (flush immediately so store constraints fire inside the request)
    # -------------------------------------------------------------------------

    def _existing_data(self, error: IntegrityError, values: Mapping[str, Any]) -> dict[str, Any]:
        existing = {}
        for name in conflicting_columns(error):
            if name in self._mapper.columns:
                key = self._mapper.get_property_by_column(self._mapper.columns[name]).key
                existing[key] = values.get(key)
        return existing

    async def _flush(self, action: str, entity=None) -> None:
        """
        Flush and translate IntegrityError. The session is left in a
        failed-flush state; callers that want to carry on after a conflict
        write inside UnitOfWork.savepoint().
        """
        # a failed flush expires the entity, so read its values beforehand
        values = dict(inspect(entity).dict) if entity is not None else {}
        try:
            await self.session.flush()
        except IntegrityError as e:
            if _is_unique_violation(e):
                details = {"failed": action, "reason": "unique constraint"}
                existing = self._existing_data(e, values)
                if existing:
                    details["existing_data"] = existing
                logger.warning("unique_constraint_violation", entity=self.entity_name, action=action, fields=sorted(existing))
                raise ConflictError(
                    f"Couldn't {action} {self.entity_name}: a unique value already exists",
                    details
                ) from e
            logger.warning("integrity_violation", entity=self.entity_name, action=action)
            raise InvalidDataError(
                f"Couldn't {action} {self.entity_name}: constraint violation",
                {"failed": action, "reason": "constraint violation"}
            ) from e

    async def create(self, entity: T) -> T:
        """Add + flush (generated id and timestamps become available)"""
        self.session.add(entity)
        await self._flush("create", entity)
        return entity

    async def save(self, entity: T) -> T:
        """Flush pending changes of an existing entity"""
        self.session.add(entity)
        await self._flush("update", entity)
        return entity

    async def remove(self, entity: T) -> None:
        await self.session.delete(entity)
        await self._flush("delete")
