"""
Base Controller - Application Layer
===================================
Generic create / update / delete / read orchestration for one entity type.

Per request:  RECEIVED -> VALIDATED -> PERSISTED
                       `-> REJECTED

Transactions belong to the UnitOfWork the controller is given; nothing here
commits. Resource controllers supply the column policy and override the
hooks (prepare, before_persist, rules, remove).
"""
from datetime import date
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Mapping, TypeVar

from pawsitters.domain.column_policy import ColumnPolicy
from pawsitters.domain.rules import Rule, run_rules
from pawsitters.domain.validation import EntityValidator, ValidationResult, sanitize
from pawsitters.exceptions import ForbiddenError, InvalidDataError, NotFoundError
from pawsitters.infrastructure.metadata import MetadataRegistry
from pawsitters.infrastructure.uow import UnitOfWork
from pawsitters.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestState(Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    REJECTED = "rejected"


class BaseController(Generic[T]):
    """
    Column policy (class attributes, fixed per entity type):
        REQUIRED, UNIQUE, UPDATABLE, ALLOWED (defaults to REQUIRED ∪ UPDATABLE)
    PROTECTED: never client-settable, whatever the policy says
    DATE_FIELDS: payload fields parsed as dates during prepare()
    ASSIGNED: relations the controller sets itself (owner, parent entity)
    VIEW_RELATIONS: relations loaded on entities returned by create/update
    UPDATE_RELATIONS / DELETE_RELATIONS: relations the rules/remove() need
    """

    model: type[T]

    REQUIRED: tuple[str, ...] = ()
    UNIQUE: tuple[str, ...] = ()
    UPDATABLE: tuple[str, ...] = ()
    ALLOWED: tuple[str, ...] | None = None
    PROTECTED: tuple[str, ...] = ()
    DATE_FIELDS: tuple[str, ...] = ()
    ASSIGNED: tuple[str, ...] = ()

    VIEW_RELATIONS: tuple[str, ...] = ()
    UPDATE_RELATIONS: tuple[str, ...] = ()
    DELETE_RELATIONS: tuple[str, ...] = ()

    _policies: dict[type, ColumnPolicy] = {}

    def __init__(
        self,
        uow: UnitOfWork,
        registry: MetadataRegistry,
        today: Callable[[], date] = date.today,
    ):
        self.uow = uow
        self.registry = registry
        self.today = today
        self.metadata = registry.get(self.model)
        self.policy = self.column_policy()
        self.repository = uow.repository(self.model)
        self.validator = EntityValidator(self.policy, self.metadata, lookup=self._value_taken)
        self.state = RequestState.RECEIVED

    @classmethod
    def column_policy(cls) -> ColumnPolicy:
        """Built once per controller class; ColumnPolicyError on a contradictory policy"""
        if cls not in BaseController._policies:
            BaseController._policies[cls] = ColumnPolicy.build(
                required=cls.REQUIRED,
                unique=cls.UNIQUE,
                updatable=cls.UPDATABLE,
                allowed=cls.ALLOWED,
            )
        return BaseController._policies[cls]

    @property
    def entity_name(self) -> str:
        return self.metadata.name

    def _transition(self, state: RequestState) -> None:
        logger.debug("request_state", entity=self.entity_name, from_state=self.state.value, to_state=state.value)
        self.state = state

    def _reject(self, result: ValidationResult, message: str) -> None:
        """Raise with the full diagnostics when result holds any violation"""
        if not result.has_errors:
            return
        self._transition(RequestState.REJECTED)
        logger.info("validation_rejected", entity=self.entity_name, errors=result.error_count)
        result.raise_if_errors(message)

    async def _value_taken(self, name: str, value: Any, exclude_id: str | None) -> bool:
        column = self.metadata.column(name)
        return await self.repository.value_taken(column.key if column else name, value, exclude_id)

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def normalize(self, name: str, value: Any) -> Any:
        """Value as stored (case folding and the like)"""
        return value

    def rules(self) -> list[Rule]:
        """Property-level constraints checked on the built entity"""
        return []

    async def prepare(self, values: Mapping[str, Any], result: ValidationResult, entity: T | None = None) -> dict:
        """
        Sanitised payload -> attribute values. Problems are recorded in
        result; the returned dict omits values that could not be converted.
        """
        prepared = {}
        for name, value in values.items():
            if name in self.DATE_FIELDS:
                value = self.validator.check_date_field(values, name, result)
                if value is None:
                    continue
            prepared[name] = self.normalize(name, value)
        return prepared

    async def before_persist(self, entity: T, result: ValidationResult, creating: bool) -> None:
        """Cross-entity checks on the built entity; runs after the rules"""

    async def remove(self, entity: T) -> None:
        """Hard delete; resource controllers override for soft delete"""
        await self.repository.remove(entity)
        logger.info("entity_deleted", entity=self.entity_name, entity_id=entity.id)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_by_id(self, entity_id: str, relations: Iterable[str] | None = None) -> T:
        entity = await self.repository.get(entity_id, relations)
        if entity is None:
            raise NotFoundError(f"{self.entity_name} not found", {"not_found": entity_id})
        return entity

    def _filters(self, filters: Mapping[str, Any] | None) -> dict[str, Any]:
        filters = filters or {}
        invalid = sorted(key for key in filters if self.metadata.column(key) is None)
        if invalid:
            raise InvalidDataError(
                f"Invalid columns for {self.entity_name}: {', '.join(invalid)}",
                {"invalid_columns": invalid}
            )
        return {self.metadata.column(key).key: value for key, value in filters.items()}

    async def list(self, filters: Mapping[str, Any] | None = None, relations: Iterable[str] | None = None) -> list[T]:
        return await self.repository.find_by(self._filters(filters), relations)

    async def count(self, filters: Mapping[str, Any] | None = None) -> int:
        return await self.repository.count_by(self._filters(filters))

    async def reload(self, entity: T) -> T:
        return await self.repository.get(entity.id, self.VIEW_RELATIONS)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(self, payload: Mapping[str, Any] | None, assigned: Mapping[str, Any] | None = None) -> T:
        """
        Validate payload against the policy, build the entity, check the
        entity rules and write it. assigned holds controller-set values
        (owner, parent entity) that never come from the client.

        Raises:
            InvalidDataError / ConflictError: with every collected violation
        """
        self.state = RequestState.RECEIVED
        if not payload:
            self._transition(RequestState.REJECTED)
            raise InvalidDataError(f"Cannot save {self.entity_name} (missing data)", {"missing": "all"})

        result = ValidationResult()
        await self.validator.collect(payload, result, protected=self.PROTECTED, normalize=self.normalize)
        values = await self.prepare(sanitize(payload, self.policy.allowed - set(self.PROTECTED)), result)
        self._reject(result, f"Couldn't create {self.entity_name}")

        async with self.uow.savepoint():
            entity = self.model(**values, **(assigned or {}))
            run_rules(entity, self.rules(), result)
            await self.before_persist(entity, result, creating=True)
            self._reject(result, f"Couldn't create {self.entity_name}")
            self._transition(RequestState.VALIDATED)

            await self.repository.create(entity)
        self._transition(RequestState.PERSISTED)
        logger.info("entity_created", entity=self.entity_name, entity_id=entity.id)
        return await self.reload(entity)

    def apply_changes(self, entity: T, values: Mapping[str, Any]) -> set[str]:
        """Set only the values that differ; returns the changed names"""
        changed = set()
        for name, value in values.items():
            if getattr(entity, name) != value:
                setattr(entity, name, value)
                changed.add(name)
        return changed

    async def update(self, entity_id: str, payload: Mapping[str, Any] | None) -> T:
        """
        Raises:
            NotFoundError: no entity with entity_id
            ForbiddenError: payload touches a column that is not updatable
            InvalidDataError / ConflictError: with every collected violation
        """
        self.state = RequestState.RECEIVED
        entity = await self.get_by_id(entity_id, set(self.UPDATE_RELATIONS) | set(self.VIEW_RELATIONS))
        if not payload:
            self._transition(RequestState.VALIDATED)
            return entity

        forbidden = sorted(self.validator.check_updatable_only(payload) - set(self.PROTECTED))
        if forbidden:
            self._transition(RequestState.REJECTED)
            raise ForbiddenError(
                f"Attempting to edit fields {', '.join(forbidden)}. "
                f"Can only edit fields {', '.join(sorted(self.policy.updatable))}",
                {"failed": "update", "forbidden": forbidden}
            )

        result = ValidationResult()
        await self.validator.collect(
            payload, result, exclude_id=entity.id, protected=self.PROTECTED,
            updating=True, normalize=self.normalize
        )
        values = await self.prepare(sanitize(payload, self.policy.updatable), result, entity=entity)
        self._reject(result, f"Couldn't update {self.entity_name}")

        async with self.uow.savepoint():
            changed = self.apply_changes(entity, values)
            if not changed:
                self._transition(RequestState.VALIDATED)
                return entity

            run_rules(entity, self.rules(), result)
            await self.before_persist(entity, result, creating=False)
            self._reject(result, f"Couldn't update {self.entity_name}")
            self._transition(RequestState.VALIDATED)

            await self.repository.save(entity)
        self._transition(RequestState.PERSISTED)
        logger.info("entity_updated", entity=self.entity_name, entity_id=entity.id, fields=sorted(changed))
        return await self.reload(entity)

    async def delete(self, entity_id: str) -> None:
        """Lookup-or-NotFound, then the resource's remove()"""
        entity = await self.get_by_id(entity_id, self.DELETE_RELATIONS)
        async with self.uow.savepoint():
            await self.remove(entity)
        self._transition(RequestState.PERSISTED)
