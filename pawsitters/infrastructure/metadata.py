"""
Entity Metadata - Infrastructure Layer
======================================
Static column/relation table per entity type, read from the declarative
mappers once at process start.

Foreign-key columns that back a many-to-one relationship are reported under
the relationship name (``role`` rather than ``role_id``) because that is how
request payloads address them.
"""
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import inspect
from sqlalchemy.orm.interfaces import MANYTOONE


@dataclass(frozen=True)
class ColumnInfo:
    """One persisted property of an entity"""
    name: str
    nullable: bool
    is_primary_key: bool = False
    is_timestamp: bool = False
    has_default: bool = False
    attribute: str | None = None  # mapped attribute key when it differs from name
    python_type: type | None = None  # None for relation-backed and untyped columns

    @property
    def key(self) -> str:
        return self.attribute or self.name


@dataclass(frozen=True)
class EntityMetadata:
    name: str
    columns: tuple[ColumnInfo, ...]
    relations: tuple[str, ...]

    def column(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def primary_key(self) -> str:
        return next(column.name for column in self.columns if column.is_primary_key)

    def non_nullable_columns(self) -> set[str]:
        """Columns a client must supply: no primary key, timestamp or default"""
        return {
            column.name
            for column in self.columns
            if not column.nullable
            and not column.is_primary_key
            and not column.is_timestamp
            and not column.has_default
        }

    def writable_columns(self) -> set[str]:
        return {
            column.name
            for column in self.columns
            if not column.is_primary_key and not column.is_timestamp
        }

    def is_known_column(self, name: str) -> bool:
        return name in self.column_names or name in self.relations

    def python_type(self, name: str) -> type | None:
        column = self.column(name)
        return column.python_type if column else None


def _python_type(col) -> type | None:
    try:
        return col.type.python_type
    except NotImplementedError:
        return None


def describe_model(model: type) -> EntityMetadata:
    """Build EntityMetadata for one mapped class"""
    mapper = inspect(model)

    fk_relations: dict[str, str] = {}
    for rel in mapper.relationships:
        if rel.direction is MANYTOONE:
            for local in rel.local_columns:
                fk_relations[local.key] = rel.key

    columns = []
    for attr in mapper.column_attrs:
        col = attr.columns[0]
        relation = fk_relations.get(col.key)
        columns.append(ColumnInfo(
            name=relation or attr.key,
            nullable=bool(col.nullable),
            is_primary_key=bool(col.primary_key),
            is_timestamp=bool(col.info.get("timestamp", False)),
            has_default=col.default is not None or col.server_default is not None,
            attribute=attr.key if relation else None,
            python_type=None if relation else _python_type(col),
        ))

    return EntityMetadata(
        name=model.__name__,
        columns=tuple(columns),
        relations=tuple(rel.key for rel in mapper.relationships),
    )


class MetadataRegistry:
    """
    Entity type -> EntityMetadata.

    Usage:
        registry = MetadataRegistry.from_base(Base)
        registry.non_nullable_columns(Pet)
        registry.is_known_column(Pet, "breed")
    """

    def __init__(self, entries: Iterable[EntityMetadata], models: Iterable[type] = ()):
        self._by_name = {entry.name: entry for entry in entries}
        self._models = {model.__name__: model for model in models}

    @classmethod
    def from_models(cls, models: Iterable[type]) -> "MetadataRegistry":
        models = list(models)
        return cls((describe_model(model) for model in models), models)

    @classmethod
    def from_base(cls, base) -> "MetadataRegistry":
        # importing the models module registers every mapper on Base
        from pawsitters import models  # noqa: F401

        return cls.from_models(mapper.class_ for mapper in base.registry.mappers)

    @staticmethod
    def _name(entity_type) -> str:
        return entity_type if isinstance(entity_type, str) else entity_type.__name__

    def get(self, entity_type) -> EntityMetadata:
        """Raises KeyError for an unregistered entity type"""
        name = self._name(entity_type)
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown entity type: {name}") from None

    def model(self, entity_type) -> type:
        return self._models[self._name(entity_type)]

    def non_nullable_columns(self, entity_type) -> set[str]:
        return self.get(entity_type).non_nullable_columns()

    def is_known_column(self, entity_type, name: str) -> bool:
        return self.get(entity_type).is_known_column(name)

    def writable_columns(self, entity_type) -> set[str]:
        return self.get(entity_type).writable_columns()

    def relation_names(self, entity_type) -> tuple[str, ...]:
        return self.get(entity_type).relations

    def __contains__(self, entity_type) -> bool:
        return self._name(entity_type) in self._by_name

    def __iter__(self):
        return iter(self._by_name.values())
