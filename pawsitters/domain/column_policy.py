"""
Column Policy - pure domain layer
=================================
Declarative field-name rules governing one entity type's mutation surface.
No session, no IO.
"""
from dataclasses import dataclass
from typing import Iterable

from pawsitters.infrastructure.metadata import EntityMetadata


class ColumnPolicyError(ValueError):
    """A policy that contradicts itself: programming error, not a request error"""


def _names(values: Iterable[str] | None) -> frozenset[str]:
    return frozenset(values or ())


@dataclass(frozen=True)
class ColumnPolicy:
    """
    required  - must be present on create
    unique    - checked against existing rows before writing
    updatable - may change after create
    allowed   - may appear in a create payload at all

    Invariants (checked on construction):
        required  ⊆ allowed
        updatable ⊆ allowed
    """
    required: frozenset[str] = frozenset()
    unique: frozenset[str] = frozenset()
    updatable: frozenset[str] = frozenset()
    allowed: frozenset[str] = frozenset()

    def __post_init__(self):
        for name in ("required", "unique", "updatable", "allowed"):
            object.__setattr__(self, name, _names(getattr(self, name)))

        stray_required = self.required - self.allowed
        if stray_required:
            raise ColumnPolicyError(f"Required columns not allowed: {sorted(stray_required)}")

        stray_updatable = self.updatable - self.allowed
        if stray_updatable:
            raise ColumnPolicyError(f"Updatable columns not allowed: {sorted(stray_updatable)}")

    @classmethod
    def build(
        cls,
        required: Iterable[str] = (),
        unique: Iterable[str] = (),
        updatable: Iterable[str] = (),
        allowed: Iterable[str] | None = None,
    ) -> "ColumnPolicy":
        """allowed defaults to required ∪ updatable"""
        required, updatable = _names(required), _names(updatable)
        if allowed is None:
            allowed = required | updatable
        return cls(required=required, unique=_names(unique), updatable=updatable, allowed=_names(allowed))

    @classmethod
    def from_metadata(
        cls,
        metadata: EntityMetadata,
        unique: Iterable[str] = (),
        updatable: Iterable[str] | None = None,
        exclude: Iterable[str] = (),
    ) -> "ColumnPolicy":
        """
        Default policy straight from the schema: every writable column is
        allowed, the non-nullable ones are required, all allowed columns are
        updatable unless told otherwise.
        """
        excluded = _names(exclude)
        allowed = frozenset(metadata.writable_columns()) - excluded
        required = frozenset(metadata.non_nullable_columns()) - excluded
        return cls(
            required=required,
            unique=_names(unique),
            updatable=allowed if updatable is None else _names(updatable),
            allowed=allowed,
        )

    def drift(self, metadata: EntityMetadata, assigned: Iterable[str] = ()) -> dict[str, list[str]]:
        """
        Differences between this policy and the schema.

        unknown   - policy names the schema does not declare
        uncovered - non-nullable schema columns neither required nor
                    assigned by the controller itself
        """
        names = self.required | self.unique | self.updatable | self.allowed
        unknown = sorted(name for name in names if not metadata.is_known_column(name))
        uncovered = sorted(metadata.non_nullable_columns() - self.required - _names(assigned))
        return {"unknown": unknown, "uncovered": uncovered}
