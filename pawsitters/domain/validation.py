"""
Generic Validator - domain layer
================================
Checks a request payload against a ColumnPolicy and the entity metadata.

Every check reports instead of raising, so one pass collects every violation
and the client gets the complete picture in a single round trip. Only
ValidationResult.raise_if_errors() turns the collected result into an error.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Iterable, Mapping

from pawsitters.domain.column_policy import ColumnPolicy
from pawsitters.exceptions import ConflictError, InvalidDataError
from pawsitters.infrastructure.metadata import EntityMetadata

# (field, value, exclude_id) -> does another row already hold this value?
UniqueLookup = Callable[[str, Any, str | None], Awaitable[bool]]
# (field, value) -> value as it will be stored
Normalizer = Callable[[str, Any], Any]

TYPE_MESSAGES = {
    str: "{name} must be a string",
    int: "{name} must be an integer",
    float: "{name} must be a number",
    bool: "{name} must be true or false",
}


@dataclass
class ValidationResult:
    """Diagnostics for one request; error_count only ever grows"""
    error_count: int = 0
    invalid_data: dict[str, str] = field(default_factory=dict)
    missing_columns: list[str] = field(default_factory=list)
    existing_data: dict[str, Any] = field(default_factory=dict)
    invalid_columns: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def add_invalid(self, name: str, message: str) -> None:
        self.error_count += 1
        self.invalid_data[name] = message

    def add_missing(self, name: str) -> None:
        self.error_count += 1
        if name not in self.missing_columns:
            self.missing_columns.append(name)

    def add_existing(self, name: str, value: Any) -> None:
        self.error_count += 1
        self.existing_data[name] = value

    def add_invalid_column(self, name: str) -> None:
        self.error_count += 1
        if name not in self.invalid_columns:
            self.invalid_columns.append(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "errors": self.error_count,
            "existing_data": dict(self.existing_data),
            "invalid_data": dict(self.invalid_data),
            "missing_columns": list(self.missing_columns),
            "invalid_columns": list(self.invalid_columns),
        }

    def raise_if_errors(self, message: str) -> None:
        """
        InvalidDataError when anything is malformed; ConflictError when the
        payload is well-formed and only collides with existing rows.
        """
        if not self.has_errors:
            return
        only_conflicts = (
            self.existing_data
            and not self.invalid_data
            and not self.missing_columns
            and not self.invalid_columns
        )
        if only_conflicts:
            raise ConflictError(message, self.to_dict())
        raise InvalidDataError(message, self.to_dict())


def parse_date(value: Any) -> date | None:
    """YYYY-MM-DD, an ISO datetime string, a date or a datetime; None otherwise"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def sanitize(payload: Mapping[str, Any], names: Iterable[str]) -> dict[str, Any]:
    """New dict holding only the allow-listed keys; payload is left untouched"""
    names = set(names)
    return {key: value for key, value in payload.items() if key in names}


class EntityValidator:
    """
    Policy + metadata checks for one entity type.

    Usage:
        validator = EntityValidator(policy, metadata, lookup=repository.value_taken)
        result = ValidationResult()
        await validator.collect(payload, result)
        result.raise_if_errors("Couldn't create pet")
    """

    def __init__(
        self,
        policy: ColumnPolicy,
        metadata: EntityMetadata,
        lookup: UniqueLookup | None = None,
    ):
        self.policy = policy
        self.metadata = metadata
        self._lookup = lookup

    def check_required_present(self, payload: Mapping[str, Any]) -> set[str]:
        return {name for name in self.policy.required if name not in payload}

    def check_allowed_only(self, payload: Mapping[str, Any]) -> set[str]:
        return {key for key in payload if key not in self.policy.allowed}

    def check_updatable_only(self, payload: Mapping[str, Any]) -> set[str]:
        return {key for key in payload if key not in self.policy.updatable}

    def check_unknown(self, payload: Mapping[str, Any]) -> set[str]:
        """Keys that match no declared column or relation"""
        return {key for key in payload if not self.metadata.is_known_column(key)}

    def check_types(self, payload: Mapping[str, Any]) -> dict[str, str]:
        """
        Scalar values that don't match their column's type. Dates are parsed
        in prepare() and relation references are resolved there, so neither
        is checked here.
        """
        mismatched = {}
        for key, value in payload.items():
            expected = self.metadata.python_type(key)
            if value is None or expected not in TYPE_MESSAGES:
                continue
            if isinstance(value, bool) and expected is not bool:
                ok = False
            elif expected is float:
                ok = isinstance(value, (int, float))
            else:
                ok = isinstance(value, expected)
            if not ok:
                mismatched[key] = TYPE_MESSAGES[expected].format(name=key)
        return mismatched

    @staticmethod
    def check_protected(payload: Mapping[str, Any], protected: Iterable[str]) -> dict[str, str]:
        return {key: f"Can't manually set {key}" for key in protected if key in payload}

    async def check_unique_conflicts(
        self,
        payload: Mapping[str, Any],
        exclude_id: str | None = None,
        normalize: Normalizer | None = None,
    ) -> dict[str, Any]:
        """
        Unique fields whose value another row already holds.

        Lookups use the normalised value; the submitted value is reported.
        This is a fast path for error messages only: the store's UNIQUE
        constraints remain the arbiter.
        """
        if self._lookup is None or not self.policy.unique:
            return {}

        conflicts = {}
        for name in sorted(self.policy.unique):
            if name not in payload or payload[name] is None:
                continue
            value = normalize(name, payload[name]) if normalize else payload[name]
            if await self._lookup(name, value, exclude_id):
                conflicts[name] = payload[name]
        return conflicts

    @staticmethod
    def check_date_field(payload: Mapping[str, Any], name: str, result: ValidationResult) -> date | None:
        if name not in payload:
            return None
        parsed = parse_date(payload[name])
        if parsed is None:
            result.add_invalid(name, f"Invalid date format: {payload[name]}")
        return parsed

    async def collect(
        self,
        payload: Mapping[str, Any],
        result: ValidationResult,
        exclude_id: str | None = None,
        protected: Iterable[str] = (),
        updating: bool = False,
        normalize: Normalizer | None = None,
    ) -> ValidationResult:
        """Run every applicable policy check into result"""
        protected_fields = self.check_protected(payload, protected)
        for name, message in protected_fields.items():
            result.add_invalid(name, message)

        if not updating:
            for name in sorted(self.check_required_present(payload)):
                result.add_missing(name)

        rejected = (self.check_allowed_only(payload) | self.check_unknown(payload)) - set(protected_fields)
        for name in sorted(rejected):
            result.add_invalid_column(name)

        accepted = {key: value for key, value in payload.items() if key not in rejected and key not in protected_fields}
        for name, message in self.check_types(accepted).items():
            result.add_invalid(name, message)

        # a mistyped value never reaches a lookup query
        checkable = {key: value for key, value in accepted.items() if key not in result.invalid_data}
        conflicts = await self.check_unique_conflicts(checkable, exclude_id=exclude_id, normalize=normalize)
        for name, value in conflicts.items():
            result.add_existing(name, value)

        return result
