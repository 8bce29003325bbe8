"""
Entity rules - property-level constraints.

Each Rule reads one attribute of a built (not yet persisted) entity and
returns an error message or None. Resource controllers compose them in an
ordered list; run_rules() collects every failure into a ValidationResult.
Only the first failing rule per field is reported.
"""
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Iterable

from pawsitters.domain.validation import ValidationResult
from pawsitters.models import RoleName

Today = Callable[[], date]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^\w\s]).{8,}$")
# Ghana: +233 / 0 then 9 digits starting 2, 3 or 5; Morocco: +212 / 0 then 9 digits starting 5-7
PHONE_RES = (
    re.compile(r"^(?:\+233|00233|0)[235]\d{8}$"),
    re.compile(r"^(?:\+212|00212|0)[5-7]\d{8}$"),
)


@dataclass(frozen=True)
class Rule:
    field: str
    check: Callable[[Any], str | None]

    def __call__(self, entity) -> str | None:
        return self.check(entity)


def run_rules(entity, rules: Iterable[Rule], result: ValidationResult) -> ValidationResult:
    for rule in rules:
        if rule.field in result.invalid_data:
            continue
        message = rule(entity)
        if message:
            result.add_invalid(rule.field, message)
    return result


def _value(entity, name: str):
    return getattr(entity, name, None)


def not_empty(name: str, message: str | None = None) -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return message or f"{name} can't be empty"
        return None
    return Rule(name, check)


def min_length(name: str, length: int, message: str | None = None) -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if not isinstance(value, str) or len(value) < length:
            return message or f"{name} must be at least {length} characters long"
        return None
    return Rule(name, check)


def exact_length(name: str, length: int, message: str = "Invalid length") -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if not isinstance(value, str) or len(value) != length:
            return message
        return None
    return Rule(name, check)


def one_of(name: str, choices: Iterable[str], message: str | None = None) -> Rule:
    choices = tuple(choices)

    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if value not in choices:
            return message or f"{name} must be one of {', '.join(choices)}"
        return None
    return Rule(name, check)


def int_range(name: str, low: int, high: int) -> Rule:
    def check(entity):
        value = _value(entity, name)
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{name} must be an integer"
        if not low <= value <= high:
            return f"{name} must be between {low} and {high}"
        return None
    return Rule(name, check)


def is_email(name: str = "email") -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if not isinstance(value, str) or not EMAIL_RE.match(value):
            return "Invalid email"
        return None
    return Rule(name, check)


def strong_password(name: str = "password") -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if not isinstance(value, str) or not PASSWORD_RE.match(value):
            return (
                "Password must be at least 8 characters long, contain lower and uppercase "
                "letters, a special character and a number"
            )
        return None
    return Rule(name, check)


def valid_phone(name: str = "phone") -> Rule:
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if isinstance(value, str):
            compact = re.sub(r"[\s\-()]", "", value)
            if any(pattern.match(compact) for pattern in PHONE_RES):
                return None
        return "The phone number must be a valid Ghanaian or Moroccan number"
    return Rule(name, check)


def age_on(birthday: date, today: date) -> int:
    age = today.year - birthday.year
    if (today.month, today.day) < (birthday.month, birthday.day):
        age -= 1
    return age


def is_adult(name: str = "birthday", today: Today = date.today) -> Rule:
    def check(entity):
        value = _value(entity, name)
        if not isinstance(value, date):
            return "Invalid birthdate"
        if age_on(value, today()) < 18:
            return "User must be an adult"
        return None
    return Rule(name, check)


def not_in_future(name: str, today: Today = date.today) -> Rule:
    def check(entity):
        value = _value(entity, name)
        if not isinstance(value, date):
            return f"Invalid {name}"
        if value > today():
            return f"{name} can't be in the future"
        return None
    return Rule(name, check)


def sitter_fee(name: str = "fee") -> Rule:
    """A fee is a non-negative number and only sitters may carry one"""
    def check(entity):
        value = _value(entity, name)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "Fee must be a number"
        if value < 0:
            return "Fee can't be negative"
        role = _value(entity, "role")
        if role is None or role.role != RoleName.SITTER.value:
            return "Fee can only be provided if the user has the role Sitter."
        return None
    return Rule(name, check)


def valid_interval(start: str = "start_date", end: str = "end_date", today: Today = date.today) -> Rule:
    """start at least tomorrow, end at least one day after start"""
    def check(entity):
        start_date, end_date = _value(entity, start), _value(entity, end)
        if not isinstance(start_date, date) or not isinstance(end_date, date):
            return "Must specify a valid start and end date"
        if start_date < today() + timedelta(days=1) or end_date < start_date + timedelta(days=1):
            return (
                "Date interval must be at least one day long and the start date "
                "must be at least the day after today."
            )
        return None
    return Rule(end, check)


# -----------------------------------------------------------------------------
# Booking parties
# -----------------------------------------------------------------------------

def has_role(name: str, role: RoleName) -> Rule:
    def check(entity):
        user = _value(entity, name)
        if user is None or user.role is None or user.role.role != role.value:
            return f"Must have role '{role.value}'"
        return None
    return Rule(name, check)


def has_bank_account(name: str) -> Rule:
    def check(entity):
        user = _value(entity, name)
        if user is None or not user.bank_account_number:
            return "Must have a bank account number"
        return None
    return Rule(name, check)


def has_fee(name: str = "sitter") -> Rule:
    def check(entity):
        user = _value(entity, name)
        if user is None or user.fee is None:
            return "Sitter must have a fee specified"
        return None
    return Rule(name, check)


def same_city_country(owner: str = "owner", sitter: str = "sitter") -> Rule:
    def check(entity):
        first, second = _value(entity, owner), _value(entity, sitter)
        first_address = first.address if first is not None else None
        second_address = second.address if second is not None else None
        if (
            first_address is None
            or second_address is None
            or first_address.city != second_address.city
            or first_address.country != second_address.country
        ):
            return "Sitter and owner must have valid addresses and be in the same country/city"
        return None
    return Rule(sitter, check)
