"""
User Controller
===============
Accounts of owners, sitters and admins.

Deleting a user without history (no bookings either way, no reviews either
way) removes the row together with pets, address and certifications.
A user with history is anonymised instead: PII nulled, account DELETED, pets
DELETED, open bookings cancelled.
"""
from types import SimpleNamespace
from typing import Any, Iterable, Mapping

from sqlalchemy import or_

from pawsitters.controllers.address import address_view
from pawsitters.controllers.base import BaseController
from pawsitters.controllers.booking import BLOCKING_STATUSES, BookingController
from pawsitters.controllers.certification import certification_view
from pawsitters.controllers.role import RoleController
from pawsitters.domain.rules import (
    Rule,
    exact_length,
    is_adult,
    is_email,
    not_empty,
    one_of,
    run_rules,
    sitter_fee,
    strong_password,
    valid_interval,
    valid_phone,
)
from pawsitters.domain.validation import ValidationResult
from pawsitters.exceptions import InvalidDataError, NotFoundError
from pawsitters.logging_config import get_logger
from pawsitters.models import (
    AccountStat,
    Address,
    Booking,
    BookingStat,
    Gender,
    PetStatus,
    Review,
    Role,
    RoleName,
    User,
)
from pawsitters.schemas import UserView

logger = get_logger(__name__)

ANONYMOUS_NAME = "deleted user"
OPEN_STATUSES = (BookingStat.PENDING.value, BookingStat.ACCEPTED.value)


def _rating(user: User) -> float:
    ratings = [review.rating for review in user.reviews_received]
    return sum(ratings) / len(ratings) if ratings else 0


def user_view(user: User) -> UserView:
    """Role-gated view: rating for owners and sitters, fee and certifications for sitters"""
    role = user.role.role
    view = UserView(
        id=user.id,
        fname=user.fname,
        lname=user.lname,
        email=user.email,
        phone=user.phone,
        gender=user.gender,
        birthday=user.birthday,
        account_stat=user.account_stat,
        role=role,
        created_at=user.created_at,
        updated_at=user.updated_at,
        address=address_view(user.address) if user.address else None,
    )
    if role != RoleName.ADMIN.value:
        view.rating = _rating(user)
    if role == RoleName.SITTER.value:
        view.fee = user.fee
        view.certifications = [certification_view(cert) for cert in user.certifications]
    return view


def relations_for(role: str | None) -> tuple[str, ...]:
    if role is not None and role.upper() == RoleName.ADMIN.value:
        return ("role", "address")
    return ("role", "address", "reviews_received", "certifications")


class UserController(BaseController[User]):
    model = User

    REQUIRED = ("fname", "lname", "email", "password", "gender", "birthday", "role")
    UNIQUE = ("email", "phone", "bank_account_number")
    UPDATABLE = ("email", "phone", "bank_account_number", "password", "fee")
    ALLOWED = REQUIRED + ("phone", "bank_account_number", "fee")
    PROTECTED = ("account_stat",)
    DATE_FIELDS = ("birthday",)

    VIEW_RELATIONS = relations_for(None)
    UPDATE_RELATIONS = ("role",)
    DELETE_RELATIONS = ("role", "pets", "pets.bookings", "address", "certifications")

    def normalize(self, name: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if name in ("fname", "lname", "email"):
            return value.strip().lower()
        if name == "gender":
            return value.strip().upper()
        return value

    def rules(self) -> list[Rule]:
        return [
            not_empty("fname", "First name required"),
            not_empty("lname", "Last name required"),
            is_email("email"),
            strong_password("password"),
            one_of("gender", [gender.value for gender in Gender], "Gender can either be 'F' (Female) or 'M' (Male)"),
            is_adult("birthday", today=self.today),
            valid_phone("phone"),
            sitter_fee("fee"),
            exact_length("bank_account_number", 34),
        ]

    async def prepare(self, values: Mapping[str, Any], result: ValidationResult, entity: User | None = None) -> dict:
        prepared = await super().prepare(values, result, entity)
        if "role" in prepared:
            name = prepared.pop("role")
            role = await RoleController(self.uow, self.registry).get_by_name(name) if isinstance(name, str) else None
            if role is None:
                result.add_invalid("role", f"Invalid role {name}")
            else:
                prepared["role"] = role
        return prepared

    async def _active(self, user_id: str, relations: Iterable[str] | None = None) -> User:
        user = await self.get_by_id(user_id, relations)
        if user.account_stat == AccountStat.DELETED.value:
            raise NotFoundError("User not found", {"not_found": user_id})
        return user

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_users(self, params: Mapping[str, Any] | None = None) -> list[UserView]:
        """
        params:
            deleted: "true" -> deleted accounts only, "false" -> active only
            role: owner | sitter | admin
        """
        params = params or {}
        criteria = []
        if "deleted" in params:
            deleted = str(params["deleted"]).lower() == "true"
            criteria.append(User.account_stat == (AccountStat.DELETED if deleted else AccountStat.ACTIVE).value)

        role = params.get("role")
        if role is not None:
            role = str(role).upper()
            if role not in {name.value for name in RoleName}:
                raise InvalidDataError(
                    "Couldn't get users",
                    {"invalid_data": {"role": f"Invalid role {params['role']}"}}
                )
            criteria.append(User.role.has(Role.role == role))

        users = await self.repository.find_where(*criteria, relations=relations_for(role))
        return [user_view(user) for user in users]

    async def get_user(self, user_id: str) -> UserView:
        user = await self.get_by_id(user_id, ("role",))
        return user_view(await self.get_by_id(user_id, relations_for(user.role.role)))

    async def get_available_sitters(self, params: Mapping[str, Any]) -> list[UserView]:
        """Active sitters in city/country with no ACCEPTED or ACTIVE booking overlapping the range"""
        result = ValidationResult()
        for name in ("start_date", "end_date", "city", "country"):
            if name not in params:
                result.add_missing(name)
        start = self.validator.check_date_field(params, "start_date", result)
        end = self.validator.check_date_field(params, "end_date", result)
        if start is not None and end is not None:
            run_rules(SimpleNamespace(start_date=start, end_date=end), [valid_interval(today=self.today)], result)
        result.raise_if_errors("Invalid search parameters")

        sitters = await self.repository.find_where(
            User.account_stat == AccountStat.ACTIVE.value,
            User.role.has(Role.role == RoleName.SITTER.value),
            User.address.has(
                (Address.city == str(params["city"]).strip().lower())
                & (Address.country == str(params["country"]).strip().upper())
            ),
            relations=relations_for(RoleName.SITTER.value),
        )

        bookings = BookingController(self.uow, self.registry, today=self.today)
        available = []
        for sitter in sitters:
            if not await bookings.user_booking_conflicts(sitter.id, "sitter", BLOCKING_STATUSES, start, end):
                available.append(sitter)
        return [user_view(sitter) for sitter in available]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_user(self, payload) -> UserView:
        return user_view(await self.create(payload))

    async def update(self, entity_id: str, payload: Mapping[str, Any] | None) -> User:
        await self._active(entity_id)
        return await super().update(entity_id, payload)

    async def edit_user(self, user_id: str, payload) -> UserView:
        return user_view(await self.update(user_id, payload))

    async def _has_history(self, user: User) -> bool:
        bookings = self.uow.repository(Booking)
        reviews = self.uow.repository(Review)
        return (
            await bookings.exists_where(or_(Booking.owner_id == user.id, Booking.sitter_id == user.id))
            or await reviews.exists_where(or_(Review.reviewer_id == user.id, Review.reviewed_id == user.id))
        )

    async def remove(self, entity: User) -> None:
        if entity.account_stat == AccountStat.DELETED.value:
            raise NotFoundError("User not found", {"not_found": entity.id})

        if not await self._has_history(entity):
            for pet in list(entity.pets):
                await self.uow.session.delete(pet)
            await super().remove(entity)
            return

        entity.fname = ANONYMOUS_NAME
        entity.lname = ""
        entity.email = None
        entity.phone = None
        entity.password = None
        entity.bank_account_number = None
        entity.fee = None
        entity.account_stat = AccountStat.DELETED.value
        entity.address = None
        for pet in entity.pets:
            pet.status = PetStatus.DELETED.value
            pet.image_path = None

        open_bookings = await self.uow.repository(Booking).find_where(
            or_(Booking.owner_id == entity.id, Booking.sitter_id == entity.id),
            Booking.status.in_(OPEN_STATUSES),
        )
        for booking in open_bookings:
            booking.status = BookingStat.CANCELLED.value

        await self.repository.save(entity)
        logger.info(
            "entity_soft_deleted",
            entity=self.entity_name,
            entity_id=entity.id,
            pets=len(entity.pets),
            cancelled_bookings=len(open_bookings),
        )
