"""
Booking Controller
==================
Booking lifecycle between an owner and a sitter:

    PENDING --sitter--> ACCEPTED --payment (owner)--> ACTIVE --either--> COMPLETED
       |  `--sitter--> REJECTED       |
       `---owner----> CANCELLED <--owner

Creating or accepting a booking takes a row lock on the sitter before the
overlap read, so competing requests for one sitter serialise on the store.
"""
import uuid
from datetime import date
from typing import Any, Iterable, Mapping

from sqlalchemy import or_

from pawsitters.controllers.address import user_minimal
from pawsitters.controllers.base import BaseController
from pawsitters.domain.rules import (
    Rule,
    has_bank_account,
    has_fee,
    has_role,
    same_city_country,
    valid_interval,
)
from pawsitters.domain.validation import ValidationResult
from pawsitters.exceptions import ConflictError, ForbiddenError, InvalidDataError, NotFoundError
from pawsitters.logging_config import get_logger
from pawsitters.models import AccountStat, Booking, BookingStat, Payment, Pet, PetStatus, RoleName, User
from pawsitters.schemas import BookingView, PaymentView

logger = get_logger(__name__)

# statuses that hold the sitter's calendar
BLOCKING_STATUSES = (BookingStat.ACCEPTED.value, BookingStat.ACTIVE.value)
REMOVABLE_STATUSES = (BookingStat.PENDING.value, BookingStat.REJECTED.value, BookingStat.CANCELLED.value)

# (from, to) -> parties allowed to make the move
TRANSITIONS = {
    (BookingStat.PENDING.value, BookingStat.ACCEPTED.value): {"sitter"},
    (BookingStat.PENDING.value, BookingStat.REJECTED.value): {"sitter"},
    (BookingStat.PENDING.value, BookingStat.CANCELLED.value): {"owner"},
    (BookingStat.ACCEPTED.value, BookingStat.CANCELLED.value): {"owner"},
    (BookingStat.ACTIVE.value, BookingStat.COMPLETED.value): {"owner", "sitter"},
}


def booking_view(booking: Booking) -> BookingView:
    return BookingView(
        id=booking.id,
        status=booking.status,
        start_date=booking.start_date,
        end_date=booking.end_date,
        owner=user_minimal(booking.owner),
        sitter=user_minimal(booking.sitter),
        pets=[pet.name for pet in booking.pets],
        payment=PaymentView.model_validate(booking.payment) if booking.payment else None,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


class BookingController(BaseController[Booking]):
    model = Booking

    REQUIRED = ("sitter", "pets", "start_date", "end_date")
    PROTECTED = ("status", "owner", "payment")
    ASSIGNED = ("owner",)
    DATE_FIELDS = ("start_date", "end_date")

    VIEW_RELATIONS = ("owner", "owner.role", "sitter", "sitter.role", "pets", "payment")
    DELETE_RELATIONS = ("pets", "payment", "reviews")

    def rules(self) -> list[Rule]:
        return [
            has_role("owner", RoleName.OWNER),
            has_bank_account("owner"),
            has_role("sitter", RoleName.SITTER),
            has_bank_account("sitter"),
            has_fee("sitter"),
            same_city_country(),
            valid_interval(today=self.today),
        ]

    @property
    def users(self):
        return self.uow.repository(User)

    async def _active_user(self, user_id: str, relations: Iterable[str] = ("role", "address"), label: str = "User") -> User:
        user = await self.users.get(user_id, relations)
        if user is None or user.account_stat == AccountStat.DELETED.value:
            raise NotFoundError(f"{label} not found", {"not_found": user_id})
        return user

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def prepare(self, values: Mapping[str, Any], result: ValidationResult, entity: Booking | None = None) -> dict:
        prepared = await super().prepare(values, result, entity)

        if "sitter" in prepared:
            if isinstance(prepared["sitter"], str):
                prepared["sitter"] = await self._active_user(prepared["sitter"], label="Sitter")
            else:
                result.add_invalid("sitter", "Invalid sitter id")
                del prepared["sitter"]

        if "pets" in prepared:
            pet_ids = prepared.pop("pets")
            if not isinstance(pet_ids, list) or not pet_ids or not all(isinstance(i, str) for i in pet_ids):
                result.add_invalid("pets", "Must specify at least one pet")
            else:
                pets = await self.uow.repository(Pet).find_where(
                    Pet.id.in_(pet_ids), Pet.status == PetStatus.ACTIVE.value
                )
                missing = sorted(set(pet_ids) - {pet.id for pet in pets})
                if missing:
                    raise NotFoundError("Pet not found", {"not_found": missing})
                prepared["pets"] = pets
        return prepared

    async def user_booking_conflicts(
        self,
        user_id: str,
        role: str,
        statuses: Iterable[str],
        start: date,
        end: date,
        exclude_id: str | None = None,
    ) -> list[Booking]:
        """
        Bookings of user (as "owner" or "sitter") in one of statuses that
        overlap [start, end). end is the checkout day, so back-to-back
        bookings do not collide.
        """
        column = Booking.sitter_id if role == "sitter" else Booking.owner_id
        criteria = [
            column == user_id,
            Booking.status.in_(list(statuses)),
            Booking.start_date < end,
            Booking.end_date > start,
        ]
        if exclude_id is not None:
            criteria.append(Booking.id != exclude_id)
        return await self.repository.find_where(*criteria)

    async def _ensure_sitter_free(self, sitter_id: str, start: date, end: date, exclude_id: str | None = None) -> None:
        await self.users.get_for_update(sitter_id, ("role", "address"))
        conflicts = await self.user_booking_conflicts(sitter_id, "sitter", BLOCKING_STATUSES, start, end, exclude_id)
        if conflicts:
            raise ConflictError(
                "The sitter is not available for these dates",
                {"failed": "booking", "conflicts": [booking.id for booking in conflicts]}
            )

    async def before_persist(self, entity: Booking, result: ValidationResult, creating: bool) -> None:
        foreign = sorted(pet.id for pet in entity.pets if pet.user_id != entity.owner.id)
        if foreign:
            raise NotFoundError("Pet not found", {"not_found": foreign})
        if result.has_errors:
            return
        await self._ensure_sitter_free(entity.sitter.id, entity.start_date, entity.end_date)

    async def create_booking(self, owner_id: str, payload) -> BookingView:
        owner = await self._active_user(owner_id)
        if owner.role.role != RoleName.OWNER.value:
            raise ForbiddenError(
                "Only users with the role 'OWNER' can book a sitter",
                {"failed": "create", "reason": "Required role missing"}
            )
        return booking_view(await self.create(payload, assigned={"owner": owner}))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_bookings(self, user_id: str) -> list[BookingView]:
        await self._active_user(user_id)
        bookings = await self.repository.find_where(
            or_(Booking.owner_id == user_id, Booking.sitter_id == user_id),
            relations=self.VIEW_RELATIONS,
        )
        return [booking_view(booking) for booking in bookings]

    async def get_booking(self, user_id: str, booking_id: str, relations: Iterable[str] | None = None) -> Booking:
        """Booking as seen by one of its parties; NotFound for anyone else"""
        booking = await self.repository.find_one_where(
            Booking.id == booking_id,
            or_(Booking.owner_id == user_id, Booking.sitter_id == user_id),
            relations=relations if relations is not None else self.VIEW_RELATIONS,
        )
        if booking is None:
            raise NotFoundError("Booking not found", {"not_found": booking_id})
        return booking

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def edit_booking(self, user_id: str, booking_id: str, status: str) -> BookingView:
        """
        Raises:
            InvalidDataError: unknown status
            ConflictError: transition not in the table, or the sitter is taken
            ForbiddenError: the other party's move
        """
        booking = await self.get_booking(user_id, booking_id)
        target = status.strip().upper() if isinstance(status, str) else status
        if target not in {stat.value for stat in BookingStat}:
            raise InvalidDataError(
                "Couldn't update booking",
                {"invalid_data": {"status": f"Invalid status {status}"}}
            )

        actors = TRANSITIONS.get((booking.status, target))
        if actors is None:
            reason = (
                "A booking only becomes ACTIVE once it is paid"
                if target == BookingStat.ACTIVE.value
                else f"Can't change status from {booking.status} to {target}"
            )
            raise ConflictError("Couldn't update booking", {"failed": "update", "reason": reason})

        actor = "owner" if booking.owner_id == user_id else "sitter"
        if actor not in actors:
            raise ForbiddenError(
                "Couldn't update booking",
                {"failed": "update", "reason": f"Only the {' or '.join(sorted(actors))} can set status {target}"}
            )

        if target == BookingStat.ACCEPTED.value:
            await self._ensure_sitter_free(booking.sitter_id, booking.start_date, booking.end_date, booking.id)

        previous = booking.status
        async with self.uow.savepoint():
            booking.status = target
            await self.repository.save(booking)
        logger.info("booking_status_changed", booking_id=booking.id, from_status=previous, to_status=target)
        return booking_view(await self.reload(booking))

    async def add_payment(self, user_id: str, booking_id: str) -> BookingView:
        """Owner pays an ACCEPTED booking: fee x nights, booking turns ACTIVE"""
        booking = await self.get_booking(user_id, booking_id)
        if booking.owner_id != user_id:
            raise ForbiddenError(
                "Couldn't add payment",
                {"failed": "payment", "reason": "Only the owner can pay for a booking"}
            )
        if booking.payment is not None:
            raise ConflictError("Couldn't add payment", {"failed": "payment", "reason": "Booking already paid"})
        if booking.status != BookingStat.ACCEPTED.value:
            raise ConflictError(
                "Couldn't add payment",
                {"failed": "payment", "reason": f"Booking must be ACCEPTED, not {booking.status}"}
            )

        sitter = await self.users.get(booking.sitter_id)
        if sitter.fee is None:
            raise ConflictError("Couldn't add payment", {"failed": "payment", "reason": "Sitter has no fee"})

        nights = (booking.end_date - booking.start_date).days
        async with self.uow.savepoint():
            payment = Payment(
                amount=round(sitter.fee * nights, 2),
                transaction_id=str(uuid.uuid4()),
                booking=booking,
            )
            booking.status = BookingStat.ACTIVE.value
            await self.uow.repository(Payment).create(payment)
        logger.info("booking_paid", booking_id=booking.id, amount=payment.amount, nights=nights)
        return booking_view(await self.reload(booking))

    async def delete_booking(self, user_id: str, booking_id: str) -> None:
        booking = await self.get_booking(user_id, booking_id, relations=("payment",))
        if booking.status not in REMOVABLE_STATUSES or booking.payment is not None:
            raise ConflictError(
                "Couldn't delete booking",
                {"failed": "delete", "reason": f"Bookings with status {booking.status} can't be deleted"}
            )
        await self.delete(booking.id)
