from typing import Any, Mapping

from pawsitters.controllers.address import user_minimal
from pawsitters.controllers.base import BaseController
from pawsitters.controllers.booking import BookingController
from pawsitters.domain.rules import Rule, int_range, min_length, not_empty
from pawsitters.domain.validation import ValidationResult
from pawsitters.exceptions import ConflictError, ForbiddenError, NotFoundError
from pawsitters.models import BookingStat, Review
from pawsitters.schemas import ReviewView

BOOKING_RELATIONS = ("owner", "sitter", "reviews")


def review_view(review: Review) -> ReviewView:
    return ReviewView(
        id=review.id,
        review=review.review,
        rating=review.rating,
        booking_id=review.booking_id,
        reviewer=user_minimal(review.reviewer),
        reviewed=user_minimal(review.reviewed),
        created_at=review.created_at,
    )


class ReviewController(BaseController[Review]):
    """Owner and sitter review each other once a booking is COMPLETED"""
    model = Review

    REQUIRED = ("reviewed", "review", "rating")
    PROTECTED = ("reviewer", "booking")
    ASSIGNED = ("reviewer", "booking")
    VIEW_RELATIONS = ("reviewer", "reviewer.role", "reviewed", "reviewed.role")

    def rules(self) -> list[Rule]:
        return [
            not_empty("review"),
            min_length("review", 30),
            int_range("rating", 1, 5),
        ]

    async def prepare(self, values: Mapping[str, Any], result: ValidationResult, entity: Review | None = None) -> dict:
        prepared = await super().prepare(values, result, entity)
        # resolved against the booking's parties in before_persist
        if "reviewed" in prepared:
            prepared["reviewed_id"] = prepared.pop("reviewed")
        return prepared

    async def before_persist(self, entity: Review, result: ValidationResult, creating: bool) -> None:
        booking = entity.booking
        if entity.reviewed_id not in (booking.owner_id, booking.sitter_id):
            raise NotFoundError(
                "User not found",
                {"failed": "create", "reason": "'reviewed' id neither belongs to the owner nor the sitter"}
            )
        if entity.reviewed_id == entity.reviewer.id:
            raise ForbiddenError(
                "Couldn't create review",
                {"failed": "create", "reason": "A user cannot review themselves"}
            )

    async def create_review(self, reviewer_id: str, booking_id: str, payload) -> ReviewView:
        """
        Raises:
            NotFoundError: booking not visible to the reviewer, or reviewed is not a party
            ConflictError: booking not COMPLETED, or already reviewed by this user
            ForbiddenError: self-review
        """
        bookings = BookingController(self.uow, self.registry, today=self.today)
        booking = await bookings.get_booking(reviewer_id, booking_id, relations=BOOKING_RELATIONS)

        if booking.status != BookingStat.COMPLETED.value:
            raise ConflictError(
                "Couldn't create review",
                {"failed": "create", "reason": "A sitter/owner can only be reviewed if the booking has been fulfilled"}
            )
        if any(review.reviewer_id == reviewer_id for review in booking.reviews):
            raise ConflictError(
                "Couldn't create review",
                {"failed": "create", "reason": "This user has already submitted a review for this booking"}
            )

        reviewer = booking.owner if booking.owner_id == reviewer_id else booking.sitter
        review = await self.create(payload, assigned={"reviewer": reviewer, "booking": booking})
        return review_view(review)

    async def get_reviews(self, user_id: str, booking_id: str) -> list[ReviewView]:
        bookings = BookingController(self.uow, self.registry, today=self.today)
        booking = await bookings.get_booking(user_id, booking_id, relations=())
        reviews = await self.repository.find_where(Review.booking_id == booking.id, relations=self.VIEW_RELATIONS)
        return [review_view(review) for review in reviews]
