from datetime import datetime, timezone
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Float, Integer, Table, UniqueConstraint
from sqlalchemy.orm import relationship

from pawsitters.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enumerations (stored as plain strings)
# =============================================================================

class RoleName(str, enum.Enum):
    OWNER = "OWNER"
    SITTER = "SITTER"
    ADMIN = "ADMIN"


class AccountStat(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class Gender(str, enum.Enum):
    F = "F"
    M = "M"


class Country(str, enum.Enum):
    GHANA = "GHANA"
    MOROCCO = "MOROCCO"


class SpeciesName(str, enum.Enum):
    BIRD = "BIRD"
    CAT = "CAT"
    DOG = "DOG"


class PetSize(str, enum.Enum):
    S = "S"
    M = "M"
    L = "L"


class Temperament(str, enum.Enum):
    FRIENDLY = "FRIENDLY"
    AGGRESSIVE = "AGGRESSIVE"


class PetStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class BookingStat(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class EntityMixin:
    """id + automatic timestamps shared by every entity"""
    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, info={"timestamp": True})
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, info={"timestamp": True}
    )


# =============================================================================
# Users
# =============================================================================

class Role(EntityMixin, Base):
    __tablename__ = "roles"
    role = Column(String(20), nullable=False, unique=True)  # OWNER, SITTER, ADMIN

    users = relationship("User", back_populates="role")


class User(EntityMixin, Base):
    __tablename__ = "users"

    fname = Column(String(50), nullable=False)
    lname = Column(String(50), nullable=False)

    # email and password are nulled when an account with history is deleted
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(20), nullable=True, unique=True)
    password = Column(String(255), nullable=True)

    gender = Column(String(1), nullable=False)
    birthday = Column(Date, nullable=False)
    fee = Column(Float, nullable=True)  # sitters only
    bank_account_number = Column(String(34), nullable=True, unique=True)
    account_stat = Column(String(10), nullable=False, default=AccountStat.ACTIVE.value)

    role_id = Column(String(36), ForeignKey("roles.id"), nullable=False)

    # Relationships
    role = relationship("Role", back_populates="users")
    address = relationship("Address", back_populates="user", uselist=False, cascade="all, delete-orphan")
    certifications = relationship("Certification", back_populates="user", cascade="all, delete-orphan")
    pets = relationship("Pet", back_populates="user")
    reviews_received = relationship("Review", foreign_keys="Review.reviewed_id", back_populates="reviewed")
    reviews_given = relationship("Review", foreign_keys="Review.reviewer_id", back_populates="reviewer")
    bookings = relationship("Booking", foreign_keys="Booking.owner_id", back_populates="owner")
    sittings = relationship("Booking", foreign_keys="Booking.sitter_id", back_populates="sitter")


class Address(EntityMixin, Base):
    __tablename__ = "addresses"

    building_num = Column(Integer, nullable=True)
    street = Column(String(255), nullable=False)
    apartment_num = Column(Integer, nullable=True)
    floor = Column(Integer, nullable=True)
    city = Column(String(200), nullable=False)
    country = Column(String(10), nullable=False)  # GHANA, MOROCCO
    postal_code = Column(String(20), nullable=False)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    user = relationship("User", back_populates="address")


class Certification(EntityMixin, Base):
    __tablename__ = "certifications"

    title = Column(String(255), nullable=False)
    issue_date = Column(Date, nullable=False)
    organization = Column(String(255), nullable=False)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    user = relationship("User", back_populates="certifications")


# =============================================================================
# Pets
# =============================================================================

class Species(EntityMixin, Base):
    __tablename__ = "species"
    name = Column(String(20), nullable=False, unique=True)  # BIRD, CAT, DOG

    breeds = relationship("Breed", back_populates="species")


class Breed(EntityMixin, Base):
    __tablename__ = "breeds"
    name = Column(String(45), nullable=False, unique=True)

    species_id = Column(String(36), ForeignKey("species.id"), nullable=False)
    species = relationship("Species", back_populates="breeds")
    pets = relationship("Pet", back_populates="breed")


pet_bookings = Table(
    "pet_bookings",
    Base.metadata,
    Column("booking_id", String(36), ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
    Column("pet_id", String(36), ForeignKey("pets.id", ondelete="CASCADE"), primary_key=True),
)


class Pet(EntityMixin, Base):
    __tablename__ = "pets"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_pets_user_name"),)

    name = Column(String(50), nullable=False)
    birthdate = Column(Date, nullable=False)
    size = Column(String(1), nullable=False)  # S, M, L
    gender = Column(String(1), nullable=False)  # F, M
    temperament = Column(String(10), nullable=False, default=Temperament.FRIENDLY.value)
    description = Column(String(1024), nullable=False)
    status = Column(String(10), nullable=False, default=PetStatus.ACTIVE.value)
    image_path = Column(String(255), nullable=True)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    breed_id = Column(String(36), ForeignKey("breeds.id"), nullable=False)

    # Relationships
    user = relationship("User", back_populates="pets")
    breed = relationship("Breed", back_populates="pets")
    bookings = relationship("Booking", secondary=pet_bookings, back_populates="pets")


# =============================================================================
# Bookings
# =============================================================================

class Booking(EntityMixin, Base):
    __tablename__ = "bookings"

    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    sitter_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(10), nullable=False, default=BookingStat.PENDING.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id], back_populates="bookings")
    sitter = relationship("User", foreign_keys=[sitter_id], back_populates="sittings")
    pets = relationship("Pet", secondary=pet_bookings, back_populates="bookings")
    payment = relationship("Payment", back_populates="booking", uselist=False, cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="booking", cascade="all, delete-orphan")


class Payment(EntityMixin, Base):
    __tablename__ = "payments"

    amount = Column(Float, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    transaction_id = Column(String(45), nullable=False, unique=True)

    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, unique=True)
    booking = relationship("Booking", back_populates="payment")


class Review(EntityMixin, Base):
    __tablename__ = "reviews"

    review = Column(String(255), nullable=False)
    rating = Column(Integer, nullable=False, default=1)  # 1..5

    reviewed_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    reviewer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False)

    # Relationships
    reviewed = relationship("User", foreign_keys=[reviewed_id], back_populates="reviews_received")
    reviewer = relationship("User", foreign_keys=[reviewer_id], back_populates="reviews_given")
    booking = relationship("Booking", back_populates="reviews")
