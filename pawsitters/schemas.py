"""
Outward-facing views of the entities.

Controllers build these from loaded entities; only attributes that were
eagerly loaded are read, so a view never triggers IO.
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UserMinimal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    fname: str
    lname: str
    role: Optional[str] = None


class AddressView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    building_num: Optional[int] = None
    street: str
    apartment_num: Optional[int] = None
    floor: Optional[int] = None
    city: str
    country: str
    postal_code: str
    user: Optional[UserMinimal] = None


class CertificationView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    issue_date: date
    organization: str
    user: Optional[UserMinimal] = None


class UserView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    fname: str
    lname: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: str
    birthday: date
    account_stat: str
    role: str
    created_at: datetime
    updated_at: datetime

    # sitters only
    fee: Optional[float] = None
    certifications: Optional[List[CertificationView]] = None
    # owners and sitters only
    rating: Optional[float] = None
    address: Optional[AddressView] = None


class RoleView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str


class BreedView(BaseModel):
    id: str
    name: str
    species: Optional[str] = None
    pets: Optional[int] = None  # number of pets of this breed


class SpeciesView(BaseModel):
    id: str
    name: str
    breeds: List[BreedView] = []


class PetView(BaseModel):
    id: str
    created_at: datetime
    updated_at: datetime
    name: str
    birthdate: date
    size: str
    gender: str
    temperament: str
    description: str
    status: str
    image_path: Optional[str] = None
    owner: UserMinimal
    breed: BreedView


class PaymentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: float
    date: datetime
    transaction_id: str


class ReviewView(BaseModel):
    id: str
    review: str
    rating: int
    booking_id: str
    reviewer: UserMinimal
    reviewed: UserMinimal
    created_at: datetime


class BookingView(BaseModel):
    id: str
    status: str
    start_date: date
    end_date: date
    owner: UserMinimal
    sitter: UserMinimal
    pets: List[str]  # pet names
    payment: Optional[PaymentView] = None
    created_at: datetime
    updated_at: datetime
