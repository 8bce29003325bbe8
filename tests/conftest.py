"""
Pytest Configuration and Fixtures

Every test gets its own SQLite file database (aiosqlite) under tmp_path, so
two sessions can be open at once and commits are real.
"""
import itertools
from datetime import date

import pytest
import pytest_asyncio

from helpers import TODAY, days
from pawsitters.config import Settings
from pawsitters.database import Base, close_db_connections, create_engine, create_session_factory, init_models
from pawsitters.infrastructure.metadata import MetadataRegistry
from pawsitters.infrastructure.uow import UnitOfWork
from pawsitters.models import (
    Address,
    Booking,
    BookingStat,
    Breed,
    Pet,
    Review,
    Role,
    RoleName,
    Species,
    User,
)


@pytest.fixture
def today():
    return lambda: TODAY


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'pawsitters.db'}")


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine(settings)
    await init_models(engine)
    yield engine
    await close_db_connections(engine)


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture(scope="session")
def registry() -> MetadataRegistry:
    return MetadataRegistry.from_base(Base)


@pytest.fixture
def uow_factory(session_factory):
    return lambda: UnitOfWork(session_factory)


@pytest_asyncio.fixture
async def seeded(session_factory) -> dict:
    """Roles OWNER/SITTER/ADMIN, species DOG with breeds labrador and poodle"""
    async with UnitOfWork(session_factory) as uow:
        roles = {name.value: Role(role=name.value) for name in RoleName}
        uow.session.add_all(roles.values())
        dog = Species(name="DOG")
        labrador = Breed(name="labrador", species=dog)
        poodle = Breed(name="poodle", species=dog)
        uow.session.add_all([dog, labrador, poodle])
        await uow.session.flush()
        return {
            "roles": {name: role.id for name, role in roles.items()},
            "species_id": dog.id,
            "breeds": {"labrador": labrador.id, "poodle": poodle.id},
        }


class Factory:
    """Direct ORM inserts for test setup; every helper commits and returns ids"""

    def __init__(self, session_factory, seeded: dict):
        self.session_factory = session_factory
        self.seeded = seeded
        self._counter = itertools.count(1)

    async def user(
        self,
        role: str = "OWNER",
        city: str | None = "accra",
        country: str = "GHANA",
        bank: bool = True,
        fee: float | None = None,
        **fields,
    ) -> str:
        n = next(self._counter)
        values = dict(
            fname=f"user{n}",
            lname="tester",
            email=f"user{n}@example.com",
            password="Secret#123",
            gender="F",
            birthday=date(1990, 1, 1),
            role_id=self.seeded["roles"][role],
            bank_account_number=f"GH{n:032d}" if bank else None,
            fee=fee,
        )
        values.update(fields)
        async with UnitOfWork(self.session_factory) as uow:
            user = User(**values)
            if city is not None:
                user.address = Address(street="oxford street", city=city, country=country, postal_code="00233")
            uow.session.add(user)
            await uow.session.flush()
            return user.id

    async def sitter(self, fee: float = 20.0, **fields) -> str:
        return await self.user(role="SITTER", fee=fee, **fields)

    async def pet(self, owner_id: str, name: str = "rex", breed: str = "labrador", **fields) -> str:
        values = dict(
            name=name,
            birthdate=date(2020, 1, 1),
            size="M",
            gender="M",
            description="A calm dog who loves long walks on the beach.",
            user_id=owner_id,
            breed_id=self.seeded["breeds"][breed],
        )
        values.update(fields)
        async with UnitOfWork(self.session_factory) as uow:
            pet = Pet(**values)
            uow.session.add(pet)
            await uow.session.flush()
            return pet.id

    async def booking(
        self,
        owner_id: str,
        sitter_id: str,
        pet_ids: list[str],
        start: date | None = None,
        end: date | None = None,
        status: str = BookingStat.PENDING.value,
    ) -> str:
        async with UnitOfWork(self.session_factory) as uow:
            pets = await uow.repository(Pet).find_where(Pet.id.in_(pet_ids))
            booking = Booking(
                owner_id=owner_id,
                sitter_id=sitter_id,
                pets=pets,
                start_date=start or days(5),
                end_date=end or days(8),
                status=status,
            )
            uow.session.add(booking)
            await uow.session.flush()
            return booking.id

    async def review(self, booking_id: str, reviewer_id: str, reviewed_id: str, rating: int) -> str:
        async with UnitOfWork(self.session_factory) as uow:
            review = Review(
                booking_id=booking_id,
                reviewer_id=reviewer_id,
                reviewed_id=reviewed_id,
                rating=rating,
                review="Lovely experience, would absolutely book again.",
            )
            uow.session.add(review)
            await uow.session.flush()
            return review.id


@pytest.fixture
def factory(session_factory, seeded) -> Factory:
    return Factory(session_factory, seeded)
