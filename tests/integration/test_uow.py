"""
UNIT OF WORK TESTS
==================

Transaction atomicity: commit on clean exit, rollback on any error, and
IntegrityError translation at flush time.
"""
import pytest
from sqlalchemy import func, select

from pawsitters.controllers import BreedController, SpeciesController
from pawsitters.exceptions import ConflictError, InvalidDataError
from pawsitters.infrastructure.uow import UnitOfWork
from pawsitters.models import Breed, Species

pytestmark = pytest.mark.asyncio(loop_scope="function")


class TestCommitAndRollback:

    async def test_commit_on_success(self, uow_factory, session_factory):
        """
        SCENARIO: species created inside a unit of work without errors

        EXPECTED: row is visible from a fresh session
        """
        async with uow_factory() as uow:
            uow.session.add(Species(name="CAT"))

        async with session_factory() as session:
            found = (await session.execute(select(Species).where(Species.name == "CAT"))).scalar_one_or_none()
            assert found is not None

    async def test_rollback_on_error(self, uow_factory, session_factory):
        """
        SCENARIO: species flushed, then the request fails

        EXPECTED: nothing reaches the database
        """
        with pytest.raises(RuntimeError, match="Simulated error"):
            async with uow_factory() as uow:
                await uow.repository(Species).create(Species(name="CAT"))
                raise RuntimeError("Simulated error after species creation")

        async with session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(Species))).scalar()
            assert count == 0

    async def test_rollback_is_atomic_across_entities(self, uow_factory, registry, seeded, session_factory):
        """
        SCENARIO: a breed is created, then a second write in the same
        request is rejected by validation

        EXPECTED: the first write is rolled back too
        """
        with pytest.raises(ConflictError):
            async with uow_factory() as uow:
                await BreedController(uow, registry).create_breed(seeded["species_id"], {"name": "beagle"})
                await SpeciesController(uow, registry).create({"name": "dog"})

        async with session_factory() as session:
            names = (await session.execute(select(Breed.name))).scalars().all()
            assert "beagle" not in names

    async def test_savepoint_undoes_only_its_own_write(self, uow_factory, seeded, session_factory):
        """
        SCENARIO: one write succeeds, a second write inside a savepoint hits
        the UNIQUE constraint, the request handles the conflict and goes on

        EXPECTED: the unit of work still commits the first and third writes
        """
        async with uow_factory() as uow:
            species = uow.repository(Species)
            async with uow.savepoint():
                await species.create(Species(name="CAT"))
            with pytest.raises(ConflictError):
                async with uow.savepoint():
                    await species.create(Species(name="DOG"))
            async with uow.savepoint():
                await species.create(Species(name="BIRD"))

        async with session_factory() as session:
            names = (await session.execute(select(Species.name).order_by(Species.name))).scalars().all()
            assert names == ["BIRD", "CAT", "DOG"]

    async def test_released_savepoint_rolls_back_with_request(self, uow_factory, session_factory):
        """
        SCENARIO: a savepoint is released, then the request fails

        EXPECTED: releasing the savepoint did not commit anything
        """
        with pytest.raises(RuntimeError, match="Simulated error"):
            async with uow_factory() as uow:
                async with uow.savepoint():
                    await uow.repository(Species).create(Species(name="CAT"))
                raise RuntimeError("Simulated error after savepoint release")

        async with session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(Species))).scalar()
            assert count == 0

    async def test_session_outside_context(self, session_factory):
        uow = UnitOfWork(session_factory)
        with pytest.raises(RuntimeError, match="Session not available"):
            uow.session


class TestIntegrityTranslation:

    async def test_unique_violation_becomes_conflict(self, uow_factory, seeded):
        with pytest.raises(ConflictError) as exc:
            async with uow_factory() as uow:
                await uow.repository(Species).create(Species(name="DOG"))
        assert exc.value.details == {
            "failed": "create",
            "reason": "unique constraint",
            "existing_data": {"name": "DOG"},
        }

    async def test_not_null_violation_becomes_invalid_data(self, uow_factory, seeded):
        with pytest.raises(InvalidDataError) as exc:
            async with uow_factory() as uow:
                await uow.repository(Breed).create(Breed(name="beagle"))
        assert exc.value.details == {"failed": "create", "reason": "constraint violation"}

    async def test_unknown_relation_path(self, uow_factory, seeded):
        async with uow_factory() as uow:
            with pytest.raises(InvalidDataError) as exc:
                await uow.repository(Species).get(seeded["species_id"], ["breeds.pets.user", "breeds.owner"])
        assert exc.value.details == {"invalid_relations": ["breeds.owner"]}

    async def test_dotted_relation_path_is_loaded(self, uow_factory, seeded):
        async with uow_factory() as uow:
            species = await uow.repository(Species).get(seeded["species_id"], ["breeds.pets"])
        assert sorted(breed.name for breed in species.breeds) == ["labrador", "poodle"]
        assert all(breed.pets == [] for breed in species.breeds)
