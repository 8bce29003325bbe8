import pytest

from pawsitters.controllers import BreedController, SpeciesController
from pawsitters.exceptions import ConflictError, InvalidDataError, NotFoundError

pytestmark = pytest.mark.asyncio(loop_scope="function")


@pytest.fixture
def species(uow_factory, registry):
    async def call(method, *args):
        async with uow_factory() as uow:
            return await getattr(SpeciesController(uow, registry), method)(*args)
    return call


@pytest.fixture
def breeds(uow_factory, registry):
    async def call(method, *args):
        async with uow_factory() as uow:
            return await getattr(BreedController(uow, registry), method)(*args)
    return call


class TestSpecies:

    async def test_listing_counts_pets_per_breed(self, species, factory):
        await factory.pet(await factory.user())
        [dog] = await species("get_species")
        assert dog.name == "DOG"
        assert {breed.name: breed.pets for breed in dog.breeds} == {"labrador": 1, "poodle": 0}

    async def test_create(self, species, seeded):
        view = await species("create_species", {"name": "cat"})
        assert view.name == "CAT"
        assert view.breeds == []

    async def test_duplicate(self, species, seeded):
        with pytest.raises(ConflictError) as exc:
            await species("create_species", {"name": "Dog"})
        assert exc.value.details["existing_data"] == {"name": "Dog"}

    async def test_only_known_species(self, species, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await species("create_species", {"name": "dragon"})
        assert exc.value.details["invalid_data"] == {"name": "Invalid species"}

    async def test_missing(self, species, seeded):
        with pytest.raises(NotFoundError):
            await species("get_one_species", "nope")


class TestBreeds:

    async def test_create_under_species(self, breeds, seeded):
        view = await breeds("create_breed", seeded["species_id"], {"name": "Beagle"})
        assert (view.name, view.species, view.pets) == ("beagle", "DOG", 0)

    async def test_species_is_assigned_not_submitted(self, breeds, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await breeds("create_breed", seeded["species_id"], {"name": "beagle", "species": "CAT"})
        assert exc.value.details["invalid_data"] == {"species": "Can't manually set species"}

    async def test_unknown_species(self, breeds, seeded):
        with pytest.raises(NotFoundError):
            await breeds("create_breed", "nope", {"name": "beagle"})

    async def test_breed_of_other_species(self, breeds, species, seeded):
        cat = await species("create_species", {"name": "cat"})
        with pytest.raises(NotFoundError) as exc:
            await breeds("get_breed", cat.id, seeded["breeds"]["poodle"])
        assert exc.value.message == "Breed not found for species 'CAT'"

    async def test_rename(self, breeds, seeded):
        view = await breeds("update_breed", seeded["species_id"], seeded["breeds"]["poodle"], {"name": "Toy Poodle"})
        assert view.name == "toy poodle"

    async def test_rename_collision(self, breeds, seeded):
        with pytest.raises(ConflictError):
            await breeds("update_breed", seeded["species_id"], seeded["breeds"]["poodle"], {"name": "labrador"})

    async def test_breed_in_use_is_frozen(self, breeds, factory, seeded):
        await factory.pet(await factory.user())
        labrador = seeded["breeds"]["labrador"]
        with pytest.raises(ConflictError) as exc:
            await breeds("update_breed", seeded["species_id"], labrador, {"name": "lab"})
        assert exc.value.details == {"failed": "update", "reason": "Pets of this breed exist."}
        with pytest.raises(ConflictError):
            await breeds("delete_breed", seeded["species_id"], labrador)

    async def test_delete_unused(self, breeds, seeded):
        await breeds("delete_breed", seeded["species_id"], seeded["breeds"]["poodle"])
        with pytest.raises(NotFoundError):
            await breeds("get_breed", seeded["species_id"], seeded["breeds"]["poodle"])
