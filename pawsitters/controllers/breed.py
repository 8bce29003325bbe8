from typing import Any

from pawsitters.controllers.base import BaseController
from pawsitters.controllers.species import SpeciesController
from pawsitters.domain.rules import Rule, not_empty
from pawsitters.exceptions import ConflictError, NotFoundError
from pawsitters.models import Breed
from pawsitters.schemas import BreedView


def breed_view(breed: Breed) -> BreedView:
    return BreedView(id=breed.id, name=breed.name, species=breed.species.name, pets=len(breed.pets))


class BreedController(BaseController[Breed]):
    """Breeds always live under a species; the species is never client-settable"""
    model = Breed

    REQUIRED = ("name",)
    UNIQUE = ("name",)
    UPDATABLE = ("name",)
    PROTECTED = ("species",)
    ASSIGNED = ("species",)
    VIEW_RELATIONS = ("species", "pets")
    DELETE_RELATIONS = ("pets",)

    def normalize(self, name: str, value: Any) -> Any:
        if name == "name" and isinstance(value, str):
            return value.strip().lower()
        return value

    def rules(self) -> list[Rule]:
        return [not_empty("name", "Breed name can't be empty")]

    async def get_by_name(self, name: str) -> Breed | None:
        return await self.repository.find_one_where(
            Breed.name == self.normalize("name", name), relations=self.VIEW_RELATIONS
        )

    async def get_breed(self, species_id: str, breed_id: str) -> Breed:
        """Breed of the given species (NotFound for either)"""
        species = await SpeciesController(self.uow, self.registry).get_by_id(species_id)
        breed = await self.repository.find_one_where(
            Breed.id == breed_id, Breed.species_id == species.id, relations=self.VIEW_RELATIONS
        )
        if breed is None:
            raise NotFoundError(f"Breed not found for species '{species.name}'", {"not_found": breed_id})
        return breed

    async def create_breed(self, species_id: str, payload) -> BreedView:
        species = await SpeciesController(self.uow, self.registry).get_by_id(species_id)
        return breed_view(await self.create(payload, assigned={"species": species}))

    def _ensure_no_pets(self, breed: Breed, action: str) -> None:
        if breed.pets:
            raise ConflictError(
                f"Cannot {action} breed '{breed.name}'",
                {"failed": action, "reason": "Pets of this breed exist."}
            )

    async def update_breed(self, species_id: str, breed_id: str, payload) -> BreedView:
        breed = await self.get_breed(species_id, breed_id)
        self._ensure_no_pets(breed, "update")
        return breed_view(await self.update(breed.id, payload))

    async def remove(self, entity: Breed) -> None:
        self._ensure_no_pets(entity, "delete")
        await super().remove(entity)

    async def delete_breed(self, species_id: str, breed_id: str) -> None:
        breed = await self.get_breed(species_id, breed_id)
        await self.delete(breed.id)
