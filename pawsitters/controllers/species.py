from typing import Any

from pawsitters.controllers.base import BaseController
from pawsitters.domain.rules import Rule, one_of
from pawsitters.models import Species, SpeciesName
from pawsitters.schemas import BreedView, SpeciesView

BREED_RELATIONS = ("breeds", "breeds.pets")


def species_view(species: Species) -> SpeciesView:
    """Species with its breeds and the number of pets per breed"""
    return SpeciesView(
        id=species.id,
        name=species.name,
        breeds=[
            BreedView(id=breed.id, name=breed.name, species=species.name, pets=len(breed.pets))
            for breed in species.breeds
        ],
    )


class SpeciesController(BaseController[Species]):
    model = Species

    REQUIRED = ("name",)
    UNIQUE = ("name",)
    VIEW_RELATIONS = BREED_RELATIONS

    def normalize(self, name: str, value: Any) -> Any:
        if name == "name" and isinstance(value, str):
            return value.strip().upper()
        return value

    def rules(self) -> list[Rule]:
        return [one_of("name", [species.value for species in SpeciesName], "Invalid species")]

    async def get_species(self) -> list[SpeciesView]:
        return [species_view(species) for species in await self.list(relations=BREED_RELATIONS)]

    async def get_one_species(self, species_id: str) -> SpeciesView:
        return species_view(await self.get_by_id(species_id, BREED_RELATIONS))

    async def create_species(self, payload) -> SpeciesView:
        return species_view(await self.create(payload))
