from typing import Any, Mapping

from sqlalchemy import func

from pawsitters.controllers.address import user_minimal
from pawsitters.controllers.base import BaseController
from pawsitters.controllers.breed import BreedController
from pawsitters.domain.rules import Rule, min_length, not_empty, not_in_future, one_of
from pawsitters.domain.validation import ValidationResult
from pawsitters.exceptions import ForbiddenError, NotFoundError
from pawsitters.logging_config import get_logger
from pawsitters.models import AccountStat, Gender, Pet, PetSize, PetStatus, RoleName, Temperament, User
from pawsitters.schemas import BreedView, PetView

logger = get_logger(__name__)


def pet_view(pet: Pet, owner: User | None = None) -> PetView:
    owner = owner if owner is not None else pet.user
    return PetView(
        id=pet.id,
        created_at=pet.created_at,
        updated_at=pet.updated_at,
        name=pet.name,
        birthdate=pet.birthdate,
        size=pet.size,
        gender=pet.gender,
        temperament=pet.temperament,
        description=pet.description,
        status=pet.status,
        image_path=pet.image_path,
        owner=user_minimal(owner),
        breed=BreedView(id=pet.breed.id, name=pet.breed.name, species=pet.breed.species.name),
    )


class PetController(BaseController[Pet]):
    model = Pet

    REQUIRED = ("name", "size", "description", "birthdate", "gender", "breed")
    UPDATABLE = ("name", "size", "description", "temperament", "image_path")
    ALLOWED = REQUIRED + ("temperament", "image_path")
    PROTECTED = ("status", "user")
    ASSIGNED = ("user",)
    DATE_FIELDS = ("birthdate",)

    VIEW_RELATIONS = ("user", "user.role", "breed", "breed.species")
    DELETE_RELATIONS = ("bookings",)

    def normalize(self, name: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if name == "name":
            return value.strip().lower()
        if name in ("size", "gender", "temperament"):
            return value.strip().upper()
        return value

    def rules(self) -> list[Rule]:
        return [
            not_empty("name", "Must specify pet name"),
            one_of("size", [size.value for size in PetSize], "Size can be S, M or L"),
            one_of("gender", [gender.value for gender in Gender], "Gender can either be 'F' or 'M'"),
            one_of("temperament", [t.value for t in Temperament], "Temperament can be FRIENDLY or AGGRESSIVE"),
            not_empty("description", "Missing description"),
            min_length("description", 30),
            not_in_future("birthdate", today=self.today),
        ]

    async def prepare(self, values: Mapping[str, Any], result: ValidationResult, entity: Pet | None = None) -> dict:
        prepared = await super().prepare(values, result, entity)
        if "breed" in prepared:
            name = prepared["breed"]
            breed = await BreedController(self.uow, self.registry).get_by_name(name) if isinstance(name, str) else None
            if breed is None:
                raise NotFoundError(f"Breed {name} was not found", {"not_found": name})
            prepared["breed"] = breed
        return prepared

    async def before_persist(self, entity: Pet, result: ValidationResult, creating: bool) -> None:
        """An owner can't have two pets with the same name"""
        if "name" in result.invalid_data or not isinstance(entity.name, str):
            return
        # user_id is only synced from the relation at flush time
        owner_id = entity.user_id if entity.user_id is not None else entity.user.id
        criteria = [Pet.user_id == owner_id, func.lower(Pet.name) == entity.name.lower()]
        if entity.id is not None:
            criteria.append(Pet.id != entity.id)
        if await self.repository.exists_where(*criteria):
            result.add_invalid("name", "A user cannot have multiple pets of the same name.")

    async def _owner(self, user_id: str) -> User:
        user = await self.uow.repository(User).get(user_id, ("role",))
        if user is None or user.account_stat == AccountStat.DELETED.value:
            raise NotFoundError("User not found", {"not_found": user_id})
        return user

    async def find_pets(self, user_id: str) -> list[PetView]:
        user = await self._owner(user_id)
        if user.role.role != RoleName.OWNER.value:
            raise NotFoundError(
                "Pets not found",
                {"not_found": f"Users with the role {user.role.role} don't have pets"}
            )
        pets = await self.repository.find_where(
            Pet.user_id == user.id, Pet.status == PetStatus.ACTIVE.value, relations=self.VIEW_RELATIONS
        )
        return [pet_view(pet) for pet in pets]

    async def find_pet_by_id(self, user_id: str, pet_id: str) -> Pet:
        await self._owner(user_id)
        pet = await self.repository.find_one_where(
            Pet.id == pet_id,
            Pet.user_id == user_id,
            Pet.status == PetStatus.ACTIVE.value,
            relations=self.VIEW_RELATIONS,
        )
        if pet is None:
            raise NotFoundError("Pet not found", {"not_found": pet_id})
        return pet

    async def create_pet(self, user_id: str, payload) -> PetView:
        user = await self._owner(user_id)
        if user.role.role != RoleName.OWNER.value:
            raise ForbiddenError(
                "Only users with the role 'OWNER' can have pets.",
                {"failed": "create", "reason": "Required role missing"}
            )
        return pet_view(await self.create(payload, assigned={"user": user}))

    async def edit_pet(self, user_id: str, pet_id: str, payload) -> PetView:
        pet = await self.find_pet_by_id(user_id, pet_id)
        return pet_view(await self.update(pet.id, payload))

    async def remove(self, entity: Pet) -> None:
        """Pets with bookings stay for the booking history"""
        if entity.bookings:
            entity.status = PetStatus.DELETED.value
            entity.image_path = None
            await self.repository.save(entity)
            logger.info("entity_soft_deleted", entity=self.entity_name, entity_id=entity.id)
            return
        await super().remove(entity)

    async def delete_pet(self, user_id: str, pet_id: str) -> None:
        pet = await self.repository.find_one_where(Pet.id == pet_id, Pet.user_id == user_id)
        if pet is None or pet.status == PetStatus.DELETED.value:
            raise NotFoundError("Couldn't delete pet", {"not_found": f"Invalid pet id {pet_id}"})
        await self.delete(pet.id)
