from typing import Any

from pawsitters.controllers.base import BaseController
from pawsitters.domain.rules import Rule, not_empty, one_of
from pawsitters.exceptions import ConflictError, NotFoundError
from pawsitters.models import Address, AccountStat, Country, User
from pawsitters.schemas import AddressView, UserMinimal


def user_minimal(user: User) -> UserMinimal:
    return UserMinimal(id=user.id, fname=user.fname, lname=user.lname, role=user.role.role if user.role else None)


def address_view(address: Address, user: User | None = None) -> AddressView:
    return AddressView(
        id=address.id,
        building_num=address.building_num,
        street=address.street,
        apartment_num=address.apartment_num,
        floor=address.floor,
        city=address.city,
        country=address.country,
        postal_code=address.postal_code,
        user=user_minimal(user) if user is not None else None,
    )


class AddressController(BaseController[Address]):
    """One address per user; city and street stored lower-case"""
    model = Address

    REQUIRED = ("street", "city", "country", "postal_code")
    UPDATABLE = ("street", "city", "country", "postal_code", "building_num", "apartment_num", "floor")
    PROTECTED = ("user",)
    ASSIGNED = ("user",)
    VIEW_RELATIONS = ("user", "user.role")

    def normalize(self, name: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if name in ("city", "street"):
            return value.strip().lower()
        if name == "country":
            return value.strip().upper()
        return value

    def rules(self) -> list[Rule]:
        return [
            not_empty("street"),
            not_empty("city"),
            not_empty("postal_code"),
            one_of("country", [country.value for country in Country], "Country can either be GHANA or MOROCCO"),
        ]

    async def _user(self, user_id: str) -> User:
        user = await self.uow.repository(User).get(user_id, ("role", "address"))
        if user is None or user.account_stat == AccountStat.DELETED.value:
            raise NotFoundError("User not found", {"not_found": user_id})
        return user

    async def get_address(self, user_id: str) -> AddressView:
        user = await self._user(user_id)
        if user.address is None:
            raise NotFoundError("Address not found", {"not_found": f"User {user_id} has no address"})
        return address_view(user.address, user)

    async def create_address(self, user_id: str, payload) -> AddressView:
        user = await self._user(user_id)
        if user.address is not None:
            raise ConflictError(
                "Couldn't create address",
                {"failed": "create", "reason": "User already has an address"}
            )
        address = await self.create(payload, assigned={"user": user})
        return address_view(address, address.user)

    async def update_address(self, user_id: str, payload) -> AddressView:
        user = await self._user(user_id)
        if user.address is None:
            raise NotFoundError("Address not found", {"not_found": f"User {user_id} has no address"})
        address = await self.update(user.address.id, payload)
        return address_view(address, address.user)

    async def delete_address(self, user_id: str) -> None:
        user = await self._user(user_id)
        if user.address is None:
            raise NotFoundError("Address not found", {"not_found": f"User {user_id} has no address"})
        await self.delete(user.address.id)
