from typing import Any

from pawsitters.controllers.base import BaseController
from pawsitters.domain.rules import Rule, one_of
from pawsitters.models import Role, RoleName


class RoleController(BaseController[Role]):
    model = Role

    REQUIRED = ("role",)
    UNIQUE = ("role",)

    def normalize(self, name: str, value: Any) -> Any:
        if name == "role" and isinstance(value, str):
            return value.strip().upper()
        return value

    def rules(self) -> list[Rule]:
        return [one_of("role", [role.value for role in RoleName], "Invalid role")]

    async def get_by_name(self, name: str) -> Role | None:
        return await self.repository.find_one_where(Role.role == self.normalize("role", name))
