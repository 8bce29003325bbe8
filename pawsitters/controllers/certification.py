from pawsitters.controllers.address import user_minimal
from pawsitters.controllers.base import BaseController
from pawsitters.domain.rules import Rule, not_empty, not_in_future
from pawsitters.exceptions import ForbiddenError, NotFoundError
from pawsitters.models import AccountStat, Certification, RoleName, User
from pawsitters.schemas import CertificationView


def certification_view(certification: Certification, user: User | None = None) -> CertificationView:
    return CertificationView(
        id=certification.id,
        title=certification.title,
        issue_date=certification.issue_date,
        organization=certification.organization,
        user=user_minimal(user) if user is not None else None,
    )


class CertificationController(BaseController[Certification]):
    """Only sitters hold certifications"""
    model = Certification

    REQUIRED = ("title", "issue_date", "organization")
    UPDATABLE = ("title", "issue_date", "organization")
    PROTECTED = ("user",)
    ASSIGNED = ("user",)
    DATE_FIELDS = ("issue_date",)
    VIEW_RELATIONS = ("user", "user.role")

    def rules(self) -> list[Rule]:
        return [
            not_empty("title"),
            not_empty("organization"),
            not_in_future("issue_date", today=self.today),
        ]

    async def _sitter(self, user_id: str, action: str) -> User:
        user = await self.uow.repository(User).get(user_id, ("role", "certifications"))
        if user is None or user.account_stat == AccountStat.DELETED.value:
            raise NotFoundError("User not found", {"not_found": user_id})
        if user.role.role != RoleName.SITTER.value:
            if action == "read":
                raise NotFoundError(
                    "Certifications not found",
                    {"not_found": "Only users with the role 'SITTER' have certifications"}
                )
            raise ForbiddenError(
                "Only users with the role 'SITTER' can have certifications",
                {"failed": action, "reason": "Required role missing"}
            )
        return user

    def _find(self, user: User, cert_id: str) -> Certification:
        for certification in user.certifications:
            if certification.id == cert_id:
                return certification
        raise NotFoundError("Certification not found", {"not_found": f"Invalid id {cert_id}"})

    async def get_certs(self, user_id: str) -> list[CertificationView]:
        user = await self._sitter(user_id, "read")
        return [certification_view(cert, user) for cert in user.certifications]

    async def get_cert(self, user_id: str, cert_id: str) -> CertificationView:
        user = await self._sitter(user_id, "read")
        return certification_view(self._find(user, cert_id), user)

    async def create_cert(self, user_id: str, payload) -> CertificationView:
        user = await self._sitter(user_id, "create")
        certification = await self.create(payload, assigned={"user": user})
        return certification_view(certification, certification.user)

    async def update_cert(self, user_id: str, cert_id: str, payload) -> CertificationView:
        user = await self._sitter(user_id, "update")
        certification = await self.update(self._find(user, cert_id).id, payload)
        return certification_view(certification, certification.user)

    async def delete_cert(self, user_id: str, cert_id: str) -> None:
        user = await self._sitter(user_id, "delete")
        await self.delete(self._find(user, cert_id).id)
