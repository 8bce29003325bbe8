import pytest

from helpers import days
from pawsitters.controllers import AddressController, CertificationController
from pawsitters.exceptions import ConflictError, ForbiddenError, InvalidDataError, NotFoundError

pytestmark = pytest.mark.asyncio(loop_scope="function")

ADDRESS = {"street": "Ring Road", "city": "Kumasi", "country": "ghana", "postal_code": "AK-039"}
CERT = {"title": "Pet First Aid", "issue_date": "2024-06-01", "organization": "Red Cross"}


@pytest.fixture
def addresses(uow_factory, registry, today):
    async def call(method, *args):
        async with uow_factory() as uow:
            return await getattr(AddressController(uow, registry, today=today), method)(*args)
    return call


@pytest.fixture
def certs(uow_factory, registry, today):
    async def call(method, *args):
        async with uow_factory() as uow:
            return await getattr(CertificationController(uow, registry, today=today), method)(*args)
    return call


class TestAddress:

    async def test_create_normalises(self, addresses, factory):
        user_id = await factory.user(city=None)
        view = await addresses("create_address", user_id, dict(ADDRESS, floor=2))
        assert (view.street, view.city, view.country) == ("ring road", "kumasi", "GHANA")
        assert view.floor == 2
        assert view.user.id == user_id

    async def test_one_address_per_user(self, addresses, factory):
        user_id = await factory.user()
        with pytest.raises(ConflictError):
            await addresses("create_address", user_id, ADDRESS)

    @pytest.mark.parametrize("field, value", [("floor", "second"), ("building_num", 4.5), ("apartment_num", True)])
    async def test_numbers_must_be_integers(self, addresses, factory, field, value):
        user_id = await factory.user(city=None)
        with pytest.raises(InvalidDataError) as exc:
            await addresses("create_address", user_id, dict(ADDRESS, **{field: value}))
        assert exc.value.details["invalid_data"] == {field: f"{field} must be an integer"}

    async def test_text_fields_must_be_strings(self, addresses, factory):
        user_id = await factory.user()
        with pytest.raises(InvalidDataError) as exc:
            await addresses("update_address", user_id, {"postal_code": 233})
        assert exc.value.details["invalid_data"] == {"postal_code": "postal_code must be a string"}

    async def test_unsupported_country(self, addresses, factory):
        user_id = await factory.user(city=None)
        with pytest.raises(InvalidDataError) as exc:
            await addresses("create_address", user_id, dict(ADDRESS, country="france"))
        assert exc.value.details["invalid_data"] == {"country": "Country can either be GHANA or MOROCCO"}

    async def test_update_and_read(self, addresses, factory):
        user_id = await factory.user()
        await addresses("update_address", user_id, {"city": "Tema", "apartment_num": 4})
        view = await addresses("get_address", user_id)
        assert (view.city, view.apartment_num, view.street) == ("tema", 4, "oxford street")

    async def test_user_is_not_reassignable(self, addresses, factory):
        user_id = await factory.user()
        with pytest.raises(InvalidDataError) as exc:
            await addresses("update_address", user_id, {"user": "someone-else"})
        assert exc.value.details["invalid_data"] == {"user": "Can't manually set user"}

    async def test_delete(self, addresses, factory):
        user_id = await factory.user()
        await addresses("delete_address", user_id)
        with pytest.raises(NotFoundError):
            await addresses("get_address", user_id)

    async def test_deleted_user(self, addresses, factory):
        user_id = await factory.user(account_stat="DELETED")
        with pytest.raises(NotFoundError):
            await addresses("get_address", user_id)


class TestCertification:

    async def test_sitter_lifecycle(self, certs, factory):
        sitter_id = await factory.sitter()
        created = await certs("create_cert", sitter_id, CERT)
        assert created.issue_date.isoformat() == "2024-06-01"
        assert created.user.id == sitter_id

        updated = await certs("update_cert", sitter_id, created.id, {"organization": "St John Ambulance"})
        assert updated.organization == "St John Ambulance"
        assert [cert.id for cert in await certs("get_certs", sitter_id)] == [created.id]

        await certs("delete_cert", sitter_id, created.id)
        assert await certs("get_certs", sitter_id) == []

    async def test_issue_date_not_in_future(self, certs, factory):
        sitter_id = await factory.sitter()
        with pytest.raises(InvalidDataError) as exc:
            await certs("create_cert", sitter_id, dict(CERT, issue_date=days(1).isoformat()))
        assert exc.value.details["invalid_data"] == {"issue_date": "issue_date can't be in the future"}

    async def test_owner_cannot_hold_certifications(self, certs, factory):
        owner_id = await factory.user()
        with pytest.raises(ForbiddenError):
            await certs("create_cert", owner_id, CERT)
        with pytest.raises(NotFoundError):
            await certs("get_certs", owner_id)

    async def test_certification_of_another_sitter(self, certs, factory):
        sitter_id = await factory.sitter()
        other_id = await factory.sitter()
        created = await certs("create_cert", sitter_id, CERT)
        with pytest.raises(NotFoundError):
            await certs("get_cert", other_id, created.id)
