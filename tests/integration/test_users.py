import pytest

from helpers import days
from pawsitters.controllers import UserController
from pawsitters.exceptions import InvalidDataError, NotFoundError
from pawsitters.models import Address, Booking, BookingStat, Pet, PetStatus, User

pytestmark = pytest.mark.asyncio(loop_scope="function")


def payload(**overrides):
    values = {
        "fname": "Kofi",
        "lname": "Mensah",
        "email": "Kofi@Example.com",
        "password": "Secret#123",
        "gender": "m",
        "birthday": "1992-07-01",
        "role": "owner",
    }
    values.update(overrides)
    return values


@pytest.fixture
def users(uow_factory, registry, today):
    """Runs one controller call inside its own unit of work"""
    async def call(method, *args):
        async with uow_factory() as uow:
            return await getattr(UserController(uow, registry, today=today), method)(*args)
    return call


class TestCreateUser:

    async def test_owner(self, users, seeded):
        view = await users("create_user", payload(phone="0241234567"))
        assert view.fname == "kofi"
        assert view.email == "kofi@example.com"
        assert view.gender == "M"
        assert view.role == "OWNER"
        assert view.account_stat == "ACTIVE"
        assert view.rating == 0
        assert view.fee is None
        assert view.certifications is None

    async def test_sitter_view_carries_fee_and_certifications(self, users, seeded):
        view = await users("create_user", payload(role="sitter", fee=15.5))
        assert view.role == "SITTER"
        assert view.fee == 15.5
        assert view.certifications == []

    async def test_owner_cannot_set_fee(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(fee=15))
        assert exc.value.details["invalid_data"] == {
            "fee": "Fee can only be provided if the user has the role Sitter."
        }

    async def test_underage(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(birthday=days(-365 * 10).isoformat()))
        assert exc.value.details["invalid_data"] == {"birthday": "User must be an adult"}

    async def test_unknown_role(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(role="walker"))
        assert exc.value.details["invalid_data"] == {"role": "Invalid role walker"}

    async def test_bad_birthday_format(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(birthday="01/07/1992"))
        assert exc.value.details["invalid_data"] == {"birthday": "Invalid date format: 01/07/1992"}

    async def test_bank_account_length(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(bank_account_number="GH123"))
        assert exc.value.details["invalid_data"] == {"bank_account_number": "Invalid length"}

    async def test_scalar_types_checked(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("create_user", payload(fname=123, role="sitter", fee="15"))
        assert exc.value.details["invalid_data"] == {
            "fname": "fname must be a string",
            "fee": "fee must be a number",
        }
        assert exc.value.details["errors"] == 2

    async def test_mistyped_fee_on_edit(self, users, factory):
        sitter_id = await factory.sitter()
        with pytest.raises(InvalidDataError) as exc:
            await users("edit_user", sitter_id, {"fee": "twenty"})
        assert exc.value.details["invalid_data"] == {"fee": "fee must be a number"}


class TestReadUsers:

    async def test_filter_by_role(self, users, factory):
        await factory.user()
        sitter_id = await factory.sitter()
        views = await users("get_users", {"role": "sitter"})
        assert [view.id for view in views] == [sitter_id]
        assert views[0].fee == 20.0

    async def test_filter_by_deleted(self, users, factory):
        active_id = await factory.user()
        await factory.user(account_stat="DELETED")
        assert [view.id for view in await users("get_users", {"deleted": "false"})] == [active_id]
        assert len(await users("get_users", {"deleted": "true"})) == 1
        assert len(await users("get_users")) == 2

    async def test_invalid_role_filter(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("get_users", {"role": "walker"})
        assert exc.value.details == {"invalid_data": {"role": "Invalid role walker"}}

    async def test_admin_has_no_rating(self, users, factory):
        admin_id = await factory.user(role="ADMIN")
        assert (await users("get_user", admin_id)).rating is None

    async def test_rating_is_mean_of_received_reviews(self, users, factory):
        owner_id = await factory.user()
        sitter_id = await factory.sitter()
        pet_id = await factory.pet(owner_id)
        first = await factory.booking(owner_id, sitter_id, [pet_id], status=BookingStat.COMPLETED.value)
        second = await factory.booking(
            owner_id, sitter_id, [pet_id], start=days(10), end=days(12), status=BookingStat.COMPLETED.value
        )
        await factory.review(first, owner_id, sitter_id, 5)
        await factory.review(second, owner_id, sitter_id, 2)

        assert (await users("get_user", sitter_id)).rating == 3.5
        assert (await users("get_user", owner_id)).rating == 0

    async def test_get_user_missing(self, users, seeded):
        with pytest.raises(NotFoundError):
            await users("get_user", "nope")


class TestAvailableSitters:

    async def test_blocking_bookings_hide_sitters(self, users, factory):
        owner_id = await factory.user()
        busy_id = await factory.sitter()
        pending_id = await factory.sitter()
        free_id = await factory.sitter()
        await factory.sitter(city="kumasi")
        pet_id = await factory.pet(owner_id)
        await factory.booking(owner_id, busy_id, [pet_id], days(5), days(8), BookingStat.ACCEPTED.value)
        await factory.booking(owner_id, pending_id, [pet_id], days(5), days(8), BookingStat.PENDING.value)
        await factory.booking(owner_id, free_id, [pet_id], days(8), days(10), BookingStat.ACTIVE.value)

        views = await users("get_available_sitters", {
            "start_date": days(6).isoformat(),
            "end_date": days(8).isoformat(),
            "city": "Accra",
            "country": "ghana",
        })
        assert {view.id for view in views} == {pending_id, free_id}

    async def test_missing_parameters(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("get_available_sitters", {"start_date": days(1).isoformat()})
        assert exc.value.details["missing_columns"] == ["end_date", "city", "country"]

    async def test_interval_must_start_tomorrow(self, users, seeded):
        with pytest.raises(InvalidDataError) as exc:
            await users("get_available_sitters", {
                "start_date": days(0).isoformat(),
                "end_date": days(2).isoformat(),
                "city": "accra",
                "country": "GHANA",
            })
        assert "end_date" in exc.value.details["invalid_data"]


class TestEditUser:

    async def test_edit_contact_details(self, users, factory):
        user_id = await factory.user()
        view = await users("edit_user", user_id, {"phone": "+212612345678", "password": "N3w#Secret"})
        assert view.phone == "+212612345678"

    async def test_deleted_user_cannot_be_edited(self, users, factory):
        user_id = await factory.user(account_stat="DELETED")
        with pytest.raises(NotFoundError):
            await users("edit_user", user_id, {"phone": "0241234567"})


class TestDeleteUser:

    async def test_without_history_removes_everything(self, users, factory, uow_factory):
        owner_id = await factory.user()
        await factory.pet(owner_id)

        await users("delete", owner_id)

        async with uow_factory() as uow:
            assert await uow.repository(User).get(owner_id) is None
            assert not await uow.repository(Pet).exists_by({"user_id": owner_id})
            assert not await uow.repository(Address).exists_by({"user_id": owner_id})

    async def test_with_history_is_anonymised(self, users, factory, uow_factory):
        owner_id = await factory.user(phone="0241234567")
        sitter_id = await factory.sitter()
        pet_id = await factory.pet(owner_id)
        pending = await factory.booking(owner_id, sitter_id, [pet_id])
        completed = await factory.booking(
            owner_id, sitter_id, [pet_id], days(10), days(12), BookingStat.COMPLETED.value
        )

        await users("delete", owner_id)

        async with uow_factory() as uow:
            user = await uow.repository(User).get(owner_id, ["address"])
            assert user.account_stat == "DELETED"
            assert user.fname == "deleted user"
            assert (user.email, user.phone, user.password, user.bank_account_number) == (None, None, None, None)
            assert user.address is None

            pet = await uow.repository(Pet).get(pet_id)
            assert pet.status == PetStatus.DELETED.value

            bookings = uow.repository(Booking)
            assert (await bookings.get(pending)).status == BookingStat.CANCELLED.value
            assert (await bookings.get(completed)).status == BookingStat.COMPLETED.value

    async def test_reviewed_sitter_is_anonymised(self, users, factory, uow_factory):
        owner_id = await factory.user()
        sitter_id = await factory.sitter()
        pet_id = await factory.pet(owner_id)
        booking_id = await factory.booking(owner_id, sitter_id, [pet_id], status=BookingStat.COMPLETED.value)
        await factory.review(booking_id, owner_id, sitter_id, 4)

        await users("delete", sitter_id)

        async with uow_factory() as uow:
            sitter = await uow.repository(User).get(sitter_id)
            assert sitter.account_stat == "DELETED"
            assert sitter.fee is None

    async def test_deleting_twice(self, users, factory):
        owner_id = await factory.user()
        sitter_id = await factory.sitter()
        pet_id = await factory.pet(owner_id)
        await factory.booking(owner_id, sitter_id, [pet_id])

        await users("delete", owner_id)
        with pytest.raises(NotFoundError):
            await users("delete", owner_id)
