"""Tests for the SQL-backed user directory."""

from datetime import timedelta

import pytest

from app.models.user import ROLE_ADMIN, STATUS_ACTIVE, STATUS_INACTIVE
from app.services.user_directory import DuplicateValueError, SQLUserDirectory, UserDirectory


@pytest.fixture
def directory(db_session):
    return SQLUserDirectory(db_session)


def test_satisfies_protocol(directory):
    assert isinstance(directory, UserDirectory)


class TestLookup:
    async def test_find_by_email(self, directory, citizen_user):
        assert (await directory.find_by_email("citizen@rugalika.rw")).id == citizen_user.id
        assert await directory.find_by_email("nobody@rugalika.rw") is None

    async def test_find_by_id_accepts_string(self, directory, citizen_user):
        assert (await directory.find_by_id(str(citizen_user.id))).id == citizen_user.id

    async def test_find_by_id_with_malformed_id(self, directory):
        assert await directory.find_by_id("not-a-uuid") is None


class TestSetStatus:
    async def test_deactivate(self, directory, citizen_user):
        user = await directory.set_status(citizen_user.id, STATUS_INACTIVE)

        assert user.status == STATUS_INACTIVE
        assert (await directory.find_by_id(citizen_user.id)).status == STATUS_INACTIVE

    async def test_unknown_user(self, directory):
        missing = "00000000-0000-0000-0000-000000000000"

        assert await directory.set_status(missing, STATUS_ACTIVE) is None

    async def test_invalid_status(self, directory, citizen_user):
        with pytest.raises(ValueError):
            await directory.set_status(citizen_user.id, "banned")


class TestStats:
    async def test_counts(self, directory, user_factory):
        await user_factory(role=ROLE_ADMIN, email_verified=True)
        await user_factory()
        await user_factory(status=STATUS_INACTIVE)

        stats = await directory.get_stats()

        assert stats == {
            "total_users": 3,
            "active_users": 2,
            "inactive_users": 1,
            "admin_users": 1,
            "citizen_users": 2,
            "verified_users": 1,
            "unverified_users": 2,
        }

    async def test_recent_logins_newest_first(self, directory, user_factory, clock):
        earlier = await user_factory(last_login_at=clock())
        later = await user_factory(last_login_at=clock() + timedelta(hours=1))
        await user_factory()

        recent = await directory.recent_logins(limit=10)

        assert [u.id for u in recent] == [later.id, earlier.id]

    async def test_recent_logins_limit(self, directory, user_factory, clock):
        for i in range(3):
            await user_factory(last_login_at=clock() + timedelta(minutes=i))

        assert len(await directory.recent_logins(limit=2)) == 2


class TestUpdateProfile:
    async def test_applies_changes(self, directory, citizen_user):
        user = await directory.update_profile(
            citizen_user.id, {"first_name": "Aline", "national_id": "1199880012345678"}
        )

        assert user.first_name == "Aline"
        assert (await directory.find_by_id(citizen_user.id)).national_id == "1199880012345678"

    async def test_unknown_user(self, directory):
        missing = "00000000-0000-0000-0000-000000000000"

        assert await directory.update_profile(missing, {"first_name": "Aline"}) is None

    async def test_rejects_protected_fields(self, directory, citizen_user):
        with pytest.raises(ValueError, match="role"):
            await directory.update_profile(citizen_user.id, {"role": ROLE_ADMIN})

        assert citizen_user.role != ROLE_ADMIN

    async def test_duplicate_national_id(self, directory, citizen_user, user_factory):
        other = await user_factory(national_id="1199880012345678")

        with pytest.raises(DuplicateValueError) as excinfo:
            await directory.update_profile(citizen_user.id, {"national_id": other.national_id})

        assert excinfo.value.field == "national_id"

    async def test_keeping_own_national_id(self, directory, citizen_user):
        user = await directory.update_profile(
            citizen_user.id, {"national_id": citizen_user.national_id, "last_name": "Uwase"}
        )

        assert user.last_name == "Uwase"
