from __future__ import annotations

import pytest

from agriquiz.core.models import UserRole, UserStatus
from agriquiz.core.services.user_directory import (
    UserDirectory,
    UserStatusError,
    UserValidationError,
    paginate,
)


@pytest.fixture
def directory() -> UserDirectory:
    return UserDirectory()


def test_admin_created_account_is_active(directory) -> None:
    profile = directory.create(" Lan@Agribank.vn ", full_name=" Tran Lan ", role=UserRole.ADMIN, user_id="u1")

    assert profile.id == "u1"
    assert profile.email == "lan@agribank.vn"
    assert profile.full_name == "Tran Lan"
    assert profile.role is UserRole.ADMIN
    assert profile.status is UserStatus.ACTIVE
    assert directory.get("u1") is profile


def test_registration_waits_for_approval(directory) -> None:
    profile = directory.register("minh@agribank.vn")

    assert profile.status is UserStatus.PENDING
    assert profile.role is UserRole.USER
    assert directory.pending_count() == 1


@pytest.mark.parametrize("email", ["", "no-at-sign", "a@b", "two@@signs.vn"])
def test_invalid_email_is_rejected(directory, email) -> None:
    with pytest.raises(UserValidationError):
        directory.create(email)


def test_duplicate_email_or_id_is_rejected(directory) -> None:
    directory.create("lan@agribank.vn", user_id="u1")

    with pytest.raises(UserValidationError):
        directory.register("LAN@agribank.vn")
    with pytest.raises(UserValidationError):
        directory.create("other@agribank.vn", user_id="u1")


def test_update_role_and_status(directory) -> None:
    profile = directory.create("lan@agribank.vn", user_id="u1")
    before = profile.updated_at

    updated = directory.update("u1", role="admin", status=UserStatus.INACTIVE)

    assert updated.role is UserRole.ADMIN
    assert updated.status is UserStatus.INACTIVE
    assert updated.updated_at >= before
    with pytest.raises(ValueError):
        directory.update("u1", role="owner")


def test_approve_and_reject_only_pending_accounts(directory) -> None:
    directory.register("a@agribank.vn", user_id="pending-a")
    directory.register("b@agribank.vn", user_id="pending-b")
    directory.create("c@agribank.vn", user_id="active-c")

    assert directory.approve("pending-a").status is UserStatus.ACTIVE
    directory.reject("pending-b")

    with pytest.raises(KeyError):
        directory.get("pending-b")
    with pytest.raises(UserStatusError):
        directory.approve("active-c")
    with pytest.raises(UserStatusError):
        directory.reject("active-c")


def test_delete(directory) -> None:
    directory.create("a@agribank.vn", user_id="u1")
    directory.delete("u1")

    with pytest.raises(KeyError):
        directory.delete("u1")


def test_list_is_newest_first_and_filterable(directory) -> None:
    directory.create("first@agribank.vn", full_name="Nguyen Van A")
    directory.register("second@agribank.vn", full_name="Tran Thi B")
    directory.create("third@agribank.vn", full_name="Le Van C")

    assert [p.email for p in directory.list_users()] == [
        "third@agribank.vn", "second@agribank.vn", "first@agribank.vn",
    ]
    assert [p.email for p in directory.list_users(status=UserStatus.PENDING)] == ["second@agribank.vn"]
    assert [p.email for p in directory.list_users(search="van")] == ["third@agribank.vn", "first@agribank.vn"]
    assert [p.email for p in directory.list_users(search="SECOND")] == ["second@agribank.vn"]


def test_pagination(directory) -> None:
    for i in range(23):
        directory.create(f"user{i}@agribank.vn")
    users = directory.list_users()

    last = paginate(users, page=3)
    assert last.total == 23
    assert last.total_pages == 3
    assert len(last.users) == 3
    assert paginate(users, page=99).page == 3
    assert paginate([], page=1).total_pages == 1
    with pytest.raises(UserValidationError):
        paginate(users, page_size=0)


def test_sign_in_check(directory) -> None:
    directory.register("p@agribank.vn", user_id="pending")
    directory.create("i@agribank.vn", user_id="inactive")
    directory.update("inactive", status=UserStatus.INACTIVE)

    with pytest.raises(UserStatusError):
        directory.check_can_sign_in("pending")
    with pytest.raises(UserStatusError):
        directory.check_can_sign_in("inactive")
    directory.check_can_sign_in("unknown-to-the-directory")
