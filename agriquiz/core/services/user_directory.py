"""Service for managing user profiles: roles, account status and approval."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
import re
from uuid import uuid4

from agriquiz.constants.quiz_constants import USERS_PER_PAGE
from agriquiz.core.models import UserProfile, UserRole, UserStatus

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserValidationError(ValueError):
    """Raised when a profile cannot be stored."""


class UserStatusError(RuntimeError):
    """Raised when an action does not fit the account's status."""


@dataclass(slots=True)
class UserPage:
    users: list[UserProfile]
    total: int
    page: int
    total_pages: int


def paginate(users: list[UserProfile], page: int = 1, page_size: int = USERS_PER_PAGE) -> UserPage:
    """Slice ``users`` into 1-based pages; out-of-range pages are clamped."""
    if page_size <= 0:
        raise UserValidationError("Page size must be positive.")
    total_pages = max(1, math.ceil(len(users) / page_size))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size
    return UserPage(
        users=users[start:start + page_size],
        total=len(users),
        page=page,
        total_pages=total_pages,
    )


class UserDirectory:
    """Keeps user profiles keyed by the auth provider's user id."""

    def __init__(self) -> None:
        self._users: dict[str, UserProfile] = {}

    def create(
        self,
        email: str,
        *,
        full_name: str | None = None,
        role: UserRole = UserRole.USER,
        user_id: str | None = None,
    ) -> UserProfile:
        """Add an account created by an administrator; it is active at once."""
        return self._add(email, full_name, UserRole(role), UserStatus.ACTIVE, user_id)

    def register(self, email: str, *, full_name: str | None = None, user_id: str | None = None) -> UserProfile:
        """Add a self-registered account that waits for approval."""
        return self._add(email, full_name, UserRole.USER, UserStatus.PENDING, user_id)

    def get(self, user_id: str) -> UserProfile:
        try:
            return self._users[user_id]
        except KeyError:
            raise KeyError(f"User {user_id!r} not found") from None

    def update(
        self,
        user_id: str,
        *,
        full_name: str | None = None,
        role: UserRole | str | None = None,
        status: UserStatus | str | None = None,
    ) -> UserProfile:
        profile = self.get(user_id)
        if full_name is not None:
            profile.full_name = full_name.strip() or None
        if role is not None:
            profile.role = UserRole(role)
        if status is not None:
            profile.status = UserStatus(status)
        profile.updated_at = datetime.utcnow()
        return profile

    def approve(self, user_id: str) -> UserProfile:
        self._require_pending(user_id)
        return self.update(user_id, status=UserStatus.ACTIVE)

    def reject(self, user_id: str) -> None:
        """Remove a pending registration."""
        self._require_pending(user_id)
        self.delete(user_id)

    def delete(self, user_id: str) -> None:
        self.get(user_id)
        del self._users[user_id]

    def list_users(self, *, search: str | None = None, status: UserStatus | None = None) -> list[UserProfile]:
        """Profiles newest first, filtered by email/name substring and status."""
        needle = (search or "").strip().lower()
        matching = [
            (index, profile)
            for index, profile in enumerate(self._users.values())
            if (status is None or profile.status is status)
            and (
                not needle
                or needle in profile.email.lower()
                or needle in (profile.full_name or "").lower()
            )
        ]
        matching.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [profile for _index, profile in matching]

    def pending_count(self) -> int:
        return sum(1 for p in self._users.values() if p.status is UserStatus.PENDING)

    def check_can_sign_in(self, user_id: str) -> None:
        """Raise for pending or deactivated accounts; unknown ids are allowed."""
        profile = self._users.get(user_id)
        if profile is None:
            return
        if profile.status is UserStatus.PENDING:
            raise UserStatusError("This account is waiting for administrator approval.")
        if profile.status is UserStatus.INACTIVE:
            raise UserStatusError("This account has been deactivated. Please contact an administrator.")

    def _add(
        self,
        email: str,
        full_name: str | None,
        role: UserRole,
        status: UserStatus,
        user_id: str | None,
    ) -> UserProfile:
        cleaned_email = email.strip().lower()
        if not _EMAIL_PATTERN.match(cleaned_email):
            raise UserValidationError(f"{email!r} is not a valid email address.")
        if any(p.email == cleaned_email for p in self._users.values()):
            raise UserValidationError(f"A user with email {cleaned_email} already exists.")
        profile_id = (user_id or "").strip() or uuid4().hex
        if profile_id in self._users:
            raise UserValidationError(f"User id {profile_id!r} is already taken.")

        profile = UserProfile(
            id=profile_id,
            email=cleaned_email,
            full_name=(full_name or "").strip() or None,
            role=role,
            status=status,
        )
        self._users[profile.id] = profile
        return profile

    def _require_pending(self, user_id: str) -> None:
        if self.get(user_id).status is not UserStatus.PENDING:
            raise UserStatusError(f"User {user_id!r} is not awaiting approval.")
