"""Single-device sign-in: a new login deactivates the user's other devices.

Each device keeps its row alive with a heartbeat. When a heartbeat finds its
row deactivated, the device has been taken over and ``on_terminated`` fires.
"""

from __future__ import annotations

from datetime import datetime
import logging
import re
from typing import Callable

from agriquiz.constants.quiz_constants import HEARTBEAT_INTERVAL_SECONDS
from agriquiz.core.models import ActiveSession
from agriquiz.core.scheduling import ScheduledCall, Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)

_MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone|iPad", re.IGNORECASE)
_TABLET_PATTERN = re.compile(r"Tablet", re.IGNORECASE)


class SessionStoreError(RuntimeError):
    """Raised by a session store that cannot reach its backing storage."""


class ActiveSessionStore:
    """In-memory table of device sessions keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, ActiveSession] = {}

    def upsert(self, session: ActiveSession) -> None:
        self._sessions[session.session_id] = session

    def get(self, user_id: str, session_id: str) -> ActiveSession | None:
        session = self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            return None
        return session

    def active_for_user(self, user_id: str) -> list[ActiveSession]:
        return [s for s in self._sessions.values() if s.user_id == user_id and s.is_active]

    def deactivate_others(self, user_id: str, keep_session_id: str) -> int:
        count = 0
        for session in self.active_for_user(user_id):
            if session.session_id != keep_session_id:
                session.is_active = False
                count += 1
        return count

    def deactivate(self, user_id: str, session_id: str) -> None:
        session = self.get(user_id, session_id)
        if session is not None:
            session.is_active = False

    def touch(self, user_id: str, session_id: str, when: datetime) -> None:
        session = self.get(user_id, session_id)
        if session is not None:
            session.last_activity = when


def describe_device(user_agent: str | None) -> str:
    """Short "<device> - <browser>" label for a user agent string."""
    ua = user_agent or ""
    if _MOBILE_PATTERN.search(ua):
        device = "Mobile"
    elif _TABLET_PATTERN.search(ua):
        device = "Tablet"
    else:
        device = "Desktop"

    if "Edg" in ua:
        browser = "Edge"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Unknown"
    return f"{device} - {browser}"


class SessionTracker:
    """Registers device sessions and runs the heartbeat for the current one."""

    def __init__(
        self,
        store: ActiveSessionStore,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        scheduler: Scheduler | None = None,
        on_terminated: Callable[[str, str], None] | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._scheduler = scheduler or ThreadingScheduler()
        self._on_terminated = on_terminated
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat: ScheduledCall | None = None
        self._current: tuple[str, str] | None = None

    @property
    def current_session_id(self) -> str | None:
        return self._current[1] if self._current else None

    def check_existing_session(self, user_id: str, session_id: str) -> bool:
        """True when the user is signed in on another device."""
        try:
            return any(s.session_id != session_id for s in self._store.active_for_user(user_id))
        except SessionStoreError:
            logger.exception("Could not check existing sessions for %s", user_id)
            return False

    def register(
        self,
        user_id: str,
        session_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """Record a sign-in and deactivate the user's other devices."""
        now = self._clock()
        try:
            taken_over = self._store.deactivate_others(user_id, session_id)
            self._store.upsert(
                ActiveSession(
                    user_id=user_id,
                    session_id=session_id,
                    device_info=describe_device(user_agent),
                    ip_address=ip_address or "Unknown",
                    is_active=True,
                    last_activity=now,
                    created_at=now,
                )
            )
        except SessionStoreError:
            logger.exception("Could not create session for %s", user_id)
            return False
        if taken_over:
            logger.info("User %s signed in elsewhere; %s older session(s) deactivated", user_id, taken_over)
        return True

    def create_session(
        self,
        user_id: str,
        session_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """Register this device and start its heartbeat loop."""
        if not self.register(user_id, session_id, user_agent, ip_address):
            return False
        self._current = (user_id, session_id)
        self._start_heartbeat()
        return True

    def beat(self, user_id: str, session_id: str) -> bool:
        """Refresh the session, or report that it was taken over."""
        try:
            session = self._store.get(user_id, session_id)
            if session is None or not session.is_active:
                logger.info("Session %s of %s was terminated", session_id, user_id)
                if self._on_terminated is not None:
                    self._on_terminated(user_id, session_id)
                return False
            self._store.touch(user_id, session_id, self._clock())
        except SessionStoreError:
            logger.exception("Heartbeat failed for session %s", session_id)
        return True

    def end_session(self, user_id: str, session_id: str) -> None:
        try:
            self._store.deactivate(user_id, session_id)
        except SessionStoreError:
            logger.exception("Could not end session %s", session_id)
        if self._current == (user_id, session_id):
            self._stop_heartbeat()
            self._current = None

    def end_user_sessions(self, user_id: str) -> int:
        """Deactivate every device of ``user_id``; their next heartbeat reports termination."""
        try:
            sessions = self._store.active_for_user(user_id)
            for session in sessions:
                self._store.deactivate(user_id, session.session_id)
        except SessionStoreError:
            logger.exception("Could not end the sessions of %s", user_id)
            return 0
        return len(sessions)

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        current = self._current

        def run() -> None:
            if self._current != current or current is None:
                return
            if self.beat(*current):
                self._heartbeat = self._scheduler.call_later(self._heartbeat_interval, run)
            else:
                self._heartbeat = None
                self._current = None

        self._heartbeat = self._scheduler.call_later(self._heartbeat_interval, run)

    def _stop_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None
