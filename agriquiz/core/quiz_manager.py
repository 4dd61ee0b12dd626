"""Business logic shared by the API: question bank, templates, sessions, results."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
import random
from threading import RLock
from typing import Callable
from uuid import uuid4

from agriquiz.constants.quiz_constants import SUBMITTED_SESSION_RETENTION, USERS_PER_PAGE
from agriquiz.core.models import (
    Question,
    QuizConfig,
    QuizMode,
    QuizResult,
    QuizTemplate,
    StoredResult,
    UserAnswer,
    UserProfile,
    UserRole,
    UserStatus,
)
from agriquiz.core.question_search import SearchHit, search_questions
from agriquiz.core.scheduling import Clock, Scheduler, ThreadingScheduler, wall_clock_ms
from agriquiz.core.services.countdown_timer import TimerState
from agriquiz.core.services.leaderboard import Leaderboard, LeaderboardRow, UserStatistics
from agriquiz.core.services.question_bank import QuestionBank
from agriquiz.core.services.quiz_session import QuizSession, SessionState
from agriquiz.core.services.result_store import ResultStore, ResultStoreError
from agriquiz.core.services.session_tracker import ActiveSessionStore, SessionTracker
from agriquiz.core.services.template_store import TemplateStore
from agriquiz.core.services.user_directory import UserDirectory, UserPage, paginate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionSnapshot:
    """Consistent view of a quiz session taken under the manager lock."""

    session_id: str
    state: SessionState
    mode: QuizMode
    is_review: bool
    current_index: int
    total_questions: int
    time_limit: int
    remaining_seconds: int
    timer_state: TimerState | None
    answered_count: int
    marked_count: int
    question: Question | None
    answer: UserAnswer | None
    feedback_visible: bool
    answers: tuple[UserAnswer, ...]
    result: QuizResult | None


class QuizManager:
    """Facade for quiz services: QuestionBank, TemplateStore, UserDirectory, results and sessions.

    Every public method takes the same re-entrant lock, and timer and
    heartbeat callbacks run under it too, so all writes to session state are
    serialised through this object.
    """

    def __init__(
        self,
        *,
        results_path: Path | None = None,
        clock: Clock = wall_clock_ms,
        scheduler: Scheduler | None = None,
        device_clock: Callable[[], datetime] = datetime.utcnow,
        rng: random.Random | None = None,
        on_device_terminated: Callable[[str, str], None] | None = None,
        submitted_retention: int = SUBMITTED_SESSION_RETENTION,
    ) -> None:
        self._lock = RLock()
        self._clock = clock
        self._scheduler = scheduler or ThreadingScheduler(self._lock)
        self._rng = rng or random.Random()

        # Services
        self._question_bank = QuestionBank()
        self._templates = TemplateStore(self._question_bank)
        self._results = ResultStore(results_path)
        self._leaderboard = Leaderboard(self._results)
        self._users = UserDirectory()
        self._devices = SessionTracker(
            ActiveSessionStore(),
            clock=device_clock,
            scheduler=self._scheduler,
            on_terminated=self._handle_device_terminated,
        )
        self._on_device_terminated = on_device_terminated

        self._sessions: dict[str, QuizSession] = {}
        self._user_names: dict[str, str] = {}
        self._session_devices: dict[str, str] = {}
        # Submitted sessions stay viewable, oldest evicted first.
        self._submitted: deque[str] = deque()
        self._submitted_retention = submitted_retention

    # --- Question Bank Delegation ---

    def load_questions(self, questions: list[Question]) -> int:
        with self._lock:
            count = self._question_bank.load_questions(questions)
            logger.info("Question bank replaced with %s questions", count)
            return count

    def add_questions(self, questions: list[Question]) -> int:
        with self._lock:
            count = self._question_bank.add_questions(questions)
            logger.info("Added %s questions to the bank", count)
            return count

    def get_questions(self, category: str | None = None) -> list[Question]:
        with self._lock:
            return self._question_bank.get_questions(category)

    def get_question(self, question_id: str) -> Question:
        with self._lock:
            return self._question_bank.get_question(question_id)

    def update_question(self, question_id: str, question: Question) -> Question:
        with self._lock:
            return self._question_bank.update_question(question_id, question)

    def delete_question(self, question_id: str) -> None:
        with self._lock:
            self._question_bank.delete_question(question_id)

    def clear_questions(self) -> None:
        with self._lock:
            self._question_bank.clear()

    def get_categories(self) -> dict[str, int]:
        with self._lock:
            return self._question_bank.categories()

    def search_questions(self, keyword: str, category: str | None = None) -> list[SearchHit]:
        with self._lock:
            return search_questions(self._question_bank.get_questions(), keyword, category)

    def check_config(self, config: QuizConfig) -> list[str]:
        with self._lock:
            return self._question_bank.check_category_availability(
                config.categories, config.total_questions
            )

    # --- Template Delegation ---

    def create_template(self, name: str, **fields: object) -> QuizTemplate:
        with self._lock:
            return self._templates.create(name, **fields)

    def update_template(self, template_id: str, **changes: object) -> QuizTemplate:
        with self._lock:
            return self._templates.update(template_id, **changes)

    def delete_template(self, template_id: str) -> None:
        with self._lock:
            self._templates.delete(template_id)

    def get_template(self, template_id: str) -> QuizTemplate:
        with self._lock:
            return self._templates.get(template_id)

    def list_templates(self) -> list[QuizTemplate]:
        with self._lock:
            return self._templates.list_active()

    # --- Quiz Sessions ---

    def start_quiz(
        self,
        config: QuizConfig,
        *,
        user_id: str | None = None,
        user_name: str | None = None,
        device_session_id: str | None = None,
    ) -> SessionSnapshot:
        with self._lock:
            session = QuizSession(
                self._question_bank.get_questions(),
                config,
                user_id=user_id,
                on_submitted=self._handle_submitted,
                clock=self._clock,
                scheduler=self._scheduler,
                rng=self._rng,
            )
            session.start()
            self._register(session, user_name, device_session_id)
            return self._snapshot(session)

    def start_template_quiz(
        self,
        template_id: str,
        *,
        user_id: str | None = None,
        user_name: str | None = None,
        device_session_id: str | None = None,
    ) -> SessionSnapshot:
        with self._lock:
            config = self._templates.get(template_id).to_config()
            return self.start_quiz(
                config,
                user_id=user_id,
                user_name=user_name,
                device_session_id=device_session_id,
            )

    def get_session(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            return self._snapshot(self._active_session(session_id))

    def select_answer(self, session_id: str, option_index: int) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            question, _answer = session.current()
            if not 0 <= option_index < len(question.options):
                raise ValueError(
                    f"Option {option_index} does not exist; choose 0 to {len(question.options) - 1}."
                )
            session.select_answer(option_index)
            return self._snapshot(session)

    def toggle_mark(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            session.toggle_mark()
            return self._snapshot(session)

    def navigate(
        self,
        session_id: str,
        *,
        direction: str | None = None,
        index: int | None = None,
    ) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            if index is not None:
                session.go_to(index)
            elif direction == "next":
                session.go_next()
            elif direction == "prev":
                session.go_previous()
            else:
                raise ValueError("Navigate with direction 'prev'/'next' or a question index.")
            return self._snapshot(session)

    def pause_quiz(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            session.pause()
            return self._snapshot(session)

    def resume_quiz(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            session.resume()
            return self._snapshot(session)

    def submit_quiz(self, session_id: str) -> QuizResult:
        with self._lock:
            return self._active_session(session_id).submit()

    def start_review(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._active_session(session_id)
            review = session.start_review(
                on_submitted=self._handle_submitted,
                rng=self._rng,
            )
            self._register(
                review,
                self._user_names.get(session_id),
                self._session_devices.get(session_id),
            )
            return self._snapshot(review)

    def abandon_quiz(self, session_id: str) -> None:
        with self._lock:
            session = self._forget(session_id)
            if session is None:
                raise KeyError(f"Quiz session {session_id!r} not found")
            session.abandon()
            logger.info("Session %s abandoned", session_id)

    # --- Results & Rankings ---

    def get_results(self, user_id: str, limit: int | None = None) -> list[StoredResult]:
        with self._lock:
            return self._results.for_user(user_id, limit=limit)

    def get_leaderboard(self, limit: int | None = None) -> list[LeaderboardRow]:
        with self._lock:
            return self._leaderboard.top() if limit is None else self._leaderboard.top(limit)

    def get_user_statistics(self, user_id: str) -> UserStatistics:
        with self._lock:
            return self._leaderboard.user_statistics(user_id)

    # --- Device Sessions ---

    def register_device(
        self,
        user_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> str:
        with self._lock:
            self._users.check_can_sign_in(user_id)
            session_id = uuid4().hex
            if not self._devices.register(user_id, session_id, user_agent, ip_address):
                raise RuntimeError("Could not register the device session.")
            return session_id

    def has_other_device(self, user_id: str, device_session_id: str) -> bool:
        with self._lock:
            return self._devices.check_existing_session(user_id, device_session_id)

    def device_heartbeat(self, user_id: str, device_session_id: str) -> bool:
        with self._lock:
            return self._devices.beat(user_id, device_session_id)

    def end_device(self, user_id: str, device_session_id: str) -> None:
        with self._lock:
            self._devices.end_session(user_id, device_session_id)
            self._abandon_device_quizzes(device_session_id)

    # --- User Profiles ---

    def list_users(
        self,
        *,
        search: str | None = None,
        status: UserStatus | None = None,
        page: int = 1,
        page_size: int = USERS_PER_PAGE,
    ) -> UserPage:
        with self._lock:
            return paginate(self._users.list_users(search=search, status=status), page, page_size)

    def pending_user_count(self) -> int:
        with self._lock:
            return self._users.pending_count()

    def get_user(self, user_id: str) -> UserProfile:
        with self._lock:
            return self._users.get(user_id)

    def create_user(
        self,
        email: str,
        *,
        full_name: str | None = None,
        role: UserRole = UserRole.USER,
        user_id: str | None = None,
    ) -> UserProfile:
        with self._lock:
            profile = self._users.create(email, full_name=full_name, role=role, user_id=user_id)
            logger.info("User %s created as %s", profile.id, profile.role.value)
            return profile

    def register_user(
        self,
        email: str,
        *,
        full_name: str | None = None,
        user_id: str | None = None,
    ) -> UserProfile:
        with self._lock:
            profile = self._users.register(email, full_name=full_name, user_id=user_id)
            logger.info("User %s registered, awaiting approval", profile.id)
            return profile

    def update_user(
        self,
        user_id: str,
        *,
        full_name: str | None = None,
        role: UserRole | None = None,
        status: UserStatus | None = None,
    ) -> UserProfile:
        with self._lock:
            profile = self._users.update(user_id, full_name=full_name, role=role, status=status)
            if profile.status is not UserStatus.ACTIVE:
                self._devices.end_user_sessions(user_id)
            return profile

    def approve_user(self, user_id: str) -> UserProfile:
        with self._lock:
            return self._users.approve(user_id)

    def reject_user(self, user_id: str) -> None:
        with self._lock:
            self._users.reject(user_id)

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self._users.delete(user_id)
            self._devices.end_user_sessions(user_id)
            logger.info("User %s deleted", user_id)

    # --- Internals ---

    def _register(
        self,
        session: QuizSession,
        user_name: str | None,
        device_session_id: str | None,
    ) -> None:
        self._sessions[session.id] = session
        if user_name:
            self._user_names[session.id] = user_name
        if device_session_id:
            self._session_devices[session.id] = device_session_id

    def _active_session(self, session_id: str) -> QuizSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Quiz session {session_id!r} not found")
        session.sync_timer()
        return session

    def _snapshot(self, session: QuizSession) -> SessionSnapshot:
        question: Question | None = None
        answer: UserAnswer | None = None
        if session.state is not SessionState.SETUP:
            question, answer = session.current()
        timer = session.timer
        return SessionSnapshot(
            session_id=session.id,
            state=session.state,
            mode=session.mode,
            is_review=session.is_review,
            current_index=session.current_index,
            total_questions=session.total_questions,
            time_limit=timer.time_limit if timer is not None else session.remaining_seconds,
            remaining_seconds=session.remaining_seconds,
            timer_state=timer.state if timer is not None else None,
            answered_count=session.answered_count(),
            marked_count=session.marked_count(),
            question=question,
            answer=answer,
            feedback_visible=session.feedback_visible(session.current_index),
            answers=session.answers,
            result=session.result,
        )

    def _forget(self, session_id: str) -> QuizSession | None:
        session = self._sessions.pop(session_id, None)
        self._user_names.pop(session_id, None)
        self._session_devices.pop(session_id, None)
        if session_id in self._submitted:
            self._submitted.remove(session_id)
        return session

    def _handle_submitted(self, session: QuizSession, result: QuizResult) -> None:
        self._record_result(session, result)
        self._submitted.append(session.id)
        while len(self._submitted) > self._submitted_retention:
            evicted = self._submitted.popleft()
            self._forget(evicted)
            logger.debug("Submitted session %s evicted", evicted)

    def _record_result(self, session: QuizSession, result: QuizResult) -> None:
        """Persist exam results of signed-in users; failures never touch ``result``."""
        if session.is_review or session.mode is not QuizMode.EXAM or not session.user_id:
            return
        stored = StoredResult(
            user_id=session.user_id,
            user_name=self._user_names.get(session.id),
            score=result.score,
            total_questions=result.correct_answers + result.wrong_answers + result.unanswered,
            correct_answers=result.correct_answers,
            time_spent=result.time_spent,
            quiz_type=session.mode,
        )
        try:
            self._results.add(stored)
        except ResultStoreError:
            logger.exception("Could not save the result of session %s", session.id)

    def _handle_device_terminated(self, user_id: str, device_session_id: str) -> None:
        self._abandon_device_quizzes(device_session_id)
        if self._on_device_terminated is not None:
            self._on_device_terminated(user_id, device_session_id)

    def _abandon_device_quizzes(self, device_session_id: str) -> None:
        for quiz_id, device_id in list(self._session_devices.items()):
            if device_id != device_session_id:
                continue
            session = self._forget(quiz_id)
            if session is not None and session.state is SessionState.IN_PROGRESS:
                session.abandon()
                logger.info("Session %s abandoned after device sign-out", quiz_id)
