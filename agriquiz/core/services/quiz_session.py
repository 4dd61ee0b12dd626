"""Lifecycle of a single quiz attempt: setup, in progress, submitted."""

from __future__ import annotations

from enum import Enum
import logging
import math
import random
from typing import Callable, Sequence
from uuid import uuid4

from agriquiz.constants.quiz_constants import REVIEW_TIME_LIMIT_SECONDS
from agriquiz.core.models import Question, QuizConfig, QuizMode, QuizResult, UserAnswer
from agriquiz.core.scheduling import Clock, Scheduler, wall_clock_ms
from agriquiz.core.services.answer_tracker import AnswerTracker
from agriquiz.core.services.countdown_timer import CountdownTimer
from agriquiz.core.services.question_selector import select_questions
from agriquiz.core.services.scorer import score_answers

logger = logging.getLogger(__name__)

Selector = Callable[[Sequence[Question], QuizConfig], list[Question]]


class SessionState(str, Enum):
    SETUP = "setup"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class SessionSetupError(ValueError):
    """Raised when a session cannot start; the session stays in setup."""


class SessionStateError(RuntimeError):
    """Raised when an operation does not fit the current session state."""


class SessionIntegrityError(RuntimeError):
    """Question and answer positions no longer line up; restart from setup."""


class QuizSession:
    """Runs one attempt at a configured set of questions."""

    def __init__(
        self,
        pool: Sequence[Question],
        config: QuizConfig,
        *,
        user_id: str | None = None,
        is_review: bool = False,
        on_submitted: Callable[[QuizSession, QuizResult], None] | None = None,
        clock: Clock = wall_clock_ms,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        selector: Selector | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.config = config
        self.user_id = user_id
        self.is_review = is_review

        self._pool: tuple[Question, ...] = tuple(pool)
        self._on_submitted = on_submitted
        self._clock = clock
        self._scheduler = scheduler
        self._rng = rng or random.Random()
        self._selector = selector

        self._state = SessionState.SETUP
        self._questions: list[Question] = []
        self._tracker = AnswerTracker([])
        self._timer: CountdownTimer | None = None
        self._cursor: int = 0
        self._started_at_ms: int | None = None
        self._result: QuizResult | None = None

    # --- Lifecycle ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> QuizMode:
        return self.config.mode

    @property
    def result(self) -> QuizResult | None:
        return self._result

    @property
    def timer(self) -> CountdownTimer | None:
        return self._timer

    def start(self) -> None:
        """Select questions and start the countdown."""
        if self._state is not SessionState.SETUP:
            raise SessionStateError("This quiz has already been started.")
        if not self._pool:
            raise SessionSetupError("There are no questions available to start a quiz.")

        time_limit = self.config.time_limit
        if (
            isinstance(time_limit, bool)
            or not isinstance(time_limit, (int, float))
            or not math.isfinite(time_limit)
            or time_limit <= 0
        ):
            raise SessionSetupError("The time limit must be a positive number of seconds.")

        if self._selector is not None:
            selected = self._selector(self._pool, self.config)
        else:
            selected = select_questions(self._pool, self.config, self._rng)
        if not selected:
            raise SessionSetupError(
                "No questions match this configuration. Please check the selected categories."
            )

        self._questions = list(selected)
        self._pool = ()
        self._tracker = AnswerTracker.for_questions(self._questions)
        self._cursor = 0
        self._timer = CountdownTimer(
            time_limit,
            self._handle_time_up,
            clock=self._clock,
            scheduler=self._scheduler,
            on_tick=self._handle_tick,
        )
        self._started_at_ms = self._clock()
        self._state = SessionState.IN_PROGRESS
        logger.info(
            "Session %s started: %s questions, %s mode, %s seconds",
            self.id, len(self._questions), self.mode.value, self._timer.time_limit,
        )
        self._timer.start()

    def submit(self) -> QuizResult:
        """Score the session. Repeated calls return the same result."""
        if self._state is SessionState.SUBMITTED and self._result is not None:
            return self._result
        if self._state is not SessionState.IN_PROGRESS:
            raise SessionStateError("Only a quiz in progress can be submitted.")

        if self._timer is not None:
            self._timer.cancel()
        self._tracker.freeze()
        elapsed_ms = self._clock() - (self._started_at_ms or self._clock())
        try:
            result = score_answers(
                self._questions, self._tracker.snapshot(), max(0, elapsed_ms) // 1000
            )
        except ValueError as exc:
            raise SessionIntegrityError(str(exc)) from exc

        self._result = result
        self._state = SessionState.SUBMITTED
        logger.info(
            "Session %s submitted: %s/%s correct (%.1f%%)",
            self.id, result.correct_answers, result.total_questions, result.score,
        )
        if self._on_submitted is not None:
            self._on_submitted(self, result)
        return result

    def abandon(self) -> None:
        """Stop the countdown of a session that is being discarded."""
        if self._timer is not None:
            self._timer.cancel()

    def start_review(self, **overrides: object) -> QuizSession:
        """Create and start a practice session over the wrongly answered questions."""
        if self._state is not SessionState.SUBMITTED or self._result is None:
            raise SessionStateError("Submit the quiz before reviewing wrong answers.")
        wrong = list(self._result.wrong_questions)
        if not wrong:
            raise SessionSetupError("There are no wrong answers to review.")

        review_config = QuizConfig(
            mode=QuizMode.PRACTICE,
            time_limit=REVIEW_TIME_LIMIT_SECONDS,
            total_questions=len(wrong),
            categories={},
        )
        options: dict[str, object] = {
            "user_id": self.user_id,
            "clock": self._clock,
            "scheduler": self._scheduler,
        }
        options.update(overrides)
        review = QuizSession(
            wrong,
            review_config,
            is_review=True,
            selector=lambda pool, _config: list(pool),
            **options,
        )
        review.start()
        return review

    # --- Timer ---

    @property
    def remaining_seconds(self) -> int:
        if self._timer is None:
            limit = self.config.time_limit
            return limit if isinstance(limit, int) and limit > 0 else 0
        return self._timer.remaining

    def sync_timer(self) -> int:
        """Bring the countdown up to date; may submit the session on expiry."""
        if self._timer is not None and self._state is SessionState.IN_PROGRESS:
            return self._timer.sync()
        return self.remaining_seconds

    def pause(self) -> None:
        self._require_in_progress()
        self._timer.pause()

    def resume(self) -> None:
        self._require_in_progress()
        self._timer.start()

    def _handle_time_up(self) -> None:
        if self._state is SessionState.IN_PROGRESS:
            logger.info("Session %s ran out of time", self.id)
            self.submit()

    def _handle_tick(self, _remaining: int) -> None:
        if self._state is SessionState.IN_PROGRESS and 0 <= self._cursor < len(self._tracker):
            self._tracker.tick(self._cursor)

    # --- Questions and answers ---

    @property
    def questions(self) -> tuple[Question, ...]:
        return tuple(self._questions)

    @property
    def answers(self) -> tuple[UserAnswer, ...]:
        return self._tracker.snapshot()

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def current_index(self) -> int:
        return self._cursor

    def current(self) -> tuple[Question, UserAnswer]:
        """Question and answer under the cursor."""
        return self.entry_at(self._cursor)

    def entry_at(self, position: int) -> tuple[Question, UserAnswer]:
        if len(self._questions) != len(self._tracker):
            raise SessionIntegrityError(
                "The answer sheet no longer matches the questions. Please return to setup."
            )
        if not 0 <= position < len(self._questions):
            raise SessionIntegrityError(f"Question {position + 1} could not be loaded.")
        question = self._questions[position]
        answer = self._tracker.get(position)
        if answer.question_id != question.id:
            raise SessionIntegrityError(
                "The answer sheet no longer matches the questions. Please return to setup."
            )
        return question, answer

    def select_answer(self, option_index: int) -> UserAnswer:
        self._require_in_progress()
        self.current()
        return self._tracker.select_answer(self._cursor, option_index)

    def toggle_mark(self) -> UserAnswer:
        self._require_in_progress()
        self.current()
        return self._tracker.toggle_mark(self._cursor)

    def feedback_visible(self, position: int) -> bool:
        """Whether correctness may be shown for the question at ``position``."""
        if self._state is SessionState.SUBMITTED:
            return True
        if self.mode is QuizMode.PRACTICE and 0 <= position < len(self._tracker):
            return self._tracker.get(position).is_answered
        return False

    def answered_count(self) -> int:
        return self._tracker.answered_count()

    def marked_count(self) -> int:
        return self._tracker.marked_count()

    # --- Navigation ---

    def go_to(self, index: int) -> int:
        if self._questions:
            self._cursor = min(max(index, 0), len(self._questions) - 1)
        return self._cursor

    def go_next(self) -> int:
        return self.go_to(self._cursor + 1)

    def go_previous(self) -> int:
        return self.go_to(self._cursor - 1)

    def _require_in_progress(self) -> None:
        if self._state is SessionState.SETUP:
            raise SessionStateError("The quiz has not started yet.")
        if self._state is SessionState.SUBMITTED:
            raise SessionStateError("The quiz has already been submitted.")
