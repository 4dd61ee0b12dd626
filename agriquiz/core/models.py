"""Domain models for the quiz service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4


class QuizMode(str, Enum):
    """Practice reveals feedback per answer; exam withholds it until submission."""

    PRACTICE = "practice"
    EXAM = "exam"


@dataclass(frozen=True, slots=True)
class Question:
    """Multiple-choice question with two to four options."""

    id: str
    question: str
    options: tuple[str, ...]
    correct_answer: int
    category: str
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class QuizConfig:
    """How a session picks its questions and how long it runs."""

    mode: QuizMode
    time_limit: int  # seconds
    total_questions: int
    categories: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UserAnswer:
    """Answer state for one question of a session."""

    question_id: str
    selected_answer: int | None = None
    is_marked: bool = False
    time_spent: int = 0

    @property
    def is_answered(self) -> bool:
        return self.selected_answer is not None


@dataclass(frozen=True, slots=True)
class QuizResult:
    """Scored outcome of a submitted session."""

    total_questions: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    score: float
    time_spent: int
    answers: tuple[UserAnswer, ...]
    wrong_questions: tuple[Question, ...] = ()


@dataclass(slots=True)
class QuizTemplate:
    """Ready-made quiz configuration published by an administrator."""

    id: str
    name: str
    mode: QuizMode
    time_limit_minutes: int
    total_questions: int
    categories: dict[str, int]
    description: str = ""
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_config(self) -> QuizConfig:
        return QuizConfig(
            mode=self.mode,
            time_limit=self.time_limit_minutes * 60,
            total_questions=self.total_questions,
            categories=dict(self.categories),
        )


@dataclass(frozen=True, slots=True)
class StoredResult:
    """Persisted summary of an exam-mode result."""

    user_id: str
    score: float
    total_questions: int
    correct_answers: int
    time_spent: int
    quiz_type: QuizMode = QuizMode.EXAM
    user_name: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def percentage(self) -> float:
        return self.score


@dataclass(slots=True)
class ActiveSession:
    """A signed-in device for a user, kept alive by heartbeats."""

    user_id: str
    session_id: str
    device_info: str
    ip_address: str
    is_active: bool
    last_activity: datetime
    created_at: datetime = field(default_factory=datetime.utcnow)


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class UserStatus(str, Enum):
    """Self-registered accounts start pending until an administrator approves them."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


@dataclass(slots=True)
class UserProfile:
    """Portal profile of a user; credentials stay with the auth provider."""

    id: str
    email: str
    full_name: str | None = None
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
