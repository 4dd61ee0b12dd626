from __future__ import annotations

from dataclasses import dataclass, field
import random
from typing import Callable

import pytest

from agriquiz.core.models import Question


class FakeClock:
    """Millisecond clock moved by hand."""

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@dataclass
class ManualCall:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Scheduler whose callbacks only run when the test advances it."""

    clock: FakeClock | None = None
    now: float = 0.0
    calls: list[ManualCall] = field(default_factory=list)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(due=self.now + delay_seconds, callback=callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[ManualCall]:
        return [c for c in self.calls if not c.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward, running due callbacks in order along the way."""
        target = self.now + seconds
        while True:
            due = [c for c in self.pending if c.due <= target]
            if not due:
                break
            call = min(due, key=lambda c: c.due)
            step = call.due - self.now
            self.now = call.due
            if self.clock is not None:
                self.clock.advance(step)
            call.cancelled = True
            call.callback()
        if self.clock is not None:
            self.clock.advance(target - self.now)
        self.now = target


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock=clock)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


def make_question(qid: str, category: str = "Math", correct: int = 0, text: str | None = None) -> Question:
    return Question(
        id=qid,
        question=text or f"Question {qid}?",
        options=("Alpha", "Beta", "Gamma", "Delta"),
        correct_answer=correct,
        category=category,
        explanation=f"Because of {qid}.",
    )


@pytest.fixture
def sample_questions() -> list[Question]:
    math = [make_question(f"m{i}", "Math") for i in range(5)]
    history = [make_question(f"h{i}", "History", correct=1) for i in range(4)]
    science = [make_question(f"s{i}", "Science", correct=2) for i in range(3)]
    return math + history + science
