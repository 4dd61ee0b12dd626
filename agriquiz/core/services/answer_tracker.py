"""Per-question answer state for a running session."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from agriquiz.core.models import Question, UserAnswer


class AnswerTracker:
    """Holds one :class:`UserAnswer` per selected question, by position.

    Records are never mutated; every change swaps in a new record at the
    position so earlier snapshots stay valid.
    """

    def __init__(self, answers: Sequence[UserAnswer]) -> None:
        self._answers: list[UserAnswer] = list(answers)
        self._frozen: bool = False

    @classmethod
    def for_questions(cls, questions: Sequence[Question]) -> AnswerTracker:
        return cls([UserAnswer(question_id=question.id) for question in questions])

    def __len__(self) -> int:
        return len(self._answers)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def get(self, position: int) -> UserAnswer:
        self._check_position(position)
        return self._answers[position]

    def snapshot(self) -> tuple[UserAnswer, ...]:
        return tuple(self._answers)

    def select_answer(self, position: int, option_index: int) -> UserAnswer:
        # Option range is the caller's concern; only valid buttons are offered.
        return self._replace(position, selected_answer=option_index)

    def toggle_mark(self, position: int) -> UserAnswer:
        current = self.get(position)
        return self._replace(position, is_marked=not current.is_marked)

    def tick(self, position: int) -> UserAnswer:
        current = self.get(position)
        return self._replace(position, time_spent=current.time_spent + 1)

    def answered_count(self) -> int:
        return sum(1 for answer in self._answers if answer.is_answered)

    def marked_count(self) -> int:
        return sum(1 for answer in self._answers if answer.is_marked)

    def _replace(self, position: int, **changes: object) -> UserAnswer:
        if self._frozen:
            raise RuntimeError("Answers cannot change after the quiz has been submitted.")
        updated = replace(self.get(position), **changes)
        self._answers[position] = updated
        return updated

    def _check_position(self, position: int) -> None:
        if not 0 <= position < len(self._answers):
            raise IndexError(f"Answer position {position} out of range")
