"""Service for managing the question bank that quizzes draw from."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping
from uuid import uuid4

from agriquiz.constants.quiz_constants import MAX_OPTIONS, MIN_OPTIONS
from agriquiz.core.models import Question


class QuestionValidationError(ValueError):
    """Raised when a question cannot be stored in the bank."""


class QuestionBank:
    """Manages the lifecycle and storage of bank questions."""

    def __init__(self) -> None:
        self._questions: list[Question] = []

    def load_questions(self, questions: Iterable[Question]) -> int:
        """Replace the whole bank with ``questions``."""
        prepared = [self._prepare_question(q) for q in questions]
        self._check_unique_ids(prepared)
        self._questions = prepared
        return len(prepared)

    def add_questions(self, questions: Iterable[Question]) -> int:
        """Append ``questions`` to the bank and return how many were added."""
        prepared = [self._prepare_question(q) for q in questions]
        self._check_unique_ids(self._questions + prepared)
        self._questions.extend(prepared)
        return len(prepared)

    def get_questions(self, category: str | None = None) -> list[Question]:
        """Return a copy of the bank, optionally limited to one category."""
        if category is None:
            return list(self._questions)
        return [q for q in self._questions if q.category == category]

    def has_questions(self) -> bool:
        return bool(self._questions)

    def get_question_count(self) -> int:
        return len(self._questions)

    def get_question(self, question_id: str) -> Question:
        return self._questions[self._index_of(question_id)]

    def update_question(self, question_id: str, question: Question) -> Question:
        index = self._index_of(question_id)
        prepared = self._prepare_question(question)
        # Preserve the original ID
        prepared = Question(
            id=question_id,
            question=prepared.question,
            options=prepared.options,
            correct_answer=prepared.correct_answer,
            category=prepared.category,
            explanation=prepared.explanation,
        )
        self._questions[index] = prepared
        return prepared

    def delete_question(self, question_id: str) -> None:
        self._questions.pop(self._index_of(question_id))

    def clear(self) -> None:
        self._questions = []

    def categories(self) -> dict[str, int]:
        """Number of questions per category, in first-seen order."""
        return dict(Counter(q.category for q in self._questions))

    def check_category_availability(
        self,
        categories: Mapping[str, int],
        total_questions: int,
    ) -> list[str]:
        """Describe every way ``categories`` cannot be satisfied by the bank.

        Quiz selection tolerates over-requests by returning fewer questions,
        so configuration editors call this to warn before saving.
        """
        available = self.categories()
        problems: list[str] = []

        missing = [name for name in categories if available.get(name, 0) == 0]
        for name in missing:
            problems.append(f"Category '{name}' does not exist or has no questions.")

        requested_total = sum(count for count in categories.values() if count > 0)
        if requested_total > total_questions:
            problems.append(
                f"Category counts add up to {requested_total}, "
                f"more than the {total_questions} questions of the quiz."
            )

        for name, count in categories.items():
            if name in missing:
                continue
            if count > available[name]:
                problems.append(
                    f"Category '{name}': requested {count} questions, only {available[name]} available."
                )
        return problems

    def _index_of(self, question_id: str) -> int:
        for index, question in enumerate(self._questions):
            if question.id == question_id:
                return index
        raise KeyError(f"Question {question_id!r} not found")

    def _prepare_question(self, question: Question) -> Question:
        """Validate and normalize a question before storage."""
        cleaned_text = question.question.strip()
        if not cleaned_text:
            raise QuestionValidationError("Question text must not be empty.")

        options = self._validate_options(question.options)
        correct = question.correct_answer
        if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
            raise QuestionValidationError(
                f"Correct answer must be an option index between 0 and {len(options) - 1}."
            )

        category = question.category.strip()
        if not category:
            raise QuestionValidationError("Question category must not be empty.")

        explanation = (question.explanation or "").strip() or None
        return Question(
            id=(question.id or "").strip() or uuid4().hex,
            question=cleaned_text,
            options=options,
            correct_answer=correct,
            category=category,
            explanation=explanation,
        )

    @staticmethod
    def _validate_options(options: Iterable[str]) -> tuple[str, ...]:
        cleaned = tuple(option.strip() for option in options)
        if not MIN_OPTIONS <= len(cleaned) <= MAX_OPTIONS:
            raise QuestionValidationError(
                f"Each question must have between {MIN_OPTIONS} and {MAX_OPTIONS} options."
            )
        if any(not option for option in cleaned):
            raise QuestionValidationError("Option text cannot be empty.")
        return cleaned

    @staticmethod
    def _check_unique_ids(questions: list[Question]) -> None:
        counts = Counter(q.id for q in questions)
        duplicates = sorted(qid for qid, count in counts.items() if count > 1)
        if duplicates:
            raise QuestionValidationError(f"Duplicate question ids: {', '.join(duplicates)}")
