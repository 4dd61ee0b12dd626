"""Scoring of a finished session."""

from __future__ import annotations

from typing import Sequence

from agriquiz.core.models import Question, QuizResult, UserAnswer


def score_answers(
    questions: Sequence[Question],
    answers: Sequence[UserAnswer],
    time_spent: int = 0,
) -> QuizResult:
    """Build a :class:`QuizResult` from aligned question and answer sequences.

    The score is an unrounded percentage and is 0.0 for an empty quiz.
    """
    if len(questions) != len(answers):
        raise ValueError(
            f"Cannot score {len(answers)} answers against {len(questions)} questions."
        )

    correct = 0
    wrong_questions: list[Question] = []
    unanswered = 0
    for question, answer in zip(questions, answers):
        if answer.selected_answer is None:
            unanswered += 1
        elif answer.selected_answer == question.correct_answer:
            correct += 1
        else:
            wrong_questions.append(question)

    total = len(questions)
    score = (correct / total) * 100 if total else 0.0
    return QuizResult(
        total_questions=total,
        correct_answers=correct,
        wrong_answers=len(wrong_questions),
        unanswered=unanswered,
        score=score,
        time_spent=time_spent,
        answers=tuple(answers),
        wrong_questions=tuple(wrong_questions),
    )
