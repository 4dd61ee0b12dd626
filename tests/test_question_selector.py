from __future__ import annotations

from collections import Counter
import random

from agriquiz.core.models import QuizConfig, QuizMode
from agriquiz.core.services.question_selector import select_questions


def config(total: int, categories: dict[str, int] | None = None) -> QuizConfig:
    return QuizConfig(mode=QuizMode.PRACTICE, time_limit=600, total_questions=total, categories=categories or {})


def test_without_categories_picks_total_from_whole_pool(sample_questions, rng) -> None:
    selected = select_questions(sample_questions, config(6), rng)

    assert len(selected) == 6
    assert {q.id for q in selected} <= {q.id for q in sample_questions}


def test_without_categories_caps_at_pool_size(sample_questions, rng) -> None:
    assert len(select_questions(sample_questions, config(50), rng)) == len(sample_questions)


def test_category_counts_are_honoured(sample_questions, rng) -> None:
    selected = select_questions(sample_questions, config(5, {"Math": 3, "History": 2}), rng)

    assert Counter(q.category for q in selected) == {"Math": 3, "History": 2}


def test_over_requested_category_yields_what_exists(sample_questions, rng) -> None:
    selected = select_questions(sample_questions, config(10, {"Science": 8, "Art": 2}), rng)

    assert len(selected) == 3
    assert all(q.category == "Science" for q in selected)


def test_zero_counts_are_skipped(sample_questions, rng) -> None:
    selected = select_questions(sample_questions, config(2, {"Math": 0, "History": 2}), rng)

    assert [q.category for q in selected] == ["History", "History"]


def test_selection_never_repeats_a_question(sample_questions) -> None:
    for seed in range(25):
        selected = select_questions(
            sample_questions,
            config(9, {"Math": 4, "History": 3, "Science": 2}),
            random.Random(seed),
        )
        ids = [q.id for q in selected]
        assert len(ids) == len(set(ids))


def test_empty_pool_gives_empty_selection(rng) -> None:
    assert select_questions([], config(5), rng) == []
