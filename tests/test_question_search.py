from __future__ import annotations

import pytest

from agriquiz.core.models import Question
from agriquiz.core.question_search import normalize_text, search_questions, similarity


def question(qid: str, text: str, options=("Yes", "No"), category: str = "Credit") -> Question:
    return Question(id=qid, question=text, options=tuple(options), correct_answer=0, category=category)


@pytest.fixture
def bank() -> list[Question]:
    return [
        question("q1", "What is the maximum term of a short-term loan?"),
        question("q2", "Which documents are required to open a savings account?", category="Deposits"),
        question("q3", "Interest on deposits is paid when?", options=("Monthly", "At maturity"), category="Deposits"),
        question("q4", "Who approves collateral valuation?"),
    ]


def test_normalize_text() -> None:
    assert normalize_text("  Hello,   World! (Test) ") == "hello world test"


def test_similarity_levels() -> None:
    assert similarity("Savings account", "savings ACCOUNT!") == 1.0
    assert similarity("Open a savings account today", "savings account") == 0.95
    assert similarity("loan", "short term loan") == 0.9
    assert similarity("anything", "") == 0.0
    assert similarity("collateral valuation", "unrelated words entirely") == 0.0


def test_partial_word_overlap() -> None:
    # two of three search words match
    assert similarity("interest on deposits", "deposits interest rate") == pytest.approx(0.6 + (2 / 3) * 0.3)
    # one of three
    assert similarity("interest on deposits", "deposits fee rate") == pytest.approx((1 / 3) * 0.5)


def test_search_returns_best_first_with_positions(bank) -> None:
    hits = search_questions(bank, "savings account")

    assert hits[0].question.id == "q2"
    assert hits[0].position == 2
    assert hits[0].similarity == 0.95


def test_search_matches_option_text(bank) -> None:
    hits = search_questions(bank, "at maturity")

    assert hits[0].question.id == "q3"
    assert hits[0].similarity == 1.0


def test_search_respects_category_and_limit(bank) -> None:
    hits = search_questions(bank, "deposits", category="Deposits")
    assert {hit.question.id for hit in hits} <= {"q2", "q3"}

    assert len(search_questions(bank, "a e i o", limit=2)) <= 2


def test_blank_keyword_finds_nothing(bank) -> None:
    assert search_questions(bank, "   ") == []
