"""Quick answer lookup: fuzzy free-text search over the question bank."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Sequence

from agriquiz.constants.quiz_constants import SEARCH_MIN_SIMILARITY, SEARCH_RESULT_LIMIT
from agriquiz.core.models import Question

_PUNCTUATION = re.compile(r"[.,!?;:()\"\[\]{}]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class SearchHit:
    question: Question
    position: int  # 1-based position in the searched sequence
    similarity: float


def normalize_text(text: str) -> str:
    """Lower-case, turn punctuation into spaces and collapse whitespace."""
    lowered = _PUNCTUATION.sub(" ", text.lower().strip())
    return _WHITESPACE.sub(" ", lowered).strip()


def similarity(text: str, keyword: str) -> float:
    """Score in ``[0, 1]`` for how well ``keyword`` matches ``text``."""
    s1 = normalize_text(text)
    s2 = normalize_text(keyword)

    if s1 == s2:
        return 1.0
    if s2 and s2 in s1:
        return 0.95
    if s1 and s1 in s2:
        return 0.9

    words = s1.split()
    search_words = s2.split()
    if not search_words:
        return 0.0

    matched = 0
    for search_word in search_words:
        for word in words:
            if len(search_word) <= 2:
                hit = search_word in word
            else:
                hit = search_word in word or word in search_word
            if hit:
                matched += 1
                break

    if matched == 0:
        return 0.0
    ratio = matched / len(search_words)
    if ratio >= 0.5:
        return 0.6 + ratio * 0.3
    return ratio * 0.5


def search_questions(
    questions: Sequence[Question],
    keyword: str,
    category: str | None = None,
    limit: int = SEARCH_RESULT_LIMIT,
) -> list[SearchHit]:
    """Best matches for ``keyword`` across question texts and their options."""
    if not keyword.strip():
        return []

    hits: list[SearchHit] = []
    for position, question in enumerate(questions, start=1):
        if category is not None and question.category != category:
            continue
        score = max(
            [similarity(question.question, keyword)]
            + [similarity(option, keyword) for option in question.options]
        )
        if score > SEARCH_MIN_SIMILARITY:
            hits.append(SearchHit(question=question, position=position, similarity=score))

    hits.sort(key=lambda hit: hit.similarity, reverse=True)
    return hits[:limit]
