"""Rankings and personal statistics computed from stored exam results."""

from __future__ import annotations

from dataclasses import dataclass

from agriquiz.constants.quiz_constants import LEADERBOARD_SIZE
from agriquiz.core.models import QuizMode, StoredResult
from agriquiz.core.services.result_store import ResultStore


@dataclass(slots=True)
class RankingEntry:
    """Mutable per-user aggregate used internally."""

    user_id: str
    user_name: str | None = None
    total_score: float = 0.0
    total_attempts: int = 0
    best_score: float = 0.0
    best_time: int = 0


@dataclass(slots=True)
class LeaderboardRow:
    """Immutable snapshot returned to consumers."""

    user_id: str
    user_name: str | None
    average_score: float
    total_attempts: int
    best_score: float
    best_time: int
    rank: int


@dataclass(slots=True)
class UserStatistics:
    ranking: LeaderboardRow | None
    total_ranked_users: int
    recent_result: StoredResult | None
    performance_level: str | None


def performance_level(score: float) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 80:
        return "Good"
    if score >= 70:
        return "Fair"
    if score >= 60:
        return "Average"
    return "Needs improvement"


class Leaderboard:
    """Ranks users by their exam results."""

    def __init__(self, results: ResultStore) -> None:
        self._results = results

    def rankings(self) -> list[LeaderboardRow]:
        """All ranked users: average score, then best score, then fastest best."""
        entries: dict[str, RankingEntry] = {}
        for result in self._results.all(QuizMode.EXAM):
            entry = entries.get(result.user_id)
            if entry is None:
                entry = RankingEntry(user_id=result.user_id, best_time=result.time_spent)
                entries[result.user_id] = entry

            entry.total_attempts += 1
            entry.total_score += result.score
            if result.user_name:
                entry.user_name = result.user_name
            if entry.total_attempts == 1 or result.score > entry.best_score or (
                result.score == entry.best_score and result.time_spent < entry.best_time
            ):
                entry.best_score = result.score
                entry.best_time = result.time_spent

        sorted_entries = sorted(
            entries.values(),
            key=lambda e: (-(e.total_score / e.total_attempts), -e.best_score, e.best_time),
        )
        return [
            LeaderboardRow(
                user_id=entry.user_id,
                user_name=entry.user_name,
                average_score=entry.total_score / entry.total_attempts,
                total_attempts=entry.total_attempts,
                best_score=entry.best_score,
                best_time=entry.best_time,
                rank=rank,
            )
            for rank, entry in enumerate(sorted_entries, start=1)
        ]

    def top(self, limit: int = LEADERBOARD_SIZE) -> list[LeaderboardRow]:
        return self.rankings()[:limit]

    def user_statistics(self, user_id: str) -> UserStatistics:
        rankings = self.rankings()
        ranking = next((row for row in rankings if row.user_id == user_id), None)
        recent = self._results.for_user(user_id, QuizMode.EXAM, limit=1)
        return UserStatistics(
            ranking=ranking,
            total_ranked_users=len(rankings),
            recent_result=recent[0] if recent else None,
            performance_level=performance_level(ranking.average_score) if ranking else None,
        )
