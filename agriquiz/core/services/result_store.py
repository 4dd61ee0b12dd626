"""Storage for exam results, optionally mirrored to a JSON file."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
import json
import logging
from pathlib import Path

from agriquiz.core.models import QuizMode, StoredResult

logger = logging.getLogger(__name__)


class ResultStoreError(RuntimeError):
    """Raised when results cannot be read from or written to disk."""


class ResultStore:
    """Keeps stored results in memory and, with a path, on disk.

    A results file that cannot be loaded is logged and left untouched: the
    store starts empty and refuses writes until the file is repaired.
    """

    def __init__(self, file_path: Path | None = None) -> None:
        self._file_path = file_path.resolve() if file_path is not None else None
        self._results: list[StoredResult] = []
        self._load_error: ResultStoreError | None = None
        if self._file_path is not None and self._file_path.exists():
            try:
                self._results = self._read_file(self._file_path)
            except ResultStoreError as exc:
                logger.exception("Could not load results; starting with none")
                self._load_error = exc

    @property
    def is_writable(self) -> bool:
        return self._load_error is None

    def add(self, result: StoredResult) -> StoredResult:
        if self._load_error is not None:
            raise ResultStoreError(
                f"{self._file_path} could not be loaded and stays untouched until it is repaired"
            ) from self._load_error
        if self._file_path is not None:
            self._write_file(self._file_path, self._results + [result])
        self._results.append(result)
        return result

    def all(self, quiz_type: QuizMode | None = None) -> list[StoredResult]:
        if quiz_type is None:
            return list(self._results)
        return [r for r in self._results if r.quiz_type is quiz_type]

    def for_user(
        self,
        user_id: str,
        quiz_type: QuizMode | None = None,
        limit: int | None = None,
    ) -> list[StoredResult]:
        """Results of one user, newest first."""
        matching = [r for r in self.all(quiz_type) if r.user_id == user_id]
        matching.sort(key=lambda r: r.created_at, reverse=True)
        return matching if limit is None else matching[:limit]

    @staticmethod
    def _write_file(file_path: Path, results: list[StoredResult]) -> None:
        document = json.dumps([_serialize_result(r) for r in results], indent=2)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(document + "\n", encoding="utf-8")
        except OSError as exc:
            raise ResultStoreError(f"Could not save results to {file_path}: {exc}") from exc

    @staticmethod
    def _read_file(file_path: Path) -> list[StoredResult]:
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
            return [_deserialize_result(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise ResultStoreError(f"Could not load results from {file_path}: {exc}") from exc


def _serialize_result(result: StoredResult) -> dict[str, object]:
    data = asdict(result)
    data["quiz_type"] = result.quiz_type.value
    data["created_at"] = result.created_at.isoformat()
    return data


def _deserialize_result(data: dict[str, object]) -> StoredResult:
    return StoredResult(
        id=str(data["id"]),
        user_id=str(data["user_id"]),
        user_name=data.get("user_name"),
        score=float(data["score"]),
        total_questions=int(data["total_questions"]),
        correct_answers=int(data["correct_answers"]),
        time_spent=int(data["time_spent"]),
        quiz_type=QuizMode(data["quiz_type"]),
        created_at=datetime.fromisoformat(str(data["created_at"])),
    )
