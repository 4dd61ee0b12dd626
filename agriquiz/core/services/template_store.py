"""Service for managing ready-made quiz templates."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from agriquiz.constants.quiz_constants import (
    DEFAULT_TEMPLATE_TIME_LIMIT_MINUTES,
    DEFAULT_TEMPLATE_TOTAL_QUESTIONS,
)
from agriquiz.core.models import QuizMode, QuizTemplate
from agriquiz.core.services.question_bank import QuestionBank


class TemplateValidationError(ValueError):
    """Raised when a template cannot be satisfied by the question bank."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("\n".join(problems))
        self.problems = problems


class TemplateStore:
    """Keeps quiz templates and checks them against the question bank."""

    def __init__(self, question_bank: QuestionBank) -> None:
        self._question_bank = question_bank
        self._templates: dict[str, QuizTemplate] = {}

    def create(
        self,
        name: str,
        *,
        mode: QuizMode = QuizMode.PRACTICE,
        time_limit_minutes: int = DEFAULT_TEMPLATE_TIME_LIMIT_MINUTES,
        total_questions: int = DEFAULT_TEMPLATE_TOTAL_QUESTIONS,
        categories: dict[str, int] | None = None,
        description: str = "",
        created_by: str | None = None,
    ) -> QuizTemplate:
        template = QuizTemplate(
            id=uuid4().hex,
            name=name.strip(),
            description=description.strip(),
            mode=QuizMode(mode),
            time_limit_minutes=time_limit_minutes,
            total_questions=total_questions,
            categories=dict(categories or {}),
            created_by=created_by,
        )
        self._validate(template)
        self._templates[template.id] = template
        return template

    def update(self, template_id: str, **changes: object) -> QuizTemplate:
        """Apply a partial update; unknown fields are rejected."""
        current = self.get(template_id)
        allowed = {
            "name", "description", "mode", "time_limit_minutes",
            "total_questions", "categories", "is_active",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise TemplateValidationError([f"Unknown template field: {name}" for name in sorted(unknown)])

        updated = QuizTemplate(
            id=current.id,
            name=str(changes.get("name", current.name)).strip(),
            description=str(changes.get("description", current.description)).strip(),
            mode=QuizMode(changes.get("mode", current.mode)),
            time_limit_minutes=changes.get("time_limit_minutes", current.time_limit_minutes),
            total_questions=changes.get("total_questions", current.total_questions),
            categories=dict(changes.get("categories", current.categories)),
            is_active=bool(changes.get("is_active", current.is_active)),
            created_by=current.created_by,
            created_at=current.created_at,
            updated_at=datetime.utcnow(),
        )
        self._validate(updated)
        self._templates[template_id] = updated
        return updated

    def delete(self, template_id: str) -> None:
        if template_id not in self._templates:
            raise KeyError(f"Template {template_id!r} not found")
        del self._templates[template_id]

    def get(self, template_id: str) -> QuizTemplate:
        try:
            return self._templates[template_id]
        except KeyError:
            raise KeyError(f"Template {template_id!r} not found") from None

    def list_active(self) -> list[QuizTemplate]:
        """Active templates, newest first."""
        active = [t for t in self._templates.values() if t.is_active]
        return sorted(active, key=lambda t: t.created_at, reverse=True)

    def _validate(self, template: QuizTemplate) -> None:
        problems: list[str] = []
        if not template.name:
            problems.append("Template name must not be empty.")
        if not isinstance(template.time_limit_minutes, int) or template.time_limit_minutes <= 0:
            problems.append("Time limit must be a positive number of minutes.")
        if not isinstance(template.total_questions, int) or template.total_questions <= 0:
            problems.append("Total questions must be a positive integer.")
        else:
            problems.extend(
                self._question_bank.check_category_availability(
                    template.categories, template.total_questions
                )
            )
        if problems:
            raise TemplateValidationError(problems)
