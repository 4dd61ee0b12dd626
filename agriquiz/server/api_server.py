"""FastAPI server that exposes the quiz service to the browser client."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Thread
from typing import Iterator, Literal

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field
import uvicorn

from agriquiz.constants.about import APP_ABOUT_TEXT, APP_NAME, APP_VERSION
from agriquiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from agriquiz.constants.quiz_constants import USERS_PER_PAGE
from agriquiz.core.markdown_renderer import renderer
from agriquiz.core.models import (
    Question,
    QuizConfig,
    QuizMode,
    QuizResult,
    QuizTemplate,
    StoredResult,
    UserProfile,
    UserRole,
    UserStatus,
)
from agriquiz.core.quiz_manager import QuizManager, SessionSnapshot
from agriquiz.core.services.leaderboard import LeaderboardRow
from agriquiz.core.services.quiz_session import SessionIntegrityError, SessionSetupError, SessionStateError
from agriquiz.core.services.template_store import TemplateValidationError


class QuestionPayload(BaseModel):
    """Payload schema for a bank question."""

    id: str | None = None
    question: str
    options: list[str]
    correct_answer: int
    category: str
    explanation: str | None = None

    def to_question(self) -> Question:
        return Question(
            id=self.id or "",
            question=self.question,
            options=tuple(self.options),
            correct_answer=self.correct_answer,
            category=self.category,
            explanation=self.explanation,
        )


class QuestionsPayload(BaseModel):
    questions: list[QuestionPayload]
    replace_all: bool = False


class ConfigPayload(BaseModel):
    mode: QuizMode = QuizMode.PRACTICE
    time_limit: int = Field(description="Seconds")
    total_questions: int
    categories: dict[str, int] = Field(default_factory=dict)

    def to_config(self) -> QuizConfig:
        return QuizConfig(
            mode=self.mode,
            time_limit=self.time_limit,
            total_questions=self.total_questions,
            categories=dict(self.categories),
        )


class StartQuizPayload(BaseModel):
    """Start from an explicit configuration or from a template."""

    config: ConfigPayload | None = None
    template_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    device_session_id: str | None = None


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    selected_option_index: int


class NavigatePayload(BaseModel):
    direction: Literal["prev", "next"] | None = None
    index: int | None = None


class TemplatePayload(BaseModel):
    name: str
    description: str = ""
    mode: QuizMode = QuizMode.PRACTICE
    time_limit_minutes: int = 60
    total_questions: int = 20
    categories: dict[str, int] = Field(default_factory=dict)
    created_by: str | None = None


class TemplateUpdatePayload(BaseModel):
    name: str | None = None
    description: str | None = None
    mode: QuizMode | None = None
    time_limit_minutes: int | None = None
    total_questions: int | None = None
    categories: dict[str, int] | None = None
    is_active: bool | None = None


class DevicePayload(BaseModel):
    user_id: str
    user_agent: str | None = None


class HeartbeatPayload(BaseModel):
    user_id: str


class UserCreatePayload(BaseModel):
    """Profile for an account an administrator creates; credentials live with the auth provider."""

    email: str
    full_name: str | None = None
    role: UserRole = UserRole.USER
    user_id: str | None = None


class UserRegisterPayload(BaseModel):
    email: str
    full_name: str | None = None
    user_id: str | None = None


class UserUpdatePayload(BaseModel):
    full_name: str | None = None
    role: UserRole | None = None
    status: UserStatus | None = None


@contextmanager
def _domain_errors() -> Iterator[None]:
    try:
        yield
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found") from exc
    except TemplateValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.problems) from exc
    except SessionIntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "recovery": "return_to_setup"},
        ) from exc
    except (SessionSetupError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (SessionStateError, RuntimeError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


def _question_payload(question: Question) -> dict[str, object]:
    return {
        "id": question.id,
        "question": question.question,
        "options": list(question.options),
        "correct_answer": question.correct_answer,
        "category": question.category,
        "explanation": question.explanation,
    }


def _result_payload(result: QuizResult) -> dict[str, object]:
    return {
        "total_questions": result.total_questions,
        "correct_answers": result.correct_answers,
        "wrong_answers": result.wrong_answers,
        "unanswered": result.unanswered,
        "score": result.score,
        "time_spent": result.time_spent,
        "answers": [
            {
                "question_id": answer.question_id,
                "selected_answer": answer.selected_answer,
                "is_marked": answer.is_marked,
                "time_spent": answer.time_spent,
            }
            for answer in result.answers
        ],
        "wrong_questions": [_question_payload(q) for q in result.wrong_questions],
    }


def _snapshot_payload(snapshot: SessionSnapshot) -> dict[str, object]:
    question_block: dict[str, object] | None = None
    if snapshot.question is not None and snapshot.answer is not None:
        question = snapshot.question
        question_block = {
            "id": question.id,
            "category": question.category,
            "question_html": renderer.render_fragment(question.question),
            "options_html": [renderer.render_inline(option) for option in question.options],
            "selected_answer": snapshot.answer.selected_answer,
            "is_marked": snapshot.answer.is_marked,
            "time_spent": snapshot.answer.time_spent,
            # Only send the correct answer once feedback may be shown.
            "correct_answer": question.correct_answer if snapshot.feedback_visible else None,
            "explanation_html": (
                renderer.render_optional(question.explanation) if snapshot.feedback_visible else None
            ),
        }
    return {
        "session_id": snapshot.session_id,
        "state": snapshot.state.value,
        "mode": snapshot.mode.value,
        "review": snapshot.is_review,
        "current_index": snapshot.current_index,
        "total_questions": snapshot.total_questions,
        "time_limit": snapshot.time_limit,
        "remaining_seconds": snapshot.remaining_seconds,
        "timer_state": snapshot.timer_state.value if snapshot.timer_state else None,
        "answered": snapshot.answered_count,
        "unanswered": snapshot.total_questions - snapshot.answered_count,
        "marked": snapshot.marked_count,
        "question": question_block,
        "palette": [
            {"index": i, "answered": a.is_answered, "marked": a.is_marked}
            for i, a in enumerate(snapshot.answers)
        ],
        "result": _result_payload(snapshot.result) if snapshot.result else None,
    }


def _template_payload(template: QuizTemplate) -> dict[str, object]:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "mode": template.mode.value,
        "time_limit_minutes": template.time_limit_minutes,
        "total_questions": template.total_questions,
        "categories": dict(template.categories),
        "is_active": template.is_active,
        "created_by": template.created_by,
        "created_at": template.created_at.isoformat(),
        "updated_at": template.updated_at.isoformat(),
    }


def _stored_result_payload(result: StoredResult) -> dict[str, object]:
    return {
        "id": result.id,
        "user_id": result.user_id,
        "user_name": result.user_name,
        "score": result.score,
        "percentage": result.percentage,
        "total_questions": result.total_questions,
        "correct_answers": result.correct_answers,
        "time_spent": result.time_spent,
        "quiz_type": result.quiz_type.value,
        "created_at": result.created_at.isoformat(),
    }


def _ranking_payload(row: LeaderboardRow) -> dict[str, object]:
    return {
        "rank": row.rank,
        "user_id": row.user_id,
        "user_name": row.user_name,
        "average_score": row.average_score,
        "total_attempts": row.total_attempts,
        "best_score": row.best_score,
        "best_time": row.best_time,
    }


def _user_payload(profile: UserProfile) -> dict[str, object]:
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "role": profile.role.value,
        "status": profile.status.value,
        "created_at": profile.created_at.isoformat(),
        "updated_at": profile.updated_at.isoformat(),
    }


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, description=APP_ABOUT_TEXT)
    manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    # --- Question bank ---

    @app.get("/questions")
    def list_questions(
        category: str | None = None,
        manager: QuizManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_question_payload(q) for q in manager.get_questions(category)]

    @app.post("/questions", status_code=201)
    def import_questions(
        payload: QuestionsPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        questions = [item.to_question() for item in payload.questions]
        with _domain_errors():
            if payload.replace_all:
                imported = manager.load_questions(questions)
            else:
                imported = manager.add_questions(questions)
        return {"imported": imported, "categories": manager.get_categories()}

    @app.delete("/questions", status_code=204)
    def clear_questions(manager: QuizManager = Depends(manager_dep)) -> Response:
        manager.clear_questions()
        return Response(status_code=204)

    @app.get("/questions/search")
    def search(
        q: str,
        category: str | None = None,
        manager: QuizManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [
            {
                "position": hit.position,
                "similarity": hit.similarity,
                "question": _question_payload(hit.question),
            }
            for hit in manager.search_questions(q, category)
        ]

    @app.get("/questions/{question_id}")
    def get_question(question_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _question_payload(manager.get_question(question_id))

    @app.put("/questions/{question_id}")
    def update_question(
        question_id: str,
        payload: QuestionPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _question_payload(manager.update_question(question_id, payload.to_question()))

    @app.delete("/questions/{question_id}", status_code=204)
    def delete_question(question_id: str, manager: QuizManager = Depends(manager_dep)) -> Response:
        with _domain_errors():
            manager.delete_question(question_id)
        return Response(status_code=204)

    @app.get("/categories")
    def categories(manager: QuizManager = Depends(manager_dep)) -> dict[str, int]:
        return manager.get_categories()

    # --- Templates ---

    @app.get("/templates")
    def list_templates(manager: QuizManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [_template_payload(t) for t in manager.list_templates()]

    @app.post("/templates", status_code=201)
    def create_template(
        payload: TemplatePayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        fields = payload.model_dump()
        name = fields.pop("name")
        with _domain_errors():
            return _template_payload(manager.create_template(name, **fields))

    @app.patch("/templates/{template_id}")
    def update_template(
        template_id: str,
        payload: TemplateUpdatePayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _template_payload(
                manager.update_template(template_id, **payload.model_dump(exclude_unset=True))
            )

    @app.delete("/templates/{template_id}", status_code=204)
    def delete_template(template_id: str, manager: QuizManager = Depends(manager_dep)) -> Response:
        with _domain_errors():
            manager.delete_template(template_id)
        return Response(status_code=204)

    # --- Quiz sessions ---

    @app.post("/quiz/sessions", status_code=201)
    def start_quiz(
        payload: StartQuizPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        owner = {
            "user_id": payload.user_id,
            "user_name": payload.user_name,
            "device_session_id": payload.device_session_id,
        }
        with _domain_errors():
            if payload.template_id:
                snapshot = manager.start_template_quiz(payload.template_id, **owner)
            elif payload.config is not None:
                snapshot = manager.start_quiz(payload.config.to_config(), **owner)
            else:
                raise ValueError("Provide either a quiz configuration or a template id.")
        return _snapshot_payload(snapshot)

    @app.get("/quiz/sessions/{session_id}")
    def get_session(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.get_session(session_id))

    @app.post("/quiz/sessions/{session_id}/answer")
    def select_answer(
        session_id: str,
        payload: AnswerPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.select_answer(session_id, payload.selected_option_index))

    @app.post("/quiz/sessions/{session_id}/mark")
    def toggle_mark(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.toggle_mark(session_id))

    @app.post("/quiz/sessions/{session_id}/navigate")
    def navigate(
        session_id: str,
        payload: NavigatePayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(
                manager.navigate(session_id, direction=payload.direction, index=payload.index)
            )

    @app.post("/quiz/sessions/{session_id}/pause")
    def pause(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.pause_quiz(session_id))

    @app.post("/quiz/sessions/{session_id}/resume")
    def resume(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.resume_quiz(session_id))

    @app.post("/quiz/sessions/{session_id}/submit")
    def submit(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _result_payload(manager.submit_quiz(session_id))

    @app.post("/quiz/sessions/{session_id}/review", status_code=201)
    def review(session_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _snapshot_payload(manager.start_review(session_id))

    @app.delete("/quiz/sessions/{session_id}", status_code=204)
    def abandon(session_id: str, manager: QuizManager = Depends(manager_dep)) -> Response:
        with _domain_errors():
            manager.abandon_quiz(session_id)
        return Response(status_code=204)

    # --- User profiles ---

    @app.get("/users")
    def list_users(
        search: str | None = None,
        status: UserStatus | None = None,
        page: int = 1,
        page_size: int = USERS_PER_PAGE,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            result = manager.list_users(search=search, status=status, page=page, page_size=page_size)
        return {
            "users": [_user_payload(u) for u in result.users],
            "total": result.total,
            "page": result.page,
            "total_pages": result.total_pages,
            "pending": manager.pending_user_count(),
        }

    @app.post("/users", status_code=201)
    def create_user(
        payload: UserCreatePayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _user_payload(
                manager.create_user(
                    payload.email,
                    full_name=payload.full_name,
                    role=payload.role,
                    user_id=payload.user_id,
                )
            )

    @app.post("/users/register", status_code=201)
    def register_user(
        payload: UserRegisterPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _user_payload(
                manager.register_user(payload.email, full_name=payload.full_name, user_id=payload.user_id)
            )

    @app.get("/users/{user_id}")
    def get_user(user_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _user_payload(manager.get_user(user_id))

    @app.patch("/users/{user_id}")
    def update_user(
        user_id: str,
        payload: UserUpdatePayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _domain_errors():
            return _user_payload(manager.update_user(user_id, **payload.model_dump(exclude_unset=True)))

    @app.post("/users/{user_id}/approve")
    def approve_user(user_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        with _domain_errors():
            return _user_payload(manager.approve_user(user_id))

    @app.post("/users/{user_id}/reject", status_code=204)
    def reject_user(user_id: str, manager: QuizManager = Depends(manager_dep)) -> Response:
        with _domain_errors():
            manager.reject_user(user_id)
        return Response(status_code=204)

    @app.delete("/users/{user_id}", status_code=204)
    def delete_user(user_id: str, manager: QuizManager = Depends(manager_dep)) -> Response:
        with _domain_errors():
            manager.delete_user(user_id)
        return Response(status_code=204)

    # --- Results & rankings ---

    @app.get("/users/{user_id}/results")
    def user_results(
        user_id: str,
        limit: int | None = None,
        manager: QuizManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_stored_result_payload(r) for r in manager.get_results(user_id, limit)]

    @app.get("/users/{user_id}/statistics")
    def user_statistics(user_id: str, manager: QuizManager = Depends(manager_dep)) -> dict[str, object]:
        stats = manager.get_user_statistics(user_id)
        return {
            "ranking": _ranking_payload(stats.ranking) if stats.ranking else None,
            "total_ranked_users": stats.total_ranked_users,
            "recent_result": (
                _stored_result_payload(stats.recent_result) if stats.recent_result else None
            ),
            "performance_level": stats.performance_level,
        }

    @app.get("/leaderboard")
    def leaderboard(
        limit: int | None = None,
        manager: QuizManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_ranking_payload(row) for row in manager.get_leaderboard(limit)]

    # --- Device sessions ---

    @app.post("/devices", status_code=201)
    def register_device(
        payload: DevicePayload,
        request: Request,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        ip_address = request.client.host if request.client else None
        with _domain_errors():
            device_session_id = manager.register_device(payload.user_id, payload.user_agent, ip_address)
        return {"device_session_id": device_session_id}

    @app.get("/devices/{device_session_id}/conflict")
    def device_conflict(
        device_session_id: str,
        user_id: str,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, bool]:
        return {"signed_in_elsewhere": manager.has_other_device(user_id, device_session_id)}

    @app.post("/devices/{device_session_id}/heartbeat")
    def device_heartbeat(
        device_session_id: str,
        payload: HeartbeatPayload,
        manager: QuizManager = Depends(manager_dep),
    ) -> dict[str, bool]:
        if not manager.device_heartbeat(payload.user_id, device_session_id):
            raise HTTPException(
                status_code=409,
                detail="This account has signed in on another device.",
            )
        return {"active": True}

    @app.delete("/devices/{device_session_id}", status_code=204)
    def end_device(
        device_session_id: str,
        user_id: str,
        manager: QuizManager = Depends(manager_dep),
    ) -> Response:
        manager.end_device(user_id, device_session_id)
        return Response(status_code=204)

    return app


def start_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizApiServer", daemon=True)
    thread.start()
    return thread
