from __future__ import annotations

import pytest

from agriquiz.core.models import QuizConfig, QuizMode, UserStatus
from agriquiz.core.quiz_manager import QuizManager
from agriquiz.core.services.quiz_session import SessionSetupError, SessionState
from agriquiz.core.services.user_directory import UserStatusError


@pytest.fixture
def terminated() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def manager(tmp_path, clock, scheduler, rng, sample_questions, terminated) -> QuizManager:
    manager = QuizManager(
        results_path=tmp_path / "results.json",
        clock=clock,
        scheduler=scheduler,
        rng=rng,
        on_device_terminated=lambda user_id, device_id: terminated.append((user_id, device_id)),
    )
    manager.load_questions(sample_questions)
    return manager


def exam(total: int = 3, time_limit: int = 600, **categories: int) -> QuizConfig:
    return QuizConfig(mode=QuizMode.EXAM, time_limit=time_limit, total_questions=total, categories=categories)


def answer_all(manager: QuizManager, session_id: str, option: int) -> None:
    snapshot = manager.get_session(session_id)
    for index in range(snapshot.total_questions):
        manager.navigate(session_id, index=index)
        manager.select_answer(session_id, option)


def test_start_returns_first_question(manager) -> None:
    snapshot = manager.start_quiz(exam(4), user_id="u1")

    assert snapshot.state is SessionState.IN_PROGRESS
    assert snapshot.total_questions == 4
    assert snapshot.current_index == 0
    assert snapshot.question is not None
    assert snapshot.answer.question_id == snapshot.question.id
    assert snapshot.remaining_seconds == 600
    assert not snapshot.feedback_visible


def test_start_with_empty_bank_fails(manager) -> None:
    manager.clear_questions()

    with pytest.raises(SessionSetupError):
        manager.start_quiz(exam())


def test_exam_result_is_stored_for_signed_in_user(manager, tmp_path) -> None:
    session_id = manager.start_quiz(exam(3, Math=3), user_id="u1", user_name="Lan").session_id
    answer_all(manager, session_id, 0)

    result = manager.submit_quiz(session_id)

    assert result.score == 100.0
    stored = manager.get_results("u1")
    assert len(stored) == 1
    assert stored[0].user_name == "Lan"
    assert stored[0].correct_answers == 3
    assert (tmp_path / "results.json").exists()
    assert manager.get_leaderboard()[0].user_id == "u1"
    assert manager.get_user_statistics("u1").performance_level == "Excellent"


@pytest.mark.parametrize(
    ("config", "user_id"),
    [
        (QuizConfig(mode=QuizMode.PRACTICE, time_limit=600, total_questions=3), "u1"),
        (QuizConfig(mode=QuizMode.EXAM, time_limit=600, total_questions=3), None),
    ],
)
def test_practice_and_anonymous_results_are_not_stored(manager, config, user_id) -> None:
    session_id = manager.start_quiz(config, user_id=user_id).session_id

    manager.submit_quiz(session_id)

    assert manager.get_results("u1") == []


def test_store_failure_keeps_the_result(tmp_path, clock, scheduler, rng, sample_questions, caplog) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    manager = QuizManager(results_path=blocker / "results.json", clock=clock, scheduler=scheduler, rng=rng)
    manager.load_questions(sample_questions)
    session_id = manager.start_quiz(exam(3, Math=3), user_id="u1").session_id
    answer_all(manager, session_id, 0)

    result = manager.submit_quiz(session_id)

    assert result.correct_answers == 3
    assert manager.get_session(session_id).state is SessionState.SUBMITTED
    assert "Could not save the result" in caplog.text


def test_submit_twice_returns_same_result(manager) -> None:
    session_id = manager.start_quiz(exam(), user_id="u1").session_id

    first = manager.submit_quiz(session_id)
    second = manager.submit_quiz(session_id)

    assert first is second
    assert len(manager.get_results("u1")) == 1


def test_time_up_submits_and_stores(manager, scheduler) -> None:
    session_id = manager.start_quiz(exam(time_limit=5), user_id="u1").session_id

    scheduler.advance(6)

    snapshot = manager.get_session(session_id)
    assert snapshot.state is SessionState.SUBMITTED
    assert snapshot.remaining_seconds == 0
    assert snapshot.result is not None
    assert len(manager.get_results("u1")) == 1


def test_select_answer_rejects_missing_option(manager) -> None:
    session_id = manager.start_quiz(exam()).session_id

    with pytest.raises(ValueError):
        manager.select_answer(session_id, 4)


def test_navigate_requires_a_target(manager) -> None:
    session_id = manager.start_quiz(exam()).session_id

    with pytest.raises(ValueError):
        manager.navigate(session_id)
    assert manager.navigate(session_id, direction="next").current_index == 1
    assert manager.navigate(session_id, direction="prev").current_index == 0


def test_practice_feedback_after_answer(manager) -> None:
    config = QuizConfig(mode=QuizMode.PRACTICE, time_limit=600, total_questions=2)
    session_id = manager.start_quiz(config).session_id

    snapshot = manager.select_answer(session_id, 1)

    assert snapshot.feedback_visible
    assert snapshot.answered_count == 1


def test_pause_and_resume(manager, clock, scheduler) -> None:
    session_id = manager.start_quiz(exam(time_limit=100)).session_id
    scheduler.advance(10)

    manager.pause_quiz(session_id)
    clock.advance(30)
    snapshot = manager.resume_quiz(session_id)

    assert snapshot.remaining_seconds == 90


def test_review_is_practice_and_not_stored(manager) -> None:
    session_id = manager.start_quiz(exam(3, Math=3), user_id="u1").session_id
    answer_all(manager, session_id, 2)
    manager.submit_quiz(session_id)

    review = manager.start_review(session_id)
    manager.submit_quiz(review.session_id)

    assert review.is_review
    assert review.mode is QuizMode.PRACTICE
    assert review.total_questions == 3
    assert review.time_limit == 3600
    assert len(manager.get_results("u1")) == 1


def test_template_quiz(manager) -> None:
    template = manager.create_template(
        "Daily", mode=QuizMode.EXAM, time_limit_minutes=2, total_questions=3, categories={"History": 3}
    )

    snapshot = manager.start_template_quiz(template.id)

    assert snapshot.time_limit == 120
    assert snapshot.question.category == "History"


def test_abandon(manager, scheduler) -> None:
    session_id = manager.start_quiz(exam(time_limit=5), user_id="u1").session_id

    manager.abandon_quiz(session_id)
    scheduler.advance(10)

    with pytest.raises(KeyError):
        manager.get_session(session_id)
    with pytest.raises(KeyError):
        manager.abandon_quiz(session_id)
    assert manager.get_results("u1") == []


def test_sign_in_elsewhere_ends_the_old_device(manager, terminated) -> None:
    first_device = manager.register_device("u1", "Chrome/120.0")
    session_id = manager.start_quiz(exam(), user_id="u1", device_session_id=first_device).session_id
    second_device = manager.register_device("u1", "Firefox/115.0")

    assert manager.has_other_device("u1", first_device)
    assert not manager.has_other_device("u1", second_device)
    assert manager.device_heartbeat("u1", second_device)
    assert not manager.device_heartbeat("u1", first_device)
    assert terminated == [("u1", first_device)]
    with pytest.raises(KeyError):
        manager.get_session(session_id)


def test_end_device_abandons_its_quizzes(manager) -> None:
    device = manager.register_device("u1")
    session_id = manager.start_quiz(exam(), user_id="u1", device_session_id=device).session_id

    manager.end_device("u1", device)

    with pytest.raises(KeyError):
        manager.get_session(session_id)
    assert not manager.device_heartbeat("u1", device)


def test_search_and_config_check(manager) -> None:
    hits = manager.search_questions("Question h2")

    assert hits[0].question.id == "h2"
    assert manager.check_config(exam(3, Science=5)) != []


def test_submitted_sessions_are_evicted_oldest_first(clock, scheduler, rng, sample_questions) -> None:
    manager = QuizManager(clock=clock, scheduler=scheduler, rng=rng, submitted_retention=3)
    manager.load_questions(sample_questions)
    session_ids = []
    for _ in range(5):
        session_id = manager.start_quiz(exam()).session_id
        manager.submit_quiz(session_id)
        session_ids.append(session_id)
    running = manager.start_quiz(exam()).session_id

    for evicted in session_ids[:2]:
        with pytest.raises(KeyError):
            manager.get_session(evicted)
    for kept in session_ids[2:]:
        assert manager.get_session(kept).state is SessionState.SUBMITTED
    assert manager.get_session(running).state is SessionState.IN_PROGRESS
    assert len(manager._sessions) == 4


def test_abandoned_sessions_free_their_retention_slot(clock, scheduler, rng, sample_questions) -> None:
    manager = QuizManager(clock=clock, scheduler=scheduler, rng=rng, submitted_retention=2)
    manager.load_questions(sample_questions)
    first = manager.start_quiz(exam()).session_id
    manager.submit_quiz(first)

    manager.abandon_quiz(first)
    second = manager.start_quiz(exam()).session_id
    manager.submit_quiz(second)

    assert list(manager._submitted) == [second]
    assert list(manager._sessions) == [second]


def test_corrupt_results_file_does_not_block_quizzes(tmp_path, clock, scheduler, rng, sample_questions, caplog) -> None:
    path = tmp_path / "results.json"
    path.write_text("{not json", encoding="utf-8")

    manager = QuizManager(results_path=path, clock=clock, scheduler=scheduler, rng=rng)
    manager.load_questions(sample_questions)
    session_id = manager.start_quiz(exam(3, Math=3), user_id="u1").session_id
    answer_all(manager, session_id, 0)
    result = manager.submit_quiz(session_id)

    assert result.score == 100.0
    assert manager.get_results("u1") == []
    assert "Could not load results" in caplog.text
    assert "Could not save the result" in caplog.text
    assert path.read_text(encoding="utf-8") == "{not json"


def test_pending_and_inactive_users_cannot_sign_in(manager) -> None:
    manager.register_user("new@agribank.vn", user_id="newbie")

    with pytest.raises(UserStatusError):
        manager.register_device("newbie")
    manager.approve_user("newbie")
    assert manager.register_device("newbie")


def test_deactivating_a_user_ends_their_devices(manager, terminated) -> None:
    manager.create_user("lan@agribank.vn", user_id="u1")
    device = manager.register_device("u1")
    session_id = manager.start_quiz(exam(), user_id="u1", device_session_id=device).session_id

    manager.update_user("u1", status=UserStatus.INACTIVE)

    assert not manager.device_heartbeat("u1", device)
    assert terminated == [("u1", device)]
    with pytest.raises(KeyError):
        manager.get_session(session_id)
    with pytest.raises(UserStatusError):
        manager.register_device("u1")


def test_user_listing_is_paginated(manager) -> None:
    for i in range(12):
        manager.create_user(f"user{i}@agribank.vn")
    manager.register_user("waiting@agribank.vn")

    page = manager.list_users(page=2)

    assert page.total == 13
    assert len(page.users) == 3
    assert manager.pending_user_count() == 1
    assert manager.list_users(status=UserStatus.PENDING).users[0].email == "waiting@agribank.vn"
