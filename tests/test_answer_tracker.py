from __future__ import annotations

import pytest

from agriquiz.core.services.answer_tracker import AnswerTracker


@pytest.fixture
def tracker(sample_questions) -> AnswerTracker:
    return AnswerTracker.for_questions(sample_questions[:3])


def test_starts_unanswered_and_unmarked(tracker, sample_questions) -> None:
    assert len(tracker) == 3
    assert [a.question_id for a in tracker.snapshot()] == [q.id for q in sample_questions[:3]]
    assert tracker.answered_count() == 0
    assert tracker.marked_count() == 0


def test_select_answer_replaces_the_record(tracker) -> None:
    before = tracker.snapshot()

    updated = tracker.select_answer(1, 2)

    assert updated.selected_answer == 2
    assert tracker.get(1) is updated
    assert before[1].selected_answer is None
    assert tracker.answered_count() == 1


def test_changing_an_answer_keeps_the_count(tracker) -> None:
    tracker.select_answer(0, 1)
    tracker.select_answer(0, 3)

    assert tracker.get(0).selected_answer == 3
    assert tracker.answered_count() == 1


def test_toggle_mark_flips(tracker) -> None:
    assert tracker.toggle_mark(2).is_marked
    assert tracker.marked_count() == 1
    assert not tracker.toggle_mark(2).is_marked


def test_tick_adds_a_second(tracker) -> None:
    tracker.tick(0)
    tracker.tick(0)

    assert tracker.get(0).time_spent == 2
    assert tracker.get(1).time_spent == 0


def test_out_of_range_position_raises(tracker) -> None:
    with pytest.raises(IndexError):
        tracker.select_answer(3, 0)
    with pytest.raises(IndexError):
        tracker.get(-1)


def test_frozen_tracker_rejects_changes(tracker) -> None:
    tracker.select_answer(0, 0)
    tracker.freeze()

    with pytest.raises(RuntimeError):
        tracker.select_answer(0, 1)
    with pytest.raises(RuntimeError):
        tracker.toggle_mark(0)
    assert tracker.is_frozen
    assert tracker.get(0).selected_answer == 0
