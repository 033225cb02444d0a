"""
Tests for completing / un-completing routines: streaks, rollups, undo, atomicity
"""
import logging
import pytest
from datetime import date, timedelta

from streakbook.application import synchronizer
from streakbook.application.completions import RecordCompletionUseCase, RemoveCompletionUseCase
from streakbook.application.errors import (
    ConflictError, ConsistencyError, NotFoundError, ValidationError,
)
from streakbook.application.routines import ArchiveRoutineUseCase
from streakbook.application.streaks import calculate_streak
from streakbook.infrastructure.db.models import EventLog, Profile, RoutineCompletion, RoutineModel


DAY1 = date(2026, 1, 1)


def day(n: int) -> date:
    """day(1) == DAY1"""
    return DAY1 + timedelta(days=n - 1)


def complete(db, routine, n, user_id=1, note=None):
    return RecordCompletionUseCase(db).execute(routine.id, user_id, day(n), note=note)


def undo(db, routine, n, user_id=1):
    return RemoveCompletionUseCase(db).execute(routine.id, user_id, day(n))


def reload(db, model, pk):
    db.expire_all()
    return db.query(model).filter(model.id == pk).one()


@pytest.fixture
def routine(sample_user, make_routine):
    return make_routine(sample_user.id, name="Morning prayer")


# --- Streaks on completion ---

def test_consecutive_days_build_streak(db_session, routine):
    results = [complete(db_session, routine, n) for n in (1, 2, 3)]

    assert [r.streak for r in results] == [1, 2, 3]
    r = reload(db_session, RoutineModel, routine.id)
    assert r.current_streak == 3
    assert r.longest_streak == 3
    assert r.total_completions == 3
    assert r.last_completed_at == day(3)


def test_gap_resets_streak_but_keeps_longest(db_session, routine):
    for n in (1, 2, 3):
        complete(db_session, routine, n)
    result = complete(db_session, routine, 5)

    assert result.streak == 1
    r = reload(db_session, RoutineModel, routine.id)
    assert r.current_streak == 1
    assert r.longest_streak == 3
    assert r.total_completions == 4


def test_snapshot_and_new_record_flag(db_session, routine):
    first = complete(db_session, routine, 1)
    second = complete(db_session, routine, 2)

    assert first.is_new_record is False
    assert second.is_new_record is True
    rows = db_session.query(RoutineCompletion).order_by(RoutineCompletion.completion_date).all()
    assert [c.streak_at_completion for c in rows] == [1, 2]


def test_backdated_completion_bridges_gap(db_session, routine):
    for n in (1, 2, 4):
        complete(db_session, routine, n)
    assert reload(db_session, RoutineModel, routine.id).current_streak == 1

    result = complete(db_session, routine, 3)

    r = reload(db_session, RoutineModel, routine.id)
    assert result.streak == 4
    assert r.current_streak == 4
    assert r.longest_streak == 4
    assert r.last_completed_at == day(4)
    snapshot = db_session.query(RoutineCompletion).filter(
        RoutineCompletion.completion_date == day(3)
    ).one()
    assert snapshot.streak_at_completion == 3


def test_achievement_reported_at_seven_days(db_session, routine):
    results = [complete(db_session, routine, n) for n in range(1, 8)]

    assert all(r.achievements == [] for r in results[:6])
    assert results[6].achievements == [{"type": "streak_7", "message": "7 days in a row!"}]


# --- Rejections ---

def test_duplicate_day_conflicts_and_leaves_aggregates(db_session, routine):
    complete(db_session, routine, 1)
    complete(db_session, routine, 2)

    with pytest.raises(ConflictError, match="Already done"):
        complete(db_session, routine, 2)

    r = reload(db_session, RoutineModel, routine.id)
    assert (r.current_streak, r.longest_streak, r.total_completions) == (2, 2, 2)
    assert db_session.query(RoutineCompletion).count() == 2


def test_cannot_complete_archived_routine(db_session, sample_user, make_routine):
    archived = make_routine(sample_user.id, status="archived")
    with pytest.raises(ValidationError):
        complete(db_session, archived, 1)


def test_cannot_complete_someone_elses_routine(db_session, routine):
    other = Profile(id=9, email="other@example.com", name="Other")
    db_session.add(other)
    db_session.commit()

    with pytest.raises(NotFoundError):
        complete(db_session, routine, 1, user_id=9)


def test_note_length_limit(db_session, routine):
    with pytest.raises(ValidationError):
        complete(db_session, routine, 1, note="x" * 501)


# --- Undo ---

def test_undo_middle_day_recomputes_from_log(db_session, routine):
    for n in range(1, 6):
        complete(db_session, routine, n)

    result = undo(db_session, routine, 3)

    assert result.streak == 2
    r = reload(db_session, RoutineModel, routine.id)
    assert r.current_streak == 2
    assert r.longest_streak == 5
    assert r.total_completions == 4
    assert r.last_completed_at == day(5)


def test_undo_latest_day_moves_anchor_back(db_session, routine):
    for n in (1, 2, 3):
        complete(db_session, routine, n)

    result = undo(db_session, routine, 3)

    assert result.streak == 2
    assert reload(db_session, RoutineModel, routine.id).last_completed_at == day(2)


def test_undo_everything_resets_to_zero(db_session, routine):
    complete(db_session, routine, 1)
    undo(db_session, routine, 1)

    r = reload(db_session, RoutineModel, routine.id)
    assert r.current_streak == 0
    assert r.total_completions == 0
    assert r.last_completed_at is None
    assert r.longest_streak == 1


def test_undo_missing_day_is_not_found(db_session, routine):
    complete(db_session, routine, 1)
    with pytest.raises(NotFoundError, match="Nothing to undo"):
        undo(db_session, routine, 2)


def test_longest_streak_never_decreases(db_session, routine):
    seen = []
    for n in range(1, 5):
        complete(db_session, routine, n)
        seen.append(reload(db_session, RoutineModel, routine.id).longest_streak)
    for n in (4, 3, 2):
        undo(db_session, routine, n)
        seen.append(reload(db_session, RoutineModel, routine.id).longest_streak)

    assert seen == sorted(seen)
    assert seen[-1] == 4


# --- Profile rollups ---

def test_profile_rollups_follow_routines(db_session, sample_user, make_routine):
    a = make_routine(sample_user.id, name="A")
    b = make_routine(sample_user.id, name="B")
    for n in (1, 2, 3):
        complete(db_session, a, n)
    complete(db_session, b, 3)

    p = reload(db_session, Profile, sample_user.id)
    assert p.current_streak == 3
    assert p.longest_streak == 3
    assert p.total_completions == 4

    ArchiveRoutineUseCase(db_session).execute(a.id, sample_user.id)

    p = reload(db_session, Profile, sample_user.id)
    assert p.current_streak == 1  # only B is active
    assert p.longest_streak == 3  # archived history still counts
    assert p.total_routines == 1


# --- Atomicity ---

def test_failed_aggregate_update_rolls_back_completion(db_session, routine, monkeypatch):
    complete(db_session, routine, 1)

    def boom(db, completion):
        raise ConsistencyError("simulated failure")

    monkeypatch.setattr(synchronizer, "on_completion_inserted", boom)

    with pytest.raises(ConsistencyError):
        complete(db_session, routine, 2)

    assert db_session.query(RoutineCompletion).count() == 1
    r = reload(db_session, RoutineModel, routine.id)
    assert (r.current_streak, r.total_completions) == (1, 1)
    assert db_session.query(EventLog).filter(EventLog.event_type == "routine_completed").count() == 1


def test_completion_writes_audit_event(db_session, routine):
    complete(db_session, routine, 1, note="done early")
    complete(db_session, routine, 2)
    undo(db_session, routine, 2)

    events = db_session.query(EventLog).order_by(EventLog.id).all()
    assert [e.event_type for e in events] == ["routine_completed", "routine_completed", "routine_uncompleted"]
    assert events[0].payload_json["note"] == "done early"
    assert events[1].payload_json["streak"] == 2
    assert events[2].payload_json["streak"] == 1


def test_five_days_then_undo_latest(db_session, routine):
    for d in range(10, 15):
        RecordCompletionUseCase(db_session).execute(routine.id, 1, date(2026, 1, d))

    r = reload(db_session, RoutineModel, routine.id)
    assert (r.current_streak, r.longest_streak, r.total_completions) == (5, 5, 5)

    RemoveCompletionUseCase(db_session).execute(routine.id, 1, date(2026, 1, 14))

    r = reload(db_session, RoutineModel, routine.id)
    assert (r.current_streak, r.longest_streak, r.total_completions) == (4, 5, 4)
    assert r.last_completed_at == date(2026, 1, 13)


def test_streak_ceiling_warns_only_past_the_limit(db_session, routine, caplog):
    for n in range(1, 6):
        complete(db_session, routine, n)
    caplog.clear()

    with caplog.at_level(logging.WARNING, logger="streakbook.application.streaks"):
        # day 1..3 is exactly three days
        assert calculate_streak(db_session, routine.id, day(3), limit=3) == 3
        assert "clamped" not in caplog.text

        assert calculate_streak(db_session, routine.id, day(5), limit=3) == 3
    assert "clamped at 3" in caplog.text
