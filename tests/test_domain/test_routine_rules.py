"""
Routine field rules and event payloads
"""
from streakbook.domain.routine import (
    Routine, RoutineCompletionEvent, validate_routine_fields,
    format_schedule_days, parse_schedule_days,
)


def test_valid_fields_have_no_errors():
    assert validate_routine_fields({
        "name": "Meditate", "icon": "lotus", "color": "#A1B2C3", "category": "spiritual",
        "schedule_type": "weekly", "schedule_time": "6:30", "schedule_days": [1, 3, 5],
        "reminder_minutes_before": 0, "status": "archived",
    }) == []


def test_only_supplied_fields_are_checked():
    assert validate_routine_fields({}) == []
    assert validate_routine_fields({"status": "paused"}) == ["status must be one of active, archived, deleted"]


def test_every_problem_is_reported():
    errors = validate_routine_fields({"name": "", "color": "#12345", "reminder_minutes_before": 2000})
    assert len(errors) == 3


def test_schedule_days_round_trip_sorted_and_unique():
    raw = format_schedule_days([7, 1, 3, 3])
    assert raw == "1,3,7"
    assert parse_schedule_days(raw) == [1, 3, 7]


def test_payloads_carry_routine_and_streak():
    created = Routine.create(user_id=1, routine_id=5, name="Walk", category="health")
    assert created["routine_id"] == 5 and "created_at" in created

    done = RoutineCompletionEvent.complete(5, "2026-01-14", streak=6, snapshot=4, note=None)
    assert (done["streak"], done["streak_at_completion"]) == (6, 4)

    undone = RoutineCompletionEvent.uncomplete(5, "2026-01-14", streak=3)
    assert undone["streak"] == 3

    changed = Routine.status_changed(5, "active", "archived")
    assert changed["new_status"] == "archived"
