"""Routine domain entity - field rules and event payloads for routine actions"""
import re
from datetime import datetime, timezone
from typing import Dict, Any

CATEGORIES = ("spiritual", "health", "learning", "productivity", "custom")
SCHEDULE_TYPES = ("daily", "weekly", "custom")
STATUSES = ("active", "archived", "deleted")

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"
STATUS_DELETED = "deleted"

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
NOTE_MAX_LENGTH = 500

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_routine_fields(changes: Dict[str, Any]) -> list[str]:
    """Return human-readable problems with the supplied fields (empty if fine)."""
    errors = []
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name or len(name) > NAME_MAX_LENGTH:
            errors.append(f"name must be 1-{NAME_MAX_LENGTH} characters")
    if changes.get("description") and len(changes["description"]) > DESCRIPTION_MAX_LENGTH:
        errors.append(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    if "icon" in changes and not changes["icon"]:
        errors.append("icon is required")
    if "color" in changes and not _COLOR_RE.match(changes["color"] or ""):
        errors.append("color must be a hex value like #A1B2C3")
    if "category" in changes and changes["category"] not in CATEGORIES:
        errors.append(f"category must be one of {', '.join(CATEGORIES)}")
    if "schedule_type" in changes and changes["schedule_type"] not in SCHEDULE_TYPES:
        errors.append(f"schedule_type must be one of {', '.join(SCHEDULE_TYPES)}")
    if "schedule_time" in changes and not _TIME_RE.match(changes["schedule_time"] or ""):
        errors.append("schedule_time must be HH:MM")
    if "schedule_days" in changes:
        days = changes["schedule_days"]
        if not days or len(days) > 7 or any(d < 1 or d > 7 for d in days):
            errors.append("schedule_days must list 1-7 weekdays between 1 (Mon) and 7 (Sun)")
    if "reminder_minutes_before" in changes:
        minutes = changes["reminder_minutes_before"]
        if minutes < 0 or minutes > 1440:
            errors.append("reminder_minutes_before must be between 0 and 1440")
    if "status" in changes and changes["status"] not in STATUSES:
        errors.append(f"status must be one of {', '.join(STATUSES)}")
    return errors


def format_schedule_days(days: list[int]) -> str:
    return ",".join(str(d) for d in sorted(set(days)))


def parse_schedule_days(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part]


class Routine:
    @staticmethod
    def create(user_id: int, routine_id: int, name: str, category: str) -> Dict[str, Any]:
        return {
            "routine_id": routine_id,
            "user_id": user_id,
            "name": name,
            "category": category,
            "created_at": _now(),
        }

    @staticmethod
    def update(routine_id: int, **changes) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"routine_id": routine_id, "updated_at": _now()}
        payload.update(changes)
        return payload

    @staticmethod
    def status_changed(routine_id: int, old_status: str, new_status: str) -> Dict[str, Any]:
        return {
            "routine_id": routine_id,
            "old_status": old_status,
            "new_status": new_status,
            "changed_at": _now(),
        }


class RoutineCompletionEvent:
    @staticmethod
    def complete(routine_id: int, completion_date: str, streak: int, snapshot: int,
                 note: str | None = None) -> Dict[str, Any]:
        return {
            "routine_id": routine_id,
            "completion_date": completion_date,
            "streak": streak,
            "streak_at_completion": snapshot,
            "note": note,
            "completed_at": _now(),
        }

    @staticmethod
    def uncomplete(routine_id: int, completion_date: str, streak: int) -> Dict[str, Any]:
        return {
            "routine_id": routine_id,
            "completion_date": completion_date,
            "streak": streak,
            "removed_at": _now(),
        }
