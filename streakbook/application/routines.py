"""Routine use cases and read helpers"""
import logging
from datetime import date, datetime
from typing import Any
from sqlalchemy.orm import Session

from streakbook.application import synchronizer
from streakbook.application.errors import FreeTierLimitError, NotFoundError, ValidationError
from streakbook.application.quota import get_routine_limit
from streakbook.domain.routine import (
    Routine, STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_DELETED,
    validate_routine_fields, format_schedule_days,
)
from streakbook.infrastructure.db.models import Profile, RoutineModel, RoutineCompletion
from streakbook.infrastructure.db.session import unit_of_work
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name", "description", "icon", "color", "category",
    "schedule_type", "schedule_time", "schedule_days",
    "reminder_enabled", "reminder_minutes_before", "status",
)


def load_owned_routine(db: Session, routine_id: int, user_id: int) -> RoutineModel:
    routine = db.query(RoutineModel).filter(
        RoutineModel.id == routine_id,
        RoutineModel.user_id == user_id,
    ).first()
    if routine is None or routine.status == STATUS_DELETED:
        raise NotFoundError(f"Routine #{routine_id} not found")
    return routine


class CreateRoutineUseCase:
    """Creates a routine; free users are capped at FREE_ROUTINE_LIMIT active routines."""
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(
        self,
        user_id: int,
        name: str,
        icon: str,
        color: str,
        category: str,
        description: str | None = None,
        schedule_type: str = "daily",
        schedule_time: str = "07:00",
        schedule_days: list[int] | None = None,
        reminder_enabled: bool = True,
        reminder_minutes_before: int = 10,
        now: datetime | None = None,
    ) -> RoutineModel:
        if schedule_days is None:
            schedule_days = [1, 2, 3, 4, 5, 6, 7]
        fields = {
            "name": name, "description": description, "icon": icon, "color": color,
            "category": category, "schedule_type": schedule_type, "schedule_time": schedule_time,
            "schedule_days": schedule_days, "reminder_minutes_before": reminder_minutes_before,
        }
        errors = validate_routine_fields(fields)
        if errors:
            raise ValidationError("; ".join(errors), {"fields": errors})

        limit = get_routine_limit(self.db, user_id, now=now)
        if not limit.can_create:
            raise FreeTierLimitError("routine", limit.current, limit.limit)

        with unit_of_work(self.db):
            routine = RoutineModel(
                user_id=user_id,
                name=name.strip(),
                description=description,
                icon=icon,
                color=color,
                category=category,
                schedule_type=schedule_type,
                schedule_time=schedule_time,
                schedule_days=format_schedule_days(schedule_days),
                reminder_enabled=reminder_enabled,
                reminder_minutes_before=reminder_minutes_before,
                status=STATUS_ACTIVE,
                current_streak=0,
                longest_streak=0,
                total_completions=0,
            )
            self.db.add(routine)
            self.db.flush()

            self.event_repo.append_event(
                account_id=user_id,
                event_type="routine_created",
                payload=Routine.create(user_id, routine.id, routine.name, category),
                actor_user_id=user_id,
            )
            synchronizer.refresh_profile_stats(self.db, user_id)

        logger.info("Routine created: routine_id=%s user_id=%s", routine.id, user_id)
        return routine


class UpdateRoutineUseCase:
    """Partial update. Status changes re-derive the profile rollups."""
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, routine_id: int, user_id: int, **changes: Any) -> RoutineModel:
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        errors = validate_routine_fields(changes)
        if errors:
            raise ValidationError("; ".join(errors), {"fields": errors})

        routine = load_owned_routine(self.db, routine_id, user_id)
        old_status = routine.status

        with unit_of_work(self.db):
            for key, value in changes.items():
                if key == "schedule_days":
                    value = format_schedule_days(value)
                elif key == "name":
                    value = value.strip()
                setattr(routine, key, value)

            payload_changes = {k: v for k, v in changes.items() if k != "status"}
            if payload_changes:
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="routine_updated",
                    payload=Routine.update(routine_id, **payload_changes),
                    actor_user_id=user_id,
                )
            if routine.status != old_status:
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="routine_status_changed",
                    payload=Routine.status_changed(routine_id, old_status, routine.status),
                    actor_user_id=user_id,
                )
                synchronizer.refresh_profile_stats(self.db, user_id)

        return routine


class ArchiveRoutineUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, routine_id: int, user_id: int) -> RoutineModel:
        routine = load_owned_routine(self.db, routine_id, user_id)
        if routine.status == STATUS_ARCHIVED:
            raise ValidationError("Routine is already archived")
        return UpdateRoutineUseCase(self.db).execute(routine_id, user_id, status=STATUS_ARCHIVED)


class DeleteRoutineUseCase:
    """Soft delete: completions stay in the log, the routine leaves every listing."""
    def __init__(self, db: Session):
        self.db = db

    def execute(self, routine_id: int, user_id: int) -> None:
        UpdateRoutineUseCase(self.db).execute(routine_id, user_id, status=STATUS_DELETED)


# --- Read helpers ---

def list_routines(db: Session, user_id: int, status: str | None = STATUS_ACTIVE,
                  category: str | None = None, limit: int = 20, offset: int = 0) -> list[RoutineModel]:
    """Routines newest first. status=None or "all" lists every non-deleted routine."""
    query = db.query(RoutineModel).filter(RoutineModel.user_id == user_id)
    if status and status != "all":
        query = query.filter(RoutineModel.status == status)
    else:
        query = query.filter(RoutineModel.status != STATUS_DELETED)
    if category:
        query = query.filter(RoutineModel.category == category)
    return query.order_by(RoutineModel.created_at.desc(), RoutineModel.id.desc()).offset(offset).limit(limit).all()


def get_routine(db: Session, routine_id: int, user_id: int) -> RoutineModel:
    return load_owned_routine(db, routine_id, user_id)


def get_completion_history(db: Session, routine_id: int, user_id: int,
                           start: date | None = None, end: date | None = None) -> list[RoutineCompletion]:
    load_owned_routine(db, routine_id, user_id)
    query = db.query(RoutineCompletion).filter(RoutineCompletion.routine_id == routine_id)
    if start:
        query = query.filter(RoutineCompletion.completion_date >= start)
    if end:
        query = query.filter(RoutineCompletion.completion_date <= end)
    return query.order_by(RoutineCompletion.completion_date.desc()).all()


def get_profile_stats(db: Session, user_id: int) -> dict:
    """Profile rollups exactly as stored; no recomputation on read."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError(f"Profile #{user_id} not found")
    return {
        "total_routines": profile.total_routines,
        "current_streak": profile.current_streak,
        "longest_streak": profile.longest_streak,
        "total_completions": profile.total_completions,
    }
