"""
Routine API endpoints
"""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from streakbook.api.deps import get_db, get_current_user
from streakbook.config import get_settings
from streakbook.infrastructure.db.models import Profile, RoutineModel
from streakbook.application.routines import (
    CreateRoutineUseCase, UpdateRoutineUseCase, DeleteRoutineUseCase,
    list_routines, get_routine, get_completion_history,
)
from streakbook.application.completions import RecordCompletionUseCase, RemoveCompletionUseCase
from streakbook.domain.routine import parse_schedule_days


router = APIRouter(prefix="/api/v1/routines", tags=["routines"])


# === Request/Response models ===

class CreateRoutineRequest(BaseModel):
    name: str
    icon: str
    color: str  # #RRGGBB
    category: str
    description: str | None = None
    schedule_type: str = "daily"
    schedule_time: str = "07:00"
    schedule_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5, 6, 7])
    reminder_enabled: bool = True
    reminder_minutes_before: int = 10


class UpdateRoutineRequest(BaseModel):
    name: str | None = None
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    description: str | None = None
    schedule_type: str | None = None
    schedule_time: str | None = None
    schedule_days: list[int] | None = None
    reminder_enabled: bool | None = None
    reminder_minutes_before: int | None = None
    status: str | None = None  # active | archived


class CompleteRoutineRequest(BaseModel):
    completion_date: date | None = None  # defaults to today in TIMEZONE
    note: str | None = None


class RoutineResponse(BaseModel):
    id: int
    name: str
    description: str | None
    icon: str
    color: str
    category: str
    schedule_type: str
    schedule_time: str
    schedule_days: list[int]
    reminder_enabled: bool
    reminder_minutes_before: int
    status: str
    current_streak: int
    longest_streak: int
    total_completions: int
    last_completed_at: date | None


class CompletionEntry(BaseModel):
    completion_date: date
    streak_at_completion: int
    is_new_record: bool
    note: str | None


class RoutineDetailResponse(RoutineResponse):
    completions: list[CompletionEntry]


class CompletionResponse(BaseModel):
    routine_id: int
    completion_date: date
    streak: int
    longest_streak: int
    total_completions: int
    is_new_record: bool
    achievements: list[dict]


class UncompletionResponse(BaseModel):
    routine_id: int
    completion_date: date
    streak: int
    longest_streak: int
    total_completions: int


def _to_response(r: RoutineModel) -> RoutineResponse:
    return RoutineResponse(
        id=r.id,
        name=r.name,
        description=r.description,
        icon=r.icon,
        color=r.color,
        category=r.category,
        schedule_type=r.schedule_type,
        schedule_time=r.schedule_time,
        schedule_days=parse_schedule_days(r.schedule_days),
        reminder_enabled=r.reminder_enabled,
        reminder_minutes_before=r.reminder_minutes_before,
        status=r.status,
        current_streak=r.current_streak,
        longest_streak=r.longest_streak,
        total_completions=r.total_completions,
        last_completed_at=r.last_completed_at,
    )


def _today() -> date:
    return datetime.now(timezone.utc).astimezone(ZoneInfo(get_settings().TIMEZONE)).date()


# === Endpoints ===

@router.get("", response_model=list[RoutineResponse])
def list_user_routines(
    status: str = "active",
    category: str | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Routines of the current user, newest first"""
    routines = list_routines(db, user.id, status=status, category=category, limit=limit, offset=offset)
    return [_to_response(r) for r in routines]


@router.post("", response_model=RoutineResponse, status_code=201)
def create_routine(
    req: CreateRoutineRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    routine = CreateRoutineUseCase(db).execute(user_id=user.id, **req.model_dump())
    return _to_response(routine)


@router.get("/{routine_id}", response_model=RoutineDetailResponse)
def read_routine(
    routine_id: int,
    start: date | None = None,
    end: date | None = None,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Routine with its completion history (optionally limited to start..end)"""
    routine = get_routine(db, routine_id, user.id)
    history = get_completion_history(db, routine_id, user.id, start=start, end=end)
    return RoutineDetailResponse(
        **_to_response(routine).model_dump(),
        completions=[
            CompletionEntry(
                completion_date=c.completion_date,
                streak_at_completion=c.streak_at_completion,
                is_new_record=c.is_new_record,
                note=c.note,
            )
            for c in history
        ],
    )


@router.patch("/{routine_id}", response_model=RoutineResponse)
def update_routine(
    routine_id: int,
    req: UpdateRoutineRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    routine = UpdateRoutineUseCase(db).execute(routine_id, user.id, **changes)
    return _to_response(routine)


@router.delete("/{routine_id}")
def delete_routine(
    routine_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    DeleteRoutineUseCase(db).execute(routine_id, user.id)
    return {"status": "deleted"}


@router.post("/{routine_id}/complete", response_model=CompletionResponse)
def complete_routine(
    routine_id: int,
    req: CompleteRoutineRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark the routine done for a day (409 when already done)"""
    result = RecordCompletionUseCase(db).execute(
        routine_id=routine_id,
        user_id=user.id,
        completion_date=req.completion_date or _today(),
        note=req.note,
    )
    return CompletionResponse(**result.__dict__)


@router.delete("/{routine_id}/complete/{completion_date}", response_model=UncompletionResponse)
def uncomplete_routine(
    routine_id: int,
    completion_date: date,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Undo a completion (404 when there is nothing to undo)"""
    result = RemoveCompletionUseCase(db).execute(routine_id, user.id, completion_date)
    return UncompletionResponse(**result.__dict__)
