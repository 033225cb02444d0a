"""
Quota API endpoints (read-only usage status)
"""
from datetime import datetime
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from streakbook.api.deps import get_db, get_current_user
from streakbook.infrastructure.db.models import Profile
from streakbook.application.quota import QuotaLedger, get_routine_limit


router = APIRouter(prefix="/api/v1/quota", tags=["quota"])


class QuotaStatusResponse(BaseModel):
    resource: str
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    used: int
    period: str  # daily | monthly
    tier: str  # free | pro


class RoutineLimitResponse(BaseModel):
    current: int
    limit: int
    can_create: bool
    is_pro: bool


# Declared before /{resource} so it is not captured as a resource name
@router.get("/routines/limit", response_model=RoutineLimitResponse)
def routine_limit(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    limit = get_routine_limit(db, user.id)
    return RoutineLimitResponse(**limit.__dict__)


@router.get("/{resource}", response_model=QuotaStatusResponse)
def quota_status(
    resource: str,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Usage in the current window; does not consume anything"""
    status = QuotaLedger(db).check(user.id, resource)
    return QuotaStatusResponse(
        resource=resource,
        allowed=status.allowed,
        remaining=status.remaining,
        reset_at=status.reset_at,
        limit=status.limit,
        used=status.used,
        period=status.period,
        tier=status.tier,
    )
