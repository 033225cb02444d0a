"""
Current user endpoint
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from streakbook.api.deps import get_db, get_current_user
from streakbook.infrastructure.db.models import Profile
from streakbook.application.routines import get_profile_stats
from streakbook.domain.quota import resolve_tier


router = APIRouter(prefix="/api/v1/users", tags=["users"])


class ProfileStats(BaseModel):
    total_routines: int
    current_streak: int
    longest_streak: int
    total_completions: int


class MeResponse(BaseModel):
    id: int
    email: str
    name: str
    subscription_plan: str
    subscription_expires_at: datetime | None
    tier: str
    stats: ProfileStats


@router.get("/me", response_model=MeResponse)
def read_me(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Profile with stored rollups (never recomputed on read)"""
    return MeResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        subscription_plan=user.subscription_plan,
        subscription_expires_at=user.subscription_expires_at,
        tier=resolve_tier(user.subscription_plan, user.subscription_expires_at, datetime.now(timezone.utc)),
        stats=ProfileStats(**get_profile_stats(db, user.id)),
    )
