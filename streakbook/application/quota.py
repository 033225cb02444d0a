"""
Quota ledger: tiered usage limits for AI coaching, plus routine/group caps.

Callers check before the rate-limited action and increment only after it
succeeded. Two requests racing between check and increment can both pass,
so a window may end up at most one unit over its ceiling per concurrent
request; increments themselves never lose updates.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from sqlalchemy import func
from sqlalchemy.orm import Session

from streakbook.config import Settings, get_settings
from streakbook.application.errors import NotFoundError, QuotaExceededError, ValidationError
from streakbook.domain.quota import (
    RESOURCES, QuotaResource, QuotaStatus, TIER_PRO,
    resolve_tier, window_for, evaluate, is_pro,
)
from streakbook.domain.routine import STATUS_ACTIVE
from streakbook.infrastructure.db.models import AiUsageRecord, Profile, RoutineModel, GroupMember

logger = logging.getLogger(__name__)


def _upsert_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Atomic quota increment is not supported on {dialect_name}")
    return insert


class QuotaLedger:
    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.TIMEZONE)

    def _resource(self, name: str) -> QuotaResource:
        resource = RESOURCES.get(name)
        if resource is None:
            raise ValidationError(f"Unknown quota resource: {name}")
        return resource

    def _ceiling(self, resource: QuotaResource, tier: str) -> int:
        s = self.settings
        if resource.name == "ai_messages":
            return s.PRO_AI_MESSAGES_MONTHLY_LIMIT if tier == TIER_PRO else s.FREE_AI_MESSAGES_DAILY_LIMIT
        return s.PRO_AI_MONTHLY_LIMIT if tier == TIER_PRO else s.FREE_AI_DAILY_LIMIT

    def _today(self, now: datetime):
        return now.astimezone(self.tz).date()

    def check(self, user_id: int, resource: str, now: datetime | None = None) -> QuotaStatus:
        """Read-only: usage summed over the window the user's tier has right now."""
        if now is None:
            now = datetime.now(timezone.utc)
        res = self._resource(resource)

        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            raise NotFoundError(f"Profile #{user_id} not found")

        tier = resolve_tier(profile.subscription_plan, profile.subscription_expires_at, now)
        window = window_for(tier, self._today(now), self.tz)
        column = getattr(AiUsageRecord, res.column)

        used = self.db.query(func.coalesce(func.sum(column), 0)).filter(
            AiUsageRecord.user_id == user_id,
            AiUsageRecord.usage_date >= window.start,
            AiUsageRecord.usage_date <= window.end,
        ).scalar() or 0

        return evaluate(int(used), self._ceiling(res, tier), window, tier)

    def require(self, user_id: int, resource: str, now: datetime | None = None) -> QuotaStatus:
        """check(), raising QuotaExceededError (with reset time) when not allowed."""
        status = self.check(user_id, resource, now=now)
        if not status.allowed:
            logger.warning(
                "Quota refused: user_id=%s resource=%s used=%d limit=%d",
                user_id, resource, status.used, status.limit,
            )
            raise QuotaExceededError(resource, status.limit, status.reset_at)
        return status

    def increment(self, user_id: int, resource: str, tokens: int = 0, now: datetime | None = None) -> None:
        """
        Atomically bump today's counter for the resource (insert-or-increment).

        One INSERT ... ON CONFLICT DO UPDATE statement; never read-modify-write.
        Does not commit and does not enforce the ceiling.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if tokens < 0:
            raise ValidationError("tokens must be non-negative")
        res = self._resource(resource)
        table = AiUsageRecord.__table__

        values = {
            "user_id": user_id,
            "usage_date": self._today(now),
            "conversation_count": 0,
            "message_count": 0,
            "tokens_used": tokens,
        }
        values[res.column] = 1

        insert = _upsert_insert(self.db.get_bind().dialect.name)
        stmt = insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "usage_date"],
            set_={
                res.column: table.c[res.column] + 1,
                "tokens_used": table.c.tokens_used + tokens,
            },
        )
        self.db.execute(stmt)
        logger.info("Quota increment: user_id=%s resource=%s tokens=%d", user_id, resource, tokens)


# ---------------------------------------------------------------------------
# Routine / group caps
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoutineLimit:
    current: int
    limit: int
    can_create: bool
    is_pro: bool


def get_routine_limit(db: Session, user_id: int, now: datetime | None = None,
                      settings: Settings | None = None) -> RoutineLimit:
    """Active routines vs. the tier cap (free 5, pro 999)."""
    settings = settings or get_settings()
    if now is None:
        now = datetime.now(timezone.utc)

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError(f"Profile #{user_id} not found")

    pro = is_pro(profile.subscription_plan, profile.subscription_expires_at, now)
    limit = settings.PRO_ROUTINE_LIMIT if pro else settings.FREE_ROUTINE_LIMIT
    current = db.query(func.count(RoutineModel.id)).filter(
        RoutineModel.user_id == user_id,
        RoutineModel.status == STATUS_ACTIVE,
    ).scalar() or 0
    return RoutineLimit(current=current, limit=limit, can_create=current < limit, is_pro=pro)


def can_create_routine(db: Session, user_id: int, now: datetime | None = None) -> bool:
    return get_routine_limit(db, user_id, now=now).can_create


def can_join_group(db: Session, user_id: int, settings: Settings | None = None) -> bool:
    """Same membership cap for every tier."""
    settings = settings or get_settings()
    count = db.query(func.count(GroupMember.id)).filter(GroupMember.user_id == user_id).scalar() or 0
    return count < settings.GROUP_MEMBERSHIP_LIMIT
