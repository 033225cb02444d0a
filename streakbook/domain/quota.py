"""
Quota tiers and windows.

Tier is never stored: it is derived from (subscription_plan, expires_at) at the
moment of the check, so a lapsed subscription falls back to the free window on
the very next call. Usage is stored per day and summed over whichever window
is active at query time.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict
from zoneinfo import ZoneInfo

TIER_FREE = "free"
TIER_PRO = "pro"

PERIOD_DAILY = "daily"
PERIOD_MONTHLY = "monthly"

PLAN_PRO = "pro"


@dataclass(frozen=True)
class QuotaResource:
    name: str
    column: str  # counter column on ai_usage_tracking


AI_CONVERSATIONS = QuotaResource("ai_conversations", "conversation_count")
AI_MESSAGES = QuotaResource("ai_messages", "message_count")

RESOURCES: Dict[str, QuotaResource] = {
    AI_CONVERSATIONS.name: AI_CONVERSATIONS,
    AI_MESSAGES.name: AI_MESSAGES,
}


@dataclass(frozen=True)
class QuotaWindow:
    period: str
    start: date  # inclusive
    end: date  # inclusive
    reset_at: datetime


@dataclass(frozen=True)
class QuotaStatus:
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    used: int
    period: str
    tier: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "limit": self.limit,
            "used": self.used,
            "period": self.period,
            "tier": self.tier,
        }


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_pro(plan: str | None, expires_at: datetime | None, now: datetime) -> bool:
    """Pro only while the subscription has not expired."""
    if plan != PLAN_PRO or expires_at is None:
        return False
    return _as_utc(expires_at) > _as_utc(now)


def resolve_tier(plan: str | None, expires_at: datetime | None, now: datetime) -> str:
    return TIER_PRO if is_pro(plan, expires_at, now) else TIER_FREE


def window_for(tier: str, today: date, tz: ZoneInfo) -> QuotaWindow:
    """Daily window for free users, calendar-month window for pro users."""
    if tier == TIER_PRO:
        start = today.replace(day=1)
        if start.month == 12:
            next_start = date(start.year + 1, 1, 1)
        else:
            next_start = date(start.year, start.month + 1, 1)
        return QuotaWindow(
            period=PERIOD_MONTHLY,
            start=start,
            end=next_start - timedelta(days=1),
            reset_at=datetime.combine(next_start, time.min, tzinfo=tz),
        )

    tomorrow = today + timedelta(days=1)
    return QuotaWindow(
        period=PERIOD_DAILY,
        start=today,
        end=today,
        reset_at=datetime.combine(tomorrow, time.min, tzinfo=tz),
    )


def evaluate(used: int, limit: int, window: QuotaWindow, tier: str) -> QuotaStatus:
    return QuotaStatus(
        allowed=used < limit,
        remaining=max(0, limit - used),
        reset_at=window.reset_at,
        limit=limit,
        used=used,
        period=window.period,
        tier=tier,
    )
