"""Streak queries against the completion and check-in logs (read-only)."""
import logging
from datetime import date, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from streakbook.config import get_settings
from streakbook.domain.streak import count_streak
from streakbook.infrastructure.db.models import RoutineCompletion, ChallengeVerification

logger = logging.getLogger(__name__)


def _limit(limit: int | None) -> int:
    return limit if limit is not None else get_settings().STREAK_MAX_DAYS


def calculate_streak(db: Session, routine_id: int, anchor: date | None, limit: int | None = None) -> int:
    """
    Consecutive completed days for a routine ending at ``anchor``.

    Loads the ``limit`` days before the anchor, enough to tell a run of exactly
    ``limit`` days from a longer one, and counts the unbroken run. Same log,
    same anchor, same answer.
    """
    if anchor is None:
        return 0
    limit = _limit(limit)

    rows = db.query(RoutineCompletion.completion_date).filter(
        RoutineCompletion.routine_id == routine_id,
        RoutineCompletion.completion_date < anchor,
        RoutineCompletion.completion_date >= anchor - timedelta(days=limit),
    ).all()
    streak = count_streak({r[0] for r in rows}, anchor, limit + 1)
    if streak > limit:
        logger.warning("Streak for routine_id=%s clamped at %d", routine_id, limit)
        return limit
    return streak


def calculate_challenge_streak(db: Session, challenge_id: int, user_id: int,
                               anchor: date | None, limit: int | None = None) -> int:
    """Same walk as calculate_streak, over a participant's challenge check-ins."""
    if anchor is None:
        return 0
    limit = _limit(limit)

    rows = db.query(ChallengeVerification.verification_date).filter(
        ChallengeVerification.challenge_id == challenge_id,
        ChallengeVerification.user_id == user_id,
        ChallengeVerification.verification_date < anchor,
        ChallengeVerification.verification_date >= anchor - timedelta(days=limit),
    ).all()
    return count_streak({r[0] for r in rows}, anchor, limit)


def latest_completion_date(db: Session, routine_id: int) -> date | None:
    return db.query(func.max(RoutineCompletion.completion_date)).filter(
        RoutineCompletion.routine_id == routine_id
    ).scalar()


def completion_dates(db: Session, routine_id: int) -> set[date]:
    rows = db.query(RoutineCompletion.completion_date).filter(
        RoutineCompletion.routine_id == routine_id
    ).all()
    return {r[0] for r in rows}
