"""
Aggregate synchronizer - keeps denormalized counters in step with their logs.

Every function here runs inside the caller's transaction, after the log row
has been flushed and before commit. Values are always re-derived from the log
or from authoritative child counts, never adjusted by +1/-1, so re-running a
step after a crash or retry lands on the same numbers.

Routine level:
  current_streak    = streak walk anchored at the latest completion
  longest_streak    = max(previous longest_streak, new streaks)  (never lowered by undo)
  total_completions = COUNT(completions)
  last_completed_at = latest completion date

Profile level (aggregates of routine aggregates):
  current_streak    = MAX(current_streak) over active routines
  longest_streak    = MAX(longest_streak) over all routines, archived/deleted included
  total_completions = SUM(total_completions) over all routines
  total_routines    = COUNT(active routines)

Parent counters (member_count, participant_count, message_count) = COUNT(children).
"""
import functools
import logging
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from streakbook.application.errors import ConsistencyError
from streakbook.application.streaks import (
    calculate_streak, calculate_challenge_streak, latest_completion_date, completion_dates,
)
from streakbook.config import get_settings
from streakbook.domain.routine import STATUS_ACTIVE
from streakbook.domain.streak import count_streak, longest_run
from streakbook.infrastructure.db.models import (
    Profile, RoutineModel, RoutineCompletion,
    GroupModel, GroupMember, ChallengeModel, ChallengeParticipant, ChallengeVerification,
    CoachingConversation, CoachingMessage,
)
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)


def _synchronizer_step(fn):
    """Surface database failures inside a step as ConsistencyError."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Aggregate sync step %s failed", fn.__name__)
            raise ConsistencyError(f"Aggregate update failed in {fn.__name__}") from exc
    return wrapper


def _lock_routine(db: Session, routine_id: int) -> RoutineModel:
    # Row lock serializes concurrent complete/undo on the same routine (no-op on SQLite)
    routine = db.query(RoutineModel).filter(
        RoutineModel.id == routine_id
    ).with_for_update().first()
    if routine is None:
        raise ConsistencyError(f"Routine #{routine_id} vanished during aggregate update")
    return routine


def _count_completions(db: Session, routine_id: int) -> int:
    return db.query(func.count(RoutineCompletion.id)).filter(
        RoutineCompletion.routine_id == routine_id
    ).scalar() or 0


# ---------------------------------------------------------------------------
# Routine completions
# ---------------------------------------------------------------------------

@_synchronizer_step
def on_completion_inserted(db: Session, completion: RoutineCompletion) -> RoutineModel:
    """Routine + profile aggregates after a completion row was written."""
    db.flush()
    routine = _lock_routine(db, completion.routine_id)
    previous_longest = routine.longest_streak

    snapshot = calculate_streak(db, routine.id, completion.completion_date)
    completion.streak_at_completion = snapshot
    completion.is_new_record = snapshot > previous_longest and snapshot > 1

    # A backdated completion can bridge a gap, so the live streak is always
    # re-walked from the most recent date in the log.
    latest = latest_completion_date(db, routine.id)
    if latest == completion.completion_date:
        current = snapshot
    else:
        current = calculate_streak(db, routine.id, latest)

    routine.current_streak = current
    routine.longest_streak = max(previous_longest, snapshot, current)
    routine.total_completions = _count_completions(db, routine.id)
    routine.last_completed_at = latest

    refresh_profile_stats(db, routine.user_id)
    return routine


@_synchronizer_step
def on_completion_deleted(db: Session, routine_id: int) -> RoutineModel:
    """Routine + profile aggregates after a completion row was removed (undo)."""
    db.flush()
    routine = _lock_routine(db, routine_id)

    latest = latest_completion_date(db, routine_id)
    if latest is None:
        routine.current_streak = 0
        routine.last_completed_at = None
    else:
        routine.current_streak = calculate_streak(db, routine_id, latest)
        routine.last_completed_at = latest

    routine.total_completions = _count_completions(db, routine_id)
    # longest_streak is a high-water mark: untouched

    refresh_profile_stats(db, routine.user_id)
    return routine


@_synchronizer_step
def refresh_profile_stats(db: Session, user_id: int) -> Profile:
    db.flush()
    profile = db.query(Profile).filter(Profile.id == user_id).with_for_update().first()
    if profile is None:
        raise ConsistencyError(f"Profile #{user_id} missing during aggregate update")

    active = db.query(
        func.coalesce(func.max(RoutineModel.current_streak), 0),
        func.count(RoutineModel.id),
    ).filter(
        RoutineModel.user_id == user_id,
        RoutineModel.status == STATUS_ACTIVE,
    ).one()

    overall = db.query(
        func.coalesce(func.max(RoutineModel.longest_streak), 0),
        func.coalesce(func.sum(RoutineModel.total_completions), 0),
    ).filter(
        RoutineModel.user_id == user_id,
    ).one()

    profile.current_streak = int(active[0])
    profile.total_routines = int(active[1])
    profile.longest_streak = int(overall[0])
    profile.total_completions = max(0, int(overall[1]))
    return profile


# ---------------------------------------------------------------------------
# Parent counters
# ---------------------------------------------------------------------------

@_synchronizer_step
def sync_group_member_count(db: Session, group_id: int) -> int:
    db.flush()
    group = db.query(GroupModel).filter(GroupModel.id == group_id).with_for_update().first()
    if group is None:
        raise ConsistencyError(f"Group #{group_id} missing during member count update")
    group.member_count = db.query(func.count(GroupMember.id)).filter(
        GroupMember.group_id == group_id
    ).scalar() or 0
    return group.member_count


@_synchronizer_step
def sync_challenge_participant_count(db: Session, challenge_id: int) -> int:
    db.flush()
    challenge = db.query(ChallengeModel).filter(ChallengeModel.id == challenge_id).with_for_update().first()
    if challenge is None:
        raise ConsistencyError(f"Challenge #{challenge_id} missing during participant count update")
    challenge.participant_count = db.query(func.count(ChallengeParticipant.id)).filter(
        ChallengeParticipant.challenge_id == challenge_id
    ).scalar() or 0
    return challenge.participant_count


@_synchronizer_step
def sync_conversation_message_count(db: Session, conversation_id: int) -> int:
    db.flush()
    conversation = db.query(CoachingConversation).filter(
        CoachingConversation.id == conversation_id
    ).with_for_update().first()
    if conversation is None:
        raise ConsistencyError(f"Conversation #{conversation_id} missing during message count update")
    conversation.message_count = db.query(func.count(CoachingMessage.id)).filter(
        CoachingMessage.conversation_id == conversation_id
    ).scalar() or 0
    return conversation.message_count


@_synchronizer_step
def sync_challenge_participant_stats(db: Session, challenge_id: int, user_id: int) -> ChallengeParticipant:
    """completed_days and current_streak of one participant, from their check-ins."""
    db.flush()
    participant = db.query(ChallengeParticipant).filter(
        ChallengeParticipant.challenge_id == challenge_id,
        ChallengeParticipant.user_id == user_id,
    ).with_for_update().first()
    if participant is None:
        raise ConsistencyError(
            f"Participant user_id={user_id} missing from challenge #{challenge_id}"
        )

    base = db.query(ChallengeVerification).filter(
        ChallengeVerification.challenge_id == challenge_id,
        ChallengeVerification.user_id == user_id,
    )
    participant.completed_days = base.count()
    latest = base.with_entities(func.max(ChallengeVerification.verification_date)).scalar()
    participant.current_streak = calculate_challenge_streak(db, challenge_id, user_id, latest)
    return participant


# ---------------------------------------------------------------------------
# Recovery: rebuild from the logs
# ---------------------------------------------------------------------------

def _recorded_peak(db: Session, user_id: int, routine_id: int) -> int:
    """Highest streak ever reported for the routine in the audit trail."""
    repo = EventLogRepository(db)
    peak = 0
    after_id = 0
    while True:
        batch = repo.list_events(user_id, after_id=after_id, event_types=["routine_completed"])
        if not batch:
            return peak
        for ev in batch:
            p = ev.payload_json
            if p.get("routine_id") == routine_id:
                peak = max(peak, int(p.get("streak") or 0), int(p.get("streak_at_completion") or 0))
        after_id = batch[-1].id


@_synchronizer_step
def rebuild_routine(db: Session, routine_id: int) -> RoutineModel:
    """
    Recompute every routine aggregate from the completion log.

    longest_streak takes the best run still present in the log, or the peak
    recorded in the audit trail for completions that were later undone.
    """
    db.flush()
    routine = _lock_routine(db, routine_id)
    dates = completion_dates(db, routine_id)
    latest = max(dates) if dates else None
    limit = get_settings().STREAK_MAX_DAYS

    routine.current_streak = count_streak(dates, latest, limit)
    routine.longest_streak = max(longest_run(dates, limit), _recorded_peak(db, routine.user_id, routine_id))
    routine.total_completions = len(dates)
    routine.last_completed_at = latest
    return routine


def rebuild_profile(db: Session, user_id: int) -> Profile:
    """Rebuild all of a user's routines, then their profile rollups."""
    routine_ids = [r[0] for r in db.query(RoutineModel.id).filter(RoutineModel.user_id == user_id).all()]
    for routine_id in routine_ids:
        rebuild_routine(db, routine_id)
    profile = refresh_profile_stats(db, user_id)
    logger.info("Rebuilt %d routine(s) for user_id=%s", len(routine_ids), user_id)
    return profile


def rebuild_parent_counters(db: Session) -> dict[str, int]:
    """Recount member/participant/message counters everywhere."""
    counts = {"groups": 0, "challenges": 0, "conversations": 0}
    for (group_id,) in db.query(GroupModel.id).all():
        sync_group_member_count(db, group_id)
        counts["groups"] += 1
    for (challenge_id,) in db.query(ChallengeModel.id).all():
        sync_challenge_participant_count(db, challenge_id)
        counts["challenges"] += 1
    for (conversation_id,) in db.query(CoachingConversation.id).all():
        sync_conversation_message_count(db, conversation_id)
        counts["conversations"] += 1
    return counts
