"""Time-bound challenges: participation and daily check-ins"""
import logging
from datetime import date
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streakbook.application import synchronizer
from streakbook.application.errors import ConflictError, NotFoundError, ValidationError
from streakbook.application.streaks import calculate_challenge_streak
from streakbook.infrastructure.db.models import (
    ChallengeModel, ChallengeParticipant, ChallengeVerification,
)
from streakbook.infrastructure.db.session import unit_of_work
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)


def _load_challenge(db: Session, challenge_id: int) -> ChallengeModel:
    challenge = db.query(ChallengeModel).filter(ChallengeModel.id == challenge_id).first()
    if challenge is None:
        raise NotFoundError(f"Challenge #{challenge_id} not found")
    return challenge


def _participant(db: Session, challenge_id: int, user_id: int) -> ChallengeParticipant | None:
    return db.query(ChallengeParticipant).filter(
        ChallengeParticipant.challenge_id == challenge_id,
        ChallengeParticipant.user_id == user_id,
    ).first()


def _stats(participant: ChallengeParticipant) -> dict:
    return {
        "challenge_id": participant.challenge_id,
        "user_id": participant.user_id,
        "completed_days": participant.completed_days,
        "current_streak": participant.current_streak,
    }


def _leftover_stats(db: Session, challenge_id: int, user_id: int) -> dict:
    """Stats derived straight from check-ins, for a user who is no longer participating."""
    db.flush()
    base = db.query(ChallengeVerification).filter(
        ChallengeVerification.challenge_id == challenge_id,
        ChallengeVerification.user_id == user_id,
    )
    latest = base.with_entities(func.max(ChallengeVerification.verification_date)).scalar()
    return {
        "challenge_id": challenge_id,
        "user_id": user_id,
        "completed_days": base.count(),
        "current_streak": calculate_challenge_streak(db, challenge_id, user_id, latest),
    }


class JoinChallengeUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, challenge_id: int, user_id: int) -> dict:
        challenge = _load_challenge(self.db, challenge_id)
        if challenge.status == "completed":
            raise ValidationError("This challenge has already ended")
        if _participant(self.db, challenge_id, user_id):
            raise ConflictError("Already participating in this challenge")

        with unit_of_work(self.db):
            self.db.add(ChallengeParticipant(challenge_id=challenge_id, user_id=user_id))
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise ConflictError("Already participating in this challenge") from exc
            synchronizer.sync_challenge_participant_count(self.db, challenge_id)
            # check-ins from an earlier participation still count
            participant = synchronizer.sync_challenge_participant_stats(self.db, challenge_id, user_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="challenge_joined",
                payload={"challenge_id": challenge_id},
                actor_user_id=user_id,
            )
            stats = _stats(participant)
        return stats


class LeaveChallengeUseCase:
    """Removes the participation; check-ins stay in the log."""
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, challenge_id: int, user_id: int) -> int:
        participant = _participant(self.db, challenge_id, user_id)
        if participant is None:
            raise NotFoundError("Not participating in this challenge")

        with unit_of_work(self.db):
            self.db.delete(participant)
            count = synchronizer.sync_challenge_participant_count(self.db, challenge_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="challenge_left",
                payload={"challenge_id": challenge_id, "participant_count": count},
                actor_user_id=user_id,
            )
        return count


class VerifyChallengeDayUseCase:
    """Daily check-in; completed_days and current_streak re-derived from check-ins."""
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, challenge_id: int, user_id: int, verification_date: date,
                content: str | None = None, image_url: str | None = None) -> dict:
        challenge = _load_challenge(self.db, challenge_id)
        if _participant(self.db, challenge_id, user_id) is None:
            raise NotFoundError("Not participating in this challenge")
        if not (challenge.start_date <= verification_date <= challenge.end_date):
            raise ValidationError(
                f"Check-ins are accepted from {challenge.start_date.isoformat()} to {challenge.end_date.isoformat()}"
            )
        if content is not None and len(content) > 1000:
            raise ValidationError("content must be at most 1000 characters")

        existing = self.db.query(ChallengeVerification.id).filter(
            ChallengeVerification.challenge_id == challenge_id,
            ChallengeVerification.user_id == user_id,
            ChallengeVerification.verification_date == verification_date,
        ).first()
        if existing:
            raise ConflictError("Already checked in for this day")

        with unit_of_work(self.db):
            self.db.add(ChallengeVerification(
                challenge_id=challenge_id,
                user_id=user_id,
                verification_date=verification_date,
                content=content,
                image_url=image_url,
            ))
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise ConflictError("Already checked in for this day") from exc
            participant = synchronizer.sync_challenge_participant_stats(self.db, challenge_id, user_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="challenge_verified",
                payload={"challenge_id": challenge_id, "verification_date": verification_date.isoformat(),
                         "current_streak": participant.current_streak},
                actor_user_id=user_id,
            )
            stats = _stats(participant)
        return stats


class RemoveChallengeVerificationUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, challenge_id: int, user_id: int, verification_date: date) -> dict:
        verification = self.db.query(ChallengeVerification).filter(
            ChallengeVerification.challenge_id == challenge_id,
            ChallengeVerification.user_id == user_id,
            ChallengeVerification.verification_date == verification_date,
        ).first()
        if verification is None:
            raise NotFoundError("Nothing to undo for this day")

        with unit_of_work(self.db):
            self.db.delete(verification)
            if _participant(self.db, challenge_id, user_id) is not None:
                participant = synchronizer.sync_challenge_participant_stats(self.db, challenge_id, user_id)
                stats = _stats(participant)
            else:
                # left the challenge: check-ins are kept, but there is no row to update
                stats = _leftover_stats(self.db, challenge_id, user_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="challenge_verification_removed",
                payload={"challenge_id": challenge_id, "verification_date": verification_date.isoformat()},
                actor_user_id=user_id,
            )
        return stats
