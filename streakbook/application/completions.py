"""Mark / unmark a routine as done for a calendar day"""
import logging
from dataclasses import dataclass, field
from datetime import date
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streakbook.application import synchronizer
from streakbook.application.errors import ConflictError, NotFoundError, ValidationError
from streakbook.application.routines import load_owned_routine
from streakbook.domain.routine import RoutineCompletionEvent, STATUS_ACTIVE, NOTE_MAX_LENGTH
from streakbook.domain.streak import achievements_for
from streakbook.infrastructure.db.models import RoutineCompletion
from streakbook.infrastructure.db.session import unit_of_work
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    routine_id: int
    completion_date: date
    streak: int
    longest_streak: int
    total_completions: int
    is_new_record: bool
    achievements: list[dict] = field(default_factory=list)


@dataclass
class UncompletionResult:
    routine_id: int
    completion_date: date
    streak: int
    longest_streak: int
    total_completions: int


class RecordCompletionUseCase:
    """
    Writes one completion row and brings routine + profile aggregates up to
    date in the same transaction. Either everything commits or nothing does.
    """
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, routine_id: int, user_id: int, completion_date: date,
                note: str | None = None) -> CompletionResult:
        if note is not None and len(note) > NOTE_MAX_LENGTH:
            raise ValidationError(f"note must be at most {NOTE_MAX_LENGTH} characters")

        routine = load_owned_routine(self.db, routine_id, user_id)
        if routine.status != STATUS_ACTIVE:
            raise ValidationError("Only active routines can be completed")

        existing = self.db.query(RoutineCompletion.id).filter(
            RoutineCompletion.routine_id == routine_id,
            RoutineCompletion.completion_date == completion_date,
        ).first()
        if existing:
            raise ConflictError("Already done for this day", {"completion_date": completion_date.isoformat()})

        with unit_of_work(self.db):
            completion = RoutineCompletion(
                routine_id=routine_id,
                user_id=user_id,
                completion_date=completion_date,
                note=note,
                streak_at_completion=1,
            )
            self.db.add(completion)
            try:
                self.db.flush()
            except IntegrityError as exc:
                # lost a race with a concurrent insert for the same day
                raise ConflictError(
                    "Already done for this day", {"completion_date": completion_date.isoformat()}
                ) from exc

            routine = synchronizer.on_completion_inserted(self.db, completion)

            self.event_repo.append_event(
                account_id=user_id,
                event_type="routine_completed",
                payload=RoutineCompletionEvent.complete(
                    routine_id, completion_date.isoformat(),
                    routine.current_streak, completion.streak_at_completion, note,
                ),
                actor_user_id=user_id,
            )
            result = CompletionResult(
                routine_id=routine_id,
                completion_date=completion_date,
                streak=routine.current_streak,
                longest_streak=routine.longest_streak,
                total_completions=routine.total_completions,
                is_new_record=completion.is_new_record,
                achievements=achievements_for(routine.current_streak),
            )

        logger.info(
            "Routine completed: routine_id=%s date=%s streak=%d",
            routine_id, completion_date.isoformat(), result.streak,
        )
        return result


class RemoveCompletionUseCase:
    """
    Undo: deletes the completion and re-derives the streak from what is left
    in the log (never "streak - 1").
    """
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, routine_id: int, user_id: int, completion_date: date) -> UncompletionResult:
        load_owned_routine(self.db, routine_id, user_id)

        completion = self.db.query(RoutineCompletion).filter(
            RoutineCompletion.routine_id == routine_id,
            RoutineCompletion.completion_date == completion_date,
        ).first()
        if completion is None:
            raise NotFoundError("Nothing to undo for this day", {"completion_date": completion_date.isoformat()})

        with unit_of_work(self.db):
            self.db.delete(completion)
            routine = synchronizer.on_completion_deleted(self.db, routine_id)

            self.event_repo.append_event(
                account_id=user_id,
                event_type="routine_uncompleted",
                payload=RoutineCompletionEvent.uncomplete(
                    routine_id, completion_date.isoformat(), routine.current_streak
                ),
                actor_user_id=user_id,
            )
            result = UncompletionResult(
                routine_id=routine_id,
                completion_date=completion_date,
                streak=routine.current_streak,
                longest_streak=routine.longest_streak,
                total_completions=routine.total_completions,
            )

        logger.info(
            "Routine completion removed: routine_id=%s date=%s streak=%d",
            routine_id, completion_date.isoformat(), result.streak,
        )
        return result
