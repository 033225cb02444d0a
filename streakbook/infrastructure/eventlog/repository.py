"""
Event Log Repository - append-only audit trail of client-visible mutations

Every completion, undo, check-in and membership change is recorded here in the
same transaction as the record itself, so the trail never disagrees with the
record tables.
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from streakbook.infrastructure.db.models import EventLog


class EventLogRepository:
    """
    Repository for the event_log table
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        account_id: int,
        event_type: str,
        payload: Dict[str, Any],
        occurred_at: Optional[datetime] = None,
        actor_user_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> int:
        """
        Append an event (flushes, never commits)

        Args:
            account_id: owning user id
            event_type: e.g. "routine_completed"
            payload: JSON-serialisable event data
            occurred_at: defaults to now (UTC)
            actor_user_id: who performed the action
            idempotency_key: optional unique key

        Returns:
            event_id of the new row

        Raises:
            IntegrityError: if idempotency_key already exists

        Example:
            >>> repo = EventLogRepository(db)
            >>> event_id = repo.append_event(
            ...     account_id=1,
            ...     event_type="routine_completed",
            ...     payload={"routine_id": 7, "completion_date": "2026-01-14"},
            ... )
        """
        if occurred_at is None:
            occurred_at = datetime.now(timezone.utc)

        event = EventLog(
            account_id=account_id,
            actor_user_id=actor_user_id,
            event_type=event_type,
            payload_json=payload,
            occurred_at=occurred_at,
            idempotency_key=idempotency_key,
        )

        self.db.add(event)
        self.db.flush()

        return event.id

    def list_events(
        self,
        account_id: int,
        after_id: int = 0,
        limit: int = 200,
        event_types: Optional[List[str]] = None,
    ) -> List[EventLog]:
        """
        Events with id > after_id, oldest first

        Args:
            account_id: owning user id
            after_id: exclusive lower bound on event id
            limit: max rows returned
            event_types: optional filter
        """
        query = (
            self.db.query(EventLog)
            .filter(
                EventLog.account_id == account_id,
                EventLog.id > after_id
            )
        )

        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))

        return query.order_by(EventLog.id.asc()).limit(limit).all()
