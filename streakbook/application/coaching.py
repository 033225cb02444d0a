"""
AI coaching conversations.

The model call itself is external: use cases take a responder callable
``responder(history, context) -> CoachReply``. Quota is checked before the
call and incremented only after the reply has been stored, so a failed call
costs nothing.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session

from streakbook.application import synchronizer
from streakbook.application.errors import NotFoundError, ValidationError
from streakbook.application.quota import QuotaLedger
from streakbook.config import get_settings
from streakbook.domain.routine import STATUS_ACTIVE
from streakbook.infrastructure.db.models import (
    CoachingConversation, CoachingMessage, RoutineModel, RoutineCompletion,
)
from streakbook.infrastructure.db.session import unit_of_work
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
CONTEXT_ROUTINES = 10
CONTEXT_DAYS = 7
TITLE_LENGTH = 50
MESSAGE_MAX_LENGTH = 2000


@dataclass
class CoachReply:
    content: str
    tokens_used: int = 0
    model: str | None = None


Responder = Callable[[list[dict], dict], CoachReply]


def _conversation_title(message: str) -> str:
    if len(message) > TITLE_LENGTH:
        return message[:TITLE_LENGTH] + "..."
    return message


def _validate_message(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationError("message must not be empty")
    if len(content) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f"message must be at most {MESSAGE_MAX_LENGTH} characters")
    return content


def build_coaching_context(db: Session, user_id: int, now: datetime) -> dict:
    """Top active routines by streak plus last week's completions."""
    routines = db.query(RoutineModel).filter(
        RoutineModel.user_id == user_id,
        RoutineModel.status == STATUS_ACTIVE,
    ).order_by(RoutineModel.current_streak.desc(), RoutineModel.id).limit(CONTEXT_ROUTINES).all()

    today = now.astimezone(ZoneInfo(get_settings().TIMEZONE)).date()
    since = today - timedelta(days=CONTEXT_DAYS)
    recent = db.query(RoutineCompletion).filter(
        RoutineCompletion.user_id == user_id,
        RoutineCompletion.completion_date >= since,
    ).order_by(RoutineCompletion.completion_date.desc()).all()

    return {
        "routines": [
            {
                "name": r.name,
                "category": r.category,
                "current_streak": r.current_streak,
                "longest_streak": r.longest_streak,
                "total_completions": r.total_completions,
            }
            for r in routines
        ],
        "recent_completions": [
            {"routine_id": c.routine_id, "completion_date": c.completion_date.isoformat()}
            for c in recent
        ],
    }


def _history(db: Session, conversation_id: int) -> list[dict]:
    rows = db.query(CoachingMessage).filter(
        CoachingMessage.conversation_id == conversation_id
    ).order_by(CoachingMessage.created_at.desc(), CoachingMessage.id.desc()).limit(HISTORY_LIMIT).all()
    return [{"role": m.role, "content": m.content} for m in reversed(rows)]


def _store_exchange(db: Session, conversation_id: int, user_id: int,
                    content: str, reply: CoachReply) -> CoachingMessage:
    db.add(CoachingMessage(
        conversation_id=conversation_id, user_id=user_id, role="user", content=content,
    ))
    assistant = CoachingMessage(
        conversation_id=conversation_id,
        user_id=user_id,
        role="assistant",
        content=reply.content,
        tokens_used=reply.tokens_used,
        model=reply.model,
    )
    db.add(assistant)
    return assistant


class StartConversationUseCase:
    def __init__(self, db: Session, responder: Responder, ledger: Optional[QuotaLedger] = None):
        self.db = db
        self.responder = responder
        self.ledger = ledger or QuotaLedger(db)
        self.event_repo = EventLogRepository(db)

    def execute(self, user_id: int, initial_message: str, now: datetime | None = None) -> dict:
        if now is None:
            now = datetime.now(timezone.utc)
        content = _validate_message(initial_message)
        self.ledger.require(user_id, "ai_conversations", now=now)

        context = build_coaching_context(self.db, user_id, now)
        # raises before anything is written
        reply = self.responder([{"role": "user", "content": content}], context)

        with unit_of_work(self.db):
            conversation = CoachingConversation(user_id=user_id, title=_conversation_title(content))
            self.db.add(conversation)
            self.db.flush()
            assistant = _store_exchange(self.db, conversation.id, user_id, content, reply)
            count = synchronizer.sync_conversation_message_count(self.db, conversation.id)
            self.ledger.increment(user_id, "ai_conversations", tokens=reply.tokens_used, now=now)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="coaching_conversation_started",
                payload={"conversation_id": conversation.id, "title": conversation.title},
                actor_user_id=user_id,
            )
            result = {
                "conversation_id": conversation.id,
                "title": conversation.title,
                "message_count": count,
                "reply": assistant.content,
            }

        logger.info("Coaching conversation started: user_id=%s conversation_id=%s",
                    user_id, result["conversation_id"])
        return result


class SendMessageUseCase:
    def __init__(self, db: Session, responder: Responder, ledger: Optional[QuotaLedger] = None):
        self.db = db
        self.responder = responder
        self.ledger = ledger or QuotaLedger(db)

    def execute(self, conversation_id: int, user_id: int, content: str,
                now: datetime | None = None) -> dict:
        if now is None:
            now = datetime.now(timezone.utc)
        content = _validate_message(content)

        conversation = self.db.query(CoachingConversation).filter(
            CoachingConversation.id == conversation_id,
            CoachingConversation.user_id == user_id,
        ).first()
        if conversation is None:
            raise NotFoundError(f"Conversation #{conversation_id} not found")

        self.ledger.require(user_id, "ai_messages", now=now)

        history = _history(self.db, conversation_id)
        history.append({"role": "user", "content": content})
        reply = self.responder(history, build_coaching_context(self.db, user_id, now))

        with unit_of_work(self.db):
            assistant = _store_exchange(self.db, conversation_id, user_id, content, reply)
            count = synchronizer.sync_conversation_message_count(self.db, conversation_id)
            self.ledger.increment(user_id, "ai_messages", tokens=reply.tokens_used, now=now)
            result = {
                "conversation_id": conversation_id,
                "message_count": count,
                "reply": assistant.content,
                "tokens_used": reply.tokens_used,
            }
        return result


def list_conversations(db: Session, user_id: int, limit: int = 20) -> list[dict]:
    """Newest first, each with a preview of its last message."""
    conversations = db.query(CoachingConversation).filter(
        CoachingConversation.user_id == user_id
    ).order_by(CoachingConversation.updated_at.desc(), CoachingConversation.id.desc()).limit(limit).all()

    result = []
    for conv in conversations:
        last = db.query(CoachingMessage).filter(
            CoachingMessage.conversation_id == conv.id
        ).order_by(CoachingMessage.created_at.desc(), CoachingMessage.id.desc()).first()
        result.append({
            "id": conv.id,
            "title": conv.title,
            "message_count": conv.message_count,
            "has_report": conv.has_report,
            "last_message": last.content[:100] if last else None,
        })
    return result
