"""
SQLAlchemy ORM models (event logs + denormalized aggregates)

Aggregate columns (streaks, totals, member/participant/message counts) are
written only by streakbook.application.synchronizer.
"""
from datetime import date as date_type, datetime
from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, Date, func, Boolean, ForeignKey,
    UniqueConstraint, Index, CheckConstraint, true, false,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from streakbook.infrastructure.db.session import Base


class Profile(Base):
    """
    User profile: subscription tier + rollups over the user's routines
    """
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # basic | pro; pro only counts while subscription_expires_at is in the future
    subscription_plan: Mapped[str] = mapped_column(String(16), nullable=False, server_default="basic")
    subscription_expires_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Rollups (aggregates of routine aggregates)
    total_routines: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class EventLog(Base):
    """
    Append-only audit trail of client-visible mutations.

    Written in the same transaction as the record it describes.
    """
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    actor_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    payload_json: Mapped[dict] = mapped_column(JSONB, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        index=True
    )
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


# ============================================================================
# Routines
# ============================================================================


class RoutineModel(Base):
    __tablename__ = "routines"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    # spiritual | health | learning | productivity | custom
    category: Mapped[str] = mapped_column(String(32), nullable=False)

    # daily | weekly | custom; days are "1,2,...,7" (Mon..Sun)
    schedule_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="daily")
    schedule_time: Mapped[str] = mapped_column(String(5), nullable=False, server_default="07:00")
    schedule_days: Mapped[str] = mapped_column(String(32), nullable=False, server_default="1,2,3,4,5,6,7")
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true(), default=True)
    reminder_minutes_before: Mapped[int] = mapped_column(Integer, nullable=False, server_default="10")

    # active | archived | deleted (never hard-deleted while completions exist)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="active")

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_completed_at: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("current_streak >= 0", name="ck_routine_current_streak"),
        CheckConstraint("longest_streak >= 0", name="ck_routine_longest_streak"),
        CheckConstraint("total_completions >= 0", name="ck_routine_total_completions"),
        Index("ix_routines_user_status", "user_id", "status"),
    )


class RoutineCompletion(Base):
    """Event log: one row per (routine, calendar day)."""
    __tablename__ = "routine_completions"

    id: Mapped[int] = mapped_column(primary_key=True)
    routine_id: Mapped[int] = mapped_column(ForeignKey("routines.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    completion_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Snapshot for display/analytics; routines.current_streak is the live value
    streak_at_completion: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    is_new_record: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)

    __table_args__ = (
        UniqueConstraint("routine_id", "completion_date", name="uq_routine_completion_date"),
        CheckConstraint("streak_at_completion > 0", name="ck_completion_streak_positive"),
        Index("ix_completions_routine_date", "routine_id", "completion_date"),
        Index("ix_completions_user_date", "user_id", "completion_date"),
    )


# ============================================================================
# Quota ledger
# ============================================================================


class AiUsageRecord(Base):
    """Quota usage: one row per (user, calendar day); counters only grow."""
    __tablename__ = "ai_usage_tracking"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    usage_date: Mapped[date_type] = mapped_column(Date, nullable=False)

    conversation_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    __table_args__ = (
        UniqueConstraint("user_id", "usage_date", name="uq_ai_usage_user_date"),
        Index("ix_ai_usage_user_date", "user_id", "usage_date"),
    )


# ============================================================================
# Groups
# ============================================================================


class GroupModel(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, server_default="10")
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true(), default=True)
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class GroupMember(Base):
    __tablename__ = "group_members"

    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, server_default="member")  # owner | member
    joined_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )


# ============================================================================
# Challenges
# ============================================================================


class ChallengeModel(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    end_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    # upcoming | active | completed
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="upcoming")
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_challenge_dates"),
    )


class ChallengeParticipant(Base):
    __tablename__ = "challenge_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[int] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_days: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    joined_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participant"),
    )


class ChallengeVerification(Base):
    """Event log: daily challenge check-ins."""
    __tablename__ = "challenge_verifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[int] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    verification_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", "verification_date", name="uq_challenge_verification"),
        Index("ix_verifications_challenge_user_date", "challenge_id", "user_id", "verification_date"),
    )


# ============================================================================
# AI coaching
# ============================================================================


class CoachingConversation(Base):
    __tablename__ = "coaching_conversations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False, server_default="New conversation")
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    has_report: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CoachingMessage(Base):
    __tablename__ = "coaching_messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("coaching_conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # user | assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )
