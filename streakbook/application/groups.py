"""Accountability groups: create, join, leave (member_count kept by COUNT)"""
import logging
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streakbook.application import synchronizer
from streakbook.application.errors import (
    ConflictError, FreeTierLimitError, NotFoundError, ValidationError,
)
from streakbook.application.quota import can_join_group
from streakbook.config import get_settings
from streakbook.infrastructure.db.models import GroupModel, GroupMember
from streakbook.infrastructure.db.session import unit_of_work
from streakbook.infrastructure.eventlog.repository import EventLogRepository

logger = logging.getLogger(__name__)

MIN_MEMBERS = 2
MAX_MEMBERS = 30


def _membership_count(db: Session, user_id: int) -> int:
    return db.query(func.count(GroupMember.id)).filter(GroupMember.user_id == user_id).scalar() or 0


def _require_group_slot(db: Session, user_id: int) -> None:
    if not can_join_group(db, user_id):
        raise FreeTierLimitError("group", _membership_count(db, user_id), get_settings().GROUP_MEMBERSHIP_LIMIT)


class CreateGroupUseCase:
    """Creates a group with its owner as the first member."""
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, owner_id: int, name: str, description: str | None = None,
                max_members: int = 10, is_private: bool = True) -> GroupModel:
        name = (name or "").strip()
        if not name or len(name) > 100:
            raise ValidationError("Group name must be 1-100 characters")
        if max_members < MIN_MEMBERS or max_members > MAX_MEMBERS:
            raise ValidationError(f"max_members must be between {MIN_MEMBERS} and {MAX_MEMBERS}")
        _require_group_slot(self.db, owner_id)

        with unit_of_work(self.db):
            group = GroupModel(
                owner_id=owner_id,
                name=name,
                description=description,
                max_members=max_members,
                is_private=is_private,
                member_count=0,
            )
            self.db.add(group)
            self.db.flush()
            self.db.add(GroupMember(group_id=group.id, user_id=owner_id, role="owner"))
            synchronizer.sync_group_member_count(self.db, group.id)
            self.event_repo.append_event(
                account_id=owner_id,
                event_type="group_created",
                payload={"group_id": group.id, "name": name, "max_members": max_members},
                actor_user_id=owner_id,
            )
        return group


class JoinGroupUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, group_id: int, user_id: int) -> int:
        """Returns the group's member_count after joining."""
        group = self.db.query(GroupModel).filter(GroupModel.id == group_id).first()
        if group is None:
            raise NotFoundError(f"Group #{group_id} not found")

        already = self.db.query(GroupMember.id).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        ).first()
        if already:
            raise ConflictError("Already a member of this group")
        _require_group_slot(self.db, user_id)

        with unit_of_work(self.db):
            locked = self.db.query(GroupModel).filter(GroupModel.id == group_id).with_for_update().one()
            members = self.db.query(func.count(GroupMember.id)).filter(
                GroupMember.group_id == group_id
            ).scalar() or 0
            if members >= locked.max_members:
                raise ConflictError("Group is full", {"max_members": locked.max_members})

            self.db.add(GroupMember(group_id=group_id, user_id=user_id, role="member"))
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise ConflictError("Already a member of this group") from exc

            count = synchronizer.sync_group_member_count(self.db, group_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="group_joined",
                payload={"group_id": group_id, "member_count": count},
                actor_user_id=user_id,
            )
        logger.info("Group joined: group_id=%s user_id=%s members=%d", group_id, user_id, count)
        return count


class LeaveGroupUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = EventLogRepository(db)

    def execute(self, group_id: int, user_id: int) -> int:
        """Returns the group's member_count after leaving."""
        member = self.db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        ).first()
        if member is None:
            raise NotFoundError("Not a member of this group")
        if member.role == "owner":
            raise ValidationError("The owner cannot leave their own group")

        with unit_of_work(self.db):
            self.db.delete(member)
            count = synchronizer.sync_group_member_count(self.db, group_id)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="group_left",
                payload={"group_id": group_id, "member_count": count},
                actor_user_id=user_id,
            )
        return count
