"""
Tests for group membership and challenge participation counters
"""
import pytest
from datetime import date

from streakbook.application.challenges import (
    JoinChallengeUseCase, LeaveChallengeUseCase,
    VerifyChallengeDayUseCase, RemoveChallengeVerificationUseCase,
)
from streakbook.application.errors import (
    ConflictError, FreeTierLimitError, NotFoundError, ValidationError,
)
from streakbook.application.groups import CreateGroupUseCase, JoinGroupUseCase, LeaveGroupUseCase
from streakbook.infrastructure.db.models import (
    ChallengeModel, ChallengeParticipant, ChallengeVerification, GroupModel, Profile,
)


@pytest.fixture
def members(db_session, sample_user):
    """sample_user plus users 10..14"""
    for uid in range(10, 15):
        db_session.add(Profile(id=uid, email=f"u{uid}@example.com", name=f"User {uid}"))
    db_session.commit()
    return list(range(10, 15))


@pytest.fixture
def challenge(db_session):
    c = ChallengeModel(
        title="30 days of reading",
        start_date=date(2026, 6, 1),
        end_date=date(2026, 6, 30),
        status="active",
    )
    db_session.add(c)
    db_session.commit()
    return c


def _group_count(db, group_id):
    db.expire_all()
    return db.query(GroupModel).filter(GroupModel.id == group_id).one().member_count


# --- Groups ---

def test_create_group_counts_owner(db_session, sample_user):
    group = CreateGroupUseCase(db_session).execute(sample_user.id, "Early birds", max_members=3)
    assert _group_count(db_session, group.id) == 1


def test_join_and_leave_recount_members(db_session, sample_user, members):
    group = CreateGroupUseCase(db_session).execute(sample_user.id, "Early birds", max_members=5)

    assert JoinGroupUseCase(db_session).execute(group.id, members[0]) == 2
    assert JoinGroupUseCase(db_session).execute(group.id, members[1]) == 3
    assert LeaveGroupUseCase(db_session).execute(group.id, members[0]) == 2
    assert _group_count(db_session, group.id) == 2


def test_join_twice_conflicts(db_session, sample_user, members):
    group = CreateGroupUseCase(db_session).execute(sample_user.id, "Early birds")
    JoinGroupUseCase(db_session).execute(group.id, members[0])

    with pytest.raises(ConflictError):
        JoinGroupUseCase(db_session).execute(group.id, members[0])
    assert _group_count(db_session, group.id) == 2


def test_full_group_rejects_join(db_session, sample_user, members):
    group = CreateGroupUseCase(db_session).execute(sample_user.id, "Pair", max_members=2)
    JoinGroupUseCase(db_session).execute(group.id, members[0])

    with pytest.raises(ConflictError, match="full"):
        JoinGroupUseCase(db_session).execute(group.id, members[1])
    assert _group_count(db_session, group.id) == 2


def test_owner_cannot_leave(db_session, sample_user):
    group = CreateGroupUseCase(db_session).execute(sample_user.id, "Solo")
    with pytest.raises(ValidationError):
        LeaveGroupUseCase(db_session).execute(group.id, sample_user.id)


def test_group_validation_and_missing_group(db_session, sample_user):
    with pytest.raises(ValidationError):
        CreateGroupUseCase(db_session).execute(sample_user.id, "", max_members=5)
    with pytest.raises(ValidationError):
        CreateGroupUseCase(db_session).execute(sample_user.id, "Crowd", max_members=31)
    with pytest.raises(NotFoundError):
        JoinGroupUseCase(db_session).execute(404, sample_user.id)


def test_membership_cap(db_session, sample_user):
    for i in range(10):
        CreateGroupUseCase(db_session).execute(sample_user.id, f"Group {i}")
    with pytest.raises(FreeTierLimitError):
        CreateGroupUseCase(db_session).execute(sample_user.id, "Group 11")


# --- Challenges ---

def _participant(db, challenge_id, user_id):
    db.expire_all()
    return db.query(ChallengeParticipant).filter(
        ChallengeParticipant.challenge_id == challenge_id,
        ChallengeParticipant.user_id == user_id,
    ).one()


def test_join_challenge_counts_participants(db_session, challenge, members):
    JoinChallengeUseCase(db_session).execute(challenge.id, members[0])
    JoinChallengeUseCase(db_session).execute(challenge.id, members[1])

    db_session.expire_all()
    assert db_session.query(ChallengeModel).one().participant_count == 2
    with pytest.raises(ConflictError):
        JoinChallengeUseCase(db_session).execute(challenge.id, members[0])


def test_completed_challenge_cannot_be_joined(db_session, challenge, members):
    challenge.status = "completed"
    db_session.commit()
    with pytest.raises(ValidationError):
        JoinChallengeUseCase(db_session).execute(challenge.id, members[0])


def test_verifications_drive_participant_stats(db_session, challenge, members):
    uid = members[0]
    JoinChallengeUseCase(db_session).execute(challenge.id, uid)

    verify = VerifyChallengeDayUseCase(db_session)
    for d in (1, 2, 3, 5):
        stats = verify.execute(challenge.id, uid, date(2026, 6, d))
    assert stats["completed_days"] == 4
    assert stats["current_streak"] == 1

    stats = verify.execute(challenge.id, uid, date(2026, 6, 4))
    assert stats["current_streak"] == 5

    stats = RemoveChallengeVerificationUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 3))
    assert stats["completed_days"] == 4
    assert stats["current_streak"] == 2
    assert _participant(db_session, challenge.id, uid).current_streak == 2


def test_verification_rules(db_session, challenge, members):
    uid = members[0]
    verify = VerifyChallengeDayUseCase(db_session)

    with pytest.raises(NotFoundError):
        verify.execute(challenge.id, uid, date(2026, 6, 1))

    JoinChallengeUseCase(db_session).execute(challenge.id, uid)
    with pytest.raises(ValidationError):
        verify.execute(challenge.id, uid, date(2026, 7, 1))

    verify.execute(challenge.id, uid, date(2026, 6, 1), content="Read 30 pages")
    with pytest.raises(ConflictError):
        verify.execute(challenge.id, uid, date(2026, 6, 1))
    with pytest.raises(NotFoundError):
        RemoveChallengeVerificationUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 2))


def test_leave_keeps_checkins_and_rejoin_restores_stats(db_session, challenge, members):
    uid = members[0]
    JoinChallengeUseCase(db_session).execute(challenge.id, uid)
    VerifyChallengeDayUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 1))
    VerifyChallengeDayUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 2))

    assert LeaveChallengeUseCase(db_session).execute(challenge.id, uid) == 0
    assert db_session.query(ChallengeVerification).count() == 2

    stats = JoinChallengeUseCase(db_session).execute(challenge.id, uid)
    assert stats["completed_days"] == 2
    assert stats["current_streak"] == 2


def test_undo_kept_checkin_after_leaving(db_session, challenge, members):
    uid = members[0]
    JoinChallengeUseCase(db_session).execute(challenge.id, uid)
    VerifyChallengeDayUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 1))
    VerifyChallengeDayUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 2))
    LeaveChallengeUseCase(db_session).execute(challenge.id, uid)

    stats = RemoveChallengeVerificationUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 2))

    assert stats["completed_days"] == 1
    assert stats["current_streak"] == 1
    assert db_session.query(ChallengeVerification).count() == 1
    assert db_session.query(ChallengeParticipant).count() == 0

    stats = RemoveChallengeVerificationUseCase(db_session).execute(challenge.id, uid, date(2026, 6, 1))
    assert (stats["completed_days"], stats["current_streak"]) == (0, 0)
    assert db_session.query(ChallengeVerification).count() == 0
