"""
Recompute every denormalized counter from the logs (recovery / diagnostics)

Usage:
    python rebuild_stats.py            # all users
    python rebuild_stats.py 17 42      # only these profile ids
"""
import logging
import sys

from streakbook.infrastructure.db.session import get_session_factory, unit_of_work
from streakbook.infrastructure.db.models import Profile
from streakbook.application.synchronizer import rebuild_profile, rebuild_parent_counters

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("rebuild_stats")


def main(user_ids: list[int]) -> None:
    db = get_session_factory()()
    try:
        if not user_ids:
            user_ids = [row[0] for row in db.query(Profile.id).order_by(Profile.id).all()]

        for user_id in user_ids:
            with unit_of_work(db):
                profile = rebuild_profile(db, user_id)
            logger.info(
                "user_id=%s routines=%d current=%d longest=%d completions=%d",
                user_id, profile.total_routines, profile.current_streak,
                profile.longest_streak, profile.total_completions,
            )

        with unit_of_work(db):
            counts = rebuild_parent_counters(db)
        logger.info("Parent counters recounted: %s", counts)
    finally:
        db.close()


if __name__ == "__main__":
    main([int(arg) for arg in sys.argv[1:]])
