"""
FastAPI dependencies (DB session, authentication)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from streakbook.infrastructure.db.session import get_db as _get_db
from streakbook.infrastructure.db.models import Profile


# Re-exported so routers and test overrides share one dependency
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> Profile:
    """
    Current profile from the signed session cookie.

    Sign-in itself lives outside this service; it only stores user_id in the session.

    Raises:
        HTTPException(401): no session or unknown user
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(Profile).filter(Profile.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user
