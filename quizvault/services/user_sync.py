import logging
from typing import Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizvault.models.orm import AuditAction, User, utcnow
from quizvault.services import audit

logger = logging.getLogger(__name__)

NAME_CLAIMS = ("name", "cognito:username", "preferred_username")

def display_name(claims: dict) -> str:
    for key in NAME_CLAIMS:
        value = claims.get(key)
        if value: return str(value)
    return str(claims["sub"])

def upsert_user(db: Session, claims: dict, request: Optional[Request] = None) -> User:
    """Find or create the users row for the token subject and refresh its claim-derived fields.

    A name the user picked themselves is never overwritten: the claim only wins while the
    stored name is empty or still equal to the subject.
    """
    subject = str(claims["sub"])
    email = claims.get("email")
    name = display_name(claims)
    user = db.execute(select(User).where(User.subject == subject)).scalar_one_or_none()
    if user is None:
        user = User(subject=subject, email=email, name=name, created_at=utcnow(), last_login=utcnow())
        db.add(user)
        try:
            db.flush()
        except IntegrityError:
            # concurrent first request for the same subject
            db.rollback()
            return db.execute(select(User).where(User.subject == subject)).scalar_one()
        audit.record(db, request, AuditAction.UserCreated, user_id=user.id)
        audit.record(db, request, AuditAction.LoginSuccess, user_id=user.id)
        db.commit()
        logger.info("Created user %s for subject %s", user.id, subject)
        return user
    user.email = email
    if not user.name or user.name == user.subject: user.name = name
    user.last_login = utcnow()
    db.commit()
    return user
