import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, constr
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user
from quizvault.core.database import get_db
from quizvault.core.errors import ConflictError, ValidationFailed
from quizvault.models.orm import User

router = APIRouter()

class Me(BaseModel):
  id: uuid.UUID
  subject: str
  email: Optional[str] = None
  name: Optional[str] = None
  is_admin: bool
  created_at: datetime
  last_login: datetime

class NameUpdate(BaseModel):
  name: constr(strip_whitespace=True, min_length=1, max_length=200)

class Availability(BaseModel):
  username: Optional[str] = None
  username_available: Optional[bool] = None
  email: Optional[str] = None
  email_available: Optional[bool] = None

def _me(u: User, user: CurrentUser) -> Me:
  return Me(id=u.id, subject=u.subject, email=u.email, name=u.name, is_admin=user.is_admin, created_at=u.created_at, last_login=u.last_login)

def _taken(db: Session, column, value: str, exclude: Optional[uuid.UUID] = None) -> bool:
  stmt = select(User.id).where(func.lower(column) == value.strip().lower())
  if exclude is not None: stmt = stmt.where(User.id != exclude)
  return db.execute(stmt.limit(1)).first() is not None

@router.get("/me", response_model=Me)
def get_me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  return _me(db.get(User, uuid.UUID(user.id)), user)

@router.put("/me", response_model=Me)
def update_me(payload: NameUpdate, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  u = db.get(User, uuid.UUID(user.id))
  if _taken(db, User.name, payload.name, exclude=u.id): raise ConflictError("User.NameTaken", "That name is already in use")
  u.name = payload.name
  db.commit(); db.refresh(u)
  return _me(u, user)

@router.get("/availability", response_model=Availability)
def availability(username: Optional[str] = None, email: Optional[str] = None, db: Session = Depends(get_db)):
  if not (username or "").strip() and not (email or "").strip():
    raise ValidationFailed("User.AvailabilityQuery", "Provide a username or an email")
  result = Availability()
  if username and username.strip():
    result.username = username.strip(); result.username_available = not _taken(db, User.name, username)
  if email and email.strip():
    result.email = email.strip(); result.email_available = not _taken(db, User.email, email)
  return result
