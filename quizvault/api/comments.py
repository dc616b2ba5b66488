import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, constr
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user, get_optional_user
from quizvault.core.database import get_db
from quizvault.core.errors import ForbiddenError, NotFoundError
from quizvault.models.orm import AuditAction, Comment, Item, User, utcnow
from quizvault.services import audit
from quizvault.services.items import can_read

router = APIRouter()

class CommentIn(BaseModel):
  item_id: uuid.UUID
  text: constr(strip_whitespace=True, min_length=1, max_length=2000)

class CommentEdit(BaseModel):
  text: constr(strip_whitespace=True, min_length=1, max_length=2000)

class CommentOut(BaseModel):
  id: uuid.UUID
  item_id: uuid.UUID
  text: str
  created_by: str
  created_by_name: Optional[str] = None
  created_at: datetime
  updated_at: Optional[datetime] = None

def _visible_item(db: Session, item_id: uuid.UUID, user: Optional[CurrentUser]) -> Item:
  item = db.get(Item, item_id)
  if item is None or not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  return item

def _owned(db: Session, comment_id: uuid.UUID, user: CurrentUser) -> Comment:
  c = db.get(Comment, comment_id)
  if c is None: raise NotFoundError("Comment.NotFound", f"Comment {comment_id} not found")
  if c.created_by != user.id: raise ForbiddenError("Comment.NotOwner", "You can only modify your own comments")
  return c

def _out(c: Comment, name: Optional[str]) -> CommentOut:
  return CommentOut(id=c.id, item_id=c.item_id, text=c.text, created_by=c.created_by, created_by_name=name,
                    created_at=c.created_at, updated_at=c.updated_at)

def _names(db: Session, creators) -> dict:
  ids = []
  for c in set(creators):
    try: ids.append(uuid.UUID(c))
    except ValueError: continue  # system authors such as the seeder
  if not ids: return {}
  return {str(u.id): u.name for u in db.execute(select(User).where(User.id.in_(ids))).scalars()}

@router.get("", response_model=List[CommentOut])
def list_comments(item_id: uuid.UUID, user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  _visible_item(db, item_id, user)
  rows = db.execute(select(Comment).where(Comment.item_id == item_id).order_by(Comment.created_at.desc())).scalars().all()
  names = _names(db, [c.created_by for c in rows])
  return [_out(c, names.get(c.created_by)) for c in rows]

@router.post("", response_model=CommentOut, status_code=201)
def add_comment(payload: CommentIn, request: Request, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  _visible_item(db, payload.item_id, user)
  c = Comment(id=uuid.uuid4(), item_id=payload.item_id, text=payload.text, created_by=user.id, created_at=utcnow())
  db.add(c)
  audit.record(db, request, AuditAction.CommentCreated, user_id=user.id, entity_id=c.id, meta={"item_id": payload.item_id})
  db.commit(); db.refresh(c)
  return _out(c, user.name)

@router.put("/{comment_id}", response_model=CommentOut)
def edit_comment(comment_id: uuid.UUID, payload: CommentEdit, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, comment_id, user)
  c.text = payload.text; c.updated_at = utcnow()
  db.commit(); db.refresh(c)
  return _out(c, user.name)

@router.delete("/{comment_id}", status_code=204)
def delete_comment(comment_id: uuid.UUID, request: Request, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, comment_id, user)
  audit.record(db, request, AuditAction.CommentDeleted, user_id=user.id, entity_id=c.id, meta={"item_id": c.item_id})
  db.delete(c)
  db.commit()
