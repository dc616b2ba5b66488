import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, constr
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user, get_optional_user
from quizvault.core.database import get_db
from quizvault.core.errors import ForbiddenError, NotFoundError
from quizvault.models.orm import Item, Review, utcnow
from quizvault.services.items import can_read

router = APIRouter()

class ReviewIn(BaseModel):
  item_id: uuid.UUID
  reaction: constr(strip_whitespace=True, min_length=1, max_length=50)
  comment: constr(max_length=2000) = ""

class ReviewEdit(BaseModel):
  reaction: constr(strip_whitespace=True, min_length=1, max_length=50)
  comment: constr(max_length=2000) = ""

class ReviewOut(BaseModel):
  id: uuid.UUID
  item_id: uuid.UUID
  reaction: str
  comment: str
  created_by: str
  created_at: datetime
  updated_at: Optional[datetime] = None
  model_config = {"from_attributes": True}

def _check_item(db: Session, item_id: uuid.UUID, user: Optional[CurrentUser]):
  item = db.get(Item, item_id)
  if item is None or not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")

def _owned(db: Session, review_id: uuid.UUID, user: CurrentUser) -> Review:
  r = db.get(Review, review_id)
  if r is None: raise NotFoundError("Review.NotFound", f"Review {review_id} not found")
  if r.created_by != user.id: raise ForbiddenError("Review.NotOwner", "You can only modify your own reviews")
  return r

@router.get("", response_model=List[ReviewOut])
def list_reviews(item_id: uuid.UUID, user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  _check_item(db, item_id, user)
  return db.execute(select(Review).where(Review.item_id == item_id).order_by(Review.created_at.desc())).scalars().all()

@router.post("", response_model=ReviewOut, status_code=201)
def add_review(payload: ReviewIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  _check_item(db, payload.item_id, user)
  r = Review(id=uuid.uuid4(), item_id=payload.item_id, reaction=payload.reaction, comment=payload.comment,
             created_by=user.id, created_at=utcnow())
  db.add(r); db.commit(); db.refresh(r)
  return r

@router.put("/{review_id}", response_model=ReviewOut)
def edit_review(review_id: uuid.UUID, payload: ReviewEdit, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  r = _owned(db, review_id, user)
  r.reaction = payload.reaction; r.comment = payload.comment; r.updated_at = utcnow()
  db.commit(); db.refresh(r)
  return r

@router.delete("/{review_id}", status_code=204)
def delete_review(review_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  r = _owned(db, review_id, user)
  db.delete(r); db.commit()
