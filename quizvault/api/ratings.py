import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user, get_optional_user
from quizvault.core.cache import RedisCache, get_cache, invalidate_categories
from quizvault.core.database import get_db
from quizvault.core.errors import NotFoundError
from quizvault.models.orm import Item, Rating, utcnow
from quizvault.services.items import can_read

router = APIRouter()

class RatingIn(BaseModel):
  item_id: uuid.UUID
  stars: Optional[int] = Field(default=None, ge=1, le=5)

class RatingOut(BaseModel):
  id: uuid.UUID
  item_id: uuid.UUID
  stars: Optional[int] = None
  created_at: datetime
  updated_at: Optional[datetime] = None
  model_config = {"from_attributes": True}

class RatingStats(BaseModel):
  count: int
  average_stars: Optional[float] = None

def _check_item(db: Session, item_id: uuid.UUID, user: Optional[CurrentUser]):
  item = db.get(Item, item_id)
  if item is None or not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")

@router.post("", response_model=RatingOut)
def upsert_rating(payload: RatingIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db),
                  cache: RedisCache = Depends(get_cache)):
  _check_item(db, payload.item_id, user)
  r = db.execute(select(Rating).where(Rating.item_id == payload.item_id, Rating.created_by == user.id)).scalar_one_or_none()
  if r is None:
    r = Rating(id=uuid.uuid4(), item_id=payload.item_id, stars=payload.stars, created_by=user.id, created_at=utcnow())
    db.add(r)
  else:
    r.stars = payload.stars; r.updated_at = utcnow()
  db.commit(); db.refresh(r)
  invalidate_categories(cache)
  return r

@router.get("/{item_id}", response_model=RatingStats)
def rating_stats(item_id: uuid.UUID, user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  _check_item(db, item_id, user)
  count, avg = db.execute(select(func.count(Rating.stars), func.avg(Rating.stars))
                          .where(Rating.item_id == item_id, Rating.stars.is_not(None))).one()
  return RatingStats(count=int(count or 0), average_stars=round(float(avg), 2) if avg is not None else None)

@router.get("/{item_id}/me", response_model=Optional[RatingOut])
def my_rating(item_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  _check_item(db, item_id, user)
  return db.execute(select(Rating).where(Rating.item_id == item_id, Rating.created_by == user.id)).scalar_one_or_none()
