import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, constr
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user, require_admin
from quizvault.core.database import get_db
from quizvault.core.errors import ConflictError, ForbiddenError, NotFoundError
from quizvault.models.orm import Collection, CollectionItem, Item, utcnow
from quizvault.services.items import ItemOut, can_read, serialize_items

router = APIRouter()

class CollectionIn(BaseModel):
  name: constr(strip_whitespace=True, min_length=1, max_length=200)

class CollectionOut(BaseModel):
  id: uuid.UUID
  name: str
  created_by: str
  created_at: datetime
  updated_at: Optional[datetime] = None
  item_count: int = 0

class CollectionSummary(BaseModel):
  id: uuid.UUID
  name: str
  created_by: str
  created_at: datetime

class AllCollections(BaseModel):
  collections: List[CollectionSummary]

class AddItem(BaseModel):
  item_id: uuid.UUID

class BulkAddItems(BaseModel):
  item_ids: List[uuid.UUID] = Field(min_length=1, max_length=1000)

class BulkAddResult(BaseModel):
  added_count: int
  skipped_count: int
  added_item_ids: List[uuid.UUID]

def _owned(db: Session, collection_id: uuid.UUID, user: CurrentUser) -> Collection:
  c = db.get(Collection, collection_id)
  if c is None: raise NotFoundError("Collection.NotFound", f"Collection {collection_id} not found")
  if c.created_by != user.id and not user.is_admin: raise ForbiddenError("Collection.AccessDenied", "Collection belongs to another user")
  return c

def _count(db: Session, collection_id: uuid.UUID) -> int:
  return db.execute(select(func.count(CollectionItem.id)).where(CollectionItem.collection_id == collection_id)).scalar_one()

def _out(c: Collection, count: int) -> CollectionOut:
  return CollectionOut(id=c.id, name=c.name, created_by=c.created_by, created_at=c.created_at, updated_at=c.updated_at, item_count=count)

@router.get("", response_model=List[CollectionOut])
def my_collections(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  rows = db.execute(select(Collection, func.count(CollectionItem.id)).outerjoin(CollectionItem, CollectionItem.collection_id == Collection.id)
                    .where(Collection.created_by == user.id).group_by(Collection.id).order_by(Collection.created_at.desc())).all()
  return [_out(c, n) for c, n in rows]

@router.post("", response_model=CollectionOut, status_code=201)
def create_collection(payload: CollectionIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = Collection(id=uuid.uuid4(), name=payload.name, created_by=user.id, created_at=utcnow())
  db.add(c); db.commit(); db.refresh(c)
  return _out(c, 0)

@router.get("/all", response_model=AllCollections, dependencies=[Depends(require_admin)])
def all_collections(db: Session = Depends(get_db)):
  rows = db.execute(select(Collection).order_by(Collection.created_at.desc())).scalars()
  return AllCollections(collections=[CollectionSummary(id=c.id, name=c.name, created_by=c.created_by, created_at=c.created_at) for c in rows])

@router.get("/{collection_id}", response_model=CollectionOut)
def get_collection(collection_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  return _out(c, _count(db, c.id))

@router.put("/{collection_id}", response_model=CollectionOut)
def rename_collection(collection_id: uuid.UUID, payload: CollectionIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  c.name = payload.name; c.updated_at = utcnow()
  db.commit(); db.refresh(c)
  return _out(c, _count(db, c.id))

@router.delete("/{collection_id}", status_code=204)
def delete_collection(collection_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  db.delete(c); db.commit()

@router.get("/{collection_id}/items", response_model=List[ItemOut])
def collection_items(collection_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  items = db.execute(select(Item).join(CollectionItem, CollectionItem.item_id == Item.id)
                     .where(CollectionItem.collection_id == c.id).order_by(CollectionItem.added_at)).unique().scalars().all()
  return serialize_items(db, [i for i in items if can_read(i, user)], user)

@router.post("/{collection_id}/items", status_code=201)
def add_item(collection_id: uuid.UUID, payload: AddItem, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  item = db.get(Item, payload.item_id)
  if item is None or not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {payload.item_id} not found")
  exists = db.execute(select(CollectionItem.id).where(CollectionItem.collection_id == c.id, CollectionItem.item_id == item.id)).first()
  if exists: raise ConflictError("Collection.AlreadyContainsItem", "Item is already in this collection")
  db.add(CollectionItem(id=uuid.uuid4(), collection_id=c.id, item_id=item.id, added_at=utcnow()))
  c.updated_at = utcnow()
  db.commit()
  return {"collection_id": c.id, "item_id": item.id}

@router.post("/{collection_id}/items/bulk", response_model=BulkAddResult)
def bulk_add_items(collection_id: uuid.UUID, payload: BulkAddItems, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  wanted = list(dict.fromkeys(payload.item_ids))
  present = set(db.execute(select(CollectionItem.item_id).where(CollectionItem.collection_id == c.id, CollectionItem.item_id.in_(wanted))).scalars())
  items = {i.id: i for i in db.execute(select(Item).where(Item.id.in_(wanted))).unique().scalars()}
  added = []
  for item_id in wanted:
    item = items.get(item_id)
    if item is None or item_id in present or not can_read(item, user): continue
    db.add(CollectionItem(id=uuid.uuid4(), collection_id=c.id, item_id=item_id, added_at=utcnow()))
    added.append(item_id)
  if added: c.updated_at = utcnow()
  db.commit()
  return BulkAddResult(added_count=len(added), skipped_count=len(payload.item_ids) - len(added), added_item_ids=added)

@router.delete("/{collection_id}/items/{item_id}", status_code=204)
def remove_item(collection_id: uuid.UUID, item_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  c = _owned(db, collection_id, user)
  link = db.execute(select(CollectionItem).where(CollectionItem.collection_id == c.id, CollectionItem.item_id == item_id)).scalar_one_or_none()
  if link is None: raise NotFoundError("Collection.ItemNotFound", "Item is not in this collection")
  db.delete(link); c.updated_at = utcnow()
  db.commit()
