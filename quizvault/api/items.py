import hashlib
import json
import math
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field, constr
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user, get_optional_user, require_admin
from quizvault.core.cache import RedisCache, get_cache, invalidate_categories
from quizvault.core.database import get_db
from quizvault.core.errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationFailed
from quizvault.models.orm import AuditAction, Category, Collection, CollectionItem, Item, ItemKeyword, Upload, utcnow
from quizvault.services import audit
from quizvault.services.categories import find_visible, resolve_or_create
from quizvault.services.items import (BulkResult, CollectionRef, ItemFields, ItemOut, apply_fields, bulk_create, can_edit,
                                      can_read, create_item, replace_keywords, serialize_items, visible_items)
from quizvault.services.keywords import visible_keyword_ids

router = APIRouter()

class ItemCreate(ItemFields):
  is_private: bool = True

class ItemUpdate(ItemFields):
  is_private: Optional[bool] = None

class CategoryAssignment(BaseModel):
  category_id: Optional[uuid.UUID] = None
  category_name: Optional[constr(strip_whitespace=True, max_length=100)] = None
  is_private: Optional[bool] = None

class AssignedCategory(BaseModel):
  id: uuid.UUID
  name: str
  is_private: bool

class CategoryAssignmentOut(BaseModel):
  category: AssignedCategory

class ItemPage(BaseModel):
  items: List[ItemOut]
  total_count: int
  page: int
  page_size: int
  total_pages: int

class RandomItems(BaseModel):
  items: List[ItemOut]

class BulkCreate(BaseModel):
  is_private: bool = True
  items: List[dict] = Field(min_length=1)

class VisibilityUpdate(BaseModel):
  is_private: bool

class UploadToCollection(BaseModel):
  input_text: constr(min_length=1)

class UploadResult(BulkResult):
  collection_id: uuid.UUID
  upload_id: uuid.UUID

def _get_item(db: Session, item_id: uuid.UUID) -> Item:
  item = db.get(Item, item_id)
  if item is None: raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  return item

@router.get("", response_model=ItemPage)
def list_items(category: Optional[str] = None, is_private: Optional[bool] = None, keywords: Optional[str] = None,
               collection_id: Optional[uuid.UUID] = None, is_random: bool = False,
               page: int = Query(1, ge=1), page_size: int = Query(10, ge=1, le=1000),
               user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  if is_private and user is None: raise UnauthorizedError("Auth.Required", "Authentication required to list private items")
  stmt = select(Item).where(visible_items(user))
  if category:
    cat = find_visible(db, category, user.id if user else None)
    if cat is None: return ItemPage(items=[], total_count=0, page=page, page_size=page_size, total_pages=0)
    stmt = stmt.where(Item.category_id == cat.id)
  if is_private is not None:
    stmt = stmt.where(Item.is_private.is_(is_private))
    if is_private: stmt = stmt.where(Item.created_by == user.id)
  if keywords:
    kw_ids = visible_keyword_ids(db, keywords.split(","), user.id if user else None)
    if not kw_ids: return ItemPage(items=[], total_count=0, page=page, page_size=page_size, total_pages=0)
    stmt = stmt.where(Item.id.in_(select(ItemKeyword.item_id).where(ItemKeyword.keyword_id.in_(kw_ids))))
  if collection_id is not None:
    coll = db.get(Collection, collection_id)
    if coll is None: raise NotFoundError("Collection.NotFound", f"Collection {collection_id} not found")
    if user is None or (coll.created_by != user.id and not user.is_admin):
      raise ForbiddenError("Collection.AccessDenied", "Collection belongs to another user")
    stmt = stmt.where(Item.id.in_(select(CollectionItem.item_id).where(CollectionItem.collection_id == collection_id)))
  total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
  stmt = stmt.order_by(func.random()) if is_random else stmt.order_by(Item.created_at.desc(), Item.id)
  rows = db.execute(stmt.offset((page - 1) * page_size).limit(page_size)).unique().scalars().all()
  return ItemPage(items=serialize_items(db, rows, user), total_count=total, page=page, page_size=page_size,
                  total_pages=math.ceil(total / page_size) if total else 0)

@router.get("/random", response_model=RandomItems)
def random_items(category: Optional[str] = None, count: int = Query(10, ge=1, le=100),
                 user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  stmt = select(Item).where(visible_items(user))
  if category:
    cat = find_visible(db, category, user.id if user else None)
    if cat is None: return RandomItems(items=[])
    stmt = stmt.where(Item.category_id == cat.id)
  rows = db.execute(stmt.order_by(func.random()).limit(count)).unique().scalars().all()
  return RandomItems(items=serialize_items(db, rows, user))

@router.post("/bulk", response_model=BulkResult, status_code=201)
def bulk_add(payload: BulkCreate, request: Request, user: CurrentUser = Depends(get_current_user),
             db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  result = bulk_create(db, payload.items, payload.is_private, user, request)
  db.commit()
  if result.created_count: invalidate_categories(cache)
  return result

@router.post("/upload-to-collection", response_model=UploadResult, status_code=201)
def upload_to_collection(payload: UploadToCollection, request: Request, user: CurrentUser = Depends(get_current_user),
                         db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  digest = hashlib.sha256(payload.input_text.encode("utf-8")).hexdigest()
  if db.execute(select(Upload.id).where(Upload.user_id == user.id, Upload.hash == digest)).first():
    raise ConflictError("Upload.Duplicate", "This content was already uploaded")
  try:
    raw_items = json.loads(payload.input_text)
  except json.JSONDecodeError as e:
    raise ValidationFailed("Upload.InvalidJson", f"input_text is not valid JSON: {e.msg}")
  if not isinstance(raw_items, list): raise ValidationFailed("Upload.InvalidJson", "input_text must be a JSON array of items")
  upload = Upload(id=uuid.uuid4(), input_text=payload.input_text, user_id=user.id, hash=digest, created_at=utcnow())
  db.add(upload); db.flush()
  result = bulk_create(db, raw_items, not user.is_admin, user, request, upload_id=upload.id)
  if not result.created_item_ids:
    db.rollback()
    raise ValidationFailed("Upload.NothingCreated", "No items were created from the upload")
  coll = Collection(id=uuid.uuid4(), name=uuid.uuid4().hex, created_by=user.id, created_at=utcnow())
  db.add(coll); db.flush()
  for item_id in result.created_item_ids:
    db.add(CollectionItem(id=uuid.uuid4(), collection_id=coll.id, item_id=item_id, added_at=utcnow()))
  db.commit()
  invalidate_categories(cache)
  return UploadResult(**result.model_dump(), collection_id=coll.id, upload_id=upload.id)

@router.get("/{item_id}", response_model=ItemOut)
def get_item(item_id: uuid.UUID, user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  item = _get_item(db, item_id)
  if not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  return serialize_items(db, [item], user)[0]

@router.get("/{item_id}/collections", response_model=List[CollectionRef])
def item_collections(item_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  item = _get_item(db, item_id)
  if not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  rows = db.execute(select(Collection).join(CollectionItem, CollectionItem.collection_id == Collection.id)
                    .where(CollectionItem.item_id == item_id, Collection.created_by == user.id).order_by(Collection.name)).scalars()
  return [CollectionRef(id=c.id, name=c.name) for c in rows]

@router.post("", response_model=ItemOut, status_code=201)
def add_item(payload: ItemCreate, request: Request, user: CurrentUser = Depends(get_current_user),
             db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  item = create_item(db, payload, payload.is_private, user, request)
  db.commit()
  invalidate_categories(cache)
  return serialize_items(db, [item], user)[0]

@router.put("/{item_id}", response_model=ItemOut)
def update_item(item_id: uuid.UUID, payload: ItemUpdate, request: Request, user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  item = _get_item(db, item_id)
  if not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  if not can_edit(item, user): raise ForbiddenError("Item.NotOwner", "Only the owner can edit this item")
  is_private = item.is_private if payload.is_private is None else payload.is_private
  apply_fields(db, item, payload, is_private, user)
  if payload.keywords is not None:
    replace_keywords(db, item, payload.keywords, user)
  audit.record(db, request, AuditAction.ItemUpdated, user_id=user.id, entity_id=item.id)
  db.commit()
  invalidate_categories(cache)
  return serialize_items(db, [item], user)[0]

@router.put("/{item_id}/category", response_model=CategoryAssignmentOut)
def assign_category(item_id: uuid.UUID, payload: CategoryAssignment, request: Request, user: CurrentUser = Depends(get_current_user),
                    db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  """Move an item to a category given by id, or by name (resolved or created like on create)."""
  if payload.category_id is None and not payload.category_name:
    raise ValidationFailed("CategoryAssignment.Invalid", "Either category_id or category_name must be provided")
  item = _get_item(db, item_id)
  if not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  if not can_edit(item, user): raise ForbiddenError("Item.NotOwner", "Only the owner can change this item's category")
  if payload.category_id is not None:
    cat = db.get(Category, payload.category_id)
    if cat is None: raise NotFoundError("Category.NotFound", f"Category {payload.category_id} not found")
    if cat.is_private and cat.created_by != item.created_by:
      raise ValidationFailed("Category.AccessDenied", f"Category {cat.id} is private and belongs to another user")
  else:
    is_private = item.is_private if payload.is_private is None else payload.is_private
    cat = resolve_or_create(db, payload.category_name, is_private, item.created_by, user.is_admin)
  item.category_id = cat.id; item.updated_at = utcnow()
  audit.record(db, request, AuditAction.ItemUpdated, user_id=user.id, entity_id=item.id, meta={"category": cat.name})
  db.commit()
  invalidate_categories(cache)
  return CategoryAssignmentOut(category=AssignedCategory(id=cat.id, name=cat.name, is_private=cat.is_private))

@router.delete("/{item_id}", status_code=204)
def delete_item(item_id: uuid.UUID, request: Request, user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  item = _get_item(db, item_id)
  if not can_read(item, user): raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  if not can_edit(item, user): raise ForbiddenError("Item.NotOwner", "Only the owner can delete this item")
  db.delete(item)
  audit.record(db, request, AuditAction.ItemDeleted, user_id=user.id, entity_id=item_id)
  db.commit()
  invalidate_categories(cache)

@router.put("/{item_id}/visibility", response_model=ItemOut)
def set_visibility(item_id: uuid.UUID, payload: VisibilityUpdate, request: Request, user: CurrentUser = Depends(require_admin),
                   db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  item = _get_item(db, item_id)
  item.is_private = payload.is_private; item.updated_at = utcnow()
  audit.record(db, request, AuditAction.ItemUpdated, user_id=user.id, entity_id=item.id, meta={"is_private": payload.is_private})
  db.commit()
  invalidate_categories(cache)
  return serialize_items(db, [item], user)[0]
