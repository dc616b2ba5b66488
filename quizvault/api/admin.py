import math
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, constr
from rq.exceptions import NoSuchJobError
from rq.job import Job
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, require_admin
from quizvault.core.cache import RedisCache, get_cache, invalidate_categories
from quizvault.core.database import get_db
from quizvault.core.errors import ConflictError, NotFoundError, ValidationFailed
from quizvault.jobs.queue import queue, redis
from quizvault.jobs.seed_job import seed_job
from quizvault.models.orm import Audit, AuditAction, Category, CategoryKeyword, Item, User, utcnow
from quizvault.services.categories import find_global, resolve_or_create
from quizvault.services.items import ItemOut, serialize_items

router = APIRouter()

class CategoryUpdate(BaseModel):
  name: constr(strip_whitespace=True, min_length=1, max_length=100)
  description: Optional[constr(max_length=500)] = None

class CategoryOut(BaseModel):
  id: uuid.UUID
  name: str
  description: Optional[str] = None
  is_private: bool

class CategoryKeywordOut(BaseModel):
  id: uuid.UUID
  category_id: uuid.UUID
  keyword_id: uuid.UUID
  keyword_name: str
  navigation_rank: Optional[int] = None
  parent_name: Optional[str] = None
  sort_rank: int
  description: Optional[str] = None

class CategoryKeywordUpdate(BaseModel):
  navigation_rank: int
  parent_name: Optional[constr(strip_whitespace=True, max_length=30)] = None
  sort_rank: Optional[int] = None
  description: Optional[constr(max_length=500)] = None

class AuditOut(BaseModel):
  id: uuid.UUID
  user_id: Optional[uuid.UUID] = None
  user_email: Optional[str] = None
  ip_address: str
  action: str
  entity_id: Optional[uuid.UUID] = None
  created_utc: datetime
  metadata: Dict[str, str] = {}

class AuditPage(BaseModel):
  logs: List[AuditOut]
  total_count: int
  page: int
  page_size: int
  total_pages: int

class DatabaseSize(BaseModel):
  size_bytes: int
  size_megabytes: float

class SeedStart(BaseModel):
  seed_path: Optional[str] = None

class AdminUserOut(BaseModel):
  id: uuid.UUID
  name: Optional[str] = None
  email: Optional[str] = None
  created_at: datetime
  last_login: datetime

class SeedStatus(BaseModel):
  state: str
  files_done: int = 0
  items_processed: int = 0
  items_created: int = 0
  result: Optional[dict] = None

def _ck_out(ck: CategoryKeyword) -> CategoryKeywordOut:
  return CategoryKeywordOut(id=ck.id, category_id=ck.category_id, keyword_id=ck.keyword_id, keyword_name=ck.keyword.name,
                            navigation_rank=ck.navigation_rank, parent_name=ck.parent_name, sort_rank=ck.sort_rank,
                            description=ck.description)

@router.get("/review-board", response_model=List[ItemOut])
def review_board(user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db)):
  items = db.execute(select(Item).where(Item.ready_for_review.is_(True)).order_by(Item.created_at.desc())).unique().scalars().all()
  return serialize_items(db, items, user)

@router.put("/items/{item_id}/approval", response_model=ItemOut)
def approve_item(item_id: uuid.UUID, user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db),
                 cache: RedisCache = Depends(get_cache)):
  item = db.get(Item, item_id)
  if item is None: raise NotFoundError("Item.NotFound", f"Item {item_id} not found")
  if item.category.is_private:
    item.category_id = resolve_or_create(db, item.category.name, False, user.id, True).id
  item.is_private = False; item.ready_for_review = False; item.updated_at = utcnow()
  db.commit()
  invalidate_categories(cache)
  return serialize_items(db, [item], user)[0]

@router.put("/categories/{category_id}", response_model=CategoryOut, dependencies=[Depends(require_admin)])
def update_category(category_id: uuid.UUID, payload: CategoryUpdate, db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  cat = db.get(Category, category_id)
  if cat is None: raise NotFoundError("Category.NotFound", f"Category {category_id} not found")
  scope = [func.lower(Category.name) == payload.name.lower(), Category.id != cat.id, Category.is_private.is_(cat.is_private)]
  if cat.is_private: scope.append(Category.created_by == cat.created_by)
  clash = db.execute(select(Category.id).where(*scope)).first()
  if clash: raise ConflictError("Category.NameTaken", f"A category named '{payload.name}' already exists")
  cat.name = payload.name
  if payload.description is not None: cat.description = payload.description
  db.commit()
  invalidate_categories(cache)
  return CategoryOut(id=cat.id, name=cat.name, description=cat.description, is_private=cat.is_private)

@router.get("/category-keywords", response_model=List[CategoryKeywordOut], dependencies=[Depends(require_admin)])
def list_category_keywords(category: str, db: Session = Depends(get_db)):
  cat = find_global(db, category)
  if cat is None: raise NotFoundError("Category.NotFound", f"Category '{category}' not found")
  rows = db.execute(select(CategoryKeyword).where(CategoryKeyword.category_id == cat.id)
                    .order_by(CategoryKeyword.navigation_rank, CategoryKeyword.parent_name, CategoryKeyword.sort_rank)).scalars()
  return [_ck_out(ck) for ck in rows]

@router.put("/category-keywords/{category_keyword_id}", response_model=CategoryKeywordOut, dependencies=[Depends(require_admin)])
def update_category_keyword(category_keyword_id: uuid.UUID, payload: CategoryKeywordUpdate, db: Session = Depends(get_db)):
  ck = db.get(CategoryKeyword, category_keyword_id)
  if ck is None: raise NotFoundError("CategoryKeyword.NotFound", f"Category keyword {category_keyword_id} not found")
  if payload.navigation_rank not in (1, 2): raise ValidationFailed("CategoryKeyword.InvalidRank", "navigation_rank must be 1 or 2")
  if payload.navigation_rank == 2 and not payload.parent_name:
    raise ValidationFailed("CategoryKeyword.ParentRequired", "Rank 2 keywords need a parent_name")
  ck.navigation_rank = payload.navigation_rank
  ck.parent_name = None if payload.navigation_rank == 1 else payload.parent_name.lower()
  if payload.sort_rank is not None: ck.sort_rank = payload.sort_rank
  if payload.description is not None: ck.description = payload.description
  db.commit()
  return _ck_out(ck)

@router.get("/audit-logs", response_model=AuditPage, dependencies=[Depends(require_admin)])
def audit_logs(action_types: Optional[str] = None, page: int = Query(1, ge=1), page_size: int = 50, db: Session = Depends(get_db)):
  page_size = max(1, min(page_size, 100))
  actions = []
  by_lower = {a.value.lower(): a.value for a in AuditAction}
  for raw in (action_types or "").split(","):
    name = raw.strip().lower()
    if not name: continue
    if name not in by_lower: raise ValidationFailed("Audit.InvalidActionType", f"Unknown action type '{raw.strip()}'")
    actions.append(by_lower[name])
  stmt = select(Audit, User.email).outerjoin(User, User.id == Audit.user_id)
  if actions: stmt = stmt.where(Audit.action.in_(actions))
  total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
  rows = db.execute(stmt.order_by(Audit.created_utc.desc()).offset((page - 1) * page_size).limit(page_size)).all()
  logs = [AuditOut(id=a.id, user_id=a.user_id, user_email=email, ip_address=a.ip_address, action=a.action, entity_id=a.entity_id,
                   created_utc=a.created_utc, metadata=a.meta or {}) for a, email in rows]
  return AuditPage(logs=logs, total_count=total, page=page, page_size=page_size, total_pages=math.ceil(total / page_size) if total else 0)

@router.get("/database-size", response_model=DatabaseSize, dependencies=[Depends(require_admin)])
def database_size(db: Session = Depends(get_db)):
  dialect = db.get_bind().dialect.name
  if dialect == "postgresql":
    size = db.execute(text("SELECT pg_database_size(current_database())")).scalar_one()
  elif dialect == "sqlite":
    size = db.execute(text("PRAGMA page_count")).scalar_one() * db.execute(text("PRAGMA page_size")).scalar_one()
  else:
    raise ValidationFailed("Database.Unsupported", f"Size is not available for {dialect}")
  return DatabaseSize(size_bytes=int(size), size_megabytes=round(int(size) / (1024 * 1024), 2))

@router.post("/seed", status_code=202, dependencies=[Depends(require_admin)])
def start_seed(payload: SeedStart):
  job = queue.enqueue(seed_job, payload.seed_path, job_timeout=3600)
  return {"job_id": job.get_id()}

@router.get("/seed/status", response_model=SeedStatus, dependencies=[Depends(require_admin)])
def seed_status(job_id: str):
  try:
    job = Job.fetch(job_id, connection=redis)
  except NoSuchJobError:
    raise NotFoundError("Seed.JobNotFound", f"Job {job_id} not found")
  meta = job.meta or {}
  status = job.get_status()
  state = meta.get("state") or getattr(status, "value", status)
  return SeedStatus(state=state, files_done=int(meta.get("files_done") or 0), items_processed=int(meta.get("items_processed") or 0),
                    items_created=int(meta.get("items_created") or 0), result=job.result if state == "done" else None)

@router.get("/users/{user_id}", response_model=AdminUserOut, dependencies=[Depends(require_admin)])
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db)):
  u = db.get(User, user_id)
  if u is None: raise NotFoundError("User.NotFound", f"User with id {user_id} not found")
  return AdminUserOut(id=u.id, name=u.name, email=u.email, created_at=u.created_at, last_login=u.last_login)
