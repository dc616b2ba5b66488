import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_optional_user
from quizvault.core.cache import RedisCache, categories_version, get_cache
from quizvault.core.config import settings
from quizvault.core.database import get_db
from quizvault.core.errors import NotFoundError, ValidationFailed
from quizvault.models.orm import Category, Item, ItemKeyword, Keyword, Rating
from quizvault.services.categories import find_visible, visible_categories
from quizvault.services.items import visible_items
from quizvault.services.keywords import visible_keywords

router = APIRouter()

class CategoryOut(BaseModel):
  id: uuid.UUID
  category: str
  description: Optional[str] = None
  is_private: bool
  count: int
  average_stars: Optional[float] = None

class CategoryList(BaseModel):
  categories: List[CategoryOut]

def _load(db: Session, user: Optional[CurrentUser], search: Optional[str]) -> List[CategoryOut]:
  uid = user.id if user else None
  stmt = select(Category).where(visible_categories(uid))
  if search: stmt = stmt.where(func.lower(Category.name).contains(search.strip().lower()))
  cats = db.execute(stmt.order_by(Category.name)).scalars().all()
  ids = [c.id for c in cats]
  counts, averages = {}, {}
  if ids:
    scope = visible_items(user)
    counts = dict(db.execute(select(Item.category_id, func.count(Item.id)).where(Item.category_id.in_(ids), scope)
                             .group_by(Item.category_id)).all())
    averages = dict(db.execute(select(Item.category_id, func.avg(Rating.stars)).join(Rating, Rating.item_id == Item.id)
                               .where(Item.category_id.in_(ids), scope, Rating.stars.is_not(None))
                               .group_by(Item.category_id)).all())
  return [CategoryOut(id=c.id, category=c.name, description=c.description, is_private=c.is_private, count=int(counts.get(c.id, 0)),
                      average_stars=round(float(averages[c.id]), 2) if averages.get(c.id) is not None else None) for c in cats]

@router.get("", response_model=CategoryList)
def list_categories(search: Optional[str] = None, user: Optional[CurrentUser] = Depends(get_optional_user),
                    db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  key = cache.make_key("categories", categories_version(cache), user.id if user else "anon", (search or "").strip().lower())
  cached = cache.get(key)
  if cached is not None: return CategoryList.model_validate(cached)
  result = CategoryList(categories=_load(db, user, search))
  cache.set(key, result.model_dump(mode="json"), expire=settings.CATEGORIES_CACHE_TTL_MINUTES * 60)
  return result

class Subcategory(BaseModel):
  subcategory: str
  count: int

class SubcategoryList(BaseModel):
  subcategories: List[Subcategory]
  total_count: int

def _subcategories(db: Session, category: Category, user: Optional[CurrentUser]) -> SubcategoryList:
  item_ids = select(Item.id).where(Item.category_id == category.id, visible_items(user))
  total = db.execute(select(func.count()).select_from(item_ids.subquery())).scalar_one()
  n = func.count(func.distinct(ItemKeyword.item_id))
  rows = db.execute(select(Keyword.name, n).join(ItemKeyword, ItemKeyword.keyword_id == Keyword.id)
                    .where(ItemKeyword.item_id.in_(item_ids), visible_keywords(user.id if user else None))
                    .group_by(Keyword.name).order_by(n.desc(), Keyword.name)).all()
  return SubcategoryList(subcategories=[Subcategory(subcategory=name, count=int(c)) for name, c in rows], total_count=total)

@router.get("/{category}/subcategories", response_model=SubcategoryList)
def list_subcategories(category: str, user: Optional[CurrentUser] = Depends(get_optional_user),
                       db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  """Keywords that co-occur on the visible items of ``category``, most used first."""
  name = category.strip()
  if not name: raise ValidationFailed("Category.NameRequired", "Category is required")
  key = cache.make_key("subcategories", categories_version(cache), user.id if user else "anon", name.lower())
  cached = cache.get(key)
  if cached is not None: return SubcategoryList.model_validate(cached)
  cat = find_visible(db, name, user.id if user else None)
  if cat is None: raise NotFoundError("Category.NotFound", f"Category '{name}' not found")
  result = _subcategories(db, cat, user)
  cache.set(key, result.model_dump(mode="json"), expire=settings.CATEGORIES_CACHE_TTL_MINUTES * 60)
  return result
