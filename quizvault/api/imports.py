from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, constr
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user
from quizvault.core.cache import RedisCache, get_cache, invalidate_categories
from quizvault.core.config import settings
from quizvault.core.database import get_db
from quizvault.services.categories import resolve_or_create
from quizvault.services.items import bulk_create

router = APIRouter()

class ImportItem(BaseModel):
  question: constr(strip_whitespace=True, min_length=1, max_length=1000)
  correct_answer: constr(strip_whitespace=True, min_length=1, max_length=500)
  incorrect_answers: List[constr(max_length=500)] = Field(max_length=4)
  explanation: Optional[constr(max_length=2000)] = ""

class ImportJson(BaseModel):
  category: constr(strip_whitespace=True, min_length=1, max_length=100)
  subcategory: Optional[constr(strip_whitespace=True, min_length=1, max_length=30)] = None
  visibility: Literal["global", "private"]
  items: List[ImportItem] = Field(min_length=1)

class ImportResult(BaseModel):
  imported_count: int
  duplicate_count: int
  duplicate_questions: List[str]

@router.post("/json", response_model=ImportResult)
def import_json(payload: ImportJson, request: Request, user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
  is_private = payload.visibility == "private"
  # fail the whole import up front when the category is not allowed
  resolve_or_create(db, payload.category, is_private, user.id, user.is_admin)
  keywords = [{"name": payload.subcategory, "is_private": is_private}] if payload.subcategory else []
  raw = [dict(i.model_dump(), category=payload.category, keywords=keywords) for i in payload.items]
  result = bulk_create(db, raw, is_private, user, request, max_items=settings.IMPORT_MAX_ITEMS)
  db.commit()
  if result.created_count: invalidate_categories(cache)
  return ImportResult(imported_count=result.created_count, duplicate_count=result.duplicate_count,
                      duplicate_questions=result.duplicate_questions)
