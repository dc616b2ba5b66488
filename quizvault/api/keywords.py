from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_optional_user
from quizvault.core.database import get_db
from quizvault.core.errors import NotFoundError, ValidationFailed
from quizvault.services.categories import find_visible
from quizvault.services.navigation import load_entries, navigation_keywords, validate_navigation_path

router = APIRouter()

class KeywordNavOut(BaseModel):
  name: str
  item_count: int
  average_rating: Optional[float] = None
  navigation_rank: Optional[int] = None

class KeywordNavList(BaseModel):
  keywords: List[KeywordNavOut]

@router.get("", response_model=KeywordNavList)
def list_keywords(category: str, selected_keywords: Optional[str] = None,
                  user: Optional[CurrentUser] = Depends(get_optional_user), db: Session = Depends(get_db)):
  if not category.strip(): raise ValidationFailed("Keywords.CategoryRequired", "category is required")
  cat = find_visible(db, category, user.id if user else None)
  if cat is None: raise NotFoundError("Category.NotFound", f"Category '{category}' not found")
  selected = [s for s in (selected_keywords or "").split(",") if s.strip()]
  error = validate_navigation_path(selected, load_entries(db, cat.id))
  if error: raise ValidationFailed("Keywords.InvalidPath", error)
  entries = navigation_keywords(db, cat, selected, user)
  return KeywordNavList(keywords=[KeywordNavOut(**vars(e)) for e in entries])
