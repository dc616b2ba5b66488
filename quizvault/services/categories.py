import uuid
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from quizvault.core.errors import ForbiddenError, ValidationFailed
from quizvault.models.orm import Category, utcnow

def visible_categories(user_id: Optional[str]):
    if user_id is None: return Category.is_private.is_(False)
    return or_(Category.is_private.is_(False), Category.created_by == user_id)

def find_global(db: Session, name: str) -> Optional[Category]:
    stmt = select(Category).where(func.lower(Category.name) == name.strip().lower(), Category.is_private.is_(False))
    return db.execute(stmt.limit(1)).scalar_one_or_none()

def find_private(db: Session, name: str, user_id: str) -> Optional[Category]:
    stmt = select(Category).where(func.lower(Category.name) == name.strip().lower(), Category.is_private.is_(True),
                                  Category.created_by == user_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none()

def find_visible(db: Session, name: str, user_id: Optional[str]) -> Optional[Category]:
    """Global category wins over a private one with the same name."""
    found = find_global(db, name)
    if found is None and user_id is not None: found = find_private(db, name, user_id)
    return found

def resolve_or_create(db: Session, name: str, is_private: bool, user_id: str, is_admin: bool) -> Category:
    name = (name or "").strip()
    if not name: raise ValidationFailed("Category.NameRequired", "Category name is required")
    if not is_private:
        if not is_admin: raise ForbiddenError("Category.AdminOnly", "Only admins can create global content")
        category = find_global(db, name)
    else:
        category = find_private(db, name, user_id)
    if category is None:
        category = Category(id=uuid.uuid4(), name=name, is_private=is_private, created_by=user_id, created_at=utcnow())
        db.add(category)
        db.flush()
    return category
