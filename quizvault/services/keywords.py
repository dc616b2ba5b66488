import uuid
from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from quizvault.models.orm import Item, ItemKeyword, Keyword, utcnow

def normalize_keyword(name: str) -> str: return (name or "").strip().lower()

def visible_keywords(user_id: Optional[str]):
    if user_id is None: return Keyword.is_private.is_(False)
    return or_(Keyword.is_private.is_(False), Keyword.created_by == user_id)

def _find(db: Session, name: str, is_private: bool, user_id: Optional[str] = None) -> Optional[Keyword]:
    stmt = select(Keyword).where(func.lower(Keyword.name) == name, Keyword.is_private.is_(is_private))
    if is_private: stmt = stmt.where(Keyword.created_by == user_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none()

def resolve_keyword(db: Session, name: str, is_private: bool, user_id: str, is_admin: bool) -> Keyword:
    """Reuse a visible keyword or create one; non-admins asking for a new global keyword get a private one."""
    name = normalize_keyword(name)
    if not is_private:
        found = _find(db, name, False)
        if found is not None: return found
        if not is_admin: is_private = True
    if is_private:
        found = _find(db, name, True, user_id)
        if found is not None: return found
    keyword = Keyword(id=uuid.uuid4(), name=name, is_private=is_private, created_by=user_id, created_at=utcnow())
    db.add(keyword)
    db.flush()
    return keyword

def attach_keywords(db: Session, item: Item, requested: Iterable, user_id: str, is_admin: bool) -> List[Keyword]:
    """Link keywords to ``item``; ``requested`` holds objects with ``name`` and ``is_private``."""
    attached, seen = [], set()
    for kw in requested:
        keyword = resolve_keyword(db, kw.name, kw.is_private, user_id, is_admin)
        if keyword.id in seen: continue
        seen.add(keyword.id)
        db.add(ItemKeyword(id=uuid.uuid4(), item_id=item.id, keyword_id=keyword.id, added_at=utcnow()))
        attached.append(keyword)
    return attached

def visible_keyword_ids(db: Session, names: Iterable[str], user_id: Optional[str]) -> List[uuid.UUID]:
    names = [normalize_keyword(n) for n in names if normalize_keyword(n)]
    if not names: return []
    stmt = select(Keyword.id).where(func.lower(Keyword.name).in_(names), visible_keywords(user_id))
    return list(db.execute(stmt).scalars())
