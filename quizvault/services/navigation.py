"""
Two-level keyword navigation inside a category.

Rank-1 keywords are the top shelf of a category, rank-2 keywords hang under a
rank-1 parent.  A browse path is at most ``[rank1, rank2]``; ``other`` stands
for items carrying no rank-1 keyword and is always a path of its own.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import and_, exists, func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser
from quizvault.models.orm import Category, CategoryKeyword, Item, ItemKeyword, Keyword, Rating
from quizvault.services.items import visible_items
from quizvault.services.keywords import normalize_keyword

OTHER = "other"

@dataclass(frozen=True)
class NavEntry:
    name: str
    rank: Optional[int]
    parent: Optional[str]

@dataclass
class NavKeyword:
    name: str
    item_count: int
    average_rating: Optional[float]
    navigation_rank: Optional[int]

def validate_navigation_path(selected: Sequence[str], entries: Sequence[NavEntry]) -> Optional[str]:
    """Return an error message for an invalid path, ``None`` when the path is fine."""
    path = [normalize_keyword(s) for s in selected]
    if not path: return None
    if OTHER in path:
        return None if len(path) == 1 else "'other' cannot be combined with other keywords"
    if len(path) > 2: return "At most two navigation keywords can be selected"
    rank1 = {e.name for e in entries if e.rank == 1}
    if path[0] not in rank1: return f"'{path[0]}' is not a top-level keyword of this category"
    if len(path) == 2:
        children = {e.name for e in entries if e.rank == 2 and e.parent == path[0]}
        if path[1] not in children: return f"'{path[1]}' is not a sub-keyword of '{path[0]}'"
    return None

def target_rank(selected: Sequence[str]) -> Optional[int]:
    path = [normalize_keyword(s) for s in selected]
    if not path: return 1
    if path == [OTHER] or len(path) >= 2: return None
    return 2

def load_entries(db: Session, category_id) -> List[NavEntry]:
    rows = db.execute(select(CategoryKeyword).where(CategoryKeyword.category_id == category_id,
                                                    CategoryKeyword.navigation_rank.is_not(None))).scalars()
    return [NavEntry(name=r.keyword.name.lower(), rank=r.navigation_rank, parent=r.parent_name) for r in rows]

def _round(v) -> Optional[float]:
    return round(float(v), 2) if v is not None else None

def navigation_keywords(db: Session, category: Category, selected: Sequence[str], user: Optional[CurrentUser]) -> List[NavKeyword]:
    rank = target_rank(selected)
    if rank is None: return []
    stmt = (select(CategoryKeyword, Keyword).join(Keyword, Keyword.id == CategoryKeyword.keyword_id)
            .where(CategoryKeyword.category_id == category.id, CategoryKeyword.navigation_rank == rank))
    if rank == 2: stmt = stmt.where(CategoryKeyword.parent_name == normalize_keyword(selected[0]))
    rows = [(ck, kw) for ck, kw in db.execute(stmt.order_by(CategoryKeyword.sort_rank, Keyword.name)).all()
            if kw.name.lower() != OTHER]
    kw_ids = [kw.id for _, kw in rows]
    scope = and_(Item.category_id == category.id, visible_items(user))
    counts, averages = {}, {}
    if kw_ids:
        counts = dict(db.execute(select(ItemKeyword.keyword_id, func.count(func.distinct(Item.id)))
                                 .join(Item, Item.id == ItemKeyword.item_id)
                                 .where(scope, ItemKeyword.keyword_id.in_(kw_ids)).group_by(ItemKeyword.keyword_id)).all())
        averages = dict(db.execute(select(ItemKeyword.keyword_id, func.avg(Rating.stars))
                                   .join(Item, Item.id == ItemKeyword.item_id).join(Rating, Rating.item_id == Item.id)
                                   .where(scope, ItemKeyword.keyword_id.in_(kw_ids), Rating.stars.is_not(None))
                                   .group_by(ItemKeyword.keyword_id)).all())
    result = [NavKeyword(name=kw.name, item_count=int(counts.get(kw.id, 0)), average_rating=_round(averages.get(kw.id)),
                         navigation_rank=ck.navigation_rank) for ck, kw in rows]
    if rank == 1:
        other = _other_bucket(db, scope, kw_ids)
        if other.item_count > 0: result.insert(0, other)
    return result

def _other_bucket(db: Session, scope, rank1_ids) -> NavKeyword:
    untagged = scope
    if rank1_ids:
        tagged = exists().where(ItemKeyword.item_id == Item.id, ItemKeyword.keyword_id.in_(rank1_ids))
        untagged = and_(scope, ~tagged)
    count = db.execute(select(func.count(Item.id)).where(untagged)).scalar_one()
    avg = db.execute(select(func.avg(Rating.stars)).join(Item, Item.id == Rating.item_id)
                     .where(untagged, Rating.stars.is_not(None))).scalar_one()
    return NavKeyword(name=OTHER, item_count=int(count), average_rating=_round(avg), navigation_rank=1)
