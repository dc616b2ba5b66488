import json
import logging
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser
from quizvault.core.config import settings
from quizvault.models.orm import CategoryKeyword, Item
from quizvault.services.categories import resolve_or_create
from quizvault.services.items import bulk_create
from quizvault.services.keywords import resolve_keyword

logger = logging.getLogger(__name__)

SEEDER = CurrentUser(id="seeder", subject="seeder", name="seeder", is_admin=True)
SEED_CHUNK = 500

CATEGORIES = ["general", "history", "science", "geography", "entertainment", "culture", "language",
              "puzzles", "sports", "tests", "certs", "outdoors", "nature"]

RANK1: Dict[str, List[str]] = {
    "general": ["world-records", "trivia", "fun-facts", "daily", "mixed", "random"],
    "history": ["us-history", "world-history", "ancient", "modern", "biography"],
    "science": ["biology", "astronomy", "physics", "chemistry", "earth-science"],
    "geography": ["countries", "capitals", "us-states", "flags", "maps"],
    "entertainment": ["movies", "tv", "music", "quotes", "pop-culture"],
    "culture": ["food", "holidays", "traditions", "customs", "slang"],
    "language": ["spanish", "french", "english", "vocabulary", "idioms"],
    "puzzles": ["riddles", "logic", "brain-teasers", "math-puzzles", "patterns"],
    "sports": ["soccer", "basketball", "tennis", "olympics", "athletes"],
    "tests": ["act", "sat", "gmat", "gre", "nclex"],
    "certs": ["aws", "azure", "gcp", "comptia", "kubernetes"],
    "outdoors": ["survival", "camping", "navigation"],
    "nature": ["animals", "plants", "ecosystems", "phenomena"],
}

RANK2: Dict[Tuple[str, str], List[str]] = {
    ("general", "world-records"): ["humans", "animals", "weird"],
    ("certs", "aws"): ["saa-c02", "saa-c03", "dva-c02", "soa-c02"],
    ("tests", "act"): ["math", "reading", "english", "science"],
    ("tests", "sat"): ["math", "reading", "writing"],
    ("tests", "nclex"): ["med-surg", "pediatrics", "pharm", "dosage-calc"],
}

def _place(db: Session, category_id, keyword_name: str, rank: int, parent: Optional[str], sort_rank: int) -> bool:
    keyword = resolve_keyword(db, keyword_name, False, SEEDER.id, True)
    found = db.execute(select(CategoryKeyword).where(CategoryKeyword.category_id == category_id,
                                                     CategoryKeyword.keyword_id == keyword.id)).scalar_one_or_none()
    if found is not None: return False
    db.add(CategoryKeyword(id=uuid.uuid4(), category_id=category_id, keyword_id=keyword.id, navigation_rank=rank,
                           parent_name=parent.lower() if parent else None, sort_rank=sort_rank))
    db.flush()
    return True

def seed_taxonomy(db: Session) -> int:
    """Create the fixed global categories and their navigation keywords; safe to run repeatedly."""
    placed = 0
    categories = {name: resolve_or_create(db, name, False, SEEDER.id, True) for name in CATEGORIES}
    for name, category in categories.items():
        placed += _place(db, category.id, "other", 1, None, 0)
        for i, kw in enumerate(RANK1.get(name, [])):
            placed += _place(db, category.id, kw, 1, None, i + 1)
    for (name, parent), keywords in RANK2.items():
        for i, kw in enumerate(keywords):
            placed += _place(db, categories[name].id, kw, 2, parent, i)
    db.commit()
    logger.info("Taxonomy seeded: %d categories, %d new navigation keywords", len(categories), placed)
    return placed

def resolve_seed_path(configured: Optional[str]) -> Optional[Path]:
    """Absolute paths are used as is; relative ones are searched from the working directory upwards."""
    if not configured: return None
    path = Path(configured)
    if path.is_absolute(): return path if path.is_dir() else None
    for base in [Path.cwd(), *Path.cwd().parents]:
        candidate = (base / path).resolve()
        if candidate.is_dir(): return candidate
    return None

def seed_items(db: Session, seed_dir: Path, progress: Optional[Callable[[str, int, int], None]] = None) -> dict:
    totals = {"files": 0, "processed": 0, "created": 0, "duplicates": 0, "failed": 0}
    for path in sorted(seed_dir.glob("*.json")):
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, list) or not data:
            logger.warning("No items found in %s", path.name)
            continue
        created = 0
        for start in range(0, len(data), SEED_CHUNK):
            result = bulk_create(db, data[start:start + SEED_CHUNK], False, SEEDER, record_audit=False)
            db.commit()
            created += result.created_count
            totals["duplicates"] += result.duplicate_count
            totals["failed"] += result.failed_count
            for err in result.errors:
                logger.warning("Seed item %s in %s skipped: %s", start + err.index, path.name, err.error_message)
        totals["files"] += 1
        totals["processed"] += len(data)
        totals["created"] += created
        logger.info("Seeded %s: %d items, %d created", path.name, len(data), created)
        if progress: progress(path.name, totals["processed"], totals["created"])
    logger.info("Seeding completed: %d items processed, %d items created", totals["processed"], totals["created"])
    return totals

def seed_database(db: Session, seed_path: Optional[str] = None, progress=None) -> dict:
    seed_taxonomy(db)
    if db.execute(select(func.count(Item.id))).scalar_one() > 0:
        logger.info("Items already present, skipping item seeding")
        return {"skipped": True}
    seed_dir = resolve_seed_path(seed_path or settings.SEED_PATH)
    if seed_dir is None:
        logger.warning("Seed path %s is not configured or missing, skipping item seeding", seed_path or settings.SEED_PATH)
        return {"skipped": True}
    logger.info("Using seed path %s", seed_dir)
    return seed_items(db, seed_dir, progress)
