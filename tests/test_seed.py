import json

from sqlalchemy import func, select

from quizvault.models.orm import Category, CategoryKeyword, Item
from quizvault.services.seed import seed_database, seed_taxonomy


def test_taxonomy_is_idempotent(db):
    first = seed_taxonomy(db)
    assert first > 0
    assert seed_taxonomy(db) == 0
    assert db.execute(select(func.count(Category.id))).scalar_one() == 13
    others = db.execute(select(func.count(CategoryKeyword.id)).where(CategoryKeyword.sort_rank == 0,
                                                                    CategoryKeyword.navigation_rank == 1)).scalar_one()
    assert others == 13


def test_seed_items_from_json_files(db, tmp_path):
    (tmp_path / "geo.json").write_text(json.dumps([
        {"category": "geography", "question": "Capital of Japan?", "correct_answer": "Tokyo", "incorrect_answers": ["Kyoto"],
         "keywords": ["capitals"]},
        {"category": "geography", "question": "capital of japan?", "correct_answer": "tokyo", "incorrect_answers": ["kyoto"]},
    ]), encoding="utf-8")
    (tmp_path / "empty.json").write_text("[]", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    totals = seed_database(db, str(tmp_path))
    assert totals["created"] == 1
    assert totals["duplicates"] == 1
    item = db.execute(select(Item)).scalar_one()
    assert item.is_private is False
    assert item.created_by == "seeder"

    assert seed_database(db, str(tmp_path)) == {"skipped": True}


def test_missing_seed_path_skips_items(db, tmp_path):
    assert seed_database(db, str(tmp_path / "absent")) == {"skipped": True}
    assert db.execute(select(func.count(Category.id))).scalar_one() == 13
