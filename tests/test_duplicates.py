import pytest

from quizvault.core.auth import CurrentUser
from quizvault.core.errors import ConflictError, ForbiddenError
from quizvault.models.orm import Item
from quizvault.services.items import ItemFields, bulk_create, create_item, find_duplicate, is_duplicate
from quizvault.services.simhash import compute_simhash

from conftest import admin_user, item_payload

ALICE = CurrentUser(id="alice-1", subject="alice")


def test_same_question_ignoring_case_is_duplicate():
    assert is_duplicate("What is 2+2?", "0000000000000000", "  what IS 2+2? ", "FFFFFFFFFFFFFFFF", 0)


def test_signature_within_threshold_is_duplicate():
    assert is_duplicate("a", "00000000000000F0", "b", "0000000000000000", 4)
    assert not is_duplicate("a", "00000000000000F0", "b", "0000000000000000", 3)


def test_find_duplicate_requires_same_bucket_and_category(db):
    item = create_item(db, ItemFields(**item_payload()), False, admin_user())
    db.commit()
    assert find_duplicate(db, item.category_id, item.question, item.fuzzy_signature, item.fuzzy_bucket) == item.id
    assert find_duplicate(db, item.category_id, item.question, item.fuzzy_signature, (item.fuzzy_bucket + 1) % 256) is None
    other = create_item(db, ItemFields(**item_payload(category="trivia")), False, admin_user())
    assert other.category_id != item.category_id


def test_create_item_rejects_case_variant(db):
    create_item(db, ItemFields(**item_payload()), False, admin_user())
    db.commit()
    loud = item_payload(question="WHAT IS THE CAPITAL OF FRANCE?", correct_answer="PARIS",
                        incorrect_answers=["LYON", "MARSEILLE", "NICE"])
    with pytest.raises(ConflictError) as exc:
        create_item(db, ItemFields(**loud), False, admin_user())
    assert exc.value.code == "Item.Duplicate"


def test_non_admin_cannot_create_global_item(db):
    with pytest.raises(ForbiddenError):
        create_item(db, ItemFields(**item_payload()), False, ALICE)


def test_private_items_dedupe_within_owner_category(db):
    create_item(db, ItemFields(**item_payload()), True, ALICE)
    db.commit()
    bob = CurrentUser(id="bob-1", subject="bob")
    # bob's private category is a different category, so no clash
    create_item(db, ItemFields(**item_payload()), True, bob)
    db.commit()
    assert db.query(Item).count() == 2


def test_bulk_counts_duplicates_inside_batch_and_failures(db):
    items = [item_payload(), item_payload(), item_payload(question="Largest ocean?", correct_answer="Pacific"),
             {"category": "geography", "question": "", "correct_answer": "x"},
             item_payload(question="Too many wrong answers?", incorrect_answers=["a", "b", "c", "d", "e"])]
    result = bulk_create(db, items, False, admin_user(), record_audit=False)
    db.commit()
    assert result.total_requested == 5
    assert result.created_count == 2
    assert result.duplicate_count == 1
    assert result.duplicate_questions == ["What is the capital of France?"]
    assert result.failed_count == 2
    assert [e.index for e in result.errors] == [3, 4]
    stored = db.query(Item).all()
    assert {i.fuzzy_signature for i in stored} == {
        compute_simhash("What is the capital of France? Paris Lyon Marseille Nice"),
        compute_simhash("Largest ocean? Pacific Lyon Marseille Nice"),
    }
