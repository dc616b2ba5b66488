import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Request
from pydantic import BaseModel, Field, ValidationError, conlist, constr, field_validator
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser
from quizvault.core.config import settings
from quizvault.core.errors import AppError, ConflictError, ValidationFailed
from quizvault.models.orm import AuditAction, Collection, CollectionItem, Item, ItemKeyword, Keyword, utcnow
from quizvault.services import audit
from quizvault.services.categories import resolve_or_create
from quizvault.services.keywords import attach_keywords, visible_keywords
from quizvault.services.simhash import fingerprint_item, hamming_distance

logger = logging.getLogger(__name__)

class KeywordRequest(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=30)
    is_private: bool = False

class ItemFields(BaseModel):
    category: constr(strip_whitespace=True, min_length=1, max_length=100)
    question: constr(strip_whitespace=True, min_length=1, max_length=1000)
    correct_answer: constr(strip_whitespace=True, min_length=1, max_length=500)
    incorrect_answers: List[constr(max_length=500)] = Field(default_factory=list, max_length=4)
    explanation: constr(max_length=2000) = ""
    keywords: Optional[conlist(KeywordRequest, max_length=50)] = None
    source: Optional[constr(max_length=50)] = None
    ready_for_review: bool = False

    @field_validator("keywords", mode="before")
    @classmethod
    def _plain_keyword_names(cls, v):
        if v is None: return None
        return [{"name": k} if isinstance(k, str) else k for k in v]

    @field_validator("explanation", mode="before")
    @classmethod
    def _no_null_explanation(cls, v): return v or ""

class BulkError(BaseModel):
    index: int
    question: str
    error_message: str

class BulkResult(BaseModel):
    total_requested: int
    created_count: int = 0
    duplicate_count: int = 0
    failed_count: int = 0
    duplicate_questions: List[str] = []
    errors: List[BulkError] = []
    created_item_ids: List[uuid.UUID] = []

def visible_items(user: Optional[CurrentUser]):
    if user is None: return Item.is_private.is_(False)
    return or_(Item.is_private.is_(False), Item.created_by == user.id)

def can_read(item: Item, user: Optional[CurrentUser]) -> bool:
    if not item.is_private: return True
    return user is not None and (user.is_admin or item.created_by == user.id)

def can_edit(item: Item, user: CurrentUser) -> bool:
    return user.is_admin or item.created_by == user.id

def is_duplicate(question: str, signature: str, candidate_question: str, candidate_signature: str, max_hamming: int) -> bool:
    if candidate_question.strip().lower() == question.strip().lower(): return True
    return hamming_distance(candidate_signature, signature) <= max_hamming

def find_duplicate(db: Session, category_id: uuid.UUID, question: str, signature: str, bucket: int,
                   max_hamming: Optional[int] = None) -> Optional[uuid.UUID]:
    """Return the id of an existing item in the same category and bucket that matches ``question``/``signature``."""
    limit = settings.DUPLICATE_MAX_HAMMING if max_hamming is None else max_hamming
    stmt = select(Item.id, Item.question, Item.fuzzy_signature).where(Item.category_id == category_id, Item.fuzzy_bucket == bucket)
    for row in db.execute(stmt):
        if is_duplicate(question, signature, row.question, row.fuzzy_signature, limit): return row.id
    return None

def _new_item(db: Session, fields: ItemFields, is_private: bool, user: CurrentUser, upload_id=None):
    category = resolve_or_create(db, fields.category, is_private, user.id, user.is_admin)
    signature, bucket = fingerprint_item(fields.question, fields.correct_answer, fields.incorrect_answers)
    item = Item(id=uuid.uuid4(), category_id=category.id, is_private=is_private, question=fields.question,
                correct_answer=fields.correct_answer, incorrect_answers=list(fields.incorrect_answers),
                explanation=fields.explanation, fuzzy_signature=signature, fuzzy_bucket=bucket, created_by=user.id,
                created_at=utcnow(), ready_for_review=fields.ready_for_review, source=fields.source, upload_id=upload_id)
    return item

def create_item(db: Session, fields: ItemFields, is_private: bool, user: CurrentUser, request: Optional[Request] = None) -> Item:
    item = _new_item(db, fields, is_private, user)
    existing = find_duplicate(db, item.category_id, item.question, item.fuzzy_signature, item.fuzzy_bucket)
    if existing is not None: raise ConflictError("Item.Duplicate", f"Duplicate of existing item {existing}")
    db.add(item)
    db.flush()
    attach_keywords(db, item, fields.keywords or [], user.id, user.is_admin)
    audit.record(db, request, AuditAction.ItemCreated, user_id=user.id, entity_id=item.id)
    return item

def apply_fields(db: Session, item: Item, fields: ItemFields, is_private: bool, user: CurrentUser) -> Item:
    category = resolve_or_create(db, fields.category, is_private, item.created_by, user.is_admin)
    item.category_id = category.id
    item.is_private = is_private
    item.question = fields.question
    item.correct_answer = fields.correct_answer
    item.incorrect_answers = list(fields.incorrect_answers)
    item.explanation = fields.explanation
    item.source = fields.source
    item.ready_for_review = fields.ready_for_review
    item.fuzzy_signature, item.fuzzy_bucket = fingerprint_item(item.question, item.correct_answer, item.incorrect_answers)
    item.updated_at = utcnow()
    return item

def replace_keywords(db: Session, item: Item, requested, user: CurrentUser) -> None:
    item.item_keywords.clear()
    db.flush()
    attach_keywords(db, item, requested, item.created_by, user.is_admin)

def bulk_create(db: Session, raw_items: List[dict], is_private: bool, user: CurrentUser, request: Optional[Request] = None,
                upload_id=None, record_audit: bool = True, max_items: Optional[int] = None) -> BulkResult:
    """Insert each valid, non-duplicate item; duplicates inside the batch are caught because every insert is flushed."""
    limit = max_items or (settings.BULK_MAX_ITEMS_ADMIN if user.is_admin else settings.BULK_MAX_ITEMS)
    if not raw_items: raise ValidationFailed("Items.Empty", "At least one item is required")
    if len(raw_items) > limit: raise ValidationFailed("Items.TooMany", f"At most {limit} items per request")
    result = BulkResult(total_requested=len(raw_items))
    for index, raw in enumerate(raw_items):
        question = str(raw.get("question", "")) if isinstance(raw, dict) else ""
        try:
            fields = ItemFields.model_validate(raw)
            item = _new_item(db, fields, is_private, user, upload_id=upload_id)
        except ValidationError as e:
            result.errors.append(BulkError(index=index, question=question, error_message=_first_error(e)))
            continue
        except AppError as e:
            result.errors.append(BulkError(index=index, question=question, error_message=e.message))
            continue
        if find_duplicate(db, item.category_id, item.question, item.fuzzy_signature, item.fuzzy_bucket) is not None:
            result.duplicate_questions.append(item.question)
            continue
        db.add(item)
        db.flush()
        attach_keywords(db, item, fields.keywords or [], user.id, user.is_admin)
        if record_audit: audit.record(db, request, AuditAction.ItemCreated, user_id=user.id, entity_id=item.id, meta={"source": "bulk"})
        result.created_item_ids.append(item.id)
    result.created_count = len(result.created_item_ids)
    result.duplicate_count = len(result.duplicate_questions)
    result.failed_count = len(result.errors)
    logger.info("Bulk create by %s: %d requested, %d created, %d duplicates, %d failed", user.id,
                result.total_requested, result.created_count, result.duplicate_count, result.failed_count)
    return result

def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))

# ---------- response shaping ----------

class KeywordOut(BaseModel):
    id: uuid.UUID
    name: str
    is_private: bool

class CollectionRef(BaseModel):
    id: uuid.UUID
    name: str

class ItemOut(BaseModel):
    id: uuid.UUID
    category: str
    is_private: bool
    question: str
    correct_answer: str
    incorrect_answers: List[str]
    explanation: str
    fuzzy_signature: str
    fuzzy_bucket: int
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    ready_for_review: bool
    source: Optional[str] = None
    keywords: List[KeywordOut] = []
    collections: List[CollectionRef] = []

def serialize_items(db: Session, items: List[Item], user: Optional[CurrentUser]) -> List[ItemOut]:
    if not items: return []
    ids = [i.id for i in items]
    uid = user.id if user else None
    kw_rows = db.execute(select(ItemKeyword.item_id, Keyword).join(Keyword, Keyword.id == ItemKeyword.keyword_id)
                         .where(ItemKeyword.item_id.in_(ids), visible_keywords(uid)).order_by(Keyword.name)).all()
    keywords: Dict[uuid.UUID, List[KeywordOut]] = {}
    for item_id, kw in kw_rows:
        keywords.setdefault(item_id, []).append(KeywordOut(id=kw.id, name=kw.name, is_private=kw.is_private))
    collections: Dict[uuid.UUID, List[CollectionRef]] = {}
    if uid is not None:
        rows = db.execute(select(CollectionItem.item_id, Collection.id, Collection.name)
                          .join(Collection, Collection.id == CollectionItem.collection_id)
                          .where(CollectionItem.item_id.in_(ids), Collection.created_by == uid)).all()
        for item_id, cid, cname in rows:
            collections.setdefault(item_id, []).append(CollectionRef(id=cid, name=cname))
    return [ItemOut(id=i.id, category=i.category.name, is_private=i.is_private, question=i.question,
                    correct_answer=i.correct_answer, incorrect_answers=i.incorrect_answers or [], explanation=i.explanation or "",
                    fuzzy_signature=i.fuzzy_signature, fuzzy_bucket=i.fuzzy_bucket, created_by=i.created_by,
                    created_at=i.created_at, updated_at=i.updated_at, ready_for_review=i.ready_for_review, source=i.source,
                    keywords=keywords.get(i.id, []), collections=collections.get(i.id, [])) for i in items]
