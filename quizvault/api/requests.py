import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, constr
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user
from quizvault.core.database import get_db
from quizvault.models.orm import CategoryRequest, utcnow

router = APIRouter()

class RequestIn(BaseModel):
  category: constr(strip_whitespace=True, min_length=1, max_length=100)
  description: constr(max_length=2000) = ""

class RequestOut(BaseModel):
  id: uuid.UUID
  category: str
  description: str
  status: str
  created_at: datetime
  model_config = {"from_attributes": True}

@router.post("", response_model=RequestOut, status_code=201)
def create_request(payload: RequestIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  r = CategoryRequest(id=uuid.uuid4(), category=payload.category, description=payload.description, status="Pending",
                      created_by=user.id, created_at=utcnow())
  db.add(r); db.commit(); db.refresh(r)
  return r
