from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, constr
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, create_token, get_current_user
from quizvault.core.config import settings
from quizvault.core.database import get_db
from quizvault.core.errors import NotFoundError
from quizvault.models.orm import AuditAction
from quizvault.services import audit

router = APIRouter()

class DevLogin(BaseModel):
    subject: constr(min_length=1, max_length=200)
    roles: List[str] = []
    email: Optional[str] = None
    name: Optional[str] = None

class LoginFailed(BaseModel):
    email: Optional[constr(max_length=320)] = None
    reason: Optional[constr(max_length=200)] = None

@router.post("/dev-token")
def dev_token(payload: DevLogin):
    if not settings.DEV_LOGIN_ENABLED: raise NotFoundError("Auth.DevLoginDisabled", "Not found")
    token = create_token(payload.subject, payload.roles, email=payload.email, name=payload.name)
    return {"access_token": token, "token_type": "bearer", "roles": payload.roles}

@router.post("/logout", status_code=204)
def logout(request: Request, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    audit.record(db, request, AuditAction.Logout, user_id=user.id)
    db.commit()

@router.post("/login-failed", status_code=204)
def login_failed(payload: LoginFailed, request: Request, db: Session = Depends(get_db)):
    meta = {k: v for k, v in payload.model_dump().items() if v}
    audit.record(db, request, AuditAction.LoginFailed, meta=meta)
    db.commit()
