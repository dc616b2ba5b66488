import uuid
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, constr
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizvault.core.auth import CurrentUser, get_current_user
from quizvault.core.database import get_db
from quizvault.models.orm import UserSetting, utcnow

router = APIRouter()

class SettingIn(BaseModel):
  key: constr(strip_whitespace=True, min_length=1, max_length=100)
  value: constr(max_length=500)

class SettingsOut(BaseModel):
  settings: Dict[str, str]

def _all(db: Session, user_id: uuid.UUID) -> Dict[str, str]:
  rows = db.execute(select(UserSetting).where(UserSetting.user_id == user_id).order_by(UserSetting.key)).scalars()
  return {s.key: s.value for s in rows}

@router.get("", response_model=SettingsOut)
def get_settings(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  return SettingsOut(settings=_all(db, uuid.UUID(user.id)))

@router.put("", response_model=SettingsOut)
def put_setting(payload: SettingIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
  uid = uuid.UUID(user.id)
  s = db.execute(select(UserSetting).where(UserSetting.user_id == uid, UserSetting.key == payload.key)).scalar_one_or_none()
  if s is None: db.add(UserSetting(id=uuid.uuid4(), user_id=uid, key=payload.key, value=payload.value, created_at=utcnow()))
  else: s.value = payload.value; s.updated_at = utcnow()
  db.commit()
  return SettingsOut(settings=_all(db, uid))
