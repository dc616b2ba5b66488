import uuid
from typing import Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from quizvault.models.orm import Audit, AuditAction

def client_ip(request: Optional[Request]) -> str:
    if request is None: return "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first: return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip: return real_ip.strip()
    if request.client and request.client.host: return request.client.host
    return "unknown"

def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID): return value
    return uuid.UUID(str(value))

def record(db: Session, request: Optional[Request], action: AuditAction, user_id=None, entity_id=None,
           meta: Optional[Dict[str, str]] = None) -> Audit:
    """Stage an audit row in the caller's transaction; it commits with the change it describes."""
    row = Audit(user_id=_as_uuid(user_id), ip_address=client_ip(request), action=action.value,
                entity_id=_as_uuid(entity_id), meta={k: str(v) for k, v in (meta or {}).items()})
    db.add(row)
    return row
