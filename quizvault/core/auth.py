from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy.orm import Session

from quizvault.core.config import settings
from quizvault.core.database import get_db
from quizvault.core.errors import ForbiddenError, UnauthorizedError
from quizvault.services.user_sync import upsert_user

class CurrentUser(BaseModel):
    id: str
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_admin: bool = False

bearer = HTTPBearer(auto_error=False)
_jwks_client: Optional[jwt.PyJWKClient] = None

def create_token(subject: str, roles: Optional[List[str]] = None, email: Optional[str] = None, name: Optional[str] = None,
                 groups: Optional[List[str]] = None, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": subject, "roles": roles or [], "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    if email: payload["email"] = email
    if name: payload["name"] = name
    if groups: payload[settings.AUTH_GROUPS_CLAIM] = groups
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")

def _signing_key(token: str):
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(settings.AUTH_JWKS_URL)
    return _jwks_client.get_signing_key_from_jwt(token).key

def decode_token(token: str) -> dict:
    """Verify against the identity provider's JWKS when configured, else the local HS256 secret."""
    try:
        if settings.AUTH_JWKS_URL:
            return jwt.decode(token, _signing_key(token), algorithms=settings.AUTH_ALGORITHMS,
                              audience=settings.AUTH_AUDIENCE, issuer=settings.AUTH_ISSUER,
                              options={"verify_aud": bool(settings.AUTH_AUDIENCE), "require": ["sub", "exp"]})
        return jwt.decode(token, settings.APP_SECRET, algorithms=["HS256"], options={"verify_aud": False, "require": ["sub", "exp"]})
    except jwt.PyJWTError:
        raise UnauthorizedError()

def is_admin_claims(claims: dict) -> bool:
    groups = claims.get(settings.AUTH_GROUPS_CLAIM) or []
    if isinstance(groups, str): groups = [groups]
    admin_group = settings.ADMIN_GROUP.lower()
    if any(str(g).lower() == admin_group for g in groups): return True
    roles = claims.get("roles") or []
    if isinstance(roles, str): roles = [roles]
    return any(str(r).lower() == "admin" for r in roles)

def get_optional_user(request: Request, creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                      db: Session = Depends(get_db)) -> Optional[CurrentUser]:
    if creds is None: return None
    claims = decode_token(creds.credentials)
    user = upsert_user(db, claims, request)
    return CurrentUser(id=str(user.id), subject=user.subject, email=user.email, name=user.name, is_admin=is_admin_claims(claims))

def get_current_user(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None: raise UnauthorizedError("Auth.Required", "Authentication required")
    return user

def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin: raise ForbiddenError("Auth.AdminRequired", "Insufficient role")
    return user
