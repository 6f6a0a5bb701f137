from typing import Optional
from fastapi import Depends, Header, HTTPException, Query, status
from itsdangerous import BadSignature
from sqlmodel import Session

from .config import ADMIN_ACCESS_TOKEN
from .db import get_session
from .models import Role, User
from .policy import Actor
from .utils import make_token, read_token


def issue_access_token(user: User) -> str:
    return make_token({"user_id": user.id, "role": user.role.value})


def resolve_actor(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    token: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
) -> Actor:
    candidate = x_access_token or token
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing access token")
    if ADMIN_ACCESS_TOKEN and candidate == ADMIN_ACCESS_TOKEN:
        return Actor(role=Role.ADMIN)
    try:
        claim = read_token(candidate)
    except BadSignature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token")
    user_id = claim.get("user_id") if isinstance(claim, dict) else None
    user = session.get(User, user_id) if isinstance(user_id, int) else None
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, user not found")
    if claim.get("role") != user.role.value:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Stale identity claim")
    return Actor(id=user.id, role=user.role, email=user.email, agency_id=user.agency_id)
