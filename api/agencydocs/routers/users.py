from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from ..auth import issue_access_token, resolve_actor
from ..db import get_session
from ..errors import NotFound
from ..models import User
from ..policy import Actor
from ..schemas import UserRegister, UserUpdate
from ..services import users as svc

router = APIRouter()

def _serialize_user(u: User):
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "role": u.role.value,
        "agency_id": u.agency_id,
        "contact_number": u.contact_number,
        "address": u.address,
        "is_active": u.is_active,
        "created_at": u.created_at,
    }

@router.post("", status_code=status.HTTP_201_CREATED)
def register_user(payload: UserRegister, session: Session = Depends(get_session)):
    user = svc.register(session, **payload.model_dump())
    return {"user": _serialize_user(user), "access_token": issue_access_token(user)}

@router.get("")
def list_users(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_user(u) for u in svc.list_users(session, actor)]

@router.get("/me")
def me(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    if actor.id is None:
        raise NotFound("The operator token has no user profile")
    return _serialize_user(svc.get_user(session, actor.id))

@router.get("/agency-staff")
def agency_staff(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_user(u) for u in svc.list_agency_staff(session, actor)]

@router.get("/{user_id}")
def get_user(user_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_user(svc.get_profile(session, actor, user_id))

@router.patch("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(resolve_actor),
):
    return _serialize_user(svc.update_profile(session, actor, user_id, payload.model_dump(exclude_unset=True)))

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    svc.delete_user(session, actor, user_id)
