from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from ..auth import resolve_actor
from ..db import get_session
from ..models import Renewal
from ..policy import Actor
from ..schemas import RenewalCreate, RenewalUpdate
from ..services import renewals as svc

router = APIRouter()

def _serialize_renewal(r: Renewal):
    return {
        "id": r.id,
        "user_id": r.user_id,
        "agency_id": r.agency_id,
        "item_type": r.item_type,
        "item_name": r.item_name,
        "current_expiration_date": r.current_expiration_date,
        "new_expiration_date": r.new_expiration_date,
        "document_id": r.document_id,
        "status": r.status.value,
        "notification_sent": r.notification_sent,
        "notes": r.notes,
        "created_at": r.created_at,
    }

@router.post("", status_code=status.HTTP_201_CREATED)
def create_renewal(payload: RenewalCreate, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    fields = payload.model_dump(exclude={"user_id"})
    return _serialize_renewal(svc.create_renewal(session, actor, payload.user_id, **fields))

@router.get("")
def list_renewals(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_renewal(r) for r in svc.list_renewals(session, actor)]

@router.get("/upcoming")
def upcoming_renewals(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_renewal(r) for r in svc.get_upcoming(session, actor)]

@router.get("/{renewal_id}")
def get_renewal(renewal_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_renewal(svc.get_renewal(session, actor, renewal_id))

@router.put("/{renewal_id}")
def update_renewal(
    renewal_id: int,
    payload: RenewalUpdate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(resolve_actor),
):
    changes = payload.model_dump(exclude_unset=True)
    return _serialize_renewal(svc.update_renewal(session, actor, renewal_id, changes))

@router.delete("/{renewal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_renewal(renewal_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    svc.delete_renewal(session, actor, renewal_id)
