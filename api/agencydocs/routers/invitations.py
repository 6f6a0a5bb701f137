from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from ..auth import resolve_actor
from ..db import get_session
from ..models import Invitation
from ..policy import Actor
from ..schemas import InvitationAccept, InvitationSend
from ..services import invitations as svc

router = APIRouter()

def _serialize_invitation(inv: Invitation):
    # the token only travels by email
    return {
        "id": inv.id,
        "agency_id": inv.agency_id,
        "recipient_email": inv.recipient_email,
        "recipient_id": inv.recipient_id,
        "status": inv.status.value,
        "message": inv.message,
        "expires_at": inv.expires_at,
        "accepted_at": inv.accepted_at,
        "created_at": inv.created_at,
    }

@router.post("/send", status_code=status.HTTP_201_CREATED)
def send_invitation(payload: InvitationSend, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    inv = svc.send_invitation(session, actor, payload.recipient_email, payload.message)
    return _serialize_invitation(inv)

@router.post("/accept")
def accept_invitation(payload: InvitationAccept, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    inv, user = svc.accept_invitation(session, actor, payload.token)
    return {"invitation": _serialize_invitation(inv), "agency_id": user.agency_id}

@router.get("/sent")
def list_sent(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_invitation(i) for i in svc.list_sent(session, actor)]

@router.get("/pending")
def list_pending(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_invitation(i) for i in svc.list_pending(session, actor)]

@router.put("/{invitation_id}/revoke")
def revoke_invitation(invitation_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_invitation(svc.revoke_invitation(session, actor, invitation_id))
