from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from ..auth import resolve_actor
from ..db import get_session
from ..models import Notification
from ..policy import Actor
from ..services import notifications as svc

router = APIRouter()

def _serialize_notification(n: Notification):
    return {
        "id": n.id,
        "type": n.type.value,
        "message": n.message,
        "document_id": n.document_id,
        "read": n.read,
        "created_at": n.created_at,
    }

@router.get("")
def list_notifications(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return [_serialize_notification(n) for n in svc.list_for(session, actor)]

@router.put("/{notification_id}/read")
def mark_read(notification_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return _serialize_notification(svc.mark_read(session, actor, notification_id))

@router.delete("/clear-all")
def clear_all(session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    return {"cleared": svc.clear_all(session, actor)}

@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(notification_id: int, session: Session = Depends(get_session), actor: Actor = Depends(resolve_actor)):
    svc.delete(session, actor, notification_id)
